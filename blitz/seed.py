"""Demo data loaded by ``flask db-reset``."""

SAMPLE_USERS = ['testuser1', 'testuser2', 'testuser3']

SAMPLE_QUESTIONS = [
    {
        'week': 1,
        'text': 'Which team won Super Bowl LVIII?',
        'difficulty': 'easy',
        'correct_answers': ['Kansas City Chiefs', 'Chiefs', 'Kansas City'],
    },
    {
        'week': 1,
        'text': 'Who was the MVP of Super Bowl LVIII?',
        'difficulty': 'medium',
        'correct_answers': ['Patrick Mahomes', 'Mahomes'],
    },
    {
        'week': 1,
        'text': 'Which team did the Chiefs beat in Super Bowl LVIII?',
        'difficulty': 'hard',
        'correct_answers': ['San Francisco 49ers', '49ers', 'Niners'],
    },
    {
        'week': 2,
        'text': 'How many Super Bowl rings did Tom Brady win?',
        'difficulty': 'easy',
        'correct_answers': ['7', 'seven'],
    },
    {
        'week': 2,
        'text': 'Which franchise has the most Super Bowl appearances?',
        'difficulty': 'medium',
        'correct_answers': ['New England Patriots', 'Patriots'],
    },
    {
        'week': 2,
        'text': 'Who holds the record for career rushing yards?',
        'difficulty': 'hard',
        'correct_answers': ['Emmitt Smith'],
    },
]
