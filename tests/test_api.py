from blitz.models import WeeklyScore
from blitz.services.trivia import store


def start_round(client, week=1):
    res = client.post('/api/trivia/rounds', json={'week': week})
    assert res.status_code == 201
    return res.get_json()


def answer(client, round_id, text=None):
    res = client.post(f'/api/trivia/rounds/{round_id}/answer', json={'answer': text})
    assert res.status_code == 200
    return res.get_json()


def play_week_one(client, answers=('80', 'tom brady', 'Miami Dolphins')):
    state = start_round(client, 1)
    for text in answers:
        state = answer(client, state['round_id'], text)
    return state


def test_weeks_listed_most_recent_first(client, seeded):
    res = client.get('/api/trivia/weeks')
    assert res.status_code == 200
    assert res.get_json() == {'weeks': [2, 1]}


def test_round_starts_without_exposing_answers(client, seeded):
    state = start_round(client, 1)
    assert state['phase'] == 'active'
    assert state['question_index'] == 0
    assert state['total_questions'] == 3
    assert state['time_remaining'] == 20
    assert state['signed_in'] is False
    question = state['current_question']
    assert question['text'] == 'What number did Jerry Rice wear?'
    assert question['points'] == 2
    assert 'correct_answers' not in question


def test_anonymous_round_completes_without_saving(client, seeded):
    state = play_week_one(client)
    assert state['phase'] == 'complete'
    assert state['is_complete'] is True
    assert state['score'] == 2 + 6 + 15
    assert state['score_submitted'] is False
    assert state['current_question'] is None
    assert WeeklyScore.query.count() == 0


def test_signed_in_round_records_score(client, seeded, register):
    user = register('alice')
    state = play_week_one(client, answers=('80', 'wrong', '  dolphins '))
    assert state['score'] == 17
    assert state['score_submitted'] is True

    row = WeeklyScore.query.filter_by(user_id=user['id'], week=1).one()
    assert row.score == 17

    board = client.get('/api/trivia/leaderboard?week=1').get_json()
    assert board['week'] == 1
    assert board['entries'] == [{'rank': 1, 'username': 'alice', 'score': 17, 'week': 1}]


def test_answer_result_is_reported(client, seeded):
    state = start_round(client, 2)
    state = answer(client, state['round_id'], ' 42 ')
    result = state['result']
    assert result['answered'] is True
    assert result['correct'] is True
    assert result['points'] == 2
    assert state['phase'] == 'complete'
    assert state['score'] == 2


def test_replay_overwrites_with_latest_score(client, seeded, register):
    user = register('bob')
    state = play_week_one(client)
    res = client.post(f"/api/trivia/rounds/{state['round_id']}/restart")
    assert res.status_code == 200
    replay = res.get_json()
    assert replay['session'] == 2
    assert replay['score'] == 0
    assert replay['question_index'] == 0

    for text in ('80', 'x', 'y'):
        replay = answer(client, state['round_id'], text)
    assert replay['score'] == 2
    assert WeeklyScore.query.filter_by(user_id=user['id'], week=1).one().score == 2


def test_max_policy_keeps_best_score(flask_app, client, seeded, register):
    flask_app.config['SCORE_POLICY'] = 'max'
    user = register('cara')
    state = play_week_one(client)
    client.post(f"/api/trivia/rounds/{state['round_id']}/restart")
    for text in ('', '', ''):
        answer(client, state['round_id'], text)
    assert WeeklyScore.query.filter_by(user_id=user['id'], week=1).one().score == 23


def test_empty_week_is_not_started(client, rounds, seeded):
    res = client.post('/api/trivia/rounds', json={'week': 9})
    assert res.status_code == 404
    assert res.get_json() == {'error': 'No questions available for week 9'}
    assert len(rounds) == 0


def test_load_failure_is_reported(client, rounds, seeded, monkeypatch):
    def broken(week):
        raise RuntimeError('connection reset')

    monkeypatch.setattr(store, 'fetch_questions', broken)
    res = client.post('/api/trivia/rounds', json={'week': 1})
    assert res.status_code == 503
    assert res.get_json() == {'error': 'Failed to load questions.'}
    assert len(rounds) == 0


def test_invalid_week_rejected(client, rounds, seeded):
    for bad in ('abc', 0, -3, True, 1.9, 2.0, '1.5', '²', [1]):
        res = client.post('/api/trivia/rounds', json={'week': bad})
        assert res.status_code == 400
    assert len(rounds) == 0
    assert client.get('/api/trivia/leaderboard?week=1.9').status_code == 400


def test_week_given_as_digit_string(client, seeded):
    res = client.post('/api/trivia/rounds', json={'week': ' 2 '})
    assert res.status_code == 201
    assert res.get_json()['week'] == 2
    assert client.get('/api/trivia/leaderboard?week=2').get_json()['week'] == 2


def test_round_without_week_then_select(client, seeded):
    res = client.post('/api/trivia/rounds', json={})
    assert res.status_code == 201
    state = res.get_json()
    assert state['phase'] == 'idle'

    res = client.post(f"/api/trivia/rounds/{state['round_id']}/week", json={'week': 9})
    assert res.status_code == 404
    idle = client.get(f"/api/trivia/rounds/{state['round_id']}").get_json()
    assert idle['phase'] == 'idle'
    assert idle['error'] == 'No questions available for week 9'

    res = client.post(f"/api/trivia/rounds/{state['round_id']}/week", json={'week': 2})
    assert res.status_code == 200
    assert res.get_json()['phase'] == 'active'


def test_new_week_after_completion_that_fails_leaves_a_clean_idle_round(client, seeded, monkeypatch):
    state = play_week_one(client)
    assert state['score'] == 23
    round_id = state['round_id']

    real_fetch = store.fetch_questions

    def broken(week):
        raise RuntimeError('connection reset')

    monkeypatch.setattr(store, 'fetch_questions', broken)
    res = client.post(f'/api/trivia/rounds/{round_id}/week', json={'week': 2})
    assert res.status_code == 503
    idle = client.get(f'/api/trivia/rounds/{round_id}').get_json()
    assert idle['phase'] == 'idle'
    assert idle['week'] is None
    assert idle['total_questions'] == 0
    assert idle['question_index'] == 0
    assert idle['score'] == 0
    assert idle['is_complete'] is False
    assert idle['error'] == 'Failed to load questions.'

    monkeypatch.setattr(store, 'fetch_questions', real_fetch)
    res = client.post(f'/api/trivia/rounds/{round_id}/week', json={'week': 2})
    assert res.status_code == 200
    answer(client, round_id, '42')
    res = client.post(f'/api/trivia/rounds/{round_id}/week', json={'week': 9})
    assert res.status_code == 404
    idle = client.get(f'/api/trivia/rounds/{round_id}').get_json()
    assert idle['week'] is None
    assert idle['score'] == 0
    assert idle['error'] == 'No questions available for week 9'


def test_unknown_round_is_404(client):
    res = client.get('/api/trivia/rounds/does-not-exist')
    assert res.status_code == 404
    assert res.get_json() == {'error': 'Round not found'}


def test_answer_after_completion_conflicts(client, seeded):
    state = start_round(client, 2)
    answer(client, state['round_id'], '42')
    res = client.post(f"/api/trivia/rounds/{state['round_id']}/answer", json={'answer': '42'})
    assert res.status_code == 409


def test_restart_while_active_conflicts(client, seeded):
    state = start_round(client, 1)
    res = client.post(f"/api/trivia/rounds/{state['round_id']}/restart")
    assert res.status_code == 409


def test_timeout_advances_round(client, rounds, seeded):
    state = start_round(client, 1)
    controller = rounds.get(state['round_id']).controller
    for _ in range(19):
        controller.tick()
    assert client.get(f"/api/trivia/rounds/{state['round_id']}").get_json()['time_remaining'] == 1
    controller.tick()
    current = client.get(f"/api/trivia/rounds/{state['round_id']}").get_json()
    assert current['question_index'] == 1
    assert current['score'] == 0
    assert current['time_remaining'] == 20


def test_draft_counts_when_time_runs_out(client, rounds, seeded):
    state = start_round(client, 2)
    res = client.post(f"/api/trivia/rounds/{state['round_id']}/draft", json={'answer': '42'})
    assert res.status_code == 200
    assert res.get_json()['pending_answer'] == '42'
    controller = rounds.get(state['round_id']).controller
    for _ in range(20):
        controller.tick()
    final = client.get(f"/api/trivia/rounds/{state['round_id']}").get_json()
    assert final['phase'] == 'complete'
    assert final['score'] == 2


def test_back_to_week_selection(client, seeded):
    state = play_week_one(client)
    res = client.post(f"/api/trivia/rounds/{state['round_id']}/back")
    assert res.status_code == 200
    idle = res.get_json()
    assert idle['phase'] == 'idle'
    assert idle['week'] is None
    assert idle['total_questions'] == 0


def test_delete_round(client, rounds, seeded):
    state = start_round(client, 1)
    res = client.delete(f"/api/trivia/rounds/{state['round_id']}")
    assert res.status_code == 200
    assert state['round_id'] not in rounds
    assert client.get(f"/api/trivia/rounds/{state['round_id']}").status_code == 404


def test_logout_mid_round_stops_saving(client, seeded, register):
    register('dana')
    state = start_round(client, 2)
    assert state['signed_in'] is True
    assert client.post('/api/auth/logout').status_code == 200
    final = answer(client, state['round_id'], '42')
    assert final['phase'] == 'complete'
    assert final['signed_in'] is False
    assert WeeklyScore.query.count() == 0


def test_login_mid_round_saves_score(client, seeded, register):
    state = start_round(client, 2)
    assert state['signed_in'] is False
    user = register('erin')
    final = answer(client, state['round_id'], '42')
    assert final['score_submitted'] is True
    assert WeeklyScore.query.filter_by(user_id=user['id'], week=2).one().score == 2


def test_leaderboard_top_ten_by_score(client, seeded):
    from blitz import db
    from blitz.models import User

    for i in range(12):
        user = User(username=f'player{i}', email=f'player{i}@example.com')
        user.set_password('pw')
        db.session.add(user)
        db.session.commit()
        store.record_score(user.id, 1, i * 3)
    store.record_score(1, 2, 5)

    board = client.get('/api/trivia/leaderboard?week=1').get_json()
    entries = board['entries']
    assert len(entries) == 10
    assert [e['score'] for e in entries] == [33, 30, 27, 24, 21, 18, 15, 12, 9, 6]
    assert entries[0] == {'rank': 1, 'username': 'player11', 'score': 33, 'week': 1}

    latest = client.get('/api/trivia/leaderboard').get_json()
    assert latest['week'] == 2
    assert [e['score'] for e in latest['entries']] == [5]


def test_leaderboard_without_questions(client):
    res = client.get('/api/trivia/leaderboard')
    assert res.get_json() == {'week': None, 'entries': []}
    assert client.get('/api/trivia/leaderboard?week=nope').status_code == 400


def test_register_login_and_me(client):
    res = client.post('/api/auth/register', json={'username': 'fay', 'email': 'Fay@Example.com', 'password': 'pw1'})
    assert res.status_code == 201
    assert res.get_json()['user']['email'] == 'fay@example.com'

    dup = client.post('/api/auth/register', json={'username': 'fay', 'email': 'other@example.com', 'password': 'x'})
    assert dup.status_code == 400

    assert client.get('/api/auth/me').get_json()['user']['username'] == 'fay'
    client.post('/api/auth/logout')
    assert client.get('/api/auth/me').get_json()['user'] is None

    bad = client.post('/api/auth/login', json={'email': 'fay@example.com', 'password': 'wrong'})
    assert bad.status_code == 401
    good = client.post('/api/auth/login', json={'email': 'fay@example.com', 'password': 'pw1'})
    assert good.status_code == 200
    assert good.get_json()['user']['username'] == 'fay'


def test_register_requires_all_fields(client):
    res = client.post('/api/auth/register', json={'username': 'gil'})
    assert res.status_code == 400


def test_idle_rounds_are_evicted(flask_app, client, rounds, seeded):
    from flask_login import user_logged_out

    baseline = len(user_logged_out.receivers)
    ttl = flask_app.config['ROUND_IDLE_TTL_SEC']
    finished = []
    for _ in range(3):
        state = start_round(client, 2)
        answer(client, state['round_id'], '42')
        finished.append(state['round_id'])
    assert len(rounds) == 3
    assert len(user_logged_out.receivers) == baseline + 3

    # Two rounds were abandoned, the third is still being read
    for round_id in finished[:2]:
        rounds.get(round_id).last_seen -= ttl + 1
    assert client.get(f'/api/trivia/rounds/{finished[2]}').status_code == 200

    fresh = start_round(client, 2)
    assert len(rounds) == 2
    assert finished[2] in rounds
    assert fresh['round_id'] in rounds
    assert len(user_logged_out.receivers) == baseline + 2
    for round_id in finished[:2]:
        assert client.get(f'/api/trivia/rounds/{round_id}').status_code == 404


def test_sweep_uses_the_registry_clock(flask_app, rounds, seeded):
    flask_app.config['ROUND_IDLE_TTL_SEC'] = 60
    now = {'t': 1000.0}
    rounds.clock = lambda: now['t']

    entry = rounds.create()
    entry.controller.select_week(2)
    now['t'] += 59
    assert rounds.sweep() == 0

    entry.controller.submit_answer('42')
    now['t'] += 59
    assert rounds.sweep() == 0
    assert entry.round_id in rounds

    now['t'] += 60
    assert rounds.sweep() == 1
    assert entry.round_id not in rounds
    assert entry.subscription.active is False
