from blitz import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
import json

DIFFICULTIES = ('easy', 'medium', 'hard')


def _utcnow():
    return datetime.now(timezone.utc)


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    scores = db.relationship('WeeklyScore', back_populates='user', lazy='dynamic')

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
        }


class Question(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    week = db.Column(db.Integer, nullable=False, index=True)
    text = db.Column(db.Text, nullable=False)
    difficulty = db.Column(db.String(16), nullable=False, default='easy')
    correct_answers = db.Column(db.Text, nullable=False, default='[]')  # JSON-encoded list of strings

    @property
    def answers(self):
        try:
            return json.loads(self.correct_answers or '[]')
        except ValueError:
            return []

    @answers.setter
    def answers(self, values):
        self.correct_answers = json.dumps(list(values))


class WeeklyScore(db.Model):
    __tablename__ = 'weekly_score'
    __table_args__ = (db.UniqueConstraint('user_id', 'week', name='uq_weekly_score_user_week'),)
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    week = db.Column(db.Integer, nullable=False, index=True)
    score = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    user = db.relationship('User', back_populates='scores')
