from quizarena import db, bcrypt
from flask_login import UserMixin
from datetime import datetime
import json

ROOM_STATUSES = ('waiting', 'active', 'completed', 'closed')
SESSION_STATUSES = ('active', 'completed')


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


class Profile(db.Model):
    __tablename__ = 'profiles'
    id = db.Column(db.Integer, db.ForeignKey('user.id'), primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    experience = db.Column(db.Integer, default=0, nullable=False)
    level = db.Column(db.Integer, default=1, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'experience': self.experience,
            'level': self.level,
        }


class Room(db.Model):
    __tablename__ = 'rooms'
    id = db.Column(db.Integer, primary_key=True)
    # 6-digit share code; duplicates across time are tolerated
    code = db.Column(db.String(6), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    creator_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    max_players = db.Column(db.Integer, nullable=False, default=4)
    num_questions = db.Column(db.Integer, nullable=False, default=10)
    time_limit = db.Column(db.Integer, nullable=False, default=30)
    category = db.Column(db.String(64), nullable=False, default='all')
    difficulty = db.Column(db.String(16), nullable=False, default='medium')
    status = db.Column(db.String(16), nullable=False, default='waiting')  # waiting, active, completed, closed
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    players = db.relationship('RoomPlayer', back_populates='room')

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'creator_id': self.creator_id,
            'max_players': self.max_players,
            'num_questions': self.num_questions,
            'time_limit': self.time_limit,
            'category': self.category,
            'difficulty': self.difficulty,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class RoomPlayer(db.Model):
    __tablename__ = 'room_players'
    __table_args__ = (db.UniqueConstraint('room_id', 'user_id', name='uq_room_players_room_user'),)
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('rooms.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    # Copied at join time
    username = db.Column(db.String(64), nullable=False)
    is_ready = db.Column(db.Boolean, default=False, nullable=False)
    is_creator = db.Column(db.Boolean, default=False, nullable=False)
    room = db.relationship('Room', back_populates='players')

    def to_dict(self):
        return {
            'id': self.id,
            'room_id': self.room_id,
            'user_id': self.user_id,
            'username': self.username,
            'is_ready': self.is_ready,
            'is_creator': self.is_creator,
        }


class GameSession(db.Model):
    __tablename__ = 'game_sessions'
    id = db.Column(db.Integer, primary_key=True)
    creator_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    room_id = db.Column(db.Integer, db.ForeignKey('rooms.id'), nullable=True, index=True)  # null for solo play
    is_multiplayer = db.Column(db.Boolean, default=False, nullable=False)
    time_limit = db.Column(db.Integer, nullable=False, default=30)
    num_questions = db.Column(db.Integer, nullable=False, default=10)
    category = db.Column(db.String(64), nullable=False, default='all')
    difficulty = db.Column(db.String(16), nullable=False, default='medium')
    status = db.Column(db.String(16), nullable=False, default='active')  # active, completed
    scores = db.relationship('PlayerScore', back_populates='session')

    def to_dict(self):
        return {
            'id': self.id,
            'creator_id': self.creator_id,
            'room_id': self.room_id,
            'is_multiplayer': self.is_multiplayer,
            'time_limit': self.time_limit,
            'num_questions': self.num_questions,
            'category': self.category,
            'difficulty': self.difficulty,
            'status': self.status,
        }


class PlayerScore(db.Model):
    __tablename__ = 'player_scores'
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('game_sessions.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    score = db.Column(db.Integer, default=0, nullable=False)
    completed = db.Column(db.Boolean, default=False, nullable=False)
    session = db.relationship('GameSession', back_populates='scores')

    def to_dict(self):
        return {
            'id': self.id,
            'session_id': self.session_id,
            'user_id': self.user_id,
            'score': self.score,
            'completed': self.completed,
        }


class Question(db.Model):
    __tablename__ = 'questions'
    id = db.Column(db.Integer, primary_key=True)
    question = db.Column(db.Text, nullable=False)
    options = db.Column(db.Text, nullable=False)  # JSON-encoded list of strings
    correct_answer = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(64), nullable=False, index=True)
    difficulty = db.Column(db.String(16), nullable=False, index=True)

    def __init__(self, **kwargs):
        options = kwargs.get('options')
        if isinstance(options, (list, tuple)):
            kwargs['options'] = json.dumps(list(options))
        super(Question, self).__init__(**kwargs)

    @property
    def option_list(self):
        try:
            return json.loads(self.options or '[]')
        except ValueError:
            return []

    def to_dict(self):
        return {
            'id': self.id,
            'question': self.question,
            'options': self.option_list,
            'correct_answer': self.correct_answer,
            'category': self.category,
            'difficulty': self.difficulty,
        }


TABLES = {
    'profiles': Profile,
    'rooms': Room,
    'room_players': RoomPlayer,
    'game_sessions': GameSession,
    'player_scores': PlayerScore,
    'questions': Question,
}
