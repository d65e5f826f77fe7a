from arena import db, bcrypt
from flask_login import UserMixin


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    # Guests have neither username nor password
    username = db.Column(db.String(64), unique=True, nullable=True, index=True)
    password_hash = db.Column(db.String(256), nullable=True)
    is_guest = db.Column(db.Boolean, default=True, nullable=False)
    wins = db.Column(db.Integer, default=0, nullable=False)
    losses = db.Column(db.Integer, default=0, nullable=False)
    draws = db.Column(db.Integer, default=0, nullable=False)

    @property
    def identity(self):
        return str(self.id)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        if not self.password_hash:
            return False
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'username': self.username,
            'is_guest': self.is_guest,
            'wins': self.wins,
            'losses': self.losses,
            'draws': self.draws,
        }


class GameRecord(db.Model):
    """A finished chess game."""
    __tablename__ = 'game_record'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(16), nullable=False, index=True)
    pgn = db.Column(db.Text, nullable=False, default='')
    white_id = db.Column(db.String(64), nullable=True, index=True)
    white_name = db.Column(db.String(64), nullable=True)
    black_id = db.Column(db.String(64), nullable=True, index=True)
    black_name = db.Column(db.String(64), nullable=True)
    winner = db.Column(db.String(16), nullable=False)  # white, black, draw
    end_reason = db.Column(db.String(32), nullable=False)
    started_at = db.Column(db.Float, nullable=True)
    ended_at = db.Column(db.Float, nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'pgn': self.pgn,
            'white': {'id': self.white_id, 'name': self.white_name},
            'black': {'id': self.black_id, 'name': self.black_name},
            'winner': self.winner,
            'end_reason': self.end_reason,
            'started_at': self.started_at,
            'ended_at': self.ended_at,
        }
