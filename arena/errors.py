"""Errors raised by the session coordinator and its collaborators.

Every participant-facing error carries an HTTP status and a short code so
the REST blueprint and the Socket.IO handlers can report it the same way.
"""


class ArenaError(Exception):
    status_code = 400
    code = 'error'

    def __init__(self, message: str = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or self.__class__.__doc__ or self.code

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


class SessionNotFound(ArenaError):
    """Game not found"""
    status_code = 404
    code = 'session_not_found'


class UnknownGameKind(ArenaError):
    """Unknown game type"""
    status_code = 404
    code = 'unknown_game_kind'


class SeatUnavailable(ArenaError):
    """Seat is not available"""
    status_code = 409
    code = 'seat_unavailable'


class NotYourTurn(ArenaError):
    """Not your turn"""
    status_code = 403
    code = 'not_your_turn'


class WrongParticipant(ArenaError):
    """You are not a player in this game"""
    status_code = 403
    code = 'wrong_participant'


class IllegalAction(ArenaError):
    """Invalid move"""
    status_code = 400
    code = 'illegal_action'


class InvalidPhase(ArenaError):
    """Not allowed at this point of the game"""
    status_code = 409
    code = 'invalid_phase'


class NotInRoom(ArenaError):
    """Join the game room first"""
    status_code = 403
    code = 'not_in_room'


class StaleTimer(Exception):
    """A timer fired after the condition it guarded became moot. Never surfaced."""


class SessionInconsistent(RuntimeError):
    """Session data is missing something the coordinator relies on."""
