from typing import List, Optional

from arena import db
from arena.models import GameRecord, User
from .rules.chess_rules import export_pgn
from .session import DRAW, Session


class GameArchive:
    """Stores finished chess sessions and serves them back.

    Called by the coordinator from request handlers and from timer tasks
    alike, so every method pushes its own app context.
    """

    def __init__(self, app):
        self.app = app

    def save(self, session: Session) -> int:
        with self.app.app_context():
            white = session.participant('white')
            black = session.participant('black')
            record = GameRecord(
                code=session.code,
                pgn=export_pgn(session.state.board),
                white_id=white.identity if white else None,
                white_name=white.name if white else None,
                black_id=black.identity if black else None,
                black_name=black.name if black else None,
                winner=session.result.winner,
                end_reason=session.result.reason.value,
                started_at=session.started_at,
                ended_at=session.ended_at,
            )
            db.session.add(record)
            try:
                self._update_stats(session)
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
            self.app.logger.info(f"[archive] code={session.code} record={record.id} winner={record.winner} reason={record.end_reason}")
            return record.id

    def _update_stats(self, session: Session) -> None:
        for seat, participant in session.seats.items():
            if participant is None or not participant.identity.isdigit():
                continue
            user = db.session.get(User, int(participant.identity))
            if not user:
                continue
            if session.result.winner == DRAW:
                user.draws += 1
            elif session.result.winner == seat:
                user.wins += 1
            else:
                user.losses += 1
            db.session.add(user)

    def get(self, record_id: int) -> Optional[dict]:
        with self.app.app_context():
            record = db.session.get(GameRecord, record_id)
            return record.to_dict() if record else None

    def for_user(self, identity: str) -> List[dict]:
        with self.app.app_context():
            records = (
                GameRecord.query
                .filter((GameRecord.white_id == identity) | (GameRecord.black_id == identity))
                .order_by(GameRecord.ended_at.desc())
                .all()
            )
            return [r.to_dict() for r in records]
