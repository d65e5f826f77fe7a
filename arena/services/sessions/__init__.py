"""Live game sessions: registry, coordinator, timers, matchmaking and bots.

Transport-free domain logic. REST routes and Socket.IO handlers reach it
through the ``Arena`` bundle stored in ``app.extensions['arena']``.
"""
from dataclasses import dataclass
from typing import Dict

from .bots import BotManager
from .coordinator import SessionCoordinator
from .matchmaking import MatchmakingQueue
from .registry import SessionRegistry
from .session import DRAW, EndReason, Participant, Phase, Result, Session


@dataclass
class Arena:
    registry: SessionRegistry
    coordinator: SessionCoordinator
    queues: Dict[str, MatchmakingQueue]
    bots: BotManager

    def queue_for(self, kind: str) -> MatchmakingQueue:
        # Raises UnknownGameKind for unsupported kinds
        self.coordinator.rules_for(kind)
        return self.queues[kind]


def build_arena(registry, broadcaster, scheduler, rules, archive=None, logger=None,
                pending_ttl=600, bot_delay=1.5, battle_delay=2.0, **options) -> Arena:
    coordinator = SessionCoordinator(
        registry, broadcaster, scheduler, rules, archive=archive, logger=logger, **options
    )
    queues = {
        kind: MatchmakingQueue(kind, registry, coordinator, pending_ttl=pending_ttl)
        for kind in rules
    }
    bots = BotManager(coordinator, move_delay=bot_delay, battle_delay=battle_delay)
    return Arena(registry=registry, coordinator=coordinator, queues=queues, bots=bots)


__all__ = [
    'Arena', 'build_arena', 'SessionCoordinator', 'MatchmakingQueue', 'SessionRegistry', 'BotManager',
    'Session', 'Participant', 'Phase', 'Result', 'EndReason', 'DRAW',
]
