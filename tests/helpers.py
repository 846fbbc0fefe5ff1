from __future__ import annotations

from typing import List, Optional, Sequence

from core.cards import sort_cards
from core.evaluator import parse_cards
from core.game import GameEngine, MatchContext
from core.models import RoomConfig

NAMES = ("Alpha", "Beta", "Gamma", "Delta")


def create_engine(*, score_limit: int = 100, bots: Sequence[int] = ()) -> GameEngine:
    """Instantiate an engine with all four seats taken."""
    engine = GameEngine(RoomConfig(score_limit=score_limit))
    for idx, name in enumerate(NAMES):
        engine.assign_seat(name, is_bot=idx in bots)
    return engine


def rig_hands(
    engine: GameEngine,
    hands: Sequence[Sequence[str]],
    *,
    turn: int = 0,
    first_lead: bool = False,
    start: bool = True,
) -> MatchContext:
    """Deal a match, then swap in scripted hands and hand the lead to `turn`."""
    if start:
        engine.start_match(seed=1)
    ctx = engine.match
    assert ctx is not None
    for seat, labels in zip(engine.seats, hands):
        assert seat
        seat.hand = sort_cards(parse_cards(list(labels)))
    ctx.turn = turn
    ctx.leader = turn
    ctx.opener = turn
    ctx.first_lead_constraint = first_lead
    return ctx


def hand_labels(engine: GameEngine, seat_idx: int) -> List[str]:
    seat = engine.seats[seat_idx]
    assert seat
    return seat.labels


def event_types(events: Sequence[dict]) -> List[str]:
    return [event["ev"] for event in events]


def find_event(events: Sequence[dict], ev: str) -> Optional[dict]:
    return next((event for event in events if event["ev"] == ev), None)
