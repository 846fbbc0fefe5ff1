from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .cards import Card


class ComboType(str, Enum):
    SINGLE = "single"
    PAIR = "pair"
    TRIPLE = "triple"
    STRAIGHT = "straight"
    FLUSH = "flush"
    FULLHOUSE = "fullhouse"
    FOURKIND = "fourkind"
    STRAIGHTFLUSH = "straightflush"


# Category rank for five-card hands, weakest first.
FIVE_CARD_ORDER = (
    ComboType.STRAIGHT,
    ComboType.FLUSH,
    ComboType.FULLHOUSE,
    ComboType.FOURKIND,
    ComboType.STRAIGHTFLUSH,
)


class Phase(str, Enum):
    AWAITING_LEAD = "AWAITING_LEAD"
    AWAITING_RESPONSE = "AWAITING_RESPONSE"
    MATCH_OVER = "MATCH_OVER"
    GAME_OVER = "GAME_OVER"
    ABORTED = "ABORTED"


class ActionType(str, Enum):
    PLAY = "PLAY"
    PASS = "PASS"


@dataclass
class RoomConfig:
    seats: int = 4
    score_limit: int = 100
    bots_per_room: int = 0
    bot_think_ms: int = 1_500
    next_match_delay_ms: int = 1_200
    grace_period_ms: int = 60_000
    auto_pass_ms: int = 10_000
    history_limit: int = 30


@dataclass(frozen=True)
class Combination:
    type: ComboType
    cards: Tuple[Card, ...]
    key: int

    @property
    def size(self) -> int:
        return len(self.cards)

    @property
    def is_five(self) -> bool:
        return self.type in FIVE_CARD_ORDER

    @property
    def category(self) -> Optional[int]:
        if not self.is_five:
            return None
        return FIVE_CARD_ORDER.index(self.type)

    @property
    def labels(self) -> List[str]:
        return [card.label for card in self.cards]


@dataclass
class StandingPlay:
    seat: int
    combo: Combination


@dataclass
class PlayerSeat:
    seat: int
    name: str
    name_key: str
    is_bot: bool = False
    connected: bool = False
    hand: List[Card] = field(default_factory=list)
    passed: bool = False
    disconnected: bool = False
    disconnect_deadline: Optional[float] = None
    disconnect_epoch: int = 0
    lapsed: bool = False

    def reset_for_match(self, hand: List[Card]) -> None:
        self.hand = list(hand)
        self.passed = False

    def reset_for_trick(self) -> None:
        self.passed = False

    @property
    def labels(self) -> List[str]:
        return [card.label for card in self.hand]
