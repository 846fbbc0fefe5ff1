"""Big Two engine primitives reused by the room host and the house bots."""

from .cards import RANKS, SUITS, THREE_OF_DIAMONDS, Card, build_deck, deal, deal_hands, parse_label
from .errors import GameError, IllegalMove, InvalidPassContext, OutOfTurn, SessionFault
from .evaluator import STRAIGHT_WINDOWS, can_beat, classify, iter_combinations, parse_cards
from .game import GameEngine, MatchContext, next_eligible_seat, penalty_points
from .models import ActionType, Combination, ComboType, Phase, PlayerSeat, RoomConfig

__all__ = [
    "Card",
    "RANKS",
    "SUITS",
    "THREE_OF_DIAMONDS",
    "build_deck",
    "deal",
    "deal_hands",
    "parse_label",
    "GameError",
    "IllegalMove",
    "InvalidPassContext",
    "OutOfTurn",
    "SessionFault",
    "STRAIGHT_WINDOWS",
    "can_beat",
    "classify",
    "iter_combinations",
    "parse_cards",
    "GameEngine",
    "MatchContext",
    "next_eligible_seat",
    "penalty_points",
    "ActionType",
    "Combination",
    "ComboType",
    "Phase",
    "PlayerSeat",
    "RoomConfig",
]
