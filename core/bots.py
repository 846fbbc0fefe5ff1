from __future__ import annotations

import logging
import random
from typing import List, Optional, Tuple

from .cards import THREE_OF_DIAMONDS, Card
from .evaluator import can_beat, iter_combinations
from .game import GameEngine
from .models import ActionType, Combination

LOGGER = logging.getLogger("big2_bots")
_RNG = random.Random()


def _lead_candidates(hand: List[Card], needs_three: bool) -> List[Combination]:
    # Unload five-card hands first, then pairs, then the lowest single.
    for size in (5, 2, 1):
        combos = iter_combinations(hand, size)
        if needs_three:
            combos = [combo for combo in combos if THREE_OF_DIAMONDS in combo.cards]
        if combos:
            return combos
    return []


def _beating_candidates(hand: List[Card], standing: Combination) -> List[Combination]:
    return [combo for combo in iter_combinations(hand, standing.size) if can_beat(standing, combo)]


def _opponent_min_count(engine: GameEngine, seat_idx: int) -> int:
    counts = [len(seat.hand) for seat in engine.seats if seat and seat.seat != seat_idx]
    return min(counts) if counts else 0


def _pick_response(candidates: List[Combination], min_opponent: int, rng: random.Random) -> Combination:
    if min_opponent <= 3:
        return candidates[-1]
    if min_opponent <= 5 and rng.random() < 0.5:
        return candidates[len(candidates) // 2]
    return candidates[0]


def choose_action(
    engine: GameEngine,
    seat_idx: int,
    rng: Optional[random.Random] = None,
) -> Tuple[ActionType, List[str]]:
    """Heuristic house player. Candidates come from the same classifier humans are judged by."""
    rng = rng or _RNG
    ctx = engine.match
    seat = engine.seats[seat_idx]
    if ctx is None or seat is None:
        raise RuntimeError("No match in progress")

    if ctx.standing is None:
        leads = _lead_candidates(seat.hand, ctx.first_lead_constraint)
        if not leads:
            raise RuntimeError(f"Seat {seat_idx} has nothing to lead")
        return ActionType.PLAY, leads[0].labels

    candidates = _beating_candidates(seat.hand, ctx.standing.combo)
    if not candidates:
        return ActionType.PASS, []

    min_opponent = _opponent_min_count(engine, seat_idx)
    choice = _pick_response(candidates, min_opponent, rng)
    LOGGER.debug(
        "Seat %s answering %s with %s (%s candidates, opponent min %s)",
        seat_idx,
        ctx.standing.combo.labels,
        choice.labels,
        len(candidates),
        min_opponent,
    )
    return ActionType.PLAY, choice.labels


def apply_bot_turn(engine: GameEngine, seat_idx: int, rng: Optional[random.Random] = None):
    """Decide for `seat_idx` and push the decision through the normal play/pass checks."""
    action, labels = choose_action(engine, seat_idx, rng)
    if action == ActionType.PASS:
        return engine.apply_pass(seat_idx)
    return engine.apply_play(seat_idx, labels)
