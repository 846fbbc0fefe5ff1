from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .cards import THREE_OF_DIAMONDS, Card, build_deck, deal_hands, parse_label
from .errors import IllegalMove, InvalidPassContext, OutOfTurn
from .evaluator import can_beat, classify, describe, is_top_remaining
from .models import Phase, PlayerSeat, RoomConfig, StandingPlay

# GameEngine keeps all room state in memory. No networking or timers live
# here, only Big Two rules, turn order, and scoring.

_LIVE_PHASES = (Phase.AWAITING_LEAD, Phase.AWAITING_RESPONSE)


@dataclass
class MatchContext:
    # Everything that lives for one deal: turn pointers, the trick, history.
    match_id: str
    match_number: int
    seed: int
    opener: int
    turn: int
    leader: int
    first_lead_constraint: bool
    phase: Phase = Phase.AWAITING_LEAD
    standing: Optional[StandingPlay] = None
    trick_id: int = 0
    winner: Optional[int] = None
    played: set[Card] = field(default_factory=set)
    history: List[Dict[str, object]] = field(default_factory=list)
    pre_events: List[Dict[str, object]] = field(default_factory=list)


def penalty_points(cards_left: int) -> int:
    if cards_left <= 0:
        return 0
    if cards_left <= 4:
        return cards_left
    if cards_left <= 9:
        return cards_left * 2
    return cards_left * 3


def next_eligible_seat(passed: Sequence[bool], owner: Optional[int], start: int) -> int:
    """First seat after `start` that owns the standing play or has not passed yet."""
    seats = len(passed)
    for step in range(1, seats + 1):
        idx = (start + step) % seats
        if owner is None or idx == owner or not passed[idx]:
            return idx
    return start


class GameEngine:
    """Big Two rules engine for a single four-seat room."""

    def __init__(self, config: RoomConfig) -> None:
        self.config = config
        self.seats: List[Optional[PlayerSeat]] = [None] * config.seats
        self.scores: List[int] = [0] * config.seats
        self.match_counter = 0
        self.match: Optional[MatchContext] = None
        self.last_winner: Optional[int] = None
        self.game_over = False
        self.champion: Optional[int] = None
        self.aborted_reason: Optional[str] = None
        # Bumped on every accepted game mutation; scheduled work compares against it.
        self.version = 0

    # Seat management -------------------------------------------------

    def assign_seat(self, name: str, is_bot: bool = False) -> PlayerSeat:
        display = name.strip()
        if not display:
            raise ValueError("NAME_REQUIRED")

        name_key = self.normalize_name(display)
        existing = self.find_seat_by_name(name_key)
        if existing:
            raise ValueError("NAME_TAKEN")

        for idx in range(self.config.seats):
            if self.seats[idx] is None:
                seat = PlayerSeat(seat=idx, name=display, name_key=name_key, is_bot=is_bot, connected=is_bot)
                self.seats[idx] = seat
                return seat

        raise RuntimeError("Room is full")

    @staticmethod
    def normalize_name(name: str) -> str:
        return name.strip().casefold()

    def find_seat_by_name(self, name: str) -> Optional[PlayerSeat]:
        name_key = self.normalize_name(name)
        for seat in self.seats:
            if seat and seat.name_key == name_key:
                return seat
        return None

    def is_full(self) -> bool:
        return all(seat is not None for seat in self.seats)

    def set_connected(self, seat_idx: int, connected: bool) -> None:
        seat = self.seats[seat_idx]
        if seat:
            seat.connected = connected

    # Match lifecycle -------------------------------------------------

    def start_match(self, seed: Optional[int] = None) -> MatchContext:
        if not self.is_full():
            raise RuntimeError("Room needs every seat filled to start a match")
        if self.game_over or self.aborted_reason:
            raise RuntimeError("Room has finished")
        if self.match and self.match.phase in _LIVE_PHASES:
            raise RuntimeError("Match already in progress")

        if seed is None:
            seed = int(time.time() * 1000) & 0xFFFFFFFF
        hands = deal_hands(build_deck(seed), self.config.seats)
        for seat, hand in zip(self.seats, hands):
            assert seat
            seat.reset_for_match(hand)

        first_match = self.match_counter == 0
        if first_match:
            opener = next(seat.seat for seat in self.seats if seat and THREE_OF_DIAMONDS in seat.hand)
        else:
            assert self.last_winner is not None
            opener = self.last_winner

        self.match_counter += 1
        ctx = MatchContext(
            match_id=f"M-{time.strftime('%Y%m%d')}-{self.match_counter:05d}",
            match_number=self.match_counter,
            seed=seed,
            opener=opener,
            turn=opener,
            leader=opener,
            first_lead_constraint=first_match,
        )
        ctx.pre_events.append(
            {
                "ev": "MATCH_START",
                "match_number": ctx.match_number,
                "opener": opener,
                "first_lead_constraint": first_match,
            }
        )
        self.match = ctx
        self.version += 1
        return ctx

    def consume_pre_events(self) -> List[Dict[str, object]]:
        if not self.match:
            return []
        events = list(self.match.pre_events)
        self.match.pre_events.clear()
        return events

    def in_progress(self) -> bool:
        return bool(self.match and self.match.phase in _LIVE_PHASES)

    def next_actor(self) -> Optional[int]:
        if not self.in_progress():
            return None
        assert self.match
        return self.match.turn

    def is_match_over(self) -> bool:
        return bool(self.match and self.match.phase in (Phase.MATCH_OVER, Phase.GAME_OVER))

    def abort_match(self, reason: str) -> List[Dict[str, object]]:
        self.aborted_reason = reason
        if self.match:
            self.match.phase = Phase.ABORTED
        self.version += 1
        return [{"ev": "MATCH_ABORTED", "reason": reason}]

    # Action handling -------------------------------------------------

    def apply_play(self, seat_idx: int, labels: Sequence[str]) -> List[Dict[str, object]]:
        ctx = self._require_live_match()
        seat = self._require_seat(seat_idx)
        if ctx.turn != seat_idx:
            raise OutOfTurn()

        # Validate everything before touching state.
        cards = self._cards_from_hand(seat, labels)
        combo = classify(cards)
        if combo is None:
            raise IllegalMove("INVALID_COMBINATION", "Invalid combination")
        if ctx.first_lead_constraint and THREE_OF_DIAMONDS not in combo.cards:
            raise IllegalMove("MISSING_THREE_OF_DIAMONDS", "First play must include 3♦")
        standing = ctx.standing
        if standing:
            if combo.size != standing.combo.size:
                raise IllegalMove("WRONG_CARD_COUNT", f"Must play {standing.combo.size} card(s)")
            if not can_beat(standing.combo, combo):
                raise IllegalMove(
                    "DOES_NOT_BEAT",
                    f"{describe(combo)} does not beat {describe(standing.combo)}",
                )

        top_play = is_top_remaining(combo, ctx.played)
        played = set(combo.cards)
        seat.hand = [card for card in seat.hand if card not in played]
        ctx.played.update(played)
        seat.passed = False
        ctx.standing = StandingPlay(seat=seat_idx, combo=combo)
        ctx.first_lead_constraint = False
        ctx.phase = Phase.AWAITING_RESPONSE
        entry: Dict[str, object] = {
            "seat": seat_idx,
            "combo": combo.type.value,
            "count": combo.size,
            "cards": combo.labels,
        }
        ctx.history.append(entry)
        self.version += 1

        events: List[Dict[str, object]] = [{"ev": "PLAY", **entry}]
        if top_play:
            events.append({"ev": "TOP_PLAY", "seat": seat_idx, "combo": combo.type.value, "cards": combo.labels})

        if not seat.hand:
            events.extend(self._finish_match(ctx, seat_idx))
            return events

        if len(seat.hand) == 1:
            events.append({"ev": "ONE_CARD_LEFT", "seat": seat_idx})
        ctx.turn = next_eligible_seat(self._passed_flags(), seat_idx, seat_idx)
        return events

    def apply_pass(self, seat_idx: int) -> List[Dict[str, object]]:
        ctx = self._require_live_match()
        self._require_seat(seat_idx)
        if ctx.standing is None:
            raise InvalidPassContext()
        if ctx.turn != seat_idx:
            raise OutOfTurn()

        seat = self.seats[seat_idx]
        assert seat
        seat.passed = True
        self.version += 1
        events: List[Dict[str, object]] = [{"ev": "PASS", "seat": seat_idx}]
        if self._all_others_passed(ctx):
            events.extend(self._close_trick(ctx))
        else:
            ctx.turn = next_eligible_seat(self._passed_flags(), ctx.standing.seat, seat_idx)
        return events

    def auto_pass_others(self, owner_idx: int) -> List[Dict[str, object]]:
        """Concede the trick to `owner_idx` on behalf of every seat still holding cards."""
        ctx = self._require_live_match()
        if ctx.standing is None or ctx.standing.seat != owner_idx:
            raise RuntimeError("Seat does not own the standing play")

        events: List[Dict[str, object]] = []
        for seat in self.seats:
            if seat and seat.seat != owner_idx and not seat.passed and seat.hand:
                seat.passed = True
                events.append({"ev": "PASS", "seat": seat.seat, "auto": True})
        self.version += 1
        events.extend(self._close_trick(ctx))
        return events

    def _close_trick(self, ctx: MatchContext) -> List[Dict[str, object]]:
        assert ctx.standing
        owner = ctx.standing.seat
        for seat in self.seats:
            if seat:
                seat.reset_for_trick()
        ctx.leader = owner
        ctx.turn = owner
        ctx.standing = None
        ctx.trick_id += 1
        ctx.phase = Phase.AWAITING_LEAD
        return [{"ev": "TRICK_CLOSED", "leader": owner, "trick_id": ctx.trick_id}]

    def _finish_match(self, ctx: MatchContext, winner_idx: int) -> List[Dict[str, object]]:
        ctx.phase = Phase.MATCH_OVER
        ctx.winner = winner_idx
        self.last_winner = winner_idx

        points_added = [0] * self.config.seats
        for idx, seat in enumerate(self.seats):
            if seat is None or idx == winner_idx:
                continue
            points_added[idx] = penalty_points(len(seat.hand))
            self.scores[idx] += points_added[idx]

        events: List[Dict[str, object]] = [
            {
                "ev": "MATCH_END",
                "winner": winner_idx,
                "points_added": points_added,
                "scores": list(self.scores),
                "hands_left": [len(seat.hand) if seat else 0 for seat in self.seats],
                "match_number": ctx.match_number,
            }
        ]

        busted = [idx for idx, score in enumerate(self.scores) if score > self.config.score_limit]
        if busted:
            ctx.phase = Phase.GAME_OVER
            self.game_over = True
            self.champion = self.scores.index(min(self.scores))
            events.append(
                {
                    "ev": "GAME_OVER",
                    "scores": list(self.scores),
                    "busted": busted,
                    "champion": self.champion,
                    "match_number": ctx.match_number,
                }
            )
        return events

    def _require_live_match(self) -> MatchContext:
        if not self.match or self.match.phase not in _LIVE_PHASES:
            raise OutOfTurn("No match in progress")
        return self.match

    def _require_seat(self, seat_idx: int) -> PlayerSeat:
        if not 0 <= seat_idx < len(self.seats) or self.seats[seat_idx] is None:
            raise RuntimeError("Seat empty")
        seat = self.seats[seat_idx]
        assert seat
        return seat

    def _cards_from_hand(self, seat: PlayerSeat, labels: Sequence[str]) -> List[Card]:
        if not labels:
            raise IllegalMove("INVALID_COMBINATION", "No cards submitted")
        try:
            cards = [parse_label(label) for label in labels]
        except ValueError as exc:
            raise IllegalMove("CARDS_NOT_HELD", str(exc)) from exc
        if len(set(cards)) != len(cards) or any(card not in seat.hand for card in cards):
            raise IllegalMove("CARDS_NOT_HELD", "You do not hold these cards")
        return cards

    def _passed_flags(self) -> List[bool]:
        return [bool(seat and seat.passed) for seat in self.seats]

    def _all_others_passed(self, ctx: MatchContext) -> bool:
        if ctx.standing is None:
            return False
        owner = ctx.standing.seat
        return all(seat is None or seat.seat == owner or seat.passed for seat in self.seats)

    # Public/Snapshot helpers -----------------------------------------

    def lobby_state(self) -> Dict[str, object]:
        return {
            "players": [
                {
                    "seat": idx,
                    "name": seat.name,
                    "is_bot": seat.is_bot,
                    "connected": seat.connected,
                }
                for idx, seat in enumerate(self.seats)
                if seat is not None
            ]
        }

    def snapshot_payload(self, seat_idx: int) -> Dict[str, object]:
        seat = self._require_seat(seat_idx)
        ctx = self.match
        standing = ctx.standing if ctx else None
        seats = [s for s in self.seats if s is not None]
        return {
            "you": seat_idx,
            "hand": seat.labels,
            "names": [s.name for s in seats],
            "counts": [len(s.hand) for s in seats],
            "passed": [s.passed for s in seats],
            "disconnected": [s.disconnected for s in seats],
            "is_bot": [s.is_bot for s in seats],
            "standing": (
                {
                    "seat": standing.seat,
                    "combo": standing.combo.type.value,
                    "count": standing.combo.size,
                    "cards": standing.combo.labels,
                }
                if standing
                else None
            ),
            "history": list(ctx.history[-self.config.history_limit :]) if ctx else [],
            "scores": list(self.scores),
            "match_number": ctx.match_number if ctx else 0,
            "match_id": ctx.match_id if ctx else None,
            "trick_id": ctx.trick_id if ctx else 0,
            "phase": ctx.phase.value if ctx else None,
            "turn": self.next_actor(),
            "leader": ctx.leader if ctx else None,
            "first_lead_constraint": ctx.first_lead_constraint if ctx else False,
            "match_finished": not self.in_progress(),
            "finished": self.game_over or self.aborted_reason is not None,
        }
