from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

import websockets

from core.bots import apply_bot_turn
from core.errors import GameError, SessionFault
from core.game import GameEngine
from core.models import PlayerSeat, RoomConfig

from .protocol import envelope

LOGGER = logging.getLogger("big2_room")

# RoomActor owns one GameEngine and every timer that can touch it. Inputs
# (socket messages and timer fires alike) are queued and handled one at a
# time, so the engine never sees interleaved mutations.


class Transport(Protocol):
    async def send(self, message: str) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...


@dataclass
class PlayRequest:
    seat: int
    cards: List[str]


@dataclass
class PassRequest:
    seat: int


@dataclass
class SeatDisconnected:
    seat: int
    transport: Optional[Transport] = None


@dataclass
class SeatReconnected:
    seat: int
    identity: str
    transport: Transport
    reply: Optional[asyncio.Future] = None


@dataclass
class BotTurn:
    seat: int
    version: int


@dataclass
class AutoPass:
    owner: int
    trick_id: int


@dataclass
class GraceExpired:
    seat: int
    epoch: int


@dataclass
class NextMatch:
    after_match: int


@dataclass
class ScheduledEvent:
    event: Any
    due: float
    handle: Optional[asyncio.TimerHandle] = field(default=None, repr=False)

    def cancel(self) -> None:
        if self.handle:
            self.handle.cancel()


class RoomActor:
    def __init__(
        self,
        room_id: str,
        config: RoomConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        on_close: Optional[Callable[["RoomActor"], Awaitable[None]]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.room_id = room_id
        self.config = config
        self.engine = GameEngine(config)
        self.transports: Dict[int, Transport] = {}
        self.queue: asyncio.Queue = asyncio.Queue()
        self.timers: Dict[str, ScheduledEvent] = {}
        self.closed = False
        self._clock = clock
        self._on_close = on_close
        self._rng = rng
        self._task: Optional[asyncio.Task] = None

    # Seating -----------------------------------------------------------

    def seat_human(self, name: str, transport: Transport) -> PlayerSeat:
        seat = self.engine.assign_seat(name)
        self.engine.set_connected(seat.seat, True)
        self.transports[seat.seat] = transport
        return seat

    def seat_bot(self, name: str) -> PlayerSeat:
        return self.engine.assign_seat(name, is_bot=True)

    async def start(self) -> None:
        for seat_idx in list(self.transports):
            await self._send(
                seat_idx,
                "welcome",
                {
                    "room_id": self.room_id,
                    "seat": seat_idx,
                    "config": {
                        "score_limit": self.config.score_limit,
                        "grace_period_ms": self.config.grace_period_ms,
                        "auto_pass_ms": self.config.auto_pass_ms,
                    },
                    **self.engine.lobby_state(),
                },
            )
        self._task = asyncio.create_task(self._run())
        self.post(NextMatch(after_match=0))

    # Event loop --------------------------------------------------------

    def post(self, event: Any) -> None:
        if self.closed:
            _resolve(event, False)
            return
        self.queue.put_nowait(event)

    async def _run(self) -> None:
        while not self.closed:
            event = await self.queue.get()
            try:
                await self.handle(event)
            except Exception:
                LOGGER.exception("Room %s failed while handling %s", self.room_id, event)

    async def handle(self, event: Any) -> None:
        """Single entry point for every room mutation."""
        if self.closed:
            _resolve(event, False)
            return
        if isinstance(event, PlayRequest):
            await self._on_play(event)
        elif isinstance(event, PassRequest):
            await self._on_pass(event)
        elif isinstance(event, SeatDisconnected):
            await self._on_disconnect(event)
        elif isinstance(event, SeatReconnected):
            await self._on_reconnect(event)
        elif isinstance(event, BotTurn):
            await self._on_bot_turn(event)
        elif isinstance(event, AutoPass):
            await self._on_auto_pass(event)
        elif isinstance(event, GraceExpired):
            await self._on_grace_expired(event)
        elif isinstance(event, NextMatch):
            await self._on_next_match(event)
        else:
            raise ValueError(f"Unsupported room event {event!r}")

    # Player actions ----------------------------------------------------

    async def _on_play(self, event: PlayRequest) -> None:
        if not self._can_act(event.seat):
            return
        try:
            events = self.engine.apply_play(event.seat, event.cards)
        except GameError as exc:
            LOGGER.warning(
                "Rejected play room=%s seat=%s cards=%s reason=%s",
                self.room_id,
                event.seat,
                event.cards,
                exc.code,
            )
            await self._send_error(event.seat, exc)
            return
        LOGGER.debug("Applied play room=%s seat=%s cards=%s", self.room_id, event.seat, event.cards)
        await self._after_mutation(events)

    async def _on_pass(self, event: PassRequest) -> None:
        if not self._can_act(event.seat):
            return
        try:
            events = self.engine.apply_pass(event.seat)
        except GameError as exc:
            LOGGER.warning("Rejected pass room=%s seat=%s reason=%s", self.room_id, event.seat, exc.code)
            await self._send_error(event.seat, exc)
            return
        LOGGER.debug("Applied pass room=%s seat=%s", self.room_id, event.seat)
        await self._after_mutation(events)

    def _can_act(self, seat_idx: int) -> bool:
        seat = self.engine.seats[seat_idx] if 0 <= seat_idx < len(self.engine.seats) else None
        if seat is None or seat.is_bot or seat.disconnected:
            LOGGER.warning("Dropping action from inactive seat room=%s seat=%s", self.room_id, seat_idx)
            return False
        return True

    async def _on_bot_turn(self, event: BotTurn) -> None:
        if event.version != self.engine.version or self.engine.next_actor() != event.seat:
            LOGGER.debug("Stale bot turn room=%s seat=%s", self.room_id, event.seat)
            return
        ctx = self.engine.match
        assert ctx
        try:
            events = apply_bot_turn(self.engine, event.seat, self._rng)
        except GameError:
            LOGGER.exception("Bot seat %s produced an illegal move in room %s", event.seat, self.room_id)
            if ctx.standing is None:
                raise
            events = self.engine.apply_pass(event.seat)
        await self._after_mutation(events)

    async def _on_auto_pass(self, event: AutoPass) -> None:
        ctx = self.engine.match
        if not self.engine.in_progress() or ctx is None or ctx.trick_id != event.trick_id:
            return
        if ctx.standing is None or ctx.standing.seat != event.owner:
            return
        LOGGER.info("Auto-passing trick to seat %s in room %s", event.owner, self.room_id)
        await self._after_mutation(self.engine.auto_pass_others(event.owner))

    async def _on_next_match(self, event: NextMatch) -> None:
        if self.engine.match_counter != event.after_match or self.engine.game_over:
            return
        ctx = self.engine.start_match()
        LOGGER.info(
            "Room %s match %s started; opener=%s",
            self.room_id,
            ctx.match_number,
            ctx.opener,
        )
        await self._broadcast(
            "match_start",
            {
                "match_id": ctx.match_id,
                "match_number": ctx.match_number,
                "opener": ctx.opener,
                "first_lead_constraint": ctx.first_lead_constraint,
                "scores": list(self.engine.scores),
            },
        )
        await self._after_mutation(self.engine.consume_pre_events())

    async def _after_mutation(self, events: List[Dict[str, object]]) -> None:
        # Whatever was scheduled against the previous state no longer applies.
        # Passes leave a running auto-pass countdown alone.
        self._cancel_timer("bot")
        if any(event["ev"] != "PASS" for event in events):
            self._cancel_timer("auto_pass")

        await self._broadcast_events(events)
        await self._publish_state()

        for event in events:
            if event["ev"] == "MATCH_END":
                LOGGER.info("Room %s match %s won by seat %s; scores=%s", self.room_id, event["match_number"], event["winner"], event["scores"])
                await self._broadcast("match_end", _strip(event))
            elif event["ev"] == "GAME_OVER":
                LOGGER.info("Room %s game over; champion=%s", self.room_id, event["champion"])
                await self._broadcast("game_over", _strip(event))

        if self.engine.game_over:
            await self._teardown("Game over")
            return
        if self.engine.is_match_over():
            self._schedule("next_match", self.config.next_match_delay_ms, NextMatch(self.engine.match_counter))
            return

        top_play = next((event for event in events if event["ev"] == "TOP_PLAY"), None)
        if top_play and self.config.auto_pass_ms > 0:
            self._schedule("auto_pass", self.config.auto_pass_ms, AutoPass(int(top_play["seat"]), self.engine.match.trick_id))
            await self._broadcast("auto_pass_countdown", {"seat": top_play["seat"], "ms": self.config.auto_pass_ms})

        await self._prompt_next_actor()

    async def _prompt_next_actor(self) -> None:
        actor = self.engine.next_actor()
        if actor is None:
            return
        seat = self.engine.seats[actor]
        assert seat
        if seat.lapsed:
            await self._abort(f"{seat.name} disconnected and did not reconnect in time")
        elif seat.is_bot:
            self._schedule("bot", self.config.bot_think_ms, BotTurn(actor, self.engine.version))
        elif seat.disconnected:
            LOGGER.info("Seat %s is disconnected; waiting for reconnection", actor)

    # Fault tolerance ---------------------------------------------------

    async def _on_disconnect(self, event: SeatDisconnected) -> None:
        seat = self.engine.seats[event.seat]
        if seat is None or seat.is_bot or seat.disconnected:
            return
        if event.transport is not None and self.transports.get(event.seat) is not event.transport:
            return
        self.transports.pop(event.seat, None)
        seat.connected = False
        seat.disconnected = True
        seat.disconnect_epoch += 1
        seat.disconnect_deadline = self._clock() + self.config.grace_period_ms / 1000
        self._schedule(f"grace:{event.seat}", self.config.grace_period_ms, GraceExpired(event.seat, seat.disconnect_epoch))
        LOGGER.info(
            "Seat %s (%s) disconnected from room %s; grace %sms",
            event.seat,
            seat.name,
            self.room_id,
            self.config.grace_period_ms,
        )
        await self._broadcast(
            "event",
            {"ev": "SEAT_DISCONNECTED", "seat": event.seat, "grace_ms": self.config.grace_period_ms},
        )
        await self._publish_state()

    async def _on_grace_expired(self, event: GraceExpired) -> None:
        seat = self.engine.seats[event.seat]
        if seat is None or not seat.disconnected or seat.disconnect_epoch != event.epoch or seat.lapsed:
            return
        await self._lapse(seat)

    async def _lapse(self, seat: PlayerSeat) -> None:
        seat.lapsed = True
        self._cancel_timer(f"grace:{seat.seat}")
        LOGGER.info("Seat %s grace period expired in room %s", seat.seat, self.room_id)
        if self.engine.next_actor() == seat.seat:
            await self._abort(f"{seat.name} disconnected and did not reconnect in time")
        else:
            await self._publish_state()

    async def _on_reconnect(self, event: SeatReconnected) -> None:
        try:
            seat = self._check_reconnect(event)
            if self._clock() > (seat.disconnect_deadline or 0.0):
                await self._lapse(seat)
                raise SessionFault("GRACE_EXPIRED", "Reconnection window has closed")
        except SessionFault as exc:
            LOGGER.warning("Rejected reconnect room=%s seat=%s reason=%s", self.room_id, event.seat, exc.code)
            await _send_to(event.transport, "error", {"code": exc.code, "msg": exc.msg})
            _resolve(event, False)
            return

        self._cancel_timer(f"grace:{event.seat}")
        seat.disconnected = False
        seat.connected = True
        seat.disconnect_deadline = None
        self.transports[event.seat] = event.transport
        LOGGER.info("Seat %s (%s) reconnected to room %s", event.seat, seat.name, self.room_id)
        _resolve(event, True)
        await self._send(event.seat, "reconnected", {"room_id": self.room_id, "seat": event.seat})
        await self._broadcast("event", {"ev": "SEAT_RECONNECTED", "seat": event.seat})
        await self._publish_state()

    def _check_reconnect(self, event: SeatReconnected) -> PlayerSeat:
        if not 0 <= event.seat < len(self.engine.seats):
            raise SessionFault("UNKNOWN_SEAT", "No such seat")
        seat = self.engine.seats[event.seat]
        if seat is None or seat.is_bot or seat.name_key != GameEngine.normalize_name(event.identity):
            raise SessionFault("UNKNOWN_SEAT", "Identity does not match this seat")
        if self.engine.game_over or self.engine.aborted_reason:
            raise SessionFault("ROOM_FINISHED", "Game has ended")
        if not seat.disconnected:
            raise SessionFault("SEAT_OCCUPIED", "Player slot already occupied")
        if seat.lapsed:
            raise SessionFault("GRACE_EXPIRED", "Reconnection window has closed")
        return seat

    async def _abort(self, reason: str) -> None:
        self.engine.abort_match(reason)
        LOGGER.info("Room %s aborted: %s", self.room_id, reason)
        await self._broadcast("match_aborted", {"reason": reason})
        await self._teardown(reason)

    async def _teardown(self, reason: str) -> None:
        self.closed = True
        for name in list(self.timers):
            self._cancel_timer(name)
        while not self.queue.empty():
            _resolve(self.queue.get_nowait(), False)
        transports = list(self.transports.values())
        self.transports.clear()
        for transport in transports:
            try:
                await transport.close(code=1000, reason=reason[:120])
            except websockets.ConnectionClosed:
                pass
        if self._on_close:
            await self._on_close(self)

    # Timers ------------------------------------------------------------

    def _schedule(self, name: str, delay_ms: int, event: Any) -> None:
        self._cancel_timer(name)
        loop = asyncio.get_running_loop()
        scheduled = ScheduledEvent(event=event, due=self._clock() + delay_ms / 1000)
        scheduled.handle = loop.call_later(delay_ms / 1000, self.post, event)
        self.timers[name] = scheduled

    def _cancel_timer(self, name: str) -> None:
        scheduled = self.timers.pop(name, None)
        if scheduled:
            scheduled.cancel()

    # Outbound ----------------------------------------------------------

    async def _publish_state(self) -> None:
        for seat_idx in list(self.transports):
            await self._send(seat_idx, "state", self.engine.snapshot_payload(seat_idx))

    async def _broadcast_events(self, events: List[Dict[str, object]]) -> None:
        for event in events:
            await self._broadcast("event", event)

    async def _broadcast(self, msg_type: str, payload: Dict[str, object]) -> None:
        targets = list(self.transports.values())
        if not targets:
            return
        message = envelope(msg_type, payload)
        await asyncio.gather(*(transport.send(message) for transport in targets), return_exceptions=True)

    async def _send(self, seat_idx: int, msg_type: str, payload: Dict[str, object]) -> None:
        transport = self.transports.get(seat_idx)
        if transport is not None:
            await _send_to(transport, msg_type, payload)

    async def _send_error(self, seat_idx: int, exc: GameError) -> None:
        await self._send(seat_idx, "error", {"code": exc.code, "msg": exc.msg})


async def _send_to(transport: Transport, msg_type: str, payload: Dict[str, object]) -> None:
    try:
        await transport.send(envelope(msg_type, payload))
    except websockets.ConnectionClosed:
        pass


def _resolve(event: Any, accepted: bool) -> None:
    reply = getattr(event, "reply", None)
    if reply is not None and not reply.done():
        reply.set_result(accepted)


def _strip(event: Dict[str, object]) -> Dict[str, object]:
    return {key: value for key, value in event.items() if key != "ev"}
