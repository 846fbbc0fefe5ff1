from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import websockets

from core.game import GameEngine
from core.models import RoomConfig

from .protocol import decode, envelope
from .room import PassRequest, PlayRequest, RoomActor, SeatDisconnected, SeatReconnected

LOGGER = logging.getLogger("big2_host")

# HostServer glues RoomActors to WebSocket clients. Seating and routing live
# here; every game rule stays inside the room's engine.


@dataclass
class ClientSession:
    name: str
    websocket: Any
    room_id: Optional[str] = None
    seat: Optional[int] = None


class HostServer:
    def __init__(self, config: RoomConfig, *, clock: Callable[[], float] = time.monotonic) -> None:
        if config.bots_per_room >= config.seats:
            raise ValueError("At least one seat per room must be human")
        self.config = config
        self.rooms: Dict[str, RoomActor] = {}
        self.lobby: List[ClientSession] = []
        self.lock = asyncio.Lock()
        self.room_counter = 0
        self._clock = clock

    async def start(self, host: str = "0.0.0.0", port: int = 8765) -> None:
        # websockets.serve keeps accepting clients until the process stops.
        async with websockets.serve(self._handle_connection, host, port):
            LOGGER.info("Big Two host listening on %s:%s", host, port)
            await asyncio.Future()

    async def _handle_connection(self, websocket: Any) -> None:
        # First message must be "hello" so we know who we are talking to.
        hello = await self._read_message(websocket)
        if hello is None or hello.get("type") != "hello":
            await self._send_error(websocket, code="BAD_HELLO", msg="Expected hello")
            await websocket.close()
            return
        name_raw = hello.get("name")
        name = name_raw.strip() if isinstance(name_raw, str) else ""
        if not name:
            await self._send_error(websocket, code="BAD_SCHEMA", msg="name required")
            await websocket.close()
            return

        session = await self._claim_seat(websocket, name)
        if session is None:
            await websocket.close()
            return

        try:
            async for raw in websocket:
                await self._dispatch(session, decode(raw))
        except websockets.ConnectionClosed:
            pass
        finally:
            await self._release(session)

    async def _claim_seat(self, websocket: Any, name: str) -> Optional[ClientSession]:
        async with self.lock:
            room, seat_idx = self._find_disconnected_seat(name)
            taken = room is None and self._name_in_use(name)

        if room is not None and seat_idx is not None:
            reply = asyncio.get_running_loop().create_future()
            room.post(SeatReconnected(seat=seat_idx, identity=name, transport=websocket, reply=reply))
            if not await reply:
                return None
            return ClientSession(name=name, websocket=websocket, room_id=room.room_id, seat=seat_idx)

        if taken:
            await self._send_error(websocket, code="NAME_TAKEN", msg="Name already seated")
            return None

        session = ClientSession(name=name, websocket=websocket)
        async with self.lock:
            self.lobby.append(session)
            position = len(self.lobby)
        LOGGER.info("%s joined the lobby (%s waiting)", name, position)
        await self._send_json(websocket, "queued", {"position": position, "needed": self._humans_per_room()})
        await self._maybe_start_room()
        return session

    def _humans_per_room(self) -> int:
        return self.config.seats - self.config.bots_per_room

    def _find_disconnected_seat(self, name: str) -> Tuple[Optional[RoomActor], Optional[int]]:
        name_key = GameEngine.normalize_name(name)
        for room in self.rooms.values():
            if room.closed:
                continue
            for seat in room.engine.seats:
                if seat and not seat.is_bot and seat.name_key == name_key and seat.disconnected:
                    return room, seat.seat
        return None, None

    def _name_in_use(self, name: str) -> bool:
        name_key = GameEngine.normalize_name(name)
        if any(GameEngine.normalize_name(session.name) == name_key for session in self.lobby):
            return True
        return any(
            not room.closed and room.engine.find_seat_by_name(name_key) is not None
            for room in self.rooms.values()
        )

    async def _maybe_start_room(self) -> None:
        async with self.lock:
            needed = self._humans_per_room()
            if len(self.lobby) < needed:
                return
            players = self.lobby[:needed]
            del self.lobby[:needed]
            self.room_counter += 1
            room = RoomActor(f"R-{self.room_counter}", self.config, clock=self._clock, on_close=self._room_closed)
            for session in players:
                seat = room.seat_human(session.name, session.websocket)
                session.room_id = room.room_id
                session.seat = seat.seat
            for idx in range(self.config.bots_per_room):
                room.seat_bot(f"Bot {idx + 1}")
            self.rooms[room.room_id] = room
        LOGGER.info(
            "Room %s starting with %s",
            room.room_id,
            ", ".join(seat.name for seat in room.engine.seats if seat),
        )
        await room.start()

    async def _room_closed(self, room: RoomActor) -> None:
        async with self.lock:
            self.rooms.pop(room.room_id, None)
        LOGGER.info("Room %s closed", room.room_id)

    async def _dispatch(self, session: ClientSession, message: Dict[str, object]) -> None:
        room = self.rooms.get(session.room_id) if session.room_id else None
        if room is None or session.seat is None:
            await self._send_error(session.websocket, code="NOT_SEATED", msg="Waiting for a room")
            return

        msg_type = message.get("type")
        if msg_type == "play":
            cards = message.get("cards")
            if not isinstance(cards, list) or not all(isinstance(card, str) for card in cards):
                await self._send_error(session.websocket, code="BAD_SCHEMA", msg="cards must be a list of labels")
                return
            room.post(PlayRequest(seat=session.seat, cards=list(cards)))
        elif msg_type == "pass":
            room.post(PassRequest(seat=session.seat))
        else:
            await self._send_error(session.websocket, code="UNKNOWN_TYPE", msg="Unsupported message type")

    async def _release(self, session: ClientSession) -> None:
        async with self.lock:
            if session in self.lobby:
                self.lobby.remove(session)
                LOGGER.info("%s left the lobby", session.name)
                return
            room = self.rooms.get(session.room_id) if session.room_id else None
        if room is not None and session.seat is not None:
            room.post(SeatDisconnected(seat=session.seat, transport=session.websocket))

    async def _send_json(self, websocket: Any, msg_type: str, payload: Dict[str, object]) -> None:
        try:
            await websocket.send(envelope(msg_type, payload))
        except websockets.ConnectionClosed:
            pass

    async def _send_error(self, websocket: Any, code: str, msg: str) -> None:
        await self._send_json(websocket, "error", {"code": code, "msg": msg})

    async def _read_message(self, websocket: Any) -> Optional[Dict[str, object]]:
        try:
            raw = await asyncio.wait_for(websocket.recv(), timeout=5)
        except (asyncio.TimeoutError, websockets.ConnectionClosed):
            return None
        return decode(raw)
