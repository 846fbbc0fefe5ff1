#!/usr/bin/env python3
"""Play full Big Two games against the house bots over real websockets.

This script spins up the room host in-process and connects scripted human
clients. Each client plays the weakest legal move it can find, and with
--drop-after it hangs up mid-game and reconnects under the same name to
exercise the grace-period path.

Example:
    python scripts/room_sim.py --humans 1 --drop-after 5
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
from typing import Any, Dict, List, Optional

import websockets

from core.evaluator import can_beat, classify, iter_combinations, parse_cards
from core.models import RoomConfig
from host.server import HostServer

LOGGER = logging.getLogger("room_sim")


def choose_move(state: Dict[str, Any]) -> Optional[List[str]]:
    """Weakest legal play for the snapshot's seat, or None to pass."""
    hand = parse_cards(state["hand"])
    standing = state.get("standing")
    if not standing:
        if state.get("first_lead_constraint"):
            return ["3D"]
        return [hand[0].label]
    target = classify(parse_cards(standing["cards"]))
    for combo in iter_combinations(hand, standing["count"]):
        if can_beat(target, combo):
            return combo.labels
    return None


async def run_client(name: str, url: str, drop_after: Optional[int], done: asyncio.Event) -> None:
    moves = 0
    reconnecting = False
    while not done.is_set():
        async with websockets.connect(url) as ws:
            await ws.send(json.dumps({"type": "hello", "v": 1, "name": name}))
            if reconnecting:
                LOGGER.info("%s reconnecting", name)
            async for raw in ws:
                message = json.loads(raw)
                msg_type = message.get("type")
                if msg_type in ("game_over", "match_aborted"):
                    LOGGER.info("%s saw %s: %s", name, msg_type, message)
                    done.set()
                    return
                if msg_type == "error":
                    LOGGER.warning("%s error: %s", name, message.get("msg"))
                    continue
                if msg_type != "state" or message.get("turn") != message.get("you"):
                    continue
                if drop_after is not None and moves == drop_after and not reconnecting:
                    reconnecting = True
                    break
                move = choose_move(message)
                if move is None:
                    await ws.send(json.dumps({"type": "pass"}))
                else:
                    await ws.send(json.dumps({"type": "play", "cards": move}))
                moves += 1
            else:
                return
        await asyncio.sleep(0.5)


async def main_async(args: argparse.Namespace) -> None:
    config = RoomConfig(
        bots_per_room=4 - args.humans,
        bot_think_ms=args.bot_think,
        next_match_delay_ms=0,
        grace_period_ms=5_000,
        auto_pass_ms=0,
    )
    server = HostServer(config)
    server_task = asyncio.create_task(server.start(host="127.0.0.1", port=args.port))
    await asyncio.sleep(0.2)

    url = f"ws://127.0.0.1:{args.port}"
    done = asyncio.Event()
    clients = [
        asyncio.create_task(run_client(f"Human{idx}", url, args.drop_after if idx == 0 else None, done))
        for idx in range(args.humans)
    ]
    try:
        await asyncio.wait_for(done.wait(), timeout=args.timeout)
    finally:
        for task in clients:
            task.cancel()
        server_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await server_task


def main() -> None:
    parser = argparse.ArgumentParser(description="Big Two room simulation")
    parser.add_argument("--humans", type=int, default=1, choices=(1, 2, 3, 4))
    parser.add_argument("--port", type=int, default=8799)
    parser.add_argument("--bot-think", type=int, default=0)
    parser.add_argument("--drop-after", type=int, default=None, help="Disconnect the first client after N moves")
    parser.add_argument("--timeout", type=float, default=120.0)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    asyncio.run(main_async(args))


if __name__ == "__main__":
    main()
