import argparse
import asyncio
import logging

from core.models import RoomConfig

from .server import HostServer


def main() -> None:
    # CLI doubles as documentation for the room timing knobs.
    parser = argparse.ArgumentParser(description="Big Two room host")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8765)
    parser.add_argument("--bots", type=int, default=0, help="House bots seated in every room (0-3)")
    parser.add_argument("--score-limit", type=int, default=100)
    parser.add_argument("--bot-think", type=int, default=1_500, help="Bot think time in milliseconds")
    parser.add_argument("--next-match-delay", type=int, default=1_200, help="Pause between matches in milliseconds")
    parser.add_argument("--grace-period", type=int, default=60_000, help="Reconnection window in milliseconds")
    parser.add_argument(
        "--auto-pass",
        type=int,
        default=10_000,
        help="Countdown before an unbeatable play wins the trick, in milliseconds (0 disables)",
    )
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper())

    config = RoomConfig(
        score_limit=args.score_limit,
        bots_per_room=args.bots,
        bot_think_ms=args.bot_think,
        next_match_delay_ms=args.next_match_delay,
        grace_period_ms=args.grace_period,
        auto_pass_ms=args.auto_pass,
    )

    server = HostServer(config)
    asyncio.run(server.start(host=args.host, port=args.port))


if __name__ == "__main__":
    main()
