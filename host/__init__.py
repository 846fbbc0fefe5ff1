"""Room host package: wraps the Big Two engine with timers and networking."""

from .room import RoomActor
from .server import HostServer

__all__ = ["HostServer", "RoomActor"]
