from __future__ import annotations


class GameError(ValueError):
    """A rejected action. Room state is left exactly as it was."""

    def __init__(self, code: str, msg: str) -> None:
        super().__init__(msg)
        self.code = code
        self.msg = msg


class IllegalMove(GameError):
    pass


class OutOfTurn(GameError):
    def __init__(self, msg: str = "Not your turn") -> None:
        super().__init__("OUT_OF_TURN", msg)


class InvalidPassContext(GameError):
    def __init__(self, msg: str = "Cannot pass on a fresh trick") -> None:
        super().__init__("INVALID_PASS", msg)


class SessionFault(GameError):
    pass
