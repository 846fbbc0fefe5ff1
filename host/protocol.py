from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Dict

PROTOCOL_VERSION = 1


def envelope(msg_type: str, payload: Dict[str, object]) -> str:
    # Header fields are written last; a payload key never overrides the message type.
    body: Dict[str, object] = dict(payload)
    body.update({"type": msg_type, "v": PROTOCOL_VERSION, "ts": datetime.now(timezone.utc).isoformat()})
    return json.dumps(body)


def decode(raw: str | bytes) -> Dict[str, object]:
    try:
        message = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return message if isinstance(message, dict) else {}
