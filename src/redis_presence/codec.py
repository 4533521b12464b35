"""Topic message envelope — JSON text on the wire.

Learn: publishers and subscribers may live in different processes, so the
payload format is a contract between them. Payloads are plain JSON with
one special case: publishing *nothing* sends the literal `false`, so a
receiver can tell "no payload" apart from an explicit `null`.
"""

import json
from typing import Any, Union


class _Missing:
    """Marker for an omitted payload argument."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def encode_payload(data: Any = MISSING) -> str:
    """Serialize a payload for PUBLISH. Omitted payloads become `false`."""
    if data is MISSING:
        data = False
    return json.dumps(data)


def decode_payload(raw: Union[str, bytes]) -> Any:
    """Deserialize a received payload.

    Raises ValueError (json.JSONDecodeError or UnicodeDecodeError) on
    malformed input.
    """
    return json.loads(raw)
