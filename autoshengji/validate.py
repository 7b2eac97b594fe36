import json
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema

from autoshengji.wire import ProtocolError

SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"
JOIN_SCHEMA = "join_room.json"
USER_MESSAGE_SCHEMA = "user_message.json"
GAME_MESSAGE_SCHEMA = "game_message.json"


@lru_cache(maxsize=None)
def _load(name: str) -> dict[str, Any]:
    return json.loads((SCHEMA_DIR / name).read_text(encoding="utf-8"))


def validate_join(data: Any) -> None:
    try:
        jsonschema.validate(data, _load(JOIN_SCHEMA))
    except jsonschema.ValidationError as exc:
        raise ValueError(f"invalid join request: {exc.message}") from exc


def validate_user_message(data: Any) -> None:
    try:
        jsonschema.validate(data, _load(USER_MESSAGE_SCHEMA))
    except jsonschema.ValidationError as exc:
        raise ValueError(f"invalid outgoing message: {exc.message}") from exc


def validate_game_message(data: Any) -> None:
    try:
        jsonschema.validate(data, _load(GAME_MESSAGE_SCHEMA))
    except jsonschema.ValidationError as exc:
        raise ProtocolError(f"invalid incoming envelope: {exc.message}") from exc
