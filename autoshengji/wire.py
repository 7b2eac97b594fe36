from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable

import zstandard

STATE = "state"
CHAT = "chat"
ERROR = "error"
OTHER = "other"

DEFAULT_DECOMPRESS_RATIO = 10


class ProtocolError(RuntimeError):
    pass


@dataclass
class Envelope:
    kind: str
    tag: str
    body: Any = None

    @property
    def state(self) -> dict[str, Any]:
        if self.kind != STATE:
            raise ProtocolError(f"{self.tag} envelope carries no game state")
        return self.body["state"]

    @property
    def details(self) -> str:
        if self.body is None:
            return self.tag.lower()
        if isinstance(self.body, str):
            return self.body
        return json.dumps(self.body, ensure_ascii=False)

    @property
    def sender(self) -> str:
        if isinstance(self.body, dict):
            return str(self.body.get("from") or "")
        return ""

    @property
    def text(self) -> str:
        if isinstance(self.body, dict):
            return str(self.body.get("message") or "")
        return ""


def classify(payload: Any) -> Envelope:
    if isinstance(payload, str):
        tag, body = payload, None
    elif isinstance(payload, dict) and len(payload) == 1:
        tag, body = next(iter(payload.items()))
    else:
        raise ProtocolError(f"malformed envelope: {str(payload)[:200]}")

    if tag == "State":
        if not isinstance(body, dict) or not isinstance(body.get("state"), dict):
            raise ProtocolError("State envelope without a state object")
        return Envelope(kind=STATE, tag=tag, body=body)
    if tag == "Message":
        return Envelope(kind=CHAT, tag=tag, body=body)
    if tag in {"Error", "Kicked"}:
        return Envelope(kind=ERROR, tag=tag, body=body)
    return Envelope(kind=OTHER, tag=tag, body=body)


class FrameDecoder:
    """Decodes binary frames compressed against the shared dictionary."""

    def __init__(self, dict_data: zstandard.ZstdCompressionDict, ratio: int = DEFAULT_DECOMPRESS_RATIO):
        if ratio < 1:
            raise ValueError(f"ratio must be >= 1, got {ratio}")
        self.ratio = ratio
        self._dctx = zstandard.ZstdDecompressor(dict_data=dict_data)

    def decompress(self, frame: bytes) -> bytes:
        # Frames written without a content size need a bounded output buffer.
        limit = max(1, len(frame)) * self.ratio
        try:
            return self._dctx.decompress(frame, max_output_size=limit)
        except zstandard.ZstdError as exc:
            raise ProtocolError(f"failed to decompress {len(frame)}-byte frame: {exc}") from exc

    def decode_payload(self, frame: Any) -> Any:
        if not isinstance(frame, (bytes, bytearray)):
            raise ProtocolError(f"unexpected {type(frame).__name__} frame, expected binary")
        raw = self.decompress(bytes(frame))
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ProtocolError(f"frame is not a JSON document: {exc}") from exc

    def decode(self, frame: Any) -> Envelope:
        return classify(self.decode_payload(frame))


class FrameEncoder:
    def __init__(self, dict_data: zstandard.ZstdCompressionDict, level: int = 3, write_content_size: bool = True):
        self._cctx = zstandard.ZstdCompressor(
            level=level,
            dict_data=dict_data,
            write_content_size=write_content_size,
        )

    def encode(self, payload: Any) -> bytes:
        raw = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        return self._cctx.compress(raw)


def dumps(message: Any) -> str:
    return json.dumps(message, ensure_ascii=False, separators=(",", ":"))


def join_room(room_name: str, name: str) -> dict[str, str]:
    return {"room_name": room_name, "name": name}


def ready() -> str:
    return "Ready"


def chat(text: str) -> dict[str, str]:
    return {"Message": str(text)}


def action(body: Any) -> dict[str, Any]:
    return {"Action": body}


def draw_card() -> dict[str, Any]:
    return action("DrawCard")


def play_cards(cards: Iterable[Any]) -> dict[str, Any]:
    return action({"PlayCards": [str(c) for c in cards]})


def pick_up_kitty() -> dict[str, Any]:
    return action("PickUpKitty")


def bid(card: Any, count: int) -> dict[str, Any]:
    return action({"Bid": [str(card), int(count)]})


def describe(message: Any) -> str:
    if isinstance(message, str):
        return message
    if isinstance(message, dict) and len(message) == 1:
        tag, body = next(iter(message.items()))
        if tag == "Action":
            if isinstance(body, str):
                return body
            inner_tag, inner = next(iter(body.items()))
            if isinstance(inner, list):
                return f"{inner_tag}({' '.join(str(x) for x in inner)})"
            return f"{inner_tag}({inner})"
        return tag
    return dumps(message)
