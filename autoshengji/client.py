from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import connect as ws_connect

from autoshengji import wire
from autoshengji.dictionary import DICTIONARY_MAX_SIZE, load_dictionary
from autoshengji.rules.state import GamePhase, parse_game_state
from autoshengji.utils import timestamp, write_jsonl
from autoshengji.validate import validate_game_message, validate_join, validate_user_message


class TransportError(RuntimeError):
    pass


class ServerError(RuntimeError):
    def __init__(self, details: str):
        super().__init__(f"server reported an error: {details}")
        self.details = details


@dataclass
class Session:
    ws: Any
    decoder: wire.FrameDecoder
    room: str
    name: str
    validate: bool = True
    record_path: Path | None = None
    logger: logging.Logger | None = None
    pending: list[wire.Envelope] = field(default_factory=list)

    def _log(self, level: int, message: str, *args) -> None:
        if self.logger is not None:
            self.logger.log(level, message, *args)

    def close(self) -> None:
        try:
            self.ws.close()
        except (OSError, WebSocketException) as exc:
            self._log(logging.WARNING, "Error while closing connection: %s", exc)


def _recv_frame(ws: Any) -> Any:
    try:
        return ws.recv()
    except (ConnectionClosed, OSError) as exc:
        raise TransportError(f"connection lost: {exc}") from exc


def _send_text(ws: Any, text: str) -> None:
    try:
        ws.send(text)
    except (ConnectionClosed, OSError) as exc:
        raise TransportError(f"send failed: {exc}") from exc


def _decode(session: Session, frame: Any) -> wire.Envelope:
    payload = session.decoder.decode_payload(frame)
    if session.validate:
        validate_game_message(payload)
    envelope = wire.classify(payload)
    if session.record_path is not None:
        write_jsonl(
            session.record_path,
            {"timestamp": timestamp(), "kind": envelope.kind, "tag": envelope.tag, "payload": payload},
        )
    return envelope


def connect(
    url: str,
    room: str,
    name: str,
    *,
    dictionary: str,
    dictionary_max_size: int = DICTIONARY_MAX_SIZE,
    decompress_ratio: int = wire.DEFAULT_DECOMPRESS_RATIO,
    validate: bool = True,
    record: str | None = None,
    logger: logging.Logger | None = None,
    opener: Callable[[str], Any] = ws_connect,
) -> Session:
    """Join ``room`` as ``name`` and wait for the first decodable envelope.

    The dictionary is prepared before the connection opens, so a bad
    dictionary source fails without touching the network.
    """
    join = wire.join_room(room, name)
    if validate:
        validate_join(join)
    dict_data = load_dictionary(dictionary, max_size=dictionary_max_size, logger=logger)
    decoder = wire.FrameDecoder(dict_data, ratio=decompress_ratio)

    if logger is not None:
        logger.info("Connecting to %s", url)
    try:
        ws = opener(url)
    except (OSError, WebSocketException) as exc:
        raise TransportError(f"failed to connect to {url}: {exc}") from exc

    session = Session(
        ws=ws,
        decoder=decoder,
        room=room,
        name=name,
        validate=validate,
        record_path=Path(record) if record else None,
        logger=logger,
    )
    try:
        _send_text(ws, wire.dumps(join))
        session._log(logging.INFO, "Joining room %s as %s", room, name)
        first = _decode(session, _recv_frame(ws))
    except (TransportError, wire.ProtocolError):
        session.close()
        raise
    if first.kind == wire.ERROR:
        session.close()
        raise ServerError(first.details)
    session.pending.append(first)
    session._log(logging.INFO, "Joined room %s (first envelope: %s)", room, first.tag)
    return session


def _send(session: Session, message: Any) -> None:
    if session.validate:
        validate_user_message(message)
    _send_text(session.ws, wire.dumps(message))


def send_action(session: Session, message: Any) -> None:
    session._log(logging.INFO, "Sending %s", wire.describe(message))
    _send(session, message)


def send_chat(session: Session, text: str) -> None:
    session._log(logging.DEBUG, "Chat: %s", text)
    _send(session, wire.chat(text))


def receive_envelope(session: Session) -> wire.Envelope:
    if session.pending:
        return session.pending.pop(0)
    return _decode(session, _recv_frame(session.ws))


def await_next_state(session: Session) -> GamePhase:
    while True:
        envelope = receive_envelope(session)
        if envelope.kind == wire.STATE:
            return parse_game_state(envelope.state)
        if envelope.kind == wire.ERROR:
            details = envelope.details
            session._log(logging.ERROR, "Server error: %s", details)
            try:
                send_chat(session, f"autoshengji hit a server error: {details}")
            except (TransportError, ValueError) as exc:
                session._log(logging.WARNING, "Could not report the error in chat: %s", exc)
            raise ServerError(details)
        if envelope.kind == wire.CHAT:
            session._log(logging.INFO, "<%s> %s", envelope.sender, envelope.text)
        else:
            session._log(logging.DEBUG, "Skipping %s envelope", envelope.tag)
