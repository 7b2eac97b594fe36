from __future__ import annotations

if __package__ is None or __package__ == "":
    import sys
    from pathlib import Path

    sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

import json
import tempfile
import unittest
from pathlib import Path

from autoshengji import wire
from autoshengji.client import (
    ServerError,
    Session,
    TransportError,
    await_next_state,
    connect,
    receive_envelope,
    send_action,
    send_chat,
)
from autoshengji.rules.state import DRAW, INITIALIZE
from shengji_fixtures import (
    FakeConnection,
    dictionary_blob,
    dictionary_data,
    draw_state,
    encoder,
    initialize_state,
    state_envelope,
)


class DeadSendConnection(FakeConnection):
    def send(self, text: str) -> None:
        raise OSError("gone")


def _session(conn: FakeConnection) -> Session:
    return Session(ws=conn, decoder=wire.FrameDecoder(dictionary_data()), room="room", name="autoshengji")


class ConnectTest(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.dict_path = Path(self.tmp.name) / "dict.zstd"
        self.dict_path.write_bytes(dictionary_blob())

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def _connect(self, conn: FakeConnection, **kw) -> Session:
        return connect(
            "wss://example.invalid/api",
            "room",
            "autoshengji",
            dictionary=str(self.dict_path),
            opener=lambda url: conn,
            **kw,
        )

    def test_join_is_sent_and_first_envelope_kept(self) -> None:
        conn = FakeConnection()
        conn.push(state_envelope(initialize_state()))
        session = self._connect(conn)
        self.assertEqual(conn.sent_json, [{"room_name": "room", "name": "autoshengji"}])
        self.assertEqual(await_next_state(session).name, INITIALIZE)

    def test_error_acknowledgement_is_fatal(self) -> None:
        conn = FakeConnection()
        conn.push({"Error": "room is full"})
        with self.assertRaises(ServerError) as ctx:
            self._connect(conn)
        self.assertEqual(ctx.exception.details, "room is full")
        self.assertTrue(conn.closed)

    def test_malformed_acknowledgement_is_fatal(self) -> None:
        conn = FakeConnection(["not binary"])
        with self.assertRaises(wire.ProtocolError):
            self._connect(conn)
        self.assertTrue(conn.closed)

    def test_closed_before_acknowledgement(self) -> None:
        with self.assertRaises(TransportError):
            self._connect(FakeConnection())

    def test_open_failure_is_transport_error(self) -> None:
        def refuse(url: str):
            raise OSError("connection refused")

        with self.assertRaises(TransportError):
            connect("wss://example.invalid/api", "room", "me", dictionary=str(self.dict_path), opener=refuse)

    def test_records_envelopes(self) -> None:
        conn = FakeConnection()
        conn.push(state_envelope(initialize_state()))
        conn.push({"Message": {"from": "bob", "message": "hi"}})
        record = Path(self.tmp.name) / "session.jsonl"
        session = self._connect(conn, record=str(record))
        receive_envelope(session)
        receive_envelope(session)
        rows = [json.loads(x) for x in record.read_text(encoding="utf-8").splitlines()]
        self.assertEqual([r["kind"] for r in rows], [wire.STATE, wire.CHAT])
        self.assertEqual(rows[1]["payload"]["Message"]["from"], "bob")


class AwaitNextStateTest(unittest.TestCase):
    def test_skips_chat_and_other_envelopes(self) -> None:
        enc = encoder()
        conn = FakeConnection(
            [
                enc.encode({"Message": {"from": "bob", "message": "hi"}}),
                enc.encode("Beep"),
                enc.encode({"Header": {"messages": ["welcome"]}}),
                enc.encode(state_envelope(draw_state())),
            ]
        )
        self.assertEqual(await_next_state(_session(conn)).name, DRAW)

    def test_error_sends_chat_then_raises(self) -> None:
        conn = FakeConnection([encoder().encode({"Error": "not your turn"})])
        with self.assertRaises(ServerError):
            await_next_state(_session(conn))
        self.assertEqual(len(conn.sent_json), 1)
        self.assertIn("not your turn", conn.sent_json[0]["Message"])

    def test_error_chat_failure_still_raises_server_error(self) -> None:
        conn = DeadSendConnection([encoder().encode("Kicked")])
        with self.assertRaises(ServerError):
            await_next_state(_session(conn))

    def test_text_frame_is_fatal(self) -> None:
        with self.assertRaises(wire.ProtocolError):
            await_next_state(_session(FakeConnection(['{"State": {}}'])))

    def test_closed_connection(self) -> None:
        with self.assertRaises(TransportError):
            await_next_state(_session(FakeConnection()))

    def test_invalid_envelope_rejected_by_schema(self) -> None:
        conn = FakeConnection([encoder().encode({"State": {"state": {"Lobby": {}}}})])
        with self.assertRaises(wire.ProtocolError):
            await_next_state(_session(conn))


class SendTest(unittest.TestCase):
    def test_send_action_and_chat(self) -> None:
        conn = FakeConnection()
        session = _session(conn)
        send_action(session, wire.ready())
        send_action(session, wire.draw_card())
        send_chat(session, "gl")
        self.assertEqual(conn.sent_json, ["Ready", {"Action": "DrawCard"}, {"Message": "gl"}])

    def test_invalid_action_not_sent(self) -> None:
        conn = FakeConnection()
        with self.assertRaises(ValueError):
            send_action(_session(conn), {"Action": {"PlayCards": []}})
        self.assertEqual(conn.sent, [])

    def test_send_on_closed_connection(self) -> None:
        conn = FakeConnection()
        conn.close()
        with self.assertRaises(TransportError):
            send_action(_session(conn), wire.ready())


if __name__ == "__main__":
    unittest.main()
