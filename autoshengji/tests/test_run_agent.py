from __future__ import annotations

if __package__ is None or __package__ == "":
    import sys
    from pathlib import Path

    sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

import json
import logging
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from autoshengji import wire
from autoshengji.client import Session, TransportError
from autoshengji.config import DEFAULT_CFG, AgentConfig, load_config
from autoshengji.controller import PhaseController
from autoshengji.run_agent import _parse_args, build_config, farewell, main, run
from shengji_fixtures import (
    FakeConnection,
    dictionary_data,
    draw_state,
    encoder,
    initialize_state,
    play_state,
    state_envelope,
)

QUIET = logging.getLogger("autoshengji.test.quiet")
QUIET.addHandler(logging.NullHandler())
QUIET.propagate = False


def _session(states: list, conn_cls=FakeConnection) -> Session:
    enc = encoder()
    conn = conn_cls([enc.encode(state_envelope(s)) for s in states])
    return Session(ws=conn, decoder=wire.FrameDecoder(dictionary_data()), room="room", name="autoshengji")


class ConfigTest(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def test_defaults_without_file(self) -> None:
        self.assertEqual(load_config(None), DEFAULT_CFG)
        self.assertEqual(load_config(str(self.root / "missing.yaml")), DEFAULT_CFG)

    def test_json_and_yaml(self) -> None:
        json_path = self.root / "agent.json"
        json_path.write_text(json.dumps({"room": "abc", "seed": 3}), encoding="utf-8")
        yaml_path = self.root / "agent.yaml"
        yaml_path.write_text("room: xyz\ndry_run: true\ntrick_draw_policy: NoFormatBasedDraw\n", encoding="utf-8")

        from_json = AgentConfig.from_dict(load_config(str(json_path)))
        self.assertEqual(from_json.room, "abc")
        self.assertEqual(from_json.seed, 3)
        self.assertEqual(from_json.name, "autoshengji")

        from_yaml = AgentConfig.from_dict(load_config(str(yaml_path)))
        self.assertEqual(from_yaml.room, "xyz")
        self.assertTrue(from_yaml.dry_run)
        self.assertEqual(from_yaml.trick_draw_policy, "NoFormatBasedDraw")

    def test_rejects_bad_values(self) -> None:
        for bad in ({"room": ""}, {"name": "  "}, {"decompress_ratio": 0}, {"trick_draw_policy": "Whatever"}):
            with self.subTest(bad=bad):
                with self.assertRaises(ValueError):
                    AgentConfig.from_dict(bad)

    def test_cli_overrides_file(self) -> None:
        path = self.root / "agent.yaml"
        path.write_text("room: fromfile\nname: fromfile\n", encoding="utf-8")
        cfg = build_config(_parse_args(["--config", str(path), "--name", "cli", "--dry-run", "--no-validate"]))
        self.assertEqual(cfg.room, "fromfile")
        self.assertEqual(cfg.name, "cli")
        self.assertTrue(cfg.dry_run)
        self.assertFalse(cfg.validate)


class RunTest(unittest.TestCase):
    def test_sends_controller_actions(self) -> None:
        session = _session([initialize_state(), draw_state(position=1)])
        with self.assertRaises(TransportError):
            run(session, PhaseController("autoshengji"), logger=QUIET)
        self.assertEqual(session.ws.sent_json, ["Ready", {"Action": "DrawCard"}])

    def test_dry_run_sends_nothing(self) -> None:
        session = _session([initialize_state(), draw_state(position=1)])
        with self.assertLogs("autoshengji.test.dry", level="INFO") as logs:
            with self.assertRaises(TransportError):
                run(session, PhaseController("autoshengji"), dry_run=True, logger=logging.getLogger("autoshengji.test.dry"))
        self.assertEqual(session.ws.sent, [])
        self.assertTrue(any("DrawCard" in line for line in logs.output))

    def test_farewell(self) -> None:
        session = _session([])
        farewell(session, "bye: {reason}", "boom", logger=QUIET)
        self.assertEqual(session.ws.sent_json, [{"Message": "bye: boom"}])
        farewell(session, None, "boom", logger=QUIET)
        self.assertEqual(len(session.ws.sent), 1)

        session.ws.close()
        farewell(session, "bye: {reason}", "boom", logger=QUIET)


class MainTest(unittest.TestCase):
    def test_invalid_configuration(self) -> None:
        with mock.patch("builtins.print"):
            self.assertEqual(main(["--room", " "]), 2)
            self.assertEqual(main(["--log-level", "chatty"]), 2)

    def test_unreadable_dictionary(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            missing = str(Path(tmp) / "nope.zstd")
            self.assertEqual(main(["--dictionary", missing, "--log-level", "CRITICAL"]), 2)

    def test_fatal_phase_error_says_goodbye(self) -> None:
        session = _session([initialize_state(), play_state(my_hand=["7S"], queue=[1])])
        with mock.patch("autoshengji.run_agent.connect", return_value=session):
            code = main(["--log-level", "CRITICAL", "--farewell", "leaving: {reason}"])
        self.assertEqual(code, 2)
        sent = session.ws.sent_json
        self.assertEqual(sent[0], "Ready")
        self.assertTrue(sent[-1]["Message"].startswith("leaving: unexpected Play state"))
        self.assertTrue(session.ws.closed)

    def test_lost_connection_skips_farewell(self) -> None:
        session = _session([initialize_state()])
        with mock.patch("autoshengji.run_agent.connect", return_value=session):
            code = main(["--log-level", "CRITICAL", "--greeting", "hi all"])
        self.assertEqual(code, 2)
        self.assertEqual(session.ws.sent_json, [{"Message": "hi all"}, "Ready"])

    def test_keyboard_interrupt(self) -> None:
        session = _session([])
        with mock.patch("autoshengji.run_agent.connect", return_value=session), mock.patch(
            "autoshengji.run_agent.run", side_effect=KeyboardInterrupt
        ):
            self.assertEqual(main(["--log-level", "CRITICAL"]), 130)
        self.assertEqual(session.ws.sent_json, [{"Message": "autoshengji is leaving: interrupted"}])


if __name__ == "__main__":
    unittest.main()
