from __future__ import annotations

if __package__ is None or __package__ == "":
    import sys
    from pathlib import Path

    sys.path.append(str(Path(__file__).resolve().parent.parent))

import argparse
import logging
from typing import Any

from autoshengji import wire
from autoshengji.client import ServerError, Session, TransportError, await_next_state, connect, send_action, send_chat
from autoshengji.config import AgentConfig, load_config
from autoshengji.controller import PhaseController, UnexpectedPhaseError
from autoshengji.rules import RulesError
from autoshengji.strategies import FollowFormatPlay
from autoshengji.utils import make_rng, parse_log_level, setup_logger

FATAL_ERRORS = (TransportError, wire.ProtocolError, ServerError, UnexpectedPhaseError, RulesError)


def run(session: Session, controller: PhaseController, *, dry_run: bool = False, logger: logging.Logger | None = None) -> None:
    while True:
        snapshot = await_next_state(session)
        for message in controller.handle(snapshot):
            if dry_run:
                if logger is not None:
                    logger.info("[dry-run] would send %s", wire.describe(message))
                continue
            send_action(session, message)


def farewell(session: Session, template: str | None, reason: str, logger: logging.Logger | None = None) -> None:
    if not template:
        return
    try:
        send_chat(session, template.format(reason=reason))
    except (TransportError, ValueError, KeyError) as exc:
        if logger is not None:
            logger.warning("Farewell not delivered: %s", exc)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Join a Shengji room and play as an autonomous agent.")
    parser.add_argument("--config", default="", help="JSON or YAML config file.")
    parser.add_argument("--url", default=None)
    parser.add_argument("--room", default=None)
    parser.add_argument("--name", default=None)
    parser.add_argument("--dictionary", default=None, help="Path or http(s) URL of the zstd-compressed dictionary.")
    parser.add_argument("--decompress-ratio", type=int, default=None)
    parser.add_argument(
        "--trick-draw-policy",
        default=None,
        help="Override the trick draw policy reported by the server.",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible play selection.")
    parser.add_argument("--greeting", default=None, help="Chat line to send after joining.")
    parser.add_argument("--farewell", default=None, help='Chat template sent on fatal errors; "{reason}" is filled in.')
    parser.add_argument("--record", default=None, help="Append every received envelope to this JSONL file.")
    parser.add_argument("--dry-run", action="store_true", default=None, help="Decide actions but do not send them.")
    parser.add_argument("--no-validate", dest="validate", action="store_false", default=None)
    parser.add_argument("--log-level", default=None)
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> AgentConfig:
    cfg = load_config(args.config or None)
    overrides: dict[str, Any] = {
        "url": args.url,
        "room": args.room,
        "name": args.name,
        "dictionary": args.dictionary,
        "decompress_ratio": args.decompress_ratio,
        "trick_draw_policy": args.trick_draw_policy,
        "seed": args.seed,
        "greeting": args.greeting,
        "farewell": args.farewell,
        "record": args.record,
        "dry_run": args.dry_run,
        "validate": args.validate,
        "log_level": args.log_level,
    }
    cfg.update({k: v for k, v in overrides.items() if v is not None})
    return AgentConfig.from_dict(cfg)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        config = build_config(args)
        level = parse_log_level(config.log_level)
    except ValueError as exc:
        print(f"invalid configuration: {exc}")
        return 2
    logger = setup_logger("autoshengji.agent", level)

    controller = PhaseController(
        config.name,
        play_strategy=FollowFormatPlay(make_rng(config.seed)),
        trick_draw_policy=config.trick_draw_policy,
        logger=logger,
    )

    try:
        session = connect(
            config.url,
            config.room,
            config.name,
            dictionary=config.dictionary,
            dictionary_max_size=config.dictionary_max_size,
            decompress_ratio=config.decompress_ratio,
            validate=config.validate,
            record=config.record,
            logger=logger,
        )
    except FATAL_ERRORS as exc:
        logger.error("Could not join room %s: %s", config.room, exc)
        return 2

    try:
        if config.greeting:
            send_chat(session, config.greeting)
        run(session, controller, dry_run=config.dry_run, logger=logger)
    except ServerError as exc:
        logger.error("%s", exc)
        return 2
    except FATAL_ERRORS as exc:
        logger.error("Fatal %s in phase %s: %s", type(exc).__name__, controller.phase, exc)
        if not isinstance(exc, TransportError):
            farewell(session, config.farewell, str(exc), logger=logger)
        return 2
    except KeyboardInterrupt:
        logger.info("Interrupted")
        farewell(session, config.farewell, "interrupted", logger=logger)
        return 130
    finally:
        session.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
