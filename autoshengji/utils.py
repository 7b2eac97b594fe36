import json
import logging
import random
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, TextIO

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_TIME_FORMAT = "%H:%M:%S"


def parse_log_level(raw: str | int | None) -> int:
    if isinstance(raw, int):
        return raw
    text = str(raw or "INFO").strip().upper()
    level = logging.getLevelName(text)
    if not isinstance(level, int):
        raise ValueError(f"unknown log level: {raw}")
    return level


def setup_logger(
    name: str = "autoshengji",
    level: str | int | None = logging.INFO,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Logger with one pipe-separated handler; repeat calls only change the level."""
    logger = logging.getLogger(name)
    logger.setLevel(parse_log_level(level))
    if not logger.handlers:
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_TIME_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False
    return logger


def timestamp() -> str:
    return datetime.now().isoformat(timespec="seconds")


def make_rng(seed: int | None) -> random.Random:
    if seed is None:
        return random.Random()
    return random.Random(int(seed))


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, val in override.items():
        if isinstance(val, dict) and isinstance(out.get(key), dict):
            out[key] = deep_merge(out[key], val)
        else:
            out[key] = val
    return out


def write_jsonl(path: Path, row: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(row, ensure_ascii=False) + "\n")
