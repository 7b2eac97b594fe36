from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from autoshengji.rules import RulesError
from autoshengji.rules.trick import normalize_policy
from autoshengji.utils import deep_merge

PACKAGE_DIR = Path(__file__).resolve().parent
PACKAGED_DICTIONARY = PACKAGE_DIR / "data" / "dict.zstd"
# Same blob the server embeds; a copy at PACKAGED_DICTIONARY wins.
UPSTREAM_DICTIONARY_URL = "https://raw.githubusercontent.com/rbtying/shengji/master/backend/dict.zstd"

DEFAULT_CFG: dict[str, Any] = {
    "url": "wss://shengji.battery.aeturnalus.com/api",
    "room": "80839240460fd944",
    "name": "autoshengji",
    "dictionary": None,
    "dictionary_max_size": 112_640,
    "decompress_ratio": 10,
    "trick_draw_policy": None,
    "seed": None,
    "farewell": "autoshengji is leaving: {reason}",
    "greeting": None,
    "dry_run": False,
    "record": None,
    "validate": True,
    "log_level": "INFO",
}


def default_dictionary() -> str:
    if PACKAGED_DICTIONARY.is_file():
        return str(PACKAGED_DICTIONARY)
    return UPSTREAM_DICTIONARY_URL


def load_config(path: str | None) -> dict[str, Any]:
    cfg = dict(DEFAULT_CFG)
    if not path:
        return cfg
    p = Path(path)
    if not p.exists():
        return cfg
    text = p.read_text(encoding="utf-8")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        payload = yaml.safe_load(text)
    if not isinstance(payload, dict):
        return cfg
    return deep_merge(cfg, payload)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


@dataclass
class AgentConfig:
    url: str
    room: str
    name: str
    dictionary: str
    dictionary_max_size: int = 112_640
    decompress_ratio: int = 10
    trick_draw_policy: str | None = None
    seed: int | None = None
    farewell: str | None = None
    greeting: str | None = None
    dry_run: bool = False
    record: str | None = None
    validate: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, cfg: dict[str, Any]) -> AgentConfig:
        merged = deep_merge(DEFAULT_CFG, cfg)
        room = str(merged.get("room") or "").strip()
        name = str(merged.get("name") or "").strip()
        if not room:
            raise ValueError("room must not be empty")
        if not name:
            raise ValueError("name must not be empty")
        ratio = int(10 if merged.get("decompress_ratio") is None else merged["decompress_ratio"])
        if ratio < 1:
            raise ValueError(f"decompress_ratio must be >= 1, got {ratio}")
        seed = merged.get("seed")
        policy = _optional_str(merged.get("trick_draw_policy"))
        if policy is not None:
            try:
                policy = normalize_policy(policy)
            except RulesError as exc:
                raise ValueError(str(exc)) from exc
        return cls(
            url=str(merged["url"]),
            room=room,
            name=name,
            dictionary=str(merged.get("dictionary") or default_dictionary()),
            dictionary_max_size=int(merged.get("dictionary_max_size") or 112_640),
            decompress_ratio=ratio,
            trick_draw_policy=policy,
            seed=None if seed is None else int(seed),
            farewell=_optional_str(merged.get("farewell")),
            greeting=_optional_str(merged.get("greeting")),
            dry_run=_as_bool(merged.get("dry_run")),
            record=_optional_str(merged.get("record")),
            validate=_as_bool(merged.get("validate")),
            log_level=str(merged.get("log_level") or "INFO"),
        )
