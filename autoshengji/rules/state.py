from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from autoshengji.rules import NoBidsYetError, RulesError
from autoshengji.rules.cards import Card, Trump, card_counts
from autoshengji.rules.trick import NO_PROTECTIONS, Trick, normalize_policy

INITIALIZE = "Initialize"
DRAW = "Draw"
EXCHANGE = "Exchange"
PLAY = "Play"
PHASE_ORDER = {INITIALIZE: 0, DRAW: 1, EXCHANGE: 2, PLAY: 3}


@dataclass
class Player:
    id: int
    name: str


@dataclass
class Bid:
    player: int
    card: Card
    count: int


@dataclass
class GamePhase:
    name: str
    players: list[Player] = field(default_factory=list)
    landlord: int | None = None
    trick_draw_policy: str = NO_PROTECTIONS
    hands: dict[int, dict[Card, int]] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    def players_named(self, name: str) -> list[int]:
        return [p.id for p in self.players if p.name == name]

    def hand_of(self, player_id: int) -> dict[Card, int]:
        return dict(self.hands.get(player_id) or {})


@dataclass
class InitializePhase(GamePhase):
    pass


@dataclass
class DrawPhase(GamePhase):
    deck_size: int = 0
    position: int = 0
    bids: list[Bid] = field(default_factory=list)

    def next_player_to_draw(self) -> int:
        if self.deck_size > 0:
            if not 0 <= self.position < len(self.players):
                raise RulesError(f"draw position {self.position} outside roster of {len(self.players)}")
            return self.players[self.position].id
        if self.landlord is not None:
            return self.landlord
        if self.bids:
            return self.bids[-1].player
        raise NoBidsYetError("nobody has bid yet")


@dataclass
class ExchangePhase(GamePhase):
    exchanger: int | None = None
    kitty_size: int = 0


@dataclass
class PlayPhase(GamePhase):
    trump: Trump | None = None
    trick: Trick | None = None


def _players(propagated: dict[str, Any]) -> list[Player]:
    out = []
    for p in propagated.get("players") or []:
        if not isinstance(p, dict) or "id" not in p:
            raise RulesError(f"malformed player entry: {p!r}")
        out.append(Player(id=int(p["id"]), name=str(p.get("name") or "")))
    return out


def _hands(body: dict[str, Any]) -> dict[int, dict[Card, int]]:
    block = body.get("hands")
    if not isinstance(block, dict):
        return {}
    per_player = block.get("hands") if isinstance(block.get("hands"), dict) else {}
    return {int(pid): card_counts(cards) for pid, cards in per_player.items()}


def _trump(body: dict[str, Any]) -> Trump | None:
    for raw in (body.get("trump"), (body.get("trick") or {}).get("trump"), (body.get("hands") or {}).get("trump")):
        if isinstance(raw, dict) and raw:
            return Trump.from_json(raw)
    return None


def _optional_id(value: Any) -> int | None:
    return None if value is None else int(value)


def parse_game_state(raw: dict[str, Any]) -> GamePhase:
    if not isinstance(raw, dict) or len(raw) != 1:
        raise RulesError(f"malformed game state: {str(raw)[:200]}")
    name, body = next(iter(raw.items()))
    if name not in PHASE_ORDER:
        raise RulesError(f"unknown game phase: {name}")
    if not isinstance(body, dict):
        raise RulesError(f"{name} state body is not an object")

    propagated = body.get("propagated") if isinstance(body.get("propagated"), dict) else {}
    common: dict[str, Any] = {
        "name": name,
        "players": _players(propagated),
        "landlord": _optional_id(body.get("landlord", propagated.get("landlord"))),
        "trick_draw_policy": normalize_policy(propagated.get("trick_draw_policy")),
        "hands": _hands(body),
        "raw": body,
    }

    if name == INITIALIZE:
        return InitializePhase(**common)
    if name == DRAW:
        bids = [
            Bid(player=int(b["id"]), card=Card.parse(b["card"]), count=int(b["count"]))
            for b in body.get("bids") or []
        ]
        return DrawPhase(
            **common,
            deck_size=len(body.get("deck") or []),
            position=int(body.get("position") or 0),
            bids=bids,
        )
    if name == EXCHANGE:
        exchanger = body.get("exchanger")
        if exchanger is None:
            exchanger = common["landlord"]
        return ExchangePhase(**common, exchanger=_optional_id(exchanger), kitty_size=len(body.get("kitty") or []))

    trump = _trump(body)
    trick_raw = body.get("trick")
    if not isinstance(trick_raw, dict):
        raise RulesError("Play state without a trick")
    trick = Trick.from_json(trick_raw, trump)
    return PlayPhase(**common, trump=trick.trump, trick=trick)
