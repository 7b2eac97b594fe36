from __future__ import annotations

import random
from typing import Any, Protocol

from autoshengji.resolve import resolve_play
from autoshengji.rules.cards import Card, Trump
from autoshengji.rules.state import DrawPhase, ExchangePhase
from autoshengji.rules.trick import TrickFormat


class BidStrategy(Protocol):
    def choose_bid(self, phase: DrawPhase, me: int) -> dict[str, Any] | None:
        ...


class ExchangeStrategy(Protocol):
    def exchange(self, phase: ExchangePhase, me: int) -> list[dict[str, Any]]:
        ...


class PlayStrategy(Protocol):
    def choose_play(
        self,
        hand: dict[Card, int],
        fmt: TrickFormat | None,
        policy: str,
        trump: Trump | None,
    ) -> list[Card]:
        ...


class NeverBid:
    def choose_bid(self, phase: DrawPhase, me: int) -> dict[str, Any] | None:
        return None


class PassiveExchange:
    def exchange(self, phase: ExchangePhase, me: int) -> list[dict[str, Any]]:
        return []


class FollowFormatPlay:
    """Leads a random single and follows with the first legal decomposition."""

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def choose_play(
        self,
        hand: dict[Card, int],
        fmt: TrickFormat | None,
        policy: str,
        trump: Trump | None,
    ) -> list[Card]:
        return resolve_play(hand, fmt, self.rng, policy=policy, trump=trump)
