from __future__ import annotations

import logging
from typing import Any

from autoshengji import wire
from autoshengji.rules import NoBidsYetError, RulesError
from autoshengji.rules.state import (
    DRAW,
    EXCHANGE,
    INITIALIZE,
    PLAY,
    DrawPhase,
    ExchangePhase,
    GamePhase,
    PlayPhase,
)
from autoshengji.rules.trick import normalize_policy
from autoshengji.strategies import (
    BidStrategy,
    ExchangeStrategy,
    FollowFormatPlay,
    NeverBid,
    PassiveExchange,
    PlayStrategy,
)

# Snapshot phases each controller phase accepts.
TRANSITIONS = {
    INITIALIZE: (INITIALIZE, DRAW),
    DRAW: (DRAW, EXCHANGE),
    EXCHANGE: (EXCHANGE, PLAY),
    PLAY: (PLAY,),
}


class UnexpectedPhaseError(RuntimeError):
    def __init__(self, current: str, snapshot: GamePhase):
        super().__init__(f"unexpected {snapshot.name} state while in {current}")
        self.current = current
        self.snapshot = snapshot


class PhaseController:
    def __init__(
        self,
        name: str,
        *,
        bid_strategy: BidStrategy | None = None,
        exchange_strategy: ExchangeStrategy | None = None,
        play_strategy: PlayStrategy | None = None,
        trick_draw_policy: str | None = None,
        logger: logging.Logger | None = None,
    ):
        self.name = name
        self.bid_strategy = bid_strategy or NeverBid()
        self.exchange_strategy = exchange_strategy or PassiveExchange()
        self.play_strategy = play_strategy or FollowFormatPlay()
        self.trick_draw_policy = normalize_policy(trick_draw_policy) if trick_draw_policy else None
        self.logger = logger
        self.phase = INITIALIZE
        self.player_id: int | None = None
        self.ready_sent = False
        self.history: list[str] = [INITIALIZE]

    def _log(self, level: int, message: str, *args) -> None:
        if self.logger is not None:
            self.logger.log(level, message, *args)

    def handle(self, snapshot: GamePhase) -> list[Any]:
        """Advance on ``snapshot`` and return the messages to send for it."""
        if snapshot.name not in TRANSITIONS[self.phase]:
            raise UnexpectedPhaseError(self.phase, snapshot)
        if snapshot.name != self.phase:
            self._log(logging.INFO, "Phase %s -> %s", self.phase, snapshot.name)
            self.phase = snapshot.name
            self.history.append(snapshot.name)

        if isinstance(snapshot, DrawPhase):
            return self._on_draw(snapshot)
        if isinstance(snapshot, ExchangePhase):
            return self._on_exchange(snapshot)
        if isinstance(snapshot, PlayPhase):
            return self._on_play(snapshot)
        return self._on_initialize(snapshot)

    def _locate(self, snapshot: GamePhase) -> int | None:
        if self.player_id is not None:
            return self.player_id
        matches = snapshot.players_named(self.name)
        if not matches:
            return None
        if len(matches) > 1:
            self._log(logging.WARNING, "%d players are named %r, using id %d", len(matches), self.name, matches[0])
        self.player_id = matches[0]
        self._log(logging.INFO, "Seated as player %d", self.player_id)
        return self.player_id

    def _require_seat(self, snapshot: GamePhase) -> int:
        me = self._locate(snapshot)
        if me is None:
            raise RulesError(f"player {self.name!r} is not in the {snapshot.name} roster")
        return me

    def _on_initialize(self, snapshot: GamePhase) -> list[Any]:
        if self._locate(snapshot) is None:
            self._log(logging.DEBUG, "Waiting for %r to appear in the roster", self.name)
            return []
        if self.ready_sent:
            return []
        self.ready_sent = True
        return [wire.ready()]

    def _on_draw(self, snapshot: DrawPhase) -> list[Any]:
        me = self._require_seat(snapshot)
        out: list[Any] = []
        bid = self.bid_strategy.choose_bid(snapshot, me)
        if bid is not None:
            out.append(bid)
        try:
            drawer = snapshot.next_player_to_draw()
        except NoBidsYetError:
            self._log(logging.DEBUG, "Deck is empty and nobody has bid yet, waiting")
            return out
        if drawer != me:
            return out
        if snapshot.deck_size > 0:
            out.append(wire.draw_card())
        else:
            out.append(wire.pick_up_kitty())
        return out

    def _on_exchange(self, snapshot: ExchangePhase) -> list[Any]:
        me = self._require_seat(snapshot)
        if snapshot.exchanger != me:
            return []
        actions = self.exchange_strategy.exchange(snapshot, me)
        if not actions:
            self._log(logging.WARNING, "Holding the kitty but the exchange strategy made no move")
        return actions

    def _on_play(self, snapshot: PlayPhase) -> list[Any]:
        me = self._require_seat(snapshot)
        trick = snapshot.trick
        if trick is None or trick.next_player() != me:
            return []
        policy = self.trick_draw_policy or snapshot.trick_draw_policy
        hand = snapshot.hand_of(me)
        cards = self.play_strategy.choose_play(hand, trick.trick_format, policy, snapshot.trump)
        self._log(logging.DEBUG, "Resolved %s under %s", " ".join(c.label for c in cards), policy)
        return [wire.play_cards(cards)]
