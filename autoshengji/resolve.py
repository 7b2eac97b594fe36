from __future__ import annotations

import random

from autoshengji.rules import RulesError
from autoshengji.rules.cards import Card, Trump, expand, subtract
from autoshengji.rules.trick import NO_PROTECTIONS, TrickFormat, check_play, decompositions, suited_cards


def find_matching(
    suited: dict[Card, int],
    fmt: TrickFormat,
    policy: str = NO_PROTECTIONS,
) -> list[Card] | None:
    """First assignment of ``suited`` that satisfies a decomposition of ``fmt``."""
    for shapes in decompositions(fmt, policy):
        for assignment in check_play(suited, shapes, fmt.trump, policy):
            return [card for unit in assignment for card in unit]
    return None


def resolve_play(
    hand: dict[Card, int],
    fmt: TrickFormat | None,
    rng: random.Random,
    policy: str = NO_PROTECTIONS,
    trump: Trump | None = None,
) -> list[Card]:
    cards = expand(hand)
    if not cards:
        raise RulesError("cannot play from an empty hand")
    if fmt is None:
        # Any single card is a legal lead.
        order = trump.sort(cards) if trump is not None else cards
        return [rng.choice(order)]

    required = fmt.size
    if required > len(cards):
        raise RulesError(f"trick needs {required} cards but the hand holds {len(cards)}")

    suited, other = suited_cards(hand, fmt.suit, fmt.trump)
    suited_list = fmt.trump.sort(expand(suited))
    matched = find_matching(suited, fmt, policy)

    if matched is None or len(suited_list) <= required:
        play = suited_list
    else:
        play = list(matched)
        if len(play) < required:
            remaining = fmt.trump.sort(expand(subtract(suited, play)))
            play += rng.sample(remaining, required - len(play))

    if len(play) < required:
        filler = fmt.trump.sort(expand(other))
        play += rng.sample(filler, required - len(play))
    return play
