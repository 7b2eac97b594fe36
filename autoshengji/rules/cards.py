from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable

from autoshengji.rules import RulesError

SPADES = "Spades"
HEARTS = "Hearts"
DIAMONDS = "Diamonds"
CLUBS = "Clubs"
SUITS = (CLUBS, DIAMONDS, SPADES, HEARTS)
TRUMP = "Trump"

NUMBERS = ("2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A")
SMALL_JOKER = "small"
BIG_JOKER = "big"

SMALL_JOKER_CHAR = "\U0001F0DF"
BIG_JOKER_CHAR = "\U0001F0CF"
UNKNOWN_CHAR = "\U0001F0A0"

_SUIT_BASE = {SPADES: 0x1F0A0, HEARTS: 0x1F0B0, DIAMONDS: 0x1F0C0, CLUBS: 0x1F0D0}
# Unicode puts the knight at offset 12, which the deck does not use.
_NUMBER_OFFSET = {
    "A": 1, "2": 2, "3": 3, "4": 4, "5": 5, "6": 6, "7": 7,
    "8": 8, "9": 9, "10": 10, "J": 11, "Q": 13, "K": 14,
}
_OFFSET_NUMBER = {v: k for k, v in _NUMBER_OFFSET.items()}
_BASE_SUIT = {v: k for k, v in _SUIT_BASE.items()}

SUIT_ALIASES = {
    "spades": SPADES, "spade": SPADES, "s": SPADES, "♠": SPADES, "♤": SPADES,
    "hearts": HEARTS, "heart": HEARTS, "h": HEARTS, "♥": HEARTS, "♡": HEARTS,
    "diamonds": DIAMONDS, "diamond": DIAMONDS, "d": DIAMONDS, "♦": DIAMONDS, "♢": DIAMONDS,
    "clubs": CLUBS, "club": CLUBS, "c": CLUBS, "♣": CLUBS, "♧": CLUBS,
    "trump": TRUMP,
}
_SUIT_SYMBOL = {SPADES: "♠", HEARTS: "♥", DIAMONDS: "♦", CLUBS: "♣"}


def normalize_suit(raw: Any) -> str:
    key = str(raw or "").strip()
    suit = SUIT_ALIASES.get(key.lower()) or SUIT_ALIASES.get(key)
    if suit is None:
        raise RulesError(f"unknown suit: {raw!r}")
    return suit


def normalize_number(raw: Any) -> str:
    text = str(raw or "").strip().upper()
    if text == "T":
        text = "10"
    if text not in NUMBERS:
        raise RulesError(f"unknown card number: {raw!r}")
    return text


@dataclass(frozen=True)
class Card:
    suit: str | None = None
    number: str | None = None
    joker: str | None = None

    @property
    def is_joker(self) -> bool:
        return self.joker is not None

    @property
    def char(self) -> str:
        if self.joker == SMALL_JOKER:
            return SMALL_JOKER_CHAR
        if self.joker == BIG_JOKER:
            return BIG_JOKER_CHAR
        if self.suit is None or self.number is None:
            return UNKNOWN_CHAR
        return chr(_SUIT_BASE[self.suit] + _NUMBER_OFFSET[self.number])

    @property
    def label(self) -> str:
        if self.joker is not None:
            return f"{self.joker.upper()}_JOKER"
        if self.suit is None:
            return "??"
        return f"{self.number}{_SUIT_SYMBOL[self.suit]}"

    def __str__(self) -> str:
        return self.char

    def __repr__(self) -> str:
        return f"Card({self.label})"

    @classmethod
    def from_char(cls, ch: str) -> Card:
        if ch == SMALL_JOKER_CHAR:
            return cls(joker=SMALL_JOKER)
        if ch == BIG_JOKER_CHAR:
            return cls(joker=BIG_JOKER)
        if ch == UNKNOWN_CHAR:
            return UNKNOWN
        if len(ch) != 1:
            raise RulesError(f"card must be a single character, got {ch!r}")
        code = ord(ch)
        base = code & ~0xF
        suit = _BASE_SUIT.get(base)
        number = _OFFSET_NUMBER.get(code - base)
        if suit is None or number is None:
            raise RulesError(f"not a playing card: {ch!r} (U+{code:X})")
        return cls(suit=suit, number=number)

    @classmethod
    def parse(cls, raw: Any) -> Card:
        if isinstance(raw, Card):
            return raw
        if isinstance(raw, dict) and "card" in raw:
            return cls.parse(raw["card"])
        if isinstance(raw, str):
            return cls.from_char(raw)
        raise RulesError(f"cannot parse card from {raw!r}")


UNKNOWN = Card()


def card_counts(raw: Any) -> dict[Card, int]:
    """Parse a serialized hand (``{card: count}`` or a card list) into counts."""
    counts: Counter[Card] = Counter()
    if isinstance(raw, dict):
        for key, n in raw.items():
            if int(n) < 0:
                raise RulesError(f"negative count {n} for card {key!r}")
            counts[Card.parse(key)] += int(n)
    elif isinstance(raw, list):
        for item in raw:
            counts[Card.parse(item)] += 1
    elif raw is not None:
        raise RulesError(f"cannot parse hand from {type(raw).__name__}")
    return {card: n for card, n in counts.items() if n > 0}


def expand(counts: dict[Card, int]) -> list[Card]:
    out: list[Card] = []
    for card, n in counts.items():
        out.extend([card] * n)
    return out


def subtract(counts: dict[Card, int], cards: Iterable[Card]) -> dict[Card, int]:
    remaining = Counter(counts)
    for card in cards:
        if remaining[card] <= 0:
            raise RulesError(f"{card.label} is not available")
        remaining[card] -= 1
    return {card: n for card, n in remaining.items() if n > 0}


@dataclass(frozen=True)
class Trump:
    number: str | None
    suit: str | None = None

    @property
    def is_no_trump(self) -> bool:
        return self.suit is None

    @classmethod
    def from_json(cls, raw: Any) -> Trump:
        if isinstance(raw, Trump):
            return raw
        if not isinstance(raw, dict) or len(raw) != 1:
            raise RulesError(f"malformed trump: {raw!r}")
        tag, body = next(iter(raw.items()))
        if not isinstance(body, dict):
            raise RulesError(f"malformed trump body: {raw!r}")
        if tag == "Standard":
            return cls(number=normalize_number(body.get("number")), suit=normalize_suit(body.get("suit")))
        if tag == "NoTrump":
            raw_number = body.get("number")
            return cls(number=None if raw_number is None else normalize_number(raw_number))
        raise RulesError(f"unknown trump variant: {tag}")

    def is_trump(self, card: Card) -> bool:
        if card.is_joker:
            return True
        if self.number is None:
            return False
        return card.number == self.number or (self.suit is not None and card.suit == self.suit)

    def effective_suit(self, card: Card) -> str:
        if card.suit is None and not card.is_joker:
            raise RulesError("an unknown card has no suit")
        return TRUMP if self.is_trump(card) else str(card.suit)

    def rank(self, card: Card) -> int:
        """Position of ``card`` within its effective suit.

        Adjacent positions form tractors. Off-suit trump-number cards share
        one position, so they are never adjacent to each other.
        """
        plain = [n for n in NUMBERS if n != self.number]
        top = len(plain)
        if self.number is None:
            offsets = {SMALL_JOKER: top, BIG_JOKER: top + 1}
        elif self.suit is None:
            offsets = {"number": top, SMALL_JOKER: top + 1, BIG_JOKER: top + 2}
        else:
            offsets = {"number": top, "on_suit": top + 1, SMALL_JOKER: top + 2, BIG_JOKER: top + 3}
        if card.is_joker:
            return offsets[str(card.joker)]
        if self.number is not None and card.number == self.number:
            if self.suit is not None and card.suit == self.suit:
                return offsets["on_suit"]
            return offsets["number"]
        return plain.index(str(card.number))

    def sort_key(self, card: Card) -> tuple[int, int, int]:
        suit_group = len(SUITS) if self.is_trump(card) else SUITS.index(str(card.suit))
        suit_index = SUITS.index(card.suit) if card.suit in SUITS else len(SUITS)
        return suit_group, self.rank(card), suit_index

    def sort(self, cards: Iterable[Card]) -> list[Card]:
        return sorted(cards, key=self.sort_key)

    def adjacent(self, lower: Card, higher: Card) -> bool:
        if self.effective_suit(lower) != self.effective_suit(higher):
            return False
        return self.rank(higher) == self.rank(lower) + 1
