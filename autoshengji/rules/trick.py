from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterator

from autoshengji.rules import RulesError
from autoshengji.rules.cards import Card, Trump, normalize_suit

NO_PROTECTIONS = "NoProtections"
LONGER_TUPLES_PROTECTED = "LongerTuplesProtected"
ONLY_DRAW_TRACTOR_ON_TRACTOR = "OnlyDrawTractorOnTractor"
LONGER_TUPLES_PROTECTED_AND_ONLY_DRAW_TRACTOR_ON_TRACTOR = "LongerTuplesProtectedAndOnlyDrawTractorOnTractor"
NO_FORMAT_BASED_DRAW = "NoFormatBasedDraw"
TRICK_DRAW_POLICIES = (
    NO_PROTECTIONS,
    LONGER_TUPLES_PROTECTED,
    ONLY_DRAW_TRACTOR_ON_TRACTOR,
    LONGER_TUPLES_PROTECTED_AND_ONLY_DRAW_TRACTOR_ON_TRACTOR,
    NO_FORMAT_BASED_DRAW,
)
_PROTECTS_LONGER_TUPLES = {LONGER_TUPLES_PROTECTED, LONGER_TUPLES_PROTECTED_AND_ONLY_DRAW_TRACTOR_ON_TRACTOR}
_TRACTOR_ONLY_ON_TRACTOR = {ONLY_DRAW_TRACTOR_ON_TRACTOR, LONGER_TUPLES_PROTECTED_AND_ONLY_DRAW_TRACTOR_ON_TRACTOR}

Shape = tuple[int, ...]


def normalize_policy(raw: Any) -> str:
    if raw is None or raw == "":
        return NO_PROTECTIONS
    text = str(raw).strip()
    for policy in TRICK_DRAW_POLICIES:
        if policy.lower() == text.lower():
            return policy
    raise RulesError(f"unknown trick draw policy: {raw!r}")


@dataclass(frozen=True)
class TrickUnit:
    shape: Shape
    members: tuple[Card, ...] = ()

    @property
    def size(self) -> int:
        return sum(self.shape)

    @property
    def is_tractor(self) -> bool:
        return len(self.shape) > 1

    @classmethod
    def repeated(cls, card: Card, count: int) -> TrickUnit:
        return cls(shape=(int(count),), members=(card,))

    @classmethod
    def tractor(cls, count: int, members: list[Card]) -> TrickUnit:
        if len(members) < 2:
            raise RulesError("a tractor needs at least two members")
        return cls(shape=tuple([int(count)] * len(members)), members=tuple(members))

    @classmethod
    def from_json(cls, raw: Any) -> TrickUnit:
        if not isinstance(raw, dict) or len(raw) != 1:
            raise RulesError(f"malformed trick unit: {raw!r}")
        tag, body = next(iter(raw.items()))
        if tag == "Repeated":
            return cls.repeated(Card.parse(body["card"]), int(body["count"]))
        if tag == "Tractor":
            return cls.tractor(int(body["count"]), [Card.parse(m) for m in body["members"]])
        raise RulesError(f"unknown trick unit: {tag}")


@dataclass(frozen=True)
class TrickFormat:
    suit: str
    trump: Trump
    units: tuple[TrickUnit, ...]

    @property
    def size(self) -> int:
        return sum(u.size for u in self.units)

    @property
    def shapes(self) -> list[Shape]:
        return _canonical([u.shape for u in self.units])

    @classmethod
    def from_json(cls, raw: Any, trump: Trump | None = None) -> TrickFormat:
        if not isinstance(raw, dict):
            raise RulesError(f"malformed trick format: {raw!r}")
        fmt_trump = Trump.from_json(raw["trump"]) if raw.get("trump") is not None else trump
        if fmt_trump is None:
            raise RulesError("trick format without a trump")
        units = tuple(TrickUnit.from_json(u) for u in raw.get("units") or [])
        if not units:
            raise RulesError("trick format without units")
        return cls(suit=normalize_suit(raw.get("suit")), trump=fmt_trump, units=units)

    @classmethod
    def from_play(cls, cards: list[Card], trump: Trump) -> TrickFormat:
        """Derive the format a leading play imposes, longest tractors first."""
        if not cards:
            raise RulesError("cannot derive a format from an empty play")
        suits = {trump.effective_suit(c) for c in cards}
        if len(suits) != 1:
            raise RulesError("a leading play must be a single effective suit")
        counts = Counter(cards)
        units: list[TrickUnit] = []
        while counts:
            unit = _longest_tractor(counts, trump)
            if unit is None:
                card = max(counts, key=lambda c: (counts[c], trump.rank(c)))
                unit = TrickUnit.repeated(card, counts[card])
            for member in unit.members:
                counts[member] -= unit.shape[0]
                if counts[member] <= 0:
                    del counts[member]
            units.append(unit)
        return cls(suit=suits.pop(), trump=trump, units=tuple(units))


def _longest_tractor(counts: Counter[Card], trump: Trump) -> TrickUnit | None:
    best: list[Card] = []
    best_count = 0
    for width in sorted({n for n in counts.values() if n >= 2}, reverse=True):
        eligible = [c for c, n in counts.items() if n >= width]
        for start in trump.sort(eligible):
            chain = [start]
            while True:
                nxt = [c for c in eligible if trump.adjacent(chain[-1], c)]
                if not nxt:
                    break
                chain.append(trump.sort(nxt)[0])
            if len(chain) >= 2 and len(chain) * width > len(best) * best_count:
                best, best_count = chain, width
    if not best:
        return None
    return TrickUnit.tractor(best_count, best)


def _canonical(shapes: list[Shape]) -> list[Shape]:
    return sorted(shapes, key=lambda s: (-sum(s), -len(s), s))


def _weaken(shape: Shape, tractor_only_on_tractor: bool) -> list[list[Shape]]:
    if len(shape) > 1:
        out: list[list[Shape]] = []
        if min(shape) >= 3:
            # narrower tractor, one leftover single per member
            out.append([tuple(n - 1 for n in shape)] + [(1,)] * len(shape))
        if tractor_only_on_tractor:
            return out + [[(1,)] * sum(shape)]
        if len(shape) > 2:
            out.append([shape[:-1], shape[-1:]])
        out.append([(n,) for n in shape])
        return out
    n = shape[0]
    if n >= 2:
        return [[(n - 1,), (1,)]]
    return []


def decompositions(fmt: TrickFormat, policy: str = NO_PROTECTIONS) -> Iterator[list[Shape]]:
    """Yield the shape lists a following play may be matched against.

    The exact format comes first, weaker splits follow level by level, and the
    last list is always all singles.
    """
    policy = normalize_policy(policy)
    start = fmt.shapes
    singles = [(1,)] * fmt.size
    if policy == NO_FORMAT_BASED_DRAW:
        yield start
        if start != singles:
            yield singles
        return

    if start == singles:
        yield singles
        return

    tractor_only = policy in _TRACTOR_ONLY_ON_TRACTOR
    seen = {tuple(start), tuple(singles)}
    level = [start]
    while level:
        for shapes in level:
            yield shapes
        nxt: list[list[Shape]] = []
        for shapes in level:
            for i, shape in enumerate(shapes):
                if i > 0 and shapes[i - 1] == shape:
                    continue
                for replacement in _weaken(shape, tractor_only):
                    candidate = _canonical(shapes[:i] + replacement + shapes[i + 1:])
                    key = tuple(candidate)
                    if key not in seen:
                        seen.add(key)
                        nxt.append(candidate)
        level = sorted(nxt, key=lambda s: [(-sum(x), -len(x), x) for x in s])
    yield singles


def _chains(shape: Shape, counts: dict[Card, int], original: dict[Card, int],
            trump: Trump, protected: bool) -> Iterator[list[Card]]:
    def fits(card: Card, need: int) -> bool:
        if counts.get(card, 0) < need:
            return False
        if protected and need >= 2 and original.get(card, 0) != need:
            return False
        return True

    ordered = trump.sort(c for c, n in counts.items() if n > 0)

    def extend(chain: list[Card]) -> Iterator[list[Card]]:
        if len(chain) == len(shape):
            yield list(chain)
            return
        need = shape[len(chain)]
        for card in ordered:
            if trump.adjacent(chain[-1], card) and fits(card, need):
                chain.append(card)
                yield from extend(chain)
                chain.pop()

    for card in ordered:
        if fits(card, shape[0]):
            yield from extend([card])


def check_play(
    cards: dict[Card, int],
    shapes: list[Shape],
    trump: Trump,
    policy: str = NO_PROTECTIONS,
) -> Iterator[list[list[Card]]]:
    """Yield disjoint assignments of ``cards`` to every shape in ``shapes``.

    Each assignment holds one card list per shape, tractors and longer tuples
    first; every card appears as many times as the shape requires.
    """
    protected = normalize_policy(policy) in _PROTECTS_LONGER_TUPLES
    counts = {c: n for c, n in cards.items() if n > 0}
    original = dict(counts)
    ordered = _canonical(list(shapes))

    def assign(index: int, floor: tuple | None, acc: list[list[Card]]) -> Iterator[list[list[Card]]]:
        rest = ordered[index:]
        if all(s == (1,) for s in rest):
            pool = trump.sort(c for c, n in counts.items() for _ in range(n))
            if len(pool) >= len(rest):
                yield acc + [[c] for c in pool[: len(rest)]]
            return
        shape = ordered[index]
        for chain in _chains(shape, counts, original, trump, protected):
            key = tuple(trump.sort_key(c) for c in chain)
            # identical shapes are interchangeable; keep their chains ordered
            if floor is not None and key < floor:
                continue
            for card, need in zip(chain, shape):
                counts[card] -= need
            picked = [card for card, need in zip(chain, shape) for _ in range(need)]
            same_next = index + 1 < len(ordered) and ordered[index + 1] == shape
            yield from assign(index + 1, key if same_next else None, acc + [picked])
            for card, need in zip(chain, shape):
                counts[card] += need

    yield from assign(0, None, [])


@dataclass
class PlayedCards:
    player: int
    cards: list[Card] = field(default_factory=list)

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> PlayedCards:
        return cls(player=int(raw["id"]), cards=[Card.parse(c) for c in raw.get("cards") or []])


@dataclass
class Trick:
    trump: Trump
    player_queue: list[int] = field(default_factory=list)
    played_cards: list[PlayedCards] = field(default_factory=list)
    current_winner: int | None = None
    trick_format: TrickFormat | None = None

    def __post_init__(self) -> None:
        if self.trick_format is None and self.played_cards:
            self.trick_format = TrickFormat.from_play(self.played_cards[0].cards, self.trump)
        if self.trick_format is not None and not self.played_cards:
            raise RulesError("trick has a format but no leading play")

    def next_player(self) -> int | None:
        return self.player_queue[0] if self.player_queue else None

    @classmethod
    def from_json(cls, raw: dict[str, Any], trump: Trump | None = None) -> Trick:
        if raw.get("trump") is not None:
            trump = Trump.from_json(raw["trump"])
        if trump is None:
            raise RulesError("trick without a trump")
        played = [PlayedCards.from_json(p) for p in raw.get("played_cards") or []]
        fmt_raw = raw.get("trick_format")
        return cls(
            trump=trump,
            player_queue=[int(p) for p in raw.get("player_queue") or []],
            played_cards=played,
            current_winner=None if raw.get("current_winner") is None else int(raw["current_winner"]),
            trick_format=TrickFormat.from_json(fmt_raw, trump) if fmt_raw is not None else None,
        )


def suited_cards(hand: dict[Card, int], suit: str, trump: Trump) -> tuple[dict[Card, int], dict[Card, int]]:
    matching: dict[Card, int] = {}
    other: dict[Card, int] = {}
    for card, n in hand.items():
        if n <= 0:
            continue
        if trump.effective_suit(card) == suit:
            matching[card] = n
        else:
            other[card] = n
    return matching, other

