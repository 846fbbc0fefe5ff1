from __future__ import annotations

import itertools
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .cards import RANK_VALUE, RANKS, Card, full_deck, parse_label
from .models import Combination, ComboType

# The ten legal straight windows, weakest first. The ace may sit at either end
# but a run never wraps past the 2 (3-2-A-K-Q is not a straight).
STRAIGHT_WINDOWS: Tuple[Tuple[str, ...], ...] = (
    ("A", "2", "3", "4", "5"),
    ("2", "3", "4", "5", "6"),
) + tuple(tuple(RANKS[idx : idx + 5]) for idx in range(8))

_WINDOW_INDEX = {
    tuple(sorted(window, key=RANK_VALUE.__getitem__)): idx for idx, window in enumerate(STRAIGHT_WINDOWS)
}

_ELEMENTARY = (ComboType.SINGLE, ComboType.PAIR, ComboType.TRIPLE)


def classify(cards: Iterable[Card]) -> Optional[Combination]:
    """Return the combination formed by 1, 2, 3 or 5 cards, or None if it is not a legal play."""
    ordered = tuple(sorted(cards))
    if len(set(ordered)) != len(ordered):
        return None

    count = len(ordered)
    if count == 1:
        card = ordered[0]
        return Combination(ComboType.SINGLE, ordered, card.rank_value * 10 + card.suit_value)
    if count == 2 and _same_rank(ordered):
        top_suit = max(card.suit_value for card in ordered)
        return Combination(ComboType.PAIR, ordered, ordered[0].rank_value * 10 + top_suit)
    if count == 3 and _same_rank(ordered):
        return Combination(ComboType.TRIPLE, ordered, ordered[0].rank_value)
    if count == 5:
        return _classify_five(ordered)
    return None


def _same_rank(cards: Sequence[Card]) -> bool:
    return all(card.rank == cards[0].rank for card in cards)


def _classify_five(cards: Tuple[Card, ...]) -> Optional[Combination]:
    is_flush = len({card.suit for card in cards}) == 1
    window = straight_window(cards)

    counts: Dict[str, int] = {}
    for card in cards:
        counts.setdefault(card.rank, 0)
        counts[card.rank] += 1
    ordered_counts = sorted(counts.items(), key=lambda item: (item[1], RANK_VALUE[item[0]]), reverse=True)
    count_values = [count for _, count in ordered_counts]

    if window is not None and is_flush:
        return Combination(ComboType.STRAIGHTFLUSH, cards, _straight_key(cards, window))
    if count_values[0] == 4:
        return Combination(ComboType.FOURKIND, cards, RANK_VALUE[ordered_counts[0][0]])
    if count_values == [3, 2]:
        return Combination(ComboType.FULLHOUSE, cards, RANK_VALUE[ordered_counts[0][0]])
    if is_flush:
        # Suit decides first, then the highest card.
        top = cards[-1]
        return Combination(ComboType.FLUSH, cards, top.suit_value * 100 + top.rank_value)
    if window is not None:
        return Combination(ComboType.STRAIGHT, cards, _straight_key(cards, window))
    return None


def straight_window(cards: Iterable[Card]) -> Optional[int]:
    """Index into STRAIGHT_WINDOWS of the run these cards form, if any."""
    ranks = tuple(sorted((card.rank for card in cards), key=RANK_VALUE.__getitem__))
    return _WINDOW_INDEX.get(ranks)


def _straight_key(cards: Sequence[Card], window: int) -> int:
    top_rank = STRAIGHT_WINDOWS[window][-1]
    top = max(card for card in cards if card.rank == top_rank)
    return window * 10 + top.suit_value


def can_beat(standing: Optional[Combination], candidate: Combination) -> bool:
    if standing is None:
        return True
    if standing.type in _ELEMENTARY:
        return candidate.type == standing.type and candidate.key > standing.key
    if standing.is_five and candidate.is_five:
        if candidate.category != standing.category:
            return candidate.category > standing.category
        return candidate.key > standing.key
    return False


def strength(combo: Combination) -> Tuple[int, int]:
    """Sort key ordering combinations of one cardinality from weakest to strongest."""
    return (combo.category or 0, combo.key)


def iter_combinations(hand: Sequence[Card], size: int) -> List[Combination]:
    """Every legal combination of `size` cards in a hand, weakest first."""
    found = []
    for cards in itertools.combinations(hand, size):
        combo = classify(cards)
        if combo is not None:
            found.append(combo)
    found.sort(key=strength)
    return found


def is_top_remaining(combo: Combination, played: Iterable[Card]) -> bool:
    """True when no unplayed cards can form a same-type play that beats a single, pair or triple."""
    if combo.type not in _ELEMENTARY:
        return False
    seen = set(played) | set(combo.cards)
    by_rank: Dict[str, List[Card]] = {}
    for card in full_deck():
        if card not in seen:
            by_rank.setdefault(card.rank, []).append(card)
    for cards in by_rank.values():
        if len(cards) < combo.size:
            continue
        strongest = classify(sorted(cards)[-combo.size :])
        if strongest is not None and can_beat(combo, strongest):
            return False
    return True


def describe(combo: Combination) -> str:
    return f"{combo.type.value} {' '.join(card.symbol for card in combo.cards)}"


def parse_cards(labels: Sequence[str]) -> List[Card]:
    return [parse_label(label) for label in labels]
