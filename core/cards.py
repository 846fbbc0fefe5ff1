from __future__ import annotations

import random
from dataclasses import dataclass
from functools import total_ordering
from typing import Iterable, List, Optional, Sequence

RANKS = ("3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A", "2")
SUITS = ("D", "C", "H", "S")
SUIT_SYMBOLS = {"D": "♦", "C": "♣", "H": "♥", "S": "♠"}

RANK_VALUE = {rank: idx for idx, rank in enumerate(RANKS)}
SUIT_VALUE = {suit: idx for idx, suit in enumerate(SUITS)}


@total_ordering
@dataclass(frozen=True)
class Card:
    rank: str
    suit: str

    def __post_init__(self) -> None:
        if self.rank not in RANK_VALUE:
            raise ValueError(f"Invalid rank: {self.rank}")
        if self.suit not in SUIT_VALUE:
            raise ValueError(f"Invalid suit: {self.suit}")

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Card):
            return NotImplemented
        return self.order < other.order

    @property
    def rank_value(self) -> int:
        return RANK_VALUE[self.rank]

    @property
    def suit_value(self) -> int:
        return SUIT_VALUE[self.suit]

    @property
    def order(self) -> tuple[int, int]:
        return (self.rank_value, self.suit_value)

    @property
    def label(self) -> str:
        return f"{self.rank}{self.suit}"

    @property
    def symbol(self) -> str:
        return f"{self.rank}{SUIT_SYMBOLS[self.suit]}"


THREE_OF_DIAMONDS = Card("3", "D")


def full_deck() -> List[Card]:
    return [Card(rank, suit) for rank in RANKS for suit in SUITS]


def build_deck(seed: Optional[int] = None) -> List[Card]:
    rng = random.Random(seed)
    deck = full_deck()
    rng.shuffle(deck)
    return deck


def deal(deck: List[Card], count: int) -> List[Card]:
    if len(deck) < count:
        raise ValueError("Not enough cards left in deck")
    cards = deck[:count]
    del deck[:count]
    return cards


def deal_hands(deck: List[Card], players: int = 4) -> List[List[Card]]:
    """Deal the whole deck round-robin; every hand comes back sorted."""
    if len(deck) % players:
        raise ValueError("Deck does not split evenly between players")
    hands: List[List[Card]] = [[] for _ in range(players)]
    idx = 0
    while deck:
        hands[idx % players].extend(deal(deck, 1))
        idx += 1
    return [sort_cards(hand) for hand in hands]


def sort_cards(cards: Iterable[Card]) -> List[Card]:
    return sorted(cards)


def cards_to_labels(cards: Sequence[Card]) -> List[str]:
    return [card.label for card in cards]


def parse_label(label: str) -> Card:
    if not isinstance(label, str) or len(label) not in (2, 3):
        raise ValueError(f"Invalid card label: {label}")
    return Card(label[:-1], label[-1])
