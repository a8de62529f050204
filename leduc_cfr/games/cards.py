"""
6-card deck representation for Leduc poker.

Card encoding: card = rank * 2 + copy
- Ranks: 0=J, 1=Q, 2=K
- Copies: 0, 1 (two of each rank)
- Card values: 0-5

A player's private hand is just the index of the card they hold, so the
private-hand enumeration is the card enumeration itself.
"""

from typing import List

# Rank constants
JACK = 0
QUEEN = 1
KING = 2

NUM_RANKS = 3
NUM_COPIES = 2
NUM_CARDS = 6

# One private card per player
NUM_PRIVATE_HANDS = NUM_CARDS

# Board placeholder before the public card is dealt
NOT_DEALT = -1

RANK_NAMES = ['J', 'Q', 'K']


def make_card(rank: int, copy: int) -> int:
    """Create card from rank and copy."""
    return rank * NUM_COPIES + copy


def card_rank(card: int) -> int:
    """Get rank of card (0-2)."""
    assert 0 <= card < NUM_CARDS, f"Invalid card: {card}"
    return card // NUM_COPIES


def card_copy(card: int) -> int:
    """Get copy index of card (0-1)."""
    return card % NUM_COPIES


def rank_to_name(rank: int) -> str:
    """Convert rank to name."""
    return RANK_NAMES[rank]


def card_name(card: int) -> str:
    """Get card name like 'J0', 'Q1'. Undealt board is '?'."""
    if card == NOT_DEALT:
        return '?'
    return f"{RANK_NAMES[card_rank(card)]}{card_copy(card)}"


def card_from_name(name: str) -> int:
    """Parse card name like 'J0', 'K1'."""
    rank = RANK_NAMES.index(name[0].upper())
    return make_card(rank, int(name[1]))


def get_remaining_cards(used: List[int]) -> List[int]:
    """Get cards not in used list."""
    used_set = set(used)
    return [c for c in range(NUM_CARDS) if c not in used_set]
