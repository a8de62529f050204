"""
Leduc hand comparison and terminal payoff kernels.

Showdown rules:
- A private card pairing the board beats any unpaired card
- Otherwise the higher rank wins
- Two unpaired cards of the same rank split the pot

Payoff kernels work on whole private-hand vectors: for every own hand they
add `payoff * sign * cfreach[opp]` over all opponent hands that do not
collide with the own card or the board.
"""

import numpy as np
from numba import njit

from .cards import NUM_COPIES


@njit(cache=True)
def showdown_sign(my_card: int, opp_card: int, board: int) -> int:
    """
    Compare two distinct private cards given the board card.

    Returns:
        1 if my_card wins, -1 if it loses, 0 on a split
    """
    my_rank = my_card // NUM_COPIES
    opp_rank = opp_card // NUM_COPIES
    board_rank = board // NUM_COPIES

    if my_rank == board_rank:
        return 1
    if opp_rank == board_rank:
        return -1
    if my_rank == opp_rank:
        return 0
    if my_rank > opp_rank:
        return 1
    return -1


@njit(cache=True)
def accumulate_fold(result: np.ndarray, cfreach: np.ndarray, board: int, payoff: float):
    """Add a fixed signed payoff for every non-colliding (own, opp) pair."""
    num_hands = result.shape[0]
    for my_card in range(num_hands):
        if my_card == board:
            continue
        reach_sum = 0.0
        for opp_card in range(cfreach.shape[0]):
            if opp_card != my_card and opp_card != board:
                reach_sum += cfreach[opp_card]
        result[my_card] += payoff * reach_sum


@njit(cache=True)
def accumulate_showdown(result: np.ndarray, cfreach: np.ndarray, board: int, payoff: float):
    """Add the showdown payoff of every non-colliding (own, opp) pair."""
    num_hands = result.shape[0]
    for my_card in range(num_hands):
        if my_card == board:
            continue
        value = 0.0
        for opp_card in range(cfreach.shape[0]):
            if opp_card != my_card and opp_card != board:
                value += showdown_sign(my_card, opp_card, board) * cfreach[opp_card]
        result[my_card] += payoff * value
