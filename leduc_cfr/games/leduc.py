"""
Leduc Poker implementation.

Leduc Poker is a simplified poker game larger than Kuhn:
- 6-card deck: 2 Jacks (J), 2 Queens (Q), 2 Kings (K)
- Each player antes 1 chip
- Each player is dealt one private card
- Round 1: betting round (one bet and one raise at most)
- Community card is dealt
- Round 2: betting round (one bet and one raise at most)
- Showdown: pair (private matches community) beats high card

Betting structure:
- Round 1: bet/raise = 2 chips
- Round 2: bet/raise = 4 chips

Private cards are not part of the tree. Every decision node stores one
value per private hand of the acting player, and the terminal evaluator
works on whole hand vectors, so the tree only branches on betting actions
and on the rank of the community card. The two copies of a rank are folded
together through the isomorphism table (child `rank * 2` stands for both
`rank * 2` and `rank * 2 + 1`).
"""

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .base import (
    Action, ActionKind, Game, GameNode, NodeKind, NodeTag, Player,
    PreconditionError, SwapList,
)
from .cards import NOT_DEALT, NUM_COPIES, NUM_PRIVATE_HANDS, NUM_RANKS
from .hand_eval import accumulate_fold, accumulate_showdown
from .storage import NodeMutex, StorageView

logger = logging.getLogger(__name__)


# Game constants
ANTE = 1
ROUND1_BET = 2
ROUND2_BET = 4

# Probability of each board card once both private cards are dealt: the
# solver expands every chance child into both copies of its rank, giving
# one outcome per remaining card (4 of them).
CHANCE_FACTOR = 1.0 / 4.0

# Chance children that have an isomorphic twin, and the hand swaps that
# map each child onto its twin (copy 0 <-> copy 1 of every rank).
ISOMORPHIC_CHANCES = [0, 1, 2]
ISOMORPHIC_SWAP_LIST: SwapList = [
    (rank * NUM_COPIES, rank * NUM_COPIES + 1) for rank in range(NUM_RANKS)
]


class LeducNode(GameNode):
    """
    A node in the Leduc game tree.

    Attributes:
        tag: Chance, Decision(player) or Terminal(kind, player)
        board: Community card, or NOT_DEALT in round 1
        amount: Chips committed by each player so far (the pot per player)
        children: Ordered (action, child) pairs; the order is the buffer index
    """

    def __init__(self, tag: NodeTag, board: int, amount: int):
        self.tag = tag
        self.board = board
        self.amount = amount
        self.children: List[Tuple[Action, 'LeducNode']] = []
        self.mutex = NodeMutex()

        # Allocated after the tree is complete, decision nodes only
        self._strategy: Optional[StorageView] = None
        self._storage: Optional[StorageView] = None

    def __repr__(self) -> str:
        return (f"LeducNode(kind={self.tag.kind.name}, player={self.tag.player}, "
                f"board={self.board}, amount={self.amount}, actions={self.num_actions()})")

    def is_terminal(self) -> bool:
        return self.tag.is_terminal

    def is_chance(self) -> bool:
        return self.tag.is_chance

    def player(self) -> int:
        return self.tag.player

    def num_actions(self) -> int:
        return len(self.children)

    def actions(self) -> List[Action]:
        return [action for action, _ in self.children]

    def chance_factor(self) -> float:
        if not self.is_chance():
            raise PreconditionError(f"chance factor requested at {self.tag.kind.name} node")
        return CHANCE_FACTOR

    def child(self, action: int) -> 'LeducNode':
        """Child reached by `action`, without taking its lock."""
        if not 0 <= action < len(self.children):
            raise PreconditionError(
                f"action index {action} out of range for {len(self.children)} actions"
            )
        return self.children[action][1]

    @contextmanager
    def play(self, action: int) -> Iterator['LeducNode']:
        child = self.child(action)
        with child.mutex.hold():
            yield child

    # Buffers

    def _strategy_view(self) -> StorageView:
        if self._strategy is None:
            raise PreconditionError(f"{self.tag.kind.name} node has no strategy buffer")
        return self._strategy

    def _storage_view(self) -> StorageView:
        if self._storage is None:
            raise PreconditionError(f"{self.tag.kind.name} node has no regret/EV buffer")
        return self._storage

    def allocate(self, num_hands: int, compressed: bool) -> None:
        size = self.num_actions() * num_hands
        self._strategy = StorageView(size, np.uint16, compressed)
        self._storage = StorageView(size, np.int16, compressed)

    @property
    def has_buffers(self) -> bool:
        return self._strategy is not None

    def strategy(self) -> np.ndarray:
        return self._strategy_view().wide

    def cum_regret(self) -> np.ndarray:
        return self._storage_view().wide

    def expected_values(self) -> np.ndarray:
        return self._storage_view().wide

    def strategy_compressed(self) -> np.ndarray:
        return self._strategy_view().narrow

    def cum_regret_compressed(self) -> np.ndarray:
        return self._storage_view().narrow

    def expected_values_compressed(self) -> np.ndarray:
        return self._storage_view().narrow

    def strategy_scale(self) -> float:
        return self._strategy_view().scale

    def set_strategy_scale(self, scale: float) -> None:
        self._strategy_view().scale = scale

    def cum_regret_scale(self) -> float:
        return self._storage_view().scale

    def set_cum_regret_scale(self, scale: float) -> None:
        self._storage_view().scale = scale

    def expected_value_scale(self) -> float:
        return self._storage_view().scale

    def set_expected_value_scale(self, scale: float) -> None:
        self._storage_view().scale = scale


def get_actions(
    player: int,
    last_action: Action,
    is_second_round: bool
) -> List[Tuple[Action, NodeTag]]:
    """
    Legal actions at a decision node and the node each one leads to.

    Args:
        player: Acting player
        last_action: Previous action in this round (NONE at the root,
            CHANCE right after the community card)
        is_second_round: True once the community card is dealt

    Returns:
        Ordered (action, next node tag) pairs. The order fixes buffer indices.
    """
    raise_amount = ROUND2_BET if is_second_round else ROUND1_BET
    opponent = player ^ 1

    if is_second_round:
        after_call = NodeTag.showdown(player)
    else:
        after_call = NodeTag.chance()

    if player == Player.PLAYER_1:
        after_check = NodeTag.decision(opponent)
    else:
        after_check = after_call

    kind = last_action.kind
    if kind in (ActionKind.NONE, ActionKind.CHECK, ActionKind.CHANCE):
        return [
            (Action.CHECK, after_check),
            (Action.bet(raise_amount), NodeTag.decision(opponent)),
        ]
    if kind == ActionKind.BET:
        return [
            (Action.FOLD, NodeTag.fold(player)),
            (Action.CALL, after_call),
            (Action.raise_to(last_action.amount + raise_amount), NodeTag.decision(opponent)),
        ]
    if kind == ActionKind.RAISE:
        return [
            (Action.FOLD, NodeTag.fold(player)),
            (Action.CALL, after_call),
        ]
    raise PreconditionError(f"no action menu after {last_action}: it closes the action")


def build_tree(is_compression_enabled: bool = False) -> LeducNode:
    """
    Build the complete Leduc betting tree and allocate its buffers.

    Args:
        is_compression_enabled: Which storage view the buffers expose

    Returns:
        The root node (player 1 to act, board not dealt, 1 chip each)
    """
    root = LeducNode(NodeTag.decision(Player.PLAYER_1), NOT_DEALT, ANTE)
    _build_tree_recursive(root, Action.NONE, (0, 0))
    _allocate_memory_recursive(root, is_compression_enabled)

    stats = tree_stats(root)
    logger.debug(
        "Built Leduc tree: %d decision, %d chance, %d terminal nodes (compressed=%s)",
        stats['decision'], stats['chance'], stats['terminal'], is_compression_enabled
    )
    return root


def _build_tree_recursive(node: LeducNode, last_action: Action, last_bet: Tuple[int, int]):
    """Expand `node` given the previous action and each player's bet this round."""
    if node.is_terminal():
        return

    if node.is_chance():
        _push_chance_actions(node)
        for action, child in node.children:
            _build_tree_recursive(child, action, (0, 0))
        return

    player = node.player()
    actions = get_actions(player, last_action, node.board != NOT_DEALT)
    prev_min_bet = min(last_bet)

    next_bets = []
    for action, next_tag in actions:
        bets = list(last_bet)
        if action.kind == ActionKind.CALL:
            bets[player] = bets[player ^ 1]
        elif action.kind in (ActionKind.BET, ActionKind.RAISE):
            bets[player] = action.amount
        bets = (bets[0], bets[1])
        next_bets.append(bets)

        # Only the matched part of the bets counts towards the pot
        bet_diff = min(bets) - prev_min_bet
        node.children.append((action, LeducNode(next_tag, node.board, node.amount + bet_diff)))

    for (action, child), bets in zip(node.children, next_bets):
        _build_tree_recursive(child, action, bets)


def _push_chance_actions(node: LeducNode):
    """One child per rank; the card stands for both copies of that rank."""
    for rank in range(NUM_RANKS):
        card = rank * NUM_COPIES
        child = LeducNode(NodeTag.decision(Player.PLAYER_1), card, node.amount)
        node.children.append((Action.chance(card), child))


def _allocate_memory_recursive(node: LeducNode, compressed: bool):
    if node.is_terminal():
        return

    if not node.is_chance():
        node.allocate(NUM_PRIVATE_HANDS, compressed)

    for _, child in node.children:
        _allocate_memory_recursive(child, compressed)


def iter_nodes(node: LeducNode) -> Iterator[Tuple[Tuple[Action, ...], LeducNode]]:
    """Depth-first (history, node) pairs; does not take node locks."""
    stack = [((), node)]
    while stack:
        history, current = stack.pop()
        yield history, current
        for action, child in reversed(current.children):
            stack.append((history + (action,), child))


def tree_stats(root: LeducNode) -> dict:
    """Count nodes by kind."""
    counts = {'decision': 0, 'chance': 0, 'terminal': 0, 'fold': 0, 'showdown': 0}
    for _, node in iter_nodes(root):
        kind = node.tag.kind
        if kind == NodeKind.DECISION:
            counts['decision'] += 1
        elif kind == NodeKind.CHANCE:
            counts['chance'] += 1
        else:
            counts['terminal'] += 1
            counts['fold' if kind == NodeKind.FOLD else 'showdown'] += 1
    return counts


class LeducPoker(Game):
    """
    Leduc Poker game model driven by the vector-form solvers.

    Args:
        is_compression_enabled: Store buffers as 16-bit scaled integers
            instead of float32 for the whole run
    """

    def __init__(self, is_compression_enabled: bool = False):
        self._root = build_tree(is_compression_enabled)
        self._initial_weight = np.ones(NUM_PRIVATE_HANDS, dtype=np.float32)
        self._isomorphism = list(ISOMORPHIC_CHANCES)
        self._isomorphism_swap = (list(ISOMORPHIC_SWAP_LIST), list(ISOMORPHIC_SWAP_LIST))
        self._is_solved = False
        self._is_compression_enabled = is_compression_enabled

    @property
    def name(self) -> str:
        return "leduc_poker"

    @property
    def num_players(self) -> int:
        return 2

    @contextmanager
    def root(self) -> Iterator[LeducNode]:
        with self._root.mutex.hold():
            yield self._root

    def num_private_hands(self, player: int) -> int:
        _check_player(player)
        return NUM_PRIVATE_HANDS

    def initial_weight(self, player: int) -> np.ndarray:
        _check_player(player)
        return self._initial_weight

    def evaluate(
        self,
        result: np.ndarray,
        node: LeducNode,
        player: int,
        cfreach: np.ndarray
    ) -> None:
        """
        Add the counterfactual values of terminal `node` for `player`.

        Each (own, opp) pair that collides with neither the board nor the
        other card contributes amount / (H * (H - 1)) * sign * cfreach[opp],
        where sign is +1 for a win, -1 for a loss and 0 for a split.
        """
        _check_player(player)
        if not node.is_terminal():
            raise PreconditionError(f"evaluate called on {node.tag.kind.name} node")
        if not isinstance(result, np.ndarray) or result.shape != (NUM_PRIVATE_HANDS,):
            raise PreconditionError(f"result must be an ndarray of {NUM_PRIVATE_HANDS} hands")

        cfreach = np.ascontiguousarray(cfreach, dtype=np.float32)
        if cfreach.shape != (NUM_PRIVATE_HANDS,):
            raise PreconditionError(f"cfreach must hold {NUM_PRIVATE_HANDS} hands, got {cfreach.shape}")

        num_pairs = NUM_PRIVATE_HANDS * (NUM_PRIVATE_HANDS - 1)
        payoff = node.amount / num_pairs

        if node.tag.kind == NodeKind.FOLD:
            sign = -1.0 if node.player() == player else 1.0
            accumulate_fold(result, cfreach, node.board, payoff * sign)
        else:
            accumulate_showdown(result, cfreach, node.board, payoff)

    def isomorphic_chances(self, node: LeducNode) -> Sequence[int]:
        return self._isomorphism

    def isomorphic_swap(self, node: LeducNode, index: int) -> Tuple[SwapList, SwapList]:
        if not 0 <= index < len(self._isomorphism):
            raise PreconditionError(f"isomorphism index {index} out of range")
        return self._isomorphism_swap

    def is_solved(self) -> bool:
        return self._is_solved

    def set_solved(self) -> None:
        if self._is_solved:
            raise PreconditionError("game is already marked solved")
        self._is_solved = True

    def is_compression_enabled(self) -> bool:
        return self._is_compression_enabled


def _check_player(player: int):
    if player not in (Player.PLAYER_1, Player.PLAYER_2):
        raise PreconditionError(f"Invalid player: {player}")
