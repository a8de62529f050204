"""
Abstract base classes for game definitions.

This module defines the interface a game must implement to be driven by the
solvers in `leduc_cfr.solvers`: a tree of nodes reached through scoped,
exclusive accessors, per-node numeric buffers, and a terminal evaluator that
works on whole private-hand vectors at once.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Sequence, Tuple

import numpy as np


class PreconditionError(AssertionError):
    """A caller broke the game/solver contract (bad index, wrong view, ...)."""


class Player(IntEnum):
    """Player identifiers."""
    CHANCE = -1
    PLAYER_1 = 0  # out of position, acts first in both rounds
    PLAYER_2 = 1


class NodeKind(IntEnum):
    """What a node is. Exactly one per node."""
    CHANCE = 0
    DECISION = 1
    FOLD = 2
    SHOWDOWN = 3


@dataclass(frozen=True)
class NodeTag:
    """
    Tagged node variant: Chance, Decision(player) or Terminal(kind, player).

    For a decision node `player` is the actor. For a fold terminal it is the
    player who folded; for a showdown terminal it is the player whose call
    (or check) closed the action.
    """
    kind: NodeKind
    player: int

    @classmethod
    def chance(cls) -> 'NodeTag':
        return cls(NodeKind.CHANCE, Player.CHANCE)

    @classmethod
    def decision(cls, player: int) -> 'NodeTag':
        return cls(NodeKind.DECISION, player)

    @classmethod
    def fold(cls, player: int) -> 'NodeTag':
        return cls(NodeKind.FOLD, player)

    @classmethod
    def showdown(cls, player: int) -> 'NodeTag':
        return cls(NodeKind.SHOWDOWN, player)

    @property
    def is_terminal(self) -> bool:
        return self.kind in (NodeKind.FOLD, NodeKind.SHOWDOWN)

    @property
    def is_chance(self) -> bool:
        return self.kind == NodeKind.CHANCE


class ActionKind(IntEnum):
    """Action tags."""
    NONE = 0
    FOLD = 1
    CHECK = 2
    CALL = 3
    BET = 4
    RAISE = 5
    CHANCE = 6


@dataclass(frozen=True)
class Action:
    """
    An action that can be taken at a node.

    `amount` is the total number of chips committed in the current round for
    BET and RAISE, and the dealt card index for CHANCE. It is 0 otherwise.
    """
    kind: ActionKind
    amount: int = 0

    @classmethod
    def bet(cls, amount: int) -> 'Action':
        return cls(ActionKind.BET, amount)

    @classmethod
    def raise_to(cls, amount: int) -> 'Action':
        return cls(ActionKind.RAISE, amount)

    @classmethod
    def chance(cls, card: int) -> 'Action':
        return cls(ActionKind.CHANCE, card)

    def __str__(self) -> str:
        name = self.kind.name.capitalize()
        if self.kind in (ActionKind.BET, ActionKind.RAISE, ActionKind.CHANCE):
            return f"{name}({self.amount})"
        return name


Action.NONE = Action(ActionKind.NONE)
Action.FOLD = Action(ActionKind.FOLD)
Action.CHECK = Action(ActionKind.CHECK)
Action.CALL = Action(ActionKind.CALL)


SwapList = List[Tuple[int, int]]


class GameNode(ABC):
    """
    A node of an explicit game tree.

    Buffers are laid out action-major: entry `a * num_hands + h` belongs to
    action `a` and private hand `h` of the acting player. The regret buffer
    and the expected-value buffer are the same storage; which one it holds
    is decided by `Game.is_solved()`.
    """

    @abstractmethod
    def is_terminal(self) -> bool:
        pass

    @abstractmethod
    def is_chance(self) -> bool:
        pass

    @abstractmethod
    def player(self) -> int:
        pass

    @abstractmethod
    def num_actions(self) -> int:
        pass

    @abstractmethod
    def chance_factor(self) -> float:
        """Selection probability of each outcome at a chance node."""
        pass

    @abstractmethod
    def play(self, action: int) -> AbstractContextManager:
        """Scoped exclusive access to the child reached by `action`."""
        pass

    # Full-precision views

    @abstractmethod
    def strategy(self) -> np.ndarray:
        pass

    @abstractmethod
    def cum_regret(self) -> np.ndarray:
        pass

    @abstractmethod
    def expected_values(self) -> np.ndarray:
        pass

    # Quantized views

    @abstractmethod
    def strategy_compressed(self) -> np.ndarray:
        pass

    @abstractmethod
    def cum_regret_compressed(self) -> np.ndarray:
        pass

    @abstractmethod
    def expected_values_compressed(self) -> np.ndarray:
        pass

    # Scale factors used by the quantized views

    @abstractmethod
    def strategy_scale(self) -> float:
        pass

    @abstractmethod
    def set_strategy_scale(self, scale: float) -> None:
        pass

    @abstractmethod
    def cum_regret_scale(self) -> float:
        pass

    @abstractmethod
    def set_cum_regret_scale(self, scale: float) -> None:
        pass

    @abstractmethod
    def expected_value_scale(self) -> float:
        pass

    @abstractmethod
    def set_expected_value_scale(self, scale: float) -> None:
        pass


class Game(ABC):
    """Abstract base class for games consumed by the vector-form solvers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the game."""
        pass

    @abstractmethod
    def root(self) -> AbstractContextManager:
        """Scoped exclusive access to the root node."""
        pass

    @abstractmethod
    def num_private_hands(self, player: int) -> int:
        pass

    @abstractmethod
    def initial_weight(self, player: int) -> np.ndarray:
        pass

    @abstractmethod
    def evaluate(
        self,
        result: np.ndarray,
        node: GameNode,
        player: int,
        cfreach: np.ndarray
    ) -> None:
        """
        Add the counterfactual values of a terminal node to `result`.

        Args:
            result: Accumulator of shape (num_private_hands(player),)
            node: Terminal node
            player: Player whose values are computed
            cfreach: Opponent reach probabilities, one per opponent hand
        """
        pass

    @abstractmethod
    def isomorphic_chances(self, node: GameNode) -> Sequence[int]:
        pass

    @abstractmethod
    def isomorphic_swap(self, node: GameNode, index: int) -> Tuple[SwapList, SwapList]:
        pass

    @abstractmethod
    def is_solved(self) -> bool:
        pass

    @abstractmethod
    def set_solved(self) -> None:
        pass

    @abstractmethod
    def is_compression_enabled(self) -> bool:
        pass
