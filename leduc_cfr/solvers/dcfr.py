"""
Discounted CFR (DCFR) solver for vector-form games.

DCFR discounts the accumulated quantities every iteration:
1. Positive cumulative regrets are scaled by t^1.5 / (t^1.5 + 1)
2. Negative cumulative regrets are halved
3. The cumulative strategy is scaled by (t / (t + 1))^3, with t restarting
   at every power of 4

The solver touches the game only through `Game` / `GameNode`. Values are
computed for all private hands of a player at once; the opponent is
represented by a reach vector. Chance nodes scale that vector by the
node's chance factor and add every isomorphic child a second time with its
hand indices swapped.

Each node is locked while its buffers are read and again while they are
written, never while a child is being visited.

Reference: Brown & Sandholm, "Solving Imperfect-Information Games via
Discounted Regret Minimization"
"""

import logging
from dataclasses import dataclass
from functools import partial
from typing import Callable, ContextManager, List, Tuple

import numpy as np

from leduc_cfr.games.base import Game, GameNode, PreconditionError, SwapList
from leduc_cfr.games.storage import decode_slice, encode_slice
from leduc_cfr.engine.ops import (
    apply_swap,
    as_matrix,
    discount_cum_regret,
    discount_cum_regret_compressed,
    discount_cum_strategy,
    discount_cum_strategy_compressed,
    normalize_strategy,
    regret_match,
)

logger = logging.getLogger(__name__)


# DCFR parameters
ALPHA = 1.5
BETA = 0.5
GAMMA = 3.0

# Iterations between exploitability checks
EXPLOITABILITY_INTERVAL = 10

Acquire = Callable[[], ContextManager[GameNode]]


@dataclass(frozen=True)
class DiscountParams:
    """Discount factors applied during one iteration."""
    alpha_t: float
    beta_t: float
    gamma_t: float

    @classmethod
    def for_iteration(cls, t: int) -> 'DiscountParams':
        """Factors for 0-indexed iteration `t`."""
        pow_alpha = max(t - 1, 0) ** ALPHA

        nearest_lower_power_of_4 = 0 if t == 0 else 1 << ((t.bit_length() - 1) & ~1)
        t_gamma = t - nearest_lower_power_of_4

        return cls(
            alpha_t=pow_alpha / (pow_alpha + 1.0),
            beta_t=BETA,
            gamma_t=(t_gamma / (t_gamma + 1.0)) ** GAMMA,
        )


class DiscountedCFR:
    """
    DCFR solver over a game's explicit node tree.

    Strategies and regrets live in the game's own node buffers, in whichever
    representation `game.is_compression_enabled()` selects.
    """

    def __init__(
        self,
        game: Game,
        max_iterations: int = 1000,
        target_exploitability: float = 1e-3,
        print_progress: bool = False
    ):
        """
        Initialize the DCFR solver.

        Args:
            game: Game to solve (not yet solved)
            max_iterations: Upper bound on iterations run by `solve`
            target_exploitability: `solve` stops once exploitability is at
                or below this value (checked every EXPLOITABILITY_INTERVAL)
            print_progress: Log exploitability checks at INFO instead of DEBUG
        """
        if max_iterations < 0:
            raise ValueError(f"max_iterations must be non-negative, got {max_iterations}")
        if target_exploitability < 0:
            raise ValueError(f"target_exploitability must be non-negative, got {target_exploitability}")

        self.game = game
        self.max_iterations = max_iterations
        self.target_exploitability = target_exploitability
        self.print_progress = print_progress
        self.compressed = game.is_compression_enabled()

        # Iteration counter
        self.iterations = 0

    def _log(self, msg: str, *args) -> None:
        logger.log(logging.INFO if self.print_progress else logging.DEBUG, msg, *args)

    def _check_not_solved(self) -> None:
        if self.game.is_solved():
            raise PreconditionError("game is already solved")

    def iterate(self, num_iterations: int = 1) -> None:
        """
        Run DCFR iterations.

        Args:
            num_iterations: Number of iterations to run
        """
        self._check_not_solved()
        for _ in range(num_iterations):
            params = DiscountParams.for_iteration(self.iterations)
            for player in range(2):
                self._solve_recursive(
                    self.game.root, player, self.game.initial_weight(player ^ 1), params
                )
            self.iterations += 1

    def solve(self) -> float:
        """
        Iterate until the target exploitability or the iteration cap is
        reached, then store expected values and mark the game solved.

        Returns:
            Exploitability of the average strategy at the last check
        """
        self._check_not_solved()

        exploitability = self.exploitability()
        self._log("iteration %d: exploitability %.6e", self.iterations, exploitability)

        for t in range(self.max_iterations):
            if exploitability <= self.target_exploitability:
                break
            self.iterate(1)
            if (t + 1) % EXPLOITABILITY_INTERVAL == 0 or t + 1 == self.max_iterations:
                exploitability = self.exploitability()
                self._log("iteration %d: exploitability %.6e", self.iterations, exploitability)

        self.finalize()
        return exploitability

    def exploitability(self) -> float:
        """
        Exploitability of the average strategy.

        Mean of both players' best-response values; zero at a Nash
        equilibrium of a zero-sum game.
        """
        mes_ev = [self._best_response_value(player) for player in range(2)]
        return (mes_ev[0] + mes_ev[1]) * 0.5

    def _best_response_value(self, player: int) -> float:
        cfv = self._best_cfv_recursive(self.game.root, player, self.game.initial_weight(player ^ 1))
        return float(np.dot(cfv.astype(np.float64), self.game.initial_weight(player)))

    def finalize(self) -> None:
        """
        Store the counterfactual values of the average strategy in the
        regret/EV slot of every decision node, then mark the game solved.
        """
        self._check_not_solved()
        for player in range(2):
            self._cfvalue_recursive(self.game.root, player, self.game.initial_weight(player ^ 1))
        self.game.set_solved()

    # Buffer helpers

    def _regret_buffer(self, node: GameNode) -> np.ndarray:
        return node.cum_regret_compressed() if self.compressed else node.cum_regret()

    def _strategy_buffer(self, node: GameNode) -> np.ndarray:
        return node.strategy_compressed() if self.compressed else node.strategy()

    def _isomorphic_swaps(self, node: GameNode, player: int) -> List[Tuple[int, SwapList]]:
        return [
            (isomorphic_index, self.game.isomorphic_swap(node, i)[player])
            for i, isomorphic_index in enumerate(self.game.isomorphic_chances(node))
        ]

    def _terminal_values(self, node: GameNode, player: int, cfreach: np.ndarray) -> np.ndarray:
        result = np.zeros(self.game.num_private_hands(player), dtype=np.float32)
        self.game.evaluate(result, node, player, cfreach)
        return result

    # Traversals

    def _solve_recursive(
        self,
        acquire: Acquire,
        player: int,
        cfreach: np.ndarray,
        params: DiscountParams
    ) -> np.ndarray:
        """Counterfactual values of `player` below a node; updates `player`'s nodes."""
        with acquire() as node:
            if node.is_terminal():
                return self._terminal_values(node, player, cfreach)

            num_actions = node.num_actions()
            is_chance = node.is_chance()
            if is_chance:
                cfreach_updated = cfreach * np.float32(node.chance_factor())
                swaps = self._isomorphic_swaps(node, player)
            else:
                is_own = node.player() == player
                strategy = regret_match(self._regret_buffer(node), num_actions)
            play = node.play

        if is_chance:
            cfv_actions = np.stack([
                self._solve_recursive(partial(play, action), player, cfreach_updated, params)
                for action in range(num_actions)
            ])
            return _sum_chance_values(cfv_actions, swaps)

        if not is_own:
            result = np.zeros(self.game.num_private_hands(player), dtype=np.float32)
            for action in range(num_actions):
                result += self._solve_recursive(
                    partial(play, action), player, cfreach * strategy[action], params
                )
            return result

        cfv_actions = np.stack([
            self._solve_recursive(partial(play, action), player, cfreach, params)
            for action in range(num_actions)
        ])
        result = (strategy * cfv_actions).sum(axis=0)

        with acquire() as node:
            if self.compressed:
                node.set_strategy_scale(discount_cum_strategy_compressed(
                    node.strategy_compressed(), node.strategy_scale(), strategy, params.gamma_t
                ))
                node.set_cum_regret_scale(discount_cum_regret_compressed(
                    node.cum_regret_compressed(), node.cum_regret_scale(),
                    cfv_actions, result, params.alpha_t, params.beta_t
                ))
            else:
                discount_cum_strategy(node.strategy(), strategy, params.gamma_t)
                discount_cum_regret(
                    node.cum_regret(), cfv_actions, result, params.alpha_t, params.beta_t
                )

        return result

    def _best_cfv_recursive(self, acquire: Acquire, player: int, cfreach: np.ndarray) -> np.ndarray:
        """Best-response values of `player` against the opponent's average strategy."""
        with acquire() as node:
            if node.is_terminal():
                return self._terminal_values(node, player, cfreach)

            num_actions = node.num_actions()
            is_chance = node.is_chance()
            if is_chance:
                cfreach_updated = cfreach * np.float32(node.chance_factor())
                swaps = self._isomorphic_swaps(node, player)
            else:
                is_own = node.player() == player
                if not is_own:
                    strategy = normalize_strategy(self._strategy_buffer(node), num_actions)
            play = node.play

        if is_chance:
            cfv_actions = np.stack([
                self._best_cfv_recursive(partial(play, action), player, cfreach_updated)
                for action in range(num_actions)
            ])
            return _sum_chance_values(cfv_actions, swaps)

        if is_own:
            cfv_actions = np.stack([
                self._best_cfv_recursive(partial(play, action), player, cfreach)
                for action in range(num_actions)
            ])
            return cfv_actions.max(axis=0)

        result = np.zeros(self.game.num_private_hands(player), dtype=np.float32)
        for action in range(num_actions):
            result += self._best_cfv_recursive(partial(play, action), player, cfreach * strategy[action])
        return result

    def _cfvalue_recursive(self, acquire: Acquire, player: int, cfreach: np.ndarray) -> np.ndarray:
        """Values of `player` under both average strategies; stores them at `player`'s nodes."""
        with acquire() as node:
            if node.is_terminal():
                return self._terminal_values(node, player, cfreach)

            num_actions = node.num_actions()
            is_chance = node.is_chance()
            if is_chance:
                cfreach_updated = cfreach * np.float32(node.chance_factor())
                swaps = self._isomorphic_swaps(node, player)
            else:
                is_own = node.player() == player
                strategy = normalize_strategy(self._strategy_buffer(node), num_actions)
            play = node.play

        if is_chance:
            cfv_actions = np.stack([
                self._cfvalue_recursive(partial(play, action), player, cfreach_updated)
                for action in range(num_actions)
            ])
            return _sum_chance_values(cfv_actions, swaps)

        if not is_own:
            result = np.zeros(self.game.num_private_hands(player), dtype=np.float32)
            for action in range(num_actions):
                result += self._cfvalue_recursive(partial(play, action), player, cfreach * strategy[action])
            return result

        cfv_actions = np.stack([
            self._cfvalue_recursive(partial(play, action), player, cfreach)
            for action in range(num_actions)
        ])

        with acquire() as node:
            if self.compressed:
                node.set_expected_value_scale(
                    encode_slice(node.expected_values_compressed(), cfv_actions.ravel())
                )
            else:
                node.expected_values()[:] = cfv_actions.ravel()

        return (strategy * cfv_actions).sum(axis=0)


def _sum_chance_values(cfv_actions: np.ndarray, swaps: List[Tuple[int, SwapList]]) -> np.ndarray:
    """Sum chance children, adding each isomorphic child again with hands swapped."""
    result = cfv_actions.sum(axis=0)
    for isomorphic_index, swap_list in swaps:
        result += apply_swap(cfv_actions[isomorphic_index], swap_list)
    return result


def solve(
    game: Game,
    max_num_iterations: int,
    target_exploitability: float,
    print_progress: bool = False
) -> float:
    """
    Solve `game` in place with DCFR.

    Helper function for external use.

    Returns:
        Exploitability reached
    """
    solver = DiscountedCFR(
        game,
        max_iterations=max_num_iterations,
        target_exploitability=target_exploitability,
        print_progress=print_progress,
    )
    return solver.solve()


def compute_exploitability(game: Game) -> float:
    """Exploitability of the average strategy currently stored in `game`."""
    return DiscountedCFR(game).exploitability()


def root_expected_value(game: Game) -> float:
    """
    Expected value of the first player at the root of a solved game.

    Normalizes the root's cumulative strategy per hand and weights the
    stored per-action values with it.
    """
    if not game.is_solved():
        raise PreconditionError("expected values are only available once the game is solved")

    with game.root() as root:
        num_actions = root.num_actions()
        if game.is_compression_enabled():
            strategy = normalize_strategy(root.strategy_compressed(), num_actions)
            values = decode_slice(root.expected_values_compressed(), root.expected_value_scale())
        else:
            strategy = normalize_strategy(root.strategy(), num_actions)
            values = root.expected_values()
        return float((as_matrix(values, num_actions) * strategy).sum())
