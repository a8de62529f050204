"""
Tests for the Discounted CFR solver.

Run with: pytest tests/test_dcfr.py -v
"""

import logging

import numpy as np
import pytest

from leduc_cfr.games.base import NodeKind, Player, PreconditionError
from leduc_cfr.games.cards import NUM_CARDS
from leduc_cfr.games.hand_eval import showdown_sign
from leduc_cfr.games.leduc import LeducPoker, iter_nodes
from leduc_cfr.solvers.dcfr import (
    DiscountParams,
    DiscountedCFR,
    compute_exploitability,
    root_expected_value,
    solve,
)


def _uniform_value(node, my_card, opp_card, board):
    """Player 1's payoff under uniform play for one fixed deal, in chips."""
    if node.tag.kind == NodeKind.FOLD:
        return -node.amount if node.player() == Player.PLAYER_1 else node.amount
    if node.tag.kind == NodeKind.SHOWDOWN:
        return showdown_sign(my_card, opp_card, board) * node.amount
    if node.is_chance():
        # child i stands for the rank of board card 2 * i
        return _uniform_value(node.children[board // 2][1], my_card, opp_card, board)
    values = [_uniform_value(child, my_card, opp_card, board) for _, child in node.children]
    return sum(values) / len(values)


class TestDiscountParams:
    """Test per-iteration discount factors."""

    def test_first_iterations(self):
        for t in (0, 1):
            params = DiscountParams.for_iteration(t)
            assert params.alpha_t == 0.0
            assert params.gamma_t == 0.0
        assert DiscountParams.for_iteration(0).beta_t == 0.5

    def test_alpha(self):
        assert DiscountParams.for_iteration(2).alpha_t == pytest.approx(0.5)
        # (5 - 1)^1.5 = 8
        assert DiscountParams.for_iteration(5).alpha_t == pytest.approx(8 / 9)

    def test_gamma_restarts_at_powers_of_four(self):
        assert DiscountParams.for_iteration(2).gamma_t == pytest.approx(1 / 8)
        assert DiscountParams.for_iteration(4).gamma_t == 0.0
        assert DiscountParams.for_iteration(5).gamma_t == pytest.approx(1 / 8)
        assert DiscountParams.for_iteration(15).gamma_t == pytest.approx((11 / 12) ** 3)
        assert DiscountParams.for_iteration(16).gamma_t == 0.0
        assert DiscountParams.for_iteration(64).gamma_t == 0.0

    def test_alpha_approaches_one(self):
        assert 0.999 < DiscountParams.for_iteration(1000).alpha_t < 1.0


class TestSolverArguments:
    """Test constructor validation and solve-once semantics."""

    def test_negative_iterations(self):
        with pytest.raises(ValueError):
            DiscountedCFR(LeducPoker(), max_iterations=-1)

    def test_negative_target(self):
        with pytest.raises(ValueError):
            DiscountedCFR(LeducPoker(), target_exploitability=-1e-3)

    def test_zero_iterations(self):
        """Nothing to iterate: values are still stored and the game is solved."""
        game = LeducPoker()
        exploitability = solve(game, 0, 1e-3)
        assert game.is_solved()
        assert exploitability > 0.0

    def test_solve_once(self):
        game = LeducPoker()
        solver = DiscountedCFR(game, max_iterations=2)
        solver.solve()
        with pytest.raises(PreconditionError):
            solver.solve()
        with pytest.raises(PreconditionError):
            solver.iterate(1)

    def test_target_already_met(self):
        game = LeducPoker()
        solver = DiscountedCFR(game, max_iterations=100, target_exploitability=10.0)
        solver.solve()
        assert solver.iterations == 0
        assert game.is_solved()


class TestConvergence:
    """Test that DCFR drives exploitability down."""

    def test_iterate_counts(self):
        solver = DiscountedCFR(LeducPoker())
        solver.iterate(3)
        assert solver.iterations == 3

    def test_uniform_exploitability(self):
        """Uniform play is far from equilibrium."""
        assert compute_exploitability(LeducPoker()) > 1.0

    def test_exploitability_decreases(self):
        game = LeducPoker()
        solver = DiscountedCFR(game)
        initial = solver.exploitability()

        solver.iterate(50)
        after_50 = solver.exploitability()
        solver.iterate(150)
        after_200 = solver.exploitability()

        assert after_50 < initial / 5
        assert after_200 < after_50
        assert after_200 >= -1e-6

    def test_stops_on_check_interval(self):
        game = LeducPoker()
        solver = DiscountedCFR(game, max_iterations=1000, target_exploitability=1e-2)
        exploitability = solver.solve()
        assert exploitability <= 1e-2
        assert solver.iterations % 10 == 0
        assert solver.iterations < 1000

    def test_stops_at_iteration_cap(self):
        solver = DiscountedCFR(LeducPoker(), max_iterations=13, target_exploitability=0.0)
        solver.solve()
        assert solver.iterations == 13

    def test_compressed_converges(self):
        game = LeducPoker(is_compression_enabled=True)
        solver = DiscountedCFR(game)
        initial = solver.exploitability()
        solver.iterate(100)
        assert solver.exploitability() < initial / 5

    def test_locks_released(self):
        game = LeducPoker()
        DiscountedCFR(game).iterate(2)
        with game.root() as root:
            pass
        assert not any(node.mutex.locked for _, node in iter_nodes(root))


class TestExpectedValues:
    """Test stored values after finalization."""

    def test_requires_solved_game(self):
        with pytest.raises(PreconditionError):
            root_expected_value(LeducPoker())

    def test_uniform_root_value_matches_enumeration(self):
        """
        With untouched buffers both players play uniformly. Enumerating all
        120 deals by hand must give the same root value as the solver's
        vector traversal, which only holds if the chance weighting is right.
        """
        game = LeducPoker()
        DiscountedCFR(game).finalize()

        with game.root() as root:
            total = 0.0
            num_deals = 0
            for my_card in range(NUM_CARDS):
                for opp_card in range(NUM_CARDS):
                    for board in range(NUM_CARDS):
                        if len({my_card, opp_card, board}) < 3:
                            continue
                        total += _uniform_value(root, my_card, opp_card, board)
                        num_deals += 1

        assert num_deals == 120
        assert root_expected_value(game) == pytest.approx(total / num_deals, abs=1e-5)

    def test_values_stored_for_both_players(self):
        game = LeducPoker()
        DiscountedCFR(game).finalize()
        with game.root() as root:
            first = root.expected_values().copy()
            with root.play(0) as after_check:
                second = after_check.expected_values().copy()
        assert np.any(first != 0.0)
        assert np.any(second != 0.0)

    def test_compressed_values_decode(self):
        game = LeducPoker(is_compression_enabled=True)
        solver = DiscountedCFR(game)
        solver.iterate(20)
        solver.finalize()
        with game.root() as root:
            assert root.expected_value_scale() > 0.0
        assert np.isfinite(root_expected_value(game))


class TestProgressLogging:
    """Test exploitability reporting."""

    def test_info_when_printing(self, caplog):
        with caplog.at_level(logging.INFO, logger="leduc_cfr.solvers.dcfr"):
            solve(LeducPoker(), 10, 0.0, print_progress=True)
        messages = [r.getMessage() for r in caplog.records if r.levelno == logging.INFO]
        assert messages[0].startswith("iteration 0: exploitability")
        assert messages[-1].startswith("iteration 10: exploitability")

    def test_quiet_by_default(self, caplog):
        with caplog.at_level(logging.INFO, logger="leduc_cfr.solvers.dcfr"):
            solve(LeducPoker(), 10, 0.0)
        assert not [r for r in caplog.records if r.name == "leduc_cfr.solvers.dcfr"]
