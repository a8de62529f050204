"""
Tests for terminal evaluation.

Payoffs are normalized by the 30 ordered (own, opp) card pairs, so a hand
that beats all 5 opponent cards in an unraised pot is worth 5/30.

Run with: pytest tests/test_evaluate.py -v
"""

import numpy as np
import pytest

from leduc_cfr.games.base import Action, NodeKind, Player, PreconditionError
from leduc_cfr.games.cards import NUM_PRIVATE_HANDS
from leduc_cfr.games.leduc import LeducPoker, iter_nodes


CHECK = Action.CHECK


def _node_at(root, *history):
    """Follow `history` from the root without taking locks."""
    node = root
    for action in history:
        node = dict(node.children)[action]
    return node


@pytest.fixture(scope="module")
def game():
    return LeducPoker()


@pytest.fixture(scope="module")
def root(game):
    with game.root() as node:
        pass
    return node


def _evaluate(game, node, player, cfreach=None):
    result = np.zeros(NUM_PRIVATE_HANDS, dtype=np.float32)
    if cfreach is None:
        cfreach = np.ones(NUM_PRIVATE_HANDS, dtype=np.float32)
    game.evaluate(result, node, player, cfreach)
    return result


class TestFoldPayoff:
    """Test fold terminals."""

    def test_bet_fold(self, game, root):
        """Player 2 folds to the opening bet: player 1 wins the ante."""
        fold = _node_at(root, Action.bet(2), Action.FOLD)
        assert fold.tag.kind == NodeKind.FOLD

        winner = _evaluate(game, fold, Player.PLAYER_1)
        loser = _evaluate(game, fold, Player.PLAYER_2)

        np.testing.assert_allclose(winner, np.full(NUM_PRIVATE_HANDS, 5 / 30), rtol=1e-6)
        np.testing.assert_allclose(loser, -winner, rtol=1e-6)

    def test_fold_skips_board_card(self, game, root):
        """Hands holding the board card get nothing; opponents exclude it."""
        fold = _node_at(root, CHECK, CHECK, Action.chance(2), Action.bet(4), Action.FOLD)
        result = _evaluate(game, fold, Player.PLAYER_1)

        assert result[2] == 0.0
        expected = 4 * fold.amount / 30
        for hand in (0, 1, 3, 4, 5):
            assert result[hand] == pytest.approx(expected)

    def test_fold_weights_opponent_reach(self, game, root):
        fold = _node_at(root, Action.bet(2), Action.FOLD)
        cfreach = np.array([1, 0, 0, 0, 0, 0], dtype=np.float32)
        result = _evaluate(game, fold, Player.PLAYER_1, cfreach)

        assert result[0] == 0.0
        np.testing.assert_allclose(result[1:], np.full(5, 1 / 30), rtol=1e-6)


class TestShowdownPayoff:
    """Test showdown terminals."""

    def test_checked_down_on_jack(self, game, root):
        showdown = _node_at(root, CHECK, CHECK, Action.chance(0), CHECK, CHECK)
        assert showdown.tag.kind == NodeKind.SHOWDOWN
        assert showdown.amount == 1

        result = _evaluate(game, showdown, Player.PLAYER_1)

        # J1 pairs the board and beats Q0, Q1, K0, K1
        assert result[1] == pytest.approx(4 / 30)
        # K0: loses to J1, beats both queens, splits with K1
        assert result[4] == pytest.approx(1 / 30)
        # Q0: loses to J1, K0, K1, splits with Q1
        assert result[2] == pytest.approx(-3 / 30)
        # J0 is the board card
        assert result[0] == 0.0

    def test_same_values_for_both_seats(self, game, root):
        """Showdown payoffs do not depend on who closed the action."""
        showdown = _node_at(root, CHECK, CHECK, Action.chance(4), CHECK, CHECK)
        np.testing.assert_array_equal(
            _evaluate(game, showdown, Player.PLAYER_1),
            _evaluate(game, showdown, Player.PLAYER_2),
        )

    def test_scales_with_pot(self, game, root):
        small = _node_at(root, CHECK, CHECK, Action.chance(0), CHECK, CHECK)
        big = _node_at(root, Action.bet(2), Action.CALL, Action.chance(0), CHECK, CHECK)
        assert big.amount == 3
        np.testing.assert_allclose(
            _evaluate(game, big, Player.PLAYER_1),
            3 * _evaluate(game, small, Player.PLAYER_1),
            rtol=1e-6,
        )


class TestZeroSum:
    """With the same reach on both sides, the two players' values cancel."""

    def test_every_terminal(self, game, root):
        rng = np.random.default_rng(7)
        reach = rng.random(NUM_PRIVATE_HANDS).astype(np.float32)

        for _, node in iter_nodes(root):
            if not node.is_terminal():
                continue
            total = 0.0
            for player in (Player.PLAYER_1, Player.PLAYER_2):
                total += float(np.dot(reach, _evaluate(game, node, player, reach)))
            assert total == pytest.approx(0.0, abs=1e-5)


class TestEvaluateContract:
    """Test accumulation and preconditions."""

    def test_accumulates_into_result(self, game, root):
        fold = _node_at(root, Action.bet(2), Action.FOLD)
        result = np.full(NUM_PRIVATE_HANDS, 1.0, dtype=np.float32)
        cfreach = np.ones(NUM_PRIVATE_HANDS, dtype=np.float32)

        game.evaluate(result, fold, Player.PLAYER_1, cfreach)
        game.evaluate(result, fold, Player.PLAYER_1, cfreach)

        np.testing.assert_allclose(result, 1.0 + 2 * 5 / 30, rtol=1e-6)

    def test_inputs_untouched(self, game, root):
        fold = _node_at(root, Action.bet(2), Action.FOLD)
        cfreach = np.linspace(0.1, 0.6, NUM_PRIVATE_HANDS).astype(np.float32)
        before = cfreach.copy()

        _evaluate(game, fold, Player.PLAYER_2, cfreach)

        np.testing.assert_array_equal(cfreach, before)
        assert fold.amount == 1
        assert fold.tag.kind == NodeKind.FOLD

    def test_accepts_reach_list(self, game, root):
        fold = _node_at(root, Action.bet(2), Action.FOLD)
        result = np.zeros(NUM_PRIVATE_HANDS, dtype=np.float32)
        game.evaluate(result, fold, Player.PLAYER_1, [1.0] * NUM_PRIVATE_HANDS)
        assert result[0] == pytest.approx(5 / 30)

    def test_rejects_decision_node(self, game, root):
        with pytest.raises(PreconditionError):
            _evaluate(game, root, Player.PLAYER_1)

    def test_rejects_chance_node(self, game, root):
        chance = _node_at(root, CHECK, CHECK)
        assert chance.is_chance()
        with pytest.raises(PreconditionError):
            _evaluate(game, chance, Player.PLAYER_1)

    def test_rejects_bad_player(self, game, root):
        fold = _node_at(root, Action.bet(2), Action.FOLD)
        with pytest.raises(PreconditionError):
            _evaluate(game, fold, 2)

    def test_rejects_bad_shapes(self, game, root):
        fold = _node_at(root, Action.bet(2), Action.FOLD)
        with pytest.raises(PreconditionError):
            game.evaluate(np.zeros(5, dtype=np.float32), fold, 0, np.ones(6))
        with pytest.raises(PreconditionError):
            game.evaluate(np.zeros(6, dtype=np.float32), fold, 0, np.ones(5))
