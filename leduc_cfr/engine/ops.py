"""
Core vector-form CFR operations.

All buffers are flat, action-major arrays of length num_actions * num_hands
(entry a * num_hands + h). Operations return (num_actions, num_hands) float32
matrices so they broadcast against per-hand vectors.

Quantized buffers (uint16 strategies, int16 regrets) are accepted wherever
only ratios matter (regret matching, normalization), because a common scale
factor cancels out.
"""

from typing import List, Tuple

import numpy as np

from leduc_cfr.games.storage import I16_MAX, U16_MAX, encode_slice


def as_matrix(buffer: np.ndarray, num_actions: int) -> np.ndarray:
    """View a flat action-major buffer as (num_actions, num_hands)."""
    assert buffer.shape[0] % num_actions == 0, \
        f"buffer of {buffer.shape[0]} does not split into {num_actions} actions"
    return buffer.reshape(num_actions, -1)


def regret_match(cum_regret: np.ndarray, num_actions: int) -> np.ndarray:
    """
    Convert cumulative regrets to a strategy via regret matching.

    For each hand h:
        positive_regrets = max(0, regrets[:, h])
        if sum(positive_regrets) > 0:
            strategy[:, h] = positive_regrets / sum(positive_regrets)
        else:
            strategy[:, h] = uniform over actions

    Args:
        cum_regret: Flat regret buffer (float32 or int16)
        num_actions: Number of actions at the node

    Returns:
        strategy: Shape (num_actions, num_hands)
    """
    positive = np.maximum(as_matrix(cum_regret, num_actions).astype(np.float32), 0.0)
    return _normalize_columns(positive, num_actions)


def normalize_strategy(cum_strategy: np.ndarray, num_actions: int) -> np.ndarray:
    """
    Average strategy from a cumulative strategy buffer (float32 or uint16).

    Hands with no accumulated mass get the uniform strategy.
    """
    mass = as_matrix(cum_strategy, num_actions).astype(np.float32)
    return _normalize_columns(mass, num_actions)


def _normalize_columns(weights: np.ndarray, num_actions: int) -> np.ndarray:
    total = weights.sum(axis=0)
    positive = total > 0.0
    safe_total = np.where(positive, total, 1.0)
    return np.where(positive, weights / safe_total, np.float32(1.0 / num_actions)).astype(np.float32)


def apply_swap(values: np.ndarray, swap_list: List[Tuple[int, int]]) -> np.ndarray:
    """Copy of `values` with each (i, j) pair of hand indices exchanged."""
    swapped = values.copy()
    for i, j in swap_list:
        swapped[i], swapped[j] = values[j], values[i]
    return swapped


def discount_cum_strategy(cum_strategy: np.ndarray, strategy: np.ndarray, gamma: float) -> None:
    """cum_strategy = gamma * cum_strategy + strategy, in place."""
    cum_strategy *= np.float32(gamma)
    cum_strategy += strategy.ravel()


def discount_cum_regret(
    cum_regret: np.ndarray,
    cfv_actions: np.ndarray,
    node_value: np.ndarray,
    alpha: float,
    beta: float
) -> None:
    """
    Discounted regret update, in place.

    Non-negative cumulative regrets are scaled by alpha, negative ones by
    beta, then the instantaneous regret cfv(a) - v is added.
    """
    coef = np.where(cum_regret >= 0.0, np.float32(alpha), np.float32(beta))
    cum_regret *= coef
    cum_regret += (cfv_actions - node_value).ravel()


def discount_cum_strategy_compressed(
    cum_strategy: np.ndarray,
    scale: float,
    strategy: np.ndarray,
    gamma: float
) -> float:
    """
    Quantized variant of `discount_cum_strategy` on a uint16 buffer.

    Returns:
        The new scale of `cum_strategy`
    """
    decoder = gamma * scale / U16_MAX
    updated = strategy.ravel() + cum_strategy.astype(np.float32) * np.float32(decoder)
    return encode_slice(cum_strategy, updated)


def discount_cum_regret_compressed(
    cum_regret: np.ndarray,
    scale: float,
    cfv_actions: np.ndarray,
    node_value: np.ndarray,
    alpha: float,
    beta: float
) -> float:
    """
    Quantized variant of `discount_cum_regret` on an int16 buffer.

    Returns:
        The new scale of `cum_regret`
    """
    alpha_decoder = np.float32(alpha * scale / I16_MAX)
    beta_decoder = np.float32(beta * scale / I16_MAX)
    raw = cum_regret.astype(np.float32)
    decoded = raw * np.where(raw >= 0.0, alpha_decoder, beta_decoder)
    updated = (cfv_actions - node_value).ravel() + decoded
    return encode_slice(cum_regret, updated)
