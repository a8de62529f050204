"""
Compute engine layer (Layer 2).

This layer provides the vector operations shared by the CFR solvers.
It may only import from: leduc_cfr.games
"""

from leduc_cfr.engine.ops import (
    as_matrix,
    regret_match,
    normalize_strategy,
    apply_swap,
    discount_cum_strategy,
    discount_cum_regret,
    discount_cum_strategy_compressed,
    discount_cum_regret_compressed,
)

__all__ = [
    'as_matrix',
    'regret_match',
    'normalize_strategy',
    'apply_swap',
    'discount_cum_strategy',
    'discount_cum_regret',
    'discount_cum_strategy_compressed',
    'discount_cum_regret_compressed',
]
