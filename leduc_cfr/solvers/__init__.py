"""
CFR solver algorithms layer (Layer 3 - highest).

This layer drives games through the `Game` / `GameNode` contract.
It may import from: leduc_cfr.games, leduc_cfr.engine
"""

from leduc_cfr.solvers.dcfr import (
    DiscountedCFR,
    DiscountParams,
    compute_exploitability,
    root_expected_value,
    solve,
)

__all__ = [
    'DiscountedCFR',
    'DiscountParams',
    'compute_exploitability',
    'root_expected_value',
    'solve',
]
