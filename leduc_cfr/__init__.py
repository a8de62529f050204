"""
Leduc Poker Game Model for CFR Solvers

An explicit game tree for Leduc poker whose nodes expose strategy, regret
and expected-value buffers (full-precision or quantized), together with the
terminal payoff evaluator and a reference Discounted CFR solver.
"""

__version__ = "0.1.0"
