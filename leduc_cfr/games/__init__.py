"""
Game definitions layer (Layer 1 - lowest).

The Leduc game tree, its node storage and the terminal evaluator.
It must not import from any other leduc_cfr layer.
"""
