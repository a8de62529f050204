"""
Solve Leduc Poker with DCFR and print the root strategy:
- 6 cards (J, Q, K, two copies each), ante 1
- Raise increments 2 / 4, one bet and one raise per round
- Expected game value for the first player: -0.0856
"""

import argparse
import logging
import time

from leduc_cfr.games.cards import NUM_PRIVATE_HANDS, card_name
from leduc_cfr.games.leduc import LeducPoker, tree_stats
from leduc_cfr.engine.ops import normalize_strategy
from leduc_cfr.solvers.dcfr import DiscountedCFR, root_expected_value


def parse_args():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--iterations", type=int, default=1000,
                        help="maximum number of DCFR iterations")
    parser.add_argument("--target", type=float, default=1e-4,
                        help="stop once exploitability is at or below this")
    parser.add_argument("--compress", action="store_true",
                        help="store buffers as 16-bit integers")
    return parser.parse_args()


def main():
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    print("=" * 70)
    print("Leduc Poker DCFR Solver")
    print("=" * 70)

    game = LeducPoker(is_compression_enabled=args.compress)
    with game.root() as root:
        stats = tree_stats(root)

    print("\nGame Setup:")
    print(f"  Decision nodes: {stats['decision']}")
    print(f"  Chance nodes: {stats['chance']}")
    print(f"  Terminal nodes: {stats['terminal']}")
    print(f"  Compression: {'on' if args.compress else 'off'}")

    solver = DiscountedCFR(
        game,
        max_iterations=args.iterations,
        target_exploitability=args.target,
        print_progress=True,
    )

    print(f"\nRunning up to {args.iterations} iterations...")
    start = time.time()
    exploitability = solver.solve()
    elapsed = time.time() - start
    rate = solver.iterations / elapsed if elapsed > 0 else 0.0
    print(f"Done in {elapsed:.2f}s ({solver.iterations} iterations, {rate:.1f} iter/s)")
    print(f"Exploitability: {exploitability:.6e}")
    print(f"Root EV (player 1): {root_expected_value(game):+.4f}")

    print("\n--- Root (player 1 to act) ---")
    print("Card  | Check    | Bet")
    print("-" * 30)
    with game.root() as root:
        buffer = root.strategy_compressed() if args.compress else root.strategy()
        strategy = normalize_strategy(buffer, root.num_actions())
    for hand in range(NUM_PRIVATE_HANDS):
        check, bet = strategy[:, hand] * 100
        print(f"{card_name(hand):5s} | {check:6.1f}%  | {bet:6.1f}%")


if __name__ == "__main__":
    main()
