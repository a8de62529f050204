"""Verify Leduc game tree structure."""

from leduc_cfr.games.cards import card_name
from leduc_cfr.games.leduc import LeducPoker, iter_nodes, tree_stats

game = LeducPoker()

with game.root() as root:
    stats = tree_stats(root)
    nodes = list(iter_nodes(root))

print("Tree Size:")
for kind, count in stats.items():
    print(f"  {kind}: {count}")
print()

print("Game Tree Structure (round 1 and the first board):")
print("-" * 60)
for history, node in nodes:
    # one board is enough, the other two subtrees repeat it
    if any(action.kind.name == "CHANCE" and action.amount != 0 for action in history):
        continue
    path = " -> ".join(str(action) for action in history) or "(root)"
    print(f"{path}: {node.tag.kind.name}")
    print(f"  pot={node.amount}, player={node.player()}, board={card_name(node.board)}")
    if node.children:
        print(f"  actions={[str(action) for action in node.actions()]}")
print()

print("Action Path Examples:")
print("Bet(2) -> Fold: player 2 loses the ante, pot=1")
print("Bet(2) -> Raise(4) -> Call -> board: pot=5 each")
print("... -> Bet(4) -> Raise(8) -> Call -> Showdown: pot=13 each")
