from __future__ import annotations

from taxonomy.models.category import CategoryNode, CategoryStats
from taxonomy.services.category_tree.builder import iter_preorder
from taxonomy.services.category_tree.errors import TreeInvariantError


def compute_stats(forest: list[CategoryNode]) -> CategoryStats:
    total = 0
    active = 0
    for node, _depth in iter_preorder(forest):
        total += 1
        if node.status:
            active += 1
    roots = len(forest)
    subcategories = total - roots
    if subcategories < 0:
        raise TreeInvariantError(
            code="TREE_INVARIANT_BROKEN",
            message=f"Forest reports {roots} roots but only {total} categories",
        )
    return CategoryStats(total=total, active=active, roots=roots, subcategories=subcategories)
