from __future__ import annotations

from taxonomy.models.category import ParentCandidate
from taxonomy.services.category_tree.builder import CategoryTree, collect_subtree_ids, iter_preorder


ROOT_LABEL = "root"


def list_parent_candidates(tree: CategoryTree, exclude_node_id: int | None = None) -> list[ParentCandidate]:
    """Every possible parent for a category form, in tree order.

    The edited node and its descendants stay in the list with ``eligible=False`` so the
    form can still show the whole tree.
    """
    blocked: set[int] = set()
    if exclude_node_id is not None:
        excluded = tree.get(exclude_node_id)
        if excluded is not None:
            blocked = collect_subtree_ids(excluded)

    candidates = [ParentCandidate(id=None, label=ROOT_LABEL, depth=0, path=[], eligible=True)]
    for node, depth in iter_preorder(tree.roots):
        candidates.append(
            ParentCandidate(
                id=int(node.id),
                label=node.name,
                depth=depth,
                path=list(node.path),
                eligible=int(node.id) not in blocked,
            )
        )
    return candidates
