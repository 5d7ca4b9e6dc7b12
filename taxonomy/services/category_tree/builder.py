from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator

from taxonomy.models.category import CategoryFlatNode, CategoryNode, CategoryRecord
from taxonomy.services.category_tree.errors import CategoryNotFoundError, MalformedTreeError
from taxonomy.services.category_tree.slugs import first_free_slug, slugify


logger = logging.getLogger(__name__)


def _as_record(item: Any) -> CategoryRecord:
    if isinstance(item, CategoryRecord):
        return item
    if isinstance(item, CategoryFlatNode):
        return item.as_record()
    if isinstance(item, CategoryNode):
        return item.to_record()
    if isinstance(item, dict):
        return CategoryRecord.from_dict(item)
    raise TypeError(f"unsupported category record type: {type(item).__name__}")


def sibling_sort_key(node: CategoryNode) -> tuple:
    # position ascending, missing positions last, then id
    return (node.position is None, int(node.position or 0), int(node.id))


def sort_siblings(nodes: list[CategoryNode]) -> None:
    nodes.sort(key=sibling_sort_key)


def assign_paths(nodes: list[CategoryNode], parent_path: list[str] | None = None) -> None:
    """Regenerate ``path`` for ``nodes`` and everything below them."""
    base = list(parent_path or [])
    stack = [(node, base) for node in reversed(nodes)]
    while stack:
        node, prefix = stack.pop()
        node.path = prefix + [node.name]
        for child in reversed(node.children):
            stack.append((child, node.path))


def _dedupe_records(records: Iterable[Any]) -> tuple[dict[int, CategoryRecord], list[MalformedTreeError]]:
    by_id: dict[int, CategoryRecord] = {}
    duplicates: list[int] = []
    for item in records:
        record = _as_record(item)
        rid = int(record.id)
        if rid in by_id:
            duplicates.append(rid)
            continue
        by_id[rid] = record
    anomalies: list[MalformedTreeError] = []
    if duplicates:
        anomalies.append(
            MalformedTreeError(
                code="DUPLICATE_ID",
                message="Duplicate category ids in input; first occurrence kept",
                node_ids=sorted(set(duplicates)),
            )
        )
    return by_id, anomalies


def _break_cycles(parent_of: dict[int, int | None]) -> list[MalformedTreeError]:
    """Walk parent chains; promote the lowest id of every cycle to root in place."""
    anomalies: list[MalformedTreeError] = []
    state: dict[int, int] = {}
    for start in sorted(parent_of):
        if state.get(start):
            continue
        chain: list[int] = []
        current = start
        while current is not None and not state.get(current):
            state[current] = 1
            chain.append(current)
            current = parent_of.get(current)
        if current is not None and state.get(current) == 1:
            cycle = chain[chain.index(current):]
            promoted = min(cycle)
            parent_of[promoted] = None
            anomalies.append(
                MalformedTreeError(
                    code="CYCLE_DETECTED",
                    message=f"Parent links form a cycle; category {promoted} promoted to root",
                    node_ids=sorted(cycle),
                )
            )
        for node_id in chain:
            state[node_id] = 2
    return anomalies


def _resolve_slugs(by_id: dict[int, CategoryRecord]) -> tuple[dict[int, str], dict[str, list[int]]]:
    """Supplied slugs as given; missing ones derived from the name and suffixed until free."""
    slugs: dict[int, str] = {}
    owners: dict[str, list[int]] = {}
    missing: list[int] = []
    for rid in sorted(by_id):
        slug = (by_id[rid].slug or "").strip()
        if slug:
            slugs[rid] = slug
            owners.setdefault(slug, []).append(rid)
        else:
            missing.append(rid)
    for rid in missing:
        slug = first_free_slug(slugify(by_id[rid].name), lambda s: s in owners)
        slugs[rid] = slug
        owners[slug] = [rid]
    return slugs, owners


def _duplicate_slug_anomalies(owners: dict[str, list[int]]) -> list[MalformedTreeError]:
    anomalies: list[MalformedTreeError] = []
    for slug, ids in sorted(owners.items()):
        if len(ids) > 1:
            anomalies.append(
                MalformedTreeError(
                    code="DUPLICATE_SLUG",
                    message=f"Slug '{slug}' is used by more than one category",
                    node_ids=sorted(ids),
                )
            )
    return anomalies


def build_tree_report(records: Iterable[Any]) -> tuple[list[CategoryNode], list[MalformedTreeError]]:
    """Build a forest from flat records and report what had to be repaired.

    Records whose parent is missing from the input become roots. Cycles in the raw
    parent links are broken by promoting the lowest id of each cycle to root, so no
    record is ever dropped.
    """
    by_id, anomalies = _dedupe_records(records)

    parent_of: dict[int, int | None] = {}
    for rid, record in by_id.items():
        pid = record.parent_id
        if pid is not None and int(pid) not in by_id:
            logger.info("category_orphan_promoted id=%s missing_parent=%s", rid, pid)
            pid = None
        parent_of[rid] = int(pid) if pid is not None else None

    anomalies.extend(_break_cycles(parent_of))
    slugs, slug_owners = _resolve_slugs(by_id)
    anomalies.extend(_duplicate_slug_anomalies(slug_owners))

    nodes: dict[int, CategoryNode] = {}
    for rid, record in by_id.items():
        node = CategoryNode.from_record(record)
        node.parent_id = parent_of[rid]
        node.slug = slugs[rid]
        nodes[rid] = node

    roots: list[CategoryNode] = []
    for rid, node in nodes.items():
        pid = parent_of[rid]
        if pid is None:
            roots.append(node)
        else:
            nodes[pid].children.append(node)

    sort_siblings(roots)
    for node in nodes.values():
        if node.children:
            sort_siblings(node.children)
    assign_paths(roots)

    for anomaly in anomalies:
        logger.warning("category_tree_anomaly code=%s ids=%s", anomaly.code, anomaly.node_ids)
    return roots, anomalies


def build_tree(records: Iterable[Any], *, strict: bool = False) -> list[CategoryNode]:
    roots, anomalies = build_tree_report(records)
    if strict and anomalies:
        raise anomalies[0]
    return roots


def iter_preorder(forest: list[CategoryNode]) -> Iterator[tuple[CategoryNode, int]]:
    stack = [(node, 0) for node in reversed(forest)]
    while stack:
        node, depth = stack.pop()
        yield node, depth
        for child in reversed(node.children):
            stack.append((child, depth + 1))


def flatten(forest: list[CategoryNode]) -> list[CategoryFlatNode]:
    return [CategoryFlatNode.from_node(node, depth) for node, depth in iter_preorder(forest)]


def records_from_flat(flat: Iterable[CategoryFlatNode]) -> list[CategoryRecord]:
    return [item.as_record() for item in flat]


def collect_subtree_ids(node: CategoryNode) -> set[int]:
    ids: set[int] = set()
    stack = [node]
    while stack:
        current = stack.pop()
        if current.id in ids:
            continue
        ids.add(int(current.id))
        stack.extend(current.children)
    return ids


def collect_descendant_ids(node: CategoryNode) -> set[int]:
    ids = collect_subtree_ids(node)
    ids.discard(int(node.id))
    return ids


def copy_forest(forest: list[CategoryNode]) -> list[CategoryNode]:
    """Structural copy sharing no mutable state with ``forest``."""
    roots = [node.copy() for node in forest]
    stack = list(zip(forest, roots))
    while stack:
        source, target = stack.pop()
        for child in source.children:
            child_copy = child.copy()
            target.children.append(child_copy)
            stack.append((child, child_copy))
    return roots


def find_node(forest: list[CategoryNode], node_id: int) -> CategoryNode | None:
    for node, _depth in iter_preorder(forest):
        if node.id == node_id:
            return node
    return None


class CategoryTree:
    """Caller-owned snapshot: the forest plus an id index over its nodes."""

    def __init__(self, roots: list[CategoryNode] | None = None, *, anomalies: list[MalformedTreeError] | None = None):
        self.roots: list[CategoryNode] = list(roots or [])
        self.anomalies: list[MalformedTreeError] = list(anomalies or [])
        self.nodes: dict[int, CategoryNode] = {}
        self.slugs: dict[str, set[int]] = {}
        self.reindex()

    @classmethod
    def from_records(cls, records: Iterable[Any], *, strict: bool = False) -> "CategoryTree":
        roots, anomalies = build_tree_report(records)
        if strict and anomalies:
            raise anomalies[0]
        return cls(roots, anomalies=anomalies)

    def reindex(self) -> None:
        self.nodes = {}
        self.slugs = {}
        for node, _depth in iter_preorder(self.roots):
            self.nodes[int(node.id)] = node
            if node.slug:
                self.slugs.setdefault(node.slug, set()).add(int(node.id))

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id) -> bool:
        return node_id in self.nodes

    def get(self, node_id: int | None) -> CategoryNode | None:
        if node_id is None:
            return None
        return self.nodes.get(int(node_id))

    def require(self, node_id: int) -> CategoryNode:
        node = self.get(node_id)
        if node is None:
            raise CategoryNotFoundError(
                code="CATEGORY_NOT_FOUND",
                message=f"Category {node_id} not found",
                category_id=node_id,
            )
        return node

    def parent_of(self, node_id: int) -> CategoryNode | None:
        node = self.get(node_id)
        if node is None:
            return None
        return self.get(node.parent_id)

    def siblings_for(self, parent_id: int | None) -> list[CategoryNode]:
        if parent_id is None:
            return self.roots
        return self.require(parent_id).children

    def depth_of(self, node_id: int) -> int:
        return max(0, len(self.require(node_id).path) - 1)

    def slug_owners(self, slug: str) -> set[int]:
        return set(self.slugs.get(slug) or ())

    def slug_owner(self, slug: str) -> int | None:
        owners = self.slugs.get(slug)
        return min(owners) if owners else None

    def slug_taken(self, slug: str, *, exclude_id: int | None = None) -> bool:
        owners = self.slugs.get(slug) or set()
        return any(owner != exclude_id for owner in owners)

    def claim_slug(self, slug: str, node_id: int) -> None:
        self.slugs.setdefault(slug, set()).add(int(node_id))

    def release_slug(self, slug: str, node_id: int) -> None:
        owners = self.slugs.get(slug)
        if owners is None:
            return
        owners.discard(int(node_id))
        if not owners:
            del self.slugs[slug]

    def to_records(self) -> list[CategoryRecord]:
        return records_from_flat(flatten(self.roots))

    def snapshot(self) -> "CategoryTree":
        return CategoryTree(copy_forest(self.roots), anomalies=list(self.anomalies))


def describe_category(tree: CategoryTree, node_id: int) -> CategoryFlatNode:
    node = tree.require(node_id)
    return CategoryFlatNode.from_node(node, tree.depth_of(node_id))
