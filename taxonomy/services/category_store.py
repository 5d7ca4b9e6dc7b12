from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from typing import Any, Iterable, Iterator

from taxonomy.models.category import CategoryMutation
from taxonomy.services.category_tree import (
    CategoryTree,
    ReparentError,
    TreeLimitError,
    can_reparent,
    create_category,
    delete_category,
    iter_preorder,
    move_category,
    subtree_height,
    update_category,
)


DEFAULT_TENANT = "default"


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 1000000) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = int(default)
    else:
        try:
            value = int(raw)
        except Exception:
            value = int(default)
    if value < minimum:
        value = minimum
    if value > maximum:
        value = maximum
    return value


def normalize_tenant(value: str | None) -> str:
    tenant = (value or "").strip()[:64]
    return tenant or DEFAULT_TENANT


class CategoryStore:
    """One category tree per tenant, held in memory.

    Every write runs under that tenant's lock (validate, apply, recompute paths) so
    overlapping moves never interleave. Reads get a structural copy.
    """

    def __init__(self, *, max_nodes: int | None = None, max_depth: int | None = None):
        self.max_nodes = int(max_nodes) if max_nodes is not None else _env_int("TAXONOMY_MAX_NODES", 10000)
        self.max_depth = int(max_depth) if max_depth is not None else _env_int("TAXONOMY_MAX_DEPTH", 64)
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._trees: dict[str, CategoryTree] = {}
        self._next_ids: dict[str, int] = {}

    def _lock_for(self, tenant: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(tenant)
            if lock is None:
                lock = threading.Lock()
                self._locks[tenant] = lock
                self._trees.setdefault(tenant, CategoryTree())
                self._next_ids.setdefault(tenant, 1)
            return lock

    @contextmanager
    def writing(self, tenant: str | None) -> Iterator[CategoryTree]:
        key = normalize_tenant(tenant)
        with self._lock_for(key):
            yield self._trees[key]

    def snapshot(self, tenant: str | None) -> CategoryTree:
        with self.writing(tenant) as tree:
            return tree.snapshot()

    def _check_size(self, count: int) -> None:
        if count > self.max_nodes:
            raise TreeLimitError(
                code="TREE_TOO_LARGE",
                message=f"Category tree exceeds {self.max_nodes} nodes",
                status=413,
                limit=self.max_nodes,
                actual=count,
            )

    def _check_depth(self, depth: int) -> None:
        if depth > self.max_depth:
            raise TreeLimitError(
                code="TREE_TOO_DEEP",
                message=f"Category tree exceeds depth {self.max_depth}",
                limit=self.max_depth,
                actual=depth,
            )

    def load(self, tenant: str | None, records: Iterable[Any], *, strict: bool = False) -> CategoryTree:
        """Replace the tenant's tree with ``records``; returns a copy with anomalies."""
        rows = list(records)
        self._check_size(len(rows))
        tree = CategoryTree.from_records(rows, strict=strict)
        deepest = max((depth for _node, depth in iter_preorder(tree.roots)), default=0)
        self._check_depth(deepest)
        key = normalize_tenant(tenant)
        with self.writing(key):
            self._trees[key] = tree
            self._next_ids[key] = max(tree.nodes, default=0) + 1
            return tree.snapshot()

    def create(self, tenant: str | None, payload: dict[str, Any]) -> CategoryMutation:
        key = normalize_tenant(tenant)
        with self.writing(key) as tree:
            self._check_size(len(tree) + 1)
            parent_id = payload.get("parent_id")
            if isinstance(parent_id, int) and not isinstance(parent_id, bool) and tree.get(parent_id) is not None:
                self._check_depth(tree.depth_of(parent_id) + 1)
            mutation = create_category(
                tree,
                category_id=self._next_ids[key],
                name=payload.get("name") or "",
                slug=payload.get("slug"),
                description=payload.get("description"),
                status=payload.get("status", True),
                parent_id=parent_id,
                position=payload.get("position"),
            )
            self._next_ids[key] = mutation.category_id + 1
            return mutation

    def _check_move_depth(self, tree: CategoryTree, category_id: int, parent_id: int | None) -> None:
        if parent_id is None or can_reparent(tree, category_id, parent_id) is not None:
            return
        height = subtree_height(tree.require(category_id))
        self._check_depth(tree.depth_of(parent_id) + 1 + height)

    def update(self, tenant: str | None, category_id: int, changes: dict[str, Any]) -> CategoryMutation:
        with self.writing(tenant) as tree:
            parent_id = changes.get("parent_id")
            if isinstance(parent_id, int) and not isinstance(parent_id, bool):
                self._check_move_depth(tree, category_id, parent_id)
            return update_category(tree, category_id, changes)

    def move(
        self,
        tenant: str | None,
        category_id: int,
        parent_id: int | None,
        *,
        position: int | None = None,
    ) -> CategoryMutation:
        with self.writing(tenant) as tree:
            self._check_move_depth(tree, category_id, parent_id)
            return move_category(tree, category_id, parent_id, position=position)

    def check_move(self, tenant: str | None, category_id: int, parent_id: int | None) -> ReparentError | None:
        with self.writing(tenant) as tree:
            return can_reparent(tree, category_id, parent_id)

    def delete(self, tenant: str | None, category_id: int) -> CategoryMutation:
        with self.writing(tenant) as tree:
            return delete_category(tree, category_id)
