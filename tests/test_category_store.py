from __future__ import annotations

import os
import threading
import unittest
from unittest.mock import patch

from taxonomy.services.category_store import DEFAULT_TENANT, CategoryStore, normalize_tenant
from taxonomy.services.category_tree import (
    CategoryValidationError,
    DuplicateSlugError,
    MalformedTreeError,
    ReparentError,
    TreeLimitError,
    flatten,
)


def _records():
    return [
        {"id": 1, "name": "Shoes"},
        {"id": 2, "name": "Sandals", "parent_id": 1},
        {"id": 3, "name": "Boots", "parent_id": 1},
    ]


class CategoryStoreTestCase(unittest.TestCase):
    def test_load_and_snapshot(self):
        store = CategoryStore()
        loaded = store.load("acme", _records())
        self.assertEqual(len(loaded), 3)
        snap = store.snapshot("acme")
        snap.roots.clear()
        self.assertEqual(len(store.snapshot("acme").roots), 1)

    def test_tenants_are_isolated(self):
        store = CategoryStore()
        store.load("acme", _records())
        self.assertEqual(len(store.snapshot("other")), 0)
        self.assertEqual(normalize_tenant("  "), DEFAULT_TENANT)
        store.load(None, _records()[:1])
        self.assertEqual(len(store.snapshot(DEFAULT_TENANT)), 1)

    def test_create_assigns_next_id(self):
        store = CategoryStore()
        store.load("acme", _records())
        mutation = store.create("acme", {"name": "Hiking", "parent_id": 3})
        self.assertEqual(mutation.category_id, 4)
        self.assertEqual(store.snapshot("acme").get(4).path, ["Shoes", "Boots", "Hiking"])
        second = store.create("acme", {"name": "Phones"})
        self.assertEqual(second.category_id, 5)

    def test_strict_load_keeps_previous_tree(self):
        store = CategoryStore()
        store.load("acme", _records())
        with self.assertRaises(MalformedTreeError):
            store.load(
                "acme",
                [{"id": 1, "name": "A", "parent_id": 2}, {"id": 2, "name": "B", "parent_id": 1}],
                strict=True,
            )
        self.assertEqual(len(store.snapshot("acme")), 3)

    def test_node_limit(self):
        store = CategoryStore(max_nodes=3)
        store.load("acme", _records())
        with self.assertRaises(TreeLimitError) as ctx:
            store.create("acme", {"name": "One too many"})
        self.assertEqual(ctx.exception.code, "TREE_TOO_LARGE")
        self.assertEqual(ctx.exception.status, 413)
        with self.assertRaises(TreeLimitError):
            store.load("acme", _records() + [{"id": 4, "name": "Extra"}])

    def test_depth_limit(self):
        store = CategoryStore(max_depth=1)
        store.load("acme", _records())
        with self.assertRaises(TreeLimitError) as ctx:
            store.create("acme", {"name": "Too deep", "parent_id": 2})
        self.assertEqual(ctx.exception.code, "TREE_TOO_DEEP")
        with self.assertRaises(TreeLimitError):
            store.move("acme", 3, 2)

    def test_cycle_reported_before_depth(self):
        store = CategoryStore(max_depth=1)
        store.load("acme", _records())
        with self.assertRaises(ReparentError) as ctx:
            store.move("acme", 1, 2)
        self.assertEqual(ctx.exception.code, "CYCLE")

    def test_limits_from_environment(self):
        with patch.dict(os.environ, {"TAXONOMY_MAX_NODES": "5", "TAXONOMY_MAX_DEPTH": "junk"}, clear=False):
            store = CategoryStore()
        self.assertEqual(store.max_nodes, 5)
        self.assertEqual(store.max_depth, 64)

    def test_slug_stays_reserved_while_a_duplicate_survives(self):
        store = CategoryStore()
        store.load("t", [{"id": 1, "name": "A", "slug": "dup"}, {"id": 2, "name": "B", "slug": "dup"}])
        store.delete("t", 1)
        with self.assertRaises(DuplicateSlugError) as ctx:
            store.create("t", {"name": "C", "slug": "dup"})
        self.assertEqual(ctx.exception.conflicting_id, 2)
        tree = store.snapshot("t")
        self.assertEqual([row.slug for row in flatten(tree.roots)], ["dup"])
        self.assertEqual(tree.slug_owners("dup"), {2})
        mutation = store.create("t", {"name": "Dup"})
        self.assertEqual(mutation.fields["slug"], "dup-1")

    def test_boolean_parent_rejected(self):
        store = CategoryStore()
        store.load("acme", _records())
        with self.assertRaises(CategoryValidationError) as ctx:
            store.create("acme", {"name": "X", "parent_id": True})
        self.assertEqual(ctx.exception.field_name, "parent_id")
        self.assertEqual(len(store.snapshot("acme")), 3)

    def test_check_move_does_not_mutate(self):
        store = CategoryStore()
        store.load("acme", _records())
        self.assertEqual(store.check_move("acme", 1, 2).code, "CYCLE")
        self.assertIsNone(store.check_move("acme", 3, 2))
        self.assertEqual(store.snapshot("acme").get(3).parent_id, 1)

    def test_concurrent_moves_keep_tree_consistent(self):
        store = CategoryStore()
        store.load("acme", [{"id": i, "name": f"c{i}"} for i in range(1, 21)])
        errors: list[Exception] = []

        def worker(offset: int):
            for step in range(50):
                node_id = (offset + step) % 20 + 1
                parent_id = (offset * 7 + step * 3) % 20 + 1
                try:
                    store.move("acme", node_id, parent_id)
                except ReparentError:
                    continue
                except Exception as e:
                    errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        tree = store.snapshot("acme")
        rows = flatten(tree.roots)
        self.assertEqual(len(rows), 20)
        self.assertEqual(sorted(row.id for row in rows), list(range(1, 21)))
        for row in rows:
            self.assertEqual(row.depth, len(row.path) - 1)


if __name__ == "__main__":
    unittest.main()
