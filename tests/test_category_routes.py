from __future__ import annotations

import unittest

from taxonomy import create_app
from taxonomy.services.category_store import CategoryStore


SHOES = [
    {"id": 1, "name": "Shoes", "slug": "shoes", "parentId": None},
    {"id": 2, "name": "Sandals", "slug": "sandals", "parentId": 1},
    {"id": 3, "name": "Boots", "slug": "boots", "parentId": 1},
]


class CategoryRoutesTestCase(unittest.TestCase):
    def setUp(self):
        self.app = create_app(store=CategoryStore())
        self.app.config.update(TESTING=True)
        self.client = self.app.test_client()
        res = self.client.put("/api/admin/categories/records", json={"records": SHOES})
        self.assertEqual(res.status_code, 200)

    def test_load_reports_count_and_stats(self):
        res = self.client.put("/api/admin/categories/records", json={"records": SHOES})
        body = res.get_json(force=True)
        self.assertTrue(body["ok"])
        self.assertEqual(body["count"], 3)
        self.assertEqual(body["anomalies"], [])
        self.assertEqual(body["stats"], {"total": 3, "active": 3, "roots": 1, "subcategories": 2})

    def test_load_surfaces_anomalies(self):
        records = [{"id": 1, "name": "A", "parent_id": 2}, {"id": 2, "name": "B", "parent_id": 1}]
        body = self.client.put("/api/admin/categories/records", json={"records": records}).get_json(force=True)
        self.assertEqual([a["code"] for a in body["anomalies"]], ["CYCLE_DETECTED"])
        self.assertEqual(body["count"], 2)

    def test_strict_load_rejects_malformed(self):
        records = [{"id": 1, "name": "A", "parent_id": 1}]
        res = self.client.put("/api/admin/categories/records", json={"records": records, "strict": True})
        self.assertEqual(res.status_code, 422)
        body = res.get_json(force=True)
        self.assertEqual(body["code"], "CYCLE_DETECTED")
        self.assertIn("trace_id", body)

    def test_load_rejects_bad_payload(self):
        res = self.client.put("/api/admin/categories/records", json={"records": "nope"})
        self.assertEqual(res.status_code, 400)
        res = self.client.put("/api/admin/categories/records", json={"records": [{"name": "no id"}]})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json(force=True)["code"], "INVALID_RECORDS")

    def test_tree_endpoint(self):
        body = self.client.get("/api/categories").get_json(force=True)
        self.assertEqual(len(body["items"]), 1)
        root = body["items"][0]
        self.assertEqual(root["id"], 1)
        self.assertEqual([c["id"] for c in root["children"]], [2, 3])
        self.assertEqual(root["children"][0]["path"], ["Shoes", "Sandals"])

    def test_tree_search(self):
        body = self.client.get("/api/categories?q=sandal").get_json(force=True)
        self.assertEqual(body["query"], "sandal")
        root = body["items"][0]
        self.assertEqual([c["name"] for c in root["children"]], ["Sandals"])

    def test_flat_and_stats(self):
        flat = self.client.get("/api/categories/flat").get_json(force=True)["items"]
        self.assertEqual([(row["id"], row["depth"]) for row in flat], [(1, 0), (2, 1), (3, 1)])
        stats = self.client.get("/api/categories/stats").get_json(force=True)["stats"]
        self.assertEqual(stats["total"], stats["roots"] + stats["subcategories"])

    def test_active_only_view(self):
        self.client.put("/api/categories/2", json={"status": False})
        flat = self.client.get("/api/categories/flat?active_only=1").get_json(force=True)["items"]
        self.assertEqual([row["id"] for row in flat], [1, 3])
        stats = self.client.get("/api/categories/stats").get_json(force=True)["stats"]
        self.assertEqual(stats["active"], 2)

    def test_parent_options(self):
        items = self.client.get("/api/categories/parent-options?exclude_id=1").get_json(force=True)["items"]
        self.assertIsNone(items[0]["id"])
        self.assertEqual([i["id"] for i in items if not i["eligible"]], [1, 2, 3])

    def test_visible_rows(self):
        body = self.client.get("/api/categories/visible").get_json(force=True)
        self.assertEqual(body["expanded"], [1, 2, 3])
        self.assertEqual(len(body["items"]), 3)
        collapsed = self.client.get("/api/categories/visible?expanded=").get_json(force=True)
        self.assertEqual([row["id"] for row in collapsed["items"]], [1])
        searching = self.client.get("/api/categories/visible?expanded=&q=boot").get_json(force=True)
        self.assertEqual([row["id"] for row in searching["items"]], [1, 3])

    def test_get_category_and_missing(self):
        body = self.client.get("/api/categories/3").get_json(force=True)
        self.assertEqual(body["category"]["depth"], 1)
        res = self.client.get("/api/categories/99")
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.get_json(force=True)["code"], "CATEGORY_NOT_FOUND")

    def test_can_move(self):
        body = self.client.get("/api/categories/1/can-move?parent_id=2").get_json(force=True)
        self.assertFalse(body["allowed"])
        self.assertEqual(body["reason"]["code"], "CYCLE")
        body = self.client.get("/api/categories/2/can-move?parent_id=").get_json(force=True)
        self.assertTrue(body["allowed"])
        self.assertIsNone(body["reason"])
        res = self.client.get("/api/categories/2/can-move?parent_id=abc")
        self.assertEqual(res.status_code, 400)

    def test_create_category(self):
        res = self.client.post("/api/categories", json={"name": "Hiking Boots", "parentId": 3})
        self.assertEqual(res.status_code, 201)
        body = res.get_json(force=True)
        self.assertEqual(body["category"]["id"], 4)
        self.assertEqual(body["category"]["slug"], "hiking-boots")
        self.assertEqual(body["category"]["path"], ["Shoes", "Boots", "Hiking Boots"])
        self.assertEqual(body["mutation"]["kind"], "create")

    def test_create_duplicate_slug_conflicts(self):
        res = self.client.post("/api/categories", json={"name": "Other", "slug": "boots"})
        self.assertEqual(res.status_code, 409)
        body = res.get_json(force=True)
        self.assertEqual(body["code"], "DUPLICATE_SLUG")
        self.assertEqual(body["conflicting_id"], 3)

    def test_create_validation_errors(self):
        res = self.client.post("/api/categories", json={"name": ""})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json(force=True)["field"], "name")
        res = self.client.post("/api/categories", json={"name": "X", "parent_id": "abc"})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json(force=True)["field"], "parent_id")
        res = self.client.post("/api/categories", json={"name": "X", "parent_id": 77})
        self.assertEqual(res.status_code, 404)

    def test_boolean_parent_is_rejected(self):
        res = self.client.post("/api/categories", json={"name": "X", "parent_id": True})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json(force=True)["field"], "parent_id")
        flat = self.client.get("/api/categories/flat").get_json(force=True)["items"]
        self.assertEqual(len(flat), 3)

    def test_update_category(self):
        res = self.client.put("/api/categories/1", json={"name": "Footwear"})
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True)
        self.assertEqual(body["category"]["slug"], "footwear")
        child = self.client.get("/api/categories/2").get_json(force=True)["category"]
        self.assertEqual(child["path"], ["Footwear", "Sandals"])

    def test_move_category(self):
        self.client.post("/api/categories", json={"name": "Phones"})
        res = self.client.post("/api/categories/3/move", json={"parent_id": 4})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json(force=True)["category"]["path"], ["Phones", "Boots"])
        res = self.client.post("/api/categories/1/move", json={"parent_id": 2})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json(force=True)["code"], "CYCLE")
        res = self.client.post("/api/categories/3/move", json={"parent_id": None})
        self.assertEqual(res.get_json(force=True)["category"]["depth"], 0)

    def test_move_rejects_unparseable_position(self):
        res = self.client.post("/api/categories/3/move", json={"parent_id": None, "position": "abc"})
        self.assertEqual(res.status_code, 400)
        body = res.get_json(force=True)
        self.assertEqual(body["code"], "INVALID_CATEGORY")
        self.assertEqual(body["field"], "position")
        self.assertEqual(self.client.get("/api/categories/3").get_json(force=True)["category"]["depth"], 1)
        res = self.client.post("/api/categories/3/move", json={"parent_id": None, "position": "2"})
        self.assertEqual(res.status_code, 200)

    def test_delete_cascades(self):
        res = self.client.delete("/api/categories/1")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json(force=True)["removed_ids"], [1, 2, 3])
        body = self.client.get("/api/categories").get_json(force=True)
        self.assertEqual(body["items"], [])

    def test_tenant_header_isolates_trees(self):
        other = self.client.get("/api/categories", headers={"X-Tenant-Id": "store-b"}).get_json(force=True)
        self.assertEqual(other["items"], [])
        self.client.post("/api/categories", json={"name": "Laptops"}, headers={"X-Tenant-Id": "store-b"})
        flat = self.client.get("/api/categories/flat", headers={"X-Tenant-Id": "store-b"}).get_json(force=True)
        self.assertEqual([row["name"] for row in flat["items"]], ["Laptops"])
        self.assertEqual(len(self.client.get("/api/categories/flat").get_json(force=True)["items"]), 3)

    def test_size_limit_returns_413(self):
        app = create_app(store=CategoryStore(max_nodes=2))
        app.config.update(TESTING=True)
        client = app.test_client()
        res = client.put("/api/admin/categories/records", json={"records": SHOES})
        self.assertEqual(res.status_code, 413)
        self.assertEqual(res.get_json(force=True)["code"], "TREE_TOO_LARGE")


if __name__ == "__main__":
    unittest.main()
