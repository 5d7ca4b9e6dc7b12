from __future__ import annotations

import unittest

from taxonomy import create_app
from taxonomy.services.category_store import CategoryStore


class ApiErrorContractTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app(store=CategoryStore())
        cls.app.config.update(TESTING=True)
        cls.client = cls.app.test_client()

    def test_unknown_api_route_returns_json_error_shape(self):
        res = self.client.get("/api/does-not-exist")
        self.assertEqual(res.status_code, 404)
        self.assertTrue(res.is_json)
        body = res.get_json(force=True) or {}
        self.assertFalse(bool(body.get("ok", True)))
        self.assertTrue(str(body.get("error") or "").strip())
        self.assertTrue(str(body.get("message") or "").strip())
        self.assertEqual(int(body.get("status") or 0), 404)
        self.assertTrue(str(body.get("trace_id") or "").strip())

    def test_wrong_method_is_json(self):
        res = self.client.patch("/api/categories/stats")
        self.assertEqual(res.status_code, 405)
        self.assertTrue(res.is_json)
        self.assertEqual(int((res.get_json(force=True) or {}).get("status") or 0), 405)

    def test_engine_errors_carry_code_and_message(self):
        res = self.client.delete("/api/categories/31337")
        self.assertEqual(res.status_code, 404)
        body = res.get_json(force=True) or {}
        self.assertFalse(body.get("ok", True))
        self.assertEqual(body.get("code"), "CATEGORY_NOT_FOUND")
        self.assertTrue(str(body.get("message") or "").strip())


if __name__ == "__main__":
    unittest.main()
