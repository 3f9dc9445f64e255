import unittest
from unittest import mock

import requests

from sync_client import BackendClient, SyncError, UnauthorizedError, error_message_from_response


def _response(status=200, body=None, bad_json=False):
    resp = mock.Mock()
    resp.status_code = status
    resp.text = "" if body is None else str(body)
    if bad_json:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    return resp


class BackendClientTest(unittest.TestCase):
    def setUp(self):
        self.session = mock.Mock()
        self.client = BackendClient(base_url="http://backend.local/api/", token="tok",
                                    timeout=3, cache_seconds=5, session=self.session)

    def test_sync_status_request(self):
        data = {"sales": [], "summary": {"total": 0}}
        self.session.request.return_value = _response(body={"success": True, "data": data})
        self.assertEqual(self.client.get_sync_status(20), data)
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("GET", "http://backend.local/api/sales/sync/status"))
        self.assertEqual(kwargs["params"], {"limit": 20})
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer tok")
        self.assertEqual(kwargs["timeout"], 3)

    def test_get_is_cached_unless_no_cache(self):
        self.session.request.return_value = _response(body={"success": True, "data": {"sales": []}})
        self.client.get_sync_status(10)
        self.client.get_sync_status(10)
        self.assertEqual(self.session.request.call_count, 1)
        self.client.get_sync_status(10, no_cache=True)
        self.assertEqual(self.session.request.call_count, 2)
        self.client.get_sync_status(5)
        self.assertEqual(self.session.request.call_count, 3)

    def test_failed_envelope_is_not_cached(self):
        self.session.request.return_value = _response(body={"success": False, "message": "DB down"})
        with self.assertRaises(SyncError) as ctx:
            self.client.get_sync_status(10)
        self.assertEqual(str(ctx.exception), "DB down")
        with self.assertRaises(SyncError):
            self.client.get_sync_status(10)
        self.assertEqual(self.session.request.call_count, 2)

    def test_retry_success(self):
        self.session.request.return_value = _response(
            body={"success": True, "data": {"salesReceiptId": "9", "salesReceiptNumber": "SR-00009"}})
        data = self.client.retry_sync(7)
        self.assertEqual(data["salesReceiptNumber"], "SR-00009")
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("POST", "http://backend.local/api/sales/7/sync/zoho"))

    def test_http_error_uses_nested_message(self):
        body = {"success": False, "error": {"message": "Customer has no Zoho ID"}}
        self.session.request.return_value = _response(status=400, body=body)
        with self.assertRaises(SyncError) as ctx:
            self.client.retry_sync(7)
        self.assertEqual(str(ctx.exception), "Customer has no Zoho ID")
        self.assertEqual(ctx.exception.status, 400)

    def test_http_error_without_body_uses_default(self):
        self.session.request.return_value = _response(status=500, bad_json=True)
        with self.assertRaises(SyncError) as ctx:
            self.client.retry_sync(7)
        self.assertEqual(str(ctx.exception), "Sync failed")

    def test_unauthorized(self):
        self.session.request.return_value = _response(status=401, body={"success": False})
        with self.assertRaises(UnauthorizedError):
            self.client.get_sync_status(10)

    def test_transport_error(self):
        self.session.request.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(SyncError) as ctx:
            self.client.get_sync_status(10)
        self.assertIn("Failed to load sync status", str(ctx.exception))

    def test_success_without_data(self):
        self.session.request.return_value = _response(body={"success": True})
        with self.assertRaises(SyncError) as ctx:
            self.client.retry_sync(7)
        self.assertEqual(str(ctx.exception), "Sync retry failed")

    def test_create_sale(self):
        sale = {"id": 1, "receiptNumber": "R-1"}
        self.session.request.return_value = _response(body={"success": True, "data": {"sale": sale}})
        self.assertEqual(self.client.create_sale({"items": []}), sale)
        _, kwargs = self.session.request.call_args
        self.assertEqual(kwargs["json"], {"items": []})


class ErrorMessageTest(unittest.TestCase):
    def test_message_priority(self):
        resp = _response(status=400, body={"message": "Zoho sync failed", "error": "timeout"})
        self.assertEqual(error_message_from_response(resp, "x"), "Zoho sync failed")
        resp = _response(status=400, body={"data": {"message": "inner"}})
        self.assertEqual(error_message_from_response(resp, "x"), "inner")
        resp = _response(status=400, body=["unexpected"])
        self.assertEqual(error_message_from_response(resp, "fallback"), "fallback")


if __name__ == "__main__":
    unittest.main()
