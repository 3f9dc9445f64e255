"""
HTTP client for the POS backend (sales, ledger sync status, ledger retry).

Every endpoint answers with an envelope ``{success, data?, message?, error?}``.
Transport errors, non-2xx answers, bad JSON and ``success: false`` all raise
``SyncError`` carrying the most useful message the backend gave us.
"""
import logging
import threading
import time
from typing import Any, Dict, Optional, Tuple

import requests

import pos_config as cfg

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """A backend call failed; ``str(exc)`` is safe to show to the operator."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class UnauthorizedError(SyncError):
    pass


def _nested_message(body: Any) -> Optional[str]:
    if isinstance(body, str):
        return body.strip() or None
    if not isinstance(body, dict):
        return None
    for key in ("message", "error", "detail"):
        value = body.get(key)
        if isinstance(value, dict):
            nested = _nested_message(value)
            if nested:
                return nested
        elif isinstance(value, str) and value.strip():
            return value.strip()
    data = body.get("data")
    if isinstance(data, dict):
        return _nested_message(data)
    return None


def error_message_from_response(resp: requests.Response, default: str) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    return _nested_message(body) or default


class BackendClient:
    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None,
                 timeout: Optional[float] = None, cache_seconds: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or cfg.API_BASE_URL or "").rstrip("/")
        self.token = token if token is not None else cfg.API_TOKEN
        self.timeout = timeout if timeout is not None else cfg.API_TIMEOUT
        self.cache_seconds = cache_seconds if cache_seconds is not None else cfg.API_CACHE_SECONDS
        self.session = session or requests.Session()
        self._cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}
        self._cache_lock = threading.Lock()

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _cached(self, key: str) -> Optional[Dict[str, Any]]:
        with self._cache_lock:
            hit = self._cache.get(key)
            if hit and time.monotonic() - hit[0] < self.cache_seconds:
                return hit[1]
            self._cache.pop(key, None)
        return None

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    def request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                payload: Optional[Dict[str, Any]] = None, default_error: str = "Request failed",
                no_cache: bool = False) -> Any:
        """Send one request and return the envelope's ``data``."""
        url = self.base_url + path
        method = method.upper()
        cache_key = f"{method}:{url}?{sorted((params or {}).items())}"
        use_cache = method == "GET" and not no_cache and self.cache_seconds > 0
        if use_cache:
            cached = self._cached(cache_key)
            if cached is not None:
                logger.debug("Cache hit for %s", cache_key)
                return cached.get("data")
        try:
            resp = self.session.request(method, url, params=params, json=payload,
                                        headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise SyncError(f"{default_error}: {exc}") from exc
        if resp.status_code == 401:
            raise UnauthorizedError("Unauthorized", status=401)
        if resp.status_code >= 400:
            message = error_message_from_response(resp, default_error)
            logger.warning("%s %s rejected: status=%s message=%s", method, path, resp.status_code, message)
            raise SyncError(message, status=resp.status_code)
        try:
            body = resp.json()
        except ValueError as exc:
            logger.warning("Bad JSON from %s %s: %s", method, path, resp.text[:200])
            raise SyncError(default_error, status=resp.status_code) from exc
        if not isinstance(body, dict) or not body.get("success"):
            message = _nested_message(body) or default_error
            raise SyncError(message, status=resp.status_code)
        if use_cache:
            with self._cache_lock:
                self._cache[cache_key] = (time.monotonic(), body)
        return body.get("data")

    def get_sync_status(self, limit: int = 10, no_cache: bool = False) -> Dict[str, Any]:
        data = self.request("GET", "/sales/sync/status", params={"limit": int(limit)},
                            default_error="Failed to load sync status", no_cache=no_cache)
        if not isinstance(data, dict):
            raise SyncError("Failed to load sync status")
        return data

    def retry_sync(self, sale_id: int) -> Dict[str, Any]:
        data = self.request("POST", f"/sales/{int(sale_id)}/sync/zoho", default_error="Sync failed")
        if not isinstance(data, dict):
            raise SyncError("Sync retry failed")
        return data

    def create_sale(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = self.request("POST", "/sales", payload=payload, default_error="Failed to create sale")
        sale = data.get("sale") if isinstance(data, dict) else None
        if not isinstance(sale, dict):
            raise SyncError("Backend returned no sale record")
        return sale
