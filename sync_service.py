"""
Ledger sync reconciliation: which recent sales reached Zoho Books, and
operator-triggered retries for the ones that did not.

The status snapshot is always replaced wholesale. Every fetch is tagged with a
sequence number and a response older than the last applied one is dropped, so
overlapping refreshes can never roll the display back. Retries are single
attempts; this client keeps at most one in flight per sale. Backend failures
stop here and become error notifications.
"""
import copy
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional

import pos_config as cfg
import pos_totals as pt
from notifications import NotificationChannel
from sync_client import BackendClient, SyncError

logger = logging.getLogger(__name__)

STATE_SYNCED = "synced"
STATE_FAILED = "failed"
STATE_UNSYNCED = "unsynced"


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes")


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def sale_state(row: Dict[str, Any]) -> str:
    if row.get("synced"):
        return STATE_SYNCED
    if row.get("sync_error"):
        return STATE_FAILED
    return STATE_UNSYNCED


def normalize_status_row(raw: Dict[str, Any]) -> Dict[str, Any]:
    customer_raw = raw.get("customer")
    customer = None
    if isinstance(customer_raw, dict):
        if "hasZohoId" in customer_raw:
            has_zoho_id = _as_bool(customer_raw.get("hasZohoId"))
        else:
            has_zoho_id = _text(customer_raw.get("zohoId")) is not None
        customer = {
            "name": _text(customer_raw.get("name") or customer_raw.get("contactName")) or "",
            "has_zoho_id": has_zoho_id,
        }
    row = {
        "sale_id": raw.get("saleId", raw.get("id")),
        "total": pt.to_decimal(raw.get("total")),
        "created_at": raw.get("createdAt"),
        "synced": _as_bool(raw.get("syncedToZoho")),
        "sync_error": _text(raw.get("syncError")),
        "customer": customer,
        "sales_receipt_number": _text(raw.get("salesReceiptNumber") or raw.get("zohoSalesReceiptId")),
    }
    row["state"] = sale_state(row)
    # Retry is only offered for unsynced sales whose customer exists in the ledger.
    row["can_retry"] = not row["synced"] and bool(customer and customer["has_zoho_id"])
    return row


def summarize_sales(rows: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    """Counts as the backend reports them; ``no_zoho_id`` is independent of sync state."""
    rows = list(rows)
    return {
        "total": len(rows),
        "synced": sum(1 for r in rows if r["state"] == STATE_SYNCED),
        "failed": sum(1 for r in rows if r["state"] == STATE_FAILED),
        "no_zoho_id": sum(1 for r in rows if r["customer"] and not r["customer"]["has_zoho_id"]),
    }


def build_snapshot(data: Dict[str, Any]) -> Dict[str, Any]:
    """Turn the backend's sync status payload into a snapshot; backend counts win when given."""
    rows = [normalize_status_row(r) for r in (data.get("sales") or []) if isinstance(r, dict)]
    summary = summarize_sales(rows)
    reported = data.get("summary")
    if isinstance(reported, dict):
        for key, source in (("total", "total"), ("synced", "synced"), ("failed", "failed"), ("no_zoho_id", "noZohoId")):
            value = reported.get(source)
            if isinstance(value, int) and not isinstance(value, bool):
                summary[key] = value
    return {"summary": summary, "sales": rows}


class SyncReconciliationService:
    def __init__(self, client: Optional[BackendClient] = None, channel: Optional[NotificationChannel] = None,
                 limit: Optional[int] = None):
        self.client = client or BackendClient()
        self.channel = channel or NotificationChannel()
        self.limit = limit or cfg.SYNC_STATUS_LIMIT
        self._snapshot: Optional[Dict[str, Any]] = None
        self._issued_seq = 0
        self._applied_seq = 0
        self._applied_limit = self.limit
        self._in_flight = set()
        self._closed = False
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._snapshot)

    def fetch_sync_status(self, limit: Optional[int] = None, no_cache: bool = False) -> Optional[Dict[str, Any]]:
        """Fetch and apply a fresh snapshot. Returns the snapshot now shown, or None on failure."""
        with self._lock:
            if self._closed:
                return None
            self._issued_seq += 1
            seq = self._issued_seq
        limit = limit or self.limit
        try:
            data = self.client.get_sync_status(limit, no_cache=no_cache)
            snapshot = build_snapshot(data)
        except SyncError as exc:
            logger.warning("Sync status refresh #%s failed: %s", seq, exc)
            if not self._closed:
                self.channel.error("Failed to load sync status")
            return None
        with self._lock:
            if self._closed:
                logger.debug("Dropping sync status #%s delivered after close", seq)
                return None
            if seq < self._applied_seq:
                logger.info("Discarding stale sync status #%s (already showing #%s)", seq, self._applied_seq)
                return copy.deepcopy(self._snapshot)
            self._applied_seq = seq
            self._applied_limit = limit
            self._snapshot = snapshot
        logger.info("Sync status #%s: %s", seq, snapshot["summary"])
        return copy.deepcopy(snapshot)

    refresh = fetch_sync_status

    def find_sale(self, sale_id: Any) -> Optional[Dict[str, Any]]:
        with self._lock:
            rows = self._snapshot["sales"] if self._snapshot else []
            for row in rows:
                if str(row["sale_id"]) == str(sale_id):
                    return dict(row)
        return None

    def retryable_sale_ids(self) -> List[Any]:
        with self._lock:
            rows = self._snapshot["sales"] if self._snapshot else []
            return [row["sale_id"] for row in rows if row["can_retry"]]

    def is_retrying(self, sale_id: Any) -> bool:
        with self._lock:
            return str(sale_id) in self._in_flight

    def retry_sync(self, sale_id: Any) -> Optional[Dict[str, Any]]:
        """
        Push one sale to the ledger again. Returns ``{'sale_id', 'receipt_number'}``
        on success, None when refused or failed (the operator is notified either way).
        """
        key = str(sale_id)
        row = self.find_sale(sale_id)
        if row is None or not row["can_retry"]:
            if row is None:
                reason = "not in the current sync status"
            elif row["synced"]:
                reason = "already synced"
            else:
                reason = "customer has no Zoho ID"
            logger.info("Retry for sale %s not offered: %s", key, reason)
            self.channel.warning(f"Sale #{key} cannot be retried: {reason}")
            return None
        with self._lock:
            if self._closed:
                return None
            if key in self._in_flight:
                busy = True
            else:
                busy = False
                self._in_flight.add(key)
        if busy:
            self.channel.warning(f"Sale #{key} is already syncing")
            return None
        try:
            data = self.client.retry_sync(sale_id)
        except SyncError as exc:
            logger.warning("Retry for sale %s failed: %s", key, exc)
            self.channel.error(str(exc) or "Sync failed")
            return None
        finally:
            with self._lock:
                self._in_flight.discard(key)
        receipt = _text(data.get("salesReceiptNumber"))
        logger.info("Sale %s synced to ledger as %s", key, receipt or "(no receipt number)")
        self.channel.success(f"Synced to Zoho: {receipt or key}")
        with self._lock:
            limit = self._applied_limit
        self.fetch_sync_status(limit, no_cache=True)
        return {"sale_id": sale_id, "receipt_number": receipt}

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._snapshot = None
