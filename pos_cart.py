"""
Cart state for a single POS terminal session.

Lines are kept in insertion order; totals are always derived through
``pos_totals`` and never stored.
"""
import logging
import threading
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pos_totals as pt

logger = logging.getLogger(__name__)


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_customer(raw: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Accept backend (camelCase) or local customer dicts; return the snake_case shape."""
    if not raw:
        return None
    name = _clean_text(raw.get("name") or raw.get("contactName") or raw.get("customer_name"))
    zoho_id = _clean_text(raw.get("zoho_id") or raw.get("zohoId"))
    exempt = raw.get("tax_exempt", raw.get("taxExempt"))
    preference = raw.get("tax_preference", raw.get("taxPreference"))
    return {
        "id": raw.get("id"),
        "name": name or "",
        "zoho_id": zoho_id,
        "tax_exempt": exempt is True,
        "tax_preference": _clean_text(preference),
    }


class Cart:
    """Line items plus the selected customer; mutated only through its methods."""

    def __init__(self, tax_rate: Any = 0):
        self.tax_rate = pt.to_decimal(tax_rate)
        self.items: List[Dict[str, Any]] = []
        self.customer: Optional[Dict[str, Any]] = None
        # Preference resolved from the customer's price list, if any.
        self.tax_preference: Optional[str] = None
        self._lock = threading.Lock()

    def _find(self, product_id: str, unit: Optional[str] = None) -> Optional[Dict[str, Any]]:
        for item in self.items:
            if item["product_id"] != product_id:
                continue
            if unit is None or item.get("unit_of_measure") == unit:
                return item
        return None

    def add_item(self, product_id: Any, name: str, unit_price: Any, quantity: Any = 1,
                 unit_of_measure: Optional[str] = None) -> Dict[str, Any]:
        pid = _clean_text(product_id)
        if not pid:
            raise ValueError("product_id is required")
        price = pt.to_decimal(unit_price, default=Decimal("-1"))
        if price < 0:
            raise ValueError(f"Invalid unit price for {pid}: {unit_price!r}")
        qty = pt.clamp_quantity(quantity)
        unit = _clean_text(unit_of_measure)
        with self._lock:
            existing = self._find_exact(pid, unit)
            if existing:
                existing["quantity"] = pt.clamp_quantity(existing["quantity"] + qty)
                logger.debug("Cart: %s quantity -> %s", pid, existing["quantity"])
                return dict(existing)
            line = {
                "product_id": pid,
                "name": _clean_text(name) or pid,
                "unit_price": price,
                "quantity": qty,
                "unit_of_measure": unit,
            }
            self.items.append(line)
        logger.debug("Cart: added %s x%s", pid, qty)
        return dict(line)

    def _find_exact(self, product_id: str, unit: Optional[str]) -> Optional[Dict[str, Any]]:
        for item in self.items:
            if item["product_id"] == product_id and item.get("unit_of_measure") == unit:
                return item
        return None

    def update_quantity(self, product_id: Any, quantity: Any, unit_of_measure: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Set a line's quantity; anything below 1 is stored as 1."""
        pid = _clean_text(product_id)
        with self._lock:
            item = self._find(pid, _clean_text(unit_of_measure)) if pid else None
            if not item:
                return None
            item["quantity"] = pt.clamp_quantity(quantity)
            return dict(item)

    def remove_item(self, product_id: Any, unit_of_measure: Optional[str] = None) -> bool:
        pid = _clean_text(product_id)
        with self._lock:
            item = self._find(pid, _clean_text(unit_of_measure)) if pid else None
            if not item:
                return False
            self.items.remove(item)
        return True

    def clear(self) -> None:
        with self._lock:
            self.items = []
            self.customer = None
            self.tax_preference = None

    def select_customer(self, customer: Optional[Dict[str, Any]], tax_preference: Optional[str] = None) -> None:
        with self._lock:
            self.customer = normalize_customer(customer)
            self.tax_preference = _clean_text(tax_preference)

    @property
    def tax_exempt(self) -> bool:
        with self._lock:
            customer, preference = self.customer, self.tax_preference
        return pt.is_tax_exempt(customer, preference)

    def totals(self) -> Dict[str, Decimal]:
        with self._lock:
            items = list(self.items)
        return pt.compute_totals(items, self.tax_rate, self.tax_exempt)

    def is_empty(self) -> bool:
        with self._lock:
            return not self.items

    def snapshot(self) -> Dict[str, Any]:
        """Display view of the cart: money rounded to cents, rate in percent."""
        totals = self.totals()
        exempt = self.tax_exempt
        with self._lock:
            items = [dict(item) for item in self.items]
            customer = dict(self.customer) if self.customer else None
        lines = []
        for item in items:
            lines.append({
                "product_id": item["product_id"],
                "name": item["name"],
                "unit_of_measure": item.get("unit_of_measure") or "",
                "quantity": item["quantity"],
                "unit_price": pt.format_money(item["unit_price"]),
                "amount": pt.format_money(pt.line_amount(item)),
            })
        return {
            "items": lines,
            "item_count": sum(item["quantity"] for item in items),
            "customer": customer,
            "tax_exempt": exempt,
            "tax_label": "Tax (Exempt)" if exempt else f"Tax ({pt.format_rate(self.tax_rate * 100)})",
            "subtotal": pt.format_money(totals["subtotal"]),
            "tax": pt.format_money(totals["tax"]),
            "total": pt.format_money(totals["total"]),
        }

    def to_sale_payload(self, payment: Dict[str, Any]) -> Dict[str, Any]:
        """Build the checkout body sent to the backend; amounts as two-decimal strings."""
        with self._lock:
            items = [dict(item) for item in self.items]
            customer = dict(self.customer or {})
            preference = self.tax_preference
        if not items:
            raise ValueError("Cart is empty")
        method = _clean_text((payment or {}).get("method"))
        if not method:
            raise ValueError("Payment method is required")
        exempt = pt.is_tax_exempt(customer, preference)
        totals = pt.compute_totals(items, self.tax_rate, exempt)
        return {
            "customerId": customer.get("id"),
            "items": [
                {
                    "itemId": item["product_id"],
                    "itemName": item["name"] if not item.get("unit_of_measure")
                    else f"{item['name']} ({item['unit_of_measure']})",
                    "quantity": item["quantity"],
                    "price": str(pt.round_money(item["unit_price"])),
                    "selectedUM": item.get("unit_of_measure"),
                }
                for item in items
            ],
            "subtotal": str(pt.round_money(totals["subtotal"])),
            "taxAmount": str(pt.round_money(totals["tax"])),
            "taxPercentage": str(pt.round_money(Decimal("0") if exempt else self.tax_rate * 100)),
            "total": str(pt.round_money(totals["total"])),
            "paymentType": method,
            "payment": dict(payment),
        }
