"""
Receipt formatting for completed sales.

Sales reach the terminal in two shapes: the current checkout response
(``receiptNumber``, ``tax``, ``payment``, ``timestamp``, ``zohoSynced``) and the
stored backend record (``transactionId``, ``taxAmount``, ``paymentType``,
``createdAt``, ``syncedToZoho``). ``normalize_sale`` folds either into one
canonical dict and ``format_receipt`` turns that into display strings.

Nothing here recomputes money the backend already decided: subtotal, tax,
card fee and total are shown exactly as supplied. Both entry points are pure
and never raise for a malformed sale; missing fields fall back to defaults.
"""
import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pos_totals as pt

CARD_METHODS = ("credit_card", "debit_card")
PROCESSING_FEE_LABEL = "Processing Fee (3%)"
COMPANY_NAME = "Sub-Zero Ice Services, Inc"
NO_RECEIPT_TITLE = "No Receipt Data"
LEDGER_SYNCED_TITLE = "Synced to Zoho Books"
LEDGER_FAILED_TITLE = "Zoho Sync Failed"
LEDGER_FAILED_DEFAULT = "Failed to sync with Zoho Books"

_NAME_WITH_UNIT = re.compile(r"^(.+?)\s*\((.+?)\)$")
_LOCATION_TAX_SUFFIX = re.compile(r"\s*\+\s*Tax\s*\([^)]*\)", re.IGNORECASE)

CURRENT_SHAPE_KEYS = ("receiptNumber", "tax", "payment", "timestamp", "zohoSynced", "zohoError")
LEGACY_SHAPE_KEYS = ("transactionId", "taxAmount", "paymentType", "createdAt", "syncedToZoho", "syncError")


def _first_defined(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _first_text(*values: Any) -> str:
    for value in values:
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def detect_sale_shape(raw: Any) -> str:
    """'current' when any checkout-response alias is present, else 'legacy'."""
    sale = _as_dict(raw)
    if any(sale.get(key) is not None for key in CURRENT_SHAPE_KEYS):
        return "current"
    return "legacy"


def parse_tax_percentage(value: Any) -> Decimal:
    """Accept 8.25 or '8.25'; anything unparsable or non-finite reads as 0."""
    return pt.to_decimal(value)


def split_item_name(full_name: Any, selected_unit: Any = None, product_unit: Any = None):
    """
    'Rock Salt (50lb Bag)' -> ('Rock Salt', '50lb Bag').

    Names without a trailing '(unit)' keep their text and take the unit from the
    selected unit of measure, then the product's unit.
    """
    name = _first_text(full_name) or "Item"
    match = _NAME_WITH_UNIT.match(name)
    if match:
        return match.group(1), match.group(2)
    return name, _first_text(selected_unit, product_unit)


def format_payment_method(method: Any) -> str:
    if method is None:
        return "N/A"
    text = str(method).strip()
    if not text:
        return "N/A"
    if text in CARD_METHODS:
        return "CARD"
    return text.upper().replace("_", " ")


def clean_location_name(name: Any) -> str:
    """Drop the '+ Tax (...)' suffix the backend appends to location names."""
    if not name:
        return ""
    return _LOCATION_TAX_SUFFIX.sub("", str(name)).strip()


def _format_timestamp(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    text = str(value).strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return text
    return parsed.strftime("%Y-%m-%d %H:%M:%S")


def _format_quantity(qty: Decimal) -> str:
    if qty == qty.to_integral_value():
        return str(int(qty))
    return f"{qty.normalize():f}"


def _normalize_line(raw: Any) -> Dict[str, Any]:
    item = _as_dict(raw)
    product = _as_dict(item.get("product"))
    price = pt.to_decimal(_first_defined(item.get("price"), item.get("unit_price"), product.get("price")))
    quantity = pt.to_decimal(item.get("quantity"), default=1)
    name, unit = split_item_name(
        _first_text(item.get("itemName"), item.get("name"), product.get("name")),
        _first_defined(item.get("selectedUM"), item.get("unit_of_measure")),
        product.get("unit"),
    )
    return {
        "name": name,
        "unit": unit,
        "quantity": quantity,
        "price": price,
        # Tax excluded so lines add up to the sale's own subtotal.
        "amount": price * quantity,
    }


def normalize_sale(raw: Any) -> Optional[Dict[str, Any]]:
    """Fold a current or legacy sale record into the canonical snake_case dict."""
    if not isinstance(raw, dict):
        return None
    sale_id = raw.get("id")
    payment = _as_dict(raw.get("payment"))
    customer = _as_dict(raw.get("customer"))
    user = _as_dict(raw.get("user"))
    items = raw.get("items")
    fallback_id = f"POS-{sale_id}" if sale_id is not None else "POS-UNKNOWN"
    return {
        "shape": detect_sale_shape(raw),
        "id": sale_id,
        "receipt_number": str(_first_defined(raw.get("receiptNumber"), raw.get("transactionId"), fallback_id)),
        "timestamp": _first_defined(raw.get("timestamp"), raw.get("createdAt")),
        "customer_name": _first_text(customer.get("name"), customer.get("contactName")) if customer else "",
        "cashier": _first_text(raw.get("cashier"), user.get("useremail")),
        "location_name": _first_text(raw.get("locationName")),
        "items": [_normalize_line(item) for item in items] if isinstance(items, list) else [],
        "subtotal": pt.to_decimal(raw.get("subtotal")),
        "tax": pt.to_decimal(_first_defined(raw.get("tax"), raw.get("taxAmount"))),
        "tax_percentage": parse_tax_percentage(raw.get("taxPercentage")),
        "cc_fee": pt.to_decimal(raw.get("ccFee")),
        "total": pt.to_decimal(raw.get("total")),
        "payment_method": _first_defined(payment.get("method"), raw.get("paymentType")),
        "confirmation_number": _first_text(payment.get("confirmationNumber")),
        "ledger_synced": _first_defined(raw.get("zohoSynced"), raw.get("syncedToZoho")),
        "ledger_error": _first_text(raw.get("zohoError"), raw.get("syncError")),
    }


def _ledger_banner(sale: Dict[str, Any]) -> Optional[Dict[str, str]]:
    synced = sale["ledger_synced"]
    if synced is None:
        return None
    if synced is True or str(synced).strip().lower() in ("1", "true"):
        return {"status": "synced", "title": LEDGER_SYNCED_TITLE, "detail": f"Receipt: {sale['receipt_number']}"}
    return {"status": "failed", "title": LEDGER_FAILED_TITLE, "detail": sale["ledger_error"] or LEDGER_FAILED_DEFAULT}


def format_receipt(raw: Any, store_name: Optional[str] = None) -> Dict[str, Any]:
    """Display model for a completed sale. Same input, same output; never raises."""
    sale = normalize_sale(raw)
    if sale is None:
        return {"empty": True, "title": NO_RECEIPT_TITLE}
    lines: List[Dict[str, Any]] = []
    for item in sale["items"]:
        qty = _format_quantity(item["quantity"])
        unit = f"{item['unit']} ×" if item["unit"] else "×"
        lines.append({
            "name": item["name"],
            "unit": item["unit"],
            "quantity": qty,
            "price": pt.format_money(item["price"]),
            "detail": f"({qty} {unit} {pt.format_money(item['price'])})",
            "amount": pt.format_money(item["amount"]),
        })
    fee = None
    if sale["cc_fee"] > 0:
        fee = {"label": PROCESSING_FEE_LABEL, "amount": pt.format_money(sale["cc_fee"])}
    tax_rate = pt.format_rate(sale["tax_percentage"])
    return {
        "empty": False,
        "title": COMPANY_NAME,
        "store": clean_location_name(store_name or sale["location_name"]),
        "receipt_number": sale["receipt_number"],
        "date": _format_timestamp(sale["timestamp"]),
        "customer": sale["customer_name"],
        "cashier": sale["cashier"],
        "lines": lines,
        "subtotal": pt.format_money(sale["subtotal"]),
        "tax_rate": tax_rate,
        "tax_label": f"Tax ({tax_rate}):",
        "tax": pt.format_money(sale["tax"]),
        "fee": fee,
        "total": pt.format_money(sale["total"]),
        "payment_method": format_payment_method(sale["payment_method"]),
        "confirmation_number": sale["confirmation_number"],
        "ledger": _ledger_banner(sale),
    }


def _two_column(left: str, right: str, width: int) -> str:
    gap = max(1, width - len(left) - len(right))
    return f"{left}{' ' * gap}{right}"


def render_receipt_text(receipt: Dict[str, Any], width: int = 40) -> str:
    """Fixed-width plain text version of a ``format_receipt`` model."""
    if not receipt or receipt.get("empty"):
        return NO_RECEIPT_TITLE
    out = ["=" * width, receipt["title"].center(width).rstrip()]
    if receipt.get("store"):
        out.append(receipt["store"].center(width).rstrip())
    out.append("=" * width)
    out.append(_two_column("Receipt #", receipt["receipt_number"], width))
    if receipt.get("date"):
        out.append(_two_column("Date", receipt["date"], width))
    if receipt.get("customer"):
        out.append(_two_column("Customer", receipt["customer"], width))
    out.append("-" * width)
    for line in receipt["lines"]:
        out.append(_two_column(line["name"], line["amount"], width))
        out.append(f"  {line['detail']}")
    out.append("-" * width)
    out.append(_two_column("Subtotal:", receipt["subtotal"], width))
    out.append(_two_column(receipt["tax_label"], receipt["tax"], width))
    if receipt.get("fee"):
        out.append(_two_column(receipt["fee"]["label"] + ":", receipt["fee"]["amount"], width))
    out.append(_two_column("TOTAL:", receipt["total"], width))
    out.append("-" * width)
    out.append(_two_column("Payment Method", receipt["payment_method"], width))
    if receipt.get("confirmation_number"):
        out.append(_two_column("Transaction ID", receipt["confirmation_number"], width))
    ledger = receipt.get("ledger")
    if ledger:
        out.append(ledger["title"])
        out.append(f"  {ledger['detail']}")
    out.append("=" * width)
    out.append("Thank you for your business!".center(width).rstrip())
    return "\n".join(out)
