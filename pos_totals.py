# Sale totals: subtotal, tax and total for a set of cart lines.
import math
from decimal import Context, Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Optional

EXEMPTION_CERTIFICATE = "SALES TAX EXCEPTION CERTIFICATE"
CENT = Decimal("0.01")
ZERO = Decimal("0")
# Largest decimal exponent accepted from input (amounts below 10**16).
MAX_ADJUSTED = 15


def _sane(parsed: Decimal, default: Any) -> Decimal:
    if not parsed.is_finite() or parsed.adjusted() > MAX_ADJUSTED:
        return Decimal(default)
    return parsed


def to_decimal(value: Any, default: Any = ZERO) -> Decimal:
    """Parse numbers and numeric strings; None, junk, non-finite and absurdly large values give ``default``."""
    if value is None or isinstance(value, bool):
        return Decimal(default)
    if isinstance(value, Decimal):
        return _sane(value, default)
    if isinstance(value, float):
        if not math.isfinite(value):
            return Decimal(default)
        return _sane(Decimal(repr(value)), default)
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal(default)
    return _sane(parsed, default)


def clamp_quantity(value: Any) -> int:
    """Quantities below 1 are clamped to 1, never rejected."""
    try:
        qty = int(value)
    except (TypeError, ValueError):
        try:
            qty = int(float(value))
        except (TypeError, ValueError, OverflowError):
            return 1
    return qty if qty >= 1 else 1


def _customer_value(customer: Optional[Dict[str, Any]], *keys: str) -> Any:
    if not customer:
        return None
    for key in keys:
        if customer.get(key) is not None:
            return customer[key]
    return None


def _is_certificate(preference: Any) -> bool:
    if not isinstance(preference, str):
        return False
    return preference.strip().upper() == EXEMPTION_CERTIFICATE


def is_tax_exempt(customer: Optional[Dict[str, Any]], tax_preference: Optional[str] = None) -> bool:
    """
    A customer is exempt when flagged ``tax_exempt`` or when their tax preference
    (or the one resolved from their price list) is the exception certificate.
    Exemption wins over any configured tax rate.
    """
    if _customer_value(customer, "tax_exempt", "taxExempt") is True:
        return True
    if _is_certificate(_customer_value(customer, "tax_preference", "taxPreference")):
        return True
    return _is_certificate(tax_preference)


def line_amount(item: Dict[str, Any]) -> Decimal:
    price = to_decimal(item.get("unit_price"))
    return price * clamp_quantity(item.get("quantity", 1))


def compute_totals(items: Iterable[Dict[str, Any]], tax_rate: Any, tax_exempt: bool) -> Dict[str, Decimal]:
    """
    Return ``{'subtotal', 'tax', 'total'}`` as unrounded Decimals.

    Rounding is left to display (``round_money``) so per-line rounding error
    never accumulates into the total.
    """
    subtotal = sum((line_amount(item) for item in items), ZERO)
    tax = ZERO if tax_exempt else subtotal * to_decimal(tax_rate)
    return {"subtotal": subtotal, "tax": tax, "total": subtotal + tax}


def round_money(value: Any) -> Decimal:
    if isinstance(value, Decimal) and value.is_finite():
        amount = value
    else:
        amount = to_decimal(value)
    # Computed totals can outgrow the default 28-digit precision.
    context = Context(prec=max(28, amount.adjusted() + 3))
    return amount.quantize(CENT, rounding=ROUND_HALF_UP, context=context)


def format_money(value: Any) -> str:
    amount = round_money(value)
    if amount == 0:
        amount = abs(amount)
    if amount < 0:
        return f"-${-amount:,.2f}"
    return f"${amount:,.2f}"


def format_rate(percent: Any) -> str:
    return f"{round_money(percent):.2f}%"
