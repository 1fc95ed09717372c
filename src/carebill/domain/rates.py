"""Per-visit rate resolution and money arithmetic."""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from carebill.domain.entities import Agency

# Rate-card code used when a visit carries no code of its own
DEFAULT_VISIT_CODE = "P"

CENT = Decimal("0.01")


def round2(value) -> Decimal:
    """Round to cents, half-up."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def rate_code_for(visit_code: Optional[str]) -> str:
    """Return the code used for rate-card lookup."""
    code = (visit_code or "").strip()
    return code or DEFAULT_VISIT_CODE


def resolve_rate(agency: Optional[Agency], visit_code: Optional[str], system_default_rate) -> Decimal:
    """Resolve the flat per-visit rate for a visit.

    Priority, first match wins:
    1. the agency's rate card entry for the visit code (``"P"`` when empty)
    2. the agency's default rate, if set and non-zero
    3. the system default rate

    There is no unresolvable case; the system default always applies last.
    """
    if agency is not None:
        card_rate = agency.rate_for(rate_code_for(visit_code))
        if card_rate is not None:
            return round2(card_rate)
        if agency.default_rate:
            return round2(agency.default_rate)
    return round2(system_default_rate)


def invoice_total(subtotal, adjustments) -> Decimal:
    """Invoice total: subtotal plus adjustments."""
    return round2(Decimal(subtotal) + Decimal(adjustments or 0))


def payment_total(base_amount, adjustment_amounts) -> Decimal:
    """Payroll total: base amount plus every adjustment, in order."""
    total = Decimal(base_amount or 0)
    for amount in adjustment_amounts:
        total += Decimal(amount)
    return round2(total)
