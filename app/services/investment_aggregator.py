from __future__ import annotations

from decimal import Decimal, InvalidOperation

from app.models.loan import Loan
from app.services.workflow_errors import ValidationFailed


# Summed Numeric/float rows may land a hair under the principal; anything
# within one cent of it counts as fully funded.
FUNDING_TOLERANCE = Decimal("0.01")

# Precision and scale of the Numeric(18, 2) money columns.
MONEY_PLACES = 2
MONEY_INTEGER_DIGITS = 16


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def coerce_decimal(
    value,
    field: str,
    *,
    places: int = MONEY_PLACES,
    integer_digits: int = MONEY_INTEGER_DIGITS,
) -> Decimal:
    """Parse caller input into a finite ``Decimal`` the database stores without rounding."""
    try:
        parsed = _as_decimal(value)
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValidationFailed(f"{field} must be a number", details={"field": field}) from exc
    if not parsed.is_finite():
        raise ValidationFailed(f"{field} must be a finite number", details={"field": field})
    if parsed.normalize().as_tuple().exponent < -places:
        raise ValidationFailed(
            f"{field} must have at most {places} decimal places",
            details={"field": field, "max_decimal_places": places},
        )
    if abs(parsed) >= Decimal(10) ** integer_digits:
        raise ValidationFailed(
            f"{field} is too large",
            details={"field": field, "max_integer_digits": integer_digits},
        )
    return parsed


def validate_amount(loan: Loan, amount, current_total) -> None:
    amount = coerce_decimal(amount, "amount")
    current_total = _as_decimal(current_total)
    principal = _as_decimal(loan.principal_amount)

    if amount <= 0:
        raise ValidationFailed(
            "Investment amount must be positive",
            details={"field": "amount", "amount": str(amount)},
        )

    would_be_total = current_total + amount
    if would_be_total > principal:
        raise ValidationFailed(
            f"Total investment ({would_be_total:.2f}) would exceed principal ({principal:.2f})",
            details={
                "field": "amount",
                "would_be_total": str(would_be_total),
                "principal_amount": str(principal),
                "remaining_amount": str(remaining_amount(loan, current_total)),
            },
        )


def is_fully_funded(loan: Loan, total_invested) -> bool:
    return _as_decimal(total_invested) >= _as_decimal(loan.principal_amount) - FUNDING_TOLERANCE


def remaining_amount(loan: Loan, total_invested) -> Decimal:
    remaining = _as_decimal(loan.principal_amount) - _as_decimal(total_invested)
    return max(remaining, Decimal("0"))
