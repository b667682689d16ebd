from numbers import Real
from typing import Any

from supabase import Client

from app.core.logging import get_logger
from app.models.schemas import PromoValidationResult

logger = get_logger("VALIDATE-PROMO-CODE")


def _invalid(message: str) -> PromoValidationResult:
    return PromoValidationResult(valid=False, message=message)


def _is_amount(value: Any) -> bool:
    # bool is a Real subclass; True must not pass as an order amount
    return isinstance(value, Real) and not isinstance(value, bool) and value == value and value >= 0


def validate_promo_code(db: Client, code: Any, order_amount: Any) -> PromoValidationResult:
    """
    Relay a code and order amount to the validate_promo_code routine.

    Never raises: every failure comes back as valid=False.
    """
    logger.info("Validating code", code=code, order_amount=order_amount)

    if not code or not isinstance(code, str) or not code.strip():
        return _invalid("Promo code is required")

    if not _is_amount(order_amount):
        return _invalid("Valid order amount is required")

    try:
        response = db.rpc(
            "validate_promo_code",
            {"p_code": code.strip(), "p_order_amount": order_amount},
        ).execute()
    except Exception as e:
        logger.error("RPC error", error=str(e))
        return _invalid("Failed to validate promo code")

    data = response.data
    if isinstance(data, dict):
        data = [data]
    if not data:
        return _invalid("Invalid promo code")

    row = data[0]
    logger.info("Validation result", result=row)
    try:
        return PromoValidationResult(
            valid=bool(row.get("valid")),
            discount_type=row.get("discount_type"),
            discount_value=row.get("discount_value"),
            discount_amount=row.get("discount_amount"),
            message=row.get("message") or ("Promo code applied" if row.get("valid") else "Invalid promo code"),
        )
    except Exception as e:
        logger.error("Unexpected routine result", error=str(e))
        return _invalid("Failed to validate promo code")
