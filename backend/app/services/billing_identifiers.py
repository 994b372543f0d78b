"""Merchant uid, billing key and charge name helpers."""

import re
from datetime import date, timedelta

from app.core.exceptions import ValidationError
from app.models.shared import BillingPlan

_BUSINESS_ID_RE = re.compile(r"^[A-Za-z0-9-]{1,64}$")
_MERCHANT_UID_RE = re.compile(r"^(?P<business_id>[A-Za-z0-9-]{1,64})_ch(?P<sequence>\d+)$")


def validate_business_id(business_id: str) -> str:
    """Business ids are embedded in merchant uids, so ``_`` is not allowed."""
    if not _BUSINESS_ID_RE.match(business_id):
        raise ValidationError(
            f"Malformed business_id: {business_id!r}", {"business_id": business_id}
        )
    return business_id


def parse_plan(value: str) -> BillingPlan:
    try:
        return BillingPlan(value)
    except ValueError:
        supported = ", ".join(plan.value for plan in BillingPlan)
        raise ValidationError(
            f"billing_plan not supported, must be one of: {supported}",
            {"billing_plan": value},
        ) from None


def format_merchant_uid(business_id: str, sequence: int) -> str:
    if sequence < 0:
        raise ValidationError("Charge sequence must not be negative", {"sequence": sequence})
    return f"{validate_business_id(business_id)}_ch{sequence}"


def parse_merchant_uid(merchant_uid: str) -> tuple[str, int]:
    """Split ``{business_id}_ch{sequence}`` into its parts."""
    match = _MERCHANT_UID_RE.match(merchant_uid)
    if not match:
        raise ValidationError(
            f"Malformed merchant_uid: {merchant_uid!r}", {"merchant_uid": merchant_uid}
        )
    return match.group("business_id"), int(match.group("sequence"))


def next_merchant_uid(merchant_uid: str) -> str:
    business_id, sequence = parse_merchant_uid(merchant_uid)
    return format_merchant_uid(business_id, sequence + 1)


def billing_key_for(business_id: str, card_last4: str) -> str:
    """Billing key token registered with the provider for one card."""
    if not (len(card_last4) == 4 and card_last4.isdigit()):
        raise ValidationError(
            f"The last 4 digits are not 4 digits long ({card_last4})",
            {"card_last4": card_last4},
        )
    return f"{validate_business_id(business_id)}_{card_last4}"


def cycle_end_date(cycle_start: date, plan: BillingPlan) -> date:
    """Last day covered by a cycle (inclusive)."""
    return cycle_start + timedelta(weeks=plan.weeks) - timedelta(days=1)


def charge_name(business_id: str, cycle_start: date, plan: BillingPlan) -> str:
    end = cycle_end_date(cycle_start, plan)
    return (
        f"Subscription #{business_id} "
        f"{cycle_start.month}/{cycle_start.day} - {end.month}/{end.day} ({plan.value})"
    )
