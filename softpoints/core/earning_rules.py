"""
SoftPoints earning rule table.

Pure functions only: no I/O, no clock, no state. Daily-login idempotency is
enforced by the reward dispatcher, not here.
"""

from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, NamedTuple, Union

from softpoints.models.points import SourceType

EARNING_RULES_VERSION = "2024-01"

Quantity = Union[int, Decimal]


class EarningRule(NamedTuple):
    points: int
    # None means flat: `points` per unit of quantity
    per_units: Union[int, None] = None


# {source_type: rule}
EARNING_RULES: Mapping[str, EarningRule] = MappingProxyType(
    {
        SourceType.VIEWS.value: EarningRule(points=5, per_units=1000),
        SourceType.TIPS.value: EarningRule(points=1),
        SourceType.SUBSCRIPTIONS.value: EarningRule(points=10),
        SourceType.SALES.value: EarningRule(points=10, per_units=1000),  # NGN
        SourceType.REFERRAL.value: EarningRule(points=50),
        SourceType.DAILY_LOGIN.value: EarningRule(points=5),
    }
)

# Flat engagement bonuses emitted by feature modules (credited as source_type=bonus)
ACTIVITY_BONUS_POINTS: Mapping[str, int] = MappingProxyType(
    {
        "create_post": 10,
        "like_post": 1,
        "comment_post": 2,
        "share_post": 2,
        "create_video": 50,
        "list_product": 20,
        "crypto_trade": 20,
        "freelance_job_completed": 25,
        "complete_profile": 30,
    }
)


def _validate_quantity(quantity: Quantity) -> Decimal:
    if isinstance(quantity, bool) or not isinstance(quantity, (int, Decimal)):
        raise ValueError(f"Quantity must be an int or Decimal, got {type(quantity).__name__}")
    value = Decimal(quantity)
    if not value.is_finite() or value < 0:
        raise ValueError(f"Quantity must be a non-negative number, got {quantity}")
    return value


def compute_points(source_type: str, quantity: Quantity) -> int:
    """Map an activity quantity to a non-negative whole number of points.

    Thresholded rules (views, sales) only pay for complete blocks:
    999 views -> 0, 1000 -> 5, 1999 -> 5, 2000 -> 10.
    Daily login is flat regardless of quantity; referral pays per referral.
    """
    key = str(getattr(source_type, "value", source_type))
    rule = EARNING_RULES.get(key)
    if rule is None:
        raise ValueError(f"No earning rule for source type: {source_type}")

    value = _validate_quantity(quantity)

    if key == SourceType.DAILY_LOGIN.value:
        return rule.points if value > 0 else 0

    if rule.per_units is None:
        return int(value) * rule.points

    blocks = int(value // rule.per_units)
    return blocks * rule.points


def compute_activity_bonus(activity: str) -> int:
    try:
        return ACTIVITY_BONUS_POINTS[activity]
    except KeyError:
        raise ValueError(f"Unknown activity: {activity}")
