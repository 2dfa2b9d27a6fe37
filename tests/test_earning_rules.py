from decimal import Decimal

import pytest

from softpoints.core.earning_rules import (
    ACTIVITY_BONUS_POINTS,
    EARNING_RULES,
    compute_activity_bonus,
    compute_points,
)
from softpoints.models.points import SourceType


class TestComputePoints:
    """적립 규칙 테이블 테스트"""

    @pytest.mark.parametrize(
        "views,expected",
        [(0, 0), (999, 0), (1000, 5), (1999, 5), (2000, 10), (10500, 50)],
    )
    def test_views_pay_per_complete_thousand(self, views, expected):
        assert compute_points(SourceType.VIEWS, views) == expected

    @pytest.mark.parametrize(
        "amount,expected",
        [(Decimal("999.99"), 0), (Decimal("1000"), 10), (Decimal("2500.50"), 20)],
    )
    def test_sales_pay_per_thousand_naira(self, amount, expected):
        assert compute_points(SourceType.SALES, amount) == expected

    def test_flat_rules(self):
        assert compute_points(SourceType.TIPS, 3) == 3
        assert compute_points(SourceType.SUBSCRIPTIONS, 2) == 20
        assert compute_points(SourceType.REFERRAL, 1) == 50

    def test_daily_login_is_flat(self):
        assert compute_points(SourceType.DAILY_LOGIN, 1) == 5
        assert compute_points(SourceType.DAILY_LOGIN, 7) == 5
        assert compute_points(SourceType.DAILY_LOGIN, 0) == 0

    def test_accepts_plain_string_source_type(self):
        assert compute_points("views", 3000) == 15

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValueError):
            compute_points(SourceType.VIEWS, -1)

    def test_non_numeric_quantity_rejected(self):
        with pytest.raises(ValueError):
            compute_points(SourceType.TIPS, "3")
        with pytest.raises(ValueError):
            compute_points(SourceType.TIPS, True)

    def test_unknown_source_rejected(self):
        with pytest.raises(ValueError):
            compute_points(SourceType.WITHDRAWAL, 1)

    def test_rule_table_is_read_only(self):
        with pytest.raises(TypeError):
            EARNING_RULES["views"] = None  # type: ignore[index]


class TestActivityBonus:
    def test_known_activity(self):
        assert compute_activity_bonus("create_post") == ACTIVITY_BONUS_POINTS["create_post"]

    def test_unknown_activity(self):
        with pytest.raises(ValueError):
            compute_activity_bonus("juggling")
