import pytest

from softpoints.core.exceptions import (
    ConflictError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from softpoints.models.points import SourceType, TransactionType
from softpoints.schemas.points import (
    AdminPointsAdjustmentRequest,
    PointsTransferRequest,
)


def credit(amount, source_id, source_type=SourceType.TIPS, user_id=1):
    return lambda s: s.points.append_transaction(
        user_id=user_id,
        transaction_type=TransactionType.EARNED,
        source_type=source_type,
        amount=amount,
        source_id=source_id,
    )


def debit(amount, source_id, user_id=1):
    return lambda s: s.points.append_transaction(
        user_id=user_id,
        transaction_type=TransactionType.SPENT,
        source_type=SourceType.BOOST,
        amount=-amount,
        source_id=source_id,
    )


class TestLedgerAppend:
    """원장 추가 테스트"""

    def test_balance_chain(self, with_services, make_user):
        # Given
        make_user(1)

        # When
        first = with_services(credit(100, "a"))
        second = with_services(credit(50, "b"))
        third = with_services(debit(30, "c"))

        # Then
        assert first.status == "appended"
        assert first.transaction.balance_before == 0
        assert first.transaction.balance_after == 100
        assert second.transaction.balance_before == 100
        assert second.transaction.balance_after == 150
        assert third.transaction.balance_before == 150
        assert third.transaction.balance_after == 120
        assert with_services(lambda s: s.points.get_current_balance(1)) == 120

    def test_new_user_balance_is_zero(self, with_services):
        assert with_services(lambda s: s.points.get_current_balance(42)) == 0

    def test_duplicate_source_returns_prior_entry(self, with_services, make_user):
        # Given
        make_user(1)
        original = with_services(credit(10, "video-1:1000", SourceType.VIEWS))

        # When
        repeat = with_services(credit(10, "video-1:1000", SourceType.VIEWS))

        # Then
        assert repeat.status == "duplicate"
        assert repeat.transaction.id == original.transaction.id
        assert with_services(lambda s: s.points.get_current_balance(1)) == 10
        ledger = with_services(lambda s: s.points.get_user_ledger(1))
        assert ledger.total_count == 1

    def test_same_source_id_for_other_source_type_is_distinct(self, with_services, make_user):
        make_user(1)
        with_services(credit(1, "x", SourceType.TIPS))
        result = with_services(credit(10, "x", SourceType.SUBSCRIPTIONS))
        assert result.status == "appended"
        assert result.balance_after == 11

    def test_debit_beyond_balance_is_rejected(self, with_services, make_user):
        # Given
        make_user(1)
        with_services(credit(20, "a"))

        # When
        result = with_services(debit(21, "too-much"))

        # Then
        assert result.status == "insufficient_balance"
        assert result.transaction is None
        assert result.balance_after == 20
        assert with_services(lambda s: s.points.get_current_balance(1)) == 20

    def test_debit_to_exactly_zero(self, with_services, make_user):
        make_user(1)
        with_services(credit(20, "a"))
        result = with_services(debit(20, "all"))
        assert result.status == "appended"
        assert result.balance_after == 0

    def test_metadata_is_kept(self, with_services, make_user):
        make_user(1)
        result = with_services(
            lambda s: s.points.append_transaction(
                user_id=1,
                transaction_type=TransactionType.EARNED,
                source_type=SourceType.TIPS,
                amount=1,
                source_id="m",
                metadata={"rules_version": "2024-01"},
            )
        )
        assert result.transaction.metadata == {"rules_version": "2024-01"}


class TestLedgerQueries:
    def test_ledger_is_newest_first_with_pagination(self, with_services, make_user):
        # Given
        make_user(1)
        for i in range(5):
            with_services(credit(i + 1, f"tip-{i}"))

        # When
        page1 = with_services(lambda s: s.points.get_user_ledger(1, limit=2, offset=0))
        page3 = with_services(lambda s: s.points.get_user_ledger(1, limit=2, offset=4))

        # Then
        assert [e.source_id for e in page1.entries] == ["tip-4", "tip-3"]
        assert page1.has_next is True
        assert page1.total_count == 5
        assert page1.balance == 15
        assert [e.source_id for e in page3.entries] == ["tip-0"]
        assert page3.has_next is False

    def test_integrity_ok(self, with_services, make_user):
        make_user(1)
        with_services(credit(100, "a"))
        with_services(debit(40, "b"))

        user_check = with_services(lambda s: s.points.verify_user_integrity(1))
        global_check = with_services(lambda s: s.points.verify_global_integrity())

        assert user_check.status == "OK"
        assert user_check.calculated_balance == 60
        assert user_check.recorded_balance == 60
        assert user_check.materialized_balance == 60
        assert global_check.status == "OK"
        assert global_check.total_amounts == 60

    def test_analytics_by_source(self, with_services, make_user):
        make_user(1)
        with_services(credit(10, "v", SourceType.VIEWS))
        with_services(credit(3, "t"))
        with_services(debit(5, "b"))

        analytics = with_services(lambda s: s.points.get_analytics(1, "week"))

        assert analytics.total_earned == 13
        assert analytics.total_spent == 5
        assert analytics.net_change == 8
        assert analytics.transaction_count == 3
        by_source = {item.source_type: item for item in analytics.by_source}
        assert by_source["boost"].spent == 5
        assert by_source["views"].earned == 10

    def test_analytics_rejects_unknown_period(self, with_services):
        with pytest.raises(ValidationError):
            with_services(lambda s: s.points.get_analytics(1, "decade"))

    def test_tax_report(self, with_services, make_user):
        make_user(1)
        with_services(credit(250, "a"))

        from softpoints.models.base import utcnow

        year = utcnow().year
        report = with_services(lambda s: s.points.get_tax_report(1, year))

        assert report.total_points_earned == 250
        assert report.total_cash_value == "2.50"
        assert len(report.months) == 12
        assert report.completed_withdrawals == 0


class TestTransfer:
    def test_transfer_moves_points_and_sums_to_zero(self, with_services, make_user):
        # Given
        make_user(1)
        make_user(2)
        with_services(credit(100, "seed"))
        request = PointsTransferRequest(to_user_id=2, amount=40, transfer_id="t-1")

        # When
        result = with_services(lambda s: s.points.transfer_points(1, request))

        # Then
        assert result.success is True
        assert result.debit.amount + result.credit.amount == 0
        assert with_services(lambda s: s.points.get_current_balance(1)) == 60
        assert with_services(lambda s: s.points.get_current_balance(2)) == 40

    def test_transfer_is_idempotent(self, with_services, make_user):
        make_user(1)
        make_user(2)
        with_services(credit(100, "seed"))
        request = PointsTransferRequest(to_user_id=2, amount=40, transfer_id="t-1")

        with_services(lambda s: s.points.transfer_points(1, request))
        repeat = with_services(lambda s: s.points.transfer_points(1, request))

        assert "already processed" in repeat.message
        assert with_services(lambda s: s.points.get_current_balance(1)) == 60
        assert with_services(lambda s: s.points.get_current_balance(2)) == 40

    def test_same_transfer_id_from_two_senders(self, with_services, make_user):
        # Given
        for user_id in (1, 2, 3):
            make_user(user_id)
        with_services(credit(100, "seed", user_id=1))
        with_services(credit(100, "seed", user_id=2))

        # When
        first = PointsTransferRequest(to_user_id=3, amount=40, transfer_id="t1")
        second = PointsTransferRequest(to_user_id=3, amount=30, transfer_id="t1")
        with_services(lambda s: s.points.transfer_points(1, first))
        with_services(lambda s: s.points.transfer_points(2, second))

        # Then
        balances = [
            with_services(lambda s, u=u: s.points.get_current_balance(u))
            for u in (1, 2, 3)
        ]
        assert balances == [60, 70, 70]
        assert sum(balances) == 200

    def test_recipient_reusing_incoming_transfer_id(self, with_services, make_user):
        make_user(1)
        make_user(2)
        with_services(credit(100, "seed", user_id=1))
        with_services(credit(100, "seed", user_id=2))

        with_services(
            lambda s: s.points.transfer_points(
                1, PointsTransferRequest(to_user_id=2, amount=10, transfer_id="t1")
            )
        )
        with_services(
            lambda s: s.points.transfer_points(
                2, PointsTransferRequest(to_user_id=1, amount=25, transfer_id="t1")
            )
        )

        assert with_services(lambda s: s.points.get_current_balance(1)) == 115
        assert with_services(lambda s: s.points.get_current_balance(2)) == 85

    def test_reused_transfer_id_to_another_recipient(self, with_services, make_user):
        for user_id in (1, 2, 3):
            make_user(user_id)
        with_services(credit(100, "seed"))
        with_services(
            lambda s: s.points.transfer_points(
                1, PointsTransferRequest(to_user_id=2, amount=40, transfer_id="t1")
            )
        )

        with pytest.raises(ConflictError):
            with_services(
                lambda s: s.points.transfer_points(
                    1, PointsTransferRequest(to_user_id=3, amount=40, transfer_id="t1")
                )
            )
        assert with_services(lambda s: s.points.get_current_balance(1)) == 60
        assert with_services(lambda s: s.points.get_current_balance(3)) == 0

    def test_transfer_insufficient_balance(self, with_services, make_user):
        make_user(1)
        make_user(2)
        request = PointsTransferRequest(to_user_id=2, amount=1, transfer_id="t-2")
        with pytest.raises(InsufficientBalanceError):
            with_services(lambda s: s.points.transfer_points(1, request))
        assert with_services(lambda s: s.points.get_current_balance(2)) == 0

    def test_transfer_to_self_rejected(self, with_services, make_user):
        make_user(1)
        request = PointsTransferRequest(to_user_id=1, amount=1, transfer_id="t-3")
        with pytest.raises(ValidationError):
            with_services(lambda s: s.points.transfer_points(1, request))

    def test_transfer_to_unknown_user(self, with_services, make_user):
        make_user(1)
        request = PointsTransferRequest(to_user_id=999, amount=1, transfer_id="t-4")
        with pytest.raises(NotFoundError):
            with_services(lambda s: s.points.transfer_points(1, request))


class TestAdminAdjust:
    def test_bonus_and_penalty(self, with_services, make_user):
        make_user(1)
        bonus = AdminPointsAdjustmentRequest(user_id=1, amount=30, reason="contest")
        penalty = AdminPointsAdjustmentRequest(user_id=1, amount=-10, reason="abuse")

        with_services(lambda s: s.points.admin_adjust_points(bonus, admin_id=99))
        result = with_services(lambda s: s.points.admin_adjust_points(penalty, admin_id=99))

        assert result.balance_after == 20
        ledger = with_services(lambda s: s.points.get_user_ledger(1))
        assert [e.transaction_type for e in ledger.entries] == ["penalty", "bonus"]

    def test_penalty_cannot_overdraw(self, with_services, make_user):
        make_user(1)
        penalty = AdminPointsAdjustmentRequest(user_id=1, amount=-10, reason="abuse")
        with pytest.raises(InsufficientBalanceError):
            with_services(lambda s: s.points.admin_adjust_points(penalty, admin_id=99))

    def test_zero_adjustment_rejected(self, with_services):
        request = AdminPointsAdjustmentRequest(user_id=1, amount=0, reason="noop")
        with pytest.raises(ValidationError):
            with_services(lambda s: s.points.admin_adjust_points(request, admin_id=99))
