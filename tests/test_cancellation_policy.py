"""Tests for the cancellation policy engine."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from bookon.services.cancellation_policy import (
    BookingSnapshot,
    CourseSchedule,
    RefundMethod,
    calculate_pro_rata,
    determine_eligibility,
    hours_until_session,
    sessions_used,
)

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def single(amount="20.00", method="card", hours=48, status="confirmed"):
    return BookingSnapshot(
        booking_id="b-1",
        amount=Decimal(amount),
        payment_method=method,
        activity_at=NOW + timedelta(hours=hours),
        status=status,
    )


def course(amount="100.00", method="card", sessions=10, starts_in=timedelta(weeks=-4), weeks=10):
    start = NOW + starts_in
    return BookingSnapshot(
        booking_id="c-1",
        amount=Decimal(amount),
        payment_method=method,
        activity_at=start,
        course=CourseSchedule(start=start, end=start + timedelta(weeks=weeks), total_sessions=sessions),
    )


class TestScenarios:
    """Worked examples of the refund policy."""

    def test_card_booking_two_days_out_is_cash_refund_less_fee(self):
        v = determine_eligibility(single(hours=48), NOW)
        assert v.eligible is True
        assert v.method is RefundMethod.CASH
        assert v.refund_amount == Decimal("18.00")
        assert v.credit_amount == Decimal("0.00")
        assert v.admin_fee == Decimal("2.00")

    def test_card_booking_inside_24_hours_is_credit_only(self):
        v = determine_eligibility(single(hours=10), NOW)
        assert v.eligible is True
        assert v.method is RefundMethod.CREDIT
        assert v.refund_amount == Decimal("0.00")
        assert v.credit_amount == Decimal("18.00")

    def test_session_already_started_refunds_nothing(self):
        v = determine_eligibility(single(hours=-2), NOW)
        assert v.eligible is False
        assert v.refund_amount == v.credit_amount == v.admin_fee == Decimal("0.00")
        assert "already occurred" in v.reason

    def test_course_at_forty_percent_elapsed(self):
        snapshot = course()
        breakdown = calculate_pro_rata(snapshot, NOW)
        assert breakdown.sessions_used == 4
        assert breakdown.sessions_remaining == 6
        assert breakdown.value_per_session == Decimal("10.00")
        assert breakdown.refundable_amount == Decimal("60.00")
        assert breakdown.credit_amount == Decimal("58.00")

        v = determine_eligibility(snapshot, NOW)
        assert v.eligible is True
        assert v.credit_amount == Decimal("58.00")
        assert v.refund_amount == Decimal("0.00")

    def test_tfc_never_refunds_cash(self):
        v = determine_eligibility(single(amount="15.00", method="tfc", hours=72), NOW)
        assert v.eligible is True
        assert v.method is RefundMethod.CREDIT
        assert v.refund_amount == Decimal("0.00")
        assert v.credit_amount == Decimal("13.00")


class TestPaymentMethods:

    def test_voucher_outside_window_is_credit(self):
        v = determine_eligibility(single(method="voucher", hours=100), NOW)
        assert v.method is RefundMethod.CREDIT
        assert v.credit_amount == Decimal("18.00")

    def test_voucher_inside_window_mentions_unused_sessions(self):
        v = determine_eligibility(single(method="voucher", hours=5), NOW)
        assert v.method is RefundMethod.CREDIT
        assert "unused sessions" in v.reason

    def test_wallet_credit_payment_is_returned_as_credit(self):
        v = determine_eligibility(single(method="credit", hours=48), NOW)
        assert v.method is RefundMethod.CREDIT
        assert v.refund_amount == Decimal("0.00")
        assert v.credit_amount == Decimal("18.00")

    def test_mixed_outside_window_splits_and_charges_fee_on_each_half(self):
        v = determine_eligibility(single(method="mixed", hours=48), NOW)
        assert v.method is RefundMethod.MIXED
        assert v.refund_amount == Decimal("8.00")
        assert v.credit_amount == Decimal("8.00")
        assert v.admin_fee == Decimal("4.00")

    def test_mixed_split_keeps_odd_pennies(self):
        v = determine_eligibility(single(amount="20.01", method="mixed", hours=48), NOW)
        assert v.refund_amount + v.credit_amount + v.admin_fee == Decimal("20.01")

    def test_mixed_inside_window_is_all_credit(self):
        v = determine_eligibility(single(method="mixed", hours=3), NOW)
        assert v.method is RefundMethod.CREDIT
        assert v.refund_amount == Decimal("0.00")
        assert v.credit_amount == Decimal("18.00")
        assert v.admin_fee == Decimal("2.00")


class TestGates:

    @pytest.mark.parametrize("status", ["cancelled", "completed"])
    def test_closed_booking_is_ineligible(self, status):
        v = determine_eligibility(single(status=status), NOW)
        assert v.eligible is False
        assert status in v.reason
        assert v.refund_amount == v.credit_amount == Decimal("0.00")

    def test_exactly_24_hours_out_is_outside_window(self):
        v = determine_eligibility(single(hours=24), NOW)
        assert v.method is RefundMethod.CASH

    def test_notice_window_is_configurable(self):
        v = determine_eligibility(single(hours=30), NOW, notice_hours=48)
        assert v.method is RefundMethod.CREDIT

    def test_cancelling_at_session_start_counts_session_as_used(self):
        v = determine_eligibility(single(hours=0), NOW)
        assert v.eligible is True
        assert v.breakdown.sessions_used == 1
        assert v.credit_amount == Decimal("0.00")
        assert v.admin_fee == Decimal("0.00")

    def test_fee_never_exceeds_refundable_amount(self):
        v = determine_eligibility(single(amount="1.50", hours=48), NOW)
        assert v.admin_fee == Decimal("1.50")
        assert v.refund_amount == Decimal("0.00")

    def test_custom_admin_fee(self):
        v = determine_eligibility(single(hours=48), NOW, admin_fee=Decimal("5.00"))
        assert v.refund_amount == Decimal("15.00")


class TestCourses:

    def test_before_course_start_nothing_is_used(self):
        snapshot = course(starts_in=timedelta(days=2))
        v = determine_eligibility(snapshot, NOW)
        assert v.breakdown.sessions_used == 0
        assert v.method is RefundMethod.CASH
        assert v.refund_amount == Decimal("98.00")

    def test_after_course_end_is_ineligible(self):
        snapshot = course(starts_in=timedelta(weeks=-11))
        assert sessions_used(snapshot, NOW) == 10
        v = determine_eligibility(snapshot, NOW)
        assert v.eligible is False

    def test_mid_session_measures_notice_to_next_session(self):
        snapshot = course(starts_in=-timedelta(weeks=4, days=3, hours=12))
        assert hours_until_session(snapshot, NOW) == pytest.approx(84.0)
        v = determine_eligibility(snapshot, NOW)
        assert v.breakdown.sessions_used == 4
        assert v.method is RefundMethod.CASH
        assert v.refund_amount == Decimal("58.00")

    def test_value_per_session_rounds_but_refundable_does_not_drift(self):
        snapshot = course(sessions=3, starts_in=timedelta(days=3))
        breakdown = calculate_pro_rata(snapshot, NOW)
        assert breakdown.value_per_session == Decimal("33.33")
        assert breakdown.refundable_amount == Decimal("100.00")

    def test_zero_session_course_is_priced_as_single_session(self):
        snapshot = course(sessions=0, starts_in=timedelta(days=3))
        assert snapshot.course is None
        assert calculate_pro_rata(snapshot, NOW).refundable_amount == Decimal("100.00")

    def test_sessions_used_never_decreases(self):
        snapshot = course(starts_in=timedelta(days=3))
        previous = 0
        instant = NOW
        while instant < NOW + timedelta(weeks=11):
            used = sessions_used(snapshot, instant)
            assert previous <= used <= 10
            previous = used
            instant += timedelta(hours=13)
        assert previous == 10


class TestInvariants:

    HOURS = [-30, -1, 0, 0.5, 23.9, 24, 25, 200]
    AMOUNTS = ["0.00", "1.00", "2.00", "20.00", "99.99"]

    @pytest.mark.parametrize("method", ["card", "tfc", "voucher", "credit", "mixed"])
    def test_money_is_never_negative(self, method):
        for hours in self.HOURS:
            for amount in self.AMOUNTS:
                v = determine_eligibility(single(amount=amount, method=method, hours=hours), NOW)
                assert v.refund_amount >= 0
                assert v.credit_amount >= 0
                assert v.admin_fee >= 0

    @pytest.mark.parametrize("method", ["card", "tfc", "voucher"])
    def test_fee_taken_once(self, method):
        for hours in self.HOURS:
            for amount in self.AMOUNTS:
                v = determine_eligibility(single(amount=amount, method=method, hours=hours), NOW)
                if v.eligible:
                    assert v.refund_amount + v.credit_amount + v.admin_fee == v.breakdown.refundable_amount

    @pytest.mark.parametrize("method", ["card", "tfc", "voucher"])
    def test_inside_window_never_pays_cash(self, method):
        for hours in [0, 0.5, 12, 23.9]:
            v = determine_eligibility(single(method=method, hours=hours), NOW)
            assert v.refund_amount == Decimal("0.00")
            assert v.method is RefundMethod.CREDIT

    def test_past_sessions_pay_nothing(self):
        for hours in [-0.01, -1, -500]:
            v = determine_eligibility(single(hours=hours), NOW)
            assert not v.eligible
            assert v.refund_amount == v.credit_amount == v.admin_fee == Decimal("0.00")


class TestSnapshot:

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            single(amount="-1.00")

    def test_unknown_payment_method_rejected(self):
        with pytest.raises(ValueError):
            single(method="bitcoin")

    def test_naive_datetimes_are_utc(self):
        snapshot = BookingSnapshot("b", Decimal("20.00"), "card", datetime(2026, 3, 4, 9, 0))
        assert hours_until_session(snapshot, NOW) == pytest.approx(48.0)
