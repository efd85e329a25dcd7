"""Tests for wallet credit issuance, spending and expiry."""
from datetime import timedelta
from decimal import Decimal

import pytest

from bookon.core.errors import InsufficientCreditsError
from bookon.models.audit_log import AuditLog
from bookon.models.wallet_credit import WalletCredit
from bookon.services import wallet_service
from bookon.services.cancellation_policy import as_utc
from bookon.tasks import worker_jobs


@pytest.fixture
def add_credit(db, parent, utcnow):
    def _add(amount, provider_id="venue-a", issued_days_ago=0, source="manual"):
        credit = wallet_service.build_credit(
            parent.id, Decimal(amount), source, utcnow - timedelta(days=issued_days_ago), provider_id=provider_id,
        )
        db.add(credit)
        db.commit()
        return credit
    return _add


class TestIssueCredit:

    def test_issue_credit_sets_expiry_and_audits(self, db, parent, staff, utcnow):
        credit = wallet_service.issue_credit(db, parent.id, Decimal("12.50"), "manual", provider_id="venue-a",
                                             description="Goodwill", actor_user_id=staff.id)

        assert credit.status == "active"
        assert credit.amount == Decimal("12.50")
        assert as_utc(credit.expiry_date) - utcnow > timedelta(days=364)
        entry = db.query(AuditLog).filter(AuditLog.entity_id == credit.id).one()
        assert entry.actor_user_id == staff.id
        assert entry.action == "wallet.issue"

    def test_custom_expiry(self, db, parent, utcnow):
        credit = wallet_service.issue_credit(db, parent.id, Decimal("5.00"), "policy", expiry_days=30)
        assert as_utc(credit.expiry_date) - utcnow < timedelta(days=31)

    def test_unknown_source_rejected(self, db, parent):
        with pytest.raises(ValueError):
            wallet_service.issue_credit(db, parent.id, Decimal("5.00"), "lottery")

    def test_negative_amount_rejected(self, parent, utcnow):
        with pytest.raises(ValueError):
            wallet_service.build_credit(parent.id, Decimal("-1.00"), "manual", utcnow)


class TestBalance:

    def test_balance_groups_by_provider(self, db, parent, add_credit):
        add_credit("10.00", provider_id="venue-a")
        add_credit("5.00", provider_id="venue-b")
        add_credit("2.50", provider_id=None)

        balance = wallet_service.get_wallet_balance(db, parent.id)

        assert balance.available_credits == Decimal("17.50")
        assert balance.credits_by_provider == {
            "venue-a": Decimal("10.00"),
            "venue-b": Decimal("5.00"),
            "general": Decimal("2.50"),
        }
        assert len(balance.credits) == 3

    def test_balance_for_one_provider(self, db, parent, add_credit):
        add_credit("10.00", provider_id="venue-a")
        add_credit("5.00", provider_id="venue-b")
        balance = wallet_service.get_wallet_balance(db, parent.id, provider_id="venue-b")
        assert balance.available_credits == Decimal("5.00")

    def test_lapsed_credit_is_not_available(self, db, parent, add_credit):
        add_credit("10.00", issued_days_ago=400)
        add_credit("4.00")

        balance = wallet_service.get_wallet_balance(db, parent.id)

        assert balance.available_credits == Decimal("4.00")
        assert balance.expired_credits == Decimal("10.00")

    def test_empty_wallet(self, db, parent):
        balance = wallet_service.get_wallet_balance(db, parent.id)
        assert balance.available_credits == Decimal("0.00")
        assert balance.credits == []


class TestUseCredits:

    def test_spends_soonest_expiring_first(self, db, parent, add_credit):
        older = add_credit("10.00", issued_days_ago=300)
        newer = add_credit("10.00", issued_days_ago=10)

        usage = wallet_service.use_credits(db, parent.id, Decimal("13.00"), "booking-1", "tx-1")

        assert [u["creditId"] for u in usage] == [older.id, newer.id]
        assert [u["amount"] for u in usage] == [Decimal("10.00"), Decimal("3.00")]
        db.expire_all()
        assert db.get(WalletCredit, older.id).status == "used"
        assert db.get(WalletCredit, newer.id).remaining == Decimal("7.00")
        assert db.get(WalletCredit, newer.id).transaction_id == "tx-1"

    def test_insufficient_credit_changes_nothing(self, db, parent, add_credit):
        credit = add_credit("5.00")

        with pytest.raises(InsufficientCreditsError):
            wallet_service.use_credits(db, parent.id, Decimal("5.01"), "booking-1", "tx-1")

        db.expire_all()
        assert db.get(WalletCredit, credit.id).used_amount == Decimal("0.00")

    def test_lapsed_credit_cannot_be_spent(self, db, parent, add_credit):
        add_credit("10.00", issued_days_ago=400)
        with pytest.raises(InsufficientCreditsError):
            wallet_service.use_credits(db, parent.id, Decimal("1.00"), "booking-1", "tx-1")

    def test_amount_must_be_positive(self, db, parent):
        with pytest.raises(ValueError):
            wallet_service.use_credits(db, parent.id, Decimal("0"), "booking-1", "tx-1")


class TestTransfer:

    def test_moves_credit_between_providers(self, db, parent, add_credit):
        add_credit("10.00", provider_id="venue-a")

        usage, credit = wallet_service.transfer_credits(db, parent.id, "venue-a", "venue-b", Decimal("4.00"))

        assert usage[0]["amount"] == Decimal("4.00")
        assert credit.source == "transfer"
        assert credit.provider_id == "venue-b"
        assert credit.transaction_id == usage[0]["transactionId"]
        balance = wallet_service.get_wallet_balance(db, parent.id)
        assert balance.credits_by_provider == {"venue-a": Decimal("6.00"), "venue-b": Decimal("4.00")}

    def test_only_source_provider_credit_counts(self, db, parent, add_credit):
        add_credit("10.00", provider_id="venue-c")
        with pytest.raises(InsufficientCreditsError):
            wallet_service.transfer_credits(db, parent.id, "venue-a", "venue-b", Decimal("1.00"))
        assert db.query(WalletCredit).count() == 1


class TestExpiry:

    def test_expiring_window(self, db, add_credit):
        soon = add_credit("3.00", issued_days_ago=350)
        add_credit("3.00", issued_days_ago=10)
        add_credit("3.00", issued_days_ago=400)

        expiring = wallet_service.get_expiring_credits(db, days_ahead=30)

        assert [c.id for c in expiring] == [soon.id]

    def test_process_expired_marks_only_lapsed(self, db, add_credit):
        lapsed = add_credit("3.00", issued_days_ago=400)
        live = add_credit("3.00")

        assert wallet_service.process_expired_credits(db) == 1

        db.expire_all()
        assert db.get(WalletCredit, lapsed.id).status == "expired"
        assert db.get(WalletCredit, live.id).status == "active"

    def test_process_expired_honours_now(self, db, add_credit, utcnow):
        add_credit("3.00")
        assert wallet_service.process_expired_credits(db, now=utcnow + timedelta(days=366)) == 1

    def test_worker_job_uses_session_factory(self, session_factory, add_credit):
        add_credit("3.00", issued_days_ago=400)
        assert worker_jobs.expire_wallet_credits(session_factory=session_factory) == {"expired": 1}
        assert worker_jobs.expire_wallet_credits(session_factory=session_factory) == {"expired": 0}

    def test_email_worker_with_empty_queue(self, session_factory):
        result = worker_jobs.process_email_queue(session_factory=session_factory)
        assert result == {"processed": 0, "sent": 0, "failed": 0}


class TestStats:

    def test_stats_totals(self, db, parent, add_credit):
        add_credit("10.00", provider_id="venue-a", source="cancellation")
        add_credit("6.00", provider_id="venue-b", issued_days_ago=400)
        wallet_service.use_credits(db, parent.id, Decimal("4.00"), "booking-1", "tx-1")

        stats = wallet_service.get_wallet_stats(db)

        assert stats["totalCreditsIssued"] == Decimal("16.00")
        assert stats["totalCreditsUsed"] == Decimal("4.00")
        assert stats["activeCredits"] == Decimal("6.00")
        assert stats["totalCreditsExpired"] == Decimal("6.00")
        assert stats["creditsBySource"] == {"cancellation": Decimal("10.00"), "manual": Decimal("6.00")}

    def test_stats_for_provider(self, db, add_credit):
        add_credit("10.00", provider_id="venue-a")
        add_credit("6.00", provider_id="venue-b")
        assert wallet_service.get_wallet_stats(db, provider_id="venue-b")["totalCreditsIssued"] == Decimal("6.00")
