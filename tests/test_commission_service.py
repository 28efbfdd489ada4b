"""Tests for CommissionService - end-to-end processing against the database."""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from commission_engine.calculators.types import CalculationOutcome, RateSettings
from commission_engine.events import CommissionEarned, PaymentFlaggedForReview
from commission_engine.exceptions import (
    PaymentNotEligibleError,
    PaymentNotFoundError,
    RecalculationRefusedError,
)
from commission_engine.models import CommissionLedgerEntry
from commission_engine.services import CommissionService, StaticSettingsProvider
from tests.factories import PAID_AT, ledger_rows, reload


@pytest.fixture
def service(session, emitter) -> CommissionService:
    return CommissionService(session, StaticSettingsProvider(), emitter)


@pytest.fixture
def client(session, test_data):
    return test_data.create_client(session)


@pytest.fixture
def schedule(session, test_data, client):
    return test_data.create_schedule(session, client, referrer=True)


class TestProcessPayment:
    """Test processing a single payment."""

    def test_first_payment_pays_closer_referrer_and_coach(
        self, service, session, test_data, client, schedule
    ):
        payment = test_data.create_payment(session, client, schedule)

        result = service.process_payment(payment.id)

        assert result.outcome == CalculationOutcome.CALCULATED
        assert result.entries_written == 3
        amounts = {r.split_role: r.commission_amount for r in ledger_rows(session, payment.id)}
        assert amounts == {
            "closer": Decimal("100.00"),
            "referrer": Decimal("100.00"),
            "coach": Decimal("385.00"),
        }
        assert reload(session, payment).commission_calculated is True

    def test_second_payment_has_no_referrer(self, service, session, test_data, client, schedule):
        first = test_data.create_payment(session, client, schedule)
        second = test_data.create_payment(
            session, client, schedule, paid_at=PAID_AT + timedelta(days=30)
        )

        service.process_payment(first.id)
        service.process_payment(second.id)

        roles = [r.split_role for r in ledger_rows(session, second.id)]
        assert roles == ["closer", "coach"]

    def test_repeat_call_writes_nothing(self, service, session, test_data, client, schedule):
        payment = test_data.create_payment(session, client, schedule)
        service.process_payment(payment.id)

        result = service.process_payment(payment.id)

        assert result.outcome == CalculationOutcome.ALREADY_PROCESSED
        assert result.entries_written == 0
        assert len(ledger_rows(session, payment.id)) == 3

    def test_unknown_payment(self, service):
        with pytest.raises(PaymentNotFoundError):
            service.process_payment(uuid4())

    def test_missing_client_is_flagged_for_review(
        self, service, session, test_data, captured_events
    ):
        payment = test_data.create_payment(session, None)

        result = service.process_payment(payment.id)

        assert result.outcome == CalculationOutcome.CLIENT_MISSING
        payment = reload(session, payment)
        assert payment.review_status == "pending_review"
        assert payment.commission_calculated is False
        assert ledger_rows(session, payment.id) == []
        assert [type(e) for e in captured_events] == [PaymentFlaggedForReview]

    def test_dangling_client_reference_is_flagged(self, service, session, test_data):
        payment = test_data.create_payment(session, None)
        payment.client_id = uuid4()
        session.commit()

        result = service.process_payment(payment.id)

        assert result.outcome == CalculationOutcome.CLIENT_MISSING

    @pytest.mark.parametrize("status", ["refunded", "partially_refunded", "disputed"])
    def test_only_succeeded_payments_are_processed(
        self, service, session, test_data, client, schedule, status
    ):
        payment = test_data.create_payment(session, client, schedule, status=status)

        with pytest.raises(PaymentNotEligibleError) as exc_info:
            service.process_payment(payment.id)

        assert exc_info.value.payment_status == status
        assert ledger_rows(session, payment.id) == []
        assert reload(session, payment).commission_calculated is False

    def test_events_carry_notification_payload(
        self, service, session, test_data, client, schedule, captured_events
    ):
        payment = test_data.create_payment(session, client, schedule)

        service.process_payment(payment.id)

        earned = [e for e in captured_events if isinstance(e, CommissionEarned)]
        assert {e.role for e in earned} == {"closer", "referrer", "coach"}
        assert all(e.client_id == client.id for e in earned)


class TestPreview:
    """Test dry-run calculation."""

    def test_preview_writes_nothing(self, service, session, test_data, client, schedule):
        payment = test_data.create_payment(session, client, schedule)

        result = service.preview(payment.id)

        assert result.total_commission == Decimal("585.00")
        assert ledger_rows(session, payment.id) == []
        assert reload(session, payment).commission_calculated is False

    def test_preview_of_processed_payment(self, service, session, test_data, client, schedule):
        payment = test_data.create_payment(session, client, schedule)
        service.process_payment(payment.id)

        result = service.preview(payment.id)

        assert result.outcome == CalculationOutcome.CALCULATED
        assert len(result.entries) == 3


class TestProcessPending:
    """Test the batch retry pass."""

    def test_processes_oldest_first_and_skips_review(
        self, service, session, test_data, client, schedule
    ):
        newer = test_data.create_payment(
            session, client, schedule, paid_at=PAID_AT + timedelta(days=1)
        )
        older = test_data.create_payment(session, client, schedule)
        orphan = test_data.create_payment(session, None)
        test_data.create_payment(session, client, schedule, status="refunded")

        batch = service.process_pending()

        assert batch.processed == [older.id, newer.id]
        assert batch.flagged == [orphan.id]
        # Only the older payment earned the referral bonus
        assert "referrer" in {r.split_role for r in ledger_rows(session, older.id)}
        assert "referrer" not in {r.split_role for r in ledger_rows(session, newer.id)}

        again = service.process_pending()
        assert again.attempted == 0

    def test_resolved_review_is_picked_up_again(self, service, session, test_data, client):
        payment = test_data.create_payment(session, client, review_status="resolved")

        batch = service.process_pending()

        assert batch.processed == [payment.id]

    def test_limit(self, service, session, test_data, client):
        for days in range(3):
            test_data.create_payment(session, client, paid_at=PAID_AT + timedelta(days=days))

        assert len(service.process_pending(limit=2).processed) == 2

    def test_one_failure_does_not_stop_the_batch(
        self, service, session, test_data, client, monkeypatch
    ):
        bad = test_data.create_payment(session, client)
        good = test_data.create_payment(
            session, client, paid_at=PAID_AT + timedelta(days=1)
        )
        original = service.calculator.calculate

        def fail_for_bad(inputs):
            if inputs.payment.payment_id == bad.id:
                raise RuntimeError("boom")
            return original(inputs)

        monkeypatch.setattr(service.calculator, "calculate", fail_for_bad)

        batch = service.process_pending()

        assert batch.processed == [good.id]
        assert batch.failed == {bad.id: "boom"}
        assert reload(session, bad).commission_calculated is False

    def test_settings_resolved_once_per_batch(self, session, test_data, client):
        calls = []

        class CountingProvider(StaticSettingsProvider):
            def get_settings(self):
                calls.append(1)
                return super().get_settings()

        service = CommissionService(session, CountingProvider())
        for days in range(3):
            test_data.create_payment(session, client, paid_at=PAID_AT + timedelta(days=days))

        service.process_pending()

        assert len(calls) == 1


class TestRecalculate:
    """Test voiding and recomputing a payment."""

    def test_recalculate_with_new_rates(self, session, test_data, client, schedule, emitter):
        payment = test_data.create_payment(session, client, schedule)
        CommissionService(session, StaticSettingsProvider(), emitter).process_payment(
            payment.id
        )

        provider = StaticSettingsProvider(RateSettings(closer_rate=Decimal("0.20")))
        result = CommissionService(session, provider, emitter).recalculate(payment.id)

        assert result.outcome == CalculationOutcome.CALCULATED
        rows = {r.split_role: r for r in ledger_rows(session, payment.id)}
        assert len(rows) == 3
        assert rows["closer"].commission_amount == Decimal("200.00")
        assert rows["coach"].commission_amount == Decimal("335.00")
        # Referrer still counts as first commission for the client
        assert rows["referrer"].status == "pending"
        assert reload(session, payment).commission_calculated is True

    def test_entries_no_longer_produced_stay_void(
        self, service, session, test_data, client, schedule
    ):
        payment = test_data.create_payment(session, client, schedule)
        service.process_payment(payment.id)
        schedule.commission_splits = []
        session.commit()

        service.recalculate(payment.id)

        statuses = {r.split_role: r.status for r in ledger_rows(session, payment.id)}
        assert statuses == {"closer": "void", "referrer": "void", "coach": "pending"}

    def test_refused_when_paid(self, service, session, test_data, client, schedule):
        payment = test_data.create_payment(session, client, schedule)
        service.process_payment(payment.id)
        session.execute(
            update(CommissionLedgerEntry)
            .where(CommissionLedgerEntry.payment_id == payment.id)
            .values(status="paid")
        )
        session.commit()

        with pytest.raises(RecalculationRefusedError):
            service.recalculate(payment.id)

        assert all(r.status == "paid" for r in ledger_rows(session, payment.id))

    def test_refused_when_refunded(self, service, session, test_data, client):
        payment = test_data.create_payment(session, client, status="refunded")

        with pytest.raises(RecalculationRefusedError):
            service.recalculate(payment.id)

    def test_first_payment_keeps_referral_after_later_payment(
        self, service, session, test_data, client, schedule
    ):
        first = test_data.create_payment(session, client, schedule)
        second = test_data.create_payment(
            session, client, schedule, paid_at=PAID_AT + timedelta(days=30)
        )
        service.process_payment(first.id)
        service.process_payment(second.id)

        service.recalculate(first.id)

        roles = {r.split_role: r.status for r in ledger_rows(session, first.id)}
        assert roles["referrer"] == "pending"
        assert "referrer" not in {r.split_role for r in ledger_rows(session, second.id)}

    def test_refused_when_disputed(self, service, session, test_data, client, schedule):
        payment = test_data.create_payment(session, client, schedule)
        service.process_payment(payment.id)
        payment.status = "disputed"
        session.commit()

        with pytest.raises(RecalculationRefusedError):
            service.recalculate(payment.id)

        assert all(r.status == "pending" for r in ledger_rows(session, payment.id))
