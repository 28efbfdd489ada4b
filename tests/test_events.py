"""Tests for the event emitter and notification bridge."""

import json
from decimal import Decimal
from uuid import uuid4

import pytest

from commission_engine.events import (
    CommissionChargedBack,
    CommissionEarned,
    CommissionNotifier,
    EventCategory,
    EventEmitter,
    EventMetadata,
    PaymentFlaggedForReview,
)


def earned(**overrides) -> CommissionEarned:
    values = {
        "metadata": EventMetadata.create(),
        "user_id": uuid4(),
        "amount": Decimal("435.00"),
        "role": "coach",
        "client_id": uuid4(),
        "payment_id": uuid4(),
    }
    values.update(overrides)
    return CommissionEarned(**values)


def flagged() -> PaymentFlaggedForReview:
    return PaymentFlaggedForReview(
        metadata=EventMetadata.create(), payment_id=uuid4(), reason="client not found"
    )


class TestEventEmitter:
    """Test routing and isolation."""

    def test_type_filtering(self):
        emitter = EventEmitter()
        received = []
        emitter.on(CommissionEarned, received.append)

        emitter.emit(earned())
        emitter.emit(flagged())

        assert [type(e) for e in received] == [CommissionEarned]

    def test_category_filtering(self):
        emitter = EventEmitter()
        received = []
        emitter.on_category(EventCategory.REVIEW, received.append)

        emitter.emit(earned())
        emitter.emit(flagged())

        assert [type(e) for e in received] == [PaymentFlaggedForReview]

    def test_failing_handler_does_not_block_others(self):
        emitter = EventEmitter()
        received = []

        def broken(event):
            raise RuntimeError("chat service down")

        emitter.on_all(broken)
        emitter.on_all(received.append)

        errors = emitter.emit(earned())

        assert len(received) == 1
        assert len(errors) == 1

    def test_off(self):
        emitter = EventEmitter()
        received = []

        def handler(event):
            received.append(event)

        emitter.on_all(handler)
        emitter.off(handler)

        emitter.emit(earned())

        assert received == []

    def test_batch_holds_events_until_exit(self):
        emitter = EventEmitter()
        received = []
        emitter.on_all(received.append)

        with emitter.batch() as batch:
            batch.add(earned())
            batch.add(earned())
            assert received == []

        assert len(received) == 2

    def test_batch_discarded_on_error(self):
        emitter = EventEmitter()
        received = []
        emitter.on_all(received.append)

        with pytest.raises(RuntimeError):
            with emitter.batch() as batch:
                batch.add(earned())
                raise RuntimeError("rollback")

        assert received == []
        emitter.emit(earned())
        assert len(received) == 1


class TestSerialization:
    """Test event payloads."""

    def test_notification_payload(self):
        event = earned(amount=Decimal("100.00"), role="closer")

        payload = event.to_notification()

        assert set(payload) == {"userId", "amount", "role", "clientId", "paymentId"}
        assert payload["amount"] == "100.00"
        assert payload["role"] == "closer"
        assert payload["userId"] == str(event.user_id)

    def test_to_json(self):
        event = CommissionChargedBack(
            metadata=EventMetadata.create(),
            user_id=uuid4(),
            amount=Decimal("-25.00"),
            payment_id=uuid4(),
            ledger_entry_id=uuid4(),
            voided=False,
        )

        data = json.loads(event.to_json())

        assert data["event_type"] == "CommissionChargedBack"
        assert data["amount"] == "-25.00"
        assert event.category == EventCategory.CHARGEBACK


class TestCommissionNotifier:
    """Test forwarding to the notification sink."""

    def test_forwards_only_earned_events(self):
        class RecordingSink:
            def __init__(self):
                self.payloads = []

            def send(self, payload):
                self.payloads.append(payload)

        sink = RecordingSink()
        emitter = EventEmitter()
        CommissionNotifier(sink).register(emitter)

        emitter.emit(earned())
        emitter.emit(flagged())

        assert len(sink.payloads) == 1
        assert sink.payloads[0]["role"] == "coach"
