"""Application tests for refill subscriptions and the due-refill scan."""

from datetime import UTC, datetime, timedelta

import pytest
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError

from pharmacy.errors import PermissionDeniedError
from pharmacy.order.order import PharmacyOrder
from pharmacy.order.states import OrderStatus
from pharmacy.refill.notifications import AUTO_REFILL_CREATED, PRESCRIPTION_EXPIRED_FOR_REFILL
from pharmacy.refill.processing import ProcessDueRefills
from pharmacy.refill.refill import PRESCRIPTION_EXPIRED_REASON, RefillSubscription
from pharmacy.refill.subscription import CancelRefillSubscription, CreateRefillSubscription


def _subscribe(prescription_id, interval_days=3, patient_id="patient-1"):
    return current_domain.process(
        CreateRefillSubscription(patient_id=patient_id, prescription_id=prescription_id, interval_days=interval_days),
        asynchronous=False,
    )


def _process(**kwargs):
    return current_domain.process(ProcessDueRefills(**kwargs), asynchronous=False)


def _subscription(subscription_id):
    return current_domain.repository_for(RefillSubscription).get(subscription_id)


class TestCreateRefillSubscription:
    def test_first_refill_due_after_one_interval(self, add_prescription):
        before = datetime.now(UTC)
        sub = _subscription(_subscribe(add_prescription(), interval_days=30))
        assert sub.is_active is True
        assert sub.next_due_date >= before + timedelta(days=30)
        assert sub.total_refills_created == 0

    def test_unknown_prescription(self):
        with pytest.raises(ObjectNotFoundError):
            _subscribe("rx-missing")

    def test_prescription_of_another_patient(self, add_prescription):
        with pytest.raises(PermissionDeniedError):
            _subscribe(add_prescription(patient_id="patient-1"), patient_id="patient-2")

    def test_expired_prescription(self, add_prescription):
        prescription_id = add_prescription(valid_until=datetime.now(UTC) - timedelta(days=1))
        with pytest.raises(ValidationError):
            _subscribe(prescription_id)


class TestCancelRefillSubscription:
    def test_patient_cancels(self, add_prescription):
        subscription_id = _subscribe(add_prescription())
        current_domain.process(
            CancelRefillSubscription(subscription_id=subscription_id, patient_id="patient-1", reason="Stopped"),
            asynchronous=False,
        )
        sub = _subscription(subscription_id)
        assert sub.is_active is False
        assert sub.cancellation_reason == "Stopped"

    def test_other_patient_cannot_cancel(self, add_prescription):
        subscription_id = _subscribe(add_prescription())
        with pytest.raises(PermissionDeniedError):
            current_domain.process(
                CancelRefillSubscription(subscription_id=subscription_id, patient_id="patient-2"),
                asynchronous=False,
            )


class TestProcessDueRefills:
    def test_due_subscription_places_order(self, register_pharmacy, add_prescription, outbox):
        pharmacy_id = register_pharmacy()
        prescription_id = add_prescription()
        subscription_id = _subscribe(prescription_id, interval_days=3)
        due = _subscription(subscription_id).next_due_date

        summary = _process()
        assert summary == {"created": 1, "expired": 0, "unassigned": 0, "failed": 0}

        sub = _subscription(subscription_id)
        assert sub.total_refills_created == 1
        assert sub.next_due_date == due + timedelta(days=3)

        order = current_domain.repository_for(PharmacyOrder).get(sub.last_order_id)
        assert order.prescription_id == prescription_id
        assert order.pharmacy_id == pharmacy_id
        assert order.status == OrderStatus.ASSIGNED.value

        [message] = outbox.pending_of_type(AUTO_REFILL_CREATED)
        assert message.recipient_id == "patient-1"

    def test_not_yet_due(self, register_pharmacy, add_prescription):
        register_pharmacy()
        _subscribe(add_prescription(), interval_days=30)
        assert _process()["created"] == 0

    def test_lookahead_window(self, register_pharmacy, add_prescription):
        register_pharmacy()
        _subscribe(add_prescription(), interval_days=8)
        assert _process(lookahead_days=5)["created"] == 0
        assert _process(lookahead_days=10)["created"] == 1

    def test_expired_prescription_stops_subscription(self, register_pharmacy, add_prescription, lookup, outbox):
        register_pharmacy()
        prescription_id = add_prescription(doctor_id="doctor-5")
        subscription_id = _subscribe(prescription_id)
        lookup.expire(prescription_id)

        summary = _process()
        assert summary["expired"] == 1
        assert summary["created"] == 0
        assert current_domain.repository_for(PharmacyOrder).find_by_prescription(prescription_id) == []

        sub = _subscription(subscription_id)
        assert sub.is_active is False
        assert sub.cancellation_reason == PRESCRIPTION_EXPIRED_REASON
        recipients = {m.recipient_id for m in outbox.pending_of_type(PRESCRIPTION_EXPIRED_FOR_REFILL)}
        assert recipients == {"patient-1", "doctor-5"}

    def test_no_pharmacy_leaves_subscription_due(self, add_prescription):
        subscription_id = _subscribe(add_prescription())
        due = _subscription(subscription_id).next_due_date

        assert _process()["unassigned"] == 1
        sub = _subscription(subscription_id)
        assert sub.is_active is True
        assert sub.next_due_date == due
        assert sub.total_refills_created == 0

    def test_cancelled_subscriptions_are_skipped(self, register_pharmacy, add_prescription):
        register_pharmacy()
        subscription_id = _subscribe(add_prescription())
        current_domain.process(
            CancelRefillSubscription(subscription_id=subscription_id, patient_id="patient-1"), asynchronous=False
        )
        assert _process()["created"] == 0

    def test_late_run_does_not_burst(self, register_pharmacy, add_prescription):
        register_pharmacy()
        subscription_id = _subscribe(add_prescription(), interval_days=3)
        late = datetime.now(UTC) + timedelta(days=20)

        assert _process(as_of=late)["created"] == 1
        sub = _subscription(subscription_id)
        assert sub.next_due_date == late + timedelta(days=3)
        assert _process(as_of=late + timedelta(hours=1), lookahead_days=0)["created"] == 0

    def test_lookup_outage_on_one_subscription_does_not_stop_the_scan(
        self, register_pharmacy, add_prescription, lookup, monkeypatch
    ):
        register_pharmacy()
        broken_id = add_prescription()
        healthy_id = add_prescription()
        broken_sub = _subscribe(broken_id)
        healthy_sub = _subscribe(healthy_id)

        real_lookup = lookup.lookup

        def flaky_lookup(prescription_id):
            if prescription_id == broken_id:
                raise ConnectionError("prescription service unreachable")
            return real_lookup(prescription_id)

        monkeypatch.setattr(lookup, "lookup", flaky_lookup)

        summary = _process()
        assert summary["failed"] == 1
        assert summary["created"] == 1
        assert _subscription(healthy_sub).total_refills_created == 1
        assert _subscription(broken_sub).total_refills_created == 0


class TestRefillSubscriptionRepository:
    def test_find_due_returns_more_than_one_query_page(self):
        repo = current_domain.repository_for(RefillSubscription)
        for n in range(105):
            repo.add(RefillSubscription.create(patient_id="patient-1", prescription_id=f"rx-bulk-{n:03d}", interval_days=3))

        assert len(repo.find_active()) == 105
        assert len(repo.find_due(datetime.now(UTC) + timedelta(days=5))) == 105
