"""Application tests for stock issues and substitutions."""

import json

import pytest
from protean import current_domain

from pharmacy.errors import PermissionDeniedError
from pharmacy.messaging.alerts import AlertType
from pharmacy.order.notifications import NotificationType
from pharmacy.order.order import PharmacyOrder, SubstitutionDecision
from pharmacy.order.states import OrderStatus
from pharmacy.order.stock import ApproveSubstitution, ProposeSubstitution, RejectSubstitution, ReportStockIssue
from pharmacy.pharmacy.pharmacy import Pharmacy


def _order(order_id):
    return current_domain.repository_for(PharmacyOrder).get(order_id)


def _report_stock_issue(order, items=("Metformin 500mg",)):
    current_domain.process(
        ReportStockIssue(order_id=order.order_id, staff_id=order.staff_id, missing_items=json.dumps(list(items))),
        asynchronous=False,
    )


def _propose(order, staff_id=None):
    current_domain.process(
        ProposeSubstitution(
            order_id=order.order_id,
            staff_id=staff_id or order.staff_id,
            original_medication="Metformin 500mg",
            substitute_medication="Metformin XR 500mg",
            reason="Brand unavailable",
        ),
        asynchronous=False,
    )


class TestReportStockIssue:
    def test_records_issue_and_marks_inventory(self, assigned_order, advance):
        order = assigned_order()
        advance(order, "Preparing")
        _report_stock_issue(order)

        reloaded = _order(order.order_id)
        assert reloaded.status == OrderStatus.STOCK_ISSUE.value
        assert reloaded.stock_issue.missing_items == ["Metformin 500mg"]

        entry = current_domain.repository_for(Pharmacy).get(order.pharmacy_id).find_inventory("metformin 500mg")
        assert entry is not None
        assert entry.is_in_stock is False

    def test_operators_are_alerted(self, assigned_order, advance, outbox):
        order = assigned_order()
        advance(order, "Pharmacy_Accepted")
        _report_stock_issue(order)
        [alert] = outbox.pending_of_type(AlertType.STOCK_ISSUE)
        assert alert.data["order_id"] == order.order_id

    def test_dispenser_cannot_report(self, assigned_order, advance, add_staff):
        order = assigned_order()
        advance(order, "Preparing")
        dispenser = add_staff(order.pharmacy_id, role="Dispenser")
        with pytest.raises(PermissionDeniedError):
            current_domain.process(
                ReportStockIssue(order_id=order.order_id, staff_id=dispenser, missing_items=json.dumps(["X"])),
                asynchronous=False,
            )


class TestSubstitution:
    def test_propose_notifies_prescriber(self, assigned_order, advance, outbox):
        order = assigned_order()
        advance(order, "Preparing")
        _report_stock_issue(order)
        _propose(order)

        reloaded = _order(order.order_id)
        assert reloaded.status == OrderStatus.AWAITING_SUBSTITUTION_APPROVAL.value
        assert reloaded.substitution.substitute_medication == "Metformin XR 500mg"

        [message] = outbox.pending_of_type(NotificationType.SUBSTITUTION_APPROVAL_NEEDED)
        assert message.recipient_id == order.doctor_id
        assert message.recipient_role == "Doctor"

    def test_only_pharmacists_propose(self, assigned_order, advance, add_staff):
        order = assigned_order()
        advance(order, "Preparing")
        _report_stock_issue(order)
        technician = add_staff(order.pharmacy_id, role="Technician")
        with pytest.raises(PermissionDeniedError):
            _propose(order, staff_id=technician)

    def test_approval_resumes_preparation(self, assigned_order, advance, outbox):
        order = assigned_order()
        advance(order, "Preparing")
        _report_stock_issue(order)
        _propose(order)
        current_domain.process(
            ApproveSubstitution(order_id=order.order_id, doctor_id=order.doctor_id), asynchronous=False
        )

        reloaded = _order(order.order_id)
        assert reloaded.status == OrderStatus.PREPARING.value
        assert reloaded.substitution.decision == SubstitutionDecision.APPROVED.value
        assert len(outbox.pending_of_type(NotificationType.SUBSTITUTION_APPROVED)) == 1

    def test_other_doctor_cannot_approve(self, assigned_order, advance):
        order = assigned_order()
        advance(order, "Preparing")
        _report_stock_issue(order)
        _propose(order)
        with pytest.raises(PermissionDeniedError):
            current_domain.process(
                ApproveSubstitution(order_id=order.order_id, doctor_id="doctor-99"), asynchronous=False
            )
        assert _order(order.order_id).status == OrderStatus.AWAITING_SUBSTITUTION_APPROVAL.value

    def test_rejection_needs_manual_intervention(self, assigned_order, advance, outbox):
        order = assigned_order()
        advance(order, "Preparing")
        _report_stock_issue(order)
        _propose(order)
        current_domain.process(
            RejectSubstitution(order_id=order.order_id, doctor_id=order.doctor_id, reason="Not equivalent"),
            asynchronous=False,
        )

        reloaded = _order(order.order_id)
        assert reloaded.status == OrderStatus.STOCK_ISSUE.value
        assert reloaded.substitution.decision == SubstitutionDecision.REJECTED.value
        [alert] = outbox.pending_of_type(AlertType.SUBSTITUTION_REJECTED)
        assert alert.data["reason"] == "Not equivalent"
