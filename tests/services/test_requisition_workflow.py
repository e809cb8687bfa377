"""
End-to-end requisition workflows through TreasuryOrchestrator.

Each test drives real commands against a real database: create, submit,
the approval chain, execution against the fund, and the audit trail each
command leaves behind.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from treasury_kernel.domain.authority import ApprovalLevel, CreatorType, Magnitude
from treasury_kernel.domain.ledger import MovementType, ReferenceType
from treasury_kernel.domain.requisition import ExpenseCategory, RequisitionState
from treasury_kernel.exceptions import (
    DuplicateApproverError,
    InsufficientBalanceError,
    RequisitionNotFoundError,
    ValidationError,
)
from treasury_kernel.models.audit_event import AuditAction

PAYMENT_DATE = date(2024, 1, 15)


class TestSmallRequisition:
    """4,500 from a member: one treasurer hop, then disbursement."""

    def test_full_lifecycle(self, orchestrator, member, treasurer, fund_with_balance):
        fund_id = fund_with_balance(Decimal("10000"))

        req = orchestrator.create_requisition(
            member, fund_id, "equipment", "4500", "Projector for the youth hall"
        )
        assert req.state == RequisitionState.PENDING
        assert req.magnitude == Magnitude.SMALL
        assert req.required_level == ApprovalLevel.TREASURER
        assert req.required_approvals == 1
        assert req.creator_type == CreatorType.MEMBER
        assert req.expense_category == ExpenseCategory.EQUIPMENT
        assert req.code == "REQ-2024-000001"

        req = orchestrator.submit(member, req.id)
        assert req.state == RequisitionState.UNDER_REVIEW
        assert req.submitted_at is not None

        req = orchestrator.approve(treasurer, req.id)
        assert req.state == RequisitionState.APPROVED
        assert req.approved_amount == Decimal("4500")
        assert req.level1_approver_id == treasurer.user_id
        assert req.approvals_remaining == 0

        result = orchestrator.execute(
            treasurer, req.id, PAYMENT_DATE, receipt_reference="INV-778"
        )
        assert result.requisition.state == RequisitionState.EXECUTED
        assert result.requisition.executed_by_id == treasurer.user_id
        assert result.requisition.payment_date == PAYMENT_DATE
        assert result.fund.balance == Decimal("5500")
        assert result.movement.movement_type == MovementType.DEBIT
        assert result.movement.amount == Decimal("4500")
        assert result.movement.reference_type == ReferenceType.EXPENSE
        assert result.movement.reference_id == result.expense.id
        assert result.expense.requisition_id == req.id
        assert result.expense.receipt_reference == "INV-778"

        trace = orchestrator.audit_trace(member, req.id)
        assert trace.actions == (
            AuditAction.REQUISITION_CREATED,
            AuditAction.REQUISITION_SUBMITTED,
            AuditAction.REQUISITION_APPROVED,
            AuditAction.REQUISITION_EXECUTED,
        )

    def test_codes_are_sequential(self, orchestrator, member, general_fund):
        first = orchestrator.create_requisition(
            member, general_fund.id, "food", "100", "Lunch for volunteers"
        )
        second = orchestrator.create_requisition(
            member, general_fund.id, "food", "120", "Dinner for volunteers"
        )
        assert first.code == "REQ-2024-000001"
        assert second.code == "REQ-2024-000002"

    def test_approved_amount_override(self, orchestrator, member, treasurer, fund_with_balance):
        fund_id = fund_with_balance(Decimal("10000"))
        req = orchestrator.create_requisition(
            member, fund_id, "transport", "4500", "Bus hire"
        )
        orchestrator.submit(member, req.id)

        req = orchestrator.approve(treasurer, req.id, approved_amount="4000")
        assert req.approved_amount == Decimal("4000")
        assert req.amount_to_disburse == Decimal("4000")

        result = orchestrator.execute(treasurer, req.id, PAYMENT_DATE)
        assert result.expense.amount == Decimal("4000")
        assert result.fund.balance == Decimal("6000")


class TestLargeRequisition:
    """30,000: two distinct BOARD approvals."""

    def test_two_board_hops(
        self,
        orchestrator,
        member,
        board_member,
        second_board_member,
        treasurer,
        fund_with_balance,
    ):
        fund_id = fund_with_balance(Decimal("40000"))
        req = orchestrator.create_requisition(
            member, fund_id, "maintenance", "30000", "Roof repair"
        )
        assert req.magnitude == Magnitude.LARGE
        assert req.required_level == ApprovalLevel.BOARD
        assert req.required_approvals == 2
        orchestrator.submit(member, req.id)

        req = orchestrator.approve(board_member, req.id)
        assert req.state == RequisitionState.UNDER_REVIEW
        assert req.approvals_recorded == 1
        assert req.approvals_remaining == 1

        with pytest.raises(DuplicateApproverError):
            orchestrator.approve(board_member, req.id)

        req = orchestrator.approve(second_board_member, req.id)
        assert req.state == RequisitionState.APPROVED
        assert req.level1_approver_id == board_member.user_id
        assert req.level2_approver_id == second_board_member.user_id

        result = orchestrator.execute(treasurer, req.id, PAYMENT_DATE)
        assert result.fund.balance == Decimal("10000")

        trace = orchestrator.audit_trace(member, req.id)
        assert trace.actions == (
            AuditAction.REQUISITION_CREATED,
            AuditAction.REQUISITION_SUBMITTED,
            AuditAction.REQUISITION_REVIEWED,
            AuditAction.REQUISITION_APPROVED,
            AuditAction.REQUISITION_EXECUTED,
        )

    def test_critical_needs_two_pastoral_approvals(
        self, orchestrator, member, pastor, admin, general_fund
    ):
        req = orchestrator.create_requisition(
            member, general_fund.id, "missionary_projects", "75000", "Mission trip"
        )
        assert req.required_level == ApprovalLevel.PASTOR
        orchestrator.submit(member, req.id)
        orchestrator.approve(pastor, req.id)
        req = orchestrator.approve(admin, req.id)
        assert req.state == RequisitionState.APPROVED


class TestMediumRequisition:
    def test_member_needs_two_director_hops(
        self, orchestrator, member, director, make_actor, general_fund
    ):
        req = orchestrator.create_requisition(
            member, general_fund.id, "training", "15000", "Leadership course"
        )
        assert req.required_approvals == 2
        orchestrator.submit(member, req.id)
        req = orchestrator.approve(director, req.id)
        assert req.state == RequisitionState.UNDER_REVIEW
        req = orchestrator.approve(make_actor("DIRECTOR"), req.id)
        assert req.state == RequisitionState.APPROVED

    def test_financial_leader_needs_one_hop(
        self, orchestrator, financial_leader, director, general_fund
    ):
        req = orchestrator.create_requisition(
            financial_leader, general_fund.id, "training", "15000", "Leadership course"
        )
        assert req.creator_type == CreatorType.FINANCIAL_LEADER
        assert req.required_approvals == 1
        orchestrator.submit(financial_leader, req.id)
        req = orchestrator.approve(director, req.id)
        assert req.state == RequisitionState.APPROVED

    def test_higher_authority_may_approve(self, orchestrator, financial_leader, pastor, general_fund):
        req = orchestrator.create_requisition(
            financial_leader, general_fund.id, "training", "15000", "Leadership course"
        )
        orchestrator.submit(financial_leader, req.id)
        assert orchestrator.approve(pastor, req.id).state == RequisitionState.APPROVED


class TestInsufficientBalance:
    def test_execution_rejected_and_nothing_written(
        self, orchestrator, member, treasurer, fund_with_balance, approved_requisition
    ):
        fund_id = fund_with_balance(Decimal("1000"))
        req = approved_requisition(fund_id, "4500")

        with pytest.raises(InsufficientBalanceError) as exc_info:
            orchestrator.execute(treasurer, req.id, PAYMENT_DATE)
        assert exc_info.value.available == Decimal("1000")
        assert exc_info.value.required == Decimal("4500")

        assert orchestrator.get_requisition(member, req.id).state == RequisitionState.APPROVED
        assert orchestrator.get_fund(treasurer, fund_id).balance == Decimal("1000")
        assert orchestrator.fund_expenses(treasurer, fund_id) == []
        movements = orchestrator.fund_movements(treasurer, fund_id)
        assert [m.movement_type for m in movements] == [MovementType.CREDIT]
        assert orchestrator.audit_trace(member, req.id).last_action == (
            AuditAction.REQUISITION_APPROVED
        )

    def test_execution_succeeds_after_income(
        self, orchestrator, treasurer, fund_with_balance, approved_requisition
    ):
        fund_id = fund_with_balance(Decimal("1000"))
        req = approved_requisition(fund_id, "4500")
        with pytest.raises(InsufficientBalanceError):
            orchestrator.execute(treasurer, req.id, PAYMENT_DATE)

        fund_with_balance(Decimal("3500"), fund_id)
        result = orchestrator.execute(treasurer, req.id, PAYMENT_DATE)
        assert result.fund.balance == Decimal("0")

    def test_exact_balance_drains_fund(
        self, orchestrator, treasurer, fund_with_balance, approved_requisition
    ):
        fund_id = fund_with_balance(Decimal("4500"))
        req = approved_requisition(fund_id, "4500")
        assert orchestrator.execute(treasurer, req.id, PAYMENT_DATE).fund.balance == 0


class TestReadSide:
    def test_list_by_state_and_fund(self, orchestrator, member, general_fund):
        general = general_fund
        req = orchestrator.create_requisition(member, general.id, "food", "50", "Snacks")
        other = orchestrator.create_requisition(member, general.id, "food", "60", "Water")
        orchestrator.submit(member, other.id)

        pending = orchestrator.list_requisitions(member, state="pending")
        assert [r.id for r in pending] == [req.id]

        under_review = orchestrator.list_requisitions(
            member, state=RequisitionState.UNDER_REVIEW, fund_id=general.id
        )
        assert [r.id for r in under_review] == [other.id]

        everything = orchestrator.list_requisitions(member)
        assert {r.id for r in everything} == {req.id, other.id}

    def test_pending_approvals(
        self,
        orchestrator,
        member,
        treasurer,
        board_member,
        second_board_member,
        general_fund,
    ):
        small = orchestrator.create_requisition(member, general_fund.id, "food", "50", "Snacks")
        large = orchestrator.create_requisition(
            member, general_fund.id, "maintenance", "30000", "Roof repair"
        )
        orchestrator.submit(member, small.id)
        orchestrator.submit(member, large.id)

        assert [r.id for r in orchestrator.pending_approvals(treasurer)] == [small.id]
        assert {r.id for r in orchestrator.pending_approvals(board_member)} == {
            small.id,
            large.id,
        }
        assert orchestrator.pending_approvals(member) == []

        orchestrator.approve(board_member, large.id)
        assert [r.id for r in orchestrator.pending_approvals(board_member)] == [small.id]
        assert large.id in {r.id for r in orchestrator.pending_approvals(second_board_member)}

    @pytest.mark.parametrize("state", ["APPROVED", "approved", RequisitionState.APPROVED])
    def test_list_accepts_state_names(
        self, orchestrator, member, general_fund, approved_requisition, state
    ):
        approved = approved_requisition(general_fund.id, "50")
        orchestrator.create_requisition(member, general_fund.id, "food", "60", "Water")

        assert [r.id for r in orchestrator.list_requisitions(member, state=state)] == [
            approved.id
        ]

    def test_list_rejects_unknown_state(self, orchestrator, member, general_fund):
        with pytest.raises(ValidationError) as exc_info:
            orchestrator.list_requisitions(member, state="bogus")
        assert exc_info.value.field == "state"

    def test_lookup_by_code(self, orchestrator, member, make_actor, general_fund):
        req = orchestrator.create_requisition(member, general_fund.id, "food", "50", "Snacks")

        assert orchestrator.requisition_by_code(member, req.code).id == req.id
        assert orchestrator.requisition_by_code(member, " req-2024-000001 ").id == req.id
        with pytest.raises(RequisitionNotFoundError):
            orchestrator.requisition_by_code(member, "REQ-2024-000099")

        outsider = make_actor("ADMIN", organization_id=uuid4())
        with pytest.raises(RequisitionNotFoundError):
            orchestrator.requisition_by_code(outsider, req.code)

    def test_expense_for_requisition(
        self, orchestrator, treasurer, make_actor, fund_with_balance, approved_requisition
    ):
        fund_id = fund_with_balance(Decimal("10000"))
        req = approved_requisition(fund_id, "4500")
        assert orchestrator.expense_for_requisition(treasurer, req.id) is None

        result = orchestrator.execute(treasurer, req.id, PAYMENT_DATE)
        expense = orchestrator.expense_for_requisition(treasurer, req.id)
        assert expense == result.expense

        outsider = make_actor("ADMIN", organization_id=uuid4())
        with pytest.raises(RequisitionNotFoundError):
            orchestrator.expense_for_requisition(outsider, req.id)
