"""
Unit tests for assetdesk.services.asset_return – return documents and their approval.
"""
from datetime import date

import pytest
import pytest_asyncio

from assetdesk.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from assetdesk.schemas.asset import AssetCondition, AssetStatus
from assetdesk.schemas.asset_return import AssetReturnCreate, AssetReturnStatus
from assetdesk.schemas.loan import LoanRequestStatus
from assetdesk.services.asset_return import approve_return, get_returns, reject_return, submit_return
from assetdesk.services.loan import confirm_return


@pytest_asyncio.fixture
async def on_loan(stores, make_asset, make_loan):
    await stores.assets.replace_all([
        make_asset("AST-1", status=AssetStatus.IN_USE, current_user="Andi"),
        make_asset("AST-2", status=AssetStatus.IN_USE, current_user="Andi"),
    ])
    await stores.loan_requests.replace_all([
        make_loan(status=LoanRequestStatus.ON_LOAN, assigned_asset_ids={1: ["AST-1", "AST-2"]}),
    ])
    return stores


def _payload(asset_id="AST-1", condition=AssetCondition.GOOD):
    return AssetReturnCreate(
        loan_request_id="LREQ-001",
        asset_id=asset_id,
        returned_condition=condition,
        return_date=date(2025, 5, 6),
    )


class TestSubmitReturn:
    @pytest.mark.asyncio
    async def test_submit_marks_asset_awaiting_return(self, on_loan, make_actor):
        document = await submit_return(on_loan, _payload(), make_actor("Andi"))

        assert document.id == "RET-001"
        assert document.doc_number == "RET-250506-001"
        assert document.status == AssetReturnStatus.PENDING_APPROVAL
        assert document.asset_name == "Router"
        assert on_loan.assets.get("AST-1").status == AssetStatus.AWAITING_RETURN

    @pytest.mark.asyncio
    async def test_doc_numbers_count_per_day(self, on_loan, make_actor):
        await submit_return(on_loan, _payload("AST-1"), make_actor("Andi"))
        second = await submit_return(on_loan, _payload("AST-2"), make_actor("Andi"))
        assert second.doc_number == "RET-250506-002"

    @pytest.mark.asyncio
    async def test_only_borrower_or_admin(self, on_loan, make_actor):
        with pytest.raises(PermissionError):
            await submit_return(on_loan, _payload(), make_actor("Budi"))

    @pytest.mark.asyncio
    async def test_asset_must_be_outstanding(self, on_loan, make_actor):
        with pytest.raises(ValidationError):
            await submit_return(on_loan, _payload("AST-9"), make_actor("Andi"))

    @pytest.mark.asyncio
    async def test_one_pending_document_per_asset(self, on_loan, make_actor):
        await submit_return(on_loan, _payload(), make_actor("Andi"))
        with pytest.raises(ValidationError):
            await submit_return(on_loan, _payload(), make_actor("Andi"))

    @pytest.mark.asyncio
    async def test_unknown_loan(self, on_loan, make_actor):
        payload = _payload()
        payload.loan_request_id = "LREQ-404"
        with pytest.raises(NotFoundError):
            await submit_return(on_loan, payload, make_actor("Andi"))


class TestApproveReturn:
    @pytest.mark.asyncio
    async def test_approve_returns_asset_with_reported_condition(self, on_loan, make_actor):
        document = await submit_return(on_loan, _payload(condition=AssetCondition.MINOR_DAMAGE), make_actor("Andi"))

        approved = await approve_return(on_loan, document.id, approver="Sari")

        assert approved.status == AssetReturnStatus.APPROVED
        assert approved.approved_by == "Sari"
        asset = on_loan.assets.get("AST-1")
        assert asset.status == AssetStatus.IN_STORAGE
        assert asset.condition == AssetCondition.MINOR_DAMAGE
        assert asset.current_user is None
        loan = on_loan.loan_requests.get("LREQ-001")
        assert loan.returned_asset_ids == ["AST-1"]
        assert loan.status == LoanRequestStatus.ON_LOAN

    @pytest.mark.asyncio
    async def test_last_approval_closes_the_loan(self, on_loan, make_actor):
        first = await submit_return(on_loan, _payload("AST-1"), make_actor("Andi"))
        second = await submit_return(on_loan, _payload("AST-2"), make_actor("Andi"))
        await approve_return(on_loan, first.id, approver="Sari")
        await approve_return(on_loan, second.id, approver="Sari")

        assert on_loan.loan_requests.get("LREQ-001").status == LoanRequestStatus.RETURNED

    @pytest.mark.asyncio
    async def test_cannot_process_twice(self, on_loan, make_actor):
        document = await submit_return(on_loan, _payload(), make_actor("Andi"))
        await approve_return(on_loan, document.id, approver="Sari")
        with pytest.raises(InvalidTransitionError):
            await approve_return(on_loan, document.id, approver="Sari")

    @pytest.mark.asyncio
    async def test_unknown_document(self, on_loan):
        with pytest.raises(NotFoundError):
            await approve_return(on_loan, "RET-404", approver="Sari")


class TestRejectReturn:
    @pytest.mark.asyncio
    async def test_reject_puts_asset_back_in_use(self, on_loan, make_actor):
        document = await submit_return(on_loan, _payload(), make_actor("Andi"))

        rejected = await reject_return(on_loan, document.id, approver="Sari", reason="Unit belum diterima")

        assert rejected.status == AssetReturnStatus.REJECTED
        assert rejected.rejection_reason == "Unit belum diterima"
        assert on_loan.assets.get("AST-1").status == AssetStatus.IN_USE
        assert on_loan.loan_requests.get("LREQ-001").returned_asset_ids == []

    @pytest.mark.asyncio
    async def test_reason_required(self, on_loan, make_actor):
        document = await submit_return(on_loan, _payload(), make_actor("Andi"))
        with pytest.raises(ValidationError):
            await reject_return(on_loan, document.id, approver="Sari", reason="")


class TestDirectConfirmWithPendingDocument:
    @pytest.mark.asyncio
    async def test_confirm_settles_pending_document(self, on_loan, make_actor):
        document = await submit_return(on_loan, _payload("AST-1"), make_actor("Andi"))

        await confirm_return(on_loan, "LREQ-001", ["AST-1"], receiver="Sari")

        settled = on_loan.returns.get(document.id)
        assert settled.status == AssetReturnStatus.APPROVED
        assert settled.received_by == "Sari"
        assert on_loan.assets.get("AST-1").status == AssetStatus.IN_STORAGE

    @pytest.mark.asyncio
    async def test_confirm_leaves_other_documents_pending(self, on_loan, make_actor):
        await submit_return(on_loan, _payload("AST-1"), make_actor("Andi"))
        other = await submit_return(on_loan, _payload("AST-2"), make_actor("Andi"))

        await confirm_return(on_loan, "LREQ-001", ["AST-1"], receiver="Sari")

        assert on_loan.returns.get(other.id).status == AssetReturnStatus.PENDING_APPROVAL

    @pytest.mark.asyncio
    async def test_reject_after_confirm_is_refused(self, on_loan, make_actor):
        document = await submit_return(on_loan, _payload("AST-1"), make_actor("Andi"))
        await confirm_return(on_loan, "LREQ-001", ["AST-1", "AST-2"], receiver="Sari")

        with pytest.raises(InvalidTransitionError):
            await reject_return(on_loan, document.id, approver="Sari", reason="Unit belum diterima")

        asset = on_loan.assets.get("AST-1")
        assert asset.status == AssetStatus.IN_STORAGE
        assert on_loan.loan_requests.get("LREQ-001").status == LoanRequestStatus.RETURNED

    @pytest.mark.asyncio
    async def test_pending_document_for_returned_asset_is_refused(self, on_loan, make_actor):
        document = await submit_return(on_loan, _payload("AST-1"), make_actor("Andi"))
        # Returned outside the document flow
        await on_loan.loan_requests.update("LREQ-001", returned_asset_ids=["AST-1"])
        await on_loan.assets.update("AST-1", status=AssetStatus.IN_USE, current_user="Budi")

        with pytest.raises(InvalidTransitionError, match="already returned"):
            await approve_return(on_loan, document.id, approver="Sari")
        with pytest.raises(InvalidTransitionError, match="already returned"):
            await reject_return(on_loan, document.id, approver="Sari", reason="Salah unit")

        assert on_loan.assets.get("AST-1").current_user == "Budi"
        assert on_loan.returns.get(document.id).status == AssetReturnStatus.PENDING_APPROVAL

    @pytest.mark.asyncio
    async def test_confirm_after_approval_writes_nothing(self, on_loan, make_actor, flaky_adapter):
        document = await submit_return(on_loan, _payload("AST-1"), make_actor("Andi"))
        await approve_return(on_loan, document.id, approver="Sari")
        flaky_adapter.writes.clear()

        loan = await confirm_return(on_loan, "LREQ-001", ["AST-1"], receiver="Sari")

        assert loan.returned_asset_ids == ["AST-1"]
        assert flaky_adapter.writes == []


class TestGetReturns:
    @pytest.mark.asyncio
    async def test_filter_by_status(self, on_loan, make_actor):
        first = await submit_return(on_loan, _payload("AST-1"), make_actor("Andi"))
        await submit_return(on_loan, _payload("AST-2"), make_actor("Andi"))
        await approve_return(on_loan, first.id, approver="Sari")

        pending, total = get_returns(on_loan, status=AssetReturnStatus.PENDING_APPROVAL)
        assert total == 1
        assert pending[0].asset_id == "AST-2"

        everything, total = get_returns(on_loan, loan_request_id="LREQ-001")
        assert total == 2
