"""
Unit tests for assetdesk.services.assignment – slot resizing, reservations, scan, submit validation.
"""
import pytest

from assetdesk.core.exceptions import AvailabilityError, InvalidTransitionError, ValidationError
from assetdesk.schemas.asset import AssetStatus
from assetdesk.schemas.loan import (
    AssignmentDraft,
    AssignmentItemDraft,
    ItemDecisionStatus,
    LoanItem,
    LoanRequestStatus,
)
from assetdesk.services.assignment import AssignmentPanel, derive_item_status


@pytest.fixture
def two_item_loan(make_loan):
    return make_loan(items=[
        LoanItem(id=1, item_name="Router", brand="TP-Link", quantity=2),
        LoanItem(id=2, item_name="Switch", brand="Cisco", quantity=1),
    ])


@pytest.fixture
def mixed_assets(make_asset):
    return [
        make_asset("AST-001"),
        make_asset("AST-002"),
        make_asset("AST-003"),
        make_asset("AST-010", name="Switch", brand="Cisco"),
        make_asset("AST-011", name="Switch", brand="Cisco"),
    ]


class TestDeriveItemStatus:
    def test_full(self):
        assert derive_item_status(3, 3) == ItemDecisionStatus.APPROVED

    def test_partial(self):
        assert derive_item_status(1, 3) == ItemDecisionStatus.PARTIAL

    def test_rejected(self):
        assert derive_item_status(0, 3) == ItemDecisionStatus.REJECTED


class TestPanelSetup:
    def test_starts_fully_approved_with_empty_slots(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        state = panel.item(1)
        assert state.approved_qty == 3
        assert state.assigned_assets == [None, None, None]
        assert state.reason == ""

    def test_only_pending_requests(self, make_loan, routers):
        loan = make_loan(status=LoanRequestStatus.APPROVED)
        with pytest.raises(InvalidTransitionError):
            AssignmentPanel(loan, routers)

    def test_unknown_item(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        with pytest.raises(ValidationError):
            panel.item(99)


class TestSetApprovedQuantity:
    def test_clamps_above_requested(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        assert panel.set_approved_quantity(1, 10) == 3
        assert len(panel.item(1).assigned_assets) == 3

    def test_clamps_below_zero(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        assert panel.set_approved_quantity(1, -2) == 0
        assert panel.item(1).assigned_assets == []

    def test_shrink_keeps_prefix_and_releases_rest(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        panel.assign_asset(1, 0, "AST-001")
        panel.assign_asset(1, 2, "AST-003")

        panel.set_approved_quantity(1, 1)

        assert panel.item(1).assigned_assets == ["AST-001"]
        assert panel.reserved_asset_ids == ["AST-001"]
        assert not panel.is_reserved("AST-003")

    def test_grow_pads_with_empty_slots(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        panel.set_approved_quantity(1, 1)
        panel.assign_asset(1, 0, "AST-002")
        panel.set_approved_quantity(1, 3)
        assert panel.item(1).assigned_assets == ["AST-002", None, None]

    def test_reject_item(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        panel.assign_asset(1, 0, "AST-001")
        panel.reject_item(1)
        assert panel.item(1).approved_qty == 0
        assert panel.reserved_asset_ids == []


class TestAssignAndCandidates:
    def test_candidates_match_name_and_brand_case_insensitive(self, make_loan, make_asset):
        assets = [
            make_asset("AST-001", name=" router ", brand="tp-link"),
            make_asset("AST-002", name="Router", brand="Mikrotik"),
            make_asset("AST-003", status=AssetStatus.IN_USE),
        ]
        panel = AssignmentPanel(make_loan(), assets)
        assert [a.id for a in panel.candidates(1)] == ["AST-001"]

    def test_assigned_asset_leaves_other_slots_pools(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        panel.assign_asset(1, 0, "AST-001")

        assert "AST-001" not in [a.id for a in panel.candidates(1, 1)]
        # The holding slot still sees its own asset
        assert "AST-001" in [a.id for a in panel.candidates(1, 0)]

    def test_same_asset_twice_in_one_item_refused(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        panel.assign_asset(1, 0, "AST-001")
        with pytest.raises(AvailabilityError):
            panel.assign_asset(1, 1, "AST-001")

    def test_cross_item_exclusivity(self, make_loan, make_asset):
        loan = make_loan(items=[
            LoanItem(id=1, item_name="Router", brand="TP-Link", quantity=1),
            LoanItem(id=2, item_name="Router", brand="TP-Link", quantity=1),
        ])
        panel = AssignmentPanel(loan, [make_asset("AST-001"), make_asset("AST-002")])
        panel.assign_asset(1, 0, "AST-001")

        assert [a.id for a in panel.candidates(2, 0)] == ["AST-002"]
        with pytest.raises(AvailabilityError):
            panel.assign_asset(2, 0, "AST-001")

    def test_clearing_slot_releases_reservation(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        panel.assign_asset(1, 0, "AST-001")
        panel.assign_asset(1, 0, None)
        assert panel.item(1).assigned_assets[0] is None
        assert not panel.is_reserved("AST-001")

    def test_replacing_slot_releases_previous(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        panel.assign_asset(1, 0, "AST-001")
        panel.assign_asset(1, 0, "AST-002")
        assert not panel.is_reserved("AST-001")
        assert panel.is_reserved("AST-002")

    def test_reserved_by_other_loans(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers, reserved_elsewhere={"AST-005"})
        assert "AST-005" not in [a.id for a in panel.candidates(1)]
        with pytest.raises(AvailabilityError):
            panel.assign_asset(1, 0, "AST-005")

    def test_not_in_storage(self, make_loan, make_asset):
        panel = AssignmentPanel(make_loan(), [make_asset("AST-001", status=AssetStatus.IN_USE)])
        with pytest.raises(AvailabilityError) as exc_info:
            panel.assign_asset(1, 0, "AST-001")
        assert exc_info.value.asset_id == "AST-001"

    def test_wrong_model(self, make_loan, make_asset):
        panel = AssignmentPanel(make_loan(), [make_asset("AST-001", brand="Mikrotik")])
        with pytest.raises(AvailabilityError):
            panel.assign_asset(1, 0, "AST-001")

    def test_unknown_asset(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        with pytest.raises(AvailabilityError):
            panel.assign_asset(1, 0, "AST-999")

    def test_slot_out_of_range(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        panel.set_approved_quantity(1, 1)
        with pytest.raises(ValidationError):
            panel.assign_asset(1, 1, "AST-001")


class TestScanAssign:
    def test_scan_by_id_fills_first_empty_slot(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        panel.assign_asset(1, 0, "AST-001")
        assert panel.scan_assign(1, "AST-002") == "AST-002"
        assert panel.item(1).assigned_assets == ["AST-001", "AST-002", None]

    def test_scan_by_serial_number(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        assert panel.scan_assign(1, "  SN-AST-004 ") == "AST-004"

    def test_scan_into_given_slot(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        panel.scan_assign(1, "AST-003", slot_index=2)
        assert panel.item(1).assigned_assets == [None, None, "AST-003"]

    def test_scan_unknown_code(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        with pytest.raises(AvailabilityError):
            panel.scan_assign(1, "NOPE")

    def test_scan_asset_not_in_storage(self, make_loan, make_asset):
        panel = AssignmentPanel(make_loan(), [make_asset("AST-001", status=AssetStatus.IN_USE)])
        with pytest.raises(AvailabilityError):
            panel.scan_assign(1, "AST-001")

    def test_scan_already_claimed(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        panel.assign_asset(1, 0, "AST-001")
        with pytest.raises(AvailabilityError):
            panel.scan_assign(1, "AST-001")

    def test_scan_with_no_free_slot(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        panel.set_approved_quantity(1, 1)
        panel.scan_assign(1, "AST-001")
        with pytest.raises(ValidationError):
            panel.scan_assign(1, "AST-002")


class TestSubmit:
    def test_full_approval(self, make_loan, routers):
        """Three routers requested, three assigned."""
        panel = AssignmentPanel(make_loan(), routers)
        for slot, asset_id in enumerate(["AST-001", "AST-002", "AST-003"]):
            panel.assign_asset(1, slot, asset_id)

        decision = panel.submit()

        assert decision.item_statuses[1].status == ItemDecisionStatus.APPROVED
        assert decision.item_statuses[1].approved_quantity == 3
        assert decision.assigned_asset_ids[1] == ["AST-001", "AST-002", "AST-003"]

    def test_reduced_without_reason_names_the_item(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        panel.set_approved_quantity(1, 1)
        panel.assign_asset(1, 0, "AST-001")

        with pytest.raises(ValidationError) as exc_info:
            panel.submit()
        assert "Router" in str(exc_info.value)
        assert exc_info.value.item_id == 1

    def test_whitespace_reason_is_missing(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        panel.set_approved_quantity(1, 1)
        panel.set_reason(1, "   ")
        panel.assign_asset(1, 0, "AST-001")
        with pytest.raises(ValidationError):
            panel.submit()

    def test_partial_approval(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        panel.set_approved_quantity(1, 1)
        panel.set_reason(1, "stok terbatas")
        panel.assign_asset(1, 0, "AST-001")

        decision = panel.submit()

        assert decision.item_statuses[1].status == ItemDecisionStatus.PARTIAL
        assert decision.item_statuses[1].approved_quantity == 1
        assert decision.item_statuses[1].reason == "stok terbatas"

    def test_rejected_item_gets_no_assignment(self, two_item_loan, mixed_assets):
        panel = AssignmentPanel(two_item_loan, mixed_assets)
        panel.reject_item(1)
        panel.set_reason(1, "tidak tersedia")
        panel.assign_asset(2, 0, "AST-010")

        decision = panel.submit()

        assert decision.item_statuses[1].status == ItemDecisionStatus.REJECTED
        assert 1 not in decision.assigned_asset_ids
        assert decision.assigned_asset_ids[2] == ["AST-010"]

    def test_incomplete_assignment(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        panel.assign_asset(1, 0, "AST-001")
        with pytest.raises(ValidationError, match="Incomplete assignment"):
            panel.submit()

    def test_first_offending_item_reported(self, two_item_loan, mixed_assets):
        panel = AssignmentPanel(two_item_loan, mixed_assets)
        panel.set_approved_quantity(2, 0)
        with pytest.raises(ValidationError) as exc_info:
            panel.submit()
        # Item 1 (empty slots) comes before item 2 (missing reason)
        assert exc_info.value.item_id == 1

    def test_flattened_length_equals_sum_of_approved(self, two_item_loan, mixed_assets):
        panel = AssignmentPanel(two_item_loan, mixed_assets)
        panel.set_approved_quantity(1, 1)
        panel.set_reason(1, "satu cukup")
        panel.assign_asset(1, 0, "AST-002")
        panel.assign_asset(2, 0, "AST-011")

        decision = panel.submit()

        flattened = [a for ids in decision.assigned_asset_ids.values() for a in ids]
        total_approved = sum(d.approved_quantity for d in decision.item_statuses.values())
        assert len(flattened) == total_approved == 2
        assert len(set(flattened)) == len(flattened)


class TestApplyDraft:
    def test_replays_quantity_reason_and_slots(self, two_item_loan, mixed_assets):
        panel = AssignmentPanel(two_item_loan, mixed_assets)
        panel.apply_draft(AssignmentDraft(items=[
            AssignmentItemDraft(item_id=1, approved_quantity=1, reason="stok terbatas", asset_ids=["AST-003"]),
            AssignmentItemDraft(item_id=2, approved_quantity=1, asset_ids=["AST-010"]),
        ]))

        decision = panel.submit()
        assert decision.assigned_asset_ids == {1: ["AST-003"], 2: ["AST-010"]}

    def test_draft_with_duplicate_across_items_is_refused(self, make_loan, make_asset):
        loan = make_loan(items=[
            LoanItem(id=1, item_name="Router", brand="TP-Link", quantity=1),
            LoanItem(id=2, item_name="Router", brand="TP-Link", quantity=1),
        ])
        panel = AssignmentPanel(loan, [make_asset("AST-001"), make_asset("AST-002")])
        with pytest.raises(AvailabilityError):
            panel.apply_draft(AssignmentDraft(items=[
                AssignmentItemDraft(item_id=1, approved_quantity=1, asset_ids=["AST-001"]),
                AssignmentItemDraft(item_id=2, approved_quantity=1, asset_ids=["AST-001"]),
            ]))

    def test_more_assets_than_approved(self, make_loan, routers):
        panel = AssignmentPanel(make_loan(), routers)
        with pytest.raises(ValidationError):
            panel.apply_draft(AssignmentDraft(items=[
                AssignmentItemDraft(
                    item_id=1, approved_quantity=1, reason="x", asset_ids=["AST-001", "AST-002"]
                ),
            ]))
