"""
Unit tests for calendar conflict detection and resolution.
"""
import pytest
from unittest.mock import Mock

from voyageur.api.services.conflict_service import (
    ConflictService, dates_overlap, find_double_bookings, suggest_double_booking_resolution,
    sync_conflict, pricing_conflict, availability_conflict,
)
from voyageur.utils.errors import NotFoundError
from tests.conftest import mock_table, results


def booking(booking_id, check_in, check_out, room_no="101", **extra):
    return {"id": booking_id, "check_in": check_in, "check_out": check_out, "room_no": room_no, **extra}


class TestDetectors:

    def test_stays_are_half_open(self):
        assert not dates_overlap("2025-01-01", "2025-01-03", "2025-01-03", "2025-01-05")
        assert dates_overlap("2025-01-01", "2025-01-04", "2025-01-03", "2025-01-05")

    def test_double_booking_same_room_only(self):
        bookings = [
            booking("b1", "2025-01-01", "2025-01-04", ota_platform_id="airbnb", guest_name="Asha"),
            booking("b2", "2025-01-03", "2025-01-06"),
            booking("b3", "2025-01-02", "2025-01-05", room_no="102"),
            booking("b4", "2025-01-06", "2025-01-08"),
        ]

        conflicts = find_double_bookings("p1", bookings)

        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.id == "double-b1-b2"
        assert (conflict.conflict_date_start, conflict.conflict_date_end) == ("2025-01-03", "2025-01-04")
        assert conflict.details["booking1"]["platform"] == "airbnb"
        assert conflict.details["booking2"]["platform"] == "direct"
        assert conflict.suggested_resolution["action"] == "relocate_direct"
        assert conflict.suggested_resolution["estimated_cost"] == 500
        assert conflict.auto_resolvable is False

    def test_resolution_suggestions(self):
        direct_early = {"booking_date": "2024-12-01"}
        direct_late = {"booking_date": "2024-12-05"}
        ota = {"ota_platform_id": "booking_com"}

        assert suggest_double_booking_resolution(direct_late, ota)["action"] == "relocate_ota"
        assert suggest_double_booking_resolution(direct_early, direct_late)["action"] == "honor_first"
        assert suggest_double_booking_resolution(direct_late, direct_early)["action"] == "manual_review"
        assert suggest_double_booking_resolution(ota, ota)["action"] == "manual_review"

    def test_single_booking_conflicts(self):
        failed = sync_conflict("p1", booking("b1", "2025-02-01", "2025-02-03", ota_sync_status="failed"))
        pending = sync_conflict("p1", booking("b2", "2025-02-01", "2025-02-03", ota_sync_status="pending"))
        unassigned = availability_conflict("p1", booking("b3", "2025-02-01", "2025-02-03", room_no=None))
        unpriced = pricing_conflict("p1", booking("b4", "2025-02-01", "2025-02-03"), 2000)

        assert failed.severity == "medium"
        assert pending.severity == "low"
        assert failed.auto_resolvable is False
        assert unassigned.room_no == "Unassigned"
        assert unpriced.auto_resolvable is True
        assert unpriced.details["room_rate"] == 2000


class TestConflictService:
    """Test cases for storing and resolving conflicts."""

    @pytest.fixture
    def service(self, supabase_client):
        return ConflictService(supabase_client)

    def test_detect_conflicts(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        table.execute.side_effect = results(
            [booking("b1", "2025-02-01", "2025-02-04"), booking("b2", "2025-02-02", "2025-02-05")],
            [booking("b4", "2025-02-01", "2025-02-03", ota_sync_status="failed")],
            [booking("b5", "2025-02-01", "2025-02-03", room_no=None)],
            [booking("b6", "2025-02-01", "2025-02-04", total_amount=0)],
        )
        supabase_client.get_rooms = Mock(return_value=[{"room_number": "101", "price_per_night": 2000}])
        service.save_conflict = Mock()

        conflicts = service.detect_conflicts("p1", today="2025-01-15")

        assert [c.conflict_type for c in conflicts] == [
            "double_booking", "sync_failed", "availability_mismatch", "pricing_mismatch",
        ]
        assert conflicts[-1].details["room_rate"] == 2000
        assert service.save_conflict.call_count == 4
        table.gte.assert_any_call("check_out", "2025-01-15")
        table.gte.assert_any_call("check_in", "2025-01-15")

    def test_detect_skips_room_rates_when_all_priced(self, service, supabase_client):
        mock_table(supabase_client.client, [])
        supabase_client.get_rooms = Mock()
        assert service.detect_conflicts("p1", today="2025-01-15") == []
        supabase_client.get_rooms.assert_not_called()

    def test_save_conflict_inserts_new(self, service, supabase_client):
        table = mock_table(supabase_client.client, [])
        service.save_conflict(sync_conflict("p1", booking("b1", "2025-02-01", "2025-02-03")))

        row = table.insert.call_args.args[0]
        assert row["id"] == "sync-b1"
        assert row["status"] == "detected"
        assert "created_at" in row

    def test_save_conflict_updates_existing(self, service, supabase_client):
        table = mock_table(supabase_client.client, [{"id": "sync-b1"}])
        service.save_conflict(sync_conflict("p1", booking("b1", "2025-02-01", "2025-02-03")))

        table.insert.assert_not_called()
        assert "updated_at" in table.update.call_args.args[0]

    def test_resolve_conflict(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        service.resolve_conflict("c1", {"action": "assign_room", "notes": "Room 102"}, "manager")

        payload = table.update.call_args.args[0]
        assert payload["status"] == "resolved"
        assert payload["resolution_action"] == "assign_room"
        assert payload["resolved_by"] == "manager"

    def test_get_conflicts_by_status(self, service, supabase_client):
        table = mock_table(supabase_client.client, [{"id": "c1"}])
        assert service.get_conflicts("p1", "detected") == [{"id": "c1"}]
        table.eq.assert_any_call("status", "detected")

    def test_conflict_stats(self, service, supabase_client):
        mock_table(supabase_client.client, [
            {"conflict_type": "double_booking", "severity": "high", "status": "detected"},
            {"conflict_type": "pricing_mismatch", "severity": "low", "status": "resolved"},
            {"conflict_type": "double_booking", "severity": "high", "status": "resolved"},
        ])

        stats = service.get_conflict_stats("p1")

        assert stats["total"] == 3
        assert stats["by_type"] == {"double_booking": 2, "pricing_mismatch": 1}
        assert stats["by_status"] == {"detected": 1, "resolved": 2}

    def test_auto_resolve_only_resolvable(self, service):
        pricing = {"action": "update_pricing", "auto_resolvable": True}
        service.get_conflicts = Mock(return_value=[
            {"id": "c1", "booking_id_1": "b6", "suggested_resolution": pricing},
            {"id": "c2", "suggested_resolution": {"action": "retry_sync", "auto_resolvable": False}},
            {"id": "c3", "suggested_resolution": None},
        ])
        service.auto_update_pricing = Mock(return_value=6000)
        service.resolve_conflict = Mock()

        assert service.auto_resolve_conflicts("p1") == 1
        service.auto_update_pricing.assert_called_once_with("b6")
        service.resolve_conflict.assert_called_once_with("c1", pricing, "system")

    def test_auto_resolve_failure_is_counted_out(self, service):
        service.get_conflicts = Mock(return_value=[
            {"id": "c1", "booking_id_1": "b6",
             "suggested_resolution": {"action": "update_pricing", "auto_resolvable": True}},
        ])
        service.auto_update_pricing = Mock(side_effect=NotFoundError("Booking not found"))
        service.resolve_conflict = Mock()

        assert service.auto_resolve_conflicts("p1") == 0
        service.resolve_conflict.assert_not_called()

    def test_unsupported_auto_action(self, service):
        with pytest.raises(ValueError):
            service.execute_auto_resolution({"suggested_resolution": {"action": "relocate_ota"}})

    def test_auto_update_pricing(self, service, supabase_client):
        supabase_client.get_booking_by_id = Mock(return_value={
            "property_id": "p1", "room_no": "101", "check_in": "2025-02-01", "check_out": "2025-02-04",
        })
        supabase_client.get_rooms = Mock(return_value=[{"room_number": "101", "price_per_night": 2000}])
        supabase_client.update_booking = Mock()

        assert service.auto_update_pricing("b6") == 6000
        supabase_client.update_booking.assert_called_once_with("b6", {"total_amount": 6000})

    def test_auto_update_pricing_missing_booking(self, service, supabase_client):
        supabase_client.get_booking_by_id = Mock(return_value=None)
        with pytest.raises(NotFoundError):
            service.auto_update_pricing("b404")
