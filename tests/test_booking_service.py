"""
Unit tests for the booking and property services.
"""
import asyncio
import json
import pytest
from unittest.mock import Mock

from voyageur.api.models import CreateBookingRequest, UpdateBookingRequest
from voyageur.api.services.booking_service import BookingService
from voyageur.api.services.property_service import PropertyService
from voyageur.utils.errors import NotFoundError
from voyageur.utils.models import CalendarConflict
from tests.conftest import mock_table, results


def collect(agen):
    async def run():
        return [json.loads(line) async for line in agen]
    return asyncio.run(run())


@pytest.fixture
def request_data():
    return CreateBookingRequest(
        property_id="p1",
        guest_name="Asha Rao",
        room_no="101",
        check_in="2025-03-01",
        check_out="2025-03-03",
        contact_email="asha@example.com",
    )


class TestBookingService:
    """Test cases for booking operations."""

    @pytest.fixture
    def supabase(self):
        client = Mock()
        client.create_booking.return_value = {"id": "b1", "folio_number": "VN-1001", "guest_name": "Asha Rao"}
        client.get_booking_by_id.return_value = {"id": "b1", "check_in": "2025-03-01", "check_out": "2025-03-03"}
        return client

    @pytest.fixture
    def guest_profiles(self):
        profiles = Mock()
        profiles.find_or_create_for_booking.return_value = "g1"
        return profiles

    @pytest.fixture
    def conflicts(self):
        service = Mock()
        service.detect_conflicts.return_value = []
        return service

    @pytest.fixture
    def service(self, supabase, guest_profiles, conflicts):
        return BookingService(supabase, Mock(), guest_profiles, conflicts)

    def test_create_booking(self, service, supabase, guest_profiles, request_data):
        response = service.create_booking(request_data)

        assert response.success is True
        assert response.data["guest_profile_id"] == "g1"
        payload = supabase.create_booking.call_args.args[0]
        assert payload["check_in"] == "2025-03-01"
        assert payload["status"] == "confirmed"
        assert payload["booking_date"]
        guest_profiles.link_guest_to_booking.assert_called_once_with("b1", "g1")

    def test_create_booking_failure(self, service, supabase, request_data):
        supabase.create_booking.return_value = None

        response = service.create_booking(request_data)

        assert response.success is False
        assert "Failed to create booking" in response.message

    def test_guest_link_failure_keeps_booking(self, service, guest_profiles, request_data):
        guest_profiles.find_or_create_for_booking.side_effect = RuntimeError("db down")
        assert service.create_booking(request_data).success is True

    def test_create_process_steps(self, service, request_data):
        steps = collect(service.create_booking_process(request_data))

        assert [(s["step"], s["status"]) for s in steps] == [
            ("database", "in_progress"),
            ("database", "completed"),
            ("guest_profile", "in_progress"),
            ("guest_profile", "completed"),
            ("conflicts", "in_progress"),
            ("conflicts", "completed"),
            ("complete", "success"),
        ]
        assert "VN-1001" in steps[1]["message"]
        assert steps[-1]["data"]["id"] == "b1"

    def test_create_process_reports_conflicts(self, service, conflicts, request_data):
        conflicts.detect_conflicts.return_value = [
            CalendarConflict("double-b0-b1", "p1", "double_booking", "high", "2025-03-01",
                             booking_id_1="b0", booking_id_2="b1"),
            CalendarConflict("sync-b9", "p1", "sync_failed", "low", "2025-03-01", booking_id_1="b9"),
        ]

        steps = collect(service.create_booking_process(request_data))

        conflict_step = steps[5]
        assert conflict_step["status"] == "warning"
        assert conflict_step["message"] == "1 conflict(s) involve this booking"

    def test_create_process_stops_on_database_failure(self, service, supabase, request_data):
        supabase.create_booking.return_value = None

        steps = collect(service.create_booking_process(request_data))

        assert steps[-1]["step"] == "database"
        assert steps[-1]["status"] == "failed"

    def test_create_process_skips_missing_guest(self, service, guest_profiles, conflicts, request_data):
        guest_profiles.find_or_create_for_booking.return_value = None
        conflicts.detect_conflicts.side_effect = RuntimeError("db down")

        steps = collect(service.create_booking_process(request_data))

        assert steps[3]["status"] == "skipped"
        assert steps[5]["status"] == "warning"
        assert steps[-1]["status"] == "success"

    def test_update_booking(self, service, supabase):
        supabase.update_booking.return_value = {"id": "b1", "room_no": "102"}

        assert service.update_booking("b1", UpdateBookingRequest(room_no="102")) == {"id": "b1", "room_no": "102"}
        supabase.update_booking.assert_called_once_with("b1", {"room_no": "102"})

    def test_update_rejects_bad_dates(self, service, supabase):
        with pytest.raises(ValueError):
            service.update_booking("b1", UpdateBookingRequest(check_out="2025-03-01"))
        supabase.update_booking.assert_not_called()

    def test_missing_booking(self, service, supabase):
        supabase.get_booking_by_id.return_value = None
        with pytest.raises(NotFoundError):
            service.cancel_booking("b404")
        with pytest.raises(NotFoundError):
            service.delete_booking("b404")

    def test_cancel_booking(self, service, supabase):
        supabase.cancel_booking.return_value = {"id": "b1", "cancelled": True}
        assert service.cancel_booking("b1")["cancelled"] is True

    def test_cancel_queues_manual_ota_release(self, supabase, guest_profiles, conflicts):
        manual_updates = Mock()
        service = BookingService(supabase, Mock(), guest_profiles, conflicts, manual_updates=manual_updates)
        cancelled = {"id": "b1", "property_id": "p1", "room_no": "101", "cancelled": True}
        supabase.cancel_booking.return_value = cancelled

        service.cancel_booking("b1")

        manual_updates.create_delta_checklists_for_booking_change.assert_called_once_with("p1", "cancelled", cancelled)

    def test_checklist_failure_does_not_fail_booking(self, supabase, guest_profiles, conflicts, request_data):
        manual_updates = Mock()
        manual_updates.create_delta_checklists_for_booking_change.side_effect = RuntimeError("db down")
        supabase.create_booking.return_value = {"id": "b1", "property_id": "p1", "guest_name": "Asha Rao"}
        service = BookingService(supabase, Mock(), guest_profiles, conflicts, manual_updates=manual_updates)

        assert service.create_booking(request_data).success is True
        manual_updates.create_delta_checklists_for_booking_change.assert_called_once()

    def test_statistics_are_cached(self, service, supabase):
        supabase.get_bookings.return_value = [
            {"source": "direct", "status": "confirmed"},
            {"source": "ota", "status": "confirmed"},
            {"status": "pending"},
        ]

        first = service.get_booking_statistics()
        second = service.get_booking_statistics()

        assert first.data.total_bookings == 3
        assert first.data.by_source == {"direct": 1, "ota": 1, "unknown": 1}
        assert first.data.by_status == {"confirmed": 2, "pending": 1}
        assert second is first
        supabase.get_bookings.assert_called_once()

    def test_statistics_error(self, service, supabase):
        supabase.get_bookings.side_effect = RuntimeError("db down")
        response = service.get_booking_statistics()
        assert response.success is False
        assert response.error_code == "INTERNAL_ERROR"

    def test_paginated(self, service, supabase):
        supabase.get_bookings.return_value = [{"id": f"b{i}"} for i in range(25)]

        page = service.get_bookings_paginated({"property_id": "p1"}, page=3, limit=10)

        assert [b["id"] for b in page["bookings"]] == [f"b{i}" for i in range(20, 25)]
        assert page["total"] == 25
        assert page["total_pages"] == 3


class TestPropertyService:
    """Test cases for property operations."""

    @pytest.fixture
    def ical(self):
        return Mock()

    @pytest.fixture
    def service(self, supabase_client, ical):
        return PropertyService(supabase_client, ical)

    def test_create_property_sets_feed_url(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        table.execute.side_effect = results([{"id": "p9", "name": "Baror"}], [])

        result = service.create_property("Baror", "Baror, Manali")

        assert result["success"] is True
        assert result["data"]["ical_feed_url"].endswith("/api/v1/property/p9.ics")
        assert table.insert.call_args.args[0]["status"] == "active"
        assert table.update.call_args.args[0] == {"ical_feed_url": result["data"]["ical_feed_url"]}

    def test_create_property_failure(self, service, supabase_client):
        mock_table(supabase_client.client, [])
        result = service.create_property("Baror")
        assert result["success"] is False

    def test_delete_property(self, service, supabase_client):
        mock_table(supabase_client.client, [{"id": "p1"}])
        assert service.delete_property("p1")["deleted_count"] == 1

        mock_table(supabase_client.client, [])
        assert service.delete_property("p404")["success"] is False

    def test_get_properties(self, service, supabase_client):
        table = mock_table(supabase_client.client, [{"id": "p1"}, {"id": "p2"}])

        result = service.get_properties(page=2, limit=5)

        assert result["data"]["total"] == 2
        table.range.assert_called_with(5, 9)

    def test_get_property_by_id(self, service, supabase_client):
        mock_table(supabase_client.client, [])
        assert service.get_property_by_id("p404") is None

    def test_generate_feed(self, service, ical):
        ical.generate_property_calendar.return_value = "BEGIN:VCALENDAR"
        assert service.generate_ical_feed({"id": "p1"}, "airbnb") == "BEGIN:VCALENDAR"
        ical.generate_property_calendar.assert_called_once_with("p1", platform_id="airbnb")
