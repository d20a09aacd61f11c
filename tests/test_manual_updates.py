"""
Unit tests for manual OTA update checklists and sync monitoring.
"""
import pytest
from datetime import datetime, timezone

from voyageur.api.services.manual_update_service import (
    ManualUpdateService, build_checklist_items, checklist_priority, checklist_progress,
    consolidate_availability_items, delta_items, merge_items, ota_platform_labels,
    parse_availability, platform_family,
)
from voyageur.api.services.ota_monitoring_service import (
    OTAMonitoringService, platform_performance, sync_alerts, sync_health, sync_trends,
)
from voyageur.utils.errors import NotFoundError, ValidationError
from tests.conftest import mock_table, results


def availability(item_id, room, start="2025-03-01", end="2025-03-03", setting="Not available", **extra):
    return {
        "id": item_id,
        "category": "availability",
        "description": f"Room: {room} | Dates: {start} → {end} | Set: {setting}",
        "estimated_minutes": 3,
        **extra,
    }


class TestChecklistItems:

    @pytest.mark.parametrize("name, family, labels", [
        ("booking.com", "booking", ["booking.com"]),
        ("GoMMT", "gommt", ["gommt"]),
        ("makemytrip", "gommt", ["gommt"]),
        ("airbnb", "generic", []),
        (None, "generic", []),
    ])
    def test_platform_family(self, name, family, labels):
        assert platform_family(name) == family
        assert ota_platform_labels(name) == labels

    def test_booking_com_items(self):
        bookings = [
            {"id": "b1", "room_no": "101", "check_in": "2025-03-01", "check_out": "2025-03-03"},
            {"id": "b2", "room_no": "102", "check_in": "2025-03-05", "check_out": "2025-03-06", "cancelled": True},
        ]

        items = build_checklist_items("booking.com", bookings)

        assert [item["id"] for item in items] == [
            "booking-login", "booking-calendar", "booking-block-b1", "booking-unblock-b2",
            "verify-updates", "logout-secure",
        ]
        assert items[2]["description"] == "Room: 101 | Dates: 2025-03-01 → 2025-03-03 | Set: Not available"
        assert items[3]["title"] == "Availability: Release 102"
        assert items[3]["booking_reference"] == "b2"

    def test_gommt_and_generic_items(self):
        booking = [{"id": "b1", "room_no": "101", "check_in": "2025-03-01", "check_out": "2025-03-02"}]
        assert "gommt-reduce-b1" in [item["id"] for item in build_checklist_items("GoMMT", booking)]
        assert "generic-update-b1" in [item["id"] for item in build_checklist_items("Agoda", booking)]

    def test_priority(self):
        soon = [{"check_in": "2025-03-02"}]
        later = [{"check_in": "2025-04-01"}] * 6
        assert checklist_priority(soon, today="2025-03-01") == "high"
        assert checklist_priority(later, today="2025-03-01") == "medium"
        assert checklist_priority(later[:2], today="2025-03-01") == "low"

    def test_progress(self):
        assert checklist_progress([]) == (0, "pending")
        assert checklist_progress([{"completed": True}, {"status": "pending"}]) == (1, "in_progress")
        assert checklist_progress([{"completed": True}, {"status": "completed"}]) == (2, "completed")

    def test_parse_availability(self):
        parsed = parse_availability("Rooms: 101, 102 | Dates: 2025-03-01 → 2025-03-03 | Set: Available")
        assert parsed == {"rooms": ["101", "102"], "start": "2025-03-01", "end": "2025-03-03", "set": "Available"}
        assert parse_availability("Open the calendar") is None

    def test_consolidate_groups_rooms_with_same_dates(self):
        items = [
            {"id": "booking-login", "category": "setup"},
            availability("booking-block-b1", "101", completed=True),
            availability("booking-block-b2", "102", completed=True),
            availability("booking-block-b3", "103", start="2025-03-10", end="2025-03-11"),
        ]

        consolidated = consolidate_availability_items(items)

        assert [item["id"] for item in consolidated] == [
            "booking-login", "group-avail-2025-03-01-2025-03-03-101-102", "booking-block-b3",
        ]
        group = consolidated[1]
        assert group["description"] == "Rooms: 101, 102 | Dates: 2025-03-01 → 2025-03-03 | Set: Not available"
        assert group["completed"] is True
        assert group["estimated_minutes"] == 6

    def test_merge_keeps_progress_and_skips_covered_rooms(self):
        existing = [
            {"id": "booking-login", "category": "setup", "completed": True, "status": "completed"},
            {**availability("group-avail-x", "101"), "description":
                "Rooms: 101, 102 | Dates: 2025-03-01 → 2025-03-03 | Set: Not available", "completed": True},
        ]
        new = [
            {"id": "booking-login", "category": "setup", "status": "pending"},
            availability("booking-block-b1", "101"),
            availability("booking-block-b4", "104"),
        ]

        merged = merge_items(existing, new)

        assert [item["id"] for item in merged] == ["booking-login", "group-avail-x", "booking-block-b4"]
        assert merged[0]["completed"] is True
        assert merged[2]["status"] == "pending"

    def test_delta_items_for_cancellation(self):
        items = delta_items("cancelled", {"id": "b1", "room_no": "101", "check_in": "2025-03-01",
                                          "check_out": "2025-03-04"})

        assert items[0]["id"] == "delta-cancelled-availability-101-20250301-20250304"
        assert items[0]["title"] == "Availability: Release 101"
        assert items[0]["description"].endswith("Set: Available")
        assert items[1]["id"] == "delta-verify-b1-20250301"
        assert items[1]["category"] == "verification"


class TestManualUpdateService:
    """Test cases for checklist persistence."""

    @pytest.fixture
    def service(self, supabase_client):
        return ManualUpdateService(supabase_client)

    def test_generate_new_checklist(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        table.execute.side_effect = results(
            [{"id": "pl1", "name": "booking.com"}],
            [{"id": "b1", "room_no": "101", "check_in": "2099-01-10", "check_out": "2099-01-12"}],
            [{"id": "b1", "room_no": "101", "check_in": "2099-01-10", "check_out": "2099-01-12"},
             {"id": "b2", "room_no": "102", "check_in": "2099-01-20", "check_out": "2099-01-21"}],
            [{"id": "b3", "room_no": "103", "check_in": "2099-02-01", "check_out": "2099-02-02", "cancelled": True}],
            [],
            [],
        )

        checklist = service.generate_checklist("pl1", "p1", "2099-01-01", "2099-01-31")

        ids = [item["id"] for item in checklist["checklist_items"]]
        assert ids.count("booking-block-b1") == 1
        assert "booking-unblock-b3" in ids
        assert checklist["total_items"] == 7
        assert checklist["status"] == "pending"
        assert checklist["ota_platforms"] == ["booking.com"]
        assert checklist["priority"] == "low"
        assert checklist["date_range_start"] == "2099-01-01"
        assert checklist["estimated_duration"] == 2 + 1 + 3 + 3 + 2 + 5 + 1
        payload = table.insert.call_args.args[0]
        assert payload["checklist_type"] == "modification"
        assert payload["platform_id"] == "pl1"

    def test_generate_merges_into_open_checklist(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        open_row = {
            "id": "c9",
            "status": "pending",
            "checklist_data": {
                "priority": "high",
                "checklist_items": [
                    {"id": "booking-login", "category": "setup", "status": "completed", "completed": True},
                ],
            },
        }
        table.execute.side_effect = results([{"id": "pl1", "name": "booking.com"}], [], [], [], [open_row], [])

        checklist = service.generate_checklist("pl1", "p1")

        table.insert.assert_not_called()
        payload = table.update.call_args.args[0]
        assert payload["status"] == "in_progress"
        assert checklist["id"] == "c9"
        assert checklist["total_items"] == 4
        assert checklist["completed_items"] == 1
        assert checklist["checklist_items"][0]["completed"] is True

    def test_generate_unknown_platform(self, service, supabase_client):
        mock_table(supabase_client.client, [])
        with pytest.raises(NotFoundError, match="Platform not found"):
            service.generate_checklist("pl404", "p1")

    def test_generate_reversed_range(self, service):
        with pytest.raises(ValidationError):
            service.generate_checklist("pl1", "p1", "2025-03-10", "2025-03-01")

    def test_complete_last_item(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        row = {"id": "c1", "checklist_data": {"checklist_items": [
            {"id": "a", "completed": True, "status": "completed"},
            {"id": "b", "status": "pending"},
        ]}}
        table.execute.side_effect = results([row], [])

        checklist = service.update_checklist_item("c1", "b", "completed", notes="done")

        payload = table.update.call_args.args[0]
        assert payload["status"] == "completed"
        assert payload["completed_at"] is not None
        item = payload["checklist_data"]["checklist_items"][1]
        assert item["completed"] is True
        assert item["notes"] == "done"
        assert checklist["completed_items"] == 2

    def test_reopen_item(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        row = {"id": "c1", "checklist_data": {"checklist_items": [
            {"id": "a", "completed": True, "status": "completed"},
            {"id": "b", "completed": True, "status": "completed"},
        ]}}
        table.execute.side_effect = results([row], [])

        service.update_checklist_item("c1", "a", "pending")

        payload = table.update.call_args.args[0]
        assert payload["status"] == "in_progress"
        assert payload["completed_at"] is None

    def test_update_unknown_item(self, service, supabase_client):
        mock_table(supabase_client.client, [{"id": "c1", "checklist_data": {"checklist_items": []}}])
        with pytest.raises(NotFoundError):
            service.update_checklist_item("c1", "zzz", "completed")

    def test_update_bad_status(self, service):
        with pytest.raises(ValidationError):
            service.update_checklist_item("c1", "a", "done")

    def test_delta_checklists_go_to_manual_otas_only(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        table.execute.side_effect = results(
            [{"id": "pl1", "name": "booking.com"}],
            [{"id": "pl2", "name": "airbnb"}, {"id": "pl3", "name": "gommt", "display_name": "GoMMT"}],
            [{"id": "pl1", "name": "booking.com"}], [], [],
            [{"id": "pl3", "name": "gommt"}], [], [],
        )

        checklists = service.create_delta_checklists_for_booking_change(
            "p1", "created", {"id": "b1", "room_no": "101", "check_in": "2025-03-01", "check_out": "2025-03-03"},
        )

        assert [c["platform_id"] for c in checklists] == ["pl1", "pl3"]
        assert [c["ota_platforms"] for c in checklists] == [["booking.com"], ["gommt"]]
        assert checklists[0]["date_range_end"] == "2025-03-03"
        assert checklists[0]["priority"] == "medium"
        assert checklists[0]["checklist_items"][0]["id"] == "delta-created-availability-101-20250301-20250303"
        assert table.insert.call_count == 2

    def test_delta_rejects_unknown_change(self, service):
        with pytest.raises(ValidationError):
            service.create_delta_checklists_for_booking_change("p1", "moved", {"id": "b1"})

    def test_checklists_for_property_are_flattened(self, service, supabase_client):
        table = mock_table(supabase_client.client, [
            {"id": "c1", "status": "pending", "checklist_data": {"checklist_items": [{"id": "a"}], "priority": "low"}},
        ])

        checklists = service.get_checklists_for_property("p1", "pending")

        assert checklists[0]["priority"] == "low"
        assert checklists[0]["total_items"] == 1
        assert "checklist_data" not in checklists[0]
        table.eq.assert_any_call("status", "pending")

    def test_missing_checklist(self, service, supabase_client):
        mock_table(supabase_client.client, [])
        with pytest.raises(NotFoundError):
            service.get_checklist("c404")

    def test_delete_needs_filter(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        with pytest.raises(ValidationError):
            service.delete_checklists()
        table.delete.assert_not_called()

    def test_delete_returns_count(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        table.execute.side_effect = results([{"id": "c1"}, {"id": "c2"}], [])

        assert service.delete_checklists(property_id="p1", status="completed") == 2
        table.delete.assert_called_once()
        table.eq.assert_any_call("status", "completed")


NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


class TestSyncMonitoring:

    @pytest.fixture
    def logs(self):
        return [
            {"platform_id": "a", "status": "success", "created_at": "2025-03-08T10:00:00+00:00",
             "completed_at": "2025-03-08T10:00:30+00:00"},
            {"platform_id": "a", "status": "success", "created_at": "2025-03-09T10:00:00+00:00",
             "completed_at": "2025-03-09T10:00:10+00:00"},
            {"platform_id": "b", "status": "success", "created_at": "2025-03-10T11:00:00+00:00"},
            {"platform_id": "a", "status": "failed", "created_at": "2025-03-10T11:30:00+00:00",
             "error_message": "HTTP 500"},
        ]

    @pytest.fixture
    def platforms(self):
        return [
            {"platform_id": "a", "platform_name": "airbnb", "sync_interval": 24},
            {"platform_id": "b", "platform_name": "vrbo", "sync_interval": 6},
        ]

    def test_health(self, logs, platforms):
        conflicts = [{"status": "resolved"}, {"status": "ignored"}, {"status": "resolved"}, {"status": "detected"}]

        health = sync_health(logs, conflicts, platforms)

        assert health["sync_success_rate"] == 75.0
        assert health["conflict_resolution_rate"] == 75.0
        assert health["platform_health_rate"] == 50.0
        assert health["overall_health_score"] == 70
        assert health["uptime_percentage"] == 75.0
        assert health["recent_failures"][0]["error_message"] == "HTTP 500"

    def test_health_without_activity(self):
        health = sync_health([], [], [])
        assert health["overall_health_score"] == 100
        assert health["recent_failures"] == []

    def test_platform_performance(self, logs, platforms):
        performance = platform_performance(logs, platforms)

        assert [p["platform_id"] for p in performance] == ["b", "a"]
        airbnb = performance[1]
        assert airbnb["success_rate"] == 66.7
        assert airbnb["average_duration_seconds"] == 20.0
        assert airbnb["last_successful_sync"] == "2025-03-09T10:00:00+00:00"
        assert airbnb["error_count"] == 1

    def test_trends(self, logs):
        assert sync_trends(logs)[-1] == {"date": "2025-03-10", "success": 1, "failed": 1, "total": 2}

    def test_alerts(self, logs, platforms):
        conflicts = [
            {"id": "x1", "status": "detected", "created_at": "2025-03-08T09:00:00+00:00"},
            {"id": "x2", "status": "detected", "created_at": "2025-03-10T09:00:00+00:00"},
            {"id": "x3", "status": "resolved", "created_at": "2025-03-01T09:00:00+00:00"},
        ]

        alerts = sync_alerts(platforms, logs, conflicts, now=NOW)

        by_type = {alert["type"]: alert for alert in alerts}
        assert by_type["missed_sync"]["platform_id"] == "a"
        assert by_type["sync_failure"]["message"] == "HTTP 500"
        assert by_type["unresolved_conflicts"]["conflict_ids"] == ["x1"]
        assert len(alerts) == 3

    def test_service_health(self, supabase_client, logs, platforms):
        table = mock_table(supabase_client.client)
        table.execute.side_effect = results(logs, [], platforms)

        metrics = OTAMonitoringService(supabase_client).get_sync_health_metrics("p1", days=3)

        assert metrics["property_id"] == "p1"
        assert metrics["total_syncs"] == 4
        table.eq.assert_any_call("sync_enabled", True)
