"""
API tests with the services replaced by mocks.
"""
import pytest
from unittest.mock import Mock
from fastapi.testclient import TestClient

from voyageur.api import dependencies as deps
from voyageur.api.app import create_app
from voyageur.api.config import settings
from voyageur.api.models import CreateBookingResponse
from voyageur.api.security.jwt import create_token
from voyageur.utils.errors import AIProviderError, NotFoundError, RateLimitError, ValidationError
from voyageur.utils.models import CalendarConflict, ReceiptExtraction

API = "/api/v1"


@pytest.fixture
def services():
    return {
        "supabase": Mock(initialized=True),
        "booking": Mock(),
        "property": Mock(),
        "expense": Mock(),
        "receipts": Mock(),
        "kpi": Mock(),
        "insights": Mock(),
        "conflicts": Mock(),
        "availability": Mock(),
        "ical": Mock(),
        "parser": Mock(),
        "email_import": Mock(),
        "ledger": Mock(),
        "manual_updates": Mock(),
        "monitoring": Mock(),
    }


@pytest.fixture
def app(services):
    app = create_app()
    app.dependency_overrides.update({
        deps.get_supabase_client: lambda: services["supabase"],
        deps.get_booking_service: lambda: services["booking"],
        deps.get_property_service: lambda: services["property"],
        deps.get_expense_service: lambda: services["expense"],
        deps.get_receipt_extraction_service: lambda: services["receipts"],
        deps.get_kpi_calculator: lambda: services["kpi"],
        deps.get_insights_service: lambda: services["insights"],
        deps.get_conflict_service: lambda: services["conflicts"],
        deps.get_availability_service: lambda: services["availability"],
        deps.get_ical_service: lambda: services["ical"],
        deps.get_email_parser: lambda: services["parser"],
        deps.get_email_import_service: lambda: services["email_import"],
        deps.get_booking_ledger_service: lambda: services["ledger"],
        deps.get_manual_update_service: lambda: services["manual_updates"],
        deps.get_ota_monitoring_service: lambda: services["monitoring"],
    })
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def no_auth(monkeypatch):
    monkeypatch.setattr(settings, "auth_enabled", False)


class TestAuth:

    @pytest.fixture(autouse=True)
    def secret(self, monkeypatch):
        monkeypatch.setattr(settings, "auth_enabled", True)
        monkeypatch.setattr(settings, "jwt_secret", "test-secret")

    def test_root_is_open(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["message"] == "Voyageur Nest API is running"

    def test_health_is_open(self, client, monkeypatch):
        monkeypatch.setattr("voyageur.api.routes.health.get_llm_manager", lambda: Mock(available=False))

        response = client.get(f"{API}/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["dependencies"] == {"supabase": "ok", "gemini": "disabled"}

    def test_missing_token(self, client):
        response = client.get(f"{API}/bookings/b1")
        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHORIZED"

    def test_bad_token(self, client):
        token = create_token({"sub": "u1"}, "wrong-secret")
        response = client.get(f"{API}/bookings/b1", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["details"] == {"error": "Invalid token signature"}

    def test_valid_token(self, client, services):
        services["booking"].get_booking.return_value = {"id": "b1"}
        token = create_token({"sub": "u1"}, "test-secret")

        response = client.get(f"{API}/bookings/b1", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json()["data"] == {"id": "b1"}

    def test_calendar_feed_is_open(self, client, services):
        services["property"].get_property_by_id.return_value = {"id": "p1"}
        services["property"].generate_ical_feed.return_value = "BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n"

        response = client.get(f"{API}/property/p1.ics?platform_id=airbnb")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/calendar")
        assert response.text.startswith("BEGIN:VCALENDAR")
        services["property"].generate_ical_feed.assert_called_once_with({"id": "p1"}, platform_id="airbnb")


@pytest.mark.usefixtures("no_auth")
class TestErrorMapping:

    @pytest.mark.parametrize("error, status, code", [
        (NotFoundError("Booking b9 not found"), 404, "NOT_FOUND"),
        (ValidationError("Bad input", ["amount"]), 400, "VALIDATION_ERROR"),
        (RateLimitError("rate_limited_rpm"), 429, "RATE_LIMITED"),
        (AIProviderError("Gemini returned non-JSON"), 502, "AI_PROVIDER_ERROR"),
    ])
    def test_domain_errors(self, client, services, error, status, code):
        services["booking"].get_booking.side_effect = error

        response = client.get(f"{API}/bookings/b9")

        assert response.status_code == status
        detail = response.json()["detail"]
        assert detail["error_code"] == code
        assert detail["message"] == error.message


@pytest.mark.usefixtures("no_auth")
class TestBookingRoutes:

    def test_list_filters(self, client, services):
        services["booking"].get_bookings_paginated.return_value = {
            "bookings": [], "total": 0, "page": 1, "limit": 10, "total_pages": 0,
        }

        response = client.get(f"{API}/bookings?property_id=p1&status=confirmed&status=pending&start=2025-03-01")

        assert response.status_code == 200
        filters = services["booking"].get_bookings_paginated.call_args.kwargs["filters"]
        assert filters == {
            "property_id": "p1", "start": "2025-03-01", "status": ["confirmed", "pending"], "show_cancelled": False,
        }

    def test_create(self, client, services):
        services["booking"].create_booking.return_value = CreateBookingResponse(
            success=True, message="Booking created successfully", data={"id": "b1"},
        )
        body = {
            "property_id": "p1", "guest_name": "Asha", "room_no": "101",
            "check_in": "2025-03-01", "check_out": "2025-03-03",
        }

        response = client.post(f"{API}/bookings", json=body)

        assert response.status_code == 200
        assert response.json()["data"] == {"id": "b1"}

    def test_create_rejects_reversed_dates(self, client):
        body = {
            "property_id": "p1", "guest_name": "Asha", "room_no": "101",
            "check_in": "2025-03-03", "check_out": "2025-03-01",
        }
        assert client.post(f"{API}/bookings", json=body).status_code == 422

    def test_create_failure(self, client, services):
        services["booking"].create_booking.return_value = CreateBookingResponse(
            success=False, message="Failed to create booking: db down", data={},
        )
        body = {
            "property_id": "p1", "guest_name": "Asha", "room_no": "101",
            "check_in": "2025-03-01", "check_out": "2025-03-03",
        }

        response = client.post(f"{API}/bookings", json=body)

        assert response.status_code == 500
        assert response.json()["detail"]["error_code"] == "CREATION_FAILED"

    def test_update_invalid_dates(self, client, services):
        services["booking"].update_booking.side_effect = ValueError("check_out must be after check_in")
        response = client.patch(f"{API}/bookings/b1", json={"check_out": "2025-01-01"})
        assert response.status_code == 422

    def test_update_rejects_unknown_fields(self, client):
        assert client.patch(f"{API}/bookings/b1", json={"folio_number": "X"}).status_code == 422


@pytest.mark.usefixtures("no_auth")
class TestExpenseRoutes:

    def test_create_expense(self, client, services):
        services["expense"].create_expense.return_value = {"id": "e1"}
        body = {
            "property_id": "p1", "expense_date": "2025-03-01", "amount": 300, "vendor": "Kullu Mart",
            "payment_method": "cash", "category_id": "c1",
            "line_items": [{"description": "Soap", "quantity": 3, "unit_amount": 100, "line_total": 300}],
            "shares": [{"property_id": "p1", "share_percent": 60}, {"property_id": "p2", "share_percent": 40}],
        }

        response = client.post(f"{API}/expenses", json=body)

        assert response.status_code == 200
        services["expense"].save_line_items.assert_called_once()
        services["expense"].save_expense_shares.assert_called_once()
        data = services["expense"].create_expense.call_args.args[0]
        assert "line_items" not in data
        assert data["expense_date"] == "2025-03-01"

    def test_create_expense_with_bad_breakdown(self, client, services):
        body = {
            "property_id": "p1", "expense_date": "2025-03-01", "amount": 300,
            "line_items": [{"description": "Soap", "line_total": 100}],
        }

        response = client.post(f"{API}/expenses", json=body)

        assert response.status_code == 422
        assert response.json()["detail"]["error_code"] == "VALIDATION_ERROR"
        services["expense"].create_expense.assert_not_called()

    def test_delete_category_in_use(self, client, services):
        services["expense"].count_expenses_for_category.return_value = 3

        response = client.delete(f"{API}/expenses/categories/c1")

        assert response.status_code == 409
        assert response.json()["detail"]["details"] == {"expense_count": 3}
        services["expense"].delete_category.assert_not_called()

    def test_budget_month_must_start_month(self, client):
        body = {"property_id": "p1", "category_id": "c1", "month": "2025-03-15", "budget_amount": 1000}
        assert client.put(f"{API}/expenses/budgets", json=body).status_code == 422

    def test_extract_rejects_webp(self, client, services):
        response = client.post(
            f"{API}/expenses/receipts/extract",
            files={"file": ("r.webp", b"data", "image/webp")},
        )
        assert response.status_code == 422
        services["receipts"].extract_from_receipt.assert_not_called()

    def test_extract_receipt(self, client, services):
        services["expense"].list_available_categories.return_value = [{"name": "Groceries"}]
        services["receipts"].extract_from_receipt.return_value = ReceiptExtraction(vendor="Kullu Mart", amount=450)

        response = client.post(
            f"{API}/expenses/receipts/extract",
            files={"file": ("r.jpg", b"data", "image/jpeg")},
            data={"property_id": "p1"},
        )

        assert response.status_code == 200
        assert response.json()["data"]["vendor"] == "Kullu Mart"
        assert services["receipts"].extract_from_receipt.call_args.kwargs["categories"] == ["Groceries"]


@pytest.mark.usefixtures("no_auth")
class TestAnalyticsRoutes:

    def test_kpis(self, client, services):
        services["kpi"].get_period_result.return_value = {"booking": {"total_revenue": 8000}}

        response = client.post(f"{API}/analytics/kpis", json={
            "property_id": "p1", "start": "2025-01-01", "end": "2025-01-31", "total_rooms": 2,
        })

        assert response.status_code == 200
        filters = services["kpi"].get_period_result.call_args.args[0]
        assert (filters.start, filters.end, filters.total_rooms) == ("2025-01-01", "2025-01-31", 2)

    def test_reversed_period(self, client):
        response = client.post(f"{API}/analytics/kpis", json={
            "property_id": "p1", "start": "2025-01-31", "end": "2025-01-01",
        })
        assert response.status_code == 422

    def test_insights_use_current_period(self, client, services):
        current = {"booking": {"total_revenue": 8000}}
        services["kpi"].compare_with_previous.return_value = {"current": current, "deltas": {}}
        services["insights"].generate.return_value = {"insights": [], "forecasts": [], "meta": {}}

        response = client.post(f"{API}/analytics/insights", json={
            "property_id": "p1", "start": "2025-01-01", "end": "2025-01-31", "mode": "prev_year",
        })

        assert response.status_code == 200
        assert services["kpi"].compare_with_previous.call_args.args[1] == "prev_year"
        _filters, kpis, comparison = services["insights"].generate.call_args.args
        assert kpis == current
        assert comparison["deltas"] == {}


@pytest.mark.usefixtures("no_auth")
class TestCalendarRoutes:

    def test_detect_conflicts(self, client, services):
        services["conflicts"].detect_conflicts.return_value = [
            CalendarConflict("sync-b1", "p1", "sync_failed", "low", "2025-03-01", booking_id_1="b1"),
        ]

        response = client.post(f"{API}/conflicts/detect?property_id=p1")

        assert response.status_code == 200
        assert response.json()["data"][0]["id"] == "sync-b1"

    def test_conflict_status_filter(self, client):
        assert client.get(f"{API}/conflicts?property_id=p1&status=bogus").status_code == 422

    def test_import_needs_data_or_url(self, client):
        response = client.post(f"{API}/ical/import", json={"platform_id": "airbnb", "property_id": "p1"})
        assert response.status_code == 422

    def test_import_fetch_failure(self, client, services):
        services["ical"].fetch_ical_from_url.side_effect = RuntimeError("HTTP 404: Not Found")

        response = client.post(f"{API}/ical/import", json={
            "platform_id": "airbnb", "property_id": "p1", "ical_url": "https://x",
        })

        assert response.status_code == 502
        assert response.json()["detail"]["error_code"] == "FETCH_FAILED"

    def test_availability_dates(self, client):
        response = client.get(
            f"{API}/availability?property_id=p1&room_type=Deluxe&check_in=2025-03-03&check_out=2025-03-01"
        )
        assert response.status_code == 422

    def test_availability(self, client, services):
        services["availability"].get_available_rooms_by_type.return_value = ["102"]

        response = client.get(
            f"{API}/availability?property_id=p1&room_type=Deluxe&check_in=2025-03-01&check_out=2025-03-03"
        )

        assert response.json()["data"] == ["102"]

    def test_missing_feed_property(self, client, services):
        services["property"].get_property_by_id.return_value = None
        assert client.get(f"{API}/property/p404.ics").status_code == 404


@pytest.mark.usefixtures("no_auth")
class TestEmailImportRoutes:

    def test_preview_unknown_message(self, client, services):
        services["supabase"].get_email_message_by_id.return_value = None
        assert client.get(f"{API}/email-imports/m404/preview").status_code == 404

    def test_import(self, client, services):
        services["supabase"].get_email_message_by_id.return_value = {"id": "m1"}
        parsed = Mock()
        services["parser"].parse_message.return_value = parsed
        services["email_import"].import_from_parsed.return_value = {"booking_id": "b1"}

        response = client.post(f"{API}/email-imports/m1", json={"property_id": "p1"})

        assert response.status_code == 200
        services["email_import"].import_from_parsed.assert_called_once_with("m1", parsed, "p1")


@pytest.mark.usefixtures("no_auth")
class TestBookingLedgerRoutes:

    def test_add_backdated_charge(self, client, services):
        services["ledger"].add_charge.return_value = {"id": "c1", "amount": 450.0}

        response = client.post(f"{API}/bookings/b1/charges", json={
            "property_id": "p1", "charge_type": "fnb", "quantity": 3, "unit_amount": 150,
            "description": "Dinner", "created_at": "2025-03-01T20:00:00",
        })

        assert response.status_code == 200
        args, kwargs = services["ledger"].add_charge.call_args
        assert args == ("p1", "b1", "fnb", 3, 150)
        assert kwargs["created_at"].startswith("2025-03-01T20:00:00")

    def test_charge_validation_error(self, client, services):
        services["ledger"].add_charge.side_effect = ValidationError("Invalid charge", ["quantity must be greater than 0"])

        response = client.post(f"{API}/bookings/b1/charges", json={
            "property_id": "p1", "charge_type": "fnb", "quantity": 0, "unit_amount": 150,
        })

        assert response.status_code == 400

    def test_update_charge_sends_only_given_fields(self, client, services):
        services["ledger"].update_charge.return_value = {"id": "c1"}

        client.patch(f"{API}/bookings/b1/charges/c1", json={"property_id": "p1", "quantity": 2})

        services["ledger"].update_charge.assert_called_once_with("p1", "b1", "c1", {"quantity": 2})

    def test_refund(self, client, services):
        services["ledger"].add_refund.return_value = {"id": "r1", "payment_type": "refund"}

        response = client.post(f"{API}/bookings/b1/refunds", json={"property_id": "p1", "amount": 500})

        assert response.json()["data"]["payment_type"] == "refund"
        services["ledger"].add_refund.assert_called_once_with("p1", "b1", 500, None, None)

    def test_financials_for_other_property(self, client, services):
        services["ledger"].get_financials.side_effect = NotFoundError("Booking not found for given property")

        response = client.get(f"{API}/bookings/b1/financials?property_id=p2")

        assert response.status_code == 404

    def test_financials_need_property(self, client):
        assert client.get(f"{API}/bookings/b1/financials").status_code == 422


@pytest.mark.usefixtures("no_auth")
class TestManualUpdateRoutes:

    def test_generate_checklist(self, client, services):
        services["manual_updates"].generate_checklist.return_value = {"id": "c1", "total_items": 5}

        response = client.post(f"{API}/manual-updates/checklists", json={
            "platform_id": "pl1", "property_id": "p1", "start": "2025-03-01", "end": "2025-03-08",
        })

        assert response.status_code == 200
        args = services["manual_updates"].generate_checklist.call_args.args
        assert args[:2] == ("pl1", "p1")
        assert str(args[2]) == "2025-03-01"

    def test_item_status_is_checked(self, client):
        response = client.patch(f"{API}/manual-updates/checklists/c1/items/booking-login", json={"status": "done"})
        assert response.status_code == 422

    def test_complete_item(self, client, services):
        services["manual_updates"].update_checklist_item.return_value = {"id": "c1", "status": "in_progress"}

        response = client.patch(
            f"{API}/manual-updates/checklists/c1/items/booking-login",
            json={"status": "completed", "notes": "done on phone"},
        )

        assert response.json()["data"]["status"] == "in_progress"
        services["manual_updates"].update_checklist_item.assert_called_once_with(
            "c1", "booking-login", "completed", "done on phone"
        )

    def test_delete_without_filters(self, client, services):
        services["manual_updates"].delete_checklists.side_effect = ValidationError("A filter is required")
        assert client.delete(f"{API}/manual-updates/checklists").status_code == 400

    def test_sync_alerts(self, client, services):
        services["monitoring"].check_sync_alerts.return_value = [{"type": "missed_sync"}]

        response = client.get(f"{API}/ota-monitoring/alerts?property_id=p1")

        assert response.json()["message"] == "1 alert(s)"

    def test_health_window_is_bounded(self, client):
        assert client.get(f"{API}/ota-monitoring/health?property_id=p1&days=0").status_code == 422
