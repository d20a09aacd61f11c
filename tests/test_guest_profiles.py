"""
Unit tests for guest profiles, duplicate detection and merging.
"""
import pytest

from voyageur.api.services.guest_profile_service import (
    GuestProfileService, levenshtein, name_similarity, norm_phone, norm_email,
)
from voyageur.utils.errors import NotFoundError, ValidationError
from tests.conftest import mock_table, results


class TestHelpers:

    def test_levenshtein(self):
        assert levenshtein("kitten", "sitting") == 3
        assert levenshtein("", "abc") == 3

    def test_name_similarity(self):
        assert name_similarity("Asha Rao", " asha rao ") == 1.0
        assert name_similarity("Asha Rao", "Asha Roa") == 0.75
        assert name_similarity("", "Asha") == 0.0

    def test_normalizers(self):
        assert norm_phone("+91 98765-43210") == "919876543210"
        assert norm_phone("n/a") is None
        assert norm_email("  Asha@X.com ") == "asha@x.com"


class TestGuestProfileService:
    """Test cases for guest profile operations."""

    @pytest.fixture
    def service(self, supabase_client):
        return GuestProfileService(supabase_client)

    def test_create_requires_name(self, service):
        with pytest.raises(ValidationError):
            service.create_guest_profile({"name": " "})

    def test_create_defaults(self, service, supabase_client):
        table = mock_table(supabase_client.client, [{"id": "g1"}])
        service.create_guest_profile({"name": "Asha", "sms_marketing_consent": False})

        payload = table.insert.call_args.args[0]
        assert payload["country"] == "India"
        assert payload["email_marketing_consent"] is True
        assert payload["sms_marketing_consent"] is False

    def test_update_missing_profile(self, service, supabase_client):
        mock_table(supabase_client.client, [])
        with pytest.raises(NotFoundError):
            service.update_guest_profile("g404", {"name": "x"})

    def test_search(self, service, supabase_client):
        table = mock_table(supabase_client.client, [{"id": "g1", "total_stays": 3, "last_stay_date": "2025-01-02"}])

        profiles = service.search_guest_profiles({
            "search": "asha",
            "city": "Manali",
            "has_email": True,
            "sort_by": "name",
            "sort_order": "asc",
            "offset": 20,
            "limit": 10,
        })

        assert profiles[0]["total_bookings"] == 3
        assert profiles[0]["last_visit_date"] == "2025-01-02"
        table.or_.assert_called_with("name.ilike.%asha%,email.ilike.%asha%,phone.ilike.%asha%")
        table.is_.assert_called_with("email", "null")
        table.order.assert_called_once_with("name", desc=False, nullsfirst=False)
        table.range.assert_called_with(20, 29)

    def test_search_defaults_to_last_stay(self, service, supabase_client):
        table = mock_table(supabase_client.client, [])
        service.search_guest_profiles({"limit": 5})
        table.order.assert_any_call("last_stay_date", desc=True, nullsfirst=True)
        table.order.assert_any_call("name")
        table.limit.assert_called_with(5)

    def test_find_by_contact(self, service, supabase_client):
        assert service.find_guest_by_contact() is None
        table = mock_table(supabase_client.client, [{"id": "g1"}])
        assert service.find_guest_by_contact("a@x.com", "123")["id"] == "g1"
        table.or_.assert_called_with("email.eq.a@x.com,phone.eq.123")

    def test_booking_history_adds_property_names(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        table.execute.side_effect = results(
            [{"id": "b1", "property_id": "p1"}, {"id": "b2", "property_id": None}],
            [{"id": "p1", "name": "Old Manali"}],
        )

        history = service.get_guest_booking_history("g1")

        assert history[0]["booking_id"] == "b1"
        assert history[0]["property_name"] == "Old Manali"
        assert history[1]["property_name"] is None

    def test_communication_history_needs_email(self, service):
        assert service.get_communication_history_by_email("") == []

    def test_stats(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        table.execute.side_effect = results(
            [{"id": 1}, {"id": 2}, {"id": 3}, {"id": 4}],
            [{"total_stays": 3, "total_spent": "9000"}, {"total_stays": 1, "total_spent": 1000}],
            [
                {"city": "Manali", "state": "HP"},
                {"city": "Manali", "state": "HP"},
                {"city": "Delhi", "state": "DL"},
            ],
        )

        stats = service.get_guest_profile_stats()

        assert stats["total_profiles"] == 4
        assert stats["total_stays"] == 4
        assert stats["total_revenue"] == 10000
        assert stats["average_spend_per_guest"] == 2500
        assert stats["repeat_guest_percentage"] == 25
        assert stats["top_cities"] == [{"city": "Manali", "count": 2}, {"city": "Delhi", "count": 1}]

    def test_update_privacy_settings(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        service.update_privacy_settings("g1", {"email_marketing_consent": False, "other": 1})
        assert table.update.call_args.args[0] == {
            "email_marketing_consent": False,
            "sms_marketing_consent": None,
            "data_retention_consent": None,
        }

    def test_check_in_updates_existing(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        table.execute.side_effect = results([{"id": "g1", "city": "Pune"}], [{"id": "g1"}])

        service.create_or_update_from_check_in({"first_name": "Asha", "last_name": "Rao", "email": "a@x.com"})

        payload = table.update.call_args.args[0]
        assert payload["name"] == "Asha Rao"
        assert payload["city"] == "Pune"
        assert payload["email"] == "a@x.com"

    def test_check_in_creates_profile(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        table.execute.side_effect = results([], [{"id": "g2"}])

        profile = service.create_or_update_from_check_in(
            {"first_name": "Ravi", "phone": "123", "marketing_consent": False}
        )

        assert profile["id"] == "g2"
        payload = table.insert.call_args.args[0]
        assert payload["email_marketing_consent"] is False
        assert payload["data_retention_consent"] is True

    def test_find_or_create_for_booking(self, service, supabase_client):
        assert service.find_or_create_for_booking(None, None, None) is None

        table = mock_table(supabase_client.client)
        table.execute.side_effect = results([], [{"id": "g2"}])
        assert service.find_or_create_for_booking("Ravi", "r@x.com", None) == "g2"

    def test_duplicates_for_profile(self, service, supabase_client):
        target = {"id": "g1", "name": "Asha Rao", "email": "Asha@X.com", "phone": "+91 98765 43210"}
        table = mock_table(supabase_client.client)
        table.execute.side_effect = results(
            [target],
            [
                target,
                {"id": "g2", "name": "Asha Rao", "email": "asha@x.com"},
                {"id": "g3", "name": "Asha Roa", "phone": "9876543210"},
                {"id": "g4", "name": "Someone", "phone": "+91-98765-43210"},
            ],
        )

        found = service.find_duplicates_for_profile("g1")

        assert [d["profile"]["id"] for d in found] == ["g2", "g4"]
        assert found[0]["score"] == pytest.approx(0.9)
        assert found[0]["reasons"][0] == "Same email"
        assert found[1]["reasons"] == ["Same phone"]
        or_filter = table.or_.call_args.args[0]
        assert "email.ilike.asha@x.com" in or_filter
        assert "phone.ilike.%543210%" in or_filter
        assert "name.ilike.%Asha%" in or_filter

    def test_duplicates_for_missing_profile(self, service, supabase_client):
        mock_table(supabase_client.client, [])
        assert service.find_duplicates_for_profile("nope") == []

    def test_duplicate_clusters(self, service, supabase_client):
        mock_table(supabase_client.client, [
            {"id": "a", "email": "x@y.com", "total_stays": 1, "created_at": "2024-01-01"},
            {"id": "b", "email": "X@y.com ", "total_stays": 3, "created_at": "2025-01-01"},
            {"id": "c", "phone": "123"},
            {"id": "d", "phone": "1-2-3"},
            {"id": "e", "email": "solo@y.com"},
        ])

        clusters = service.find_duplicate_clusters()

        assert len(clusters) == 2
        assert clusters[0]["primary"]["id"] == "b"
        assert clusters[0]["duplicates"][0]["reasons"] == ["Same email"]
        assert clusters[1]["primary"]["id"] == "c"
        assert clusters[1]["duplicates"][0]["reasons"] == ["Same phone"]

    def test_merge_requires_ids(self, service):
        with pytest.raises(ValidationError):
            service.merge_guest_profiles("p", [])

    def test_merge_missing_primary(self, service, supabase_client):
        mock_table(supabase_client.client, [])
        with pytest.raises(NotFoundError):
            service.merge_guest_profiles("p", ["d1"])

    def test_merge(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        table.execute.side_effect = results(
            [{"id": "p", "name": "Asha", "email": None}],
            [{"id": "d1", "email": "a@x.com", "city": "Manali", "name": "A. Rao"}],
            [{"id": "b1"}, {"id": "b2"}],
            [{"id": "p"}],
            [],
            [{"id": "p", "email": "a@x.com"}],
        )

        merged = service.merge_guest_profiles("p", ["d1"])

        assert merged["bookings_reassigned"] == 2
        assert merged["profile_updated"] is True
        assert merged["merged_ids"] == ["d1"]
        assert merged["primary"]["email"] == "a@x.com"
        table.update.assert_any_call({"email": "a@x.com", "city": "Manali"})

    def test_merge_keeps_primary_out_of_duplicates(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        table.execute.side_effect = results(
            [{"id": "p", "name": "Asha"}],
            [{"id": "d1"}],
            [],
            [{"id": "p"}],
            [],
            [{"id": "p", "name": "Asha"}],
        )

        merged = service.merge_guest_profiles("p", ["p", "d1", "d1"])

        assert merged["merged_ids"] == ["d1"]
        assert merged["primary"] == {"id": "p", "name": "Asha"}
        for call in table.in_.call_args_list:
            assert call.args[1] == ["d1"]

    def test_merge_only_primary_is_rejected(self, service, supabase_client):
        table = mock_table(supabase_client.client)
        with pytest.raises(ValidationError):
            service.merge_guest_profiles("p", ["p"])
        table.delete.assert_not_called()
