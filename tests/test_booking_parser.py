"""
Unit tests for the OTA email parsers and the Gemini wrapper.
"""
import pytest
from unittest.mock import Mock

from voyageur.booking_parser.parser import BookingEmailParser, html_to_text, to_iso_date
from voyageur.booking_parser.ai_email_parser import AIEmailParser, normalize, sender_platform
from voyageur.llm.providers import LLMManager, extract_json_text, parse_json_response
from voyageur.utils.errors import AIProviderError
from voyageur.utils.models import ParsedBookingEmail, EventType, OTAPlatform


class TestBookingEmailParser:
    """Test cases for the heuristic parser."""

    @pytest.fixture
    def parser(self):
        return BookingEmailParser()

    def test_parse_full_booking(self, parser):
        parsed = parser.parse(
            subject="New booking - Booking.com Ref 12345678",
            body="Guest: Rahul Sharma\nDates: 2025-03-10 to 2025-03-12\n2 adults, 1 child\nDeluxe Room, Old Manali",
        )

        assert parsed.ota_platform == OTAPlatform.BOOKING_COM
        assert parsed.event_type == EventType.NEW
        assert parsed.booking_reference == "12345678"
        assert parsed.guest_name == "Rahul Sharma"
        assert parsed.check_in == "2025-03-10"
        assert parsed.check_out == "2025-03-12"
        assert parsed.no_of_pax == 3
        assert parsed.adult_child == "2/1"
        assert parsed.room_type == "Deluxe Room"
        assert parsed.property_hint == "Old Manali"
        assert parsed.confidence == 0.85

    def test_parse_compact_occupancy_and_slash_dates(self, parser):
        parsed = parser.parse(
            subject="GoMMT booking",
            body="Stay 01/04/2025 - 03/04/2025 for 2A+1C",
        )

        assert parsed.ota_platform == OTAPlatform.GOMMT
        assert parsed.check_in == "2025-04-01"
        assert parsed.check_out == "2025-04-03"
        assert parsed.adult_child == "2/1"
        assert parsed.no_of_pax == 3

    def test_parse_cancellation(self, parser):
        parsed = parser.parse(subject="Cancellation: Booking.com reservation Ref ABC-99")
        assert parsed.event_type == EventType.CANCELLED
        assert parsed.booking_reference == "ABC-99"

    def test_parse_unrelated_mail(self, parser):
        parsed = parser.parse(subject="Hello", body="Monthly newsletter")
        assert parsed.confidence == 0.4
        assert parsed.ota_platform == OTAPlatform.OTHER

    def test_parse_html_body(self, parser):
        parsed = parser.parse(subject="Reservation", body_html="<p>Guest: Asha Rao</p><script>x()</script>")
        assert parsed.guest_name == "Asha Rao"

    def test_parse_message_reads_mime_text(self, parser):
        parsed = parser.parse_message({
            "subject": "Reservation",
            "snippet": "ignored",
            "mime_summary": {"text": "Guest: Meera Iyer"},
        })
        assert parsed.guest_name == "Meera Iyer"


class TestHelpers:

    def test_to_iso_date(self):
        assert to_iso_date("15/03/2025") == "2025-03-15"
        assert to_iso_date("2025-03-15") == "2025-03-15"
        assert to_iso_date("March 15") is None

    def test_html_to_text(self):
        assert html_to_text("<div>Hi<style>p{}</style><b>there</b></div>") == "Hi\nthere"
        assert html_to_text("") == ""

    def test_normalize_guest_list(self):
        parsed = normalize({
            "event_type": "bogus",
            "ota_platform": "airbnb",
            "guests": [
                {"name": "Unnamed guest", "type": "adult"},
                {"name": "Ravi", "type": "child"},
            ],
            "roomType": "deluxe king",
        })

        assert parsed.event_type == EventType.NOT_BOOKING
        assert parsed.ota_platform == OTAPlatform.OTHER
        assert parsed.adult_child == "1/1"
        assert parsed.no_of_pax == 2
        assert parsed.guest_name == "Ravi"
        assert parsed.room_type == "Deluxe Room"
        assert parsed.confidence == 0.7

    def test_normalize_camel_case(self):
        parsed = normalize({
            "eventType": "modified",
            "otaPlatform": "gommt",
            "checkIn": "2025-05-01",
            "totalAmount": 4500,
            "adultChild": "2A/0C",
            "confidence": 0.9,
        })
        assert parsed.event_type == EventType.MODIFIED
        assert parsed.check_in == "2025-05-01"
        assert parsed.total_amount == 4500.0
        assert parsed.adult_child == "2/0"
        assert parsed.no_of_pax == 2


class TestSenderPlatform:

    @pytest.mark.parametrize("sender, platform", [
        ("Booking.com <noreply@booking.com>", OTAPlatform.BOOKING_COM),
        ("NOREPLY@BOOKING.COM", OTAPlatform.BOOKING_COM),
        ("Goibibo <no-reply@goibibo.com>", OTAPlatform.GOMMT),
        ("GoMMT <no-reply@go-mmt.com>", OTAPlatform.GOMMT),
        ("someone@example.com", OTAPlatform.OTHER),
        ("noreply@booking.com.evil.io", OTAPlatform.OTHER),
        ("", OTAPlatform.OTHER),
    ])
    def test_sender_platform(self, sender, platform):
        assert sender_platform(sender) == platform

    def test_platform_follows_domain_setting(self, monkeypatch):
        from voyageur.booking_parser import ai_email_parser
        monkeypatch.setattr(ai_email_parser.gmail_config, "allowed_senders", ("no-reply@go-mmt.com", "noreply@booking.com"))
        assert sender_platform("noreply@booking.com") == OTAPlatform.BOOKING_COM
        assert sender_platform("no-reply@go-mmt.com") == OTAPlatform.GOMMT


class TestAIEmailParser:
    """Test cases for routing between Gemini and the heuristic parser."""

    GOMMT_SENDER = "GoMMT <no-reply@go-mmt.com>"

    @pytest.fixture
    def llm(self):
        llm = Mock()
        llm.model_name = "gemini-test"
        return llm

    def test_disallowed_sender(self, llm):
        parser = AIEmailParser(llm=llm, mode="auto")
        parsed = parser.parse("Booking", "text", headers={"From": "someone@example.com"})

        assert parsed.event_type == EventType.NOT_BOOKING
        assert parsed.reasoning == "sender_not_allowed"
        llm.generate.assert_not_called()

    def test_booking_com_is_notification_only(self, llm):
        parser = AIEmailParser(llm=llm, mode="gemini")
        parsed = parser.parse(
            "Booking.com: New reservation Reference: 445566",
            "",
            headers={"from": "noreply@booking.com"},
        )

        assert parsed.event_type == EventType.NEW
        assert parsed.ota_platform == OTAPlatform.BOOKING_COM
        assert parsed.booking_reference == "445566"
        assert parsed.confidence == 0.6
        llm.generate.assert_not_called()

    def test_regex_mode_skips_gemini(self, llm):
        parser = AIEmailParser(llm=llm, mode="regex")
        parsed = parser.parse("GoMMT booking", "Guest: Asha Rao", headers={"from": self.GOMMT_SENDER})

        assert parsed.guest_name == "Asha Rao"
        llm.generate.assert_not_called()

    def test_gemini_result_is_stored(self, llm):
        llm.generate.return_value = {
            "text": '```json {"event_type": "new", "ota_platform": "gommt", "guestName": "Asha",'
                    ' "adultChild": "2A/1C", "confidence": 0.92} ```',
            "model": "gemini-test",
        }
        store = Mock()
        parser = AIEmailParser(llm=llm, extraction_store=store, mode="auto")

        parsed = parser.parse("GoMMT booking", "body", headers={"from": self.GOMMT_SENDER}, email_message_id="e1")

        assert parsed.guest_name == "Asha"
        assert parsed.no_of_pax == 3
        assert parsed.reasoning == "gemini"
        store.save_extraction.assert_called_once()
        assert store.save_extraction.call_args.kwargs["email_message_id"] == "e1"

    def test_auto_mode_falls_back_on_provider_error(self, llm):
        llm.generate.side_effect = AIProviderError("quota")
        heuristic = Mock()
        heuristic.parse.return_value = ParsedBookingEmail(confidence=0.75, reasoning="heuristic")
        parser = AIEmailParser(llm=llm, heuristic=heuristic, mode="auto")

        parsed = parser.parse("GoMMT booking", "body", headers={"from": self.GOMMT_SENDER})
        assert parsed.reasoning == "heuristic"

    def test_gemini_mode_raises_provider_error(self, llm):
        llm.generate.side_effect = AIProviderError("quota")
        parser = AIEmailParser(llm=llm, mode="gemini")

        with pytest.raises(AIProviderError):
            parser.parse("GoMMT booking", "body", headers={"from": self.GOMMT_SENDER})

    def test_low_confidence_prefers_better_heuristic(self, llm):
        llm.generate.return_value = {"text": '{"event_type": "new", "ota_platform": "gommt", "confidence": 0.5}'}
        heuristic = Mock()
        heuristic.parse.return_value = ParsedBookingEmail(event_type="new", confidence=0.85, reasoning="heuristic")
        parser = AIEmailParser(llm=llm, heuristic=heuristic, mode="auto")

        parsed = parser.parse("GoMMT booking", "body", headers={"from": self.GOMMT_SENDER})
        assert parsed.reasoning == "heuristic"

    def test_unknown_mode_defaults_to_auto(self, llm):
        assert AIEmailParser(llm=llm, mode="magic").mode == "auto"


class TestLLMManager:

    def test_missing_provider_raises(self, monkeypatch):
        from voyageur.llm import providers
        monkeypatch.setattr(providers.ai_config, "api_key", "")
        manager = LLMManager()

        assert manager.available is False
        with pytest.raises(AIProviderError):
            manager.generate("prompt")

    def test_provider_error_raises(self):
        provider = Mock()
        provider.generate_response.return_value = {"text": "", "error": "boom"}
        provider.get_provider_name.return_value = "gemini"

        with pytest.raises(AIProviderError):
            LLMManager(provider=provider).generate("prompt")

    def test_generate_returns_response(self):
        provider = Mock()
        provider.generate_response.return_value = {"text": "ok", "model": "m"}
        assert LLMManager(provider=provider).generate("prompt")["text"] == "ok"

    def test_json_extraction(self):
        assert extract_json_text('Sure! {"a": 1} done') == '{"a": 1}'
        assert parse_json_response('```\n{"a": 2}\n```') == {"a": 2}
        with pytest.raises(AIProviderError):
            parse_json_response("no json here")
        with pytest.raises(AIProviderError):
            parse_json_response("[1, 2]")
