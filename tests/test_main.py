"""
Unit tests for the job orchestrator and CLI.
"""
import json
import pytest
from unittest.mock import Mock, MagicMock, patch
from click.testing import CliRunner

from voyageur.main import VoyageurSync, cli
from voyageur.utils.models import AnalyticsFilters, ParsedBookingEmail, SyncResult


@pytest.fixture
def supabase():
    client = Mock()
    client.get_unprocessed_email_messages.return_value = [{"id": "m1"}, {"id": "m2"}]
    client.get_properties.return_value = [{"id": "p1"}, {"id": "p2"}]
    return client


@pytest.fixture
def sync(supabase):
    return VoyageurSync(supabase_client=supabase)


class TestVoyageurSync:
    """Test cases for the scheduled jobs."""

    @patch('voyageur.main.GmailClient')
    def test_ingest_emails(self, mock_gmail, sync, supabase):
        gmail = MagicMock(connected=True)
        gmail.ingest.return_value = [{"id": "m1", "sender": "noreply@booking.com"}]
        mock_gmail.return_value.__enter__.return_value = gmail

        assert sync.ingest_emails(since_days=3, limit=10) == 1
        gmail.ingest.assert_called_once_with(supabase, 3, 10)
        assert sync.sync_logger.stats['emails_ingested'] == 1

    @patch('voyageur.main.GmailClient')
    def test_ingest_emails_connection_failure(self, mock_gmail, sync):
        mock_gmail.return_value.__enter__.return_value = MagicMock(connected=False)

        with pytest.raises(Exception, match="Failed to connect"):
            sync.ingest_emails()

    @patch('voyageur.main.EmailExtractionService')
    @patch('voyageur.main.EmailImportService')
    @patch('voyageur.main.AIEmailParser')
    def test_import_emails(self, mock_parser, mock_importer, _mock_store, sync):
        mock_parser.return_value.parse_message.side_effect = [
            ParsedBookingEmail(event_type="new", ota_platform="booking_com", confidence=0.9),
            RuntimeError("model down"),
        ]
        mock_importer.return_value.import_from_parsed.return_value = {"booking_id": "b1", "decision": "auto"}

        results = sync.import_emails(limit=5)

        assert results == [{"email_message_id": "m1", "outcome": "created", "booking_id": "b1", "decision": "auto"}]
        assert sync.sync_logger.stats['bookings_created'] == 1
        assert sync.sync_logger.stats['errors'] == 1
        assert sync.sync_logger.stats['platforms'] == {"booking_com": 1}

    @patch('voyageur.main.EmailExtractionService')
    @patch('voyageur.main.EmailImportService')
    @patch('voyageur.main.AIEmailParser')
    def test_import_emails_without_booking_is_skipped(self, mock_parser, mock_importer, _mock_store, sync, supabase):
        supabase.get_unprocessed_email_messages.return_value = [{"id": "m1"}]
        mock_parser.return_value.parse_message.return_value = ParsedBookingEmail(event_type="cancelled")
        mock_importer.return_value.import_from_parsed.return_value = {"booking_id": None}

        assert sync.import_emails()[0]["outcome"] == "skipped"
        assert sync.sync_logger.stats['imports_skipped'] == 1

    @patch('voyageur.main.EmailExtractionService')
    @patch('voyageur.main.EmailImportService')
    @patch('voyageur.main.AIEmailParser')
    def test_import_emails_dry_run(self, mock_parser, mock_importer, _mock_store, sync):
        mock_parser.return_value.parse_message.return_value = ParsedBookingEmail(event_type="new")
        mock_importer.return_value.compute_preview.return_value = {"action": "create"}

        results = sync.import_emails(property_id="p1", dry_run=True)

        assert results == [
            {"email_message_id": "m1", "action": "create"},
            {"email_message_id": "m2", "action": "create"},
        ]
        mock_importer.return_value.import_from_parsed.assert_not_called()
        mock_importer.return_value.compute_preview.assert_called_with(
            mock_parser.return_value.parse_message.return_value, "p1", "m2"
        )

    @patch('voyageur.main.OTAPlatformService')
    @patch('voyageur.main.ICalService')
    def test_sync_ical(self, mock_ical, mock_platforms, sync):
        mock_platforms.return_value.get_sync_enabled_platforms.return_value = [
            {"platform_id": "airbnb", "platform_name": "Airbnb", "ical_import_url": "https://a/ics"},
            {"platform_id": "vrbo", "platform_name": "Vrbo", "ical_import_url": None},
        ]
        mock_ical.return_value.sync_platform.return_value = SyncResult(
            platform="airbnb", property_id="p1", success=False, records_processed=4,
            conflicts_detected=1, errors=["UID x: bad date"],
        )

        results = sync.sync_ical("p1")

        assert len(results) == 1
        assert results[0]["records_processed"] == 4
        mock_platforms.return_value.get_sync_enabled_platforms.assert_called_once_with("p1")
        assert sync.sync_logger.stats['events_synced'] == 4
        assert sync.sync_logger.stats['errors'] == 1

    @patch('voyageur.main.ConflictService')
    def test_detect_conflicts_all_properties(self, mock_conflicts, sync):
        mock_conflicts.return_value.detect_conflicts.side_effect = [[Mock(), Mock()], []]
        mock_conflicts.return_value.auto_resolve_conflicts.return_value = 1

        summary = sync.detect_conflicts(auto_resolve=True)

        assert summary == {
            "p1": {"detected": 2, "auto_resolved": 1},
            "p2": {"detected": 0, "auto_resolved": 1},
        }
        assert sync.sync_logger.stats['conflicts_detected'] == 2

    @patch('voyageur.main.ConflictService')
    def test_detect_conflicts_single_property(self, mock_conflicts, sync, supabase):
        mock_conflicts.return_value.detect_conflicts.return_value = []

        assert sync.detect_conflicts("p9") == {"p9": {"detected": 0, "auto_resolved": 0}}
        supabase.get_properties.assert_not_called()
        mock_conflicts.return_value.auto_resolve_conflicts.assert_not_called()

    @patch('voyageur.main.ExpenseService')
    @patch('voyageur.main.KPICalculator')
    def test_kpis(self, mock_calculator, _mock_expenses, sync):
        filters = AnalyticsFilters(property_id="p1", start="2025-03-01", end="2025-03-31")
        mock_calculator.return_value.get_period_result.return_value = {"adr": 2000}
        mock_calculator.return_value.compare_with_previous.return_value = {"current": {}}

        assert sync.kpis(filters) == {"adr": 2000}
        assert sync.kpis(filters, "prev_year") == {"current": {}}
        mock_calculator.return_value.compare_with_previous.assert_called_once_with(filters, "prev_year")


class TestCLI:
    """Test cases for the command line interface."""

    @pytest.fixture
    def runner(self):
        return CliRunner()

    @pytest.fixture
    def mock_sync(self):
        with patch('voyageur.main.VoyageurSync') as mock_cls:
            yield mock_cls.return_value

    def test_help(self, runner):
        result = runner.invoke(cli, ['--help'], obj={})
        assert result.exit_code == 0
        for command in ("ingest-emails", "import-emails", "sync-ical", "detect-conflicts", "kpis"):
            assert command in result.output

    def test_ingest_emails(self, runner, mock_sync):
        mock_sync.ingest_emails.return_value = 3

        result = runner.invoke(cli, ['ingest-emails', '--since-days', '2'], obj={})

        assert result.exit_code == 0
        assert "Emails stored: 3" in result.output
        mock_sync.ingest_emails.assert_called_once_with(2, None)
        mock_sync.sync_logger.print_summary.assert_called_once()

    def test_import_emails_dry_run(self, runner, mock_sync):
        mock_sync.import_emails.return_value = [{"email_message_id": "m1", "action": "update"}]

        result = runner.invoke(cli, ['import-emails', '--dry-run', '--property-id', 'p1'], obj={})

        assert result.exit_code == 0
        assert "m1: update" in result.output
        assert "DRY RUN MODE" in result.output
        mock_sync.import_emails.assert_called_once_with(None, "p1", True)

    def test_import_emails(self, runner, mock_sync):
        mock_sync.import_emails.return_value = [{"email_message_id": "m1"}, {"email_message_id": "m2"}]

        result = runner.invoke(cli, ['import-emails', '--limit', '2'], obj={})

        assert "Emails imported: 2" in result.output

    def test_sync_ical_failure_exit_code(self, runner, mock_sync):
        mock_sync.sync_ical.return_value = [{"success": True}, {"success": False}]

        result = runner.invoke(cli, ['sync-ical'], obj={})

        assert "Platforms synced: 2" in result.output
        assert result.exit_code == 1

    def test_sync_ical_success(self, runner, mock_sync):
        mock_sync.sync_ical.return_value = [{"success": True}]
        assert runner.invoke(cli, ['sync-ical', '--property-id', 'p1'], obj={}).exit_code == 0
        mock_sync.sync_ical.assert_called_once_with("p1")

    def test_detect_conflicts(self, runner, mock_sync):
        mock_sync.detect_conflicts.return_value = {"p1": {"detected": 2, "auto_resolved": 1}}

        result = runner.invoke(cli, ['detect-conflicts', '--auto-resolve'], obj={})

        assert "p1: 2 detected, 1 auto-resolved" in result.output
        mock_sync.detect_conflicts.assert_called_once_with(None, True)

    def test_kpis(self, runner, mock_sync):
        mock_sync.kpis.return_value = {"occupancy_rate": 50.0}

        result = runner.invoke(cli, [
            'kpis', '--property-id', 'p1', '--start', '2025-03-01', '--end', '2025-03-31',
            '--total-rooms', '4', '--compare', 'prev_period',
        ], obj={})

        assert result.exit_code == 0
        assert json.loads(result.output) == {"occupancy_rate": 50.0}
        filters, compare = mock_sync.kpis.call_args.args
        assert filters.total_rooms == 4
        assert filters.end == "2025-03-31"
        assert compare == "prev_period"

    def test_kpis_rejects_reversed_period(self, runner, mock_sync):
        result = runner.invoke(cli, [
            'kpis', '--property-id', 'p1', '--start', '2025-03-31', '--end', '2025-03-01',
        ], obj={})

        assert result.exit_code == 2
        mock_sync.kpis.assert_not_called()

    def test_invalid_log_level(self, runner):
        result = runner.invoke(cli, ['--log-level', 'LOUD', 'sync-ical'], obj={})
        assert result.exit_code != 0
