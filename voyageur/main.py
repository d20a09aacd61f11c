"""
Command line orchestrator for inbox ingestion, email import, OTA calendar
sync, conflict detection and KPI reports.
"""
import json
import click
from typing import Optional, List

from .email_reader.gmail_client import GmailClient
from .booking_parser.ai_email_parser import AIEmailParser
from .supabase_sync.supabase_client import SupabaseClient
from .api.services.email_extraction_service import EmailExtractionService
from .api.services.email_import_service import EmailImportService
from .api.services.ical_service import ICalService
from .api.services.conflict_service import ConflictService
from .api.services.ota_platform_service import OTAPlatformService
from .api.services.expense_service import ExpenseService
from .analytics.kpi_calculator import KPICalculator
from .utils.models import AnalyticsFilters
from .utils.logger import setup_logger, SyncLogger
from config.settings import app_config


class VoyageurSync:
    """Runs the scheduled jobs against one Supabase project."""

    def __init__(
        self,
        log_level: str = "INFO",
        log_file: Optional[str] = None,
        supabase_client: Optional[SupabaseClient] = None,
    ):
        self.logger = setup_logger("voyageur_sync", log_level, log_file)
        self.sync_logger = SyncLogger(self.logger)
        self.supabase_client = supabase_client or SupabaseClient()

    def ingest_emails(self, since_days: Optional[int] = None, limit: Optional[int] = None) -> int:
        """Copy new OTA mail from the inbox into ``email_messages``."""
        with GmailClient() as gmail_client:
            if not gmail_client.connected:
                raise click.ClickException("Failed to connect to Gmail")
            stored = gmail_client.ingest(self.supabase_client, since_days, limit)
        for row in stored:
            self.sync_logger.log_email_ingested(row.get("id"), row.get("sender"))
        return len(stored)

    def import_emails(
        self,
        limit: Optional[int] = None,
        property_id: Optional[str] = None,
        dry_run: bool = False,
    ) -> List[dict]:
        """
        Parse stored, unprocessed mail and apply it to bookings.

        With ``dry_run`` only the preview of each import is returned.
        """
        parser = AIEmailParser(extraction_store=EmailExtractionService(self.supabase_client))
        importer = EmailImportService(self.supabase_client)
        messages = self.supabase_client.get_unprocessed_email_messages(limit or app_config.max_emails_per_run)

        results = []
        for message in messages:
            try:
                parsed = parser.parse_message(message)
                self.sync_logger.log_email_parsed(
                    parsed.ota_platform.value, parsed.event_type.value, parsed.confidence
                )
                if dry_run:
                    preview = importer.compute_preview(parsed, property_id, message["id"])
                    results.append({"email_message_id": message["id"], **preview})
                    continue
                row = importer.import_from_parsed(message["id"], parsed, property_id)
                outcome = "skipped"
                if row.get("booking_id"):
                    outcome = {"new": "created", "modified": "updated", "cancelled": "cancelled"}.get(
                        parsed.event_type.value, "skipped"
                    )
                self.sync_logger.log_import_outcome(outcome, row.get("booking_id"))
                results.append({"email_message_id": message["id"], "outcome": outcome, **row})
            except Exception as e:
                self.sync_logger.log_error(e, f"Email import failed: {message.get('id')}")
        return results

    def sync_ical(self, property_id: Optional[str] = None) -> List[dict]:
        """Pull every sync-enabled iCal platform, for one property or all."""
        ical_service = ICalService(self.supabase_client)
        platforms = OTAPlatformService(self.supabase_client).get_sync_enabled_platforms(property_id)

        results = []
        for platform in platforms:
            if not platform.get("ical_import_url"):
                continue
            result = ical_service.sync_platform(platform)
            self.sync_logger.log_calendar_sync(
                platform.get("platform_name") or str(result.platform),
                result.records_processed,
                result.conflicts_detected,
            )
            for error in result.errors:
                self.sync_logger.log_error(RuntimeError(error), f"iCal sync: {platform.get('platform_name')}")
            results.append(result.to_dict())
        return results

    def detect_conflicts(self, property_id: Optional[str] = None, auto_resolve: bool = False) -> dict:
        conflict_service = ConflictService(self.supabase_client)
        property_ids = [property_id] if property_id else [p["id"] for p in self.supabase_client.get_properties()]

        summary = {}
        for pid in property_ids:
            found = conflict_service.detect_conflicts(pid)
            self.sync_logger.log_conflicts(len(found))
            resolved = conflict_service.auto_resolve_conflicts(pid) if auto_resolve else 0
            summary[pid] = {"detected": len(found), "auto_resolved": resolved}
        return summary

    def kpis(self, filters: AnalyticsFilters, compare: Optional[str] = None) -> dict:
        calculator = KPICalculator(self.supabase_client, ExpenseService(self.supabase_client))
        if compare:
            return calculator.compare_with_previous(filters, compare)
        return calculator.get_period_result(filters)


def _runner(ctx) -> VoyageurSync:
    return VoyageurSync(ctx.obj["log_level"], ctx.obj["log_file"])


@click.group()
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              default='INFO', help='Logging level')
@click.option('--log-file', type=str, help='Write JSON logs to this file')
@click.pass_context
def cli(ctx, log_level, log_file):
    """Voyageur Nest background jobs."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level
    ctx.obj["log_file"] = log_file


@cli.command("ingest-emails")
@click.option('--since-days', type=int, help='Only look at mail from the last N days')
@click.option('--limit', type=int, help='Maximum number of emails to fetch')
@click.pass_context
def ingest_emails(ctx, since_days, limit):
    """Store new OTA emails from the inbox."""
    runner = _runner(ctx)
    stored = runner.ingest_emails(since_days, limit)
    click.echo(f"Emails stored: {stored}")
    runner.sync_logger.print_summary()


@cli.command("import-emails")
@click.option('--limit', type=int, help='Maximum number of stored emails to import')
@click.option('--property-id', type=str, help='Import into this property instead of resolving it')
@click.option('--dry-run', is_flag=True, help='Show what would change without writing')
@click.pass_context
def import_emails(ctx, limit, property_id, dry_run):
    """Apply stored OTA emails to bookings."""
    runner = _runner(ctx)
    results = runner.import_emails(limit, property_id, dry_run)
    if dry_run:
        for preview in results:
            click.echo(f"{preview['email_message_id']}: {preview['action']}")
        click.echo("\nDRY RUN MODE - No bookings were changed")
    else:
        click.echo(f"Emails imported: {len(results)}")
    runner.sync_logger.print_summary()


@cli.command("sync-ical")
@click.option('--property-id', type=str, help='Only sync this property')
@click.pass_context
def sync_ical(ctx, property_id):
    """Import OTA iCal feeds."""
    runner = _runner(ctx)
    results = runner.sync_ical(property_id)
    click.echo(f"Platforms synced: {len(results)}")
    failed = [r for r in results if not r.get("success")]
    runner.sync_logger.print_summary()
    if failed:
        ctx.exit(1)


@cli.command("detect-conflicts")
@click.option('--property-id', type=str, help='Only check this property')
@click.option('--auto-resolve', is_flag=True, help='Resolve conflicts that need no staff decision')
@click.pass_context
def detect_conflicts(ctx, property_id, auto_resolve):
    """Detect calendar conflicts."""
    runner = _runner(ctx)
    summary = runner.detect_conflicts(property_id, auto_resolve)
    for pid, counts in summary.items():
        click.echo(f"{pid}: {counts['detected']} detected, {counts['auto_resolved']} auto-resolved")
    runner.sync_logger.print_summary()


@cli.command("kpis")
@click.option('--property-id', type=str, required=True)
@click.option('--start', type=click.DateTime(formats=["%Y-%m-%d"]), required=True)
@click.option('--end', type=click.DateTime(formats=["%Y-%m-%d"]), required=True)
@click.option('--total-rooms', type=int, default=0, show_default=True)
@click.option('--source', type=str, help='Only bookings from this source')
@click.option('--compare', type=click.Choice(['prev_period', 'prev_year']), help='Compare with an earlier period')
@click.pass_context
def kpis(ctx, property_id, start, end, total_rooms, source, compare):
    """Print KPIs for a property and period as JSON."""
    if end < start:
        raise click.BadParameter("end must not be before start", param_hint="--end")
    filters = AnalyticsFilters(
        property_id=property_id,
        start=start.date().isoformat(),
        end=end.date().isoformat(),
        total_rooms=total_rooms,
        booking_source=source,
    )
    result = _runner(ctx).kpis(filters, compare)
    click.echo(json.dumps(result, indent=2, default=str))


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
