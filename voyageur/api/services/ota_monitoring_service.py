"""
Health of OTA calendar sync, computed from ``ota_sync_logs`` and
``calendar_conflicts``.
"""
import math
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from ...supabase_sync.supabase_client import SupabaseClient
from ...utils.logger import get_logger
from config.settings import app_config

SUCCESS_STATUSES = ("success",)
FAILED_STATUSES = ("failed",)
# Weights of sync success, conflict resolution and platform health in the overall score
HEALTH_WEIGHTS = (0.5, 0.3, 0.2)
STALE_CONFLICT_HOURS = 24


def parse_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def rate(part: int, whole: int, empty: float = 100.0) -> float:
    """Percentage rounded to one decimal; ``empty`` when there is nothing to measure."""
    return round(part / whole * 100, 1) if whole else empty


def sync_duration_seconds(log: Dict[str, Any]) -> Optional[float]:
    started = parse_timestamp(log.get("created_at"))
    finished = parse_timestamp(log.get("completed_at"))
    if not started or not finished:
        return None
    return max(0.0, (finished - started).total_seconds())


def platform_performance(logs: List[Dict[str, Any]], platforms: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Per platform success rate, mean duration, last success and error count; best first."""
    by_platform = defaultdict(list)
    for log in logs:
        by_platform[log.get("platform_id")].append(log)

    performance = []
    for platform in platforms:
        platform_id = platform.get("platform_id") or platform.get("id")
        rows = by_platform.get(platform_id, [])
        successes = [row for row in rows if row.get("status") in SUCCESS_STATUSES]
        durations = [d for d in (sync_duration_seconds(row) for row in rows) if d is not None]
        performance.append({
            "platform_id": platform_id,
            "platform_name": platform.get("platform_name") or platform.get("name"),
            "total_syncs": len(rows),
            "success_rate": rate(len(successes), len(rows), empty=0.0),
            "average_duration_seconds": round(sum(durations) / len(durations), 1) if durations else None,
            "last_successful_sync": max((row.get("created_at") for row in successes), default=None),
            "error_count": sum(1 for row in rows if row.get("status") in FAILED_STATUSES),
        })
    performance.sort(key=lambda entry: entry["success_rate"], reverse=True)
    return performance


def sync_health(
    logs: List[Dict[str, Any]],
    conflicts: List[Dict[str, Any]],
    platforms: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Fold sync logs, conflicts and platforms into a 0-100 health score.

    A platform counts as healthy when none of its syncs in the window failed.
    Uptime is the share of syncs that did not fail outright, so partial
    imports still count as up.
    """
    successes = sum(1 for log in logs if log.get("status") in SUCCESS_STATUSES)
    failures = [log for log in logs if log.get("status") in FAILED_STATUSES]
    resolved = sum(1 for c in conflicts if c.get("status") in ("resolved", "ignored"))

    failing_platforms = {log.get("platform_id") for log in failures}
    healthy = sum(
        1 for p in platforms if (p.get("platform_id") or p.get("id")) not in failing_platforms
    )

    sync_rate = rate(successes, len(logs))
    conflict_rate = rate(resolved, len(conflicts))
    platform_rate = rate(healthy, len(platforms))
    overall = round(
        HEALTH_WEIGHTS[0] * sync_rate + HEALTH_WEIGHTS[1] * conflict_rate + HEALTH_WEIGHTS[2] * platform_rate
    )
    recent_failures = sorted(failures, key=lambda log: log.get("created_at") or "", reverse=True)[:5]
    return {
        "overall_health_score": overall,
        "sync_success_rate": sync_rate,
        "conflict_resolution_rate": conflict_rate,
        "platform_health_rate": platform_rate,
        "total_syncs": len(logs),
        "failed_syncs": len(failures),
        "total_conflicts": len(conflicts),
        "active_platforms": len(platforms),
        "uptime_percentage": rate(len(logs) - len(failures), len(logs)),
        "recent_failures": [
            {
                "platform_id": log.get("platform_id"),
                "error_message": log.get("error_message"),
                "created_at": log.get("created_at"),
            }
            for log in recent_failures
        ],
    }


def sync_trends(logs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Daily success and failure counts, oldest day first."""
    days = defaultdict(lambda: {"success": 0, "failed": 0, "total": 0})
    for log in logs:
        day = str(log.get("created_at") or "")[:10]
        if not day:
            continue
        days[day]["total"] += 1
        if log.get("status") in SUCCESS_STATUSES:
            days[day]["success"] += 1
        elif log.get("status") in FAILED_STATUSES:
            days[day]["failed"] += 1
    return [{"date": day, **counts} for day, counts in sorted(days.items())]


def sync_alerts(
    platforms: List[Dict[str, Any]],
    logs: List[Dict[str, Any]],
    conflicts: List[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """
    Alerts for missed syncs (no success within the platform's sync interval),
    failures in the last hour and conflicts left unresolved for a day.
    """
    now = now or datetime.now(timezone.utc)
    alerts = []

    for platform in platforms:
        platform_id = platform.get("platform_id") or platform.get("id")
        name = platform.get("platform_name") or platform.get("name")
        interval = timedelta(hours=platform.get("sync_interval") or 24)
        last_success = max(
            (parse_timestamp(log.get("created_at")) for log in logs
             if log.get("platform_id") == platform_id and log.get("status") in SUCCESS_STATUSES),
            default=None,
        )
        if last_success is None or now - last_success > interval:
            alerts.append({
                "type": "missed_sync",
                "severity": "warning",
                "platform_id": platform_id,
                "message": f"{name} has not synced successfully in {int(interval.total_seconds() // 3600)} hours",
                "last_successful_sync": last_success.isoformat() if last_success else None,
            })

    for log in logs:
        created = parse_timestamp(log.get("created_at"))
        if log.get("status") in FAILED_STATUSES and created and now - created <= timedelta(hours=1):
            alerts.append({
                "type": "sync_failure",
                "severity": "error",
                "platform_id": log.get("platform_id"),
                "message": log.get("error_message") or "Sync failed",
                "created_at": log.get("created_at"),
            })

    stale = [
        c for c in conflicts
        if c.get("status") == "detected"
        and parse_timestamp(c.get("created_at"))
        and now - parse_timestamp(c.get("created_at")) > timedelta(hours=STALE_CONFLICT_HOURS)
    ]
    if stale:
        alerts.append({
            "type": "unresolved_conflicts",
            "severity": "warning",
            "message": f"{len(stale)} conflict(s) unresolved for more than {STALE_CONFLICT_HOURS} hours",
            "conflict_ids": [c.get("id") for c in stale],
        })
    return alerts


class OTAMonitoringService:
    """Reads sync logs and conflicts to report sync health."""

    def __init__(self, supabase_client: Optional[SupabaseClient] = None):
        self.supabase_client = supabase_client or SupabaseClient()
        self.logger = get_logger("ota_monitoring_service")

    def _table(self, name: str):
        return self.supabase_client.ensure().table(name)

    def _since(self, days: int) -> str:
        return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()

    def _logs(self, property_id: str, days: int) -> List[Dict[str, Any]]:
        return (
            self._table(app_config.ota_sync_logs_table).select("*")
            .eq("property_id", property_id)
            .gte("created_at", self._since(days))
            .order("created_at")
            .execute()
        ).data or []

    def _conflicts(self, property_id: str, days: Optional[int] = None) -> List[Dict[str, Any]]:
        query = (
            self._table(app_config.calendar_conflicts_table)
            .select("id, conflict_type, status, created_at")
            .eq("property_id", property_id)
        )
        if days:
            query = query.gte("created_at", self._since(days))
        return query.execute().data or []

    def _platforms(self, property_id: str) -> List[Dict[str, Any]]:
        return (
            self._table(app_config.property_ota_platforms_view).select("*")
            .eq("property_id", property_id)
            .eq("sync_enabled", True)
            .eq("is_active", True)
            .execute()
        ).data or []

    def get_sync_health_metrics(self, property_id: str, days: int = 7) -> Dict[str, Any]:
        metrics = sync_health(
            self._logs(property_id, days),
            self._conflicts(property_id, days),
            self._platforms(property_id),
        )
        self.logger.info(
            "Sync health computed",
            property_id=property_id,
            days=days,
            score=metrics["overall_health_score"],
        )
        return {"property_id": property_id, "days": days, **metrics}

    def get_platform_performance(self, property_id: str, days: int = 30) -> List[Dict[str, Any]]:
        return platform_performance(self._logs(property_id, days), self._platforms(property_id))

    def get_sync_trends(self, property_id: str, days: int = 7) -> List[Dict[str, Any]]:
        return sync_trends(self._logs(property_id, days))

    def check_sync_alerts(self, property_id: str) -> List[Dict[str, Any]]:
        platforms = self._platforms(property_id)
        longest = max((p.get("sync_interval") or 24 for p in platforms), default=24)
        logs = self._logs(property_id, math.ceil(longest / 24) + 1)
        alerts = sync_alerts(platforms, logs, self._conflicts(property_id))
        if alerts:
            self.logger.warning("Sync alerts raised", property_id=property_id, count=len(alerts))
        return alerts
