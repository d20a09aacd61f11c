"""
Guest profiles: CRUD, search, histories, privacy, check-in upkeep and
duplicate detection with merging.
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ...supabase_sync.supabase_client import SupabaseClient
from ...utils.errors import NotFoundError, ValidationError
from ...utils.logger import get_logger
from config.settings import app_config

DEFAULT_COUNTRY = "India"
CONSENT_FIELDS = ("email_marketing_consent", "sms_marketing_consent", "data_retention_consent")
SORT_COLUMNS = {
    "created_at": "created_at",
    "name": "name",
    "last_visit_date": "last_stay_date",
    "total_bookings": "total_stays",
}
BACKFILL_FIELDS = ("email", "phone", "name", "city", "state", "country", "address")


def levenshtein(a: str, b: str) -> int:
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def name_similarity(a: Optional[str], b: Optional[str]) -> float:
    """1 - edit distance / longer length, on trimmed lowercase names."""
    s1 = (a or "").strip().lower()
    s2 = (b or "").strip().lower()
    if not s1 or not s2:
        return 0.0
    if s1 == s2:
        return 1.0
    return 1 - levenshtein(s1, s2) / max(len(s1), len(s2))


def norm_email(email: Optional[str]) -> Optional[str]:
    return (email or "").strip().lower() or None


def norm_phone(phone: Optional[str]) -> Optional[str]:
    if not phone:
        return None
    return re.sub(r"\D+", "", phone) or None


class GuestProfileService:
    """Service for guest profile records."""

    def __init__(self, supabase_client: Optional[SupabaseClient] = None):
        self.supabase_client = supabase_client or SupabaseClient()
        self.logger = get_logger("guest_profile_service")

    def _table(self, name: Optional[str] = None):
        return self.supabase_client.ensure().table(name or app_config.guest_profiles_table)

    def create_guest_profile(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not (data.get("name") or "").strip():
            raise ValidationError("Guest name is required")
        payload = {**data, "country": data.get("country") or DEFAULT_COUNTRY}
        for consent in CONSENT_FIELDS:
            if payload.get(consent) is None:
                payload[consent] = True
        profile = self._table().insert(payload).execute().data[0]
        self.logger.info("Guest profile created", guest_id=profile.get("id"))
        return profile

    def get_guest_profile(self, guest_id: str) -> Optional[Dict[str, Any]]:
        rows = self._table().select("*").eq("id", guest_id).limit(1).execute().data or []
        return rows[0] if rows else None

    def update_guest_profile(self, guest_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        payload = {k: v for k, v in updates.items() if k != "id"}
        rows = self._table().update(payload).eq("id", guest_id).execute().data or []
        if not rows:
            raise NotFoundError(f"Guest profile {guest_id} not found")
        return rows[0]

    def delete_guest_profile(self, guest_id: str):
        self._table().delete().eq("id", guest_id).execute()
        self.logger.info("Guest profile deleted", guest_id=guest_id)

    def search_guest_profiles(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Search by free text (name, email or phone), location, stay and spend
        minimums, last-stay window, contact presence and consent flags.
        """
        filters = filters or {}
        query = self._table().select("*")

        search = filters.get("search")
        if search:
            query = query.or_(f"name.ilike.%{search}%,email.ilike.%{search}%,phone.ilike.%{search}%")
        for column in ("city", "state", "country"):
            if filters.get(column):
                query = query.eq(column, filters[column])
        if filters.get("min_stays"):
            query = query.gte("total_stays", filters["min_stays"])
        if filters.get("min_spent"):
            query = query.gte("total_spent", filters["min_spent"])
        if filters.get("last_stay_after"):
            query = query.gte("last_stay_date", filters["last_stay_after"])
        if filters.get("last_stay_before"):
            query = query.lte("last_stay_date", filters["last_stay_before"])

        for flag, column in (("has_email", "email"), ("has_phone", "phone")):
            if filters.get(flag) is True:
                query = query.not_.is_(column, "null")
            elif filters.get(flag) is False:
                query = query.is_(column, "null")

        if filters.get("marketing_consent") is not None:
            query = query.eq("email_marketing_consent", filters["marketing_consent"])
        for consent in ("email_marketing_consent", "sms_marketing_consent"):
            if filters.get(consent) is not None:
                query = query.eq(consent, filters[consent])

        sort_by = SORT_COLUMNS.get(filters.get("sort_by"), "last_stay_date")
        ascending = filters.get("sort_order") == "asc"
        query = query.order(sort_by, desc=not ascending, nullsfirst=not ascending)
        if sort_by != "name":
            query = query.order("name")

        offset, limit = filters.get("offset"), filters.get("limit")
        if isinstance(offset, int) and isinstance(limit, int):
            start = max(0, offset)
            query = query.range(start, start + max(1, limit) - 1)
        elif isinstance(limit, int):
            query = query.limit(limit)

        profiles = query.execute().data or []
        return [
            {**p, "total_bookings": p.get("total_stays") or 0, "last_visit_date": p.get("last_stay_date")}
            for p in profiles
        ]

    def find_guest_by_contact(self, email: Optional[str] = None, phone: Optional[str] = None) -> Optional[Dict[str, Any]]:
        if not email and not phone:
            return None
        query = self._table().select("*")
        if email and phone:
            query = query.or_(f"email.eq.{email},phone.eq.{phone}")
        elif email:
            query = query.eq("email", email)
        else:
            query = query.eq("phone", phone)
        rows = query.limit(1).execute().data or []
        return rows[0] if rows else None

    def get_guest_booking_history(self, guest_id: str) -> List[Dict[str, Any]]:
        bookings = (
            self._table(app_config.bookings_table)
            .select(
                "id,guest_name,room_no,check_in,check_out,no_of_pax,additional_guest_names,"
                "total_amount,payment_status,status,special_requests,created_at,property_id"
            )
            .eq("guest_profile_id", guest_id)
            .order("check_in", desc=True)
            .execute()
        ).data or []

        property_ids = sorted({b["property_id"] for b in bookings if b.get("property_id")})
        names: Dict[str, str] = {}
        if property_ids:
            try:
                props = (
                    self._table(app_config.properties_table)
                    .select("id,name")
                    .in_("id", property_ids)
                    .execute()
                ).data or []
                names = {p["id"]: p.get("name") for p in props}
            except Exception as e:
                self.logger.warning("Failed to load properties for booking history", error=str(e))

        return [
            {**b, "booking_id": b["id"], "property_name": names.get(b.get("property_id"))}
            for b in bookings
        ]

    def get_communication_history_by_email(self, email: str, limit: int = 5) -> List[Dict[str, Any]]:
        if not email:
            return []
        return (
            self._table(app_config.email_messages_table)
            .select("id,sender,recipient,subject,snippet,received_at")
            .or_(f"sender.ilike.%{email}%,recipient.ilike.%{email}%")
            .order("received_at", desc=True)
            .limit(limit)
            .execute()
        ).data or []

    def get_guest_profile_stats(self) -> Dict[str, Any]:
        total_profiles = self._table().select("id", count="exact").execute().count or 0
        stats = (
            self._table()
            .select("total_stays,total_spent")
            .not_.is_("total_stays", "null")
            .not_.is_("total_spent", "null")
            .execute()
        ).data or []

        total_stays = sum(p["total_stays"] for p in stats)
        total_revenue = sum(float(p["total_spent"]) for p in stats)
        repeat_guests = sum(1 for p in stats if p["total_stays"] > 1)

        city_count: Dict[str, int] = {}
        state_count: Dict[str, int] = {}
        try:
            locations = (
                self._table()
                .select("city,state")
                .not_.is_("city", "null")
                .not_.is_("state", "null")
                .execute()
            ).data or []
        except Exception as e:
            self.logger.warning("Error fetching location data", error=str(e))
            locations = []
        for loc in locations:
            if loc.get("city"):
                city_count[loc["city"]] = city_count.get(loc["city"], 0) + 1
            if loc.get("state"):
                state_count[loc["state"]] = state_count.get(loc["state"], 0) + 1

        def top(counts: Dict[str, int], key: str) -> List[Dict[str, Any]]:
            ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)[:10]
            return [{key: name, "count": count} for name, count in ranked]

        def avg(value: float) -> float:
            return round(value / total_profiles, 2) if total_profiles else 0

        return {
            "total_profiles": total_profiles,
            "total_stays": total_stays,
            "total_revenue": total_revenue,
            "average_stays_per_guest": avg(total_stays),
            "average_spend_per_guest": avg(total_revenue),
            "repeat_guest_percentage": round(repeat_guests / total_profiles * 100, 2) if total_profiles else 0,
            "top_cities": top(city_count, "city"),
            "top_states": top(state_count, "state"),
        }

    def update_privacy_settings(self, guest_id: str, settings: Dict[str, Any]):
        payload = {k: settings.get(k) for k in CONSENT_FIELDS}
        self._table().update(payload).eq("id", guest_id).execute()

    def link_guest_to_booking(self, booking_id: str, guest_profile_id: str):
        (
            self._table(app_config.bookings_table)
            .update({"guest_profile_id": guest_profile_id})
            .eq("id", booking_id)
            .execute()
        )

    def create_or_update_from_check_in(self, check_in: Dict[str, Any]) -> Dict[str, Any]:
        """Upsert a profile from check-in form data, matching on email or phone."""
        full_name = f"{check_in.get('first_name', '')} {check_in.get('last_name', '')}".strip()
        existing = self.find_guest_by_contact(check_in.get("email"), check_in.get("phone"))

        if existing:
            updates = {"name": full_name}
            for column in ("email", "phone", "address", "city", "state", "country"):
                updates[column] = check_in.get(column) or existing.get(column)
            return self.update_guest_profile(existing["id"], updates)

        consent = check_in.get("marketing_consent")
        return self.create_guest_profile({
            "name": full_name,
            "email": check_in.get("email"),
            "phone": check_in.get("phone"),
            "address": check_in.get("address"),
            "city": check_in.get("city"),
            "state": check_in.get("state"),
            "country": check_in.get("country") or DEFAULT_COUNTRY,
            "email_marketing_consent": True if consent is None else consent,
            "sms_marketing_consent": True if consent is None else consent,
            "data_retention_consent": True,
        })

    def find_or_create_for_booking(
        self,
        name: Optional[str],
        email: Optional[str],
        phone: Optional[str],
    ) -> Optional[str]:
        """Profile id for an imported booking's guest, refreshing contact details on a match."""
        if not (name or email or phone):
            return None
        existing = self.find_guest_by_contact(email, phone)
        if existing:
            self.update_guest_profile(existing["id"], {
                "name": name or existing.get("name"),
                "email": email or existing.get("email"),
                "phone": phone or existing.get("phone"),
            })
            self.logger.info("Linked booking to existing guest profile", guest_id=existing["id"])
            return existing["id"]
        created = self.create_guest_profile({"name": name or "Guest", "email": email, "phone": phone})
        return created.get("id")

    # Duplicates
    def find_duplicates_for_profile(self, profile_id: str) -> List[Dict[str, Any]]:
        """
        Candidates sharing an email or phone, or with a similar name.

        Score: same email +0.6, same phone +0.6, name similarity >= 0.8 +0.3
        (>= 0.6 +0.15); candidates below 0.6 are dropped.
        """
        target = self.get_guest_profile(profile_id)
        if not target:
            return []

        email = norm_email(target.get("email"))
        phone = norm_phone(target.get("phone"))

        or_parts = []
        if target.get("email"):
            or_parts.append(f"email.eq.{target['email']}")
        if email:
            or_parts.append(f"email.ilike.{email}")
        if target.get("phone"):
            or_parts.append(f"phone.eq.{target['phone']}")
        if phone and len(phone[-6:]) >= 4:
            or_parts.append(f"phone.ilike.%{phone[-6:]}%")
        for token in (target.get("name") or "").split()[:2]:
            if len(token) >= 3:
                or_parts.append(f"name.ilike.%{token}%")

        query = self._table().select("*")
        if or_parts:
            query = query.or_(",".join(or_parts))
        candidates = query.execute().data or []

        results = []
        for profile in candidates:
            if profile.get("id") == target["id"]:
                continue
            score = 0.0
            reasons = []
            if email and norm_email(profile.get("email")) == email:
                score += 0.6
                reasons.append("Same email")
            if phone and norm_phone(profile.get("phone")) == phone:
                score += 0.6
                reasons.append("Same phone")
            similarity = name_similarity(target.get("name"), profile.get("name"))
            if similarity >= 0.8:
                score += 0.3
                reasons.append(f"Very similar name ({similarity * 100:.0f}%)")
            elif similarity >= 0.6:
                score += 0.15
                reasons.append(f"Similar name ({similarity * 100:.0f}%)")
            if score >= 0.6:
                results.append({"profile": profile, "reasons": reasons, "score": score})

        results.sort(key=lambda r: r["score"], reverse=True)
        return results

    def find_duplicate_clusters(self, limit: int = 500) -> List[Dict[str, Any]]:
        """Groups of profiles sharing a normalized email or phone, each with a primary."""
        profiles = (
            self._table()
            .select("id,name,email,phone,total_stays,created_at")
            .limit(limit)
            .execute()
        ).data or []

        by_email: Dict[str, List[Dict[str, Any]]] = {}
        by_phone: Dict[str, List[Dict[str, Any]]] = {}
        for p in profiles:
            if norm_email(p.get("email")):
                by_email.setdefault(norm_email(p["email"]), []).append(p)
            if norm_phone(p.get("phone")):
                by_phone.setdefault(norm_phone(p["phone"]), []).append(p)

        clusters = []
        seen = set()
        for groups in (by_email, by_phone):
            for group in groups.values():
                unique = list({p["id"]: p for p in group}.values())
                if len(unique) <= 1:
                    continue
                if all(p["id"] in seen for p in unique):
                    continue
                seen.update(p["id"] for p in unique)
                clusters.append(unique)

        results = []
        for group in clusters:
            ordered = sorted(group, key=lambda p: (-(p.get("total_stays") or 0), p.get("created_at") or ""))
            primary = ordered[0]
            duplicates = [
                {
                    "profile": p,
                    "reasons": [
                        "Same email"
                        if norm_email(p.get("email")) and norm_email(p.get("email")) == norm_email(primary.get("email"))
                        else "Same phone"
                    ],
                    "score": 0.7,
                }
                for p in ordered[1:]
            ]
            results.append({"primary": primary, "duplicates": duplicates})
        return results

    def merge_guest_profiles(self, primary_id: str, duplicate_ids: List[str]) -> Dict[str, Any]:
        """
        Move duplicates' bookings to the primary, backfill its missing fields
        from them, then delete the duplicates.
        """
        duplicate_ids = [d for d in dict.fromkeys(duplicate_ids or []) if d != primary_id]
        if not primary_id or not duplicate_ids:
            raise ValidationError("Primary ID and at least one duplicate ID other than the primary are required")

        primary = self.get_guest_profile(primary_id)
        if not primary:
            raise NotFoundError("Primary guest profile not found")
        duplicates = self._table().select("*").in_("id", duplicate_ids).execute().data or []

        reassigned = (
            self._table(app_config.bookings_table)
            .update({"guest_profile_id": primary_id})
            .in_("guest_profile_id", duplicate_ids)
            .execute()
        ).data or []

        backfill: Dict[str, Any] = {}
        for duplicate in duplicates:
            for column in BACKFILL_FIELDS:
                if not primary.get(column) and duplicate.get(column):
                    backfill[column] = duplicate[column]
        if backfill:
            self.update_guest_profile(primary_id, backfill)
        else:
            self._table().update({"updated_at": datetime.now(timezone.utc).isoformat()}).eq("id", primary_id).execute()

        self._table().delete().in_("id", duplicate_ids).execute()
        self.logger.info(
            "Guest profiles merged",
            primary_id=primary_id,
            merged=len(duplicate_ids),
            bookings_reassigned=len(reassigned),
        )
        return {
            "primary": self.get_guest_profile(primary_id),
            "merged_ids": list(duplicate_ids),
            "bookings_reassigned": len(reassigned),
            "profile_updated": bool(backfill),
        }
