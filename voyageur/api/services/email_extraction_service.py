"""
Storage of AI email extractions.
"""
from typing import Any, Dict, Optional

from ...supabase_sync.supabase_client import SupabaseClient
from ...utils.logger import get_logger
from config.settings import app_config

EXTRACTION_STATUSES = ("auto_imported", "needs_review", "ignored")


class EmailExtractionService:
    """Saves model output per email and returns the latest one."""

    def __init__(self, supabase_client: Optional[SupabaseClient] = None):
        self.supabase_client = supabase_client or SupabaseClient()
        self.logger = get_logger("email_extraction")

    def save_extraction(
        self,
        email_message_id: str,
        model: str,
        output: Dict[str, Any],
        confidence: float,
        reasoning: Optional[str] = None,
        status: str = "needs_review",
    ) -> Optional[Dict[str, Any]]:
        if not self.supabase_client.initialized and not self.supabase_client.initialize():
            return None
        try:
            resp = (
                self.supabase_client.client.table(app_config.email_extractions_table)
                .insert({
                    "email_message_id": email_message_id,
                    "model": model,
                    "output_json": output,
                    "confidence": confidence,
                    "reasoning": reasoning or None,
                    "status": status if status in EXTRACTION_STATUSES else "needs_review",
                })
                .execute()
            )
            rows = resp.data or []
            return rows[0] if rows else None
        except Exception as e:
            self.logger.warning("Saving extraction failed", email_message_id=email_message_id, error=str(e))
            return None

    def get_latest_by_email_message_id(self, email_message_id: str) -> Optional[Dict[str, Any]]:
        if not self.supabase_client.initialized and not self.supabase_client.initialize():
            return None
        try:
            resp = (
                self.supabase_client.client.table(app_config.email_extractions_table)
                .select("*")
                .eq("email_message_id", email_message_id)
                .order("created_at", desc=True)
                .limit(1)
                .execute()
            )
            rows = resp.data or []
            return rows[0] if rows else None
        except Exception as e:
            self.logger.warning("Fetching extraction failed", email_message_id=email_message_id, error=str(e))
            return None
