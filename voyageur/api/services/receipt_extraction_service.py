"""
Receipt extraction with Gemini vision.
"""
import json
from typing import Any, Dict, List, Optional

from ...llm.providers import LLMManager, get_llm_manager, parse_json_response
from ...utils.logger import get_logger
from ...utils.models import LineItem, ReceiptExtraction
from config.settings import app_config

SYSTEM_PROMPT = "\n".join([
    "You are a strict JSON extractor for receipts and invoices. Output only JSON without code fences.",
    "Extract a single expense summary and a list of line items.",
    "Dates must be ISO YYYY-MM-DD. Use null when unknown. Currency should be ISO code if present.",
    "Line items should include description and computed line_total when possible.",
    "If tax is present, extract a tax_amount per line if identifiable; otherwise null.",
    "Suggest a category (category_hint) from common expense categories like utilities, food costs, "
    "staff salary, maintenance, marketing, transport, office supplies, fuel, cleaning, groceries.",
])

RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "expense_date": {"type": ["string", "null"]},
        "amount": {"type": ["number", "null"]},
        "currency": {"type": ["string", "null"]},
        "vendor": {"type": ["string", "null"]},
        "category_hint": {"type": ["string", "null"]},
        "line_items": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "description": {"type": "string"},
                    "quantity": {"type": ["number", "null"]},
                    "unit_amount": {"type": ["number", "null"]},
                    "tax_amount": {"type": ["number", "null"]},
                    "line_total": {"type": ["number", "null"]},
                },
                "required": ["description"],
            },
        },
        "confidence": {"type": "number"},
        "reasoning": {"type": ["string", "null"]},
    },
    "required": ["confidence", "line_items"],
}


def _num(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def build_receipt_prompt(locale: str = "en-IN", currency: Optional[str] = None, categories: Optional[List[str]] = None) -> str:
    currency = currency or app_config.default_currency
    prompt = (
        f"Return valid JSON only (no code fences). Schema: {json.dumps(RESPONSE_SCHEMA)}.\n"
        f"Locale: {locale}; Preferred currency: {currency}."
    )
    if categories:
        prompt += (
            f"\nExisting categories: {json.dumps(categories)}. When suggesting category_hint, "
            "prefer an exact or closest match from this list. If none applies, provide your best "
            "new category suggestion."
        )
    return prompt


def normalize_receipt(data: Dict[str, Any]) -> ReceiptExtraction:
    items = data.get("line_items") if isinstance(data.get("line_items"), list) else []
    line_items = [
        LineItem(
            description=str(item.get("description") or "")[:300],
            quantity=_num(item.get("quantity")),
            unit_amount=_num(item.get("unit_amount")),
            tax_amount=_num(item.get("tax_amount")),
            line_total=_num(item.get("line_total")),
        )
        for item in items if isinstance(item, dict)
    ]
    confidence = _num(data.get("confidence"))
    return ReceiptExtraction(
        expense_date=data.get("expense_date") or None,
        amount=_num(data.get("amount")),
        currency=data.get("currency") or None,
        vendor=data.get("vendor") or None,
        category_hint=data.get("category_hint") or None,
        line_items=line_items,
        confidence=confidence if confidence is not None else 0.7,
        reasoning=data.get("reasoning") or None,
    )


class ReceiptExtractionService:
    """Reads expense fields and line items off a receipt image or PDF."""

    def __init__(self, llm: Optional[LLMManager] = None):
        self.llm = llm or get_llm_manager()
        self.logger = get_logger("receipt_extraction")

    def extract_from_receipt(
        self,
        content: bytes,
        content_type: str,
        locale: str = "en-IN",
        currency: Optional[str] = None,
        categories: Optional[List[str]] = None,
    ) -> ReceiptExtraction:
        """Raises ``AIProviderError`` when Gemini is unavailable or returns non-JSON."""
        response = self.llm.generate(
            build_receipt_prompt(locale, currency, categories),
            system_hint=SYSTEM_PROMPT,
            json_mode=True,
            image={"mime_type": content_type, "data": content},
        )
        extraction = normalize_receipt(parse_json_response(response.get("text", "")))
        self.logger.info(
            "Receipt extracted",
            vendor=extraction.vendor,
            amount=extraction.amount,
            line_items=len(extraction.line_items),
            confidence=extraction.confidence,
        )
        return extraction
