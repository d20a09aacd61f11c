"""
OTA email import endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from ..models import DataResponse, EmailImportRequest
from ..dependencies import get_email_import_service, get_email_parser, get_supabase_client
from ..services.email_import_service import EmailImportService
from ...booking_parser.ai_email_parser import AIEmailParser
from ...supabase_sync.supabase_client import SupabaseClient

router = APIRouter(prefix="/email-imports", tags=["email-imports"])


def message_or_404(supabase_client: SupabaseClient, email_message_id: str):
    message = supabase_client.get_email_message_by_id(email_message_id)
    if not message:
        raise HTTPException(
            status_code=404,
            detail={
                "message": "Email message not found",
                "error_code": "NOT_FOUND",
                "details": {"email_message_id": email_message_id},
            },
        )
    return message


@router.get("/pending", response_model=DataResponse, summary="Stored emails not yet imported")
async def pending_messages(
    limit: int = Query(50, ge=1, le=200),
    supabase_client: SupabaseClient = Depends(get_supabase_client),
):
    messages = supabase_client.get_unprocessed_email_messages(limit)
    return DataResponse(success=True, message=f"{len(messages)} pending email(s)", data=messages)


@router.get("/{email_message_id}/preview", response_model=DataResponse, summary="What importing an email would do")
async def preview_import(
    email_message_id: str,
    property_id: str = Query(None),
    supabase_client: SupabaseClient = Depends(get_supabase_client),
    parser: AIEmailParser = Depends(get_email_parser),
    service: EmailImportService = Depends(get_email_import_service),
):
    message = message_or_404(supabase_client, email_message_id)
    parsed = parser.parse_message(message)
    preview = service.compute_preview(parsed, property_id, email_message_id)
    return DataResponse(
        success=True,
        message=f"Preview: {preview['action']}",
        data={**preview, "parsed": parsed.to_dict()},
    )


@router.post("/{email_message_id}", response_model=DataResponse, summary="Import one stored email")
async def import_email(
    email_message_id: str,
    request: EmailImportRequest,
    supabase_client: SupabaseClient = Depends(get_supabase_client),
    parser: AIEmailParser = Depends(get_email_parser),
    service: EmailImportService = Depends(get_email_import_service),
):
    message = message_or_404(supabase_client, email_message_id)
    parsed = parser.parse_message(message)
    row = service.import_from_parsed(email_message_id, parsed, request.property_id)
    return DataResponse(success=True, message="Email imported", data=row)
