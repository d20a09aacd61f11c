"""
Expense endpoints: receipts, categories, approvals, line items, shares,
budgets and reports.
"""
from typing import List, Optional
from datetime import date
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from ..models import (
    DataResponse, ExpenseRequest, ExpenseUpdateRequest, ApprovalRequest,
    CategoryRequest, BudgetRequest, LineItemRequest, ExpenseShareRequest,
)
from ..dependencies import get_expense_service, get_receipt_extraction_service
from ..services.expense_service import ExpenseService
from ..services.receipt_extraction_service import ReceiptExtractionService
from ...utils.expense_validation import ExpenseValidator

router = APIRouter(prefix="/expenses", tags=["expenses"])


def validation_failed(result) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={"message": result.summary(), "error_code": "VALIDATION_ERROR", "details": result.to_dict()},
    )


# Receipts

@router.post("/receipts", response_model=DataResponse, summary="Upload a receipt")
async def upload_receipt(
    property_id: str = Form(...),
    file: UploadFile = File(...),
    expense_service: ExpenseService = Depends(get_expense_service),
):
    content = await file.read()
    stored = expense_service.upload_receipt(property_id, file.filename or "", content, file.content_type or "")
    return DataResponse(success=True, message="Receipt uploaded", data=stored)


@router.post("/receipts/extract", response_model=DataResponse, summary="Extract expense fields from a receipt")
async def extract_receipt(
    file: UploadFile = File(...),
    locale: str = Form("en-IN"),
    currency: Optional[str] = Form(None),
    property_id: Optional[str] = Form(None),
    expense_service: ExpenseService = Depends(get_expense_service),
    extraction_service: ReceiptExtractionService = Depends(get_receipt_extraction_service),
):
    """
    Read vendor, date, amount and line items from a receipt image or PDF.

    Category names of ``property_id`` are offered to the model as hints.
    """
    content = await file.read()
    check = ExpenseValidator.validate_receipt_file(file.content_type, len(content))
    if not check.is_valid:
        raise validation_failed(check)

    categories = None
    if property_id:
        categories = [c["name"] for c in expense_service.list_available_categories(property_id)]
    extraction = extraction_service.extract_from_receipt(
        content, file.content_type, locale=locale, currency=currency, categories=categories
    )
    return DataResponse(success=True, message="Receipt extracted", data=extraction.to_dict())


# Categories

@router.get("/categories", response_model=DataResponse)
async def list_categories(
    property_id: str = Query(...),
    expense_service: ExpenseService = Depends(get_expense_service),
):
    return DataResponse(
        success=True,
        message="Categories retrieved",
        data=expense_service.list_available_categories(property_id),
    )


@router.post("/categories", response_model=DataResponse)
async def create_category(
    payload: CategoryRequest,
    expense_service: ExpenseService = Depends(get_expense_service),
):
    if payload.property_id:
        category = expense_service.create_property_category(payload.property_id, payload.name, payload.description)
    else:
        category = expense_service.create_category_template(payload.name, payload.description)
    return DataResponse(success=True, message="Category created", data=category)


@router.patch("/categories/{category_id}", response_model=DataResponse)
async def update_category(
    category_id: str,
    payload: dict,
    expense_service: ExpenseService = Depends(get_expense_service),
):
    return DataResponse(
        success=True,
        message="Category updated",
        data=expense_service.update_category(category_id, payload),
    )


@router.delete("/categories/{category_id}", response_model=DataResponse)
async def delete_category(
    category_id: str,
    expense_service: ExpenseService = Depends(get_expense_service),
):
    in_use = expense_service.count_expenses_for_category(category_id)
    if in_use:
        raise HTTPException(
            status_code=409,
            detail={
                "message": f"Category is used by {in_use} expense(s); deactivate it instead",
                "error_code": "CATEGORY_IN_USE",
                "details": {"expense_count": in_use},
            },
        )
    expense_service.delete_category(category_id)
    return DataResponse(success=True, message="Category deleted", data={"id": category_id})


# Budgets

@router.get("/budgets", response_model=DataResponse)
async def list_budgets(
    property_id: str = Query(...),
    from_month: Optional[date] = Query(None),
    to_month: Optional[date] = Query(None),
    expense_service: ExpenseService = Depends(get_expense_service),
):
    budgets = expense_service.get_budgets(
        property_id,
        from_month.isoformat() if from_month else None,
        to_month.isoformat() if to_month else None,
    )
    return DataResponse(success=True, message="Budgets retrieved", data=budgets)


@router.put("/budgets", response_model=DataResponse)
async def upsert_budget(payload: BudgetRequest, expense_service: ExpenseService = Depends(get_expense_service)):
    if payload.month.day != 1:
        raise HTTPException(
            status_code=422,
            detail={"message": "month must be the first day of a month", "error_code": "VALIDATION_ERROR", "details": {}},
        )
    budget = expense_service.upsert_budget(payload.model_dump())
    return DataResponse(success=True, message="Budget saved", data=budget)


@router.delete("/budgets/{budget_id}", response_model=DataResponse)
async def delete_budget(budget_id: str, expense_service: ExpenseService = Depends(get_expense_service)):
    expense_service.delete_budget(budget_id)
    return DataResponse(success=True, message="Budget deleted", data={"id": budget_id})


# Reports

@router.get("/reports/monthly", response_model=DataResponse)
async def monthly_report(
    property_id: str = Query(...),
    month: str = Query(..., pattern=r"^\d{4}-\d{2}$", description="YYYY-MM"),
    expense_service: ExpenseService = Depends(get_expense_service),
):
    return DataResponse(
        success=True,
        message="Monthly report",
        data=expense_service.get_monthly_report(property_id, month),
    )


@router.get("/reports/trends", response_model=DataResponse)
async def expense_trends(
    property_id: str = Query(...),
    months: int = Query(6, ge=1, le=24),
    expense_service: ExpenseService = Depends(get_expense_service),
):
    return DataResponse(
        success=True,
        message="Expense trends",
        data=expense_service.get_expense_trends(property_id, months),
    )


# Expenses

@router.get("", response_model=DataResponse)
async def list_expenses(
    property_id: str = Query(...),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    category_id: Optional[str] = Query(None),
    approval: Optional[str] = Query(None, pattern="^(pending|approved|rejected)$"),
    vendor: Optional[str] = Query(None),
    include_shared: bool = Query(False, description="Include other properties' expenses shared with this one"),
    expense_service: ExpenseService = Depends(get_expense_service),
):
    start = date_from.isoformat() if date_from else None
    end = date_to.isoformat() if date_to else None
    if include_shared:
        expenses = expense_service.list_expenses_for_property_view(property_id, start, end, approval=approval)
    else:
        expenses = expense_service.list_expenses(
            property_id, start, end, category_id=category_id, approval=approval, vendor=vendor
        )
    return DataResponse(success=True, message=f"{len(expenses)} expenses", data=expenses)


@router.post("", response_model=DataResponse, summary="Create an expense with line items and shares")
async def create_expense(payload: ExpenseRequest, expense_service: ExpenseService = Depends(get_expense_service)):
    data = payload.model_dump(mode="json")
    line_items = data.pop("line_items")
    shares = data.pop("shares")
    share_mode = data.pop("share_mode")

    check = ExpenseValidator.validate_complete_expense(
        {**data, "expense_date": payload.expense_date}, line_items, shares, share_mode
    )
    if not check.is_valid:
        raise validation_failed(check)

    expense = expense_service.create_expense(data)
    if line_items:
        expense_service.save_line_items(expense["id"], line_items)
    if shares:
        expense_service.save_expense_shares(expense["id"], shares)
    return DataResponse(
        success=True,
        message="Expense created",
        data={**expense, "warnings": [w.to_dict() for w in check.warnings]},
    )


@router.get("/{expense_id}", response_model=DataResponse)
async def get_expense(expense_id: str, expense_service: ExpenseService = Depends(get_expense_service)):
    expense = expense_service.get_expense(expense_id)
    expense["line_items"] = expense_service.get_line_items(expense_id)
    expense["shares"] = expense_service.get_expense_shares(expense_id)
    return DataResponse(success=True, message="Expense retrieved", data=expense)


@router.patch("/{expense_id}", response_model=DataResponse)
async def update_expense(
    expense_id: str,
    payload: ExpenseUpdateRequest,
    expense_service: ExpenseService = Depends(get_expense_service),
):
    updated = expense_service.update_expense(expense_id, payload.model_dump(mode="json", exclude_unset=True))
    return DataResponse(success=True, message="Expense updated", data=updated)


@router.delete("/{expense_id}", response_model=DataResponse)
async def delete_expense(expense_id: str, expense_service: ExpenseService = Depends(get_expense_service)):
    expense_service.delete_expense(expense_id)
    return DataResponse(success=True, message="Expense deleted", data={"id": expense_id})


@router.post("/{expense_id}/approval", response_model=DataResponse, summary="Approve or reject an expense")
async def set_approval(
    expense_id: str,
    payload: ApprovalRequest,
    expense_service: ExpenseService = Depends(get_expense_service),
):
    expense = expense_service.set_approval(expense_id, payload.status.value, payload.approved_by, payload.notes)
    return DataResponse(success=True, message=f"Expense {payload.status.value}", data=expense)


@router.put("/{expense_id}/line-items", response_model=DataResponse)
async def replace_line_items(
    expense_id: str,
    items: List[LineItemRequest],
    expense_service: ExpenseService = Depends(get_expense_service),
):
    expense = expense_service.get_expense(expense_id)
    rows = [item.model_dump() for item in items]
    check = ExpenseValidator.validate_line_items(rows, float(expense.get("amount") or 0))
    if not check.is_valid:
        raise validation_failed(check)
    expense_service.replace_line_items(expense_id, rows)
    return DataResponse(success=True, message="Line items saved", data=expense_service.get_line_items(expense_id))


@router.put("/{expense_id}/shares", response_model=DataResponse)
async def replace_shares(
    expense_id: str,
    shares: List[ExpenseShareRequest],
    mode: str = Query("percentage", pattern="^(percentage|amount)$"),
    expense_service: ExpenseService = Depends(get_expense_service),
):
    expense = expense_service.get_expense(expense_id)
    rows = [share.model_dump() for share in shares]
    check = ExpenseValidator.validate_expense_shares(rows, float(expense.get("amount") or 0), mode)
    if not check.is_valid:
        raise validation_failed(check)
    expense_service.save_expense_shares(expense_id, rows)
    return DataResponse(success=True, message="Shares saved", data=expense_service.get_expense_shares(expense_id))
