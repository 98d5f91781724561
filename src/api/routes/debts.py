"""Debt ledger API routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from src.api.deps import get_debt_service
from src.schemas.ledger import (
    DebtBackfillResponse,
    DebtListResponse,
    DebtResponse,
    DebtSummaryResponse,
    DebtWriteOff,
)
from src.services.debt_service import DebtService, summarize_debts

router = APIRouter(tags=["debts"])


@router.get("/shops/{shop_id}/debts", response_model=DebtListResponse)
async def list_shop_debts(
    shop_id: str,
    customer_id: Annotated[str | None, Query(description="Only this customer's debts")] = None,
    outstanding_only: Annotated[bool, Query(description="Only ACTIVE and PARTIALLY_PAID debts")] = True,
    debt_service: DebtService = Depends(get_debt_service),
) -> DebtListResponse:
    """List a shop's debts with totals, newest first."""
    if outstanding_only:
        debts = await debt_service.list_outstanding(shop_id, customer_id=customer_id)
    else:
        debts = await debt_service.list_shop_debts(shop_id, customer_id=customer_id)
    return DebtListResponse(
        debts=[DebtResponse.model_validate(d) for d in debts],
        summary=DebtSummaryResponse.model_validate(summarize_debts(debts)),
    )


@router.post("/shops/{shop_id}/debts/backfill", response_model=DebtBackfillResponse)
async def backfill_debts(
    shop_id: str,
    debt_service: DebtService = Depends(get_debt_service),
) -> DebtBackfillResponse:
    """Create missing debts for completed orders that still have a balance.

    Safe to call repeatedly.
    """
    created = await debt_service.ensure_debt_records_for_completed_orders(shop_id)
    return DebtBackfillResponse(
        created=[DebtResponse.model_validate(d) for d in created],
        created_count=len(created),
    )


@router.get("/debts/{debt_id}", response_model=DebtResponse)
async def get_debt(
    debt_id: str,
    debt_service: DebtService = Depends(get_debt_service),
) -> DebtResponse:
    """Get a debt by ID."""
    return DebtResponse.model_validate(await debt_service.get_debt(debt_id))


@router.post("/debts/{debt_id}/write-off", response_model=DebtResponse)
async def write_off_debt(
    debt_id: str,
    data: DebtWriteOff,
    debt_service: DebtService = Depends(get_debt_service),
) -> DebtResponse:
    """Write off an unpaid debt."""
    debt = await debt_service.write_off_debt(debt_id, notes=data.notes)
    return DebtResponse.model_validate(debt)
