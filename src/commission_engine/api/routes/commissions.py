"""Commission processing API endpoints."""

from datetime import datetime, timezone
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, Request, status

from commission_engine.api.dependencies import Chargebacks, Commissions
from commission_engine.api.schemas import (
    BatchResponse,
    CalculationResponse,
    ChargebackResponse,
    DisputeClosedRequest,
    DisputeClosedResponse,
    DisputeOpenedRequest,
    ErrorResponse,
    LedgerEntryResponse,
    PayoutPeriodResponse,
    PeriodListResponse,
    RefundRequest,
)
from commission_engine.calculators.basis import basis_to_dict
from commission_engine.calculators.engine import CalculationResult
from commission_engine.calculators.payout_period import list_periods, period_for
from commission_engine.exceptions import (
    ConcurrentProcessingError,
    DisputeNotFoundError,
    InputReadError,
    PaymentNotEligibleError,
    PaymentNotFoundError,
    PersistenceError,
    RecalculationRefusedError,
)

router = APIRouter(prefix="/commissions", tags=["commissions"])


def _calculation_response(
    result: CalculationResult, entries_written: int = 0
) -> CalculationResponse:
    return CalculationResponse(
        payment_id=result.payment_id,
        outcome=result.outcome.value,
        client_id=result.client_id,
        net_pool=result.net_pool,
        total_commission=result.total_commission,
        period=(
            PayoutPeriodResponse.model_validate(result.period) if result.period else None
        ),
        calculation_id=result.calculation_id,
        entries=[
            LedgerEntryResponse(
                user_id=entry.user_id,
                role=entry.role.value,
                entry_type=entry.entry_type.value,
                commission_amount=entry.commission_amount,
                gross_amount=entry.gross_amount,
                net_amount=entry.net_amount,
                split_percentage=entry.split_percentage,
                calculation_basis=basis_to_dict(entry.basis),
            )
            for entry in result.entries
        ],
        entries_written=entries_written,
    )


def _not_found(e: PaymentNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


# ============================================================================
# Processing
# ============================================================================


@router.post(
    "/payments/{payment_id}/calculate",
    response_model=CalculationResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
def calculate_payment(
    service: Commissions,
    payment_id: Annotated[UUID, Path()],
) -> CalculationResponse:
    """Calculate and persist commissions for a payment."""
    try:
        result = service.process_payment(payment_id)
    except PaymentNotFoundError as e:
        raise _not_found(e)
    except (ConcurrentProcessingError, PaymentNotEligibleError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except (PersistenceError, InputReadError) as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)
        )

    if result.calculation is None:
        return CalculationResponse(payment_id=payment_id, outcome=result.outcome.value)
    return _calculation_response(result.calculation, result.entries_written)


@router.post(
    "/payments/{payment_id}/recalculate",
    response_model=CalculationResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
def recalculate_payment(
    service: Commissions,
    payment_id: Annotated[UUID, Path()],
) -> CalculationResponse:
    """Void pending commissions for a payment and calculate them again."""
    try:
        result = service.recalculate(payment_id)
    except PaymentNotFoundError as e:
        raise _not_found(e)
    except (
        RecalculationRefusedError,
        ConcurrentProcessingError,
        PaymentNotEligibleError,
    ) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except (PersistenceError, InputReadError) as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)
        )

    if result.calculation is None:
        return CalculationResponse(payment_id=payment_id, outcome=result.outcome.value)
    return _calculation_response(result.calculation, result.entries_written)


@router.get(
    "/payments/{payment_id}/preview",
    response_model=CalculationResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
def preview_payment(
    service: Commissions,
    payment_id: Annotated[UUID, Path()],
) -> CalculationResponse:
    """Dry-run the calculation for a payment; nothing is persisted."""
    try:
        result = service.preview(payment_id)
    except PaymentNotFoundError as e:
        raise _not_found(e)
    except InputReadError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)
        )
    return _calculation_response(result)


@router.post("/process-pending", response_model=BatchResponse)
def process_pending(
    service: Commissions,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> BatchResponse:
    """Process unprocessed payments, oldest first."""
    batch = service.process_pending(limit=limit)
    return BatchResponse(
        attempted=batch.attempted,
        processed=batch.processed,
        flagged=batch.flagged,
        skipped=batch.skipped,
        failed=batch.failed,
    )


# ============================================================================
# Chargebacks
# ============================================================================


@router.post(
    "/payments/{payment_id}/refund",
    response_model=ChargebackResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def refund_payment(
    service: Chargebacks,
    payment_id: Annotated[UUID, Path()],
    payload: RefundRequest,
) -> ChargebackResponse:
    """Charge back commissions for a refunded payment."""
    try:
        result = service.handle_refund(
            payment_id,
            payload.refund_amount,
            payload.refund_reference,
            refunded_at=payload.refunded_at,
        )
    except PaymentNotFoundError as e:
        raise _not_found(e)
    except ConcurrentProcessingError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return ChargebackResponse.model_validate(result)


@router.post(
    "/payments/{payment_id}/disputes",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def open_dispute(
    service: Chargebacks,
    payment_id: Annotated[UUID, Path()],
    payload: DisputeOpenedRequest,
) -> None:
    """Mark a payment as disputed."""
    try:
        service.handle_dispute_opened(payment_id, payload.dispute_id, payload.dispute_status)
    except PaymentNotFoundError as e:
        raise _not_found(e)
    except ConcurrentProcessingError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.post(
    "/disputes/{dispute_id}/close",
    response_model=DisputeClosedResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def close_dispute(
    service: Chargebacks,
    dispute_id: Annotated[str, Path(min_length=1)],
    payload: DisputeClosedRequest,
) -> DisputeClosedResponse:
    """Settle a dispute; a lost dispute charges back like a full refund."""
    try:
        result = service.handle_dispute_closed(
            dispute_id,
            payload.dispute_status,
            amount=payload.amount,
            closed_at=payload.closed_at,
        )
    except DisputeNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ConcurrentProcessingError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return DisputeClosedResponse(
        dispute_id=dispute_id,
        dispute_status=payload.dispute_status,
        chargeback=ChargebackResponse.model_validate(result) if result is not None else None,
    )


# ============================================================================
# Periods and settings
# ============================================================================


@router.get("/periods", response_model=PeriodListResponse)
def get_periods(
    past: Annotated[int, Query(ge=0, le=52)] = 12,
    future: Annotated[int, Query(ge=0, le=26)] = 4,
) -> PeriodListResponse:
    """List payout periods around today, newest first."""
    today = datetime.now(timezone.utc)
    return PeriodListResponse(
        current=PayoutPeriodResponse.model_validate(period_for(today)),
        items=[
            PayoutPeriodResponse.model_validate(p)
            for p in list_periods(today, past=past, future=future)
        ],
    )


@router.post("/settings/invalidate", status_code=status.HTTP_204_NO_CONTENT)
def invalidate_settings(request: Request) -> None:
    """Drop cached commission settings so the next calculation reloads them."""
    request.app.state.settings_provider.invalidate()
