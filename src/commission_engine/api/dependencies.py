"""FastAPI dependencies for dependency injection."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from commission_engine.services import ChargebackService, CommissionService


def get_db_session(request: Request) -> Generator[Session, None, None]:
    """Get database session dependency."""
    session_factory = request.app.state.session_factory
    with session_factory() as session:
        yield session


# Type aliases for cleaner dependency injection
DbSession = Annotated[Session, Depends(get_db_session)]


def get_commission_service(request: Request, db: DbSession) -> CommissionService:
    """Commission service bound to the request's session."""
    state = request.app.state
    return CommissionService(
        db,
        settings_provider=state.settings_provider,
        emitter=state.emitter,
        engine_version=state.engine_version,
        retry_policy=state.read_retry,
    )


def get_chargeback_service(request: Request, db: DbSession) -> ChargebackService:
    """Chargeback service bound to the request's session."""
    return ChargebackService(db, emitter=request.app.state.emitter)


Commissions = Annotated[CommissionService, Depends(get_commission_service)]
Chargebacks = Annotated[ChargebackService, Depends(get_chargeback_service)]
