"""FastAPI dependency injection helpers."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.realtime.registry import PositionRegistry
from src.realtime.router import EventRouter
from src.services.orders import OrderLifecycleManager
from src.services.settlement import SettlementWorkflow


async def get_db(request: Request) -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_router(request: Request) -> EventRouter:
    return request.app.state.router


def get_registry(request: Request) -> PositionRegistry:
    return request.app.state.registry


def get_orders(
    request: Request,
    db: AsyncSession = Depends(get_db),
    router: EventRouter = Depends(get_router),
) -> OrderLifecycleManager:
    return OrderLifecycleManager(db, router, pricing=request.app.state.pricing)


def get_settlement(
    db: AsyncSession = Depends(get_db),
    router: EventRouter = Depends(get_router),
) -> SettlementWorkflow:
    return SettlementWorkflow(db, router)
