from typing import Annotated, Optional
import logging

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging_config import bind_log_context
from app.database import get_db
from app.services.order_service import OrderService
from app.services.transfer_service import TransferService


logger = logging.getLogger(__name__)


async def get_actor_id(
    x_user_id: Annotated[Optional[str], Header(max_length=100)] = None,
) -> Optional[str]:
    """
    Acting user for audit fields and idempotency scoping.

    Authentication happens upstream; the gateway forwards the user id in
    the X-User-Id header.
    """
    if x_user_id:
        bind_log_context(actor_id=x_user_id)
    return x_user_id


DB = Annotated[AsyncSession, Depends(get_db)]
ActorId = Annotated[Optional[str], Depends(get_actor_id)]


def get_order_service(db: DB) -> OrderService:
    return OrderService(db)


def get_transfer_service(db: DB) -> TransferService:
    return TransferService(db)


Orders = Annotated[OrderService, Depends(get_order_service)]
Transfers = Annotated[TransferService, Depends(get_transfer_service)]
