"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that use `from_attributes=True` MUST inherit from BaseResponseSchema.
Money amounts leaving the API use the Money type, the only place they are rounded.
"""

from decimal import Decimal
from typing import Annotated, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, PlainSerializer

from app.services.order_totals import round_for_display


def _serialize_money(value: Optional[Decimal]) -> Optional[str]:
    rounded = round_for_display(value)
    return None if rounded is None else str(rounded)


# Decimal internally, "123.45" in JSON
Money = Annotated[Decimal, PlainSerializer(_serialize_money, return_type=Optional[str], when_used="json")]


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class OrderLineResponse(BaseResponseSchema):
            id: UUID
            product_name: Optional[str] = None
            unit_price: Money
    """
    model_config = ConfigDict(
        from_attributes=True,
        # Allow population by field name or alias
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    These schemas accept string UUIDs from clients and convert to UUID objects.
    """
    model_config = ConfigDict(
        # Allow extra fields to be ignored (forward compatibility)
        extra='ignore',
    )


# Type aliases for common UUID patterns
OptionalUUID = Optional[UUID]
