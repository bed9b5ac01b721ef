from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from qbo_bridge.schemas.custom_fields import CustomFieldInput


class QBOEntityResponse(BaseModel):
    realm_id: str
    fetched_at: datetime
    latency_ms: float
    data: dict[str, Any]
    refreshed: Optional[bool] = None
    corrected: list[str] = Field(default_factory=list)


class EntityWriteBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    custom_fields: list[CustomFieldInput] = Field(default_factory=list, alias="customFields")
    additional_data: dict[str, Any] = Field(default_factory=dict, alias="additionalData")


class CustomerCreate(EntityWriteBase):
    display_name: str = Field(min_length=1, max_length=500, alias="displayName")


class CustomerUpdate(EntityWriteBase):
    pass


class ItemCreate(EntityWriteBase):
    name: str = Field(min_length=1, max_length=100)
    type: str = Field(default="Service", min_length=1)


class ItemUpdate(EntityWriteBase):
    pass


class InvoiceLineItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item_id: str = Field(default="", alias="itemId")
    amount: Decimal = Decimal("0")
    quantity: Optional[Decimal] = None
    description: Optional[str] = Field(default=None, max_length=4000)


class InvoiceCreate(EntityWriteBase):
    customer_id: str = Field(min_length=1, alias="customerId")
    line_items: list[InvoiceLineItem] = Field(min_length=1, alias="lineItems")


class CostOfFuelInvoiceCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    definition_id: str = Field(min_length=1, alias="definitionId")
    customer_id: str = Field(min_length=1, alias="customerId")
    item_id: str = Field(min_length=1, alias="itemId")
    fuel_cost: float = Field(default=0.0, alias="fuelCost")
    field_type: str = Field(default="NUMBER", alias="fieldType")
