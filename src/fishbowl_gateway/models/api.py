"""
Inbound request bodies.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, Field


class ExecuteRequest(BaseModel):
    command: str = Field(..., min_length=1)
    parameters: Optional[dict[str, Any]] = None


class PartTracking(BaseModel):
    id: Union[int, str]


class TrackingItem(BaseModel):
    partTracking: PartTracking
    value: Union[str, int, float]


class AddInventoryRequest(BaseModel):
    partId: Union[int, str]
    locationId: Union[int, str]
    quantity: Union[int, float]
    trackingItems: list[TrackingItem] = []
