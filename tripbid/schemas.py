from pydantic import BaseModel, Field
from typing import Literal, Optional


class Location(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class Place(Location):
    address: str = Field(..., min_length=1, max_length=500)


class TripCreate(BaseModel):
    start: Place
    end: Place
    notes: Optional[str] = Field(None, max_length=1000)


class TripStatusUpdate(BaseModel):
    # any other value is rejected by the service with "Invalid status"
    status: str = Field(..., min_length=1, max_length=20)
    reason: Optional[str] = Field(None, max_length=500)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BidCreate(BaseModel):
    amount: float = Field(..., ge=0.01)
    message: Optional[str] = Field(None, max_length=500)
    estimated_arrival_time: Optional[int] = Field(None, ge=1)


TripStatusFilter = Literal["pending", "driver_assigned", "driver_arrived", "in_progress", "completed", "cancelled"]
BidStatusFilter = Literal["pending", "accepted", "rejected"]
