"""
Delivery QR schemas.

Field names on the wire are camelCase since the payload is rendered into a
QR image by the customer app and scanned back by the driver app unchanged.
"""

from pydantic import BaseModel, Field
from typing import Optional


class QRPayload(BaseModel):
    """The signed portion of a delivery QR."""
    trip_id: int = Field(..., alias="tripId")
    customer_id: int = Field(..., alias="customerId")
    driver_id: int = Field(..., alias="driverId")
    amount: float

    class Config:
        populate_by_name = True


class SignedQRPayload(QRPayload):
    signature: str = Field(..., min_length=64, max_length=64)
    # Informational only, not covered by the signature
    company_id: Optional[int] = Field(None, alias="companyId")


class QRIssueResponse(BaseModel):
    ok: bool = True
    qr: SignedQRPayload
    confirmation_code: str
    trip_status: str


class ConfirmScanRequest(BaseModel):
    qr: SignedQRPayload


class ConfirmScanResponse(BaseModel):
    ok: bool = True
    message: str = "Delivery confirmed"
    trip_id: int
    order_id: Optional[int]
    trip_status: str
    order_status: Optional[str]
