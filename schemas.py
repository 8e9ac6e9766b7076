"""
Database Schemas for the Asset Manager

Each stored model below describes one MongoDB collection; the payload models
further down validate incoming request bodies before they reach business
logic. Payloads reject unknown fields.

- User -> "users"
- Package -> "package_collection"
- Asset -> "asset_collection"
- AssetRequest -> "request_collection"
- Payment -> "payments"
- Affiliation -> "affiliations"
- AssignedAsset -> "assigned_assets"
"""

from datetime import date, datetime
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

Role = Literal["hr", "employee"]
RequestStatus = Literal["pending", "approved", "rejected"]
AssignmentStatus = Literal["assigned", "returned"]

PENDING_NOTE = "Please wait ,HR will approve soon"


class User(BaseModel):
    name: Optional[str] = None
    email: EmailStr = Field(..., description="Unique email")
    role: Role = Field("employee", description="hr accounts manage assets and teams")
    packageLimit: int = Field(0, ge=0, description="Employee seats purchased so far")
    subscription: Optional[str] = Field(None, description="Name of the last purchased package")
    createdAt: datetime


class Package(BaseModel):
    name: str
    employeeLimit: int = Field(..., ge=1)
    price: float = Field(..., ge=0)


class Asset(BaseModel):
    productName: str
    productType: Optional[str] = None
    availableQuantity: int
    hrEmail: Optional[EmailStr] = None
    companyName: Optional[str] = None
    dataAdded: datetime


class AssetRequest(BaseModel):
    assetId: str
    assetName: Optional[str] = None
    assetType: Optional[str] = None
    requesterName: Optional[str] = None
    requesterEmail: EmailStr
    hrEmail: EmailStr
    companyName: Optional[str] = None
    additionalNote: Optional[str] = None
    requestStatus: RequestStatus = "pending"
    requestDate: datetime
    approvalDate: Optional[datetime] = None
    note: str = PENDING_NOTE


class Payment(BaseModel):
    hrEmail: EmailStr
    packageName: str
    employeeLimit: int
    amount: int = Field(..., description="Amount in minor currency units as charged by the gateway")
    currency: Optional[str] = None
    transactionId: str
    paymentDate: datetime
    status: str


class Affiliation(BaseModel):
    employeeEmail: EmailStr
    employeeName: Optional[str] = None
    hrEmail: EmailStr
    companyName: Optional[str] = None
    companyLogo: Optional[str] = None
    affiliationDate: datetime
    status: Literal["active"] = "active"


class AssignedAsset(BaseModel):
    employeeEmail: EmailStr
    employeeName: Optional[str] = None
    assetId: str
    assetName: Optional[str] = None
    assetType: Optional[str] = None
    hrEmail: EmailStr
    companyName: Optional[str] = None
    assignedDate: datetime
    status: AssignmentStatus = "assigned"
    returnDate: Optional[datetime] = None


# ----------------------------
# Request payloads
# ----------------------------
class Payload(BaseModel):
    model_config = ConfigDict(extra="forbid")


class UserCreate(Payload):
    name: Optional[str] = None
    email: EmailStr
    role: Role = "employee"
    photo: Optional[str] = None
    dateOfBirth: Optional[date] = None
    companyName: Optional[str] = None
    companyLogo: Optional[str] = None


class AssetCreate(Payload):
    productName: str = Field(..., min_length=1)
    productType: Optional[str] = None
    availableQuantity: int = Field(..., ge=0)
    hrEmail: Optional[EmailStr] = None
    companyName: Optional[str] = None


class AssetRequestCreate(Payload):
    assetId: str
    assetName: Optional[str] = None
    assetType: Optional[str] = None
    requesterName: Optional[str] = None
    requesterEmail: EmailStr
    hrEmail: EmailStr
    companyName: Optional[str] = None
    companyLogo: Optional[str] = None
    additionalNote: Optional[str] = None


class CheckoutCreate(Payload):
    packageName: str
    price: float = Field(..., gt=0)
    employeeLimit: int = Field(..., ge=1)
    email: EmailStr


class RequestStatusUpdate(Payload):
    """Approve or reject a pending request.

    Assignment fields left empty fall back to what the stored request holds.
    """
    status: Literal["approved", "rejected"]
    assetId: Optional[str] = None
    employeeEmail: Optional[EmailStr] = None
    employeeName: Optional[str] = None
    assetName: Optional[str] = None
    assetType: Optional[str] = None
    hrEmail: Optional[EmailStr] = None
    companyName: Optional[str] = None
    companyLogo: Optional[str] = None


class CheckoutSession(BaseModel):
    """The subset of a gateway checkout session the reconciliation reads."""
    id: str
    url: Optional[str] = None
    payment_status: Optional[str] = None
    customer_email: Optional[str] = None
    payment_intent: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None
