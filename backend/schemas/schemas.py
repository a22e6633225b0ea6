from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, condecimal, field_validator

from ..constants import CHARGE_STATUSES
from ..models.models import PaymentStatus

ChargeStatus = Literal["Pending", "Paid", "Overdue"]
FeeFrequency = Literal["Monthly", "Quarterly", "Annually", "One-time"]
VerificationStatus = Literal["Verified", "Rejected"]
PositiveAmount = condecimal(gt=0, max_digits=10, decimal_places=2)


class Token(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    roles: List[str]


class TokenRefreshRequest(BaseModel):
    refresh_token: str


# --- Residents ---


class ResidentBase(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    address: str = Field(min_length=1)
    unit_number: Optional[str] = None
    is_resident: bool = True
    is_board_member: bool = False
    is_renter: bool = False


class ResidentCreate(ResidentBase):
    password: Optional[str] = Field(default=None, min_length=8)


class ResidentSignup(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    address: str = Field(min_length=1)
    unit_number: Optional[str] = None
    is_resident: bool = True
    is_renter: bool = False
    password: str = Field(min_length=8)


class ResidentUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    unit_number: Optional[str] = None
    is_resident: Optional[bool] = None
    is_board_member: Optional[bool] = None
    is_renter: Optional[bool] = None
    is_active: Optional[bool] = None
    password: Optional[str] = Field(default=None, min_length=8)
    profile_image: Optional[str] = None


class ResidentBlockUpdate(BaseModel):
    is_blocked: bool
    block_reason: Optional[str] = None


class ResidentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str]
    address: str
    unit_number: Optional[str]
    is_resident: bool
    is_renter: bool
    is_board_member: bool
    is_dev: bool
    is_active: bool
    is_blocked: bool
    block_reason: Optional[str]
    profile_image: Optional[str]
    user_type: str
    created_at: datetime
    updated_at: datetime


# --- Polls ---


class PollCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    options: List[str]
    allow_multiple_votes: bool = False
    expires_at: Optional[datetime] = None


class PollUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    options: Optional[List[str]] = None
    allow_multiple_votes: Optional[bool] = None
    expires_at: Optional[datetime] = None
    is_active: Optional[bool] = None


class PollVoteCast(BaseModel):
    selected_options: List[int]


class PollVoteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    poll_id: int
    user_id: str
    selected_options: List[int]
    created_at: datetime


class WinningOptionRead(BaseModel):
    index: int
    option: str
    votes: int
    percentage: float
    is_tied: bool
    tied_indices: List[int]


class PollRead(BaseModel):
    id: int
    title: str
    description: Optional[str]
    category: Optional[str]
    options: List[str]
    allow_multiple_votes: bool
    expires_at: Optional[datetime]
    is_active: bool
    created_by: str
    created_at: datetime
    updated_at: datetime
    option_votes: List[int]
    total_votes: int
    winning_option: Optional[WinningOptionRead]


class PollPage(BaseModel):
    items: List[PollRead]
    total: int


# --- Fees & fines ---


class SyntheticFeeRead(BaseModel):
    id: str
    name: str
    amount: Decimal
    frequency: str
    year: int
    due_date: date
    description: str
    is_late: bool
    status: ChargeStatus


class FeeCreate(BaseModel):
    name: str = Field(min_length=1)
    amount: PositiveAmount
    frequency: FeeFrequency
    due_date: date
    description: str = ""
    resident_id: Optional[int] = None
    year: Optional[int] = None


class FeeUpdate(BaseModel):
    name: Optional[str] = None
    amount: Optional[PositiveAmount] = None
    frequency: Optional[FeeFrequency] = None
    due_date: Optional[date] = None
    description: Optional[str] = None
    status: Optional[ChargeStatus] = None
    payment_method: Optional[str] = None
    external_payment_id: Optional[str] = None


class FeeMarkPaid(BaseModel):
    payment_method: str
    external_payment_id: Optional[str] = None


class FeeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    name: str
    amount: Decimal
    frequency: Optional[str]
    year: Optional[int]
    due_date: date
    date_issued: Optional[date]
    description: str
    reason: Optional[str]
    address: Optional[str]
    status: str
    is_paid: bool
    paid_at: Optional[datetime]
    payment_method: Optional[str]
    external_payment_id: Optional[str]
    resident_id: Optional[int]
    created_at: datetime
    updated_at: datetime


class YearFeesCreate(BaseModel):
    year: int = Field(ge=2000, le=2100)
    amount: Optional[PositiveAmount] = None
    description: Optional[str] = None
    skip_existing: bool = False


class YearFeesResult(BaseModel):
    year: int
    count: int
    fee_ids: List[int]
    total_amount: Decimal


class RemovedFeesResult(BaseModel):
    deleted_count: int
    year: Optional[int] = None


class HomeownerPaymentStatusRead(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str]
    address: str
    unit_number: Optional[str]
    profile_image: Optional[str]
    is_board_member: bool
    is_active: bool
    user_type: str
    has_paid: bool
    payment_status: ChargeStatus
    annual_fee_amount: Decimal


class FineCreate(BaseModel):
    reason: str = Field(min_length=1)
    amount: PositiveAmount
    date_issued: date
    due_date: date
    status: ChargeStatus = "Pending"
    description: str = ""
    resident_id: Optional[int] = None
    address: Optional[str] = None


class PropertyFineCreate(BaseModel):
    address: str = Field(min_length=1)
    homeowner_id: int
    amount: PositiveAmount
    reason: str = Field(min_length=1)
    description: Optional[str] = None
    due_date: Optional[date] = None


class FineUpdate(BaseModel):
    reason: Optional[str] = None
    amount: Optional[PositiveAmount] = None
    date_issued: Optional[date] = None
    due_date: Optional[date] = None
    status: Optional[ChargeStatus] = None
    description: Optional[str] = None
    resident_id: Optional[int] = None
    address: Optional[str] = None


class FineStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def _known_status(cls, value: str) -> str:
        if value not in CHARGE_STATUSES:
            raise ValueError(f"Status must be one of {', '.join(CHARGE_STATUSES)}")
        return value


# --- Payments ---


class PaymentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    resident_id: int
    fee_id: Optional[int]
    fine_id: Optional[int]
    fee_type: Optional[str]
    amount: Decimal
    currency: str
    status: PaymentStatus
    payment_method: str
    external_payment_id: Optional[str]
    transaction_id: Optional[str]
    venmo_username: Optional[str]
    verification_status: Optional[str]
    payment_date: date
    description: str
    metadata: Optional[Dict[str, str]] = Field(default=None, validation_alias="payment_metadata")
    created_at: datetime
    updated_at: datetime


class PaymentStatusUpdate(BaseModel):
    status: PaymentStatus

    @field_validator("status", mode="before")
    @classmethod
    def _normalize(cls, value):
        return PaymentStatus.parse(value)


class VenmoPaymentCreate(BaseModel):
    fee_type: str = Field(min_length=1)
    amount: PositiveAmount
    venmo_username: str = Field(min_length=1)
    venmo_transaction_id: str = Field(min_length=1)
    fee_id: Optional[int] = None
    fine_id: Optional[int] = None


class PaymentVerification(BaseModel):
    verification_status: VerificationStatus


class PaymentIntentCreate(BaseModel):
    amount: PositiveAmount
    description: str = ""
    fee_type: Optional[str] = None
    fee_id: Optional[int] = None
    fine_id: Optional[int] = None


class PaymentIntentRead(BaseModel):
    id: str
    client_secret: Optional[str]
    amount: int
    currency: str
    status: str
    payment_id: int


class PaymentIntentStatusRead(BaseModel):
    id: str
    status: str
    amount: int
    currency: str


class PaymentStatsRead(BaseModel):
    total_paid: Decimal
    total_pending: Decimal
    total_failed: Decimal
    total_transactions: int
    successful_transactions: int
