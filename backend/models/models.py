from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship as orm_relationship

from ..config import Base
from ..constants import (
    FEE_TYPE_FEE,
    ROLE_BOARD,
    ROLE_DEV,
    ROLE_HOMEOWNER,
    ROLE_RENTER,
    ROLE_RESIDENT,
    STATUS_PAID,
    STATUS_PENDING,
    USER_TYPE_BOARD_MEMBER,
    USER_TYPE_HOMEOWNER,
    USER_TYPE_NON_RESIDENT,
    USER_TYPE_RENTER,
)
from ..core.clock import utcnow


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @classmethod
    def parse(cls, value) -> "PaymentStatus":
        """Accept enum members, canonical values and the legacy ``Paid`` label."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        if normalized == "paid":
            return cls.SUCCEEDED
        if normalized == "cancelled":
            return cls.CANCELED
        try:
            return cls(normalized)
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise ValueError(f"Unknown payment status '{value}'. Expected one of {allowed}.") from None


class Resident(Base):
    __tablename__ = "residents"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    phone = Column(String, nullable=True)
    address = Column(String, nullable=False)
    unit_number = Column(String, nullable=True)
    is_resident = Column(Boolean, default=True, nullable=False)
    is_renter = Column(Boolean, default=False, nullable=False)
    is_board_member = Column(Boolean, default=False, nullable=False)
    is_dev = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_blocked = Column(Boolean, default=False, nullable=False)
    block_reason = Column(Text, nullable=True)
    hashed_password = Column(String, nullable=True)
    profile_image = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    charges = orm_relationship("Fee", back_populates="resident")
    payments = orm_relationship("Payment", back_populates="resident", cascade="all, delete-orphan")
    audit_logs = orm_relationship("AuditLog", back_populates="actor")

    @property
    def is_homeowner(self) -> bool:
        return bool(self.is_resident) and not self.is_renter

    @property
    def user_type(self) -> str:
        if self.is_homeowner:
            return USER_TYPE_BOARD_MEMBER if self.is_board_member else USER_TYPE_HOMEOWNER
        if self.is_renter:
            return USER_TYPE_RENTER
        return USER_TYPE_NON_RESIDENT

    @property
    def role_names(self) -> set[str]:
        roles = {ROLE_RESIDENT}
        if self.is_homeowner:
            roles.add(ROLE_HOMEOWNER)
        if self.is_renter:
            roles.add(ROLE_RENTER)
        if self.is_board_member:
            roles.add(ROLE_BOARD)
        if self.is_dev:
            roles.add(ROLE_DEV)
        return roles

    def has_any_role(self, *role_names: str) -> bool:
        roles = self.role_names
        return any(name in roles for name in role_names)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime, default=utcnow, index=True, nullable=False)
    actor_resident_id = Column(Integer, ForeignKey("residents.id", ondelete="SET NULL"), nullable=True)
    action = Column(String, nullable=False)
    target_entity_type = Column(String, nullable=True)
    target_entity_id = Column(String, nullable=True)
    before = Column(Text, nullable=True)
    after = Column(Text, nullable=True)

    actor = orm_relationship("Resident", back_populates="audit_logs")


class Poll(Base):
    __tablename__ = "polls"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True, index=True)
    options = Column(JSON, nullable=False)
    allow_multiple_votes = Column(Boolean, default=False, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_by = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    votes = orm_relationship("PollVote", back_populates="poll")


class PollVote(Base):
    __tablename__ = "poll_votes"
    __table_args__ = (UniqueConstraint("poll_id", "user_id", name="uq_poll_votes_poll_user"),)

    id = Column(Integer, primary_key=True, index=True)
    poll_id = Column(Integer, ForeignKey("polls.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    selected_options = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    poll = orm_relationship("Poll", back_populates="votes")


class Fee(Base):
    """A persisted charge. Fines share the table and are tagged ``type == "Fine"``."""

    __tablename__ = "fees"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String, nullable=False, default=FEE_TYPE_FEE, index=True)
    name = Column(String, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    frequency = Column(String, nullable=True)
    year = Column(Integer, nullable=True, index=True)
    due_date = Column(Date, nullable=False)
    date_issued = Column(Date, nullable=True)
    description = Column(Text, nullable=False, default="")
    reason = Column(String, nullable=True)
    address = Column(String, nullable=True)
    status = Column(String, nullable=False, default=STATUS_PENDING, index=True)
    paid_at = Column(DateTime, nullable=True)
    payment_method = Column(String, nullable=True)
    external_payment_id = Column(String, nullable=True)
    resident_id = Column(Integer, ForeignKey("residents.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    resident = orm_relationship("Resident", back_populates="charges")

    @property
    def is_paid(self) -> bool:
        return self.status == STATUS_PAID


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    resident_id = Column(Integer, ForeignKey("residents.id", ondelete="CASCADE"), nullable=False, index=True)
    fee_id = Column(Integer, ForeignKey("fees.id", ondelete="SET NULL"), nullable=True, index=True)
    fine_id = Column(Integer, ForeignKey("fees.id", ondelete="SET NULL"), nullable=True, index=True)
    fee_type = Column(String, nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String, nullable=False, default="usd")
    status = Column(String, nullable=False, default=PaymentStatus.PENDING.value, index=True)
    payment_method = Column(String, nullable=False)
    external_payment_id = Column(String, nullable=True, index=True)
    transaction_id = Column(String, nullable=True, index=True)
    venmo_username = Column(String, nullable=True)
    verification_status = Column(String, nullable=True)
    payment_date = Column(Date, nullable=False)
    description = Column(Text, nullable=False, default="")
    payment_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    resident = orm_relationship("Resident", back_populates="payments")
    fee = orm_relationship("Fee", foreign_keys=[fee_id])
    fine = orm_relationship("Fee", foreign_keys=[fine_id])
