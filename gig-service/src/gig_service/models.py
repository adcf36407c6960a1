import enum
import uuid
from sqlalchemy import Column, Enum, ForeignKey, Numeric, String, Text, TIMESTAMP, JSON, func
from sqlalchemy.dialects.postgresql import JSONB
from gig_service.db import Base

JSONVariant = JSON().with_variant(JSONB(), "postgresql")


def _uuid() -> str:
    return str(uuid.uuid4())


class GigStatus(str, enum.Enum):
    PENDING_WORKER_ACCEPTANCE = "PENDING_WORKER_ACCEPTANCE"
    ACCEPTED = "ACCEPTED"
    IN_PROGRESS = "IN_PROGRESS"
    PENDING_COMPLETION_WORKER = "PENDING_COMPLETION_WORKER"
    PENDING_COMPLETION_BUYER = "PENDING_COMPLETION_BUYER"
    COMPLETED = "COMPLETED"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    PAID = "PAID"
    DECLINED_BY_WORKER = "DECLINED_BY_WORKER"
    CANCELLED_BY_BUYER = "CANCELLED_BY_BUYER"
    CANCELLED_BY_WORKER = "CANCELLED_BY_WORKER"
    CANCELLED_BY_ADMIN = "CANCELLED_BY_ADMIN"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    REFUNDED = "REFUNDED"


class Role(str, enum.Enum):
    BUYER = "buyer"
    WORKER = "worker"


class OfferAction(str, enum.Enum):
    ACCEPT = "accept"
    CANCEL = "cancel"
    START = "start"
    COMPLETE = "complete"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    firebase_uid = Column(String(128), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    stripe_customer_id = Column(String(255), nullable=True)
    stripe_connect_account_id = Column(String(255), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())


class Gig(Base):
    __tablename__ = "gigs"

    id = Column(String(36), primary_key=True, default=_uuid)
    buyer_user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    worker_user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    title = Column(String(255), nullable=False, default="")
    full_description = Column(Text, nullable=True)
    notes_for_worker = Column(Text, nullable=True)
    address_json = Column(JSONVariant, nullable=True)
    exact_location = Column(String(255), nullable=True)
    start_time = Column(TIMESTAMP(timezone=True), nullable=False)
    end_time = Column(TIMESTAMP(timezone=True), nullable=False)
    expires_at = Column(TIMESTAMP(timezone=True), nullable=True)
    agreed_rate = Column(Numeric(10, 2), nullable=False)
    total_agreed_price = Column(Numeric(12, 2), nullable=True)
    tip_amount = Column(Numeric(10, 2), nullable=True)
    status = Column(
        Enum(GigStatus, name="gig_status", native_enum=False, length=32),
        nullable=False,
        default=GigStatus.PENDING_WORKER_ACCEPTANCE,
    )
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), onupdate=func.now())


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=_uuid)
    gig_id = Column(String(36), ForeignKey("gigs.id"), nullable=False, index=True)
    stripe_payment_intent_id = Column(String(255), nullable=True)
    stripe_charge_id = Column(String(255), nullable=True)
    payer_user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    receiver_user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    # minor currency units
    amount_gross = Column(Numeric(12, 2), nullable=False)
    able_fee_amount = Column(Numeric(12, 2), nullable=False, default=0)
    amount_net_to_worker = Column(Numeric(12, 2), nullable=False, default=0)
    stripe_fee_amount = Column(Numeric(12, 2), nullable=False, default=0)
    internal_notes = Column(Text, nullable=True)
    status = Column(
        Enum(PaymentStatus, name="payment_status", native_enum=False, length=16),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), onupdate=func.now())


class GigOutbox(Base):
    __tablename__ = "gig_outbox"

    id = Column(String(36), primary_key=True, default=_uuid)
    aggregate_id = Column(String(36), nullable=False)
    event_type = Column(String(50), nullable=False)
    payload = Column(JSONVariant, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    published_at = Column(TIMESTAMP(timezone=True), nullable=True)
