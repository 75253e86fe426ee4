# parkalert/db/models.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class Base(DeclarativeBase):
    pass


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend (SQLite drops tzinfo)."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


JSONType = JSON().with_variant(JSONB(), "postgresql")


class AccountStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class VerificationStatus(str, Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    DISPUTED = "disputed"


class Urgency(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class AlertStatus(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({AlertStatus.RESOLVED, AlertStatus.EXPIRED, AlertStatus.CANCELLED})
OPEN_STATUSES = frozenset(set(AlertStatus) - TERMINAL_STATUSES)


class ReputationEventType(str, Enum):
    ALERT_SENT = "alert_sent"
    QUICK_RESPONSE = "quick_response"
    ALERT_ACKNOWLEDGED = "alert_acknowledged"
    ALERT_RESOLVED = "alert_resolved"
    SPAM_REPORT = "spam_report"
    PENALTY = "penalty"


class SecurityEventType(str, Enum):
    RAPID_ALERTS = "rapid_alerts"
    RAPID_REGISTRATIONS = "rapid_registrations"
    SUSPICIOUS_PATTERN = "suspicious_pattern"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Account(Base):
    __tablename__ = "accounts"

    account_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    reputation_score: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=AccountStatus.ACTIVE.value)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    last_active_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)


class Identifier(Base):
    __tablename__ = "identifiers"

    identifier_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_account_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=False
    )
    verification_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=VerificationStatus.VERIFIED.value
    )
    ownership_proof_hash: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    registered_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)


class Alert(Base):
    __tablename__ = "alerts"

    alert_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    sender_account_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=False
    )
    receiver_account_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=False
    )
    target_identifier_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    urgency_level: Mapped[str] = mapped_column(String(16), nullable=False, default=Urgency.NORMAL.value)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=AlertStatus.SENT.value)
    sent_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    push_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    push_sent_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    spam_reported: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class ReputationEvent(Base):
    __tablename__ = "reputation_events"

    event_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    account_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    applied_delta: Mapped[int] = mapped_column(Integer, nullable=False)
    related_alert_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)


class SecurityEvent(Base):
    __tablename__ = "security_events"

    event_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    account_id: Mapped[Optional[str]] = mapped_column(
        String(64), ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=True
    )
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    details: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    action_taken: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)


class RegistrationAttempt(Base):
    __tablename__ = "registration_attempts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    origin_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    account_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    identifier_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)


Index("ix_identifiers_owner", Identifier.owner_account_id)
Index("ix_alerts_sender_sent", Alert.sender_account_id, Alert.sent_at)
Index("ix_alerts_receiver", Alert.receiver_account_id)
Index("ix_alerts_target", Alert.target_identifier_hash)
Index("ix_alerts_status_expires", Alert.status, Alert.expires_at)
Index("ix_reputation_events_account", ReputationEvent.account_id)
Index("ix_security_events_account", SecurityEvent.account_id)
Index("ix_security_events_type_ts", SecurityEvent.event_type, SecurityEvent.created_at)
Index("ix_registration_attempts_origin_ts", RegistrationAttempt.origin_hash, RegistrationAttempt.created_at)
