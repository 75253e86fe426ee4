from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from parkalert.services.router import AlertAction


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# --- accounts ------------------------------------------------------------------

class AccountOut(ApiModel):
    account_id: str
    reputation_score: int
    status: str
    created_at: datetime


class ReputationOut(ApiModel):
    account_id: str
    score: int
    status: str
    tier: str
    daily_quota: Optional[int] = None
    daily_quota_remaining: Optional[int] = None
    resets_at: datetime


class ReputationEventOut(ApiModel):
    event_id: str
    event_type: str
    delta: int
    applied_delta: int
    related_alert_id: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime


class ReputationEventsPage(ApiModel):
    items: List[ReputationEventOut]


# --- identifiers -----------------------------------------------------------------

class RegisterIdentifierIn(ApiModel):
    identifier_hash: str = Field(min_length=1, max_length=128)
    proof_hash: str = Field(min_length=1, max_length=128)


class TransferIn(ApiModel):
    proof_hash: str = Field(min_length=1, max_length=128)


class RotateProofIn(ApiModel):
    current_proof_hash: str = Field(min_length=1, max_length=128)
    new_proof_hash: str = Field(min_length=1, max_length=128)


class IdentifierOut(ApiModel):
    identifier_hash: str
    owner_account_id: str
    verification_status: str
    registered_at: datetime
    updated_at: datetime


class OwnerOut(ApiModel):
    account_id: str


# --- alerts --------------------------------------------------------------------------

class SendAlertIn(ApiModel):
    sender_account_id: Optional[str] = None
    target_identifier_hash: str = Field(min_length=1, max_length=128)
    urgency: str = "normal"
    message: Optional[str] = None


class AlertActionIn(ApiModel):
    action: AlertAction
    response: Optional[str] = None


class AlertOut(ApiModel):
    alert_id: str
    sender_account_id: str
    receiver_account_id: str
    target_identifier_hash: str
    urgency_level: str
    message: Optional[str] = None
    status: str
    sent_at: datetime
    delivered_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    expires_at: datetime
    response: Optional[str] = None
    push_sent: bool = False
    push_sent_at: Optional[datetime] = None
    spam_reported: bool = False


class PolicyNotice(ApiModel):
    code: str
    message: str


class SendAlertOut(ApiModel):
    alert: AlertOut
    policy: Optional[PolicyNotice] = None


class AlertsPage(ApiModel):
    items: List[AlertOut]


# --- stats --------------------------------------------------------------------------------

class AlertStatOut(ApiModel):
    urgency: str
    status: str
    count: int
    avg_response_seconds: Optional[float] = None


class TierStatOut(ApiModel):
    tier: str
    count: int
    avg_score: Optional[float] = None


class AlertStatsOut(ApiModel):
    days: int
    items: List[AlertStatOut]


class ReputationStatsOut(ApiModel):
    items: List[TierStatOut]
