"""Error taxonomy shared by the services and the HTTP layer.

Four families, each with its own retry contract:

- ``ClientError``: bad input or a forbidden/invalid transition. Never retried.
- ``ConflictError``: another party already holds the resource. The caller may
  retry with corrected input.
- ``PolicyError``: a reputation or abuse policy applies. Carries enough detail
  (tier, quota, reset time) for the client to explain it to the user.
- ``TransientError``: a collaborator is unavailable. Safe to retry with backoff.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ParkAlertError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str, *, code: Optional[str] = None, **extra: Any):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.extra: Dict[str, Any] = extra

    def to_error_response(self) -> Dict[str, Any]:
        detail: Dict[str, Any] = {"code": self.code, "message": self.message}
        detail.update(self.extra)
        return {"error": detail}


# --- client errors -----------------------------------------------------------

class ClientError(ParkAlertError):
    status_code = 400
    code = "client_error"


class InvalidRequest(ClientError):
    status_code = 422
    code = "invalid_request"


class InvalidIdentifier(InvalidRequest):
    code = "invalid_identifier"


class SelfAlert(ClientError):
    status_code = 422
    code = "self_alert"

    def __init__(self, message: str = "you cannot send an alert to your own identifier", **extra: Any):
        super().__init__(message, **extra)


class Unauthenticated(ClientError):
    status_code = 401
    code = "unauthenticated"

    def __init__(self, message: str = "missing X-Account-Id header", **extra: Any):
        super().__init__(message, **extra)


class Forbidden(ClientError):
    status_code = 403
    code = "forbidden"


class NotOwner(Forbidden):
    code = "not_owner"

    def __init__(self, message: str = "this identifier is not registered to you", **extra: Any):
        super().__init__(message, **extra)


class NotReceiver(Forbidden):
    code = "not_receiver"

    def __init__(self, message: str = "not your alert to answer", **extra: Any):
        super().__init__(message, **extra)


class NotSender(Forbidden):
    code = "not_sender"

    def __init__(self, message: str = "only the sender can cancel this alert", **extra: Any):
        super().__init__(message, **extra)


class InvalidState(ClientError):
    status_code = 409
    code = "invalid_state"


class NotFound(ClientError):
    status_code = 404
    code = "not_found"


class IdentifierNotFound(NotFound):
    code = "identifier_not_found"

    def __init__(self, message: str = "no vehicle is registered with this identifier", **extra: Any):
        super().__init__(message, **extra)


class AlertNotFound(NotFound):
    code = "alert_not_found"

    def __init__(self, message: str = "alert not found", **extra: Any):
        super().__init__(message, **extra)


class AccountNotFound(NotFound):
    code = "account_not_found"

    def __init__(self, message: str = "account not found", **extra: Any):
        super().__init__(message, **extra)


# --- conflicts -----------------------------------------------------------------

class ConflictError(ParkAlertError):
    status_code = 409
    code = "conflict"


class AlreadyRegistered(ConflictError):
    code = "already_registered"

    def __init__(self, message: str = "this identifier is already registered", **extra: Any):
        super().__init__(message, **extra)


class ProofMismatch(ConflictError):
    code = "proof_mismatch"

    def __init__(self, message: str = "ownership key does not match", **extra: Any):
        super().__init__(message, **extra)


# --- policy --------------------------------------------------------------------

class PolicyError(ParkAlertError):
    status_code = 429
    code = "policy"


class QuotaExceeded(PolicyError):
    code = "quota_exceeded"


class TooManyIdentifiers(PolicyError):
    code = "too_many_identifiers"


class AccountSuspended(PolicyError):
    status_code = 403
    code = "account_suspended"

    def __init__(self, message: str = "this account is suspended", **extra: Any):
        super().__init__(message, **extra)


# --- transient -----------------------------------------------------------------

class TransientError(ParkAlertError):
    status_code = 503
    code = "unavailable"

    def to_error_response(self) -> Dict[str, Any]:
        # internals stay in the logs
        return {"error": {"code": self.code, "message": "temporarily unavailable, try again"}}


class StorageUnavailable(TransientError):
    code = "storage_unavailable"
