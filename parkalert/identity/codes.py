"""
Identifier formats and the client-side hashing scheme.

The server only ever sees digests: a licence plate travels as a salted
SHA-256 of its normalised text, an anonymous parking code travels as-is
(``PARK-XXXX-XXXX``), and the ownership key never leaves the device except
as its SHA-256. The generators here mirror what the mobile client does so
scripts and tests can produce realistic values.
"""
from __future__ import annotations

import hashlib
import re
import secrets

from parkalert.core.errors import InvalidIdentifier

PARKING_CODE_RE = re.compile(r"^PARK-[A-Z0-9]{4}-[A-Z0-9]{4}$")
DIGEST_RE = re.compile(r"^[0-9a-f]{64}$")
OWNERSHIP_KEY_RE = re.compile(r"^YB(-[A-HJ-NP-Z2-9]{4}){4}$")

# no 0/O or 1/I: keys are read aloud and typed by hand
KEY_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def is_parking_code(value: str) -> bool:
    return bool(PARKING_CODE_RE.match(value or ""))


def is_digest(value: str) -> bool:
    return bool(DIGEST_RE.match(value or ""))


def validate_identifier(value: str) -> str:
    """Accept a parking code or a plate digest; anything else is rejected."""
    v = (value or "").strip()
    if is_parking_code(v.upper()):
        return v.upper()
    if is_digest(v.lower()):
        return v.lower()
    raise InvalidIdentifier(
        "identifier must be a PARK-XXXX-XXXX code or a 64-character hex digest",
        field="identifierHash",
    )


def validate_proof_hash(value: str, field: str = "proofHash") -> str:
    v = (value or "").strip().lower()
    if not is_digest(v):
        raise InvalidIdentifier("ownership proof must be a 64-character hex digest", field=field)
    return v


def normalize_plate(plate: str) -> str:
    return re.sub(r"[\s\-]", "", plate or "").upper()


def hash_plate(plate: str, salt: str = "") -> str:
    normalized = normalize_plate(plate)
    if not normalized:
        raise InvalidIdentifier("plate is empty", field="plate")
    return hashlib.sha256(f"{salt}{normalized}".encode("utf-8")).hexdigest()


def hash_ownership_key(key: str) -> str:
    normalized = (key or "").replace("-", "").strip().upper()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def generate_ownership_key() -> str:
    groups = ["".join(secrets.choice(KEY_ALPHABET) for _ in range(4)) for _ in range(4)]
    return "YB-" + "-".join(groups)


def generate_parking_code() -> str:
    a = "".join(secrets.choice(CODE_ALPHABET) for _ in range(4))
    b = "".join(secrets.choice(CODE_ALPHABET) for _ in range(4))
    return f"PARK-{a}-{b}"
