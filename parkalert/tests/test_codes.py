import pytest

from parkalert.core.errors import InvalidIdentifier
from parkalert.identity.codes import (
    OWNERSHIP_KEY_RE,
    PARKING_CODE_RE,
    generate_ownership_key,
    generate_parking_code,
    hash_ownership_key,
    hash_plate,
    validate_identifier,
    validate_proof_hash,
)


def test_plate_hash_ignores_spacing_and_case():
    assert hash_plate("34 abc-123", "ParkAlert_") == hash_plate("34ABC123", "ParkAlert_")
    assert hash_plate("34ABC123", "ParkAlert_") != hash_plate("34ABC123", "other_")
    assert len(hash_plate("34ABC123")) == 64


def test_empty_plate_rejected():
    with pytest.raises(InvalidIdentifier):
        hash_plate("  - ")


def test_ownership_key_format_and_hash():
    key = generate_ownership_key()
    assert OWNERSHIP_KEY_RE.match(key)
    assert "0" not in key[3:] and "O" not in key[3:] and "1" not in key[3:] and "I" not in key[3:]
    # dashes and case do not change the proof
    assert hash_ownership_key(key) == hash_ownership_key(key.replace("-", "").lower())


def test_parking_code_is_a_valid_identifier():
    code = generate_parking_code()
    assert PARKING_CODE_RE.match(code)
    assert validate_identifier(code.lower()) == code


def test_digest_identifier_is_lowercased():
    h = hash_plate("06 XYZ 42")
    assert validate_identifier(h.upper()) == h


@pytest.mark.parametrize("value", ["", "PARK-1234", "not-a-hash", "a" * 63, "PARK-ABCD-EFGH-IJKL"])
def test_invalid_identifiers(value):
    with pytest.raises(InvalidIdentifier) as ei:
        validate_identifier(value)
    assert ei.value.extra["field"] == "identifierHash"
    assert ei.value.status_code == 422


def test_proof_hash_must_be_a_digest():
    with pytest.raises(InvalidIdentifier):
        validate_proof_hash("YB-AAAA-BBBB-CCCC-DDDD")
    assert validate_proof_hash("F" * 64) == "f" * 64
