import pytest
from jose import JWTError, jwt

from src.core.security import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_token_pair,
    decode_token,
    get_password_hash,
    verify_password,
)


def test_access_token_round_trip():
    token = create_access_token(subject="user-1", tenant_id="tenant-1", roles=["Admin", "QC"])

    claims = decode_token(token, expected_type=ACCESS_TOKEN_TYPE)

    assert claims["sub"] == "user-1"
    assert claims["tenant_id"] == "tenant-1"
    assert claims["roles"] == ["Admin", "QC"]
    assert claims["type"] == "access"


def test_token_pair_types():
    access, refresh = create_token_pair("user-1", "tenant-1", ["Viewer"])

    assert decode_token(refresh, expected_type=REFRESH_TOKEN_TYPE)["sub"] == "user-1"
    assert "roles" not in decode_token(refresh)
    with pytest.raises(JWTError, match="Invalid token type"):
        decode_token(refresh, expected_type=ACCESS_TOKEN_TYPE)
    with pytest.raises(JWTError):
        decode_token(access, expected_type=REFRESH_TOKEN_TYPE)


def test_foreign_signature_is_rejected():
    token = jwt.encode({"sub": "user-1", "type": "access"}, "someone-elses-secret", algorithm="HS256")
    with pytest.raises(JWTError):
        decode_token(token)


def test_password_hashing():
    hashed = get_password_hash("correct horse")

    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)
