import uuid
from datetime import timedelta

from app.utils.auth import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)


def test_password_hash_round_trip():
    hashed = hash_password("correct horse battery")

    assert hashed != "correct horse battery"
    assert verify_password("correct horse battery", hashed)
    assert not verify_password("wrong password", hashed)


def test_malformed_stored_hash_does_not_verify():
    assert not verify_password("anything", "not-a-bcrypt-hash")


def test_token_carries_username_and_owner_id():
    user_id = uuid.uuid4()
    claims = decode_access_token(create_access_token("jordan", user_id=user_id))

    assert claims is not None
    assert claims.username == "jordan"
    assert claims.user_id == user_id


def test_token_without_owner_id_still_decodes():
    claims = decode_access_token(create_access_token("jordan"))

    assert claims.username == "jordan"
    assert claims.user_id is None


def test_expired_or_tampered_tokens_are_rejected():
    expired = create_access_token("jordan", expires_delta=timedelta(minutes=-1))

    assert decode_access_token(expired) is None
    assert decode_access_token(create_access_token("jordan") + "x") is None
    assert decode_access_token("not a token") is None
