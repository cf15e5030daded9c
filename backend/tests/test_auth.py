import pytest

from interview_room.auth import AuthError, resolve_user_id_from_token


def test_valid_token_returns_id_claim(make_token, jwt_secret):
    assert resolve_user_id_from_token(make_token("user-42"), jwt_secret) == "user-42"


def test_sub_claim_is_accepted_as_fallback(make_token, jwt_secret):
    assert resolve_user_id_from_token(make_token("user-7", claim="sub"), jwt_secret) == "user-7"


def test_expired_token_is_reported_as_expired(make_token, jwt_secret):
    with pytest.raises(AuthError) as exc_info:
        resolve_user_id_from_token(make_token(expires_in=-60), jwt_secret)

    assert exc_info.value.expired is True
    assert exc_info.value.message == "Token expired"


def test_wrong_signature_is_rejected(make_token, jwt_secret):
    with pytest.raises(AuthError) as exc_info:
        resolve_user_id_from_token(make_token(secret="other-secret"), jwt_secret)

    assert exc_info.value.expired is False
    assert exc_info.value.message == "Invalid or expired token"


def test_garbage_token_is_rejected(jwt_secret):
    with pytest.raises(AuthError):
        resolve_user_id_from_token("not-a-jwt", jwt_secret)


def test_missing_secret_rejects_everything(make_token):
    with pytest.raises(AuthError):
        resolve_user_id_from_token(make_token(), "")
