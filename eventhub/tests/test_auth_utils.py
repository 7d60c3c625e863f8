import pytest
import jwt
from datetime import datetime, timedelta, timezone

from eventhub.auth_service import credentials
from eventhub.auth_service import utils
from eventhub.auth_service.utils import (
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
    require_event_access,
    require_owner_or_roles,
    verify_token_from_request,
)

from conftest import ADMIN, ATTENDEE, ORGANIZER


def test_create_access_token():
    token = create_access_token(123, ["admin"])

    assert isinstance(token, str)

    payload = jwt.decode(token, "test_access_secret", algorithms=["HS256"])
    assert payload["sub"] == "123"
    assert payload["roles"] == ["admin"]
    assert payload["type"] == "access"
    assert "exp" in payload
    assert "iat" in payload


def test_access_and_refresh_tokens_use_separate_secrets():
    refresh = create_refresh_token(5, ["attendee"])

    assert decode_refresh_token(refresh)["sub"] == "5"
    with pytest.raises(jwt.InvalidTokenError):
        decode_access_token(refresh)


def test_refresh_token_signed_with_access_secret_is_rejected():
    now = datetime.now(timezone.utc)
    forged = jwt.encode(
        {"sub": "5", "type": "refresh", "exp": now + timedelta(days=1)},
        utils.ACCESS_TOKEN_SECRET,
        algorithm="HS256",
    )
    with pytest.raises(jwt.InvalidTokenError):
        decode_refresh_token(forged)


def test_verify_token_from_request_valid(app, mocker):
    mocker.patch("eventhub.auth_service.utils.load_user", return_value=dict(ORGANIZER))
    token = create_access_token(ORGANIZER["user_id"], ORGANIZER["roles"])

    with app.test_request_context(headers={"Authorization": f"Bearer {token}"}):
        user, err, code = verify_token_from_request()
        assert user["user_id"] == ORGANIZER["user_id"]
        assert err is None
        assert code is None

    utils.load_user.assert_called_once_with(ORGANIZER["user_id"])


def test_verify_token_from_request_missing_header(app):
    with app.test_request_context():
        user, err, code = verify_token_from_request()
        assert user is None
        assert code == 401
        assert err.json["message"] == "No token provided"
        assert err.json["success"] is False


def test_verify_token_from_request_invalid_format(app):
    with app.test_request_context(headers={"Authorization": "InvalidFormat"}):
        user, err, code = verify_token_from_request()
        assert user is None
        assert code == 401


def test_verify_token_from_request_expired(app):
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    token = jwt.encode(
        {"sub": "1", "type": "access", "roles": ["attendee"], "iat": past, "exp": past + timedelta(minutes=15)},
        utils.ACCESS_TOKEN_SECRET,
        algorithm="HS256",
    )

    with app.test_request_context(headers={"Authorization": f"Bearer {token}"}):
        user, err, code = verify_token_from_request()
        assert user is None
        assert code == 401
        assert err.json["message"] == "Token expired"


def test_verify_token_from_request_deleted_user(app, mocker):
    mocker.patch("eventhub.auth_service.utils.load_user", return_value=None)
    token = create_access_token(99, ["attendee"])

    with app.test_request_context(headers={"Authorization": f"Bearer {token}"}):
        user, err, code = verify_token_from_request()
        assert user is None
        assert code == 401
        assert err.json["message"] == "User not found"


def test_verify_token_from_request_uses_current_roles(app, mocker):
    # Token still claims organizer, but the role was revoked since
    mocker.patch("eventhub.auth_service.utils.load_user", return_value=dict(ATTENDEE))
    token = create_access_token(ATTENDEE["user_id"], ["organizer"])

    with app.test_request_context(headers={"Authorization": f"Bearer {token}"}):
        user, err, code = verify_token_from_request(required_roles=["organizer", "admin"])
        assert user is None
        assert code == 403
        assert err.json["message"] == "Access denied. Required role: organizer or admin"


def test_require_owner_or_roles(app):
    with app.app_context():
        assert require_owner_or_roles(ATTENDEE, ATTENDEE["user_id"]) == (None, None)
        assert require_owner_or_roles(ADMIN, ATTENDEE["user_id"], ["admin"]) == (None, None)

        err, code = require_owner_or_roles(ORGANIZER, ATTENDEE["user_id"], ["admin"])
        assert code == 403

        err, code = require_owner_or_roles(None, ATTENDEE["user_id"])
        assert code == 401


def test_require_event_access(app, make_event):
    private = make_event(is_private=True)

    with app.app_context():
        assert require_event_access(None, make_event()) == (None, None)
        assert require_event_access(ORGANIZER, private) == (None, None)
        assert require_event_access(ADMIN, private) == (None, None)

        _, code = require_event_access(None, private)
        assert code == 401
        _, code = require_event_access(ATTENDEE, private)
        assert code == 403


def test_password_hashing():
    pw_hash = credentials.hash_password("correct horse")

    assert pw_hash != "correct horse"
    assert credentials.verify_password(pw_hash, "correct horse") is True
    assert credentials.verify_password(pw_hash, "wrong horse") is False
    assert credentials.verify_password("not-a-hash", "correct horse") is False


def test_refresh_token_hash_without_stored_hash():
    assert credentials.verify_refresh_token(None, "anything") is False
