import pytest
from datetime import datetime, timedelta, timezone

from frontdesk import auth
from frontdesk.config import settings
from frontdesk.exceptions import TokenExpired, TokenInvalid, Unauthenticated
from frontdesk.schemas import AccessLevel

from conftest import ADMIN_PASSWORD, ADMIN_USERNAME


def test_password_hashing():
    """
    パスワードのハッシュ化と検証が正しく動作することを確認します。
    """
    hashed = auth.get_password_hash("testpassword")
    assert hashed != "testpassword", "パスワードがハッシュ化されていません"
    assert auth.verify_password("testpassword", hashed)
    assert not auth.verify_password("wrongpassword", hashed)


def test_issue_and_validate_token():
    """
    発行したトークンを検証すると、同じユーザー名とアクセスレベルが得られることを確認します。
    """
    issued = auth.issue_token("host", AccessLevel.HOST)
    principal = auth.validate_token(issued.token)

    assert principal.username == "host"
    assert principal.access_level == AccessLevel.HOST


def test_issue_token_expire_time():
    """
    有効期限が発行時刻 + ACCESS_TOKEN_EXPIRE_MINUTES になることを確認します。
    """
    issued_at = datetime.now(timezone.utc)
    issued = auth.issue_token("admin", AccessLevel.ADMIN, issued_at=issued_at)

    assert issued.expire_time == issued_at + timedelta(minutes=settings.access_token_expire_minutes)
    payload = auth.decode_token(issued.token, settings.secret_key, [settings.algorithm])
    assert payload["sub"] == "admin"
    assert payload["level"] == "ADMIN"
    assert payload["exp"] == int(issued.expire_time.timestamp())


def test_validate_expired_token():
    """
    有効期限切れのトークンは TokenExpired になることを確認します。
    """
    issued = auth.issue_token(
        "host",
        AccessLevel.HOST,
        expires_delta=timedelta(minutes=1),
        issued_at=datetime.now(timezone.utc) - timedelta(hours=1),
    )
    with pytest.raises(TokenExpired):
        auth.validate_token(issued.token)


def test_validate_tampered_token():
    """
    署名が一致しないトークンは TokenInvalid になり、メッセージに鍵の情報を含まないことを確認します。
    """
    token = auth.create_jwt_token(
        {"sub": "admin", "level": "ADMIN"}, secret_key="other-secret", algorithm=settings.algorithm
    )
    with pytest.raises(TokenInvalid) as exc_info:
        auth.validate_token(token)
    assert "other-secret" not in exc_info.value.detail
    assert settings.secret_key not in exc_info.value.detail


def test_validate_garbage_token():
    with pytest.raises(Unauthenticated):
        auth.validate_token("not-a-jwt")


@pytest.mark.parametrize("claims", [
    {"sub": "host"},
    {"level": "HOST"},
    {"sub": "host", "level": "SUPERUSER"},
])
def test_validate_token_with_bad_claims(claims):
    """
    sub または level が欠けている、あるいは未知のレベルのトークンは拒否されることを確認します。
    """
    token = auth.create_jwt_token(claims, secret_key=settings.secret_key, algorithm=settings.algorithm)
    with pytest.raises(TokenInvalid):
        auth.validate_token(token)


def test_authenticate_user(registry):
    """
    レジストリのユーザーが正しいパスワードで認証できることを確認します。
    """
    user = auth.authenticate_user(registry, ADMIN_USERNAME, ADMIN_PASSWORD)
    assert user is not None
    assert user.level == AccessLevel.ADMIN


def test_authenticate_user_wrong_password(registry):
    assert auth.authenticate_user(registry, ADMIN_USERNAME, "wrongpassword") is None


def test_authenticate_unknown_user(registry):
    assert auth.authenticate_user(registry, "nobody", ADMIN_PASSWORD) is None
