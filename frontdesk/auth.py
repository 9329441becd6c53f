from datetime import datetime, timedelta, timezone
from typing import Dict, List, NamedTuple, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from .config import RegistryUser, settings
from .exceptions import TokenExpired, TokenInvalid
from .schemas import AccessLevel, Principal

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class IssuedToken(NamedTuple):
    token: str
    expire_time: datetime


class UserRegistry:
    """
    設定ファイルから読み込まれる静的なユーザーレジストリ。

    ユーザーはデータベースに保存されず、トークンの発行時にのみ参照されます。
    """

    def __init__(self, users: List[RegistryUser]):
        self._users = {user.username: user for user in users}

    def get(self, username: str) -> Optional[RegistryUser]:
        return self._users.get(username)


def get_user_registry() -> UserRegistry:
    """
    ユーザーレジストリを取得するための依存関係。テストではオーバーライドされます。
    """
    return UserRegistry(settings.users)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    プレーンテキストのパスワードがハッシュ化されたパスワードと一致するかを検証します。

    Parameters
    ----------
    plain_password : str
        検証対象のプレーンテキストパスワード。
    hashed_password : str
        比較対象となるハッシュ化されたパスワード。

    Returns
    -------
    bool
        パスワードが一致する場合はTrue、そうでない場合はFalse。
    """
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """
    プレーンテキストのパスワードをハッシュ化します。レジストリ用のハッシュ生成に使用します。
    """
    return pwd_context.hash(password)


def create_jwt_token(
        data: Dict[str, str],
        secret_key: str,
        algorithm: str,
        expires_delta: Optional[timedelta] = None,
        issued_at: Optional[datetime] = None
        ) -> str:
    """
    指定されたデータと有効期限を持つJSON Web Token (JWT) を作成します。

    Parameters
    ----------
    data : Dict[str, str]
        トークンに含めるペイロードデータ。
    secret_key : str
        トークンの署名に使用するシークレットキー。
    algorithm : str
        トークンのエンコーディングに使用するアルゴリズム。
    expires_delta : Optional[timedelta], optional
        トークンの有効期限を設定する時間差。指定しない場合は15分後に設定されます。
    issued_at : Optional[datetime], optional
        発行時刻。指定しない場合は現在時刻（UTC）です。

    Returns
    -------
    str
        エンコードされたJWT。
    """
    to_encode = data.copy()
    if issued_at is None:
        issued_at = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(minutes=15)
    to_encode.update({"iat": issued_at, "exp": issued_at + expires_delta})
    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def decode_token(token: str, secret_key: str, algorithms: List[str]) -> Dict:
    """
    JWTをデコードし、そのペイロードを返します。署名と有効期限も検証されます。
    """
    return jwt.decode(token, secret_key, algorithms=algorithms)


def issue_token(
        username: str,
        access_level: AccessLevel,
        expires_delta: Optional[timedelta] = None,
        issued_at: Optional[datetime] = None
        ) -> IssuedToken:
    """
    ユーザー名とアクセスレベルを含むアクセストークンを発行します。

    Parameters
    ----------
    username : str
        トークンの subject。
    access_level : AccessLevel
        `level` クレームに格納されるアクセスレベル。
    expires_delta : Optional[timedelta], optional
        有効期間。指定しない場合は設定ファイルの値が使用されます。
    issued_at : Optional[datetime], optional
        発行時刻。指定しない場合は現在時刻（UTC）です。

    Returns
    -------
    IssuedToken
        トークン文字列と有効期限。
    """
    if issued_at is None:
        issued_at = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    token = create_jwt_token(
        {"sub": username, "level": access_level.value},
        secret_key=settings.secret_key,
        algorithm=settings.algorithm,
        expires_delta=expires_delta,
        issued_at=issued_at
    )
    return IssuedToken(token=token, expire_time=issued_at + expires_delta)


def validate_token(token: str) -> Principal:
    """
    トークンを検証し、呼び出し元を返します。

    共有された可変状態を持たないため、任意の数のリクエストから同時に呼び出せます。

    Raises
    ------
    TokenExpired
        有効期限を過ぎている場合。
    TokenInvalid
        形式不正、署名不一致、またはクレームが欠けている場合。
    """
    try:
        payload = decode_token(token, settings.secret_key, [settings.algorithm])
    except ExpiredSignatureError:
        raise TokenExpired()
    except JWTError:
        raise TokenInvalid()

    username = payload.get("sub")
    level = payload.get("level")
    if username is None or level is None:
        raise TokenInvalid()
    try:
        access_level = AccessLevel(level)
    except ValueError:
        raise TokenInvalid()
    return Principal(username=username, access_level=access_level)


def authenticate_user(registry: UserRegistry, username: str, password: str) -> Optional[RegistryUser]:
    """
    ユーザー名とパスワードを用いてレジストリのユーザーを認証します。

    Returns
    -------
    Optional[RegistryUser]
        認証に成功した場合はユーザーを返し、失敗した場合はNoneを返します。
    """
    user = registry.get(username)
    if not user or not verify_password(password, user.password_hash):
        return None
    return user
