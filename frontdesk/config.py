# frontdesk/config.py
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .schemas import AccessLevel


class RegistryUser(BaseModel):
    """
    静的ユーザーレジストリの1エントリ。

    Attributes
    ----------
    username : str
        ログインに使用するユーザー名。
    password_hash : str
        bcrypt でハッシュ化されたパスワード。
    level : AccessLevel
        アクセスレベル（HOST または ADMIN）。
    """
    username: str
    password_hash: str
    level: AccessLevel


class Settings(BaseSettings):
    # Database Configuration
    database_host: str = Field("db")
    database_port: int = Field(5432)
    database_user: str = Field("admin")
    database_password: str = Field("my_database_password")
    database_name: str = Field("frontdesk")
    database_echo: bool = Field(False)
    # 指定した場合は上の個別設定より優先される（例: sqlite+aiosqlite:///./frontdesk.db）
    database_url: Optional[str] = Field(None)

    # JWT Configuration
    secret_key: str = Field(...)
    algorithm: str = Field("HS256")
    access_token_expire_minutes: int = Field(30)

    # Static user registry (JSON list in USERS)
    users: List[RegistryUser] = Field(default_factory=list)

    # Ledger Configuration
    timezone: str = Field("America/Chicago")
    ledger_lock_timeout_ms: int = Field(3000)

    # Logging
    log_level: str = Field("INFO")

    model_config = SettingsConfigDict(env_file=".env")


settings = Settings()
