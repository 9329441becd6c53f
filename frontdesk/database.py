from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy import Column, DateTime, func
from .config import Settings, settings


def build_database_url(config: Settings) -> str:
    """
    接続先URLを返します。DATABASE_URL が設定されていればそれを優先し、
    無ければ個別の接続設定から PostgreSQL (asyncpg) のURLを組み立てます。
    """
    if config.database_url:
        return config.database_url
    return (
        f"postgresql+asyncpg://{config.database_user}:"
        f"{config.database_password}@{config.database_host}:"
        f"{config.database_port}/{config.database_name}"
    )


def make_engine(url: str, **kwargs) -> AsyncEngine:
    # 非同期エンジンの作成
    return create_async_engine(url, echo=settings.database_echo, future=True, **kwargs)


DATABASE_URL = build_database_url(settings)

engine = make_engine(DATABASE_URL)

# 非同期セッションファクトリ
AsyncSessionLocal = sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)

Base = declarative_base()

class BaseDatabase(Base):
    __abstract__ = True
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
