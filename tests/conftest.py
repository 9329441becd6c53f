import os

# frontdesk.config は import 時に設定を読み込むため、先に必須の環境変数を設定する
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import uuid
from datetime import date

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from frontdesk import models
from frontdesk.auth import UserRegistry, get_password_hash, get_user_registry, issue_token
from frontdesk.config import RegistryUser
from frontdesk.database import Base, make_engine
from frontdesk.dependencies import get_db
from frontdesk.main import app
from frontdesk.schemas import AccessLevel

HOST_USERNAME = "host"
HOST_PASSWORD = "host-password"
ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin-password"


@pytest.fixture(scope="session")
def registry() -> UserRegistry:
    """テスト用の静的ユーザーレジストリ（HOST と ADMIN が1人ずつ）"""
    return UserRegistry([
        RegistryUser(username=HOST_USERNAME, password_hash=get_password_hash(HOST_PASSWORD), level=AccessLevel.HOST),
        RegistryUser(username=ADMIN_USERNAME, password_hash=get_password_hash(ADMIN_PASSWORD), level=AccessLevel.ADMIN),
    ])


@pytest_asyncio.fixture
async def engine(tmp_path):
    # テストごとに一時ディレクトリ上のSQLiteファイルを使用する（複数セッションから同じDBを共有するため）
    test_engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'frontdesk.db'}", connect_args={"timeout": 30})
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    # 非同期セッションを生成
    async with session_factory() as session:
        yield session


@pytest.fixture
def override_dependencies(session_factory, registry):
    # 依存関係をオーバーライド。リクエストごとに新しいセッションを使用する
    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_user_registry] = lambda: registry
    yield
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(override_dependencies):
    # AsyncClientを使用してテストクライアントを作成
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def host_headers():
    """HOST レベルの認証ヘッダー"""
    return {"Authorization": f"Bearer {issue_token(HOST_USERNAME, AccessLevel.HOST).token}"}


@pytest.fixture
def admin_headers():
    """ADMIN レベルの認証ヘッダー"""
    return {"Authorization": f"Bearer {issue_token(ADMIN_USERNAME, AccessLevel.ADMIN).token}"}


@pytest.fixture
def unique_game_name():
    """ユニークなゲーム名を生成するフィクスチャ"""
    return f"game_{uuid.uuid4()}"


@pytest_asyncio.fixture
async def make_game(db_session: AsyncSession):
    """
    在庫カウンタを直接指定してボードゲームを登録するファクトリ。

    在庫管理導入前のレコード（NULL の在庫）を再現する場合にも使用します。
    """
    async def _make_game(name=None, **fields) -> models.BoardGame:
        values = {"total_copies": 1, "available_copies": 1, "checkout_count": 0}
        values.update(fields)
        game = models.BoardGame(name=name or f"game_{uuid.uuid4()}", **values)
        db_session.add(game)
        await db_session.commit()
        await db_session.refresh(game)
        return game

    return _make_game


@pytest.fixture
def make_legacy_game(db_session: AsyncSession):
    """
    ORM の列デフォルトを通さずに行を挿入し、在庫カウンタの NULL をそのまま保存するファクトリ。

    挿入した行のIDを返します。
    """
    async def _make_legacy_game(name=None, **fields) -> int:
        stmt = insert(models.BoardGame.__table__).values(name=name or f"game_{uuid.uuid4()}", **fields)
        result = await db_session.execute(stmt)
        await db_session.commit()
        return result.inserted_primary_key[0]

    return _make_legacy_game


@pytest.fixture
def game_night():
    """台帳テストで使用する固定の開催日"""
    return date(2024, 3, 1)
