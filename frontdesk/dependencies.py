from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from .database import AsyncSessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    データベースセッションを取得するための依存関係。

    Yields:
        AsyncSession: リクエストごとの非同期データベースセッション。
    """
    async with AsyncSessionLocal() as db:
        yield db
