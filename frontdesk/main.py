import logging

from fastapi import FastAPI

from . import database, ledger
from .config import settings
from .exception_handlers import setup_exception_handlers
from .routers import auth, consoles, items

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI()


@app.on_event("startup")
async def on_startup():
    """
    アプリケーションの起動時にデータベースのテーブルを作成し、在庫カウンタを正規化します。

    在庫管理導入前に登録されたゲーム（available_copies が NULL など）は、
    ここで一度だけ正規化され、以降の貸出・返却は常に整合した在庫を前提にできます。
    """
    # 台帳の upsert は PostgreSQL と SQLite のみ対応
    ledger.ensure_supported_dialect(database.engine.dialect.name)

    async with database.engine.begin() as conn:
        await conn.run_sync(database.Base.metadata.create_all)

    async with database.AsyncSessionLocal() as db:
        normalized = await ledger.normalize_stock(db)
        await db.commit()
    if normalized:
        logger.info(f"{normalized} 件のゲームの在庫カウンタを正規化しました。")


# ルーターの登録
app.include_router(auth.router)
app.include_router(items.router)
app.include_router(consoles.router)

setup_exception_handlers(app)
