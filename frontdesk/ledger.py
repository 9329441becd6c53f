"""
ボードゲームの在庫台帳。

貸出・返却はいずれも「条件付き UPDATE」1文で在庫の確認と更新を同時に行います。
確認と更新の間に別のリクエストが割り込む余地は無く、UPDATE が取得する行ロックによって
同じゲームへの操作は直列化され、異なるゲームへの操作は互いにブロックしません。
"""
import logging
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func, select, text, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from . import models
from .config import settings
from .exceptions import AllCopiesAlreadyReturned, ItemNotFound, LedgerBusy, NoCopiesAvailable, UnsupportedDatabase

logger = logging.getLogger(__name__)

# PostgreSQL の lock_not_available
LOCK_NOT_AVAILABLE = "55P03"

UPSERT_DIALECTS = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


def current_date() -> date:
    """クラブのタイムゾーンでの今日の日付を返します。"""
    return datetime.now(ZoneInfo(settings.timezone)).date()


async def normalize_stock(db: AsyncSession, game_id: Optional[int] = None) -> int:
    """
    在庫管理導入前のレコードの在庫カウンタを正規化します。

    - available_copies が NULL の行: total_copies を coalesce(total_copies, 1) とし、
      available_copies にも同じ値を設定します。
    - total_copies だけが NULL の行: total_copies を available_copies に揃えます。
    - checkout_count が NULL の行: 0 を設定します。

    各処理は条件付き UPDATE 1文なので、同時に呼び出されても二重に初期化されることはありません。
    コミットは呼び出し側で行います。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    game_id : Optional[int], optional
        対象のゲームID。指定しない場合は全件が対象です。

    Returns
    -------
    int
        更新された行数の合計。
    """
    game = models.BoardGame
    statements = [
        update(game)
        .where(game.available_copies.is_(None))
        .values(
            total_copies=func.coalesce(game.total_copies, 1),
            available_copies=func.coalesce(game.total_copies, 1),
        ),
        update(game)
        .where(game.total_copies.is_(None))
        .values(total_copies=game.available_copies),
        update(game)
        .where(game.checkout_count.is_(None))
        .values(checkout_count=0),
    ]
    touched = 0
    for stmt in statements:
        if game_id is not None:
            stmt = stmt.where(game.id == game_id)
        result = await db.execute(stmt.execution_options(synchronize_session=False))
        touched += result.rowcount
    return touched


def _dialect_name(db: AsyncSession) -> str:
    return db.get_bind().dialect.name


async def _set_lock_timeout(db: AsyncSession) -> None:
    # SQLite はデータベースロックの busy timeout で待機時間が制限される
    if _dialect_name(db) == "postgresql":
        await db.execute(text(f"SET LOCAL lock_timeout = {int(settings.ledger_lock_timeout_ms)}"))


def _is_lock_timeout(exc: DBAPIError) -> bool:
    orig = exc.orig
    if getattr(orig, "sqlstate", None) == LOCK_NOT_AVAILABLE:
        return True
    if getattr(orig, "pgcode", None) == LOCK_NOT_AVAILABLE:
        return True
    return "database is locked" in str(orig)


def ensure_supported_dialect(dialect_name: str) -> None:
    """台帳の upsert を発行できないデータベースであれば UnsupportedDatabase を送出します。"""
    if dialect_name not in UPSERT_DIALECTS:
        raise UnsupportedDatabase(dialect_name)


def _ledger_upsert(dialect_name: str, game_id: int, day: date):
    ensure_supported_dialect(dialect_name)
    insert = UPSERT_DIALECTS[dialect_name]
    entry = models.BoardGameCheckout
    stmt = insert(entry).values(board_game_id=game_id, checkout_date=day, count=1)
    return stmt.on_conflict_do_update(
        index_elements=["board_game_id", "checkout_date"],
        set_={"count": entry.count + 1},
    )


async def _game_exists(db: AsyncSession, game_id: int) -> bool:
    found = await db.scalar(select(models.BoardGame.id).where(models.BoardGame.id == game_id))
    return found is not None


async def _reload(db: AsyncSession, game_id: int) -> models.BoardGame:
    return await db.get(models.BoardGame, game_id, populate_existing=True)


async def checkout(db: AsyncSession, game_id: int, today: Optional[date] = None) -> models.BoardGame:
    """
    ボードゲームを1本貸し出します。

    1つのトランザクション内で、在庫の正規化、available_copies の減算と
    checkout_count の加算（available_copies > 0 の場合のみ）、
    当日の台帳エントリの作成または加算を行います。
    事前条件を満たさない場合は何も変更せずにロールバックします。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    game_id : int
        貸し出すゲームのID。
    today : Optional[date], optional
        台帳に記録する日付。指定しない場合はクラブのタイムゾーンでの今日です。

    Returns
    -------
    models.BoardGame
        更新後のボードゲーム。

    Raises
    ------
    ItemNotFound
        ゲームが存在しない場合。
    NoCopiesAvailable
        貸出可能な在庫が無い場合。
    LedgerBusy
        行ロックの待機がタイムアウトした場合。
    """
    if today is None:
        today = current_date()
    game = models.BoardGame
    try:
        await _set_lock_timeout(db)
        await normalize_stock(db, game_id)
        result = await db.execute(
            update(game)
            .where(game.id == game_id, game.available_copies > 0)
            .values(
                available_copies=game.available_copies - 1,
                checkout_count=game.checkout_count + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            if not await _game_exists(db, game_id):
                raise ItemNotFound(game_id)
            raise NoCopiesAvailable()
        await db.execute(_ledger_upsert(_dialect_name(db), game_id, today))
        await db.commit()
    except DBAPIError as exc:
        await db.rollback()
        if _is_lock_timeout(exc):
            logger.warning(f"ゲーム {game_id} の貸出中にロック待機がタイムアウトしました。")
            raise LedgerBusy() from exc
        raise
    except Exception:
        await db.rollback()
        raise

    logger.info(f"ゲーム {game_id} を貸し出しました（{today.isoformat()}）。")
    return await _reload(db, game_id)


async def return_game(db: AsyncSession, game_id: int) -> models.BoardGame:
    """
    ボードゲームを1本返却します。

    available_copies < total_copies の場合のみ available_copies を1増やします。
    台帳と checkout_count は変更しません。

    Raises
    ------
    ItemNotFound
        ゲームが存在しない場合。
    AllCopiesAlreadyReturned
        全ての在庫が既に返却済みの場合。
    LedgerBusy
        行ロックの待機がタイムアウトした場合。
    """
    game = models.BoardGame
    try:
        await _set_lock_timeout(db)
        await normalize_stock(db, game_id)
        result = await db.execute(
            update(game)
            .where(game.id == game_id, game.available_copies < game.total_copies)
            .values(available_copies=game.available_copies + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            if not await _game_exists(db, game_id):
                raise ItemNotFound(game_id)
            raise AllCopiesAlreadyReturned()
        await db.commit()
    except DBAPIError as exc:
        await db.rollback()
        if _is_lock_timeout(exc):
            logger.warning(f"ゲーム {game_id} の返却中にロック待機がタイムアウトしました。")
            raise LedgerBusy() from exc
        raise
    except Exception:
        await db.rollback()
        raise

    logger.info(f"ゲーム {game_id} が返却されました。")
    return await _reload(db, game_id)
