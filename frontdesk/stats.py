from datetime import date
from typing import Optional, Tuple, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from . import models, schemas

NO_DATA = "No data available"
NOT_AVAILABLE = "N/A"


def _in_range(stmt, start_date: Optional[date], end_date: Optional[date]):
    # 期間は両端を含む。省略された側は無制限
    entry = models.BoardGameCheckout
    if start_date is not None:
        stmt = stmt.where(entry.checkout_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(entry.checkout_date <= end_date)
    return stmt


async def most_popular_game(
        db: AsyncSession,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
        ) -> Tuple[Union[int, str], str, int]:
    """
    期間内で最も多く貸し出されたゲームを返します。

    同数の場合はIDが最も小さいゲームを返します。
    データが無い場合は ("N/A", "No data available", 0) を返します。
    """
    entry, game = models.BoardGameCheckout, models.BoardGame
    total = func.sum(entry.count).label("total_checkouts")
    stmt = (
        select(game.id, game.name, total)
        .select_from(entry)
        .join(game, game.id == entry.board_game_id)
        .group_by(game.id, game.name)
        .order_by(total.desc(), game.id.asc())
        .limit(1)
    )
    row = (await db.execute(_in_range(stmt, start_date, end_date))).first()
    if row is None:
        return NOT_AVAILABLE, NO_DATA, 0
    return row.id, row.name, int(row.total_checkouts)


async def most_popular_day(
        db: AsyncSession,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
        ) -> Tuple[Union[date, str], int]:
    """
    期間内で貸出回数が最も多かった日を返します。同数の場合は最も早い日です。
    """
    entry = models.BoardGameCheckout
    total = func.sum(entry.count).label("total_checkouts")
    stmt = (
        select(entry.checkout_date, total)
        .group_by(entry.checkout_date)
        .order_by(total.desc(), entry.checkout_date.asc())
        .limit(1)
    )
    row = (await db.execute(_in_range(stmt, start_date, end_date))).first()
    if row is None:
        return NOT_AVAILABLE, 0
    return row.checkout_date, int(row.total_checkouts)


async def total_checkouts(
        db: AsyncSession,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
        ) -> int:
    entry = models.BoardGameCheckout
    stmt = select(func.coalesce(func.sum(entry.count), 0))
    return int(await db.scalar(_in_range(stmt, start_date, end_date)))


async def average_checkouts_per_event(
        db: AsyncSession,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
        ) -> float:
    """
    1開催日あたりの平均貸出回数（総貸出回数 ÷ 台帳に記録のある日数）。
    """
    entry = models.BoardGameCheckout
    stmt = select(
        func.coalesce(func.sum(entry.count), 0),
        func.count(func.distinct(entry.checkout_date)),
    )
    total, days = (await db.execute(_in_range(stmt, start_date, end_date))).one()
    if not days:
        return 0.0
    return float(total) / days


async def _weighted_midpoint(db: AsyncSession, low, high, start_date, end_date) -> float:
    # 範囲の中央値を貸出回数で重み付けした平均。範囲が欠けているゲームは除外
    entry, game = models.BoardGameCheckout, models.BoardGame
    midpoint = (low + high) / 2.0
    stmt = (
        select(func.sum(midpoint * entry.count), func.sum(entry.count))
        .select_from(entry)
        .join(game, game.id == entry.board_game_id)
        .where(low.is_not(None), high.is_not(None))
    )
    weighted, weight = (await db.execute(_in_range(stmt, start_date, end_date))).one()
    if not weight:
        return 0.0
    return float(weighted) / float(weight)


async def average_players_per_checkout(
        db: AsyncSession,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
        ) -> float:
    game = models.BoardGame
    return await _weighted_midpoint(db, game.min_player_count, game.max_player_count, start_date, end_date)


async def average_playtime_per_checkout(
        db: AsyncSession,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
        ) -> float:
    game = models.BoardGame
    return await _weighted_midpoint(db, game.min_playtime, game.max_playtime, start_date, end_date)


async def total_available_copies(db: AsyncSession) -> int:
    stmt = select(func.coalesce(func.sum(models.BoardGame.available_copies), 0))
    return int(await db.scalar(stmt))


async def collect_stats(
        db: AsyncSession,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
        ) -> schemas.UsageStats:
    """
    統計エンドポイント用に全ての集計をまとめて返します。読み取り専用です。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    start_date : Optional[date], optional
        集計開始日（この日を含む）。
    end_date : Optional[date], optional
        集計終了日（この日を含む）。

    Returns
    -------
    schemas.UsageStats
        集計結果。
    """
    game_id, game_name, game_checkouts = await most_popular_game(db, start_date, end_date)
    day, day_checkouts = await most_popular_day(db, start_date, end_date)
    return schemas.UsageStats(
        most_popular_game_id=game_id,
        most_popular_game_name=game_name,
        most_popular_game_checkouts=game_checkouts,
        most_popular_day=day,
        most_popular_day_checkouts=day_checkouts,
        average_checkouts_per_event=await average_checkouts_per_event(db, start_date, end_date),
        total_checkouts=await total_checkouts(db, start_date, end_date),
        average_players_per_checkout=await average_players_per_checkout(db, start_date, end_date),
        average_playtime_per_checkout=await average_playtime_per_checkout(db, start_date, end_date),
        total_available_copies=await total_available_copies(db),
    )
