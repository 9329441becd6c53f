from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError
from . import models, schemas
from .exceptions import InputError, ItemNotFound
from typing import Dict, List, Optional


def _require_name(name: Optional[str]) -> None:
    if name is None or not name.strip():
        raise InputError("A103", "The 'name' field is required and cannot be empty or blank.")


def _duplicate_name() -> InputError:
    return InputError("A104", "A game with that name already exists.")


def _resize_stock(db_game: models.BoardGame, total_copies: int) -> None:
    # 貸出中の本数を保ったまま所有数を変更し、0 <= available <= total に収める
    current_total = db_game.total_copies or 0
    if db_game.available_copies is None:
        checked_out = 0
    else:
        checked_out = max(current_total - db_game.available_copies, 0)
    db_game.total_copies = total_copies
    db_game.available_copies = min(max(total_copies - checked_out, 0), total_copies)


# 名前（大文字小文字を区別しない）でゲームの存在を確認する関数
async def game_name_exists(db: AsyncSession, name: str, exclude_id: Optional[int] = None) -> bool:
    """
    同じ名前のボードゲームが存在するかを確認します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    name : str
        確認するゲーム名。大文字小文字は区別しません。
    exclude_id : Optional[int], optional
        比較から除外するゲームID（更新対象自身）。

    Returns
    -------
    bool
        存在する場合はTrue。
    """
    stmt = select(models.BoardGame.id).filter(func.lower(models.BoardGame.name) == name.strip().lower())
    if exclude_id is not None:
        stmt = stmt.filter(models.BoardGame.id != exclude_id)
    result = await db.execute(stmt.limit(1))
    return result.scalars().first() is not None


# ゲームIDで特定のボードゲームを取得する関数
async def get_game(db: AsyncSession, game_id: int) -> Optional[models.BoardGame]:
    """
    ゲームIDで特定のボードゲームを取得します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    game_id : int
        取得するゲームのID。

    Returns
    -------
    Optional[models.BoardGame]
        見つかった場合はボードゲーム、存在しない場合はNone。
    """
    result = await db.execute(
        select(models.BoardGame)
        .filter(models.BoardGame.id == game_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def _get_game_for_update(db: AsyncSession, game_id: int) -> models.BoardGame:
    result = await db.execute(
        select(models.BoardGame)
        .filter(models.BoardGame.id == game_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    db_game = result.scalars().first()
    if db_game is None:
        raise ItemNotFound(game_id)
    return db_game


# 条件に一致するボードゲームを取得する関数
async def get_games(
        db: AsyncSession,
        name: Optional[str] = None,
        genre: Optional[str] = None,
        min_playtime: Optional[int] = None,
        max_playtime: Optional[int] = None,
        player_count: Optional[int] = None
        ) -> List[models.BoardGame]:
    """
    条件に一致するボードゲームを名前順で取得します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    name : Optional[str], optional
        名前の部分一致（大文字小文字を区別しない）。
    genre : Optional[str], optional
        ジャンルの部分一致（大文字小文字を区別しない）。
    min_playtime : Optional[int], optional
        最短プレイ時間がこの値以上のゲーム。
    max_playtime : Optional[int], optional
        最長プレイ時間がこの値以下のゲーム。
    player_count : Optional[int], optional
        この人数で遊べるゲーム。

    Returns
    -------
    List[models.BoardGame]
        ボードゲームのリスト。
    """
    game = models.BoardGame
    stmt = select(game)
    if name:
        stmt = stmt.filter(func.lower(game.name).like(f"%{name.lower()}%"))
    if genre:
        stmt = stmt.filter(func.lower(game.genre).like(f"%{genre.lower()}%"))
    if min_playtime is not None:
        stmt = stmt.filter(game.min_playtime >= min_playtime)
    if max_playtime is not None:
        stmt = stmt.filter(game.max_playtime <= max_playtime)
    if player_count is not None:
        stmt = stmt.filter(game.min_player_count <= player_count, game.max_player_count >= player_count)
    result = await db.execute(stmt.order_by(game.name).execution_options(populate_existing=True))
    return result.scalars().all()


async def get_all_games(db: AsyncSession) -> List[models.BoardGame]:
    result = await db.execute(select(models.BoardGame).order_by(models.BoardGame.id))
    return result.scalars().all()


# 新しいボードゲームを作成する関数
async def create_game(db: AsyncSession, game: schemas.BoardGameCreate) -> models.BoardGame:
    """
    新しいボードゲームを作成します。在庫は全て貸出可能な状態で登録されます。

    Raises
    ------
    InputError
        IDが指定された場合（A102）、名前が空の場合（A103）、
        同じ名前のゲームが既に存在する場合（A104）。
    """
    if game.id is not None:
        raise InputError("A102", "You cannot set the ID of game")
    _require_name(game.name)
    if await game_name_exists(db, game.name):
        raise _duplicate_name()

    db_game = models.BoardGame(
        **game.model_dump(exclude={"id"}),
        available_copies=game.total_copies,
        checkout_count=0,
    )
    db.add(db_game)
    try:
        await db.commit()
    except IntegrityError as exc:
        # 事前確認の後に同じ名前が登録された場合
        await db.rollback()
        raise _duplicate_name() from exc
    await db.refresh(db_game)
    return db_game


# ボードゲームを更新する関数
async def update_game(db: AsyncSession, game_id: int, game: schemas.BoardGameUpdate) -> models.BoardGame:
    """
    ボードゲームのカタログ項目を置き換えます。

    total_copies が指定された場合は、貸出中の本数を保ったまま available_copies を調整します。
    在庫カウンタの読み取りから書き込みまで行ロックを保持します。
    """
    try:
        _require_name(game.name)
        db_game = await _get_game_for_update(db, game_id)
        if await game_name_exists(db, game.name, exclude_id=game_id):
            raise _duplicate_name()

        for key, value in game.model_dump(exclude={"total_copies"}).items():
            setattr(db_game, key, value)
        if game.total_copies is not None:
            _resize_stock(db_game, game.total_copies)
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise _duplicate_name() from exc
    except Exception:
        await db.rollback()
        raise
    await db.refresh(db_game)
    return db_game


# ボードゲームを部分更新する関数
async def patch_game(db: AsyncSession, game_id: int, patch: schemas.BoardGamePatch) -> models.BoardGame:
    """
    送信された項目のみを更新します。検証は update_game と同じです。
    """
    updates: Dict = patch.model_dump(exclude_unset=True)
    try:
        if "name" in updates:
            _require_name(updates["name"])
        db_game = await _get_game_for_update(db, game_id)
        if "name" in updates and await game_name_exists(db, updates["name"], exclude_id=game_id):
            raise _duplicate_name()

        total_copies = updates.pop("total_copies", None)
        for key, value in updates.items():
            setattr(db_game, key, value)
        if total_copies is not None:
            _resize_stock(db_game, total_copies)
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise _duplicate_name() from exc
    except Exception:
        await db.rollback()
        raise
    await db.refresh(db_game)
    return db_game


# ボードゲームを削除する関数
async def delete_game(db: AsyncSession, game_id: int) -> models.BoardGame:
    """
    ボードゲームと、その台帳エントリを削除します。

    Raises
    ------
    ItemNotFound
        ゲームが存在しない場合。
    """
    db_game = await get_game(db, game_id)
    if db_game is None:
        raise ItemNotFound(game_id)
    await db.execute(
        delete(models.BoardGameCheckout).where(models.BoardGameCheckout.board_game_id == game_id)
    )
    await db.delete(db_game)
    await db.commit()
    return db_game


async def import_games(db: AsyncSession, rows: List[Dict]) -> int:
    """
    CSVから読み込んだ行をまとめて登録します。1ファイルを1トランザクションで処理します。

    名前が空の行と、既にカタログに存在する名前の行はスキップします。
    取り込み中に別のリクエストが同じ名前を登録した場合は、全件を取り消して A104 とします。

    Returns
    -------
    int
        登録した件数。
    """
    seen = set()
    created = 0
    try:
        for row in rows:
            name = row.get("name")
            if not name or not name.strip():
                continue
            key = name.strip().lower()
            # 名前の確認時の autoflush でも一意制約違反が発生しうる
            if key in seen or await game_name_exists(db, name):
                continue
            seen.add(key)
            db.add(models.BoardGame(**row, available_copies=row.get("total_copies")))
            created += 1
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise _duplicate_name() from exc
    return created


async def get_consoles(db: AsyncSession) -> List[models.Console]:
    result = await db.execute(select(models.Console).order_by(models.Console.id))
    return result.scalars().all()


async def get_console(db: AsyncSession, console_id: int) -> Optional[models.Console]:
    result = await db.execute(select(models.Console).filter(models.Console.id == console_id))
    return result.scalars().first()


async def create_console(db: AsyncSession, console: schemas.ConsoleCreate) -> models.Console:
    db_console = models.Console(name=console.name)
    db.add(db_console)
    await db.commit()
    await db.refresh(db_console)
    return db_console


async def update_console(db: AsyncSession, console_id: int, console: schemas.ConsoleCreate) -> Optional[models.Console]:
    db_console = await get_console(db, console_id)
    if db_console is None:
        return None
    db_console.name = console.name
    await db.commit()
    await db.refresh(db_console)
    return db_console


async def delete_console(db: AsyncSession, console_id: int) -> Optional[models.Console]:
    db_console = await get_console(db, console_id)
    if db_console is None:
        return None
    await db.execute(
        delete(models.console_game_consoles).where(models.console_game_consoles.c.console_id == console_id)
    )
    await db.delete(db_console)
    await db.commit()
    return db_console


async def get_genres(db: AsyncSession) -> List[models.ConsoleGenre]:
    result = await db.execute(select(models.ConsoleGenre).order_by(models.ConsoleGenre.name))
    return result.scalars().all()


async def get_console_games(db: AsyncSession) -> List[models.ConsoleGame]:
    result = await db.execute(select(models.ConsoleGame).order_by(models.ConsoleGame.name))
    return result.scalars().all()


async def get_console_game(db: AsyncSession, game_id: int) -> Optional[models.ConsoleGame]:
    result = await db.execute(
        select(models.ConsoleGame)
        .filter(models.ConsoleGame.id == game_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def _resolve_genres(db: AsyncSession, genre_ids: List[int], new_genre_names: List[str]) -> List[models.ConsoleGenre]:
    """
    既存ジャンルのIDと新しいジャンル名から、ゲームに設定するジャンルを決定します。

    新しいジャンル名は前後の空白を除去し、同名のジャンル（大文字小文字を区別しない）が
    あれば再利用し、無ければ作成します。空の名前は無視します。
    """
    genres: Dict[str, models.ConsoleGenre] = {}
    if genre_ids:
        result = await db.execute(select(models.ConsoleGenre).filter(models.ConsoleGenre.id.in_(genre_ids)))
        for genre in result.scalars().all():
            genres[genre.name.lower()] = genre

    for raw_name in new_genre_names:
        if raw_name is None or not raw_name.strip():
            continue
        name = raw_name.strip()
        if name.lower() in genres:
            continue
        result = await db.execute(
            select(models.ConsoleGenre).filter(func.lower(models.ConsoleGenre.name) == name.lower())
        )
        genre = result.scalars().first()
        if genre is None:
            genre = models.ConsoleGenre(name=name)
            db.add(genre)
            await db.flush()
        genres[name.lower()] = genre
    return list(genres.values())


async def _resolve_consoles(db: AsyncSession, console_ids: List[int]) -> List[models.Console]:
    if not console_ids:
        return []
    result = await db.execute(select(models.Console).filter(models.Console.id.in_(console_ids)))
    return result.scalars().all()


async def create_console_game(db: AsyncSession, request: schemas.ConsoleGameRequest) -> models.ConsoleGame:
    """
    コンソールゲームを作成します。ジャンルの作成とゲームの保存は同じトランザクションで行います。
    """
    db_game = models.ConsoleGame(
        name=request.name,
        box_image_url=request.box_image_url,
        release_date=request.release_date,
        description=request.description,
    )
    db_game.consoles = await _resolve_consoles(db, request.console_ids)
    db_game.genres = await _resolve_genres(db, request.genre_ids, request.new_genre_names)
    db.add(db_game)
    await db.commit()
    return await get_console_game(db, db_game.id)


async def update_console_game(
        db: AsyncSession,
        game_id: int,
        request: schemas.ConsoleGameRequest
        ) -> Optional[models.ConsoleGame]:
    db_game = await get_console_game(db, game_id)
    if db_game is None:
        return None
    db_game.name = request.name
    db_game.box_image_url = request.box_image_url
    db_game.release_date = request.release_date
    db_game.description = request.description
    db_game.consoles = await _resolve_consoles(db, request.console_ids)
    db_game.genres = await _resolve_genres(db, request.genre_ids, request.new_genre_names)
    await db.commit()
    return await get_console_game(db, game_id)


async def delete_console_game(db: AsyncSession, game_id: int) -> Optional[models.ConsoleGame]:
    db_game = await get_console_game(db, game_id)
    if db_game is None:
        return None
    await db.delete(db_game)
    await db.commit()
    return db_game
