import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud, csv_io, ledger, schemas, stats
from ..access import Operation, redact, require
from ..dependencies import get_db
from ..exceptions import ItemNotFound

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/items",
    tags=["items"],
)


@router.get("", response_model=List[schemas.BoardGame])
async def read_items(
        name: Optional[str] = None,
        genre: Optional[str] = None,
        min_playtime: Optional[int] = None,
        max_playtime: Optional[int] = None,
        player_count: Optional[int] = None,
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(require(Operation.READ_CATALOG))
        ) -> List[schemas.BoardGame]:
    games = await crud.get_games(
        db,
        name=name,
        genre=genre,
        min_playtime=min_playtime,
        max_playtime=max_playtime,
        player_count=player_count,
    )
    return [redact(game, principal.access_level) for game in games]


@router.post("", response_model=schemas.BoardGame, status_code=status.HTTP_201_CREATED)
async def create_item(
        game: schemas.BoardGameCreate,
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(require(Operation.WRITE_CATALOG))
        ) -> schemas.BoardGame:
    db_game = await crud.create_game(db=db, game=game)
    logger.info(f"ユーザー '{principal.username}' がゲーム '{db_game.name}' (ID: {db_game.id}) を登録しました。")
    return redact(db_game, principal.access_level)


@router.get("/stats", response_model=schemas.UsageStats)
async def read_stats(
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(require(Operation.VIEW_STATS))
        ) -> schemas.UsageStats:
    """
    指定した期間（両端を含む）の貸出統計を返します。期間は省略可能です。
    """
    return await stats.collect_stats(db, start_date=start_date, end_date=end_date)


@router.get("/export")
async def export_items(
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(require(Operation.EXPORT_CATALOG))
        ) -> Response:
    games = await crud.get_all_games(db)
    return Response(
        content=csv_io.export_games(games),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={csv_io.EXPORT_FILENAME}"},
    )


@router.post("/import", response_model=schemas.Message)
async def import_items(
        file: UploadFile = File(...),
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(require(Operation.IMPORT_CATALOG))
        ) -> schemas.Message:
    """
    CSVファイルからボードゲームを一括登録します。
    """
    rows = csv_io.parse_import(await file.read())
    created = await crud.import_games(db, rows)
    logger.info(f"CSVインポート: {len(rows)} 行中 {created} 件のゲームを登録しました（{file.filename}）。")
    return schemas.Message(detail=f"Imported {created} games.")


@router.get("/{item_id}", response_model=schemas.BoardGame)
async def read_item(
        item_id: int,
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(require(Operation.READ_CATALOG))
        ) -> schemas.BoardGame:
    db_game = await crud.get_game(db, game_id=item_id)
    if db_game is None:
        raise ItemNotFound(item_id)
    return redact(db_game, principal.access_level)


@router.put("/{item_id}", response_model=schemas.BoardGame)
async def update_item(
        item_id: int,
        game: schemas.BoardGameUpdate,
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(require(Operation.WRITE_CATALOG))
        ) -> schemas.BoardGame:
    db_game = await crud.update_game(db=db, game_id=item_id, game=game)
    return redact(db_game, principal.access_level)


@router.patch("/{item_id}", response_model=schemas.BoardGame)
async def patch_item(
        item_id: int,
        patch: schemas.BoardGamePatch,
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(require(Operation.WRITE_CATALOG))
        ) -> schemas.BoardGame:
    db_game = await crud.patch_game(db=db, game_id=item_id, patch=patch)
    return redact(db_game, principal.access_level)


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
        item_id: int,
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(require(Operation.WRITE_CATALOG))
        ) -> Response:
    await crud.delete_game(db=db, game_id=item_id)
    logger.info(f"ユーザー '{principal.username}' がゲーム (ID: {item_id}) を削除しました。")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{item_id}/checkout", response_model=schemas.Message)
async def checkout_item(
        item_id: int,
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(require(Operation.CHECKOUT))
        ) -> schemas.Message:
    await ledger.checkout(db, item_id)
    return schemas.Message(detail="Game checked out successfully.")


@router.post("/{item_id}/return", response_model=schemas.Message)
async def return_item(
        item_id: int,
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(require(Operation.RETURN))
        ) -> schemas.Message:
    await ledger.return_game(db, item_id)
    return schemas.Message(detail="Game returned successfully.")
