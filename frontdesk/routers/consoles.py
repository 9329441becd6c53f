import logging
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud, schemas
from ..access import Operation, require
from ..dependencies import get_db
from ..exceptions import ItemNotFound

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/consoles",
    tags=["consoles"],
)

read_catalog = require(Operation.READ_CATALOG)
write_catalog = require(Operation.WRITE_CATALOG)


@router.get("", response_model=List[schemas.Console])
async def read_consoles(
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(read_catalog)
        ) -> List[schemas.Console]:
    return await crud.get_consoles(db)


@router.post("", response_model=schemas.Console, status_code=status.HTTP_201_CREATED)
async def create_console(
        console: schemas.ConsoleCreate,
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(write_catalog)
        ) -> schemas.Console:
    return await crud.create_console(db, console)


@router.get("/genres", response_model=List[schemas.ConsoleGenre])
async def read_genres(
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(read_catalog)
        ) -> List[schemas.ConsoleGenre]:
    return await crud.get_genres(db)


@router.get("/games", response_model=List[schemas.ConsoleGame])
async def read_console_games(
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(read_catalog)
        ) -> List[schemas.ConsoleGame]:
    return await crud.get_console_games(db)


@router.post("/games", response_model=schemas.ConsoleGame, status_code=status.HTTP_201_CREATED)
async def create_console_game(
        request: schemas.ConsoleGameRequest,
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(write_catalog)
        ) -> schemas.ConsoleGame:
    """
    コンソールゲームを登録します。new_genre_names に含まれるジャンルは必要に応じて作成されます。
    """
    db_game = await crud.create_console_game(db, request)
    logger.info(f"ユーザー '{principal.username}' がコンソールゲーム '{db_game.name}' を登録しました。")
    return db_game


@router.get("/games/{game_id}", response_model=schemas.ConsoleGame)
async def read_console_game(
        game_id: int,
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(read_catalog)
        ) -> schemas.ConsoleGame:
    db_game = await crud.get_console_game(db, game_id)
    if db_game is None:
        raise ItemNotFound(game_id, kind="Console game")
    return db_game


@router.put("/games/{game_id}", response_model=schemas.ConsoleGame)
async def update_console_game(
        game_id: int,
        request: schemas.ConsoleGameRequest,
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(write_catalog)
        ) -> schemas.ConsoleGame:
    db_game = await crud.update_console_game(db, game_id, request)
    if db_game is None:
        raise ItemNotFound(game_id, kind="Console game")
    return db_game


@router.delete("/games/{game_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_console_game(
        game_id: int,
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(write_catalog)
        ) -> Response:
    if await crud.delete_console_game(db, game_id) is None:
        raise ItemNotFound(game_id, kind="Console game")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{console_id}", response_model=schemas.Console)
async def read_console(
        console_id: int,
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(read_catalog)
        ) -> schemas.Console:
    db_console = await crud.get_console(db, console_id)
    if db_console is None:
        raise ItemNotFound(console_id, kind="Console")
    return db_console


@router.put("/{console_id}", response_model=schemas.Console)
async def update_console(
        console_id: int,
        console: schemas.ConsoleCreate,
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(write_catalog)
        ) -> schemas.Console:
    db_console = await crud.update_console(db, console_id, console)
    if db_console is None:
        raise ItemNotFound(console_id, kind="Console")
    return db_console


@router.delete("/{console_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_console(
        console_id: int,
        db: AsyncSession = Depends(get_db),
        principal: schemas.Principal = Depends(write_catalog)
        ) -> Response:
    if await crud.delete_console(db, console_id) is None:
        raise ItemNotFound(console_id, kind="Console")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
