from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from frontdesk import crud, models, schemas
from frontdesk.exceptions import InputError, ItemNotFound


def _names(games):
    return [game.name for game in games]


@pytest.mark.asyncio
async def test_create_game(db_session: AsyncSession, unique_game_name: str):
    """
    新しいボードゲームが全ての在庫を貸出可能な状態で登録されることを確認します。
    """
    game = await crud.create_game(
        db_session, schemas.BoardGameCreate(name=unique_game_name, genre="Party", total_copies=3)
    )
    assert game.id is not None
    assert game.name == unique_game_name
    assert (game.total_copies, game.available_copies, game.checkout_count) == (3, 3, 0)
    assert game.created_at is not None


@pytest.mark.asyncio
async def test_create_game_with_id(db_session: AsyncSession, unique_game_name: str):
    with pytest.raises(InputError) as exc_info:
        await crud.create_game(db_session, schemas.BoardGameCreate(id=5, name=unique_game_name))
    assert exc_info.value.error_code == "A102"


@pytest.mark.asyncio
@pytest.mark.parametrize("name", [None, "", "   "])
async def test_create_game_with_blank_name(db_session: AsyncSession, name):
    with pytest.raises(InputError) as exc_info:
        await crud.create_game(db_session, schemas.BoardGameCreate(name=name))
    assert exc_info.value.error_code == "A103"


@pytest.mark.asyncio
async def test_create_game_duplicate_name(db_session: AsyncSession):
    """
    大文字小文字だけが異なる名前は重複として扱われることを確認します。
    """
    await crud.create_game(db_session, schemas.BoardGameCreate(name="Ticket to Ride"))
    with pytest.raises(InputError) as exc_info:
        await crud.create_game(db_session, schemas.BoardGameCreate(name="ticket to ride"))
    assert exc_info.value.error_code == "A104"


@pytest.mark.asyncio
async def test_get_games_filters(db_session: AsyncSession, make_game):
    """
    名前・ジャンル・プレイ時間・人数でのフィルタと名前順の並びを確認します。
    """
    await make_game("Wingspan", genre="Engine Building", min_playtime=40, max_playtime=70,
                    min_player_count=1, max_player_count=5)
    await make_game("Codenames", genre="Party", min_playtime=15, max_playtime=15,
                    min_player_count=4, max_player_count=8)
    await make_game("Carcassonne", genre="Tile Placement", min_playtime=30, max_playtime=45,
                    min_player_count=2, max_player_count=5)

    assert _names(await crud.get_games(db_session)) == ["Carcassonne", "Codenames", "Wingspan"]
    assert _names(await crud.get_games(db_session, name="CAR")) == ["Carcassonne"]
    assert _names(await crud.get_games(db_session, genre="party")) == ["Codenames"]
    assert _names(await crud.get_games(db_session, min_playtime=30)) == ["Carcassonne", "Wingspan"]
    assert _names(await crud.get_games(db_session, max_playtime=45)) == ["Carcassonne", "Codenames"]
    assert _names(await crud.get_games(db_session, player_count=1)) == ["Wingspan"]
    assert _names(await crud.get_games(db_session, player_count=5, max_playtime=60)) == ["Carcassonne", "Codenames"]


@pytest.mark.asyncio
async def test_update_game_keeps_checked_out_copies(db_session: AsyncSession, make_game):
    """
    所有数を変更しても貸出中の本数が保たれることを確認します。
    """
    game = await make_game("Azul", total_copies=3, available_copies=1, internal_notes="old")

    updated = await crud.update_game(
        db_session, game.id, schemas.BoardGameUpdate(name="Azul", total_copies=5)
    )
    assert (updated.total_copies, updated.available_copies) == (5, 3)
    assert updated.internal_notes is None, "PUT で省略された項目がクリアされていません"

    updated = await crud.update_game(
        db_session, game.id, schemas.BoardGameUpdate(name="Azul", total_copies=1)
    )
    assert (updated.total_copies, updated.available_copies) == (1, 0)


@pytest.mark.asyncio
async def test_update_game_without_total_copies(db_session: AsyncSession, make_game):
    game = await make_game("Azul", total_copies=3, available_copies=2)

    updated = await crud.update_game(db_session, game.id, schemas.BoardGameUpdate(name="Azul Summer"))

    assert updated.name == "Azul Summer"
    assert (updated.total_copies, updated.available_copies) == (3, 2)


@pytest.mark.asyncio
async def test_update_game_validation(db_session: AsyncSession, make_game):
    await make_game("Azul")
    game = await make_game("Blokus")
    game_id = game.id

    with pytest.raises(InputError) as exc_info:
        await crud.update_game(db_session, game_id, schemas.BoardGameUpdate(name="AZUL"))
    assert exc_info.value.error_code == "A104"

    with pytest.raises(InputError) as exc_info:
        await crud.update_game(db_session, game_id, schemas.BoardGameUpdate(name=" "))
    assert exc_info.value.error_code == "A103"

    with pytest.raises(ItemNotFound):
        await crud.update_game(db_session, 9999, schemas.BoardGameUpdate(name="Nope"))

    # 同じゲームの名前の大文字小文字だけを変える更新は許可される
    updated = await crud.update_game(db_session, game_id, schemas.BoardGameUpdate(name="BLOKUS"))
    assert updated.name == "BLOKUS"


@pytest.mark.asyncio
async def test_patch_game(db_session: AsyncSession, make_game):
    """
    部分更新では送信された項目のみが変更されることを確認します。
    """
    game = await make_game("Azul", genre="Abstract", internal_notes="keep me", total_copies=2, available_copies=2)

    patched = await crud.patch_game(db_session, game.id, schemas.BoardGamePatch(genre="Pattern Building"))

    assert patched.genre == "Pattern Building"
    assert patched.internal_notes == "keep me"
    assert patched.name == "Azul"

    patched = await crud.patch_game(db_session, game.id, schemas.BoardGamePatch(total_copies=4))
    assert (patched.total_copies, patched.available_copies) == (4, 4)

    with pytest.raises(InputError):
        await crud.patch_game(db_session, game.id, schemas.BoardGamePatch(name=""))


@pytest.mark.asyncio
async def test_delete_game_removes_ledger_entries(db_session: AsyncSession, make_game, game_night):
    game = await make_game("Azul")
    db_session.add(models.BoardGameCheckout(board_game_id=game.id, checkout_date=game_night, count=3))
    await db_session.commit()

    await crud.delete_game(db_session, game.id)

    assert await crud.get_game(db_session, game.id) is None
    result = await db_session.execute(select(models.BoardGameCheckout))
    assert result.scalars().all() == [], "台帳エントリが削除されていません"

    with pytest.raises(ItemNotFound):
        await crud.delete_game(db_session, game.id)


@pytest.mark.asyncio
async def test_import_games_skips_blank_and_duplicate(db_session: AsyncSession, make_game):
    await make_game("Azul")
    rows = [
        {"name": "Root", "total_copies": 2, "checkout_count": 4},
        {"name": None, "total_copies": 1},
        {"name": "azul", "total_copies": 1},
        {"name": "ROOT", "total_copies": 1},
    ]

    created = await crud.import_games(db_session, rows)

    assert created == 1
    games = await crud.get_games(db_session, name="root")
    assert len(games) == 1
    assert (games[0].total_copies, games[0].available_copies, games[0].checkout_count) == (2, 2, 4)


@pytest.mark.asyncio
async def test_console_game_genres(db_session: AsyncSession):
    """
    新しいジャンル名は前後の空白を除いて、既存ジャンルがあれば再利用されることを確認します。
    """
    switch = await crud.create_console(db_session, schemas.ConsoleCreate(name="Switch"))
    first = await crud.create_console_game(db_session, schemas.ConsoleGameRequest(
        name="Mario Kart 8", console_ids=[switch.id], new_genre_names=["Racing", "  "],
    ))
    racing = first.genres[0]

    second = await crud.create_console_game(db_session, schemas.ConsoleGameRequest(
        name="F-Zero 99", console_ids=[switch.id], genre_ids=[racing.id], new_genre_names=[" racing ", "Battle Royale"],
    ))

    assert [console.name for console in first.consoles] == ["Switch"]
    assert [genre.name for genre in first.genres] == ["Racing"]
    assert sorted(genre.name for genre in second.genres) == ["Battle Royale", "Racing"]
    genres = await crud.get_genres(db_session)
    assert [genre.name for genre in genres] == ["Battle Royale", "Racing"]


@pytest.mark.asyncio
async def test_update_and_delete_console_game(db_session: AsyncSession):
    switch = await crud.create_console(db_session, schemas.ConsoleCreate(name="Switch"))
    ps5 = await crud.create_console(db_session, schemas.ConsoleCreate(name="PS5"))
    game = await crud.create_console_game(db_session, schemas.ConsoleGameRequest(
        name="Overcooked", console_ids=[switch.id],
    ))

    updated = await crud.update_console_game(db_session, game.id, schemas.ConsoleGameRequest(
        name="Overcooked 2", console_ids=[switch.id, ps5.id], new_genre_names=["Co-op"],
    ))
    assert updated.name == "Overcooked 2"
    assert sorted(console.name for console in updated.consoles) == ["PS5", "Switch"]

    assert await crud.delete_console_game(db_session, game.id) is not None
    assert await crud.get_console_game(db_session, game.id) is None
    assert await crud.update_console_game(db_session, game.id, schemas.ConsoleGameRequest(name="x")) is None


@pytest.mark.asyncio
async def test_delete_console_detaches_games(db_session: AsyncSession):
    switch = await crud.create_console(db_session, schemas.ConsoleCreate(name="Switch"))
    game = await crud.create_console_game(db_session, schemas.ConsoleGameRequest(
        name="Splatoon 3", console_ids=[switch.id],
    ))

    await crud.delete_console(db_session, switch.id)

    refreshed = await crud.get_console_game(db_session, game.id)
    assert refreshed.consoles == []
    assert await crud.get_console(db_session, switch.id) is None


@pytest.mark.asyncio
async def test_name_unique_index(db_session: AsyncSession, make_game):
    """
    大文字小文字だけが異なる名前は、アプリケーションの確認を通さずに挿入してもDBで拒否されることを確認します。
    """
    await make_game("Azul")

    with pytest.raises(IntegrityError):
        await db_session.execute(insert(models.BoardGame.__table__).values(name="AZUL"))
    await db_session.rollback()


@pytest.mark.asyncio
async def test_concurrent_duplicate_name_maps_to_a104(db_session: AsyncSession, make_game):
    """
    名前の事前確認をすり抜けた重複（同時に作成された場合）も A104 として返されることを確認します。
    """
    await make_game("Azul")
    blokus = await make_game("Blokus")
    blokus_id = blokus.id

    with patch("frontdesk.crud.game_name_exists", AsyncMock(return_value=False)):
        with pytest.raises(InputError) as exc_info:
            await crud.create_game(db_session, schemas.BoardGameCreate(name="AZUL"))
        assert exc_info.value.error_code == "A104"

        with pytest.raises(InputError) as exc_info:
            await crud.patch_game(db_session, blokus_id, schemas.BoardGamePatch(name="azul"))
        assert exc_info.value.error_code == "A104"

        with pytest.raises(InputError) as exc_info:
            await crud.update_game(db_session, blokus_id, schemas.BoardGameUpdate(name="Azul"))
        assert exc_info.value.error_code == "A104"

        with pytest.raises(InputError) as exc_info:
            await crud.import_games(db_session, [{"name": "Root", "total_copies": 1}, {"name": "AZUL", "total_copies": 1}])
        assert exc_info.value.error_code == "A104"

    assert await crud.get_games(db_session, name="root") == [], "重複で失敗した取り込みが一部コミットされています"
    assert (await crud.get_game(db_session, blokus_id)).name == "Blokus"
