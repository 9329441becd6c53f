import csv
import io
import re
from typing import Dict, Iterable, List, Optional, Tuple

from . import models
from .exceptions import InputError

EXPORT_HEADER = [
    "ID", "Name", "Min Playtime", "Max Playtime", "Min Players", "Max Players",
    "Available Copies", "Genre", "Box Art URL", "Description", "Quantity",
    "Checkout Count", "Internal Notes",
]

EXPORT_FILENAME = "boardgames.csv"

# "2-4", "3", "30-60 mins", "45 min" など
_RANGE_PATTERN = re.compile(r"^\s*(\d+)\s*(?:mins?)?\s*(?:-\s*(\d+))?\s*(?:mins?)?\s*$", re.IGNORECASE)


def _cell(value) -> str:
    return "" if value is None else value


def export_games(games: Iterable[models.BoardGame]) -> str:
    """
    ボードゲームの一覧をCSV文字列に変換します。

    Parameters
    ----------
    games : Iterable[models.BoardGame]
        出力するボードゲーム。

    Returns
    -------
    str
        ヘッダー行を含むCSV。
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_HEADER)
    for game in games:
        writer.writerow([
            game.id,
            game.name,
            _cell(game.min_playtime),
            _cell(game.max_playtime),
            _cell(game.min_player_count),
            _cell(game.max_player_count),
            _cell(game.available_copies),
            _cell(game.genre),
            _cell(game.box_image_url),
            _cell(game.description),
            _cell(game.total_copies),
            _cell(game.checkout_count),
            _cell(game.internal_notes),
        ])
    return buffer.getvalue()


def parse_count(value: Optional[str]) -> int:
    """数量・貸出回数を解析します。解析できない場合は0です。"""
    try:
        return max(int((value or "").strip()), 0)
    except ValueError:
        return 0


def parse_range(value: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """
    "2-4" や "30-60 mins" のような範囲を (最小, 最大) に解析します。

    値が1つだけの場合は最小と最大が同じになります。
    解析できない場合は (None, None) を返します。
    """
    if not value or not value.strip():
        return None, None
    match = _RANGE_PATTERN.match(value)
    if match is None:
        return None, None
    low = int(match.group(1))
    high = int(match.group(2)) if match.group(2) is not None else low
    return low, high


def _optional_text(value: Optional[str], max_length: Optional[int] = None) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()[:max_length]


def parse_import(content: bytes) -> List[Dict]:
    """
    インポート用CSVを解析し、BoardGame の列に対応する辞書のリストを返します。

    列: Title, Quantity, Players, Time to Play, Times Checked Out,
    Genres, Quick Description, Notes

    Raises
    ------
    InputError
        ファイルがUTF-8として読めない、CSVとして解析できない、
        または Title 列が無い場合（A109）。
    """
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise InputError("A109", "The uploaded file is not a readable CSV file.")

    reader = csv.DictReader(io.StringIO(text))
    try:
        records = list(reader)
    except csv.Error:
        raise InputError("A109", "The uploaded file is not a readable CSV file.")
    if reader.fieldnames is None or "Title" not in reader.fieldnames:
        raise InputError("A109", "The uploaded file has no 'Title' column.")

    rows = []
    for record in records:
        min_players, max_players = parse_range(record.get("Players"))
        min_playtime, max_playtime = parse_range(record.get("Time to Play"))
        rows.append({
            "name": _optional_text(record.get("Title")),
            "total_copies": parse_count(record.get("Quantity")),
            "min_player_count": min_players,
            "max_player_count": max_players,
            "min_playtime": min_playtime,
            "max_playtime": max_playtime,
            "checkout_count": parse_count(record.get("Times Checked Out")),
            "genre": _optional_text(record.get("Genres")),
            "description": _optional_text(record.get("Quick Description"), max_length=1024),
            "internal_notes": _optional_text(record.get("Notes")),
        })
    return rows
