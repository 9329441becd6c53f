from sqlalchemy import Column, Date, ForeignKey, Index, Integer, String, Table, func
from sqlalchemy.orm import relationship
from .database import Base, BaseDatabase


class BoardGame(BaseDatabase):
    """
    ボードゲームモデル。貸出カタログの1エントリと在庫カウンタを保持します。

    Attributes
    ----------
    id : sqlalchemy.Column
        ボードゲームの一意な識別子。
    name : sqlalchemy.Column
        ゲーム名。大文字小文字を区別せず一意です（uq_board_games_name_lower）。
    internal_notes : sqlalchemy.Column
        スタッフ向けメモ。匿名ユーザーには返却されません。
    total_copies : sqlalchemy.Column
        所有している本数。
    available_copies : sqlalchemy.Column
        現在貸出されていない本数。常に 0 以上 total_copies 以下です。
        在庫管理導入前のレコードでは NULL の場合があります。
    checkout_count : sqlalchemy.Column
        累計貸出回数。減少することはありません。
    """
    __tablename__ = "board_games"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, index=True, nullable=False)
    genre = Column(String, nullable=True)
    min_playtime = Column(Integer, nullable=True)
    max_playtime = Column(Integer, nullable=True)
    min_player_count = Column(Integer, nullable=True)
    max_player_count = Column(Integer, nullable=True)
    box_image_url = Column(String, nullable=True)
    description = Column(String(1024), nullable=True)
    internal_notes = Column(String, nullable=True)
    total_copies = Column(Integer, nullable=True)
    available_copies = Column(Integer, nullable=True)
    checkout_count = Column(Integer, nullable=True, default=0)


# 大文字小文字を区別しないゲーム名の一意性は、同時に作成された場合もDB側で保証する
Index("uq_board_games_name_lower", func.lower(BoardGame.name), unique=True)


class BoardGameCheckout(Base):
    """
    日別の貸出台帳エントリ。(board_game_id, checkout_date) ごとに1行だけ存在します。

    Attributes
    ----------
    board_game_id : sqlalchemy.Column
        対象のボードゲームID。
    checkout_date : sqlalchemy.Column
        貸出日（クラブのタイムゾーンでの暦日）。
    count : sqlalchemy.Column
        その日の貸出回数。返却では減りません。
    """
    __tablename__ = "board_game_checkouts"

    board_game_id = Column(
        Integer, ForeignKey("board_games.id", ondelete="CASCADE"), primary_key=True
    )
    checkout_date = Column(Date, primary_key=True)
    count = Column(Integer, nullable=False, default=0)


console_game_consoles = Table(
    "console_game_consoles",
    Base.metadata,
    Column("console_game_id", Integer, ForeignKey("console_games.id", ondelete="CASCADE"), primary_key=True),
    Column("console_id", Integer, ForeignKey("consoles.id", ondelete="CASCADE"), primary_key=True),
)

console_game_genres = Table(
    "console_game_genres",
    Base.metadata,
    Column("console_game_id", Integer, ForeignKey("console_games.id", ondelete="CASCADE"), primary_key=True),
    Column("genre_id", Integer, ForeignKey("console_genres.id", ondelete="CASCADE"), primary_key=True),
)


class Console(BaseDatabase):
    __tablename__ = "consoles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)


class ConsoleGenre(BaseDatabase):
    __tablename__ = "console_genres"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)


class ConsoleGame(BaseDatabase):
    """
    コンソールゲームモデル。対応コンソールとジャンルを多対多で保持します。
    """
    __tablename__ = "console_games"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, index=True, nullable=False)
    box_image_url = Column(String, nullable=True)
    release_date = Column(String, nullable=True)
    description = Column(String(1024), nullable=True)

    consoles = relationship("Console", secondary=console_game_consoles, lazy="selectin")
    genres = relationship("ConsoleGenre", secondary=console_game_genres, lazy="selectin")
