from datetime import date, datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class AccessLevel(str, Enum):
    """トークンのクレームに含まれる粗いロール。"""
    ANONYMOUS = "ANONYMOUS"
    HOST = "HOST"
    ADMIN = "ADMIN"


class Principal(BaseModel):
    """
    リクエストの呼び出し元。

    Attributes
    ----------
    username : Optional[str]
        ユーザー名。トークンが無い場合はNone。
    access_level : AccessLevel
        アクセスレベル。トークンが無い場合でも必ず ANONYMOUS が入ります。
    """
    username: Optional[str] = None
    access_level: AccessLevel = AccessLevel.ANONYMOUS


class LoginRequest(BaseModel):
    username: str
    password: str


class AuthResponse(BaseModel):
    """
    ログイン・リフレッシュ時のレスポンスモデル

    Attributes
    ----------
    username : str
        ユーザー名。
    token : str
        JWT アクセストークン。
    expire_time : datetime
        トークンの有効期限（UTC）。
    access_level : AccessLevel
        トークンに含まれるアクセスレベル。
    """
    username: str
    token: str
    expire_time: datetime = Field(alias="expireTime")
    access_level: AccessLevel = Field(alias="accessLevel")

    model_config = ConfigDict(populate_by_name=True)


class ErrorResponse(BaseModel):
    error_code: str = Field(alias="errorCode")
    error_message: str = Field(alias="errorMessage")

    model_config = ConfigDict(populate_by_name=True)


class BoardGameBase(BaseModel):
    """
    ボードゲームの基本モデル（カタログ項目を定義）

    name の空文字チェックは InputError(A103) として crud 側で行うため、
    ここでは型のみを定義します。
    """
    name: Optional[str] = None
    genre: Optional[str] = None
    min_playtime: Optional[int] = Field(None, ge=0)
    max_playtime: Optional[int] = Field(None, ge=0)
    min_player_count: Optional[int] = Field(None, ge=0)
    max_player_count: Optional[int] = Field(None, ge=0)
    box_image_url: Optional[str] = None
    description: Optional[str] = Field(None, max_length=1024)
    internal_notes: Optional[str] = None
    total_copies: Optional[int] = Field(1, ge=0)


class BoardGameCreate(BoardGameBase):
    """
    ボードゲーム作成時のモデル

    Attributes
    ----------
    id : Optional[int]
        クライアントはIDを指定できません。指定された場合は A102 エラーになります。
    """
    id: Optional[int] = None


class BoardGameUpdate(BoardGameBase):
    # PUT は全カタログ項目を置き換える。total_copies 省略時は現在値を維持
    total_copies: Optional[int] = Field(None, ge=0)


class BoardGamePatch(BaseModel):
    """部分更新用のモデル。送信された項目のみ反映します。"""
    name: Optional[str] = None
    genre: Optional[str] = None
    min_playtime: Optional[int] = Field(None, ge=0)
    max_playtime: Optional[int] = Field(None, ge=0)
    min_player_count: Optional[int] = Field(None, ge=0)
    max_player_count: Optional[int] = Field(None, ge=0)
    box_image_url: Optional[str] = None
    description: Optional[str] = Field(None, max_length=1024)
    internal_notes: Optional[str] = None
    total_copies: Optional[int] = Field(None, ge=0)


class BoardGame(BaseModel):
    """
    ボードゲーム取得時のモデル（在庫カウンタやタイムスタンプを含む）
    """
    id: int
    name: str
    genre: Optional[str] = None
    min_playtime: Optional[int] = None
    max_playtime: Optional[int] = None
    min_player_count: Optional[int] = None
    max_player_count: Optional[int] = None
    box_image_url: Optional[str] = None
    description: Optional[str] = None
    internal_notes: Optional[str] = None
    total_copies: Optional[int] = None
    available_copies: Optional[int] = None
    checkout_count: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Message(BaseModel):
    detail: str


class UsageStats(BaseModel):
    """
    貸出統計。対象期間にデータが無い場合は番兵値または0になります。
    """
    most_popular_game_id: Union[int, str]
    most_popular_game_name: str
    most_popular_game_checkouts: int = 0
    most_popular_day: Union[date, str]
    most_popular_day_checkouts: int = 0
    average_checkouts_per_event: float = 0.0
    total_checkouts: int = 0
    average_players_per_checkout: float = 0.0
    average_playtime_per_checkout: float = 0.0
    total_available_copies: int = 0


class ConsoleBase(BaseModel):
    name: str = Field(min_length=1)


class ConsoleCreate(ConsoleBase):
    pass


class Console(ConsoleBase):
    id: int

    model_config = ConfigDict(from_attributes=True)


class ConsoleGenre(BaseModel):
    id: int
    name: str

    model_config = ConfigDict(from_attributes=True)


class ConsoleGameRequest(BaseModel):
    """
    コンソールゲーム作成・更新時のリクエストモデル

    Attributes
    ----------
    console_ids : List[int]
        対応コンソールのID。
    genre_ids : List[int]
        既存ジャンルのID。
    new_genre_names : List[str]
        新規に作成する（または名前で再利用する）ジャンル名。
    """
    name: str = Field(min_length=1)
    box_image_url: Optional[str] = None
    release_date: Optional[str] = None
    description: Optional[str] = Field(None, max_length=1024)
    console_ids: List[int] = Field(default_factory=list)
    genre_ids: List[int] = Field(default_factory=list)
    new_genre_names: List[str] = Field(default_factory=list)


class ConsoleGame(BaseModel):
    id: int
    name: str
    box_image_url: Optional[str] = None
    release_date: Optional[str] = None
    description: Optional[str] = None
    consoles: List[Console] = Field(default_factory=list)
    genres: List[ConsoleGenre] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

