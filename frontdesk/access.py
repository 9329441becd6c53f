import logging
from enum import Enum
from typing import Callable, FrozenSet, Mapping, Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from . import models, schemas
from .auth import validate_token
from .exceptions import Forbidden, Unauthenticated
from .schemas import AccessLevel, Principal

logger = logging.getLogger(__name__)

# トークンが無くてもエラーにせず ANONYMOUS として扱う
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


class Operation(str, Enum):
    READ_CATALOG = "read_catalog"
    VIEW_STATS = "view_stats"
    WRITE_CATALOG = "write_catalog"
    IMPORT_CATALOG = "import_catalog"
    EXPORT_CATALOG = "export_catalog"
    CHECKOUT = "checkout"
    RETURN = "return"
    REFRESH_TOKEN = "refresh_token"


EVERYONE = frozenset({AccessLevel.ANONYMOUS, AccessLevel.HOST, AccessLevel.ADMIN})
STAFF = frozenset({AccessLevel.HOST, AccessLevel.ADMIN})
ADMIN_ONLY = frozenset({AccessLevel.ADMIN})

DEFAULT_POLICY: Mapping[Operation, FrozenSet[AccessLevel]] = {
    Operation.READ_CATALOG: EVERYONE,
    Operation.VIEW_STATS: EVERYONE,
    Operation.WRITE_CATALOG: ADMIN_ONLY,
    Operation.IMPORT_CATALOG: ADMIN_ONLY,
    Operation.EXPORT_CATALOG: ADMIN_ONLY,
    Operation.CHECKOUT: STAFF,
    Operation.RETURN: STAFF,
    Operation.REFRESH_TOKEN: EVERYONE,
}

# レベルに関わらず有効なトークンの提示が必要な操作
TOKEN_REQUIRED: FrozenSet[Operation] = frozenset({Operation.REFRESH_TOKEN})


class AccessPolicy:
    """
    操作ごとに許可されるアクセスレベルを定義したポリシーテーブル。

    Parameters
    ----------
    table : Mapping[Operation, FrozenSet[AccessLevel]]
        操作と、その操作を許可するアクセスレベル集合の対応表。
        表に無い操作は全て拒否されます。
    """

    def __init__(self, table: Mapping[Operation, FrozenSet[AccessLevel]]):
        self._table = dict(table)

    def is_allowed(self, access_level: AccessLevel, operation: Operation) -> bool:
        return access_level in self._table.get(operation, frozenset())

    def authorize(self, access_level: AccessLevel, operation: Operation) -> None:
        """
        操作が許可されているかを判定します。

        Raises
        ------
        Forbidden
            アクセスレベルが操作に必要なレベルを満たさない場合。
        """
        if not self.is_allowed(access_level, operation):
            raise Forbidden()


def redact(game: models.BoardGame, access_level: AccessLevel) -> schemas.BoardGame:
    """
    呼び出し元のアクセスレベルに応じてレスポンス用のビューを作成します。

    ANONYMOUS の場合は internal_notes を空にし、それ以外の項目はそのまま返します。
    元のモデルオブジェクトは変更しません。
    """
    view = schemas.BoardGame.model_validate(game)
    if access_level == AccessLevel.ANONYMOUS:
        view = view.model_copy(update={"internal_notes": None})
    return view


default_policy = AccessPolicy(DEFAULT_POLICY)


def get_access_policy() -> AccessPolicy:
    """
    アクセスポリシーを取得するための依存関係。テストでは差し替えられます。
    """
    return default_policy


def get_current_principal(token: Optional[str] = Depends(oauth2_scheme)) -> Principal:
    """
    リクエストの呼び出し元を解決します。

    トークンが無い場合は ANONYMOUS の Principal を返します（None にはなりません）。
    トークンが提供されたが無効・期限切れの場合は Unauthenticated を送出します。
    """
    if token is None:
        return Principal()
    return validate_token(token)


def require(operation: Operation) -> Callable[..., Principal]:
    """
    指定した操作の認可を行う依存関係を作成します。

    トークンを持たない呼び出し元が拒否された場合、またはトークン必須の操作を
    トークン無しで呼び出した場合は 401、認証済みでレベルが不足している場合は 403 になります。
    """
    def dependency(
            principal: Principal = Depends(get_current_principal),
            policy: AccessPolicy = Depends(get_access_policy)
            ) -> Principal:
        if principal.username is None and (
                operation in TOKEN_REQUIRED or not policy.is_allowed(principal.access_level, operation)):
            raise Unauthenticated()
        try:
            policy.authorize(principal.access_level, operation)
        except Forbidden:
            logger.warning(
                f"ユーザー '{principal.username}' ({principal.access_level.value}) の操作 '{operation.value}' を拒否しました。"
            )
            raise
        return principal

    return dependency
