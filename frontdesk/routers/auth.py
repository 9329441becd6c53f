# auth_router.py

import logging

from fastapi import APIRouter, Depends

from .. import auth, schemas
from ..access import Operation, require
from ..exceptions import Unauthenticated

# ロガーの設定
logger = logging.getLogger(__name__)

# 認証用のルーターを設定
router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)


@router.post("/login", response_model=schemas.AuthResponse)
async def login(
        credentials: schemas.LoginRequest,
        registry: auth.UserRegistry = Depends(auth.get_user_registry)
        ) -> schemas.AuthResponse:
    """
    ユーザーの認証情報を受け取り、アクセストークンを発行します。

    Args:
        credentials (schemas.LoginRequest): ユーザー名とパスワード。
        registry (auth.UserRegistry): 静的ユーザーレジストリ。

    Returns:
        schemas.AuthResponse: トークン、有効期限、アクセスレベル。
    """
    logger.info(f"ユーザー '{credentials.username}' のログイン試行中。")
    # ユーザーの認証
    user = auth.authenticate_user(registry, credentials.username, credentials.password)
    if not user:
        logger.warning(f"認証失敗: ユーザー '{credentials.username}' の資格情報が不正です。")
        raise Unauthenticated("Incorrect username or password")

    issued = auth.issue_token(user.username, user.level)
    logger.info(f"ユーザー '{user.username}' のトークン発行成功。")
    return schemas.AuthResponse(
        username=user.username,
        token=issued.token,
        expire_time=issued.expire_time,
        access_level=user.level,
    )


@router.post("/refresh", response_model=schemas.AuthResponse)
async def refresh(
        principal: schemas.Principal = Depends(require(Operation.REFRESH_TOKEN))
        ) -> schemas.AuthResponse:
    """
    有効なトークンを持つ呼び出し元に、同じ subject とアクセスレベルの新しいトークンを発行します。

    Args:
        principal (schemas.Principal): トークンから解決された呼び出し元。

    Returns:
        schemas.AuthResponse: 新しいトークンと有効期限。
    """
    issued = auth.issue_token(principal.username, principal.access_level)
    logger.info(f"ユーザー '{principal.username}' のアクセストークンを更新しました。")
    return schemas.AuthResponse(
        username=principal.username,
        token=issued.token,
        expire_time=issued.expire_time,
        access_level=principal.access_level,
    )
