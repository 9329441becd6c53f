"""
アプリケーション全体の例外ハンドラー。

ドメイン例外をHTTPレスポンスに変換します。Starlette は例外クラスの MRO を辿って
ハンドラーを選択するため、サブクラスごとに異なるステータスコードを割り当てられます。
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .exceptions import Forbidden, InputError, ItemNotFound, LedgerBusy, Unauthenticated

logger = logging.getLogger(__name__)


def _error_body(exc: InputError) -> dict:
    return {"errorCode": exc.error_code, "errorMessage": exc.error_message}


async def input_error_handler(request: Request, exc: InputError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_body(exc))


async def not_found_handler(request: Request, exc: ItemNotFound) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=_error_body(exc))


async def ledger_busy_handler(request: Request, exc: LedgerBusy) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=_error_body(exc))


async def unauthenticated_handler(request: Request, exc: Unauthenticated) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": exc.detail},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def forbidden_handler(request: Request, exc: Forbidden) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": exc.detail})


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    想定外の例外を記録し、内部の詳細を含まない500レスポンスを返します。

    エラーIDはログとレスポンスの両方に含まれ、問い合わせ時の照合に使用できます。
    """
    error_id = id(exc)
    logger.error(
        f"未処理の例外 [{error_id}] {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "error_id": error_id},
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """
    例外ハンドラーをアプリケーションに登録します。
    """
    app.add_exception_handler(InputError, input_error_handler)
    app.add_exception_handler(ItemNotFound, not_found_handler)
    app.add_exception_handler(LedgerBusy, ledger_busy_handler)
    app.add_exception_handler(Unauthenticated, unauthenticated_handler)
    app.add_exception_handler(Forbidden, forbidden_handler)
    app.add_exception_handler(Exception, global_exception_handler)
    logger.debug("例外ハンドラーを登録しました。")
