class Unauthenticated(Exception):
    """トークンが無い、または検証できない場合に送出されます。"""

    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(detail)
        self.detail = detail


class TokenInvalid(Unauthenticated):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(detail)


class TokenExpired(Unauthenticated):
    def __init__(self, detail: str = "Token has expired"):
        super().__init__(detail)


class Forbidden(Exception):
    """認証済みだがアクセスレベルが不足している場合に送出されます。"""

    def __init__(self, detail: str = "Not authorized to perform this operation"):
        super().__init__(detail)
        self.detail = detail


class InputError(Exception):
    """
    機械可読なエラーコードを持つ入力エラー。

    Parameters
    ----------
    error_code : str
        安定したエラーコード（例: "A104"）。
    error_message : str
        人間向けのエラーメッセージ。
    """

    def __init__(self, error_code: str, error_message: str):
        super().__init__(f"{{{error_code}}} {error_message}")
        self.error_code = error_code
        self.error_message = error_message


class ItemNotFound(InputError):
    def __init__(self, item_id: int, kind: str = "Game"):
        super().__init__("A105", f"{kind} not found with ID: {item_id}")
        self.item_id = item_id


class NoCopiesAvailable(InputError):
    def __init__(self):
        super().__init__("A106", "No copies available for checkout.")


class AllCopiesAlreadyReturned(InputError):
    def __init__(self):
        super().__init__("A107", "Cannot return game, all copies already returned.")


class LedgerBusy(InputError):
    def __init__(self):
        super().__init__("A108", "The game is being updated by another request, please retry.")


class UnsupportedDatabase(Exception):
    """台帳の upsert に対応していないデータベースが設定されている場合に送出されます。"""

    def __init__(self, dialect_name: str):
        super().__init__(f"Database dialect '{dialect_name}' is not supported; use postgresql or sqlite")
        self.dialect_name = dialect_name
