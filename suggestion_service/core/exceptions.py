"""カスタム例外クラス"""


class SuggestionSystemError(Exception):
    """サジェストシステム基底例外クラス"""

    def __init__(
        self,
        message: str,
        error_code: str = "SUGGESTION_SYSTEM_ERROR",
        status_code: int = 500,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code


class DatabaseException(SuggestionSystemError):
    """データベース関連の例外"""

    def __init__(self, message: str):
        super().__init__(message, error_code="DATABASE_ERROR", status_code=500)


class SourceUnavailable(SuggestionSystemError):
    """候補ソースの取得失敗・タイムアウト"""

    def __init__(self, source: str, message: str):
        super().__init__(
            f"{source}: {message}", error_code="SOURCE_UNAVAILABLE", status_code=503
        )
        self.source = source


class InvalidInput(SuggestionSystemError):
    """入力不正（空クエリ・短すぎるクエリ）"""

    def __init__(self, message: str):
        super().__init__(message, error_code="INVALID_INPUT", status_code=422)


class AggregationFailure(SuggestionSystemError):
    """マージ・ランキング中の想定外エラー"""

    def __init__(self, message: str):
        super().__init__(message, error_code="AGGREGATION_FAILURE", status_code=500)


class RecordingFailure(SuggestionSystemError):
    """検索履歴の書き込み失敗"""

    def __init__(self, message: str):
        super().__init__(message, error_code="RECORDING_FAILURE", status_code=500)

