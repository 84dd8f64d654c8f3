"""
エラーハンドリングユーティリティ

一貫したエラーレスポンスを提供します。
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from src.config.logging import get_logger

logger = get_logger(__name__)


class ErrorCode(str, Enum):
    """エラーコード"""

    # 一般エラー
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"

    # スケジューラ関連
    SELECTION_ERROR = "SELECTION_ERROR"
    UNSUPPORTED_SEARCH_TYPE = "UNSUPPORTED_SEARCH_TYPE"
    INVALID_REPEAT_RULE = "INVALID_REPEAT_RULE"
    SCHEDULE_CONFLICT = "SCHEDULE_CONFLICT"

    # アシスタント関連
    ASSISTANT_API_ERROR = "ASSISTANT_API_ERROR"
    ASSISTANT_RUN_FAILED = "ASSISTANT_RUN_FAILED"
    ASSISTANT_RUN_TIMEOUT = "ASSISTANT_RUN_TIMEOUT"
    WEEKLY_ASSISTANT_LOOKUP_ERROR = "WEEKLY_ASSISTANT_LOOKUP_ERROR"

    # Hansard 関連
    HANSARD_API_ERROR = "HANSARD_API_ERROR"

    # データベース関連
    DATABASE_ERROR = "DATABASE_ERROR"


class ErrorResponse(BaseModel):
    """エラーレスポンス"""

    code: ErrorCode
    message: str
    details: Optional[dict[str, Any]] = None


class ApplicationError(Exception):
    """アプリケーション基底例外"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.original_error = original_error
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """ErrorResponse に変換"""
        return ErrorResponse(code=self.code, message=self.message, details=self.details)


class AuthorizationError(ApplicationError):
    """共有シークレット不一致エラー"""

    def __init__(self, message: str = "Unauthorized", details: Optional[dict[str, Any]] = None, **kwargs):
        super().__init__(code=ErrorCode.UNAUTHORIZED, message=message, details=details, **kwargs)


class SelectionError(ApplicationError):
    """実行対象スケジュールの取得エラー"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None, **kwargs):
        super().__init__(code=ErrorCode.SELECTION_ERROR, message=message, details=details, **kwargs)


class UnsupportedSearchTypeError(ApplicationError):
    """未対応の検索タイプ"""

    def __init__(self, search_type: str, **kwargs):
        super().__init__(
            code=ErrorCode.UNSUPPORTED_SEARCH_TYPE,
            message=f"Unsupported search type: {search_type}",
            details={"search_type": search_type},
            **kwargs,
        )


class InvalidRepeatRuleError(ApplicationError):
    """繰り返しルール不正エラー"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None, **kwargs):
        super().__init__(
            code=ErrorCode.INVALID_REPEAT_RULE, message=message, details=details, **kwargs
        )


class AssistantAPIError(ApplicationError):
    """アシスタント API エラー"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None, **kwargs):
        super().__init__(
            code=ErrorCode.ASSISTANT_API_ERROR, message=message, details=details, **kwargs
        )


class AssistantRunFailedError(ApplicationError):
    """アシスタントの実行が failed / cancelled で終了"""

    def __init__(self, status: str, details: Optional[dict[str, Any]] = None, **kwargs):
        self.status = status
        super().__init__(
            code=ErrorCode.ASSISTANT_RUN_FAILED,
            message=f"Run {status}",
            details={"status": status, **(details or {})},
            **kwargs,
        )


class AssistantRunTimeoutError(ApplicationError):
    """アシスタントの実行がポーリング上限内に終了しなかった"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None, **kwargs):
        super().__init__(
            code=ErrorCode.ASSISTANT_RUN_TIMEOUT, message=message, details=details, **kwargs
        )


class WeeklyAssistantLookupError(ApplicationError):
    """週次アシスタントの検索エラー"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None, **kwargs):
        super().__init__(
            code=ErrorCode.WEEKLY_ASSISTANT_LOOKUP_ERROR, message=message, details=details, **kwargs
        )


class HansardAPIError(ApplicationError):
    """Hansard API エラー"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None, **kwargs):
        super().__init__(code=ErrorCode.HANSARD_API_ERROR, message=message, details=details, **kwargs)


class PersistenceError(ApplicationError):
    """結果保存・スケジュール更新エラー"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None, **kwargs):
        super().__init__(code=ErrorCode.DATABASE_ERROR, message=message, details=details, **kwargs)


class ScheduleConflictError(ApplicationError):
    """他の実行が先にスケジュールを更新していた"""

    def __init__(self, schedule_id: str, **kwargs):
        super().__init__(
            code=ErrorCode.SCHEDULE_CONFLICT,
            message=f"Schedule {schedule_id} was updated by another run",
            details={"schedule_id": schedule_id},
            **kwargs,
        )


def handle_error(error: Exception, context: Optional[dict[str, Any]] = None) -> ErrorResponse:
    """エラーをハンドリングして ErrorResponse を返す

    Args:
        error: 例外
        context: コンテキスト情報

    Returns:
        ErrorResponse
    """
    context = context or {}

    if isinstance(error, ApplicationError):
        logger.error(
            f"Application error: {error.code} - {error.message}",
            extra={"error_details": error.details, **context},
        )
        return error.to_response()

    # 予期しないエラー
    logger.exception("Unexpected error", extra=context)
    return ErrorResponse(
        code=ErrorCode.INTERNAL_ERROR,
        message="予期しないエラーが発生しました",
        details={"original_error": str(error)},
    )
