"""
定期検索スケジューラ API エンドポイント
"""

import secrets
from typing import AsyncGenerator, Literal

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel

from src.config.logging import get_logger
from src.config.settings import get_settings
from src.database.connection import get_session_maker
from src.services.error_handler import AuthorizationError, SelectionError
from src.services.schedule_processor import ScheduleProcessor

logger = get_logger(__name__)
router = APIRouter(prefix="/api/scheduler", tags=["Scheduler"])


class ProcessResponse(BaseModel):
    """スケジューラ実行レスポンス"""

    success: bool


def verify_api_key(api_key: str | None) -> None:
    """共有シークレットを検証

    Raises:
        AuthorizationError: 未設定・不一致の場合
    """
    expected = get_settings().scheduler_api_key
    if not expected or not api_key:
        raise AuthorizationError()
    if not secrets.compare_digest(api_key.encode("utf-8"), expected.encode("utf-8")):
        raise AuthorizationError()


async def require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    """X-API-Key ヘッダーを検証する依存関数"""
    try:
        verify_api_key(x_api_key)
    except AuthorizationError as e:
        logger.warning("Unauthorized scheduler access attempt")
        raise HTTPException(status_code=401, detail=e.message) from e


async def get_schedule_processor() -> AsyncGenerator[ScheduleProcessor, None]:
    """スケジュール処理サービスを取得"""
    processor = ScheduleProcessor(get_session_maker())
    try:
        yield processor
    finally:
        await processor.close()


@router.post("/process", response_model=ProcessResponse, dependencies=[Depends(require_api_key)])
async def process_schedules(
    search_type: Literal["ai", "hansard"] | None = Query(
        default=None, alias="searchType", description="処理する検索タイプ（省略時はすべて）"
    ),
    processor: ScheduleProcessor = Depends(get_schedule_processor),
):
    """実行時刻に達した保存済み検索を処理

    Args:
        search_type: 処理する検索タイプ
        processor: スケジュール処理サービス

    Returns:
        成功レスポンス（個々のスケジュールの失敗は含まない）

    Raises:
        HTTPException: スケジュールの取得に失敗した場合
    """
    try:
        summary = await processor.process_due_schedules(search_type)
        logger.info(
            f"POST /api/scheduler/process: selected={summary.selected}, "
            f"failed={len(summary.failed)}"
        )
        return ProcessResponse(success=True)

    except SelectionError as e:
        logger.error(f"Error in scheduler: {e.message}")
        raise HTTPException(status_code=500, detail="Internal server error") from e
    except Exception as e:
        logger.exception(f"Error in scheduler: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error") from e
