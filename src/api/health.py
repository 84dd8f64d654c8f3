"""
ヘルスチェックエンドポイント
"""

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src.config.logging import get_logger
from src.database.connection import get_session_maker

logger = get_logger(__name__)
router = APIRouter()

API_VERSION = "0.1.0"


class HealthResponse(BaseModel):
    """ヘルスチェックレスポンス"""

    status: str
    database: str
    timestamp: datetime
    version: str = API_VERSION


async def check_database() -> bool:
    """データベースに接続できるか確認"""
    try:
        async with get_session_maker()() as session:
            await session.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.warning(f"Database health check failed: {str(e)}")
        return False


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """ヘルスチェック

    データベースに接続できない場合は status=degraded を返します。
    """
    database_ok = await check_database()
    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        database="ok" if database_ok else "unavailable",
        timestamp=datetime.utcnow(),
    )


@router.get("/")
async def root() -> dict[str, str]:
    """API情報"""
    return {"name": "WhatGov Scheduler API", "version": API_VERSION}
