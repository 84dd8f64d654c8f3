"""
週次アシスタント解決

ISO 週の月曜日をキーに週次アシスタントを検索し、見つからない場合は既定のアシスタントを使う
"""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.logging import get_logger
from src.models.weekly_assistant import WeeklyAssistant
from src.services.error_handler import WeeklyAssistantLookupError

logger = get_logger(__name__)


async def lookup_weekly_assistant(session: AsyncSession, week_start: str) -> str | None:
    """週次アシスタント ID を取得

    Args:
        session: データベースセッション
        week_start: ISO 週の月曜日 (YYYY-MM-DD)

    Returns:
        アシスタント ID（存在しない場合は None）

    Raises:
        WeeklyAssistantLookupError: 検索に失敗した場合
    """
    try:
        stmt = select(WeeklyAssistant.assistant_id).where(WeeklyAssistant.week_start == week_start)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
    except SQLAlchemyError as e:
        raise WeeklyAssistantLookupError(
            f"Failed to look up weekly assistant for {week_start}",
            details={"week_start": week_start},
            original_error=e,
        ) from e


async def resolve_assistant_id(session: AsyncSession, week_start: str, default_id: str) -> str:
    """使用するアシスタント ID を決定

    週次アシスタントが無い場合、または検索に失敗した場合は default_id を返します。
    """
    try:
        assistant_id = await lookup_weekly_assistant(session, week_start)
    except WeeklyAssistantLookupError as e:
        logger.warning(
            f"Weekly assistant lookup failed, using default: {e.message}",
            extra={"error_details": e.details},
        )
        return default_id

    if assistant_id:
        logger.info(f"Using weekly assistant {assistant_id} for week {week_start}")
        return assistant_id

    logger.info(f"No weekly assistant for week {week_start}, using default")
    return default_id
