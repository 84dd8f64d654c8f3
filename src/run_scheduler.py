"""
スケジューラ起動スクリプト

HTTP を経由せずに定期検索を 1 回処理します（cron などからの実行用）。
"""

import asyncio
from enum import Enum
from typing import Optional

import typer

from src.config.logging import get_logger, setup_logging
from src.database.connection import close_db, get_session_maker, init_db
from src.services.error_handler import SelectionError
from src.services.schedule_processor import ProcessingSummary, ScheduleProcessor

logger = get_logger(__name__)

app = typer.Typer(
    name="whatgov-scheduler",
    help="保存済み検索の定期実行",
    add_completion=False,
)


class SearchTypeOption(str, Enum):
    """処理対象の検索タイプ"""

    ai = "ai"
    hansard = "hansard"


async def run_once(search_type: str | None = None) -> ProcessingSummary:
    """スケジュールを 1 回処理"""
    await init_db()
    processor = ScheduleProcessor(get_session_maker())
    try:
        return await processor.process_due_schedules(search_type)
    finally:
        await processor.close()
        await close_db()


@app.command()
def main(
    search_type: Optional[SearchTypeOption] = typer.Option(
        None, "--search-type", "-t", help="処理する検索タイプ（省略時はすべて）"
    ),
) -> None:
    """実行時刻に達した保存済み検索を処理"""
    # ログ設定
    setup_logging()

    try:
        summary = asyncio.run(run_once(search_type.value if search_type else None))
    except SelectionError as e:
        logger.error(f"Scheduler aborted: {e.message}")
        raise typer.Exit(code=1) from e

    typer.echo(
        f"selected={summary.selected} succeeded={len(summary.succeeded)} failed={len(summary.failed)}"
    )


if __name__ == "__main__":
    app()
