"""
定期検索スケジュール処理

実行時刻に達した保存済み検索を再実行し、結果を保存して次回実行時刻を設定します。
1 件のスケジュールの失敗はログに残して次のスケジュールへ進みます。
"""

from dataclasses import dataclass, field
from datetime import datetime

from pydantic import ValidationError
from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import contains_eager

from src.config.logging import get_logger, get_logger_with_context
from src.config.settings import get_settings
from src.models.saved_search import SavedSearch, SavedSearchResult, SavedSearchSchedule, SearchType
from src.models.search_payloads import (
    AISearchPayload,
    HansardSearchPayload,
    dump_payload,
    parse_payload,
)
from src.services.assistant_client import AssistantClient
from src.services.clock import Clock, SystemClock
from src.services.error_handler import (
    ApplicationError,
    AssistantAPIError,
    PersistenceError,
    ScheduleConflictError,
    SelectionError,
    UnsupportedSearchTypeError,
)
from src.services.hansard_client import (
    HansardClient,
    build_summary,
    result_identifier,
    select_first_result,
)
from src.services.recurrence import calculate_next_run, last_seven_days, week_start_key
from src.services.weekly_assistant import resolve_assistant_id

logger = get_logger(__name__)

# 両院指定はフィルタなしと同じ
ALL_HOUSES = "Commons,Lords"


@dataclass
class SearchOutcome:
    """1 回の検索実行の結果"""

    payload: AISearchPayload | HansardSearchPayload
    citations: list[str]
    has_changed: bool


@dataclass
class ProcessingSummary:
    """バッチ処理の集計"""

    selected: int = 0
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def build_ai_query(query: str, now: datetime) -> str:
    """直近の議事のみを使うよう日付を付け加えた質問文を作成"""
    return (
        f"{query}\n\nThe current date is {now.date().isoformat()}. "
        f"Your response must only use the most recent debates, from these days: "
        f"{', '.join(last_seven_days(now))}"
    )


class ScheduleProcessor:
    """定期検索スケジュールの処理"""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        assistant_client: AssistantClient | None = None,
        hansard_client: HansardClient | None = None,
        clock: Clock | None = None,
    ):
        self.settings = get_settings()
        self.session_maker = session_maker
        self.assistant_client = assistant_client or AssistantClient()
        self.hansard_client = hansard_client or HansardClient()
        self.clock = clock or SystemClock(self.settings.scheduler_timezone)

    async def close(self):
        """クライアントを閉じる"""
        await self.assistant_client.close()
        await self.hansard_client.close()

    async def process_due_schedules(self, search_type: str | None = None) -> ProcessingSummary:
        """実行時刻に達したスケジュールをすべて処理

        Args:
            search_type: 指定した場合はその検索タイプのスケジュールのみ処理

        Returns:
            処理結果の集計

        Raises:
            SelectionError: スケジュールの取得に失敗した場合
        """
        now = self.clock.now()
        logger.info(f"Starting scheduled search processing: now={now.isoformat()}, filter={search_type}")

        schedules = await self.select_due_schedules(now, search_type)
        summary = ProcessingSummary(selected=len(schedules))
        logger.info(f"Found {len(schedules)} due schedules")

        for schedule in schedules:
            log = get_logger_with_context(
                __name__,
                schedule_id=schedule.id,
                search_type=schedule.saved_search.search_type,
                user_id=schedule.user_id,
            )
            try:
                await self.process_schedule(schedule)
            except ApplicationError as e:
                log.error(f"Error processing schedule {schedule.id}: {e.code.value} - {e.message}")
                summary.failed.append(schedule.id)
                continue
            except Exception as e:
                log.exception(f"Unexpected error processing schedule {schedule.id}: {str(e)}")
                summary.failed.append(schedule.id)
                continue

            log.info(f"Processed schedule {schedule.id}")
            summary.succeeded.append(schedule.id)

        logger.info(
            f"Completed processing all schedules: succeeded={len(summary.succeeded)}, "
            f"failed={len(summary.failed)}"
        )
        return summary

    async def select_due_schedules(
        self, now: datetime, search_type: str | None = None
    ) -> list[SavedSearchSchedule]:
        """実行対象のスケジュールを保存済み検索と合わせて取得

        Raises:
            SelectionError: クエリに失敗した場合
        """
        stmt = (
            select(SavedSearchSchedule)
            .join(SavedSearchSchedule.saved_search)
            .options(contains_eager(SavedSearchSchedule.saved_search))
            .where(SavedSearchSchedule.is_active.is_(True))
            .where(
                or_(
                    SavedSearchSchedule.next_run_at.is_(None),
                    SavedSearchSchedule.next_run_at <= now,
                )
            )
        )
        if search_type:
            stmt = stmt.where(SavedSearch.search_type == SearchType(search_type).value)

        try:
            async with self.session_maker() as session:
                result = await session.execute(stmt)
                return list(result.scalars().unique().all())
        except SQLAlchemyError as e:
            logger.error(f"Error fetching schedules: {str(e)}")
            raise SelectionError("Failed to fetch due schedules", original_error=e) from e

    async def process_schedule(self, schedule: SavedSearchSchedule) -> None:
        """1 件のスケジュールを処理

        検索の実行、結果の保存、次回実行時刻の更新を行います。
        失敗した場合 last_run_at / next_run_at は変更されません。
        """
        now = self.clock.now()
        saved_search = schedule.saved_search
        search_type = saved_search.search_type

        if search_type == SearchType.AI.value:
            outcome = await self.run_ai_search(saved_search, now)
        elif search_type == SearchType.HANSARD.value:
            outcome = await self.run_hansard_search(schedule, now)
        else:
            raise UnsupportedSearchTypeError(search_type)

        next_run_at = calculate_next_run(schedule.repeat_on, now)
        await self.save_and_reschedule(schedule, outcome, now, next_run_at)

    async def run_ai_search(self, saved_search: SavedSearch, now: datetime) -> SearchOutcome:
        """AI 検索を実行"""
        week_start = week_start_key(now)
        async with self.session_maker() as session:
            assistant_id = await resolve_assistant_id(
                session, week_start, self.settings.default_assistant_id
            )
        if not assistant_id:
            raise AssistantAPIError("アシスタント ID が設定されていません")

        answer = await self.assistant_client.run_query(
            assistant_id, build_ai_query(saved_search.query, now)
        )
        payload = AISearchPayload(text=answer.text, citations=answer.citations)

        # 自由記述の回答は比較しない
        return SearchOutcome(payload=payload, citations=answer.citations, has_changed=False)

    async def run_hansard_search(self, schedule: SavedSearchSchedule, now: datetime) -> SearchOutcome:
        """Hansard 検索を実行して前回結果と比較"""
        saved_search = schedule.saved_search
        query_state = saved_search.query_state or {}
        house = query_state.get("house")
        if house == ALL_HOUSES:
            house = None

        data = await self.hansard_client.search(saved_search.query, house=house)
        first_result = select_first_result(data)

        payload = HansardSearchPayload(
            summary=build_summary(data),
            search_terms=data.get("SearchTerms") or [],
            first_result=first_result,
            date=now.date().isoformat(),
        )

        previous = await self.previous_first_result(schedule.user_id, saved_search.query)
        identifier = result_identifier(first_result)

        return SearchOutcome(
            payload=payload,
            citations=[identifier] if identifier else [],
            has_changed=previous != first_result,
        )

    async def previous_first_result(self, user_id: str, query: str) -> dict | None:
        """同じユーザー・クエリの直近の結果から先頭結果を取得

        読み取れない結果は「先頭結果なし」として扱います。
        """
        stmt = (
            select(SavedSearchResult.response)
            .where(SavedSearchResult.user_id == user_id, SavedSearchResult.query == query)
            .order_by(SavedSearchResult.created_at.desc())
            .limit(1)
        )
        try:
            async with self.session_maker() as session:
                result = await session.execute(stmt)
                raw = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to read previous result", original_error=e) from e

        if raw is None:
            return None

        try:
            payload = parse_payload(raw)
        except ValidationError:
            logger.warning(f"Previous result for query {query!r} is not readable, treating as empty")
            return None

        if isinstance(payload, HansardSearchPayload):
            return payload.first_result
        return None

    async def save_and_reschedule(
        self,
        schedule: SavedSearchSchedule,
        outcome: SearchOutcome,
        now: datetime,
        next_run_at: datetime,
    ) -> None:
        """結果を追加し、スケジュールを同一トランザクションで更新

        スケジュールの更新は取得時の last_run_at が変わっていない場合のみ行います。

        Raises:
            ScheduleConflictError: 他の実行が先に更新していた場合
            PersistenceError: データベースエラー
        """
        saved_search = schedule.saved_search

        conditions = [SavedSearchSchedule.id == schedule.id]
        if schedule.last_run_at is None:
            conditions.append(SavedSearchSchedule.last_run_at.is_(None))
        else:
            conditions.append(SavedSearchSchedule.last_run_at == schedule.last_run_at)

        try:
            async with self.session_maker() as session:
                async with session.begin():
                    session.add(
                        SavedSearchResult(
                            user_id=schedule.user_id,
                            query=saved_search.query,
                            response=dump_payload(outcome.payload),
                            citations=outcome.citations,
                            query_state=saved_search.query_state,
                            search_type=saved_search.search_type,
                            repeat_on=schedule.repeat_on,
                            has_changed=outcome.has_changed,
                            created_at=now,
                        )
                    )
                    result = await session.execute(
                        update(SavedSearchSchedule)
                        .where(*conditions)
                        .values(last_run_at=now, next_run_at=next_run_at)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        raise ScheduleConflictError(schedule.id)
        except SQLAlchemyError as e:
            logger.error(f"Error saving search: {str(e)}")
            raise PersistenceError(
                "Failed to save search result", details={"schedule_id": schedule.id}, original_error=e
            ) from e

        logger.info(f"Schedule {schedule.id} next run at {next_run_at.isoformat()}")
