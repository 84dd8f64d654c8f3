"""
スケジュール処理のユニットテスト
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select, update

from src.database.connection import Base
from src.models.saved_search import SavedSearchResult, SavedSearchSchedule
from src.models.search_payloads import (
    AISearchPayload,
    HansardSearchPayload,
    dump_payload,
    parse_payload,
)
from src.models.weekly_assistant import WeeklyAssistant
from src.services.assistant_client import AssistantAnswer
from src.services.clock import FixedClock
from src.services.error_handler import (
    AssistantRunFailedError,
    HansardAPIError,
    InvalidRepeatRuleError,
    ScheduleConflictError,
    SelectionError,
)
from src.services.schedule_processor import ScheduleProcessor, build_ai_query

# 2024-03-11 10:00 (月曜日)
NOW = datetime(2024, 3, 11, 10, 0)

CONTRIBUTION_A = {
    "MemberName": "Jane Smith",
    "ContributionExtId": "c-1",
    "ContributionText": "Climate change is ...",
    "DebateSection": "Net Zero",
    "DebateSectionExtId": "d-1",
    "SittingDate": "2024-03-07T00:00:00",
    "Section": "Commons Chamber",
    "AttributedTo": "Jane Smith (Lab)",
}
CONTRIBUTION_B = {**CONTRIBUTION_A, "ContributionExtId": "c-2", "ContributionText": "Updated"}


def hansard_data(first_result: dict | None = CONTRIBUTION_A) -> dict:
    return {
        "TotalMembers": 0,
        "TotalContributions": 1 if first_result else 0,
        "SearchTerms": ["climate", "change"],
        "Contributions": [first_result] if first_result else [],
        "WrittenStatements": [],
        "WrittenAnswers": [{"ContributionExtId": "wa-1"}],
        "Corrections": [],
    }


@pytest.fixture
def hansard_client():
    client = MagicMock()
    client.search = AsyncMock(return_value=hansard_data())
    client.close = AsyncMock()
    return client


@pytest.fixture
def assistant_client():
    client = MagicMock()
    client.run_query = AsyncMock(
        return_value=AssistantAnswer(text="Net zero was debated.", citations=["[1] debate.txt"])
    )
    client.close = AsyncMock()
    return client


@pytest.fixture
def processor(session_maker, assistant_client, hansard_client, mock_settings):
    """固定時刻のスケジュール処理サービス"""
    with patch("src.services.schedule_processor.get_settings", return_value=mock_settings):
        yield ScheduleProcessor(
            session_maker,
            assistant_client=assistant_client,
            hansard_client=hansard_client,
            clock=FixedClock(NOW),
        )


async def load_schedule(session_maker, schedule_id: str) -> SavedSearchSchedule:
    async with session_maker() as session:
        return await session.get(SavedSearchSchedule, schedule_id)


async def load_results(session_maker) -> list[SavedSearchResult]:
    async with session_maker() as session:
        result = await session.execute(
            select(SavedSearchResult).order_by(SavedSearchResult.created_at)
        )
        return list(result.scalars().all())


async def add_previous_result(session_maker, first_result: dict | None, query: str = "climate change"):
    payload = HansardSearchPayload(
        summary={"TotalContributions": 1},
        search_terms=["climate"],
        first_result=first_result,
        date="2024-03-04",
    )
    async with session_maker() as session:
        session.add(
            SavedSearchResult(
                user_id="user-1",
                query=query,
                response=dump_payload(payload),
                citations=[],
                search_type="hansard",
                has_changed=False,
                created_at=NOW - timedelta(days=7),
            )
        )
        await session.commit()


@pytest.mark.asyncio
async def test_select_due_schedules(processor, make_schedule):
    """有効かつ next_run_at が未設定または過去のもののみ選択"""
    never_run = await make_schedule(query="never run")
    due = await make_schedule(query="due", next_run_at=NOW - timedelta(hours=1))
    exactly_now = await make_schedule(query="now", next_run_at=NOW)
    await make_schedule(query="future", next_run_at=NOW + timedelta(minutes=1))
    await make_schedule(query="inactive", is_active=False, next_run_at=NOW - timedelta(days=1))
    await make_schedule(query="inactive never run", is_active=False)

    schedules = await processor.select_due_schedules(NOW)

    assert {s.id for s in schedules} == {never_run.id, due.id, exactly_now.id}
    assert all(s.saved_search is not None for s in schedules)


@pytest.mark.asyncio
async def test_select_due_schedules_filtered_by_type(processor, make_schedule):
    """検索タイプで絞り込み"""
    await make_schedule(query="hansard search", search_type="hansard")
    ai = await make_schedule(query="ai search", search_type="ai")

    schedules = await processor.select_due_schedules(NOW, "ai")

    assert [s.id for s in schedules] == [ai.id]


@pytest.mark.asyncio
async def test_hansard_schedule_processed(processor, hansard_client, session_maker, make_schedule):
    """金曜指定の Hansard 検索を月曜 10:00 に処理"""
    schedule = await make_schedule(query="climate change", day_of_week=5)

    summary = await processor.process_due_schedules()

    assert summary.selected == 1
    assert summary.succeeded == [schedule.id]
    assert summary.failed == []
    hansard_client.search.assert_called_once_with("climate change", house=None)

    updated = await load_schedule(session_maker, schedule.id)
    assert updated.last_run_at == NOW
    assert updated.next_run_at == datetime(2024, 3, 15, 7, 0, 0)

    results = await load_results(session_maker)
    assert len(results) == 1
    result = results[0]
    assert result.user_id == "user-1"
    assert result.query == "climate change"
    assert result.search_type == "hansard"
    assert result.citations == ["c-1"]
    assert result.repeat_on == {"frequency": "weekly", "dayOfWeek": 5}
    # 前回結果なしから結果ありへ
    assert result.has_changed is True

    payload = parse_payload(result.response)
    assert isinstance(payload, HansardSearchPayload)
    assert payload.first_result == CONTRIBUTION_A
    assert payload.search_terms == ["climate", "change"]
    assert payload.summary["TotalContributions"] == 1
    assert payload.date == "2024-03-11"


@pytest.mark.asyncio
async def test_hansard_house_filter(processor, hansard_client, make_schedule):
    """query_state の house を渡す"""
    await make_schedule(query_state={"house": "Lords"})

    await processor.process_due_schedules()

    hansard_client.search.assert_called_once_with("climate change", house="Lords")


@pytest.mark.asyncio
async def test_hansard_both_houses_is_unfiltered(processor, hansard_client, make_schedule):
    """両院指定はフィルタなし"""
    await make_schedule(query_state={"house": "Commons,Lords"})

    await processor.process_due_schedules()

    hansard_client.search.assert_called_once_with("climate change", house=None)


@pytest.mark.asyncio
async def test_hansard_unchanged_result(processor, session_maker, make_schedule):
    """前回と同じ先頭結果なら has_changed=False"""
    await add_previous_result(session_maker, CONTRIBUTION_A)
    await make_schedule()

    await processor.process_due_schedules()

    results = await load_results(session_maker)
    assert len(results) == 2
    assert results[-1].has_changed is False


@pytest.mark.asyncio
async def test_hansard_changed_result(processor, hansard_client, session_maker, make_schedule):
    """先頭結果が変わったら has_changed=True"""
    await add_previous_result(session_maker, CONTRIBUTION_A)
    hansard_client.search.return_value = hansard_data(CONTRIBUTION_B)
    await make_schedule()

    await processor.process_due_schedules()

    results = await load_results(session_maker)
    assert results[-1].has_changed is True
    assert results[-1].citations == ["c-2"]


@pytest.mark.asyncio
async def test_hansard_result_disappeared(processor, hansard_client, session_maker, make_schedule):
    """結果ありから結果なしも変更"""
    await add_previous_result(session_maker, CONTRIBUTION_A)
    hansard_client.search.return_value = {"Contributions": [], "SearchTerms": []}
    await make_schedule()

    await processor.process_due_schedules()

    results = await load_results(session_maker)
    assert results[-1].has_changed is True
    assert results[-1].citations == []


@pytest.mark.asyncio
async def test_hansard_previous_from_other_user_ignored(
    processor, session_maker, make_schedule
):
    """別ユーザーの結果とは比較しない"""
    await add_previous_result(session_maker, CONTRIBUTION_A)
    await make_schedule(user_id="user-2")

    await processor.process_due_schedules()

    async with session_maker() as session:
        result = await session.execute(
            select(SavedSearchResult).where(SavedSearchResult.user_id == "user-2")
        )
        row = result.scalar_one()
    assert row.has_changed is True


@pytest.mark.asyncio
async def test_unreadable_previous_result(processor, session_maker, make_schedule):
    """読み取れない前回結果は「結果なし」として扱う"""
    async with session_maker() as session:
        session.add(
            SavedSearchResult(
                user_id="user-1",
                query="climate change",
                response="not json",
                citations=[],
                search_type="hansard",
                has_changed=False,
                created_at=NOW - timedelta(days=7),
            )
        )
        await session.commit()
    await make_schedule()

    summary = await processor.process_due_schedules()

    assert summary.failed == []
    results = await load_results(session_maker)
    assert results[-1].has_changed is True


@pytest.mark.asyncio
async def test_ai_schedule_uses_weekly_assistant(
    processor, assistant_client, session_maker, make_schedule
):
    """週次アシスタントを使って AI 検索を処理"""
    async with session_maker() as session:
        session.add(WeeklyAssistant(week_start="2024-03-11", assistant_id="asst_weekly"))
        await session.commit()
    schedule = await make_schedule(query="What happened on net zero?", search_type="ai", day_of_week=1)

    summary = await processor.process_due_schedules()

    assert summary.succeeded == [schedule.id]
    assistant_id, content = assistant_client.run_query.call_args[0]
    assert assistant_id == "asst_weekly"
    assert content.startswith("What happened on net zero?")
    assert "The current date is 2024-03-11" in content
    assert "Monday 2024-03-11" in content
    assert "Tuesday 2024-03-05" in content

    results = await load_results(session_maker)
    assert results[0].has_changed is False
    assert results[0].citations == ["[1] debate.txt"]
    payload = parse_payload(results[0].response)
    assert isinstance(payload, AISearchPayload)
    assert payload.text == "Net zero was debated."

    updated = await load_schedule(session_maker, schedule.id)
    # 月曜 10:00 に月曜指定は翌週
    assert updated.next_run_at == datetime(2024, 3, 18, 7, 0, 0)


@pytest.mark.asyncio
async def test_ai_schedule_falls_back_to_default_assistant(
    processor, assistant_client, session_maker, make_schedule
):
    """週次アシスタントが無い場合は既定のアシスタント"""
    async with session_maker() as session:
        session.add(WeeklyAssistant(week_start="2024-03-04", assistant_id="asst_last_week"))
        await session.commit()
    await make_schedule(search_type="ai")

    await processor.process_due_schedules()

    assert assistant_client.run_query.call_args[0][0] == "asst_default"


@pytest.mark.asyncio
async def test_ai_run_failure_is_isolated(processor, assistant_client, session_maker, make_schedule):
    """実行失敗時はスケジュールを更新しない"""
    assistant_client.run_query.side_effect = AssistantRunFailedError("failed")
    schedule = await make_schedule(search_type="ai")

    summary = await processor.process_due_schedules()

    assert summary.failed == [schedule.id]
    updated = await load_schedule(session_maker, schedule.id)
    assert updated.last_run_at is None
    assert updated.next_run_at is None
    assert await load_results(session_maker) == []


@pytest.mark.asyncio
async def test_unsupported_search_type(processor, session_maker, make_schedule):
    """calendar タイプはスキップして状態を変更しない"""
    previous_run = NOW - timedelta(days=7)
    schedule = await make_schedule(
        search_type="calendar", last_run_at=previous_run, next_run_at=NOW - timedelta(hours=3)
    )

    summary = await processor.process_due_schedules()

    assert summary.selected == 1
    assert summary.failed == [schedule.id]
    updated = await load_schedule(session_maker, schedule.id)
    assert updated.last_run_at == previous_run
    assert updated.next_run_at == NOW - timedelta(hours=3)
    assert await load_results(session_maker) == []


@pytest.mark.asyncio
async def test_failure_does_not_stop_batch(processor, hansard_client, session_maker, make_schedule):
    """1 件の失敗で他のスケジュールは止まらない"""

    async def search(search_term, house=None):
        if search_term == "q2":
            raise HansardAPIError("Hansard API error: 500", details={"status_code": 500})
        return hansard_data()

    hansard_client.search.side_effect = search
    first = await make_schedule(query="q1")
    failing = await make_schedule(query="q2")
    third = await make_schedule(query="q3")

    summary = await processor.process_due_schedules()

    assert summary.selected == 3
    assert set(summary.succeeded) == {first.id, third.id}
    assert summary.failed == [failing.id]

    assert (await load_schedule(session_maker, failing.id)).next_run_at is None
    assert (await load_schedule(session_maker, first.id)).next_run_at == datetime(2024, 3, 15, 7, 0)
    assert (await load_schedule(session_maker, third.id)).next_run_at == datetime(2024, 3, 15, 7, 0)
    assert {r.query for r in await load_results(session_maker)} == {"q1", "q3"}


@pytest.mark.asyncio
async def test_invalid_repeat_rule_is_isolated(processor, session_maker, make_schedule):
    """繰り返しルールが不正な場合は何も保存しない"""
    schedule = await make_schedule()
    async with session_maker() as session:
        await session.execute(
            update(SavedSearchSchedule)
            .where(SavedSearchSchedule.id == schedule.id)
            .values(repeat_on={"frequency": "monthly", "dayOfWeek": 1})
        )
        await session.commit()

    schedules = await processor.select_due_schedules(NOW)
    with pytest.raises(InvalidRepeatRuleError):
        await processor.process_schedule(schedules[0])

    assert await load_results(session_maker) == []


@pytest.mark.asyncio
async def test_concurrent_update_rolls_back(processor, session_maker, make_schedule):
    """取得後に他の実行が更新していた場合は結果も保存しない"""
    schedule = await make_schedule()
    schedules = await processor.select_due_schedules(NOW)

    # 別の実行が先に処理した
    async with session_maker() as session:
        await session.execute(
            update(SavedSearchSchedule)
            .where(SavedSearchSchedule.id == schedule.id)
            .values(last_run_at=NOW, next_run_at=datetime(2024, 3, 15, 7, 0))
        )
        await session.commit()

    with pytest.raises(ScheduleConflictError):
        await processor.process_schedule(schedules[0])

    assert await load_results(session_maker) == []


@pytest.mark.asyncio
async def test_second_run_is_not_due(processor, hansard_client, make_schedule):
    """処理後のスケジュールは同じ時刻には選択されない"""
    await make_schedule()

    await processor.process_due_schedules()
    summary = await processor.process_due_schedules()

    assert summary.selected == 0
    assert hansard_client.search.call_count == 1


@pytest.mark.asyncio
async def test_selection_failure_aborts(processor, db_engine, make_schedule):
    """スケジュール取得に失敗したらバッチ全体を中断"""
    await make_schedule()
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    with pytest.raises(SelectionError):
        await processor.process_due_schedules()


def test_build_ai_query():
    """日付の指示を付け加える"""
    content = build_ai_query("Housing policy", NOW)

    assert content.startswith("Housing policy\n\nThe current date is 2024-03-11.")
    assert content.endswith(
        "Monday 2024-03-11, Sunday 2024-03-10, Saturday 2024-03-09, Friday 2024-03-08, "
        "Thursday 2024-03-07, Wednesday 2024-03-06, Tuesday 2024-03-05"
    )
