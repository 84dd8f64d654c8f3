"""Test configuration"""
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.database.connection import Base
# Import all models to ensure they are registered
from src.models.saved_search import SavedSearch, SavedSearchResult, SavedSearchSchedule  # noqa: F401
from src.models.weekly_assistant import WeeklyAssistant  # noqa: F401


@pytest.fixture
async def db_engine(tmp_path):
    """テスト用データベースエンジン"""
    # セッションをまたいで同じデータを参照できるようファイルを使う
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    """テスト用セッションメーカー"""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(session_maker):
    """テスト用データベースセッション"""
    async with session_maker() as session:
        yield session


@pytest.fixture
def mock_settings():
    """モック設定"""
    settings = MagicMock()
    settings.scheduler_api_key = "test_scheduler_key"
    settings.scheduler_timezone = "Europe/London"
    settings.openai_api_key = "test_api_key"
    settings.assistant_api_url = "https://assistant.test/v1"
    settings.default_assistant_id = "asst_default"
    settings.assistant_poll_interval = 0
    settings.assistant_max_poll_attempts = 5
    settings.assistant_request_timeout = 60.0
    settings.hansard_api_url = "https://hansard.test"
    settings.hansard_api_timeout = 30.0
    return settings


@pytest.fixture
def make_schedule(session_maker):
    """保存済み検索とスケジュールを作成するファクトリ"""

    async def _make_schedule(
        query: str = "climate change",
        search_type: str = "hansard",
        day_of_week: int = 5,
        is_active: bool = True,
        next_run_at: datetime | None = None,
        last_run_at: datetime | None = None,
        query_state: dict | None = None,
        user_id: str = "user-1",
    ) -> SavedSearchSchedule:
        async with session_maker() as session:
            saved_search = SavedSearch(
                user_id=user_id,
                query=query,
                query_state=query_state,
                search_type=search_type,
            )
            session.add(saved_search)
            await session.flush()

            schedule = SavedSearchSchedule(
                saved_search_id=saved_search.id,
                user_id=user_id,
                is_active=is_active,
                next_run_at=next_run_at,
                last_run_at=last_run_at,
                repeat_on={"frequency": "weekly", "dayOfWeek": day_of_week},
            )
            session.add(schedule)
            await session.commit()
            return schedule

    return _make_schedule
