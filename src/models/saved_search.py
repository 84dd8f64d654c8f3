"""
保存済み検索関連モデル

SavedSearch, SavedSearchSchedule, SavedSearchResult
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.connection import Base


class SearchType(str, Enum):
    """検索タイプ"""

    AI = "ai"
    HANSARD = "hansard"
    CALENDAR = "calendar"


class SavedSearch(Base):
    """保存済み検索の定義"""

    __tablename__ = "saved_searches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    query: Mapped[str] = mapped_column(Text, nullable=False)
    query_state: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    # 未対応タイプもディスパッチ時に弾けるよう文字列で保持する
    search_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    # リレーション
    schedules: Mapped[list["SavedSearchSchedule"]] = relationship(
        "SavedSearchSchedule", back_populates="saved_search", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<SavedSearch(id={self.id}, type={self.search_type})>"


class SavedSearchSchedule(Base):
    """保存済み検索の定期実行スケジュール"""

    __tablename__ = "saved_search_schedules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    saved_search_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("saved_searches.id"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    last_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    next_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    # {"frequency": "weekly", "dayOfWeek": 1..7}
    repeat_on: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # リレーション
    saved_search: Mapped["SavedSearch"] = relationship("SavedSearch", back_populates="schedules")

    def __repr__(self) -> str:
        return f"<SavedSearchSchedule(id={self.id}, next_run_at={self.next_run_at})>"


class SavedSearchResult(Base):
    """保存済み検索の実行結果（追記のみ）"""

    __tablename__ = "saved_search_results"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    query: Mapped[str] = mapped_column(Text, nullable=False)
    response: Mapped[str] = mapped_column(Text, nullable=False)
    citations: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    query_state: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    search_type: Mapped[str] = mapped_column(String(20), nullable=False)
    repeat_on: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    has_changed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, index=True
    )

    def __repr__(self) -> str:
        return f"<SavedSearchResult(id={self.id}, changed={self.has_changed})>"
