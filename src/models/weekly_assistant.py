"""
週次アシスタント関連モデル

WeeklyAssistant
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from src.database.connection import Base


class WeeklyAssistant(Base):
    """週ごとに作成されるアシスタント（キーは ISO 週の月曜日）"""

    __tablename__ = "weekly_assistants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    week_start: Mapped[str] = mapped_column(String(10), nullable=False, unique=True, index=True)
    assistant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<WeeklyAssistant(week_start={self.week_start}, assistant={self.assistant_id})>"
