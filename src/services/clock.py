"""
時刻ソース

スケジューラが参照する「現在時刻」を一箇所にまとめ、テストで固定できるようにします。
時刻は設定されたタイムゾーンのローカル時刻（tzinfo なし）で扱います。
"""

from datetime import datetime
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    """現在時刻を返すオブジェクト"""

    def now(self) -> datetime: ...


class SystemClock:
    """システム時刻を指定タイムゾーンのローカル時刻として返す"""

    def __init__(self, timezone: str = "Europe/London"):
        self.timezone = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self.timezone).replace(tzinfo=None)


class FixedClock:
    """常に同じ時刻を返す（テスト用）"""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant
