"""
繰り返しルール計算

週次ルールから次回実行時刻を求める関数と、日付キーのユーティリティを提供します。
"""

from datetime import datetime, timedelta
from typing import Any

from pydantic import ValidationError

from src.models.search_payloads import RepeatRule
from src.services.error_handler import InvalidRepeatRuleError

# 実行時刻（ローカル時刻）
RUN_HOUR = 7

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def parse_repeat_rule(raw: RepeatRule | dict[str, Any] | None) -> RepeatRule:
    """保存された repeat_on を RepeatRule に変換

    Raises:
        InvalidRepeatRuleError: 形式が不正、または weekly 以外の場合
    """
    if isinstance(raw, RepeatRule):
        rule = raw
    else:
        try:
            rule = RepeatRule.model_validate(raw or {})
        except ValidationError as e:
            raise InvalidRepeatRuleError(
                "繰り返しルールの形式が不正です", details={"repeat_on": raw}, original_error=e
            ) from e

    if rule.frequency != "weekly":
        raise InvalidRepeatRuleError(
            f"Unsupported frequency: {rule.frequency}", details={"frequency": rule.frequency}
        )
    if not 1 <= rule.day_of_week <= 7:
        raise InvalidRepeatRuleError(
            f"dayOfWeek must be 1..7: {rule.day_of_week}", details={"dayOfWeek": rule.day_of_week}
        )
    return rule


def calculate_next_run(repeat_on: RepeatRule | dict[str, Any], now: datetime) -> datetime:
    """次回実行時刻を計算

    対象曜日の 07:00 を返します。当日が対象曜日で既に 7 時を過ぎていれば翌週になります。

    Args:
        repeat_on: 繰り返しルール ({"frequency": "weekly", "dayOfWeek": 1..7})
        now: 現在時刻（ローカル）

    Returns:
        次回実行時刻

    Raises:
        InvalidRepeatRuleError: ルールが不正な場合
    """
    rule = parse_repeat_rule(repeat_on)

    # 日曜 = 0 の曜日番号にそろえる
    target_day = 0 if rule.day_of_week == 7 else rule.day_of_week
    current_day = now.isoweekday() % 7

    days_to_add = (target_day - current_day + 7) % 7
    if days_to_add == 0 and now.hour >= RUN_HOUR:
        days_to_add = 7

    next_date = now + timedelta(days=days_to_add)
    return next_date.replace(hour=RUN_HOUR, minute=0, second=0, microsecond=0)


def week_start_key(now: datetime) -> str:
    """ISO 週の月曜日を YYYY-MM-DD で返す"""
    monday = now.date() - timedelta(days=now.weekday())
    return monday.isoformat()


def last_seven_days(now: datetime) -> list[str]:
    """今日を含む直近 7 日間を新しい順に返す（例: "Monday 2024-03-11"）"""
    days = []
    for offset in range(7):
        day = now.date() - timedelta(days=offset)
        days.append(f"{WEEKDAY_NAMES[day.weekday()]} {day.isoformat()}")
    return days
