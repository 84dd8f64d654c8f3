"""
検索結果ペイロード

検索タイプごとのレスポンス形状（search_type で識別するタグ付きユニオン）と
繰り返しルールを定義します。
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class RepeatRule(BaseModel):
    """繰り返しルール"""

    model_config = ConfigDict(populate_by_name=True)

    frequency: str = Field(description="繰り返し頻度（weekly のみ対応）")
    day_of_week: int = Field(alias="dayOfWeek", description="ISO 曜日（1=月曜 .. 7=日曜）")


class AISearchPayload(BaseModel):
    """AI 検索結果"""

    search_type: Literal["ai"] = "ai"
    text: str = Field(description="アシスタントの回答")
    citations: list[str] = Field(default_factory=list, description="引用ファイル名")


class HansardSearchPayload(BaseModel):
    """Hansard 検索結果の要約"""

    model_config = ConfigDict(populate_by_name=True)

    search_type: Literal["hansard"] = "hansard"
    summary: dict[str, int] = Field(description="カテゴリ別の件数")
    search_terms: list[str] = Field(default_factory=list, alias="searchTerms")
    first_result: dict[str, Any] | None = Field(default=None, alias="firstResult")
    date: str = Field(description="実行日 (YYYY-MM-DD)")


SearchPayload = Annotated[
    Union[AISearchPayload, HansardSearchPayload], Field(discriminator="search_type")
]

_payload_adapter: TypeAdapter = TypeAdapter(SearchPayload)


def dump_payload(payload: AISearchPayload | HansardSearchPayload) -> str:
    """ペイロードを保存用の JSON 文字列に変換"""
    return payload.model_dump_json(by_alias=True)


def parse_payload(raw: str) -> AISearchPayload | HansardSearchPayload:
    """保存済み JSON 文字列をペイロードに復元

    Raises:
        pydantic.ValidationError: 形式が不正な場合
    """
    return _payload_adapter.validate_json(raw)
