"""
Hansard API クライアント

UK Parliament Hansard の検索 API を呼び出し、保存用の要約を組み立てる
"""

from typing import Any

import httpx

from src.config.logging import get_logger
from src.config.settings import get_settings
from src.services.error_handler import HansardAPIError

logger = get_logger(__name__)

# 先頭結果を選ぶカテゴリの優先順
RESULT_PRIORITY = ("Contributions", "WrittenStatements", "WrittenAnswers", "Corrections")

SUMMARY_FIELDS = (
    "TotalMembers",
    "TotalContributions",
    "TotalWrittenStatements",
    "TotalWrittenAnswers",
    "TotalCorrections",
    "TotalPetitions",
    "TotalDebates",
    "TotalCommittees",
    "TotalDivisions",
)


def select_first_result(data: dict[str, Any]) -> dict[str, Any] | None:
    """優先順で最初に空でないカテゴリの先頭結果を返す"""
    for category in RESULT_PRIORITY:
        items = data.get(category)
        if isinstance(items, list) and items:
            return items[0]
    return None


def result_identifier(result: dict[str, Any] | None) -> str | None:
    """結果の識別子（ContributionExtId、無ければ DebateSectionExtId）"""
    if not result:
        return None
    return result.get("ContributionExtId") or result.get("DebateSectionExtId")


def build_summary(data: dict[str, Any]) -> dict[str, int]:
    """件数の要約を作成（欠けている項目は 0）"""
    return {name: int(data.get(name) or 0) for name in SUMMARY_FIELDS}


class HansardClient:
    """Hansard 検索 API クライアント"""

    SEARCH_ENDPOINT = "/search.json"

    def __init__(self):
        self.settings = get_settings()
        self.base_url = self.settings.hansard_api_url
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """HTTPクライアントを取得（遅延初期化）"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.settings.hansard_api_timeout),
            )
        return self._client

    async def close(self):
        """HTTPクライアントをクローズ"""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def search(self, search_term: str, house: str | None = None) -> dict[str, Any]:
        """Hansard を検索

        Args:
            search_term: 検索語
            house: Commons / Lords（省略時は両院）

        Returns:
            検索 API のレスポンス

        Raises:
            HansardAPIError: API エラー
        """
        params = {"queryParameters.searchTerm": search_term}
        if house:
            params["queryParameters.house"] = house

        client = await self._get_client()
        logger.info(f"Searching Hansard: searchTerm={search_term}, house={house}")

        try:
            response = await client.get(self.SEARCH_ENDPOINT, params=params)
        except httpx.TimeoutException as e:
            logger.error(f"Hansard API timeout: {str(e)}")
            raise HansardAPIError(
                "Hansard API リクエストがタイムアウトしました", original_error=e
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Hansard API HTTP error: {str(e)}")
            raise HansardAPIError(f"Hansard API HTTP エラー: {str(e)}", original_error=e) from e

        if not 200 <= response.status_code < 300:
            logger.error(
                f"Hansard API error: {response.status_code}",
                extra={"status_code": response.status_code},
            )
            raise HansardAPIError(
                f"Hansard API error: {response.status_code}",
                details={"status_code": response.status_code},
            )

        data = response.json()
        if not isinstance(data, dict):
            raise HansardAPIError("Invalid Hansard API response format")

        return data
