"""
アシスタント API クライアント

OpenAI Assistants API (threads / runs) を使用して保存済み AI 検索を再実行
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

import httpx

from src.config.logging import get_logger
from src.config.settings import get_settings
from src.services.error_handler import (
    AssistantAPIError,
    AssistantRunFailedError,
    AssistantRunTimeoutError,
)

logger = get_logger(__name__)

# 失敗として扱う終了状態
FAILED_RUN_STATUSES = frozenset({"failed", "cancelled", "expired", "incomplete"})


@dataclass
class AssistantAnswer:
    """アシスタントの回答"""

    text: str
    citations: list[str] = field(default_factory=list)


class AssistantClient:
    """アシスタント API クライアント"""

    def __init__(self):
        self.settings = get_settings()
        self.api_key = self.settings.openai_api_key
        self.base_url = self.settings.assistant_api_url
        self.poll_interval = self.settings.assistant_poll_interval
        self.max_poll_attempts = self.settings.assistant_max_poll_attempts
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """HTTPクライアントを取得（遅延初期化）"""
        if not self.api_key:
            raise AssistantAPIError("アシスタント API キーが設定されていません")

        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "OpenAI-Beta": "assistants=v2",
                },
                timeout=httpx.Timeout(self.settings.assistant_request_timeout),
            )
        return self._client

    async def close(self):
        """HTTPクライアントをクローズ"""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """API リクエストを送信して JSON を返す

        Raises:
            AssistantAPIError: 通信エラーまたは 2xx 以外のレスポンス
        """
        client = await self._get_client()

        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Assistant API timeout: {method} {path}")
            raise AssistantAPIError(
                "アシスタント API リクエストがタイムアウトしました",
                details={"path": path},
                original_error=e,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Assistant API HTTP error: {str(e)}")
            raise AssistantAPIError(
                f"アシスタント API HTTP エラー: {str(e)}", details={"path": path}, original_error=e
            ) from e

        if not 200 <= response.status_code < 300:
            logger.error(
                f"Assistant API error: {response.status_code}",
                extra={"status_code": response.status_code, "path": path},
            )
            raise AssistantAPIError(
                f"アシスタント API エラー: {response.status_code} - {response.text}",
                details={"status_code": response.status_code, "path": path},
            )

        return response.json()

    async def create_thread(self) -> str:
        """スレッドを作成してその ID を返す"""
        thread = await self._request("POST", "/threads", json={})
        return thread["id"]

    async def create_message(self, thread_id: str, content: str) -> dict[str, Any]:
        """ユーザーメッセージを投稿"""
        return await self._request(
            "POST", f"/threads/{thread_id}/messages", json={"role": "user", "content": content}
        )

    async def create_run(self, thread_id: str, assistant_id: str) -> str:
        """実行を開始してその ID を返す"""
        run = await self._request(
            "POST", f"/threads/{thread_id}/runs", json={"assistant_id": assistant_id}
        )
        return run["id"]

    async def retrieve_run(self, thread_id: str, run_id: str) -> dict[str, Any]:
        """実行状態を取得"""
        return await self._request("GET", f"/threads/{thread_id}/runs/{run_id}")

    async def list_messages(self, thread_id: str) -> list[dict[str, Any]]:
        """スレッドのメッセージ一覧（新しい順）を取得"""
        result = await self._request("GET", f"/threads/{thread_id}/messages")
        return result.get("data", [])

    async def retrieve_file(self, file_id: str) -> dict[str, Any]:
        """ファイル情報を取得"""
        return await self._request("GET", f"/files/{file_id}")

    async def wait_for_run(self, thread_id: str, run_id: str) -> dict[str, Any]:
        """実行が終了状態になるまでポーリング

        Args:
            thread_id: スレッド ID
            run_id: 実行 ID

        Returns:
            completed になった実行

        Raises:
            AssistantRunFailedError: failed / cancelled などで終了した場合
            AssistantRunTimeoutError: ポーリング上限に達した場合
        """
        for attempt in range(1, self.max_poll_attempts + 1):
            run = await self.retrieve_run(thread_id, run_id)
            status = run.get("status")

            if status == "completed":
                logger.debug(f"Run {run_id} completed after {attempt} polls")
                return run

            if status in FAILED_RUN_STATUSES:
                logger.warning(f"Run {run_id} ended with status {status}")
                raise AssistantRunFailedError(
                    status, details={"thread_id": thread_id, "run_id": run_id}
                )

            await asyncio.sleep(self.poll_interval)

        raise AssistantRunTimeoutError(
            f"Run {run_id} did not finish after {self.max_poll_attempts} polls",
            details={"thread_id": thread_id, "run_id": run_id},
        )

    async def run_query(self, assistant_id: str, content: str) -> AssistantAnswer:
        """新しいスレッドで質問を実行して回答を取得

        Args:
            assistant_id: 使用するアシスタント ID
            content: 質問本文

        Returns:
            回答テキストと引用ファイル名

        Raises:
            AssistantAPIError: API エラーまたは回答が不正な場合
            AssistantRunFailedError: 実行が失敗した場合
            AssistantRunTimeoutError: 実行が終わらなかった場合
        """
        thread_id = await self.create_thread()
        logger.info(f"Created thread {thread_id} for assistant {assistant_id}")

        await self.create_message(thread_id, content)
        run_id = await self.create_run(thread_id, assistant_id)
        await self.wait_for_run(thread_id, run_id)

        messages = await self.list_messages(thread_id)
        assistant_message = next((m for m in messages if m.get("role") == "assistant"), None)

        contents = (assistant_message or {}).get("content") or []
        if not contents or contents[0].get("type") != "text":
            raise AssistantAPIError(
                "Invalid assistant response", details={"thread_id": thread_id, "run_id": run_id}
            )

        text = contents[0]["text"]
        citations = []
        for annotation in text.get("annotations", []):
            file_citation = annotation.get("file_citation")
            if not file_citation:
                continue
            cited_file = await self.retrieve_file(file_citation["file_id"])
            citations.append(cited_file.get("filename", file_citation["file_id"]))

        logger.info(
            f"Assistant answered with {len(citations)} citations",
            extra={"thread_id": thread_id, "run_id": run_id},
        )
        return AssistantAnswer(text=text["value"], citations=citations)
