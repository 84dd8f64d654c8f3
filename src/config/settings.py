"""
設定管理モジュール

環境変数を読み込み、アプリケーション全体で使用する設定を提供します。
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """アプリケーション設定"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Scheduler Configuration
    scheduler_api_key: str = Field(default="", description="スケジューラ呼び出し用の共有シークレット")
    scheduler_timezone: str = Field(
        default="Europe/London", description="繰り返しルールを評価するタイムゾーン"
    )

    # Assistant API Configuration
    openai_api_key: str = Field(default="", description="OpenAI API キー")
    assistant_api_url: str = Field(
        default="https://api.openai.com/v1", description="アシスタント API URL"
    )
    default_assistant_id: str = Field(
        default="", description="週次アシスタントが見つからない場合のアシスタント ID"
    )
    assistant_poll_interval: float = Field(default=1.0, description="実行状態のポーリング間隔（秒）")
    assistant_max_poll_attempts: int = Field(default=300, description="実行状態のポーリング上限回数")
    assistant_request_timeout: float = Field(default=60.0, description="アシスタント API タイムアウト（秒）")

    # Hansard API Configuration
    hansard_api_url: str = Field(
        default="https://hansard-api.parliament.uk", description="Hansard API URL"
    )
    hansard_api_timeout: float = Field(default=30.0, description="Hansard API タイムアウト（秒）")

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/database.db", description="データベース URL"
    )

    # Application Configuration
    log_level: str = Field(default="INFO", description="ログレベル")
    environment: str = Field(default="development", description="実行環境")

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # SQLite ファイルの保存ディレクトリを作成
        if self.database_url.startswith("sqlite") and ":memory:" not in self.database_url:
            db_path = Path(self.database_url.split("///", 1)[-1])
            db_path.parent.mkdir(parents=True, exist_ok=True)


@lru_cache()
def get_settings() -> Settings:
    """設定インスタンスを取得（シングルトン）"""
    return Settings()
