"""Pydantic V2 ベースのエンジン設定モデル"""

import logging
from pathlib import Path
from typing import Any, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from armauth.transport import DEFAULT_RETRIABLE_ERROR_CODES, DEFAULT_RETRIABLE_STATUS_CODES, RetryPolicy

logger = logging.getLogger(__name__)

IMDS_TOKEN_ENDPOINT = "http://169.254.169.254/metadata/identity/oauth2/token"


class ArmAuthSettings(BaseSettings):
    """トークン取得エンジンの設定"""

    model_config = SettingsConfigDict(
        env_prefix="ARMAUTH_",
        env_file=".env",
        extra="forbid",
    )

    # マネージドID設定
    imds_endpoint: str = Field(default=IMDS_TOKEN_ENDPOINT)
    imds_api_version: str = Field(default="2018-02-01")
    msi_retry_limit: int = Field(default=5, ge=0, le=10)
    msi_base_wait_ms: int = Field(default=2000, ge=0)

    # 証明書ツール設定
    openssl_path: Optional[str] = None

    # 送信設定
    http_retry_count: int = Field(default=5, ge=0, le=10)
    http_retry_interval_seconds: float = Field(default=2.0, ge=0)
    http_timeout_seconds: float = Field(default=60.0, gt=0)

    # フロー選択
    prefer_modern_flow: bool = False

    # メッセージカタログ
    message_catalog_path: Optional[Path] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ) -> Tuple[Any, ...]:
        """設定ソースの優先順位（init > env > dotenv）"""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @field_validator("imds_endpoint")
    @classmethod
    def validate_imds_endpoint(cls, value: str) -> str:
        """エンドポイントは http(s) の URL であること"""
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"imds_endpoint must be an http(s) url, got: {value}")
        return value

    def default_retry_policy(self) -> RetryPolicy:
        """送信層の既定リトライポリシーを返す"""
        return RetryPolicy(
            retriable_status_codes=DEFAULT_RETRIABLE_STATUS_CODES,
            retriable_error_codes=DEFAULT_RETRIABLE_ERROR_CODES,
            retry_count=self.http_retry_count,
            retry_interval_seconds=self.http_retry_interval_seconds,
            retry_timeout_seconds=self.http_timeout_seconds,
        )
