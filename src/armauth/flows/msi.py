"""マネージドID向けのトークン取得。

メタデータエンドポイントをポーリングし、スロットリングや一時的なサーバーエラーでは
待機時間を伸ばしながら上限回数まで再試行する。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, FrozenSet, Optional
from urllib.parse import urlencode

from armauth.config import ArmAuthSettings
from armauth.errors import (
    ErrorCode,
    MsiNotConfiguredException,
    MsiRetryExhaustedException,
    create_status_error,
)
from armauth.flows.base import read_access_token
from armauth.messages import MessageCatalog
from armauth.models import RetryState
from armauth.transport import Transport, WebRequest

logger = logging.getLogger(__name__)

MSI_RETRIABLE_STATUS_CODES: FrozenSet[int] = frozenset({429, 500})


def next_wait_ms(previous_wait_ms: int, base_wait_ms: int = 2000) -> int:
    """次の待機時間を返す（2000, 6000, 14000, 30000, 62000, ...）"""
    return base_wait_ms + previous_wait_ms * 2


class ManagedIdentityTokenFetcher:
    """メタデータエンドポイントからマネージドIDのトークンを取得する。"""

    def __init__(
        self,
        transport: Transport,
        settings: Optional[ArmAuthSettings] = None,
        catalog: Optional[MessageCatalog] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """ManagedIdentityTokenFetcherを初期化する。

        Args:
            transport: 送信層。
            settings: エンドポイントと再試行の設定。
            catalog: 診断メッセージカタログ。
            sleep: 再試行の待機に使うコルーチン関数（秒）。
        """

        self._transport = transport
        self._settings = settings or ArmAuthSettings()
        self._catalog = catalog or MessageCatalog()
        self._sleep = sleep

    def build_uri(self, resource_uri: str, msi_client_id: Optional[str] = None) -> str:
        params = {
            "api-version": self._settings.imds_api_version,
            "resource": resource_uri,
        }
        if msi_client_id:
            params["client_id"] = msi_client_id
        return f"{self._settings.imds_endpoint}?{urlencode(params)}"

    async def fetch(
        self,
        resource_uri: str,
        msi_client_id: Optional[str] = None,
        state: RetryState = RetryState(),
    ) -> str:
        """トークンを取得する。

        Args:
            resource_uri: トークンの対象リソース。
            msi_client_id: ユーザー割り当てIDのクライアントID。
            state: 再試行状態（通常は初期値のまま）。

        Returns:
            アクセストークン。

        Raises:
            MsiRetryExhaustedException: 429/500 が再試行上限を超えて続いた場合
            MsiNotConfiguredException: それ以外のステータスが返った場合
            TransportException: 送信に失敗した場合
        """

        request = WebRequest(
            method="GET",
            uri=self.build_uri(resource_uri, msi_client_id),
            headers={"Metadata": "true"},
        )

        while True:
            response = await self._transport.send(request)

            if response.status_code == 200:
                logger.debug("armauth.msi.token_acquired attempt=%d", state.attempt)
                return read_access_token(response, self._catalog)

            if response.status_code not in MSI_RETRIABLE_STATUS_CODES:
                raise MsiNotConfiguredException(
                    create_status_error(
                        ErrorCode.MSI_NOT_CONFIGURED,
                        self._catalog.format(
                            "CouldNotFetchAccessTokenforMSIDueToMSINotConfiguredProperlyStatusCode",
                            response.status_code,
                            response.status_message,
                        ),
                        status_code=response.status_code,
                        status_message=response.status_message,
                    )
                )

            if state.attempt >= self._settings.msi_retry_limit:
                raise MsiRetryExhaustedException(
                    create_status_error(
                        ErrorCode.MSI_RETRY_EXHAUSTED,
                        self._catalog.format(
                            "CouldNotFetchAccessTokenforMSIStatusCode",
                            response.status_code,
                            response.status_message,
                        ),
                        status_code=response.status_code,
                        status_message=response.status_message,
                    )
                )

            wait_ms = next_wait_ms(state.waited_ms, self._settings.msi_base_wait_ms)
            state = RetryState(attempt=state.attempt + 1, waited_ms=wait_ms)
            logger.warning(
                "armauth.msi.retry attempt=%d wait_ms=%d status=%d",
                state.attempt,
                wait_ms,
                response.status_code,
            )
            await self._sleep(wait_ms / 1000)
