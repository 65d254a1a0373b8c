"""送信層

トークンエンドポイントやメタデータエンドポイントへの HTTP 要求を送る。
ステータスコードと送信エラーの種類に応じた再送を担当する。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional, Protocol, Union

import httpx

from armauth.errors import TransportException, create_transport_error

logger = logging.getLogger(__name__)

DEFAULT_RETRIABLE_STATUS_CODES: FrozenSet[int] = frozenset({408, 409, 500, 502, 503, 504})
DEFAULT_RETRIABLE_ERROR_CODES: FrozenSet[str] = frozenset(
    {"ETIMEDOUT", "ECONNRESET", "ECONNREFUSED", "ENOTFOUND", "EHOSTUNREACH", "EPIPE"}
)


@dataclass(frozen=True)
class RetryPolicy:
    """再送ポリシー

    Attributes:
        retriable_status_codes: 再送対象のHTTPステータス
        retriable_error_codes: 再送対象の送信エラーコード
        retry_count: 最初の送信に追加して行う再送回数
        retry_interval_seconds: 再送までの待機秒数
        retry_timeout_seconds: 1回の送信のタイムアウト秒数
    """
    retriable_status_codes: FrozenSet[int] = DEFAULT_RETRIABLE_STATUS_CODES
    retriable_error_codes: FrozenSet[str] = DEFAULT_RETRIABLE_ERROR_CODES
    retry_count: int = 5
    retry_interval_seconds: float = 2.0
    retry_timeout_seconds: float = 60.0

    def with_status_codes(self, status_codes: FrozenSet[int]) -> "RetryPolicy":
        """再送対象のステータスだけを差し替えたポリシーを返す"""
        return RetryPolicy(
            retriable_status_codes=frozenset(status_codes),
            retriable_error_codes=self.retriable_error_codes,
            retry_count=self.retry_count,
            retry_interval_seconds=self.retry_interval_seconds,
            retry_timeout_seconds=self.retry_timeout_seconds,
        )


@dataclass
class WebRequest:
    """送信する要求"""
    method: str
    uri: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Union[str, bytes]] = None


@dataclass
class WebResponse:
    """受信した応答

    Attributes:
        status_code: HTTPステータスコード
        status_message: ステータスの説明文
        headers: 応答ヘッダ
        body: JSONとして解釈できた場合はその値、できなければ本文の文字列
    """
    status_code: int
    status_message: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None


class Transport(Protocol):
    """送信層の契約"""

    async def send(self, request: WebRequest, policy: Optional[RetryPolicy] = None) -> WebResponse:
        ...


def classify_transport_error(exc: Exception) -> Optional[str]:
    """httpx の例外を送信エラーコードに分類する"""
    if isinstance(exc, httpx.TimeoutException):
        return "ETIMEDOUT"
    if isinstance(exc, httpx.ConnectError):
        return "ECONNREFUSED"
    if isinstance(exc, httpx.WriteError):
        return "EPIPE"
    if isinstance(exc, (httpx.ReadError, httpx.RemoteProtocolError)):
        return "ECONNRESET"
    return None


class HttpTransport:
    """httpx を使った送信層の実装

    Attributes:
        default_policy: policy 未指定時に使う再送ポリシー
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        default_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """HttpTransportを初期化する。

        Args:
            http_client: 共有するhttpxクライアント。未指定なら要求ごとに生成する。
            default_policy: 既定の再送ポリシー。
            sleep: 再送待機に使うコルーチン関数。
        """

        self._client = http_client
        self.default_policy = default_policy or RetryPolicy()
        self._sleep = sleep

    async def send(self, request: WebRequest, policy: Optional[RetryPolicy] = None) -> WebResponse:
        """要求を送信し、再送ポリシーに従って応答を返す。

        再送対象のステータスで再送回数を使い切った場合は、最後の応答をそのまま返す。
        クライアントが注入されていない場合は、再送を含めて1つのクライアントを使い回す。

        Raises:
            TransportException: 再送対象外、または再送回数を超えた送信エラー
        """

        policy = policy or self.default_policy
        if self._client is not None:
            return await self._send_with_retries(self._client, request, policy)

        async with httpx.AsyncClient(timeout=policy.retry_timeout_seconds) as client:
            return await self._send_with_retries(client, request, policy)

    async def _send_with_retries(
        self,
        client: httpx.AsyncClient,
        request: WebRequest,
        policy: RetryPolicy,
    ) -> WebResponse:
        attempt = 0
        while True:
            try:
                response = await self._send_once(client, request, policy)
            except httpx.TransportError as exc:
                error_code = classify_transport_error(exc)
                if error_code in policy.retriable_error_codes and attempt < policy.retry_count:
                    attempt += 1
                    logger.debug(
                        "armauth.transport.retry uri=%s attempt=%d error=%s",
                        request.uri,
                        attempt,
                        error_code,
                    )
                    await self._sleep(policy.retry_interval_seconds)
                    continue
                raise TransportException(
                    create_transport_error(f"Request to {request.uri} failed: {exc!r}", error_code)
                ) from exc

            if response.status_code in policy.retriable_status_codes and attempt < policy.retry_count:
                attempt += 1
                logger.debug(
                    "armauth.transport.retry uri=%s attempt=%d status=%d",
                    request.uri,
                    attempt,
                    response.status_code,
                )
                await self._sleep(policy.retry_interval_seconds)
                continue

            return response

    async def _send_once(
        self,
        client: httpx.AsyncClient,
        request: WebRequest,
        policy: RetryPolicy,
    ) -> WebResponse:
        response = await client.request(
            request.method,
            request.uri,
            headers=request.headers,
            content=request.body,
            timeout=policy.retry_timeout_seconds,
        )
        return self._to_web_response(response)

    @staticmethod
    def _to_web_response(response: httpx.Response) -> WebResponse:
        try:
            body: Any = response.json()
        except ValueError:
            body = response.text or None
        return WebResponse(
            status_code=response.status_code,
            status_message=response.reason_phrase,
            headers=dict(response.headers),
            body=body,
        )
