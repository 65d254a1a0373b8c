"""トークン取得フロー基盤。

サービスプリンシパル向けのトークン取得フローが共通で実装すべきインターフェースを定義する。
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from armauth.errors import AuthRequestFailedException, ErrorCode, create_status_error
from armauth.messages import MessageCatalog
from armauth.models import Credential
from armauth.transport import WebResponse


class TokenRequester(ABC):
    """サービスプリンシパルのトークン取得フローの抽象基底クラス。

    直接RESTを呼ぶ旧フローと、クライアント資格情報フローの2実装を持つ。
    """

    @abstractmethod
    async def request_token(self, credential: Credential, force: bool = False) -> str:
        """資格情報に対応するアクセストークンを返す。

        Args:
            credential: サービスプリンシパルの資格情報。
            force: True ならフロー側のキャッシュを使わずにトークンを取得する。
        """


def read_access_token(response: WebResponse, catalog: MessageCatalog) -> str:
    """200 応答の本文から access_token を取り出す。"""
    body = response.body
    token = body.get("access_token") if isinstance(body, dict) else None
    if not isinstance(token, str) or not token:
        raise AuthRequestFailedException(
            create_status_error(
                ErrorCode.AUTH_REQUEST_FAILED,
                catalog.format(
                    "CouldNotFetchAccessTokenforAzureStatusCode",
                    response.status_code,
                    "access_token is missing from the response body",
                ),
                status_code=response.status_code,
                status_message=response.status_message,
            )
        )
    return token
