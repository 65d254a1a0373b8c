"""トークンエンドポイントを直接呼ぶ旧フロー。

クライアント資格情報フローへの移行後も、呼び出し側の設定で選べるよう残している。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, FrozenSet, Optional
from urllib.parse import urlencode

from armauth.config import ArmAuthSettings
from armauth.core.assertion import (
    CLIENT_ASSERTION_TYPE,
    CertificateInspector,
    OpenSSLCertificateInspector,
    build_client_assertion,
    extract_thumbprint,
)
from armauth.errors import (
    AuthRequestFailedException,
    ErrorCode,
    ExpiredServicePrincipalException,
    create_status_error,
)
from armauth.flows.base import TokenRequester, read_access_token
from armauth.messages import MessageCatalog
from armauth.models import Credential, ServicePrincipalCertificate, ServicePrincipalSecret
from armauth.transport import RetryPolicy, Transport, WebRequest, WebResponse

logger = logging.getLogger(__name__)

SECRET_RETRIABLE_STATUS_CODES: FrozenSet[int] = frozenset({400, 403, 408, 409, 500, 502, 503, 504})
# 証明書方式では 403 を再送しない
CERTIFICATE_RETRIABLE_STATUS_CODES: FrozenSet[int] = frozenset({400, 408, 409, 500, 502, 503, 504})
EXPIRED_SERVICE_PRINCIPAL_STATUS_CODES: FrozenSet[int] = frozenset({400, 401, 403})

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded; charset=utf-8"}


def token_endpoint(credential: Credential) -> str:
    """旧フローのトークンエンドポイントURLを返す"""
    return f"{credential.authority_uri}{credential.tenant_segment}/oauth2/token/"


class LegacyTokenRequester(TokenRequester):
    """トークンエンドポイントへ client_credentials を直接POSTする。"""

    def __init__(
        self,
        transport: Transport,
        settings: Optional[ArmAuthSettings] = None,
        inspector: Optional[CertificateInspector] = None,
        catalog: Optional[MessageCatalog] = None,
    ) -> None:
        self._transport = transport
        self._settings = settings or ArmAuthSettings()
        self._catalog = catalog or MessageCatalog()
        self._inspector = inspector or OpenSSLCertificateInspector(
            openssl_path=self._settings.openssl_path,
            catalog=self._catalog,
        )

    async def request_token(self, credential: Credential, force: bool = False) -> str:
        # 旧フローはキャッシュを持たないため force に関係なく毎回送信する
        identity = credential.identity
        if isinstance(identity, ServicePrincipalSecret):
            form = self._secret_form(credential, identity)
            retriable = SECRET_RETRIABLE_STATUS_CODES
        elif isinstance(identity, ServicePrincipalCertificate):
            form = await self._certificate_form(credential, identity)
            retriable = CERTIFICATE_RETRIABLE_STATUS_CODES
        else:
            raise ValueError("旧フローはサービスプリンシパルの資格情報のみ扱えます")

        request = WebRequest(
            method="POST",
            uri=token_endpoint(credential),
            headers=dict(FORM_HEADERS),
            body=urlencode(form),
        )
        response = await self._transport.send(request, self.retry_policy(retriable))
        return self._handle_response(response)

    def retry_policy(self, retriable_status_codes: FrozenSet[int]) -> RetryPolicy:
        return self._settings.default_retry_policy().with_status_codes(retriable_status_codes)

    def _secret_form(self, credential: Credential, identity: ServicePrincipalSecret) -> Dict[str, str]:
        return {
            "resource": credential.active_directory_resource_id,
            "client_id": identity.client_id,
            "grant_type": "client_credentials",
            "client_secret": identity.secret,
        }

    async def _certificate_form(
        self,
        credential: Credential,
        identity: ServicePrincipalCertificate,
    ) -> Dict[str, str]:
        # openssl の呼び出しと鍵の読み込みはブロッキングなのでスレッドで行う
        thumbprint = await asyncio.to_thread(
            extract_thumbprint, self._inspector, identity.certificate_path, self._catalog
        )
        assertion = await asyncio.to_thread(
            build_client_assertion, credential, thumbprint.x5t, None, self._catalog
        )
        return {
            "resource": credential.active_directory_resource_id,
            "client_id": identity.client_id,
            "grant_type": "client_credentials",
            "client_assertion": assertion,
            "client_assertion_type": CLIENT_ASSERTION_TYPE,
        }

    def _handle_response(self, response: WebResponse) -> str:
        if response.status_code == 200:
            return read_access_token(response, self._catalog)

        if response.status_code in EXPIRED_SERVICE_PRINCIPAL_STATUS_CODES:
            raise ExpiredServicePrincipalException(
                create_status_error(
                    ErrorCode.EXPIRED_SERVICE_PRINCIPAL,
                    self._catalog.format("ExpiredServicePrincipal"),
                    status_code=response.status_code,
                    status_message=response.status_message,
                )
            )

        raise AuthRequestFailedException(
            create_status_error(
                ErrorCode.AUTH_REQUEST_FAILED,
                self._catalog.format(
                    "CouldNotFetchAccessTokenforAzureStatusCode",
                    response.status_code,
                    response.status_message,
                ),
                status_code=response.status_code,
                status_message=response.status_message,
            )
        )
