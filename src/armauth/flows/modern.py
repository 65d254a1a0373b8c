"""MSAL のクライアント資格情報フロー。"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Union

import msal

from armauth.config import ArmAuthSettings
from armauth.core.assertion import (
    CertificateInspector,
    OpenSSLCertificateInspector,
    extract_thumbprint,
    load_private_key,
    private_key_to_pem,
)
from armauth.errors import ArmAuthException, ErrorCode, ModernAuthException, create_status_error
from armauth.flows.base import TokenRequester
from armauth.messages import MessageCatalog
from armauth.models import Credential, ServicePrincipalCertificate, ServicePrincipalSecret

logger = logging.getLogger(__name__)


def client_credential_scopes(credential: Credential) -> List[str]:
    """対象リソースから `/.default` スコープを作る"""
    return [credential.active_directory_resource_id + "/.default"]


class ModernTokenRequester(TokenRequester):
    """ConfidentialClientApplication でトークンを取得する。

    アプリケーションは最初の要求時に一度だけ構築し、以降は使い回す。
    """

    def __init__(
        self,
        settings: Optional[ArmAuthSettings] = None,
        inspector: Optional[CertificateInspector] = None,
        catalog: Optional[MessageCatalog] = None,
        http_client: Optional[Any] = None,
    ) -> None:
        """ModernTokenRequesterを初期化する。

        Args:
            settings: エンジン設定。
            inspector: 証明書インスペクタ。
            catalog: 診断メッセージカタログ。
            http_client: MSAL に渡す HTTP クライアント（get/post を持つもの）。未指定なら MSAL 既定。
        """

        self._settings = settings or ArmAuthSettings()
        self._http_client = http_client
        self._catalog = catalog or MessageCatalog()
        self._inspector = inspector or OpenSSLCertificateInspector(
            openssl_path=self._settings.openssl_path,
            catalog=self._catalog,
        )
        self._application: Optional[msal.ConfidentialClientApplication] = None
        self._build_lock = asyncio.Lock()

    async def request_token(self, credential: Credential, force: bool = False) -> str:
        try:
            application = await self._get_application(credential)
            result: Dict[str, Any] = await asyncio.to_thread(
                self._acquire,
                application,
                client_credential_scopes(credential),
                force,
            )
        except ArmAuthException:
            raise
        except Exception as exc:
            raise self._error(getattr(exc, "status_code", None), str(exc)) from exc

        token = result.get("access_token")
        if isinstance(token, str) and token:
            logger.debug("armauth.modern.token_acquired source=%s", result.get("token_source"))
            return token

        raise self._error(result.get("error"), result.get("error_description"))

    @staticmethod
    def _acquire(
        application: msal.ConfidentialClientApplication,
        scopes: List[str],
        force: bool,
    ) -> Dict[str, Any]:
        if force:
            # MSAL のトークンキャッシュを捨てて、トークンエンドポイントへ送信させる
            application.remove_tokens_for_client()
            logger.debug("armauth.modern.cache_cleared")
        return application.acquire_token_for_client(scopes=scopes)

    async def _get_application(self, credential: Credential) -> msal.ConfidentialClientApplication:
        if self._application is not None:
            return self._application

        async with self._build_lock:
            if self._application is None:
                client_credential = await asyncio.to_thread(self._client_credential, credential)
                options: Dict[str, Any] = {}
                if self._http_client is not None:
                    options["http_client"] = self._http_client
                self._application = await asyncio.to_thread(
                    msal.ConfidentialClientApplication,
                    client_id=credential.client_id,
                    client_credential=client_credential,
                    authority=credential.authority_uri + credential.tenant,
                    **options,
                )
                logger.debug(
                    "armauth.modern.application_built mechanism=%s",
                    credential.mechanism.value,
                )
        return self._application

    def _client_credential(self, credential: Credential) -> Union[str, Dict[str, str]]:
        identity = credential.identity
        if isinstance(identity, ServicePrincipalSecret):
            return identity.secret
        if isinstance(identity, ServicePrincipalCertificate):
            thumbprint = extract_thumbprint(self._inspector, identity.certificate_path, self._catalog)
            private_key = load_private_key(identity.certificate_path, self._catalog)
            return {
                "thumbprint": thumbprint.hex,
                "private_key": private_key_to_pem(private_key),
            }
        raise ValueError("クライアント資格情報フローはサービスプリンシパルの資格情報のみ扱えます")

    def _error(self, status_code: Optional[Union[int, str]], status_message: Optional[str]) -> ModernAuthException:
        return ModernAuthException(
            create_status_error(
                ErrorCode.MODERN_AUTH_FAILED,
                self._catalog.format("CouldNotFetchAccessTokenforAzureStatusCode", status_code, status_message),
                status_code=status_code,
                status_message=status_message,
            )
        )
