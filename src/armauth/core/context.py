"""資格情報コンテキスト

資格情報を検証して種類を判定し、トークン要求を種類ごとのフローへ振り分ける。
進行中または直近のトークン要求を保持し、同時に来た要求で共有する。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

from armauth.config import ArmAuthSettings
from armauth.core.assertion import CertificateInspector
from armauth.core.validation import build_credential
from armauth.errors import ArmAuthException
from armauth.flows import ManagedIdentityTokenFetcher, TokenRequester, get_token_requester
from armauth.messages import MessageCatalog
from armauth.models import (
    AuthScheme,
    Credential,
    ManagedIdentity,
    Mechanism,
    ServicePrincipalAuthType,
    mask_secret,
)
from armauth.transport import HttpTransport, Transport

logger = logging.getLogger(__name__)


class CredentialContext:
    """アクセストークン取得の窓口

    Attributes:
        credential: 検証済みの資格情報記述子（構築後は不変）
    """

    def __init__(
        self,
        client_id: Optional[str],
        tenant: Any,
        secret: Optional[str],
        resource_uri: Any,
        authority_uri: Any,
        active_directory_resource_id: Any,
        is_azure_stack_environment: Any = False,
        scheme: Optional[Union[str, AuthScheme]] = None,
        msi_client_id: Optional[str] = None,
        auth_type: Optional[Union[str, ServicePrincipalAuthType]] = None,
        certificate_path: Optional[str] = None,
        is_adfs_enabled: bool = False,
        static_access_token: Optional[str] = None,
        prefer_modern_flow: Optional[bool] = None,
        *,
        transport: Optional[Transport] = None,
        settings: Optional[ArmAuthSettings] = None,
        inspector: Optional[CertificateInspector] = None,
        catalog: Optional[MessageCatalog] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """CredentialContextを初期化

        Args:
            client_id: サービスプリンシパルのクライアントID
            tenant: テナント（ドメイン）
            secret: クライアントシークレット（シークレット方式）
            resource_uri: 対象APIのベースURL
            authority_uri: 認証局のURL
            active_directory_resource_id: トークンの対象リソースID
            is_azure_stack_environment: Azure Stack 環境かどうか（bool 以外は False）
            scheme: "ServicePrincipal" または "ManagedServiceIdentity"
            msi_client_id: ユーザー割り当てマネージドIDのクライアントID
            auth_type: "spnKey" または "spnCertificate"
            certificate_path: 証明書と秘密鍵を含むPEMファイル（証明書方式）
            is_adfs_enabled: ADFS の場合 True
            static_access_token: 事前に与えられたアクセストークン
            prefer_modern_flow: クライアント資格情報フローを優先するか。未指定なら設定値
            transport: 送信層。未指定なら httpx 実装
            settings: エンジン設定
            inspector: 証明書インスペクタ。未指定なら openssl
            catalog: 診断メッセージカタログ
            sleep: マネージドIDの再試行待機に使うコルーチン関数

        Raises:
            ValidationException: 必須フィールドが不正な場合
        """
        self._settings = settings or ArmAuthSettings()
        self._catalog = catalog or self._load_catalog(self._settings)

        if prefer_modern_flow is None:
            prefer_modern_flow = self._settings.prefer_modern_flow

        self.credential: Credential = build_credential(
            client_id=client_id,
            tenant=tenant,
            secret=secret,
            resource_uri=resource_uri,
            authority_uri=authority_uri,
            active_directory_resource_id=active_directory_resource_id,
            is_azure_stack_environment=is_azure_stack_environment,
            scheme=scheme,
            msi_client_id=msi_client_id,
            auth_type=auth_type,
            certificate_path=certificate_path,
            is_adfs_enabled=is_adfs_enabled,
            static_access_token=static_access_token,
            prefer_modern_flow=prefer_modern_flow,
            catalog=self._catalog,
        )

        self._transport = transport or HttpTransport(default_policy=self._settings.default_retry_policy())
        self._inspector = inspector
        self._msi_fetcher = ManagedIdentityTokenFetcher(
            self._transport,
            settings=self._settings,
            catalog=self._catalog,
            sleep=sleep,
        )
        self._requesters: Dict[bool, TokenRequester] = {}
        self._token_request: Optional[asyncio.Future[str]] = None
        # 強制更新で置き換えられた要求も完了まで参照を保持する
        self._in_flight: Set[asyncio.Future[str]] = set()

    @staticmethod
    def _load_catalog(settings: ArmAuthSettings) -> MessageCatalog:
        if settings.message_catalog_path:
            return MessageCatalog.from_yaml(settings.message_catalog_path)
        return MessageCatalog()

    @property
    def tenant(self) -> str:
        return self.credential.tenant

    @property
    def client_id(self) -> Optional[str]:
        return self.credential.client_id

    @property
    def mechanism(self) -> Mechanism:
        return self.credential.mechanism

    @property
    def msi_client_id(self) -> Optional[str]:
        identity = self.credential.identity
        if isinstance(identity, ManagedIdentity):
            return identity.msi_client_id
        return None

    def get_token(self, force: bool = False, prefer_modern: Optional[bool] = None) -> "asyncio.Future[str]":
        """アクセストークンを解決する Future を返す

        実行中のイベントループから呼び出すこと。強制更新でない限り、進行中または
        直近の要求と同じ Future を返す。

        Args:
            force: True なら事前トークンと保持中の要求を使わずに新しく要求する
            prefer_modern: フローの選択。未指定なら資格情報の設定に従う

        Returns:
            asyncio.Future[str]: アクセストークンで解決される Future
        """
        loop = asyncio.get_running_loop()

        if self.credential.static_access_token and not force:
            logger.debug("armauth.context.static_token_used")
            resolved: asyncio.Future[str] = loop.create_future()
            resolved.set_result(self.credential.static_access_token)
            return resolved

        if self._token_request is None or force:
            task = loop.create_task(self._request_token(prefer_modern, force))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            self._token_request = task

        return self._token_request

    async def acquire_token(self, force: bool = False, prefer_modern: Optional[bool] = None) -> str:
        """get_token の結果を待ってトークン文字列を返す"""
        return await self.get_token(force=force, prefer_modern=prefer_modern)

    async def _request_token(self, prefer_modern: Optional[bool], force: bool = False) -> str:
        credential = self.credential
        try:
            if isinstance(credential.identity, ManagedIdentity):
                return await self._msi_fetcher.fetch(credential.resource_uri, credential.identity.msi_client_id)

            use_modern = credential.prefer_modern_flow if prefer_modern is None else prefer_modern
            return await self._requester(use_modern).request_token(credential, force=force)
        except ArmAuthException as exc:
            logger.log(
                exc.log_level,
                "armauth.context.token_request_failed mechanism=%s code=%s",
                credential.mechanism.value,
                exc.error.code,
            )
            raise

    def _requester(self, use_modern: bool) -> TokenRequester:
        requester = self._requesters.get(use_modern)
        if requester is None:
            requester = get_token_requester(
                use_modern,
                self._transport,
                settings=self._settings,
                inspector=self._inspector,
                catalog=self._catalog,
            )
            self._requesters[use_modern] = requester
        return requester

    def __repr__(self) -> str:
        return (
            f"CredentialContext(mechanism={self.mechanism.value!r}, tenant={self.tenant!r}, "
            f"client_id={self.client_id!r}, static_access_token="
            f"{mask_secret(self.credential.static_access_token) if self.credential.static_access_token else None!r})"
        )
