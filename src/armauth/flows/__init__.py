"""トークン取得フローの公開API。"""

from __future__ import annotations

from typing import Optional

from armauth.config import ArmAuthSettings
from armauth.core.assertion import CertificateInspector
from armauth.flows.base import TokenRequester
from armauth.flows.legacy import (
    CERTIFICATE_RETRIABLE_STATUS_CODES,
    SECRET_RETRIABLE_STATUS_CODES,
    LegacyTokenRequester,
)
from armauth.flows.modern import ModernTokenRequester
from armauth.flows.msi import ManagedIdentityTokenFetcher, next_wait_ms
from armauth.messages import MessageCatalog
from armauth.transport import Transport

__all__ = [
    "CERTIFICATE_RETRIABLE_STATUS_CODES",
    "LegacyTokenRequester",
    "ManagedIdentityTokenFetcher",
    "ModernTokenRequester",
    "SECRET_RETRIABLE_STATUS_CODES",
    "TokenRequester",
    "get_token_requester",
    "next_wait_ms",
]


def get_token_requester(
    prefer_modern: bool,
    transport: Transport,
    settings: Optional[ArmAuthSettings] = None,
    inspector: Optional[CertificateInspector] = None,
    catalog: Optional[MessageCatalog] = None,
) -> TokenRequester:
    """サービスプリンシパル用のトークン取得フローを生成する。

    Args:
        prefer_modern: True ならクライアント資格情報フロー、False なら旧フロー。
        transport: 旧フローが使う送信層。
        settings: エンジン設定。
        inspector: 証明書インスペクタ。
        catalog: 診断メッセージカタログ。

    Returns:
        トークン取得フローのインスタンス。
    """

    if prefer_modern:
        return ModernTokenRequester(settings=settings, inspector=inspector, catalog=catalog)
    return LegacyTokenRequester(transport, settings=settings, inspector=inspector, catalog=catalog)
