"""診断メッセージカタログ

エラーキーからメッセージテンプレートへの対応表を保持する。
プロセス全体の状態は持たず、必要なコンポーネントへ注入して使う。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)


DEFAULT_MESSAGES: Dict[str, str] = {
    "DomainCannotBeEmpty": "Domain (tenant) must be a non-empty string.",
    "ClientIdCannotBeEmpty": "Client id must be a non-empty string.",
    "SecretCannotBeEmpty": "Client secret must be a non-empty string.",
    "InvalidCertFileProvided": "Certificate file path must be a non-empty string.",
    "armUrlCannotBeEmpty": "Resource (ARM) url must be a non-empty string.",
    "authorityUrlCannotBeEmpty": "Authority url must be a non-empty string.",
    "activeDirectoryResourceIdUrlCannotBeEmpty": (
        "Active Directory resource id must be a non-empty string."
    ),
    "InvalidScheme": "Unsupported authentication scheme: {0}",
    "CouldNotFetchAccessTokenforAzureStatusCode": (
        "Could not fetch access token for Azure. Status code: {0}, status message: {1}"
    ),
    "CouldNotFetchAccessTokenforMSIStatusCode": (
        "Could not fetch access token for Managed Service Principal. "
        "Status code: {0}, status message: {1}"
    ),
    "CouldNotFetchAccessTokenforMSIDueToMSINotConfiguredProperlyStatusCode": (
        "Could not fetch access token for Managed Service Principal. "
        "Please configure Managed Service Identity (MSI) for the virtual machine. "
        "Status code: {0}, status message: {1}"
    ),
    "ExpiredServicePrincipal": (
        "Could not fetch access token for Azure. "
        "Verify if the Service Principal used is valid and not expired."
    ),
    "CertificateFingerprintFailed": (
        "Could not compute the certificate fingerprint with openssl: {0}"
    ),
    "OpenSSLNotFound": "openssl executable was not found: {0}",
    "InvalidCertificateFingerprint": "Certificate fingerprint is not a hex string: {0}",
    "PrivateKeyNotFound": "Could not read a private key from the certificate file: {0}",
    "PrivateKeyNotRsa": "The private key in the certificate file is not an RSA key: {0}",
    "TransportRequestFailed": "Request to {0} failed: {1}",
}


class MessageCatalog:
    """エラーキーからメッセージを組み立てるカタログ

    テンプレートは str.format の位置引数（{0}, {1}, ...）を使う。
    """

    def __init__(self, messages: Optional[Mapping[str, str]] = None):
        self._messages: Dict[str, str] = dict(DEFAULT_MESSAGES)
        if messages:
            self._messages.update(messages)

    @classmethod
    def from_yaml(cls, path: Path) -> "MessageCatalog":
        """YAMLファイルの内容で既定のメッセージを上書きしたカタログを返す"""
        with Path(path).open("r", encoding="utf-8") as file:
            loaded = yaml.safe_load(file) or {}

        if not isinstance(loaded, dict):
            raise ValueError(f"メッセージカタログの形式が不正です: {path}")

        logger.debug("armauth.messages.loaded path=%s keys=%d", path, len(loaded))
        return cls({str(key): str(value) for key, value in loaded.items()})

    def format(self, key: str, *args: Any) -> str:
        """キーに対応するメッセージを返す。未知のキーはキーと引数をそのまま連結する"""
        template = self._messages.get(key)
        if template is None:
            if not args:
                return key
            return f"{key} {' '.join(str(arg) for arg in args)}"
        try:
            return template.format(*args)
        except (IndexError, KeyError):
            logger.warning("armauth.messages.format_failed key=%s", key)
            return template

    def __contains__(self, key: object) -> bool:
        return key in self._messages
