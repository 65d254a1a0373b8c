"""証明書のサムプリント取得とクライアントアサーションの生成"""

from __future__ import annotations

import base64
import logging
import re
import shutil
import subprocess
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from armauth.errors import CertificateToolException, create_certificate_error
from armauth.messages import MessageCatalog
from armauth.models import Credential, ServicePrincipalCertificate

logger = logging.getLogger(__name__)

CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"
NOT_BEFORE_SKEW_SECONDS = 1000
ASSERTION_LIFETIME_SECONDS = 8640000

_PRIVATE_KEY_PATTERN = re.compile(
    r"-----BEGIN (?:RSA )?PRIVATE KEY-----.+?-----END (?:RSA )?PRIVATE KEY-----",
    re.DOTALL,
)
_DOUBLE_SLASH_PATTERN = re.compile(r"([^:]/)/+")


class CertificateInspector(Protocol):
    """証明書ファイルから SHA-1 フィンガープリント（XX:XX:...）を返す外部ツール"""

    def fingerprint(self, certificate_path: str) -> str:
        ...


class OpenSSLCertificateInspector:
    """openssl x509 -fingerprint を呼び出すインスペクタ"""

    def __init__(self, openssl_path: Optional[str] = None, catalog: Optional[MessageCatalog] = None) -> None:
        self._openssl_path = openssl_path
        self._catalog = catalog or MessageCatalog()

    def fingerprint(self, certificate_path: str) -> str:
        """フィンガープリントを取得する

        Raises:
            CertificateToolException: openssl が見つからない、または終了コードが0以外の場合
        """
        executable = self._openssl_path or shutil.which("openssl")
        if not executable:
            raise CertificateToolException(
                create_certificate_error(self._catalog.format("OpenSSLNotFound", "openssl"), "")
            )

        args = [executable, "x509", "-noout", "-in", certificate_path, "-fingerprint", "-sha1"]
        try:
            result = subprocess.run(args, capture_output=True, text=True, check=False)
        except OSError as exc:
            raise CertificateToolException(
                create_certificate_error(self._catalog.format("OpenSSLNotFound", executable), str(exc))
            ) from exc

        if result.returncode != 0:
            logger.error(
                "armauth.certificate.fingerprint_failed path=%s code=%d",
                certificate_path,
                result.returncode,
            )
            raise CertificateToolException(
                create_certificate_error(
                    self._catalog.format("CertificateFingerprintFailed", result.stderr.strip()),
                    result.stderr,
                )
            )

        logger.debug("armauth.certificate.fingerprint_created path=%s", certificate_path)
        return parse_fingerprint(result.stdout)


@dataclass(frozen=True)
class CertificateThumbprint:
    """証明書のサムプリント

    Attributes:
        hex: コロンを除いた16進表記（MSAL に渡す形式）
        x5t: バイト列を base64 にした値（JWT ヘッダの x5t）
    """
    hex: str
    x5t: str


def parse_fingerprint(output: str) -> str:
    """`SHA1 Fingerprint=AB:CD:...` 形式の出力から値を取り出す"""
    if "=" in output:
        output = output.split("=", 1)[1]
    return output.strip()


def fingerprint_to_hex(fingerprint: str, catalog: Optional[MessageCatalog] = None) -> str:
    """コロン区切りのフィンガープリントを連続した16進文字列にする

    Raises:
        CertificateToolException: 16進として解釈できない場合
    """
    hex_digits = re.sub(r"[:\s]", "", fingerprint)
    try:
        valid = bool(bytes.fromhex(hex_digits))
    except ValueError:
        valid = False
    if not valid:
        raise CertificateToolException(
            create_certificate_error(
                (catalog or MessageCatalog()).format("InvalidCertificateFingerprint", fingerprint),
                fingerprint,
            )
        )
    return hex_digits


def fingerprint_to_x5t(fingerprint: str, catalog: Optional[MessageCatalog] = None) -> str:
    """16進のバイト列をそのまま base64 にする（"AB:CD:EF" -> base64(b"\\xab\\xcd\\xef")）"""
    raw = bytes.fromhex(fingerprint_to_hex(fingerprint, catalog))
    return base64.b64encode(raw).decode("ascii")


def extract_thumbprint(
    inspector: CertificateInspector,
    certificate_path: str,
    catalog: Optional[MessageCatalog] = None,
) -> CertificateThumbprint:
    """インスペクタを使ってサムプリントを取得する"""
    fingerprint = inspector.fingerprint(certificate_path)
    return CertificateThumbprint(
        hex=fingerprint_to_hex(fingerprint, catalog),
        x5t=fingerprint_to_x5t(fingerprint, catalog),
    )


def normalize_url(url: str) -> str:
    """スキームのコロン直後以外で連続するスラッシュを1つにまとめる"""
    return _DOUBLE_SLASH_PATTERN.sub(r"\1", url)


def build_audience(authority_uri: str, tenant: str, is_adfs_enabled: bool) -> str:
    """アサーションの aud を組み立てる"""
    tenant_segment = "" if is_adfs_enabled else tenant
    return normalize_url(f"{authority_uri}/{tenant_segment}/oauth2/token")


def load_private_key(certificate_path: str, catalog: Optional[MessageCatalog] = None) -> rsa.RSAPrivateKey:
    """証明書と秘密鍵をまとめたPEMファイルから秘密鍵を読み込む

    Raises:
        CertificateToolException: ファイルが読めない、RSA 秘密鍵を含まない、または鍵が壊れている場合
    """
    catalog = catalog or MessageCatalog()
    try:
        content = Path(certificate_path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise CertificateToolException(
            create_certificate_error(catalog.format("PrivateKeyNotFound", certificate_path), str(exc))
        ) from exc

    match = _PRIVATE_KEY_PATTERN.search(content)
    if match is None:
        raise CertificateToolException(
            create_certificate_error(catalog.format("PrivateKeyNotFound", certificate_path), "")
        )

    try:
        key = serialization.load_pem_private_key(match.group(0).encode("ascii"), password=None)
    except (ValueError, TypeError) as exc:
        raise CertificateToolException(
            create_certificate_error(catalog.format("PrivateKeyNotFound", certificate_path), str(exc))
        ) from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise CertificateToolException(
            create_certificate_error(catalog.format("PrivateKeyNotRsa", certificate_path), "")
        )
    return key


def private_key_to_pem(key: rsa.RSAPrivateKey) -> str:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def build_client_assertion(
    credential: Credential,
    x5t: str,
    now: Optional[int] = None,
    catalog: Optional[MessageCatalog] = None,
) -> str:
    """証明書の秘密鍵で署名したクライアントアサーション（RS256 JWT）を返す

    Args:
        credential: 証明書方式の資格情報
        x5t: サムプリントの base64 値
        now: 現在時刻（エポック秒）。テスト用に差し替え可能
        catalog: 診断メッセージカタログ
    """
    identity = credential.identity
    if not isinstance(identity, ServicePrincipalCertificate):
        raise ValueError("クライアントアサーションは証明書方式の資格情報でのみ生成できます")

    issued_at = int(time.time()) if now is None else now
    claims = {
        "aud": build_audience(credential.authority_uri, credential.tenant, credential.is_adfs_enabled),
        "iss": identity.client_id,
        "sub": identity.client_id,
        "jti": str(uuid.uuid4()),
        "nbf": issued_at - NOT_BEFORE_SKEW_SECONDS,
        "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
    }
    headers = {"alg": "RS256", "typ": "JWT", "x5t": x5t}

    private_key = load_private_key(identity.certificate_path, catalog)
    return jwt.encode(claims, private_key, algorithm="RS256", headers=headers)
