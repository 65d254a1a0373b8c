"""
データモデル定義

資格情報の種類と、構築後に不変となる資格情報記述子を定義する
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


def mask_secret(value: Optional[str]) -> str:
    """鍵やトークンをマスクしてログ出力を避ける"""
    if not value:
        return "***"
    if len(value) <= 4:
        return "*" * len(value)
    return f"***{value[-4:]}"


class AuthScheme(Enum):
    """認証スキーム"""
    SERVICE_PRINCIPAL = "ServicePrincipal"
    MANAGED_SERVICE_IDENTITY = "ManagedServiceIdentity"


class ServicePrincipalAuthType(Enum):
    """サービスプリンシパルの認証方式"""
    SECRET = "spnKey"
    CERTIFICATE = "spnCertificate"


class Mechanism(Enum):
    """トークン取得に使う資格情報の種類"""
    SERVICE_PRINCIPAL_SECRET = "service_principal_secret"
    SERVICE_PRINCIPAL_CERTIFICATE = "service_principal_certificate"
    MANAGED_IDENTITY = "managed_identity"


@dataclass(frozen=True)
class ServicePrincipalSecret:
    """共有シークレットで認証するサービスプリンシパル"""
    client_id: str
    secret: str

    @property
    def mechanism(self) -> Mechanism:
        return Mechanism.SERVICE_PRINCIPAL_SECRET

    def __repr__(self) -> str:
        return f"ServicePrincipalSecret(client_id={self.client_id!r}, secret={mask_secret(self.secret)!r})"


@dataclass(frozen=True)
class ServicePrincipalCertificate:
    """証明書（秘密鍵を含むPEM）で認証するサービスプリンシパル"""
    client_id: str
    certificate_path: str

    @property
    def mechanism(self) -> Mechanism:
        return Mechanism.SERVICE_PRINCIPAL_CERTIFICATE


@dataclass(frozen=True)
class ManagedIdentity:
    """プラットフォームが割り当てるマネージドID"""
    msi_client_id: Optional[str] = None

    @property
    def mechanism(self) -> Mechanism:
        return Mechanism.MANAGED_IDENTITY


Identity = Union[ServicePrincipalSecret, ServicePrincipalCertificate, ManagedIdentity]


@dataclass(frozen=True)
class Credential:
    """検証済みの資格情報記述子

    Attributes:
        tenant: テナント（ドメイン）
        resource_uri: 対象APIのベースURL
        authority_uri: 認証局のURL
        active_directory_resource_id: トークンの対象リソースID
        identity: 資格情報の種類ごとのペイロード
        is_adfs_enabled: ADFS の場合はURLからテナントを省く
        is_azure_stack_environment: Azure Stack 環境かどうか
        static_access_token: 事前に与えられたアクセストークン
        prefer_modern_flow: クライアント資格情報フローを優先するかどうか
    """
    tenant: str
    resource_uri: str
    authority_uri: str
    active_directory_resource_id: str
    identity: Identity
    is_adfs_enabled: bool = False
    is_azure_stack_environment: bool = False
    static_access_token: Optional[str] = field(default=None, repr=False)
    prefer_modern_flow: bool = False

    @property
    def mechanism(self) -> Mechanism:
        return self.identity.mechanism

    @property
    def client_id(self) -> Optional[str]:
        if isinstance(self.identity, ManagedIdentity):
            return None
        return self.identity.client_id

    @property
    def tenant_segment(self) -> str:
        """URLに埋め込むテナント部分（ADFSでは空）"""
        return "" if self.is_adfs_enabled else self.tenant


@dataclass(frozen=True)
class RetryState:
    """マネージドID取得の再試行状態

    Attributes:
        attempt: 0始まりの試行番号
        waited_ms: 直前に待機したミリ秒
    """
    attempt: int = 0
    waited_ms: int = 0
