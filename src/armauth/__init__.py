"""armauth - ARM 向けアクセストークン取得エンジン"""

from armauth.config import ArmAuthSettings
from armauth.core import CredentialContext, build_credential
from armauth.errors import (
    ArmAuthException,
    AuthError,
    AuthRequestFailedException,
    CertificateToolException,
    ErrorCode,
    ExpiredServicePrincipalException,
    ModernAuthException,
    MsiNotConfiguredException,
    MsiRetryExhaustedException,
    TransportException,
    ValidationException,
)
from armauth.messages import MessageCatalog
from armauth.models import (
    AuthScheme,
    Credential,
    ManagedIdentity,
    Mechanism,
    ServicePrincipalAuthType,
    ServicePrincipalCertificate,
    ServicePrincipalSecret,
)
from armauth.transport import HttpTransport, RetryPolicy, WebRequest, WebResponse

__version__ = "0.1.0"

__all__ = [
    "ArmAuthException",
    "ArmAuthSettings",
    "AuthError",
    "AuthRequestFailedException",
    "AuthScheme",
    "CertificateToolException",
    "Credential",
    "CredentialContext",
    "ErrorCode",
    "ExpiredServicePrincipalException",
    "HttpTransport",
    "ManagedIdentity",
    "Mechanism",
    "MessageCatalog",
    "ModernAuthException",
    "MsiNotConfiguredException",
    "MsiRetryExhaustedException",
    "RetryPolicy",
    "ServicePrincipalAuthType",
    "ServicePrincipalCertificate",
    "ServicePrincipalSecret",
    "TransportException",
    "ValidationException",
    "WebRequest",
    "WebResponse",
    "build_credential",
]
