"""資格情報の検証と種類の判定"""

from __future__ import annotations

from typing import Any, Optional, Union

from armauth.errors import ErrorCode, ValidationException, create_validation_error
from armauth.messages import MessageCatalog
from armauth.models import (
    AuthScheme,
    Credential,
    Identity,
    ManagedIdentity,
    ServicePrincipalAuthType,
    ServicePrincipalCertificate,
    ServicePrincipalSecret,
)


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _fail(catalog: MessageCatalog, code: ErrorCode, key: str, field: str, *args: Any) -> ValidationException:
    return ValidationException(
        create_validation_error(code, catalog.format(key, *args), details={"field": field}),
        field=field,
    )


def resolve_scheme(scheme: Optional[Union[str, AuthScheme]], catalog: MessageCatalog) -> AuthScheme:
    """スキーム文字列を列挙値に変換する。未指定はサービスプリンシパル"""
    if isinstance(scheme, AuthScheme):
        return scheme
    if not scheme:
        return AuthScheme.SERVICE_PRINCIPAL
    try:
        return AuthScheme(scheme)
    except ValueError:
        raise _fail(catalog, ErrorCode.VALIDATION_SCHEME, "InvalidScheme", "scheme", scheme) from None


def resolve_auth_type(auth_type: Optional[Union[str, ServicePrincipalAuthType]]) -> ServicePrincipalAuthType:
    """認証方式を判定する。未指定はシークレット、シークレット以外は証明書として扱う"""
    if isinstance(auth_type, ServicePrincipalAuthType):
        return auth_type
    if not auth_type or auth_type == ServicePrincipalAuthType.SECRET.value:
        return ServicePrincipalAuthType.SECRET
    return ServicePrincipalAuthType.CERTIFICATE


def build_credential(
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
    prefer_modern_flow: bool = False,
    catalog: Optional[MessageCatalog] = None,
) -> Credential:
    """生のフィールドを検証して Credential を組み立てる

    Raises:
        ValidationException: 必須フィールドが空、または文字列でない場合
    """
    catalog = catalog or MessageCatalog()

    if not _is_non_empty_string(tenant):
        raise _fail(catalog, ErrorCode.VALIDATION_TENANT, "DomainCannotBeEmpty", "tenant")

    resolved_scheme = resolve_scheme(scheme, catalog)

    identity: Identity
    if resolved_scheme is AuthScheme.SERVICE_PRINCIPAL:
        if not _is_non_empty_string(client_id):
            raise _fail(catalog, ErrorCode.VALIDATION_CLIENT_ID, "ClientIdCannotBeEmpty", "client_id")

        if resolve_auth_type(auth_type) is ServicePrincipalAuthType.SECRET:
            if not _is_non_empty_string(secret):
                raise _fail(catalog, ErrorCode.VALIDATION_SECRET, "SecretCannotBeEmpty", "secret")
            identity = ServicePrincipalSecret(client_id=client_id, secret=secret)
        else:
            if not _is_non_empty_string(certificate_path):
                raise _fail(
                    catalog,
                    ErrorCode.VALIDATION_CERTIFICATE_PATH,
                    "InvalidCertFileProvided",
                    "certificate_path",
                )
            identity = ServicePrincipalCertificate(client_id=client_id, certificate_path=certificate_path)
    else:
        identity = ManagedIdentity(msi_client_id=msi_client_id or None)

    if not _is_non_empty_string(resource_uri):
        raise _fail(catalog, ErrorCode.VALIDATION_RESOURCE_URI, "armUrlCannotBeEmpty", "resource_uri")

    if not _is_non_empty_string(authority_uri):
        raise _fail(catalog, ErrorCode.VALIDATION_AUTHORITY_URI, "authorityUrlCannotBeEmpty", "authority_uri")

    if not _is_non_empty_string(active_directory_resource_id):
        raise _fail(
            catalog,
            ErrorCode.VALIDATION_ACTIVE_DIRECTORY_RESOURCE_ID,
            "activeDirectoryResourceIdUrlCannotBeEmpty",
            "active_directory_resource_id",
        )

    # bool の True 以外はすべて False に寄せる
    if is_azure_stack_environment is not True:
        is_azure_stack_environment = False

    return Credential(
        tenant=tenant,
        resource_uri=resource_uri,
        authority_uri=authority_uri,
        active_directory_resource_id=active_directory_resource_id,
        identity=identity,
        is_adfs_enabled=bool(is_adfs_enabled),
        is_azure_stack_environment=is_azure_stack_environment,
        static_access_token=static_access_token or None,
        prefer_modern_flow=bool(prefer_modern_flow),
    )
