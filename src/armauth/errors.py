"""
エラー定義

armauth で使用されるエラーコードと例外クラス
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union


class ErrorCode(Enum):
    """エラーコード

    カテゴリ別にエラーコードを定義:
    - VALIDATION_xxx: 資格情報の構築時エラー（フィールド単位）
    - TRANSPORT_xxx: 送信層のエラー
    - MSI_xxx: マネージドIDのエラー
    - AUTH_xxx: トークンエンドポイントのエラー
    - CERT_xxx: 証明書ツールのエラー
    """
    # バリデーションエラー
    VALIDATION_TENANT = "VALIDATION_001"
    VALIDATION_CLIENT_ID = "VALIDATION_002"
    VALIDATION_SECRET = "VALIDATION_003"
    VALIDATION_CERTIFICATE_PATH = "VALIDATION_004"
    VALIDATION_RESOURCE_URI = "VALIDATION_005"
    VALIDATION_AUTHORITY_URI = "VALIDATION_006"
    VALIDATION_ACTIVE_DIRECTORY_RESOURCE_ID = "VALIDATION_007"
    VALIDATION_SCHEME = "VALIDATION_008"

    # 送信エラー
    TRANSPORT_FAILED = "TRANSPORT_001"

    # マネージドIDエラー
    MSI_RETRY_EXHAUSTED = "MSI_001"
    MSI_NOT_CONFIGURED = "MSI_002"

    # 認証エラー
    EXPIRED_SERVICE_PRINCIPAL = "AUTH_001"
    AUTH_REQUEST_FAILED = "AUTH_002"
    MODERN_AUTH_FAILED = "AUTH_003"

    # 証明書エラー
    CERTIFICATE_TOOL_FAILED = "CERT_001"


@dataclass
class AuthError:
    """認証エラー情報

    Attributes:
        code: エラーコード文字列
        message: エラーメッセージ
        details: 追加のエラー詳細情報
        recoverable: 復旧可能かどうか
    """
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    recoverable: bool = False
    log_level: int = logging.ERROR


class ArmAuthException(Exception):
    """armauth 例外クラス

    AuthErrorをラップする例外クラス
    """

    def __init__(self, error: AuthError):
        """ArmAuthExceptionを初期化

        Args:
            error: AuthErrorインスタンス
        """
        self.error = error
        self.log_level = error.log_level
        super().__init__(f"[{error.code}] {error.message}")


class ValidationException(ArmAuthException):
    """資格情報の構築時バリデーション例外"""

    def __init__(self, error: AuthError, field: str):
        self.field = field
        super().__init__(error)


class TransportException(ArmAuthException):
    """送信層で発生した例外"""


class StatusException(ArmAuthException):
    """HTTPステータスを伴う例外の基底クラス"""

    @property
    def status_code(self) -> Optional[Union[int, str]]:
        return (self.error.details or {}).get("status_code")

    @property
    def status_message(self) -> Optional[str]:
        return (self.error.details or {}).get("status_message")


class MsiRetryExhaustedException(StatusException):
    """マネージドIDの再試行上限に達した"""


class MsiNotConfiguredException(StatusException):
    """マネージドIDが正しく構成されていない"""


class ExpiredServicePrincipalException(StatusException):
    """サービスプリンシパルの資格情報が期限切れまたは無効"""


class AuthRequestFailedException(StatusException):
    """トークンエンドポイントへの要求が失敗した"""


class ModernAuthException(StatusException):
    """クライアント資格情報フローでの取得に失敗した"""


class CertificateToolException(ArmAuthException):
    """証明書検査ツールが失敗した"""

    @property
    def diagnostic_output(self) -> str:
        return (self.error.details or {}).get("stderr", "")


ERROR_CODE_LOG_LEVEL: Dict[ErrorCode, int] = {
    ErrorCode.MSI_RETRY_EXHAUSTED: logging.ERROR,
    ErrorCode.MSI_NOT_CONFIGURED: logging.ERROR,
    ErrorCode.EXPIRED_SERVICE_PRINCIPAL: logging.ERROR,
    ErrorCode.TRANSPORT_FAILED: logging.WARNING,
}


# よく使用されるエラーのファクトリ関数
def create_validation_error(
    code: ErrorCode,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> AuthError:
    """バリデーションエラーを作成

    Args:
        code: エラーコード
        message: エラーメッセージ
        details: 追加詳細

    Returns:
        AuthError: バリデーションエラー
    """
    return AuthError(
        code=code.value,
        message=message,
        details=details,
        recoverable=False,
        log_level=logging.ERROR,
    )


def create_status_error(
    code: ErrorCode,
    message: str,
    status_code: Optional[Union[int, str]] = None,
    status_message: Optional[str] = None,
    recoverable: bool = False,
) -> AuthError:
    """ステータス付きのエラーを作成

    Args:
        code: エラーコード
        message: エラーメッセージ
        status_code: HTTPステータスコードまたはエラーコード
        status_message: ステータスメッセージ
        recoverable: 復旧可能かどうか

    Returns:
        AuthError: ステータス付きエラー
    """
    return AuthError(
        code=code.value,
        message=message,
        details={"status_code": status_code, "status_message": status_message},
        recoverable=recoverable,
        log_level=ERROR_CODE_LOG_LEVEL.get(code, logging.ERROR),
    )


def create_transport_error(
    message: str,
    error_code: Optional[str] = None,
) -> AuthError:
    """送信エラーを作成

    Args:
        message: エラーメッセージ
        error_code: 送信層のエラーコード（例: ETIMEDOUT）

    Returns:
        AuthError: 送信エラー
    """
    return AuthError(
        code=ErrorCode.TRANSPORT_FAILED.value,
        message=message,
        details={"error_code": error_code},
        recoverable=True,
        log_level=ERROR_CODE_LOG_LEVEL[ErrorCode.TRANSPORT_FAILED],
    )


def create_certificate_error(message: str, stderr: str) -> AuthError:
    """証明書ツールのエラーを作成

    Args:
        message: エラーメッセージ
        stderr: ツールの診断出力（加工しない）

    Returns:
        AuthError: 証明書エラー
    """
    return AuthError(
        code=ErrorCode.CERTIFICATE_TOOL_FAILED.value,
        message=message,
        details={"stderr": stderr},
        recoverable=False,
    )
