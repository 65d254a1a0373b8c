"""設定管理 - エンジン設定の読み込み"""

from armauth.config.settings import IMDS_TOKEN_ENDPOINT, ArmAuthSettings

__all__ = [
    "ArmAuthSettings",
    "IMDS_TOKEN_ENDPOINT",
]
