"""資格情報の検証・アサーション生成・トークン取得の窓口"""

from armauth.core.context import CredentialContext
from armauth.core.validation import build_credential

__all__ = [
    "CredentialContext",
    "build_credential",
]
