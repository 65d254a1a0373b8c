"""ArmAuthSettings のユニットテスト"""

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from pydantic import ValidationError

from armauth.config import IMDS_TOKEN_ENDPOINT, ArmAuthSettings
from armauth.core.context import CredentialContext
from armauth.errors import ValidationException
from armauth.transport import DEFAULT_RETRIABLE_ERROR_CODES, DEFAULT_RETRIABLE_STATUS_CODES


class TestArmAuthSettings(unittest.TestCase):
    """設定の既定値と環境変数による上書き"""

    def test_defaults(self):
        settings = ArmAuthSettings(_env_file=None)
        self.assertEqual(settings.imds_endpoint, IMDS_TOKEN_ENDPOINT)
        self.assertEqual(settings.imds_api_version, "2018-02-01")
        self.assertEqual(settings.msi_retry_limit, 5)
        self.assertEqual(settings.msi_base_wait_ms, 2000)
        self.assertEqual(settings.http_retry_count, 5)
        self.assertEqual(settings.http_retry_interval_seconds, 2.0)
        self.assertEqual(settings.http_timeout_seconds, 60.0)
        self.assertFalse(settings.prefer_modern_flow)
        self.assertIsNone(settings.openssl_path)
        self.assertIsNone(settings.message_catalog_path)

    def test_environment_override(self):
        env = {
            "ARMAUTH_MSI_RETRY_LIMIT": "2",
            "ARMAUTH_PREFER_MODERN_FLOW": "true",
            "ARMAUTH_OPENSSL_PATH": "/opt/openssl/bin/openssl",
        }
        with patch.dict(os.environ, env):
            settings = ArmAuthSettings(_env_file=None)

        self.assertEqual(settings.msi_retry_limit, 2)
        self.assertTrue(settings.prefer_modern_flow)
        self.assertEqual(settings.openssl_path, "/opt/openssl/bin/openssl")

    def test_init_takes_precedence_over_environment(self):
        with patch.dict(os.environ, {"ARMAUTH_HTTP_RETRY_COUNT": "1"}):
            settings = ArmAuthSettings(_env_file=None, http_retry_count=4)
        self.assertEqual(settings.http_retry_count, 4)

    def test_invalid_values(self):
        with self.assertRaises(ValidationError):
            ArmAuthSettings(_env_file=None, imds_endpoint="169.254.169.254/metadata")
        with self.assertRaises(ValidationError):
            ArmAuthSettings(_env_file=None, msi_retry_limit=-1)
        with self.assertRaises(ValidationError):
            ArmAuthSettings(_env_file=None, http_timeout_seconds=0)

    def test_unknown_field_is_rejected(self):
        with self.assertRaises(ValidationError):
            ArmAuthSettings(_env_file=None, unknown_option=True)

    def test_default_retry_policy(self):
        policy = ArmAuthSettings(_env_file=None, http_retry_count=3, http_retry_interval_seconds=0.5).default_retry_policy()
        self.assertEqual(policy.retriable_status_codes, DEFAULT_RETRIABLE_STATUS_CODES)
        self.assertEqual(policy.retriable_error_codes, DEFAULT_RETRIABLE_ERROR_CODES)
        self.assertEqual(policy.retry_count, 3)
        self.assertEqual(policy.retry_interval_seconds, 0.5)
        self.assertEqual(policy.retry_timeout_seconds, 60.0)

    def test_message_catalog_path_is_used_by_context(self):
        """設定したカタログファイルのメッセージが検証エラーに使われる"""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "messages.yaml"
            path.write_text("ClientIdCannotBeEmpty: client id missing\n", encoding="utf-8")
            settings = ArmAuthSettings(_env_file=None, message_catalog_path=path)

            with self.assertRaises(ValidationException) as ctx:
                CredentialContext(
                    "",
                    "tenant-id",
                    "secret",
                    "https://management.azure.com/",
                    "https://login.microsoftonline.com/",
                    "https://management.core.windows.net/",
                    settings=settings,
                )

        self.assertEqual(ctx.exception.error.message, "client id missing")


if __name__ == "__main__":
    unittest.main()
