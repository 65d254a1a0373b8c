"""CredentialContext のユニットテスト."""

import asyncio
import logging
import unittest
from unittest.mock import AsyncMock, patch

import msal

from armauth.config import ArmAuthSettings
from armauth.core.context import CredentialContext
from armauth.errors import ExpiredServicePrincipalException, ValidationException
from armauth.models import Mechanism
from armauth.transport import WebResponse
from msal_fakes import FakeMsalHttpClient


class GatedTransport:
    """解放されるまで応答を返さない送信層."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.gate = asyncio.Event()
        self.requests = []

    async def send(self, request, policy=None):
        self.requests.append(request)
        await self.gate.wait()
        return self.responses.pop(0)


def _token_response(token):
    return WebResponse(200, "OK", body={"access_token": token})


def _context(transport, **overrides):
    fields = {
        "client_id": "client-id",
        "tenant": "tenant-id",
        "secret": "s3cr3t-value",
        "resource_uri": "https://management.azure.com/",
        "authority_uri": "https://login.microsoftonline.com/",
        "active_directory_resource_id": "https://management.core.windows.net/",
    }
    fields.update(overrides)
    return CredentialContext(transport=transport, settings=ArmAuthSettings(), **fields)


class TestCredentialContextConstruction(unittest.TestCase):
    """構築と公開プロパティ."""

    def test_properties(self) -> None:
        context = _context(AsyncMock())
        self.assertEqual(context.tenant, "tenant-id")
        self.assertEqual(context.client_id, "client-id")
        self.assertEqual(context.mechanism, Mechanism.SERVICE_PRINCIPAL_SECRET)
        self.assertIsNone(context.msi_client_id)

    def test_managed_identity_properties(self) -> None:
        context = _context(AsyncMock(), scheme="ManagedServiceIdentity", msi_client_id="msi-id")
        self.assertEqual(context.mechanism, Mechanism.MANAGED_IDENTITY)
        self.assertEqual(context.msi_client_id, "msi-id")
        self.assertIsNone(context.client_id)

    def test_validation_error_surfaces_at_construction(self) -> None:
        with self.assertRaises(ValidationException) as ctx:
            _context(AsyncMock(), client_id="")
        self.assertEqual(ctx.exception.field, "client_id")

    def test_repr_masks_static_token(self) -> None:
        context = _context(AsyncMock(), static_access_token="static-token-value")
        self.assertNotIn("static-token-value", repr(context))

    def test_prefer_modern_flow_defaults_to_settings(self) -> None:
        context = CredentialContext(
            "client-id",
            "tenant-id",
            "secret",
            "https://management.azure.com/",
            "https://login.microsoftonline.com/",
            "https://management.core.windows.net/",
            transport=AsyncMock(),
            settings=ArmAuthSettings(prefer_modern_flow=True),
        )
        self.assertTrue(context.credential.prefer_modern_flow)


class TestCredentialContextGetToken(unittest.IsolatedAsyncioTestCase):
    """get_token の共有と強制更新."""

    async def test_concurrent_calls_share_one_request(self) -> None:
        transport = GatedTransport([_token_response("tok-1")])
        context = _context(transport)

        first = context.get_token()
        second = context.get_token()
        self.assertIs(first, second)

        transport.gate.set()
        self.assertEqual(await first, "tok-1")
        self.assertEqual(len(transport.requests), 1)

    async def test_completed_request_is_reused(self) -> None:
        transport = GatedTransport([_token_response("tok-1")])
        transport.gate.set()
        context = _context(transport)

        self.assertEqual(await context.acquire_token(), "tok-1")
        self.assertEqual(await context.acquire_token(), "tok-1")
        self.assertEqual(len(transport.requests), 1)

    async def test_failed_request_is_returned_to_later_calls(self) -> None:
        transport = GatedTransport([WebResponse(401, "Unauthorized")])
        transport.gate.set()
        context = _context(transport)

        with self.assertLogs("armauth.core.context", level=logging.ERROR):
            with self.assertRaises(ExpiredServicePrincipalException):
                await context.get_token()
        with self.assertRaises(ExpiredServicePrincipalException):
            await context.get_token()
        self.assertEqual(len(transport.requests), 1)

    async def test_force_starts_new_request_without_cancelling(self) -> None:
        """強制更新は新しい要求を開始し、進行中の要求は完了まで残る."""
        transport = GatedTransport([_token_response("tok-1"), _token_response("tok-2")])
        context = _context(transport)

        first = context.get_token()
        await asyncio.sleep(0)
        forced = context.get_token(force=True)
        await asyncio.sleep(0)

        self.assertIsNot(first, forced)
        self.assertIs(context.get_token(), forced)

        transport.gate.set()
        self.assertEqual(await first, "tok-1")
        self.assertEqual(await forced, "tok-2")
        self.assertFalse(first.cancelled())
        self.assertEqual(len(transport.requests), 2)

    async def test_static_token_short_circuits(self) -> None:
        transport = GatedTransport([_token_response("fresh-token")])
        context = _context(transport, static_access_token="static-token")

        self.assertEqual(await context.get_token(), "static-token")
        self.assertEqual(await context.get_token(), "static-token")
        self.assertEqual(transport.requests, [])

    async def test_force_bypasses_static_token(self) -> None:
        transport = GatedTransport([_token_response("fresh-token")])
        transport.gate.set()
        context = _context(transport, static_access_token="static-token")

        self.assertEqual(await context.get_token(force=True), "fresh-token")
        self.assertEqual(len(transport.requests), 1)

    async def test_get_token_requires_running_loop(self) -> None:
        context = _context(AsyncMock())
        result = await asyncio.to_thread(self._call_without_loop, context)
        self.assertIsInstance(result, RuntimeError)

    @staticmethod
    def _call_without_loop(context):
        try:
            context.get_token()
        except RuntimeError as exc:
            return exc
        return None

    async def test_managed_identity_dispatch(self) -> None:
        transport = AsyncMock()
        transport.send.side_effect = [WebResponse(429, "Too Many Requests"), _token_response("msi-token")]
        sleep = AsyncMock()
        context = CredentialContext(
            None,
            "tenant-id",
            None,
            "https://management.azure.com/",
            "https://login.microsoftonline.com/",
            "https://management.core.windows.net/",
            scheme="ManagedServiceIdentity",
            msi_client_id="msi-id",
            transport=transport,
            settings=ArmAuthSettings(),
            sleep=sleep,
        )

        self.assertEqual(await context.acquire_token(), "msi-token")
        sleep.assert_awaited_once_with(2.0)
        request = transport.send.await_args.args[0]
        self.assertIn("client_id=msi-id", request.uri)
        self.assertEqual(request.headers, {"Metadata": "true"})

    async def test_prefer_modern_selects_client_credential_flow(self) -> None:
        transport = AsyncMock()
        context = _context(transport)

        with patch("armauth.flows.modern.msal.ConfidentialClientApplication") as mock_application_cls:
            mock_application_cls.return_value.acquire_token_for_client.return_value = {
                "access_token": "modern-token"
            }
            self.assertEqual(await context.get_token(prefer_modern=True), "modern-token")

        transport.send.assert_not_awaited()

    async def test_credential_preference_selects_flow(self) -> None:
        transport = AsyncMock()
        context = _context(transport, prefer_modern_flow=True)

        with patch("armauth.flows.modern.msal.ConfidentialClientApplication") as mock_application_cls:
            mock_application_cls.return_value.acquire_token_for_client.return_value = {
                "access_token": "modern-token"
            }
            self.assertEqual(await context.acquire_token(), "modern-token")

        mock_application_cls.assert_called_once()
        transport.send.assert_not_awaited()

    async def test_force_on_client_credential_flow_requests_new_token(self) -> None:
        """クライアント資格情報フローでも強制更新は MSAL のキャッシュを使わずに送信する."""
        http_client = FakeMsalHttpClient()
        build_application = msal.ConfidentialClientApplication
        transport = AsyncMock()
        context = _context(transport, prefer_modern_flow=True)

        with patch(
            "armauth.flows.modern.msal.ConfidentialClientApplication",
            side_effect=lambda **kwargs: build_application(http_client=http_client, **kwargs),
        ):
            first = await context.get_token()
            reused = await context.get_token()
            forced = await context.get_token(force=True)

        self.assertEqual((first, reused, forced), ("tok-1", "tok-1", "tok-2"))
        self.assertEqual(len(http_client.token_posts), 2)
        transport.send.assert_not_awaited()

    async def test_legacy_flow_is_default(self) -> None:
        transport = AsyncMock()
        transport.send.return_value = _token_response("legacy-token")
        context = _context(transport)

        self.assertEqual(await context.acquire_token(), "legacy-token")
        transport.send.assert_awaited_once()


if __name__ == "__main__":
    unittest.main()
