import asyncio
import time
import unittest

import httpx
import jwt

from skaftin.client.config import ClientConfig
from skaftin.client.errors import ApiError
from skaftin.client.httpx.client import AsyncApiClient
from skaftin.client.session import SessionLifecycle, SessionUser
from skaftin.client.signals import Signal

LOGIN_DATA = {
    "user": {
        "id": 5,
        "email": "ada@example.test",
        "name": "Ada",
        "last_name": "Lovelace",
        "roles": [{"role_key": "Admin"}],
    },
    "organisation": {"id": 9, "name": "Acme", "is_admin": True},
}


def make_token(expires_in: float, **claims) -> str:
    return jwt.encode({"sub": "5", "exp": int(time.time() + expires_in), **claims}, "secret", algorithm="HS256")


class FakeAuthServer:
    def __init__(self):
        self.valid_tokens = set()
        self.refreshed_token = make_token(3600, jti="refreshed")
        self.login_token = make_token(3600, jti="login")
        self.logout_status = 200
        self.login_data = None
        self.paths = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.paths.append(path)
        if path == "/app-api/auth/auth/login":
            if b'"password":"right"' not in await request.aread():
                return httpx.Response(401, json={"success": False, "message": "Invalid credentials"})
            self.valid_tokens.add(self.login_token)
            data = self.login_data or {**LOGIN_DATA, "session": {"accessToken": self.login_token}}
            return httpx.Response(200, json={"success": True, "data": data})
        if path == "/app-api/auth/auth/logout":
            return httpx.Response(self.logout_status, json={"success": self.logout_status == 200})
        if path == "/app-api/auth/session/refresh":
            if isinstance(self.refreshed_token, Exception):
                raise self.refreshed_token
            if self.refreshed_token is None:
                return httpx.Response(401, json={"success": False})
            self.valid_tokens.add(self.refreshed_token)
            return httpx.Response(200, json={"status": "OK", "accessToken": self.refreshed_token})
        bearer = request.headers.get("authorization", "").removeprefix("Bearer ")
        if bearer not in self.valid_tokens:
            return httpx.Response(401, json={"success": False, "message": "Token expired"})
        return httpx.Response(200, json={"success": True, "data": {}})


class SessionUserTest(unittest.TestCase):
    def test_from_auth_response(self):
        user = SessionUser.from_auth_response(LOGIN_DATA)
        self.assertEqual(user.id, 5)
        self.assertEqual(user.name, "Ada Lovelace")
        self.assertEqual(user.role, "Admin")
        self.assertEqual(user.organisation_id, 9)
        self.assertEqual(user.organisation_name, "Acme")
        self.assertTrue(user.is_admin)

    def test_name_falls_back_to_email(self):
        user = SessionUser.from_auth_response({"user": {"id": 1, "email": "x@y.z"}})
        self.assertEqual(user.name, "x@y.z")
        self.assertEqual(user.role, "")
        self.assertFalse(user.is_admin)

    def test_has_role(self):
        user = SessionUser.from_auth_response(LOGIN_DATA)
        self.assertTrue(user.has_role(" admin "))
        self.assertFalse(user.has_role("viewer"))
        self.assertTrue(SessionUser(id=1, email="", name="", role="viewer").has_role("Viewer"))


class SessionLifecycleTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.server = FakeAuthServer()
        self.logout_signal = Signal("auth:logout")
        self.client = AsyncApiClient(
            ClientConfig(api_url="http://skaftin.test", api_key="pk_test"),
            logout_signal=self.logout_signal,
            transport=httpx.MockTransport(self.server.handler),
        )
        self.lifecycle = SessionLifecycle(self.client, logout_signal=self.logout_signal)

    async def asyncTearDown(self):
        await self.lifecycle.stop()
        self.lifecycle.close()
        await self.client.close()

    async def test_login(self):
        user = await self.lifecycle.login("ada@example.test", "right")

        self.assertEqual(user.email, "ada@example.test")
        self.assertIs(self.lifecycle.user, user)
        self.assertTrue(self.lifecycle.is_authenticated)
        self.assertEqual(self.client.store.get_token(), self.server.login_token)
        self.assertEqual(self.client.store.get_user()["organisation_name"], "Acme")

    async def test_login_wrong_password(self):
        with self.assertRaises(ApiError) as cm:
            await self.lifecycle.login("ada@example.test", "wrong")
        self.assertEqual(cm.exception.message, "Invalid credentials")
        self.assertNotIn("/app-api/auth/session/refresh", self.server.paths)
        self.assertFalse(self.lifecycle.is_authenticated)

    async def test_login_invalid_response(self):
        self.server.login_data = {"user": {"id": 1}}
        with self.assertRaises(ValueError):
            await self.lifecycle.login("ada@example.test", "right")
        self.assertFalse(self.lifecycle.is_authenticated)

    async def test_cached_user_restored(self):
        await self.lifecycle.login("ada@example.test", "right")

        restored = SessionLifecycle(self.client, logout_signal=self.logout_signal)
        try:
            self.assertEqual(restored.user, self.lifecycle.user)
        finally:
            restored.close()

    async def test_logout(self):
        await self.lifecycle.login("ada@example.test", "right")
        await self.lifecycle.logout()

        self.assertIn("/app-api/auth/auth/logout", self.server.paths)
        self.assertFalse(self.lifecycle.is_authenticated)
        self.assertIsNone(self.lifecycle.user)
        self.assertIsNone(self.client.store.get_user())
        self.assertEqual(self.lifecycle.logout_reason, "user")

    async def test_logout_clears_locally_when_server_fails(self):
        await self.lifecycle.login("ada@example.test", "right")
        self.server.logout_status = 500

        await self.lifecycle.logout()

        self.assertFalse(self.lifecycle.is_authenticated)

    async def test_verify_session(self):
        self.assertFalse(await self.lifecycle.verify_session())

        await self.lifecycle.login("ada@example.test", "right")
        self.assertTrue(await self.lifecycle.verify_session())

    async def test_verify_session_repairs_expired_token(self):
        self.client.store.set_token("stale")
        self.assertTrue(await self.lifecycle.verify_session())
        self.assertEqual(self.client.store.get_token(), self.server.refreshed_token)

    async def test_verify_session_failure_forces_logout(self):
        await self.lifecycle.login("ada@example.test", "right")
        self.server.valid_tokens.clear()
        self.server.refreshed_token = None

        self.assertFalse(await self.lifecycle.verify_session())

        self.assertIsNone(self.lifecycle.user)
        self.assertEqual(self.lifecycle.logout_reason, "session_expired")
        self.assertFalse(self.lifecycle.is_authenticated)

    async def test_refresh_if_expiring(self):
        self.client.store.set_token(make_token(30))

        self.assertTrue(await self.lifecycle.refresh_if_expiring())

        self.assertEqual(self.client.store.get_token(), self.server.refreshed_token)

    async def test_no_refresh_when_not_expiring(self):
        token = make_token(3600)
        self.client.store.set_token(token)

        self.assertTrue(await self.lifecycle.refresh_if_expiring())

        self.assertEqual(self.client.store.get_token(), token)
        self.assertEqual(self.server.paths, [])

    async def test_failed_proactive_refresh_keeps_session(self):
        token = make_token(10)
        self.client.store.set_token(token)
        self.server.refreshed_token = None
        logouts = []
        self.logout_signal.connect(lambda **kw: logouts.append(kw))

        self.assertFalse(await self.lifecycle.refresh_if_expiring())

        self.assertEqual(self.client.store.get_token(), token)
        self.assertIsNone(self.lifecycle.logout_reason)
        self.assertEqual(logouts, [])

    async def test_proactive_refresh_survives_network_error(self):
        token = make_token(10)
        self.client.store.set_token(token)
        self.server.refreshed_token = httpx.ConnectError("connection refused")

        self.assertFalse(await self.lifecycle.refresh_if_expiring())
        self.assertTrue(self.lifecycle.is_authenticated)

        self.server.refreshed_token = make_token(3600, jti="later")
        self.assertTrue(await self.lifecycle.refresh_if_expiring())
        self.assertEqual(self.client.store.get_token(), self.server.refreshed_token)

    async def test_401_after_failed_proactive_refresh_ends_session(self):
        self.client.store.set_token(make_token(10))
        self.server.refreshed_token = None
        self.assertFalse(await self.lifecycle.refresh_if_expiring())

        self.assertFalse(await self.lifecycle.verify_session())

        self.assertFalse(self.lifecycle.is_authenticated)
        self.assertEqual(self.lifecycle.logout_reason, "session_expired")

    async def test_background_loop_survives_unexpected_errors(self):
        calls = []

        async def check():
            calls.append(None)
            if len(calls) == 1:
                raise ValueError("malformed verify body")

        self.client.store.set_token(make_token(3600))
        with self.assertLogs("skaftin.client.session", "ERROR"):
            task = asyncio.create_task(self.lifecycle._every(0, check))
            for _ in range(100):
                if len(calls) >= 2:
                    break
                await asyncio.sleep(0.001)
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        self.assertGreaterEqual(len(calls), 2)

    async def test_background_checks(self):
        await self.lifecycle.login("ada@example.test", "right")
        self.server.paths.clear()

        self.lifecycle.start()
        self.lifecycle.start()
        for _ in range(100):
            if "/app-api/auth/auth/verify" in self.server.paths:
                break
            await asyncio.sleep(0.001)
        await self.lifecycle.stop()

        self.assertEqual(self.server.paths.count("/app-api/auth/auth/verify"), 1)

    async def test_close_disconnects(self):
        self.lifecycle.close()
        self.assertEqual(self.logout_signal.receivers, [])


if __name__ == "__main__":
    unittest.main()
