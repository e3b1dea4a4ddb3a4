import io
import json
import time
import unittest
from contextlib import redirect_stderr, redirect_stdout
from unittest import mock

import httpx
import jwt

from skaftin.client.cli import create_parser, main
from skaftin.client.cli.call import _parse_headers, _parse_params
from skaftin.client.config import ClientConfig
from skaftin.client.httpx.client import AsyncApiClient
from skaftin.client.internal.credential_storage import MemoryTokenStorage


def _client_for(handler):
    return AsyncApiClient(
        ClientConfig(api_url="http://skaftin.test", api_key="pk_test"),
        transport=httpx.MockTransport(handler),
    )


def _run(args):
    out, err = io.StringIO(), io.StringIO()
    with redirect_stdout(out), redirect_stderr(err):
        code = main(args)
    return code, out.getvalue(), err.getvalue()


class CliParserTest(unittest.TestCase):
    def test_defaults(self):
        args = create_parser().parse_args(["token"])
        self.assertEqual(args.storage, "auto")
        self.assertIsNone(args.env_name)
        self.assertFalse(args.verbose)
        self.assertFalse(args.clear)

    def test_global_options(self):
        args = create_parser().parse_args(["-v", "--env", "staging", "--storage", "file", "logout"])
        self.assertTrue(args.verbose)
        self.assertEqual(args.env_name, "staging")
        self.assertEqual(args.storage, "file")
        self.assertEqual(args.command, "logout")

    def test_memory_storage_not_offered(self):
        with redirect_stderr(io.StringIO()), self.assertRaises(SystemExit):
            create_parser().parse_args(["--storage", "memory", "token"])

    def test_call_options(self):
        args = create_parser().parse_args(
            ["call", "get", "/rows", "-H", "X-Trace: 1", "-p", "limit=5", "-p", "q=a=b", "--format", "jsonl"]
        )
        self.assertEqual(args.method, "get")
        self.assertEqual(args.endpoint, "/rows")
        self.assertEqual(args.headers, ["X-Trace: 1"])
        self.assertEqual(args.params, ["limit=5", "q=a=b"])
        self.assertEqual(args.output_format, "jsonl")

    def test_login_options(self):
        args = create_parser().parse_args(["login", "--username", "ada", "--method", "phone"])
        self.assertEqual(args.username, "ada")
        self.assertIsNone(args.password)
        self.assertEqual(args.method, "phone")

    def test_no_command_shows_help(self):
        code, out, _ = _run([])
        self.assertEqual(code, 0)
        self.assertIn("usage", out)


class CallParsingTest(unittest.TestCase):
    def test_headers(self):
        self.assertEqual(_parse_headers(["A: 1", "B: x: y"]), {"A": "1", "B": "x: y"})
        with self.assertRaises(ValueError):
            _parse_headers(["broken"])

    def test_params(self):
        self.assertEqual(_parse_params(["limit=5", "q=a=b"]), {"limit": "5", "q": "a=b"})
        with self.assertRaises(ValueError):
            _parse_params(["broken"])


class CallCommandTest(unittest.TestCase):
    def setUp(self):
        self.requests = []

    def _handler(self, request):
        self.requests.append(request)
        if request.url.path == "/missing":
            return httpx.Response(404, json={"success": False, "message": "Not found"})
        return httpx.Response(200, json={"success": True, "data": [{"id": 1}, {"id": 2}]})

    def _call(self, args):
        with mock.patch("skaftin.client.cli.call.make_client", return_value=_client_for(self._handler)):
            return _run(["call", *args])

    def test_get(self):
        code, out, _ = self._call(["get", "/rows", "-p", "limit=5", "-H", "X-Trace: abc"])

        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["data"], [{"id": 1}, {"id": 2}])
        self.assertEqual(self.requests[0].url.params["limit"], "5")
        self.assertEqual(self.requests[0].headers["x-trace"], "abc")

    def test_post_body(self):
        code, _, _ = self._call(["post", "/rows", "-d", '{"name": "x"}'])

        self.assertEqual(code, 0)
        self.assertEqual(self.requests[0].method, "POST")
        self.assertEqual(json.loads(self.requests[0].content), {"name": "x"})

    def test_jsonl(self):
        code, out, _ = self._call(["get", "/rows", "--format", "jsonl"])

        self.assertEqual(code, 0)
        self.assertEqual(out.splitlines(), ['{"id": 1}', '{"id": 2}'])

    def test_api_error(self):
        code, out, err = self._call(["get", "/missing"])

        self.assertEqual(code, 1)
        self.assertIn("Error: Not found (status=404)", err)
        self.assertEqual(json.loads(out)["message"], "Not found")

    def test_invalid_json_body(self):
        code, _, err = self._call(["post", "/rows", "-d", "{nope"])

        self.assertEqual(code, 1)
        self.assertIn("Invalid JSON data", err)
        self.assertEqual(self.requests, [])

    def test_missing_credentials(self):
        with mock.patch("skaftin.client.cli._common.resolve_config", return_value=ClientConfig()):
            code, _, err = _run(["call", "get", "/rows"])
        self.assertEqual(code, 1)
        self.assertIn("credentials required", err)


class LoginLogoutCommandTest(unittest.TestCase):
    def _handler(self, request):
        if request.url.path.endswith("/login"):
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "data": {
                        "user": {"id": 1, "email": "ada@example.test", "name": "Ada"},
                        "session": {"accessToken": "tok"},
                    },
                },
            )
        return httpx.Response(200, json={"success": True})

    def test_login(self):
        client = _client_for(self._handler)
        with mock.patch("skaftin.client.cli.login.make_client", return_value=client):
            code, out, _ = _run(["login", "--username", "ada@example.test", "--password", "pw"])

        self.assertEqual(code, 0)
        self.assertIn("Logged in as Ada (ada@example.test)", out)
        self.assertEqual(client.store.get_token(), "tok")

    def test_login_prompts_for_password(self):
        client = _client_for(self._handler)
        with mock.patch("skaftin.client.cli.login.make_client", return_value=client), mock.patch(
            "skaftin.client.cli.login.getpass.getpass", return_value="pw"
        ) as getpass:
            code, _, _ = _run(["login", "--username", "ada@example.test"])

        self.assertEqual(code, 0)
        getpass.assert_called_once()

    def test_logout(self):
        client = _client_for(self._handler)
        client.store.set_token("tok")
        with mock.patch("skaftin.client.cli.logout.make_client", return_value=client):
            code, out, _ = _run(["logout"])

        self.assertEqual(code, 0)
        self.assertIn("Logged out", out)
        self.assertIsNone(client.store.get_token())


class TokenCommandTest(unittest.TestCase):
    def setUp(self):
        self.storage = MemoryTokenStorage()
        patches = [
            mock.patch("skaftin.client.cli.token.make_storage", return_value=self.storage),
            mock.patch("skaftin.client.cli.token.resolve_config", return_value=ClientConfig(api_key="pk")),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)

    def test_no_token(self):
        code, out, _ = _run(["token"])
        self.assertEqual(code, 1)
        self.assertIn("No session token stored", out)

    def test_valid_token(self):
        self.storage.set("skaftin_access_token", jwt.encode({"exp": int(time.time()) + 600}, "s", algorithm="HS256"))
        code, out, _ = _run(["token"])
        self.assertEqual(code, 0)
        self.assertIn("Session token valid", out)

    def test_token_without_expiry(self):
        self.storage.set("skaftin_access_token", "opaque")
        code, out, _ = _run(["token"])
        self.assertEqual(code, 0)
        self.assertIn("expiry unknown", out)

    def test_clear(self):
        self.storage.set("skaftin_access_token", "opaque")
        self.storage.set("skaftin_user", "{}")
        code, _, _ = _run(["token", "--clear"])
        self.assertEqual(code, 0)
        self.assertIsNone(self.storage.get("skaftin_access_token"))
        self.assertIsNone(self.storage.get("skaftin_user"))


if __name__ == "__main__":
    unittest.main()
