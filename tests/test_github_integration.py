"""Integration-style tests for GitHub repository creation using a local mock server."""
from __future__ import annotations

from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from threading import Thread
import json
import unittest

from fastpush.errors import RepoCreationError
from fastpush import github


class _Handler(BaseHTTPRequestHandler):
    payload: dict[str, object] | None = None
    auth_seen: str | None = None

    def _reply(self, status: int, data: dict[str, object]) -> None:
        body = json.dumps(data).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_POST(self) -> None:  # noqa: N802
        length = int(self.headers.get("Content-Length", "0"))
        body = self.rfile.read(length) if length else b""
        _Handler.payload = json.loads(body.decode("utf-8"))
        _Handler.auth_seen = self.headers.get("Authorization")

        if self.path != "/user/repos":
            self._reply(404, {"message": "Not Found"})
            return
        if _Handler.payload.get("name") == "broken":
            body = b"upstream exploded"
            self.send_response(500)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
            return
        if _Handler.payload.get("name") == "taken":
            self._reply(422, {
                "message": "Repository creation failed.",
                "errors": [{"message": "name already exists on this account"}],
            })
            return
        name = _Handler.payload["name"]
        self._reply(201, {
            "name": name,
            "full_name": f"me/{name}",
            "html_url": f"https://github.com/me/{name}",
            "ssh_url": f"git@github.com:me/{name}.git",
            "clone_url": f"https://github.com/me/{name}.git",
        })

    def log_message(self, format: str, *args: object) -> None:
        return


class GithubIntegrationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
        host, port = self.server.server_address[:2]
        Thread(target=self.server.serve_forever, daemon=True).start()
        self.old_api = github.API
        github.API = f"http://{host}:{port}"

    def tearDown(self) -> None:
        github.API = self.old_api
        self.server.shutdown()
        self.server.server_close()

    def test_create_repository(self) -> None:
        creator = github.GitHubRepoCreator("tok")
        created = creator.create("demo", private=True, description="d")
        self.assertEqual(created.full_name, "me/demo")
        self.assertEqual(created.clone_url, "https://github.com/me/demo.git")
        self.assertEqual(_Handler.payload, {
            "name": "demo",
            "private": True,
            "description": "d",
            "auto_init": False,
        })
        self.assertEqual(_Handler.auth_seen, "Bearer tok")

    def test_rejected_creation_carries_status_and_details(self) -> None:
        creator = github.GitHubRepoCreator("tok")
        with self.assertRaises(RepoCreationError) as ex:
            creator.create("taken")
        self.assertEqual(ex.exception.status, 422)
        self.assertIn("name already exists", str(ex.exception))
        self.assertEqual(ex.exception.code, "FP_NET_REPO_CREATE_FAIL")

    def test_server_error_without_json_body(self) -> None:
        with self.assertRaises(RepoCreationError) as ex:
            github.GitHubRepoCreator("tok").create("broken")
        self.assertEqual(ex.exception.status, 500)
        self.assertIn("HTTP 500", str(ex.exception))

    def test_unreachable_api(self) -> None:
        github.API = "http://127.0.0.1:9"
        with self.assertRaises(RepoCreationError) as ex:
            github.GitHubRepoCreator("tok", timeout_s=2.0).create("demo")
        self.assertIsNone(ex.exception.status)

    def test_token_is_required(self) -> None:
        with self.assertRaises(RepoCreationError):
            github.GitHubRepoCreator("  ")


if __name__ == "__main__":
    unittest.main()
