"""
test_github_client.py — Tests para el cliente de la API de GitHub.

Verifica:
- Headers de autenticación y URLs de cada endpoint
- Body de los PUT/DELETE de contenido (base64, sha opcional)
- Traducción de status HTTP a la taxonomía de errores
- Escritura sobre un path existente sin sha → WriteConflict
- list_tree perezoso y re-iterable
"""

from __future__ import annotations

import base64
import json
from unittest.mock import MagicMock

import pytest
import requests

from auto3d.config import AppConfig
from auto3d.errors import (
    AuthError,
    BranchConflict,
    ConfigurationError,
    NotFound,
    RefNotFound,
    RemoteApiError,
    SizeLimitExceeded,
    WriteConflict,
)
from auto3d.publishing.github_client import (
    GitHubClient,
    PullRequest,
    TreeListing,
    encode_path,
)

API = "https://api.github.com/repos/acme/parts"


def _response(status: int = 200, data=None, headers: dict | None = None, text: str | None = None):
    """Respuesta falsa con la forma de requests.Response."""
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.headers = headers or {}
    resp.reason = "Reason"
    if data is None and text is not None:
        resp.json.side_effect = ValueError("no json")
        resp.text = text
    else:
        resp.json.return_value = data if data is not None else {}
        resp.text = text if text is not None else json.dumps(data or {})
    resp.content = resp.text.encode("utf-8")
    return resp


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(session):
    return GitHubClient("acme/parts", token="t0ken", session=session, timeout=12)


def _call(session, index: int = -1):
    """(method, url, kwargs) de una llamada a session.request."""
    call = session.request.call_args_list[index]
    method, url = call.args
    return method, url, call.kwargs


# ================================================================
# Transporte
# ================================================================

class TestTransport:
    def test_auth_headers(self, client, session):
        session.request.return_value = _response(200, {"full_name": "acme/parts"})
        client.get_repository()

        method, url, kwargs = _call(session)
        assert method == "GET"
        assert url == API
        headers = kwargs["headers"]
        assert headers["Authorization"] == "Bearer t0ken"
        assert headers["Accept"] == "application/vnd.github+json"
        assert headers["X-GitHub-Api-Version"] == "2022-11-28"
        assert headers["User-Agent"] == "auto3d-uploader"
        assert kwargs["timeout"] == 12

    def test_token_provider_wins(self, session):
        provider = MagicMock(return_value="fresh")
        client = GitHubClient("acme/parts", token="old", token_provider=provider, session=session)
        session.request.return_value = _response(200, {})
        client.get_repository()

        assert _call(session)[2]["headers"]["Authorization"] == "Bearer fresh"
        provider.assert_called_once()

    def test_missing_token_is_auth_error(self, session):
        client = GitHubClient("acme/parts", session=session)
        with pytest.raises(AuthError):
            client.get_repository()
        session.request.assert_not_called()

    def test_network_error(self, client, session):
        session.request.side_effect = requests.ConnectionError("boom")
        with pytest.raises(RemoteApiError) as exc:
            client.get_repository()
        assert exc.value.remote_status == 0

    def test_401_is_auth_error(self, client, session):
        session.request.return_value = _response(401, {"message": "Bad credentials"})
        with pytest.raises(AuthError, match="Bad credentials"):
            client.get_repository()

    def test_403_is_auth_error(self, client, session):
        session.request.return_value = _response(
            403, {"message": "Resource not accessible by personal access token"}
        )
        with pytest.raises(AuthError):
            client.get_repository()

    def test_403_rate_limit_is_remote_error(self, client, session):
        session.request.return_value = _response(
            403,
            {"message": "API rate limit exceeded"},
            headers={"X-RateLimit-Remaining": "0"},
        )
        with pytest.raises(RemoteApiError) as exc:
            client.get_repository()
        assert exc.value.remote_status == 403

    def test_other_status_keeps_remote_status_and_message(self, client, session):
        session.request.return_value = _response(502, {"message": "Server Error"})
        with pytest.raises(RemoteApiError) as exc:
            client.get_repository()
        assert exc.value.remote_status == 502
        assert "GitHub 502: Server Error" in exc.value.message

    def test_long_remote_body_is_truncated(self, client, session):
        session.request.return_value = _response(500, text="x" * 5000)
        with pytest.raises(RemoteApiError) as exc:
            client.get_repository()
        assert len(exc.value.message) < 600

    def test_from_config_requires_settings(self):
        with pytest.raises(ConfigurationError, match="GH_TOKEN"):
            GitHubClient.from_config(AppConfig(repo="acme/parts"))

    def test_from_config(self):
        client = GitHubClient.from_config(AppConfig(token="t", repo="acme/parts"))
        assert client.repo == "acme/parts"

    def test_encode_path(self):
        assert encode_path("images/a b/1-ñ.png") == "images/a%20b/1-%C3%B1.png"
        assert encode_path("/models/a/") == "models/a"


# ================================================================
# Refs
# ================================================================

class TestRefs:
    def test_branch_head(self, client, session):
        session.request.return_value = _response(200, {"object": {"sha": "abc123"}})
        assert client.get_branch_head_commit("main") == "abc123"
        assert _call(session)[1] == f"{API}/git/ref/heads/main"

    def test_branch_head_missing(self, client, session):
        session.request.return_value = _response(404, {"message": "Not Found"})
        with pytest.raises(RefNotFound):
            client.get_branch_head_commit("nope")

    def test_create_branch(self, client, session):
        session.request.return_value = _response(201, {"ref": "refs/heads/auto3d/x"})
        client.create_branch("abc123", "auto3d/upload/x")

        method, url, kwargs = _call(session)
        assert method == "POST"
        assert url == f"{API}/git/refs"
        assert kwargs["json"] == {"ref": "refs/heads/auto3d/upload/x", "sha": "abc123"}

    def test_create_existing_branch(self, client, session):
        session.request.return_value = _response(422, {"message": "Reference already exists"})
        with pytest.raises(BranchConflict):
            client.create_branch("abc123", "auto3d/upload/x")


# ================================================================
# Contenido
# ================================================================

class TestWriteFile:
    def _ok(self):
        return _response(201, {
            "content": {"path": "models/a/b/1-m.glb", "sha": "blob1"},
            "commit": {"sha": "commit1"},
        })

    def test_put_body(self, client, session):
        session.request.return_value = self._ok()
        result = client.write_file("models/a/b/1-m.glb", b"glTF", "Upload it", "main")

        method, url, kwargs = _call(session)
        assert method == "PUT"
        assert url == f"{API}/contents/models/a/b/1-m.glb"
        body = kwargs["json"]
        assert body["message"] == "Upload it"
        assert body["branch"] == "main"
        assert base64.b64decode(body["content"]) == b"glTF"
        assert "sha" not in body

        assert result.blob_sha == "blob1"
        assert result.commit_sha == "commit1"
        assert result.path == "models/a/b/1-m.glb"

    def test_put_with_previous_sha(self, client, session):
        session.request.return_value = self._ok()
        client.write_file("models/a/b/1-m.glb", b"glTF", "Replace", "main", previous_blob_sha="old")
        assert _call(session)[2]["json"]["sha"] == "old"

    def test_existing_path_without_sha_conflicts(self, client, session):
        """Sin sha no se sobreescribe nada: GitHub dice 422 y se reporta conflicto."""
        session.request.return_value = _response(
            422, {"message": 'Invalid request.\n\n"sha" wasn\'t supplied.'}
        )
        with pytest.raises(WriteConflict):
            client.write_file("models/a/b/1-m.glb", b"glTF", "Upload", "main")

    def test_stale_sha_conflicts(self, client, session):
        session.request.return_value = _response(
            409, {"message": "models/a/b/1-m.glb does not match abc"}
        )
        with pytest.raises(WriteConflict):
            client.write_file("models/a/b/1-m.glb", b"glTF", "Replace", "main", previous_blob_sha="old")

    def test_payload_too_large(self, client, session):
        session.request.return_value = _response(413, text="Request Entity Too Large")
        with pytest.raises(SizeLimitExceeded):
            client.write_file("models/a/b/1-m.glb", b"glTF", "Upload", "main")

    def test_unexpected_422_is_remote_error(self, client, session):
        session.request.return_value = _response(422, {"message": "path contains a malformed segment"})
        with pytest.raises(RemoteApiError) as exc:
            client.write_file("models/a/b/1-m.glb", b"glTF", "Upload", "main")
        assert exc.value.remote_status == 422


class TestReadAndDelete:
    def test_read_metadata(self, client, session):
        session.request.return_value = _response(200, {
            "type": "file", "path": "images/a/b/1-a.png", "sha": "blob9", "size": 321,
        })
        meta = client.read_file_metadata("images/a/b/1-a.png", "main")

        _, url, kwargs = _call(session)
        assert url == f"{API}/contents/images/a/b/1-a.png"
        assert kwargs["params"] == {"ref": "main"}
        assert meta.blob_sha == "blob9"
        assert meta.size == 321

    def test_read_missing(self, client, session):
        session.request.return_value = _response(404, {"message": "Not Found"})
        with pytest.raises(NotFound):
            client.read_file_metadata("images/a/b/1-a.png", "main")

    def test_read_directory_is_not_found(self, client, session):
        session.request.return_value = _response(200, [{"type": "file", "path": "images/a/1.png"}])
        with pytest.raises(NotFound):
            client.read_file_metadata("images/a", "main")

    def test_delete(self, client, session):
        session.request.return_value = _response(200, {"commit": {"sha": "c2"}})
        assert client.delete_file("images/a/b/1-a.png", "Remove", "main", "blob9") == "c2"

        method, url, kwargs = _call(session)
        assert method == "DELETE"
        assert kwargs["json"] == {"message": "Remove", "sha": "blob9", "branch": "main"}

    def test_delete_stale_sha(self, client, session):
        session.request.return_value = _response(409, {"message": "does not match"})
        with pytest.raises(WriteConflict):
            client.delete_file("images/a/b/1-a.png", "Remove", "main", "stale")


# ================================================================
# Árbol y PRs
# ================================================================

class TestTree:
    TREE = {
        "truncated": False,
        "tree": [
            {"path": "images", "type": "tree", "sha": "t1"},
            {"path": "images/a/b/1-a.png", "type": "blob", "sha": "b1", "size": 10},
            {"path": "models/a/b/2-m.glb", "type": "blob", "sha": "b2", "size": 20},
        ],
    }

    def test_lazy(self, client, session):
        listing = client.list_tree("main")
        assert isinstance(listing, TreeListing)
        session.request.assert_not_called()

    def test_blobs_only(self, client, session):
        session.request.return_value = _response(200, self.TREE)
        entries = list(client.list_tree("main"))

        _, url, kwargs = _call(session)
        assert url == f"{API}/git/trees/main"
        assert kwargs["params"] == {"recursive": "1"}
        assert [e.path for e in entries] == ["images/a/b/1-a.png", "models/a/b/2-m.glb"]
        assert entries[1].size == 20
        assert entries[1].blob_sha == "b2"

    def test_restartable(self, client, session):
        session.request.return_value = _response(200, self.TREE)
        listing = client.list_tree("main")
        assert len(list(listing)) == 2
        assert len(list(listing)) == 2
        assert session.request.call_count == 2

    def test_non_recursive(self, client, session):
        session.request.return_value = _response(200, {"tree": []})
        list(client.list_tree("main", recursive=False))
        assert _call(session)[2]["params"] is None

    def test_missing_branch(self, client, session):
        session.request.return_value = _response(404, {"message": "Not Found"})
        with pytest.raises(RefNotFound):
            list(client.list_tree("gone"))

    def test_empty_repository(self, client, session):
        """Repo sin commits: GitHub responde 409 y el listado queda vacío."""
        session.request.return_value = _response(409, {"message": "Git Repository is empty."})
        assert list(client.list_tree("main")) == []

    def test_other_read_conflict_is_remote_error(self, client, session):
        session.request.return_value = _response(409, {"message": "Something else"})
        with pytest.raises(RemoteApiError) as exc:
            list(client.list_tree("main"))
        assert not isinstance(exc.value, WriteConflict)
        assert exc.value.remote_status == 409

    def test_head_of_empty_repository(self, client, session):
        session.request.return_value = _response(409, {"message": "Git Repository is empty."})
        with pytest.raises(RemoteApiError):
            client.get_branch_head_commit("main")


class TestPullRequests:
    def test_open(self, client, session):
        session.request.return_value = _response(201, {
            "number": 7, "html_url": "https://github.com/acme/parts/pull/7",
        })
        pr = client.open_pull_request("auto3d/upload/x", "main", "[Auto3D] Add x", body="hi")

        assert pr == PullRequest(number=7, url="https://github.com/acme/parts/pull/7")
        method, url, kwargs = _call(session)
        assert method == "POST"
        assert url == f"{API}/pulls"
        assert kwargs["json"] == {
            "title": "[Auto3D] Add x", "head": "auto3d/upload/x", "base": "main", "body": "hi",
        }
