"""
github_client.py — Cliente de la API REST de GitHub para Auto3D.

Wrapper delgado sobre requests.Session que habla con los endpoints
de contenido, refs, árboles y pull requests de un único repositorio.
Cada método es un request/response síncrono; el cliente no reintenta
(el caller decide) y normaliza los fallos a la taxonomía de errors.py.

Endpoints usados:
    GET    /repos/{repo}                      → get_repository
    GET    /repos/{repo}/git/ref/heads/{b}    → get_branch_head_commit
    POST   /repos/{repo}/git/refs             → create_branch
    PUT    /repos/{repo}/contents/{path}      → write_file
    GET    /repos/{repo}/contents/{path}      → read_file_metadata
    DELETE /repos/{repo}/contents/{path}      → delete_file
    GET    /repos/{repo}/git/trees/{b}        → list_tree
    POST   /repos/{repo}/pulls                → open_pull_request

Política de escritura: write_file NUNCA busca el SHA por su cuenta.
Si el path ya existe y no se pasa previous_blob_sha, GitHub responde
422 y lo reportamos como WriteConflict (reject-on-conflict).

Uso:
    from auto3d.publishing.github_client import GitHubClient
    client = GitHubClient("owner/repo", token="ghp_...")
    head = client.get_branch_head_commit("main")
    result = client.write_file("models/a/b/1-x.glb", data, "Upload", "main")
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Callable, Iterator
from urllib.parse import quote

import requests

from auto3d.config import AppConfig
from auto3d.errors import (
    AuthError,
    BranchConflict,
    NotFound,
    RefNotFound,
    RemoteApiError,
    SizeLimitExceeded,
    WriteConflict,
    truncate,
)
from auto3d.utils.logger import get_logger

logger = get_logger("auto3d.github")

API_VERSION = "2022-11-28"
USER_AGENT = "auto3d-uploader"
_WRITE_METHODS = frozenset({"PUT", "POST", "PATCH", "DELETE"})


@dataclass(frozen=True)
class WriteResult:
    """Resultado de un PUT de contenido."""
    path: str
    blob_sha: str
    commit_sha: str


@dataclass(frozen=True)
class FileMetadata:
    path: str
    blob_sha: str
    size: int


@dataclass(frozen=True)
class TreeEntry:
    path: str
    size: int
    blob_sha: str


@dataclass(frozen=True)
class PullRequest:
    number: int
    url: str


def encode_path(path: str) -> str:
    """Codifica cada segmento del path sin tocar los slashes."""
    return "/".join(quote(segment, safe="") for segment in path.strip("/").split("/"))


def _remote_message(response: requests.Response) -> str:
    """Extrae `message` del JSON de error de GitHub, o el texto crudo."""
    try:
        data = response.json()
    except ValueError:
        return truncate(response.text or response.reason or "")
    if isinstance(data, dict) and data.get("message"):
        return truncate(str(data["message"]))
    return truncate(response.text or "")


class TreeListing:
    """
    Secuencia perezosa de blobs del árbol de un branch.

    No hace ningún request hasta que se itera, y cada iteración
    vuelve a pedir el árbol, así que se puede recorrer varias veces.
    """

    def __init__(self, client: "GitHubClient", branch: str, recursive: bool = True):
        self._client = client
        self.branch = branch
        self.recursive = recursive

    def __iter__(self) -> Iterator[TreeEntry]:
        params = {"recursive": "1"} if self.recursive else None
        try:
            data = self._client._request_json(
                "GET",
                f"git/trees/{quote(self.branch, safe='')}",
                params=params,
                not_found=RefNotFound,
            )
        except RemoteApiError as e:
            # Repo recién creado, sin ningún commit
            if e.remote_status == 409 and "empty" in e.message.lower():
                logger.info(f"Repository is empty; nothing listed on {self.branch}")
                return
            raise
        if data.get("truncated"):
            logger.warning(
                f"Tree of {self.branch} is truncated; listing is partial"
            )
        for item in data.get("tree", []):
            if item.get("type") != "blob":
                continue
            yield TreeEntry(
                path=item["path"],
                size=int(item.get("size", 0)),
                blob_sha=item["sha"],
            )


class GitHubClient:
    """
    Cliente autenticado contra un repositorio de GitHub.

    Args:
        repo: Repo en formato "owner/name".
        token: Token estático (PAT o fine-grained).
        token_provider: Callable que devuelve un token fresco
            (por ejemplo GitHubApp.get_token). Tiene prioridad sobre token.
        api_base: Base de la API.
        timeout: Timeout por request en segundos.
        session: requests.Session a reutilizar (tests, pooling).
    """

    def __init__(
        self,
        repo: str,
        token: str = "",
        token_provider: Callable[[], str] | None = None,
        api_base: str = "https://api.github.com",
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        self.repo = repo
        self._token = token
        self._token_provider = token_provider
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, config: AppConfig) -> "GitHubClient":
        """
        Construye el cliente a partir del AppConfig.

        Raises:
            ConfigurationError: Si falta GH_TOKEN/GH_REPO o la key de la App.
        """
        config.require_remote()

        token_provider = None
        if not config.token and config.uses_github_app:
            # Import local: pyjwt solo hace falta con GitHub App
            from auto3d.publishing.github_app import GitHubApp

            app = GitHubApp(
                config.github_app_id,
                config.github_app_private_key_path,
                config.github_app_installation_id,
                api_base=config.api.github_api,
                timeout=config.api.request_timeout,
            )
            token_provider = app.get_token

        return cls(
            config.repo,
            token=config.token,
            token_provider=token_provider,
            api_base=config.api.github_api,
            timeout=config.api.request_timeout,
        )

    # ============================================================
    # Transporte
    # ============================================================

    def _headers(self) -> dict[str, str]:
        token = self._token_provider() if self._token_provider else self._token
        if not token:
            raise AuthError("No GitHub credential available")
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": USER_AGENT,
        }

    def _url(self, endpoint: str) -> str:
        if endpoint:
            return f"{self._api_base}/repos/{self.repo}/{endpoint}"
        return f"{self._api_base}/repos/{self.repo}"

    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json: dict | None = None,
        params: dict | None = None,
        not_found: type[NotFound] = NotFound,
        conflict: type[WriteConflict] = WriteConflict,
    ) -> requests.Response:
        """
        Ejecuta un request y traduce los errores.

        Args:
            not_found: Clase a lanzar en 404.
            conflict: Clase a lanzar en 409/422 de conflicto.
        """
        url = self._url(endpoint)
        try:
            response = self._session.request(
                method,
                url,
                headers=self._headers(),
                json=json,
                params=params,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise RemoteApiError(0, f"{method} {endpoint or '/'} failed: {e}") from e

        logger.debug(f"{method} {endpoint or '/'} -> {response.status_code}")

        if response.ok:
            return response

        status = response.status_code
        mensaje = _remote_message(response)

        if status == 401:
            raise AuthError(f"GitHub rejected the credential: {mensaje}")
        if status == 403:
            if response.headers.get("X-RateLimit-Remaining") == "0":
                raise RemoteApiError(status, f"rate limit exceeded: {mensaje}")
            raise AuthError(f"GitHub denied access: {mensaje}")
        if status == 404:
            raise not_found(f"{endpoint or self.repo}: {mensaje or 'Not Found'}")
        # En lecturas un 409 no es conflicto de escritura ("Git Repository is empty.")
        if status == 409 and method in _WRITE_METHODS:
            raise conflict(mensaje or "Conflict")
        if status == 413 or "too large" in mensaje.lower():
            raise SizeLimitExceeded(mensaje or "Payload too large")
        if status == 422 and _is_conflict_message(mensaje):
            raise conflict(mensaje)
        raise RemoteApiError(status, mensaje or response.reason or "")

    def _request_json(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        response = self._request(method, endpoint, **kwargs)
        if not response.content:
            return {}
        return response.json()

    # ============================================================
    # Repositorio y refs
    # ============================================================

    def get_repository(self) -> dict[str, Any]:
        """Metadata del repo (incluye `permissions` del token)."""
        return self._request_json("GET", "")

    def get_branch_head_commit(self, branch: str) -> str:
        """
        SHA del commit en la punta del branch.

        Raises:
            RefNotFound: Si el branch no existe.
        """
        data = self._request_json(
            "GET", f"git/ref/heads/{encode_path(branch)}", not_found=RefNotFound
        )
        return data["object"]["sha"]

    def create_branch(self, from_commit: str, name: str) -> None:
        """
        Crea refs/heads/{name} apuntando a from_commit.

        Raises:
            BranchConflict: Si el branch ya existe.
        """
        self._request(
            "POST",
            "git/refs",
            json={"ref": f"refs/heads/{name}", "sha": from_commit},
            conflict=BranchConflict,
        )
        logger.info(f"Branch created: {name} @ {from_commit[:7]}")

    # ============================================================
    # Contenido
    # ============================================================

    def write_file(
        self,
        path: str,
        content: bytes,
        message: str,
        branch: str,
        previous_blob_sha: str | None = None,
    ) -> WriteResult:
        """
        Crea o reemplaza un archivo en un único commit.

        Sin previous_blob_sha solo puede crear: si el path existe,
        GitHub lo rechaza y se lanza WriteConflict.

        Raises:
            WriteConflict: SHA obsoleto o path existente.
            AuthError: Credencial inválida o sin permiso.
            SizeLimitExceeded: GitHub rechazó el tamaño.
        """
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": branch,
        }
        if previous_blob_sha:
            body["sha"] = previous_blob_sha

        data = self._request_json("PUT", f"contents/{encode_path(path)}", json=body)
        result = WriteResult(
            path=data.get("content", {}).get("path", path),
            blob_sha=data["content"]["sha"],
            commit_sha=data["commit"]["sha"],
        )
        logger.success(f"Committed {result.path} on {branch} ({result.commit_sha[:7]})")
        return result

    def read_file_metadata(self, path: str, branch: str) -> FileMetadata:
        """
        SHA y tamaño de un archivo en un branch.

        Raises:
            NotFound: Si no existe (o es un directorio).
        """
        data = self._request_json(
            "GET", f"contents/{encode_path(path)}", params={"ref": branch}
        )
        if not isinstance(data, dict) or data.get("type") != "file":
            raise NotFound(f"{path} is not a file on {branch}")
        return FileMetadata(
            path=data.get("path", path),
            blob_sha=data["sha"],
            size=int(data.get("size", 0)),
        )

    def delete_file(
        self,
        path: str,
        message: str,
        branch: str,
        blob_sha: str,
    ) -> str:
        """
        Borra un archivo y devuelve el SHA del commit.

        Raises:
            WriteConflict: Si blob_sha ya no es el actual.
        """
        data = self._request_json(
            "DELETE",
            f"contents/{encode_path(path)}",
            json={"message": message, "sha": blob_sha, "branch": branch},
        )
        commit_sha = data["commit"]["sha"]
        logger.success(f"Deleted {path} on {branch} ({commit_sha[:7]})")
        return commit_sha

    def list_tree(self, branch: str, recursive: bool = True) -> TreeListing:
        """Blobs del branch; el request se hace al iterar."""
        return TreeListing(self, branch, recursive=recursive)

    # ============================================================
    # Pull requests
    # ============================================================

    def open_pull_request(
        self,
        head: str,
        base: str,
        title: str,
        body: str = "",
    ) -> PullRequest:
        """Abre un PR head → base y devuelve número y URL."""
        data = self._request_json(
            "POST",
            "pulls",
            json={"title": title, "head": head, "base": base, "body": body},
        )
        pr = PullRequest(number=int(data["number"]), url=data["html_url"])
        logger.success(f"PR opened: #{pr.number} {head} -> {base}")
        return pr


def _is_conflict_message(mensaje: str) -> bool:
    """
    Los 422 de GitHub que significan conflicto de estado.

    - PUT sin sha sobre un path existente: '"sha" wasn't supplied.'
    - POST git/refs duplicado: 'Reference already exists'
    - sha que no coincide: 'does not match'
    """
    bajo = mensaje.lower()
    return (
        "sha" in bajo and "supplied" in bajo
        or "already exists" in bajo
        or "does not match" in bajo
    )
