"""
github_app.py — Credenciales de GitHub App para el cliente de repositorio.

Alternativa a GH_TOKEN: si el servidor tiene configurados
GITHUB_APP_ID, GITHUB_APP_PRIVATE_KEY_PATH y GITHUB_APP_INSTALLATION_ID,
los commits y PRs se hacen como la App ("auto3d[bot]") con permisos
limitados al repo del catálogo.

Flujo (JWT → Installation Token):
    1. Leer la private key (.pem), o recibirla directo como string en CI
    2. Firmar un JWT RS256 válido 10 minutos
    3. Intercambiarlo por un Installation Access Token (válido 1 hora)
    4. Cachear el token y renovarlo 5 minutos antes de que expire

Permisos que necesita la App:
    - contents: write
    - pull_requests: write
    - metadata: read

Uso:
    from auto3d.publishing.github_app import GitHubApp
    app = GitHubApp(app_id, private_key_path, installation_id)
    client = GitHubClient("owner/repo", token_provider=app.get_token)
"""

from __future__ import annotations

import time
from pathlib import Path

import jwt
import requests

from auto3d.errors import AuthError, ConfigurationError, RemoteApiError
from auto3d.utils.logger import get_logger

logger = get_logger("auto3d.github_app")

# Renovar 5 min antes de la hora de vida del token
TOKEN_TTL_SECONDS = 55 * 60


class GitHubApp:
    """
    Provee Installation Access Tokens cacheados.

    Args:
        app_id: ID numérico de la GitHub App
        private_key_path: Ruta al .pem, o el PEM completo como string
        installation_id: ID de la instalación en el owner del repo
        api_base: Base de la API de GitHub
        timeout: Timeout del intercambio de tokens en segundos
    """

    def __init__(
        self,
        app_id: str,
        private_key_path: str,
        installation_id: str,
        api_base: str = "https://api.github.com",
        timeout: float = 30.0,
    ):
        self._app_id = app_id
        self._private_key_path = private_key_path
        self._installation_id = installation_id
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout

        self._token: str | None = None
        self._token_expires_at: float = 0

        self._private_key = self._load_private_key()

    def _load_private_key(self) -> str:
        """
        Carga la private key.

        En CI la key suele venir como variable de entorno con el PEM
        completo en vez de una ruta.

        Raises:
            ConfigurationError: Si no hay archivo ni PEM.
        """
        if self._private_key_path.lstrip().startswith("-----BEGIN"):
            return self._private_key_path

        ruta = Path(self._private_key_path)
        if not ruta.is_file():
            raise ConfigurationError(
                "GitHub App private key not found "
                "(check GITHUB_APP_PRIVATE_KEY_PATH)"
            )
        return ruta.read_text(encoding="utf-8")

    def _generate_jwt(self) -> str:
        """
        JWT firmado con RS256.

        iat va 60s en el pasado por si el reloj del servidor
        está un poco adelantado respecto al de GitHub.
        """
        ahora = int(time.time())
        payload = {
            "iss": self._app_id,
            "iat": ahora - 60,
            "exp": ahora + (10 * 60),
        }
        return jwt.encode(payload, self._private_key, algorithm="RS256")

    def get_token(self) -> str:
        """
        Devuelve un Installation Access Token válido.

        Raises:
            AuthError: Si GitHub rechaza el JWT (401/403).
            RemoteApiError: Cualquier otro fallo del intercambio.
        """
        if self._token and time.time() < self._token_expires_at:
            return self._token

        url = (
            f"{self._api_base}/app/installations/"
            f"{self._installation_id}/access_tokens"
        )
        headers = {
            "Authorization": f"Bearer {self._generate_jwt()}",
            "Accept": "application/vnd.github+json",
        }

        try:
            response = requests.post(url, headers=headers, timeout=self._timeout)
        except requests.RequestException as e:
            raise RemoteApiError(0, f"installation token request failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthError("GitHub App credentials rejected")
        if not response.ok:
            raise RemoteApiError(response.status_code, response.text)

        self._token = response.json()["token"]
        self._token_expires_at = time.time() + TOKEN_TTL_SECONDS

        logger.success("GitHub App installation token obtained")
        return self._token  # type: ignore[return-value]

    def is_configured(self) -> bool:
        return bool(self._app_id and self._installation_id and self._private_key)
