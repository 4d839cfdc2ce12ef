"""
health.py — Ping: ¿la credencial llega al repo y puede escribir?

Solo devuelve booleanos. Nunca incluye el token ni el mensaje
crudo de GitHub (podría contener datos de la cuenta).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from auto3d.config import AppConfig
from auto3d.errors import AuthError, NotFound, RemoteApiError
from auto3d.publishing.github_client import GitHubClient
from auto3d.utils.logger import get_logger

logger = get_logger("auto3d.health")


@dataclass(frozen=True)
class PingReport:
    configured: bool
    credentials_valid: bool
    repo_reachable: bool
    can_write: bool

    @property
    def ok(self) -> bool:
        return all(asdict(self).values())

    def to_dict(self) -> dict[str, bool]:
        data = asdict(self)
        data["ok"] = self.ok
        return data


def ping(config: AppConfig, client: GitHubClient | None = None) -> PingReport:
    """
    Verifica configuración, credencial y permiso de escritura.

    Raises:
        ConfigurationError: Si falta GH_TOKEN/GH_REPO.
    """
    config.require_remote()
    client = client or GitHubClient.from_config(config)

    try:
        repo = client.get_repository()
    except AuthError:
        logger.warning("Ping: credential rejected by GitHub")
        return PingReport(True, False, False, False)
    except NotFound:
        # GitHub responde 404 también a repos privados sin acceso
        logger.warning(f"Ping: repository {config.repo} not reachable")
        return PingReport(True, True, False, False)
    except RemoteApiError as e:
        logger.warning(f"Ping: GitHub unavailable ({e.remote_status})")
        return PingReport(True, False, False, False)

    permisos = repo.get("permissions") or {}
    can_write = bool(permisos.get("push") or permisos.get("admin"))
    if not can_write:
        logger.warning(f"Ping: no write permission on {config.repo}")
    return PingReport(True, True, True, can_write)
