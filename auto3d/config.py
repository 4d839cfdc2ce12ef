"""
config.py — Carga la configuración de Auto3D.

Se encarga de:
1. Cargar config.yaml (límites, raíces, CDN, prefijos de branch)
2. Cargar .env (secretos: GH_TOKEN, credenciales de la GitHub App)
3. Resolver ${VARIABLES} dentro de config.yaml
4. Construir un AppConfig inmutable una sola vez al arrancar

El AppConfig se pasa explícitamente a cada componente (cliente,
workflow, catálogo, policy). No hay constantes globales derivadas
del entorno.

Uso:
    from auto3d.config import load_config
    config = load_config()
    config.require_remote()    # ConfigurationError si falta GH_TOKEN/GH_REPO
    print(config.repo, config.branch)
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from auto3d.errors import ConfigurationError

MiB = 1024 * 1024

_REPO_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
_TRUE_VALUES = {"1", "true", "yes", "on"}


# ============================================================
# Dataclasses de configuración
# ============================================================
# Una dataclass por sección de config.yaml. Todas congeladas.
# ============================================================

@dataclass(frozen=True)
class StorageConfig:
    """Raíces por categoría, extensiones y límites de tamaño."""
    model_root: str = "models"
    image_root: str = "images"
    model_extensions: tuple[str, ...] = (".glb",)
    image_extensions: tuple[str, ...] = (".png", ".jpg", ".jpeg", ".webp")
    # GitHub corta en ~100 MB; dejamos margen para el base64
    max_model_bytes: int = 75 * MiB
    max_image_bytes: int = 10 * MiB


@dataclass(frozen=True)
class CdnConfig:
    """Cómo se construyen las URLs públicas."""
    host: str = "cdn.jsdelivr.net"
    # "branch" o "commit"
    pin: str = "branch"


@dataclass(frozen=True)
class ReviewConfig:
    """Flujo de pull requests."""
    branch_prefix: str = "auto3d"
    pr_title_prefix: str = "[Auto3D]"
    pr_body: str = "Asset submitted through the Auto3D uploader."


@dataclass(frozen=True)
class ListingConfig:
    page_size: int = 200


@dataclass(frozen=True)
class ApiConfig:
    """Servidor HTTP y acceso a GitHub."""
    github_api: str = "https://api.github.com"
    # Header que pone el proxy OAuth de delante (oauth2-proxy y similares)
    identity_header: str = "X-Forwarded-User"
    request_timeout: float = 30.0
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass(frozen=True)
class AppConfig:
    """Configuración completa de la aplicación."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    cdn: CdnConfig = field(default_factory=CdnConfig)
    review: ReviewConfig = field(default_factory=ReviewConfig)
    listing: ListingConfig = field(default_factory=ListingConfig)
    api: ApiConfig = field(default_factory=ApiConfig)

    # Valores del .env (no están en config.yaml)
    token: str = ""
    repo: str = ""
    branch: str = "main"
    allowed_logins: tuple[str, ...] = ()
    require_review: bool = False
    github_app_id: str = ""
    github_app_private_key_path: str = ""
    github_app_installation_id: str = ""

    @property
    def uses_github_app(self) -> bool:
        return bool(
            self.github_app_id
            and self.github_app_private_key_path
            and self.github_app_installation_id
        )

    @property
    def has_credentials(self) -> bool:
        return bool(self.token) or self.uses_github_app

    def missing_settings(self) -> list[str]:
        """Nombres de las variables que faltan para hablar con GitHub."""
        faltantes = []
        if not self.has_credentials:
            faltantes.append("GH_TOKEN")
        if not self.repo:
            faltantes.append("GH_REPO")
        if not self.branch:
            faltantes.append("GH_BRANCH")
        return faltantes

    def require_remote(self) -> None:
        """
        Verifica que haya credencial, repo y branch.

        Raises:
            ConfigurationError: Si falta algo o GH_REPO no es "owner/name".
        """
        faltantes = self.missing_settings()
        if faltantes:
            raise ConfigurationError(
                f"Server not configured: missing {', '.join(faltantes)}"
            )
        if not _REPO_PATTERN.match(self.repo):
            raise ConfigurationError(
                f"GH_REPO must look like 'owner/name', got {self.repo!r}"
            )


# ============================================================
# Funciones de carga
# ============================================================

def _resolve_env_vars(value: str) -> str:
    """
    Resuelve ${VARIABLE} con el valor del entorno.

    Si la variable no existe se deja el placeholder tal cual.
    """
    patron = re.compile(r"\$\{(\w+)\}")

    def reemplazar(match: re.Match) -> str:
        return os.environ.get(match.group(1), match.group(0))

    return patron.sub(reemplazar, value)


def _resolve_env_recursive(data: Any) -> Any:
    """Aplica _resolve_env_vars a todo un dict/list del YAML."""
    if isinstance(data, str):
        return _resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_recursive(item) for item in data]
    return data


def _dict_to_dataclass(data: dict, cls: type) -> Any:
    """
    Convierte un diccionario a una dataclass, ignorando keys desconocidas.

    Las listas del YAML se convierten a tuplas para que la
    dataclass congelada siga siendo inmutable.
    """
    campos_validos = {f.name for f in fields(cls)}
    datos_filtrados = {
        k: tuple(v) if isinstance(v, list) else v
        for k, v in (data or {}).items()
        if k in campos_validos
    }
    return cls(**datos_filtrados)


def _parse_logins(raw: str) -> tuple[str, ...]:
    """"alice, Bob,,carol" → ("alice", "Bob", "carol")."""
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in _TRUE_VALUES


def _find_config_dir() -> Path:
    """Busca config.yaml hacia arriba desde el directorio actual."""
    current = Path.cwd()
    for parent in [current] + list(current.parents):
        if (parent / "config.yaml").exists():
            return parent
    return current


def load_config(config_path: Path | None = None) -> AppConfig:
    """
    Carga la configuración completa de Auto3D.

    Pasos:
    1. Carga .env para tener las variables de entorno disponibles
    2. Lee config.yaml (si no existe, valores por defecto)
    3. Resuelve ${VARIABLES} en los valores del YAML
    4. Convierte cada sección a su dataclass
    5. Agrega los valores del entorno

    Args:
        config_path: Ruta al config.yaml. Si es None, busca automáticamente.

    Returns:
        AppConfig inmutable.
    """
    proyecto_dir = _find_config_dir()
    env_path = proyecto_dir / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    if config_path is None:
        config_path = proyecto_dir / "config.yaml"

    raw_config: dict = {}
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f) or {}

    config_resuelto = _resolve_env_recursive(raw_config)

    app_config = AppConfig(
        storage=_dict_to_dataclass(config_resuelto.get("storage", {}), StorageConfig),
        cdn=_dict_to_dataclass(config_resuelto.get("cdn", {}), CdnConfig),
        review=_dict_to_dataclass(config_resuelto.get("review", {}), ReviewConfig),
        listing=_dict_to_dataclass(config_resuelto.get("listing", {}), ListingConfig),
        api=_dict_to_dataclass(config_resuelto.get("api", {}), ApiConfig),
    )

    return replace(
        app_config,
        token=os.environ.get("GH_TOKEN", "").strip(),
        repo=os.environ.get("GH_REPO", "").strip(),
        branch=os.environ.get("GH_BRANCH", "main").strip(),
        allowed_logins=_parse_logins(os.environ.get("AUTO3D_ALLOWED_LOGINS", "")),
        require_review=_parse_bool(os.environ.get("AUTO3D_REQUIRE_REVIEW", "")),
        github_app_id=os.environ.get("GITHUB_APP_ID", "").strip(),
        github_app_private_key_path=os.environ.get(
            "GITHUB_APP_PRIVATE_KEY_PATH", ""
        ).strip(),
        github_app_installation_id=os.environ.get(
            "GITHUB_APP_INSTALLATION_ID", ""
        ).strip(),
    )
