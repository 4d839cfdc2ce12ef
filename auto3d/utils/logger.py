"""
logger.py — Logging para Auto3D usando Rich + archivo.

Dual output:
- Rich console: colores para uso interactivo (CLI, uvicorn en foreground)
- Archivo rotativo: logs/auto3d.log para el servidor y debugging post-mortem

Nunca se loguean tokens ni headers de autorización; los mensajes
solo llevan rutas, branches y SHAs.

Uso:
    from auto3d.utils.logger import get_logger, console
    logger = get_logger("auto3d.publishing")
    logger.info("Subiendo asset...")
    logger.success("Asset publicado")
    logger.error("GitHub rechazó el commit")
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.theme import Theme

# En pytest no tocamos disco ni la consola real
_in_pytest = "pytest" in sys.modules or "PYTEST_CURRENT_TEST" in os.environ

auto3d_theme = Theme({
    "info": "cyan",
    "success": "bold green",
    "warning": "bold yellow",
    "error": "bold red",
    "step": "bold magenta",
})

# Consola global — se usa en todo el proyecto (stderr para no ensuciar --json)
console = Console(theme=auto3d_theme, stderr=True)

LOG_DIR_ENV = "AUTO3D_LOG_DIR"

# ================================================================
# File logging setup
# ================================================================

_file_logger: logging.Logger | None = None


def _setup_file_logger() -> logging.Logger:
    """Configura el logger de archivo con rotacion."""
    global _file_logger
    if _file_logger is not None:
        return _file_logger

    if _in_pytest:
        _file_logger = logging.getLogger("auto3d.null")
        _file_logger.addHandler(logging.NullHandler())
        return _file_logger

    log_dir = Path(os.environ.get(LOG_DIR_ENV, "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)

    _file_logger = logging.getLogger("auto3d.file")
    _file_logger.setLevel(logging.DEBUG)

    # Evitar handlers duplicados
    if not _file_logger.handlers:
        handler = RotatingFileHandler(
            log_dir / "auto3d.log",
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=5,
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        _file_logger.addHandler(handler)

    return _file_logger


class Auto3DLogger:
    """
    Logger que escribe a la consola Rich y al archivo rotativo.

    Cada módulo crea su propio logger con un nombre para
    identificar de dónde viene cada mensaje.

    Args:
        name: Nombre del módulo (ej: "auto3d.workflow")
    """

    def __init__(self, name: str):
        self._name = name
        self._file = _setup_file_logger()

    @property
    def name(self) -> str:
        return self._name

    def debug(self, message: str) -> None:
        """Solo al archivo; la consola queda limpia."""
        self._file.debug(f"[{self._name}] {message}")

    def info(self, message: str) -> None:
        """Mensaje informativo (cyan)."""
        console.print(f"[info]i  {message}[/info]", highlight=False)
        self._file.info(f"[{self._name}] {message}")

    def success(self, message: str) -> None:
        """Mensaje de éxito (verde)."""
        console.print(f"[success][OK] {message}[/success]", highlight=False)
        self._file.info(f"[{self._name}] OK: {message}")

    def warning(self, message: str) -> None:
        """Mensaje de advertencia (amarillo)."""
        console.print(f"[warning][!] {message}[/warning]", highlight=False)
        self._file.warning(f"[{self._name}] {message}")

    def error(self, message: str) -> None:
        """Mensaje de error (rojo)."""
        console.print(f"[error][X] {message}[/error]", highlight=False)
        self._file.error(f"[{self._name}] {message}")

    def step(self, number: int, total: int, message: str) -> None:
        """Paso dentro de un flujo de varios requests (magenta)."""
        console.print(f"[step]  [{number}/{total}] {message}[/step]", highlight=False)
        self._file.info(f"[{self._name}] [{number}/{total}] {message}")


def get_logger(name: str = "auto3d") -> Auto3DLogger:
    """
    Obtiene un logger para el módulo especificado.

    Ejemplo:
        logger = get_logger("auto3d.catalog")
        logger.info("Listando models/...")
    """
    return Auto3DLogger(name)
