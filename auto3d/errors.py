"""
errors.py — Taxonomía de errores de Auto3D.

Cada error lleva un `tag` estable (lo que ve el cliente en el campo
"error" del JSON) y el status HTTP con el que lo reporta la API.
Los componentes lanzan estas excepciones y el borde (api.py / cli.py)
las convierte en respuestas estructuradas. Ningún error se degrada
a éxito.

Jerarquía:
    Auto3DError
    ├── ConfigurationError      500  configuración del servidor incompleta
    ├── ValidationError         400  input mal formado
    │   ├── UnsupportedFormat   400  extensión no permitida para la categoría
    │   └── PayloadTooLarge     413  excede el límite de la categoría
    ├── AuthError               401  GitHub rechazó la credencial
    ├── Forbidden               403  el caller no está permitido
    ├── NotFound                404  path o branch inexistente
    │   └── RefNotFound         404
    ├── WriteConflict           409  SHA obsoleto o path ya existente
    │   └── BranchConflict      409
    ├── SizeLimitExceeded       413  GitHub rechazó el tamaño del payload
    └── RemoteApiError          500  cualquier otro non-2xx de GitHub
"""

from __future__ import annotations

# Límite de caracteres del body remoto que se incluye en un mensaje
MAX_REMOTE_MESSAGE = 500


def truncate(text: str, limit: int = MAX_REMOTE_MESSAGE) -> str:
    """Recorta diagnósticos remotos largos."""
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "…"


class Auto3DError(Exception):
    """Base de todos los errores reportables."""

    tag = "error"
    status_code = 500
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.tag, "message": self.message}


class ConfigurationError(Auto3DError):
    tag = "configuration_error"
    status_code = 500


class ValidationError(Auto3DError):
    tag = "validation_error"
    status_code = 400


class UnsupportedFormat(ValidationError):
    tag = "unsupported_format"


class PayloadTooLarge(ValidationError):
    tag = "payload_too_large"
    status_code = 413

    def __init__(self, observed: int, limit: int, label: str = "payload"):
        super().__init__(
            f"{label} is too large: {observed} bytes (limit {limit} bytes)"
        )
        self.observed = observed
        self.limit = limit


class AuthError(Auto3DError):
    tag = "auth_error"
    status_code = 401


class Forbidden(Auto3DError):
    tag = "forbidden"
    status_code = 403


class NotFound(Auto3DError):
    tag = "not_found"
    status_code = 404


class RefNotFound(NotFound):
    tag = "ref_not_found"


class WriteConflict(Auto3DError):
    """El caller puede reintentar tras releer el estado actual."""

    tag = "write_conflict"
    status_code = 409
    retryable = True


class BranchConflict(WriteConflict):
    tag = "branch_conflict"


class SizeLimitExceeded(Auto3DError):
    tag = "size_limit_exceeded"
    status_code = 413


class RemoteApiError(Auto3DError):
    """Non-2xx de GitHub; `remote_status` es 0 si ni siquiera hubo respuesta."""

    tag = "remote_api_error"
    status_code = 500

    def __init__(self, remote_status: int, message: str):
        self.remote_status = remote_status
        super().__init__(f"GitHub {remote_status}: {truncate(message)}")
