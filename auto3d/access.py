"""
access.py — Quién puede publicar, listar y borrar.

La identidad viene de fuera (OAuth de GitHub en el proxy delante de
la API, o --login en la CLI). Aquí solo se decide si ese login puede
hacer la operación pedida.

Reglas:
    1. PING siempre permitido, con o sin login
    2. Sin login → denegado
    3. Allow-list vacía → cualquier login autenticado
    4. Allow-list con valores → el login debe estar (sin distinguir
       mayúsculas, igual que GitHub)

La verificación ocurre antes de cualquier request a GitHub.

Uso:
    from auto3d.access import AccessPolicy, Operation, Principal
    policy = AccessPolicy(config.allowed_logins)
    policy.require(Principal("octocat"), Operation.PUBLISH)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from auto3d.errors import Forbidden
from auto3d.utils.logger import get_logger

logger = get_logger("auto3d.access")


class Operation(Enum):
    PUBLISH = "publish"
    LIST = "list"
    REMOVE = "remove"
    PING = "ping"


@dataclass(frozen=True)
class Principal:
    """Login autenticado por el proveedor externo, o None."""
    login: str | None = None

    @property
    def authenticated(self) -> bool:
        return bool(self.login and self.login.strip())


ANONYMOUS = Principal()


@dataclass(frozen=True)
class PolicyResult:
    allowed: bool
    reason: str


class AccessPolicy:
    """
    Gate de autorización.

    Args:
        allowed_logins: Logins permitidos. Vacío = cualquiera autenticado.
    """

    def __init__(self, allowed_logins: tuple[str, ...] | list[str] = ()):
        self._allowed = frozenset(
            login.strip().lower() for login in allowed_logins if login.strip()
        )

    @property
    def restricted(self) -> bool:
        return bool(self._allowed)

    def check(self, principal: Principal, operation: Operation) -> PolicyResult:
        if operation is Operation.PING:
            return PolicyResult(True, "ping is public")

        if not principal.authenticated:
            return PolicyResult(False, "authentication required")

        if not self._allowed:
            return PolicyResult(True, "any authenticated user")

        if principal.login.strip().lower() in self._allowed:  # type: ignore[union-attr]
            return PolicyResult(True, "login in allow-list")

        return PolicyResult(False, f"{principal.login} is not in the allow-list")

    def is_allowed(self, principal: Principal, operation: Operation) -> bool:
        return self.check(principal, operation).allowed

    def require(self, principal: Principal, operation: Operation) -> None:
        """
        Raises:
            Forbidden: Si la operación no está permitida.
        """
        result = self.check(principal, operation)
        if not result.allowed:
            logger.warning(f"Denied {operation.value}: {result.reason}")
            raise Forbidden(f"{operation.value} denied: {result.reason}")
