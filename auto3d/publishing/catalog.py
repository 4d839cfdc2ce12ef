"""
catalog.py — Listar y retirar assets publicados.

list_assets:
    Lee el árbol del branch destino, filtra blobs bajo la raíz de la
    categoría (y un prefijo opcional), ordena por path descendente
    (≈ más recientes primero por el timestamp en el nombre) y corta
    en page_size. No hay más paginación.

remove:
    Solo paths bajo models/ o images/. Lee el SHA actual y borra con
    commit directo o con branch + commit + PR, igual que workflow.py.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from auto3d.config import AppConfig
from auto3d.errors import Auto3DError, Forbidden
from auto3d.publishing.github_client import GitHubClient
from auto3d.publishing.placement import (
    Category,
    category_roots,
    cdn_url,
    normalize_prefix,
    review_branch_name,
)
from auto3d.publishing.workflow import PublishMode
from auto3d.utils.logger import get_logger

logger = get_logger("auto3d.catalog")


@dataclass(frozen=True)
class CatalogItem:
    path: str
    size: int
    url: str

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "size": self.size, "url": self.url}


@dataclass
class CatalogPage:
    items: list[CatalogItem] = field(default_factory=list)
    repo: str = ""
    branch: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "repoRef": self.repo,
            "branch": self.branch,
        }


@dataclass
class RemovalResult:
    deleted: str
    commit_sha: str
    mode: PublishMode
    pull_request_url: str | None = None
    review_branch: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"deleted": self.deleted}
        if self.pull_request_url:
            data["pullRequestUrl"] = self.pull_request_url
        return data


def check_removable(path: str, roots: tuple[str, ...]) -> str:
    """
    Verifica que el path esté dentro de una raíz permitida.

    Rechaza paths absolutos, segmentos vacíos, "." y "..", y la
    raíz sola. Devuelve el path sin espacios alrededor.

    Raises:
        Forbidden: Si el path queda fuera de las raíces.
    """
    limpio = (path or "").strip()
    segmentos = limpio.split("/")
    if (
        len(segmentos) < 2
        or segmentos[0] not in roots
        or any(s in ("", ".", "..") for s in segmentos)
    ):
        raise Forbidden(
            f"Refusing to delete {path!r}: only files under "
            f"{', '.join(r + '/' for r in roots)} can be removed"
        )
    return limpio


class Catalog:
    """
    Listado y borrado sobre el branch destino.

    Args:
        client: Cliente del repositorio.
        config: Configuración de la app.
    """

    def __init__(self, client: GitHubClient, config: AppConfig):
        self._client = client
        self._config = config

    @property
    def roots(self) -> tuple[str, ...]:
        return category_roots(self._config.storage)

    def list_assets(self, category: Category, prefix: str | None = None) -> CatalogPage:
        """Assets de una categoría, más recientes primero."""
        branch = self._config.branch
        base = category.root(self._config.storage) + "/"
        namespace = normalize_prefix(prefix)
        if namespace:
            # "kia" no debe traer "kia-motors/..."
            base += namespace + "/"

        paths = sorted(
            (entry for entry in self._client.list_tree(branch) if entry.path.startswith(base)),
            key=lambda entry: entry.path,
            reverse=True,
        )
        page = paths[: self._config.listing.page_size]

        logger.info(f"Listed {len(page)} of {len(paths)} assets under {base}")
        return CatalogPage(
            items=[
                CatalogItem(
                    path=entry.path,
                    size=entry.size,
                    url=cdn_url(self._client.repo, branch, entry.path, self._config.cdn.host),
                )
                for entry in page
            ],
            repo=self._client.repo,
            branch=branch,
        )

    def remove(self, path: str, mode: PublishMode = PublishMode.DIRECT) -> RemovalResult:
        """
        Retira un asset publicado.

        Raises:
            Forbidden: Path fuera de models/ o images/ (sin requests).
            NotFound: El path no existe en el branch destino.
            WriteConflict: El archivo cambió entre la lectura y el borrado.
        """
        path = check_removable(path, self.roots)
        target = self._config.branch
        message = f"Remove {path}"

        metadata = self._client.read_file_metadata(path, target)

        if mode is PublishMode.DIRECT:
            commit_sha = self._client.delete_file(path, message, target, metadata.blob_sha)
            return RemovalResult(deleted=path, commit_sha=commit_sha, mode=mode)

        # Un mismo path se puede pedir borrar más de una vez
        review = review_branch_name(
            self._config.review.branch_prefix, "remove", path, timestamp=int(time.time())
        )
        head = self._client.get_branch_head_commit(target)
        self._client.create_branch(head, review)
        try:
            commit_sha = self._client.delete_file(path, message, review, metadata.blob_sha)
            pr = self._client.open_pull_request(
                review,
                target,
                f"{self._config.review.pr_title_prefix} Remove {path}".strip(),
                body=self._config.review.pr_body,
            )
        except Auto3DError:
            logger.warning(f"Review branch {review} left in place after failure")
            raise

        return RemovalResult(
            deleted=path,
            commit_sha=commit_sha,
            mode=mode,
            pull_request_url=pr.url,
            review_branch=review,
        )
