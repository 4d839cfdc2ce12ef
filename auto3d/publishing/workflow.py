"""
workflow.py — Publica un asset en el repo: commit directo o pull request.

Dos caminos lineales, elegidos por un único PublishMode:

DIRECT (sin revisión):
    1. write_file en el branch destino
    2. URL pública sobre el branch destino
    → Published

REVIEW (moderado):
    1. SHA de la punta del branch destino
    2. Crear branch de revisión desde ese SHA
    3. write_file en el branch de revisión
    4. Abrir PR revisión → destino
    5. URL pública sobre el branch destino (jsDelivr resuelve por nombre
       de branch, así que la URL sirve en cuanto se mergea)
    → PendingReview(pr_url)

Cualquier fallo aborta el request. Si el camino REVIEW falla después
de crear el branch, el branch queda huérfano y se loguea su nombre;
no se intenta borrarlo. Tampoco se hace merge ni polling del PR.

Un upload puede traer su imagen de vista previa: los dos archivos se
validan antes del primer request, comparten namespace y timestamp
(models/bmw/e46/17-m.glb + images/bmw/e46/17-preview.png) y en REVIEW
van en el mismo branch y el mismo PR.

Uso:
    from auto3d.publishing.workflow import PublishWorkflow
    workflow = PublishWorkflow(client, config)
    result = workflow.publish_upload(
        Category.IMAGE, ("Kia", "Carnival"), "preview.JPG", data,
        review_requested=True,
    )
    print(result.public_url, result.pull_request_url)
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from auto3d.config import AppConfig
from auto3d.errors import Auto3DError, ValidationError
from auto3d.publishing.github_client import GitHubClient
from auto3d.publishing.placement import (
    Category,
    ContentAsset,
    cdn_url,
    place_asset,
    raw_url,
    review_branch_name,
)
from auto3d.utils.logger import get_logger

logger = get_logger("auto3d.workflow")


class PublishMode(Enum):
    """DIRECT = commit al branch destino; REVIEW = branch + PR."""
    DIRECT = "direct"
    REVIEW = "review"


def resolve_mode(config: AppConfig, review_requested: bool = False) -> PublishMode:
    """REVIEW si la config lo fuerza o si el caller lo pide."""
    if config.require_review or review_requested:
        return PublishMode.REVIEW
    return PublishMode.DIRECT


class UrlPin(Enum):
    """
    A qué ref apunta la URL pública.

    BRANCH refleja el último commit del branch (incluye merges futuros).
    COMMIT nunca cambia de contenido.
    """
    BRANCH = "branch"
    COMMIT = "commit"

    @classmethod
    def parse(cls, value: "str | UrlPin | None", default: "UrlPin | None" = None) -> "UrlPin":
        if isinstance(value, UrlPin):
            return value
        if not value:
            return default or cls.BRANCH
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValidationError(
                f"Unknown pin {value!r}: expected 'branch' or 'commit'"
            ) from None


@dataclass(frozen=True)
class PublishRequest:
    """Un path, su contenido y el mensaje del commit. No se persiste."""
    path: str
    content: bytes
    message: str


@dataclass
class PublishResult:
    storage_path: str
    public_url: str
    raw_url: str
    branch: str
    commit_sha: str
    mode: PublishMode
    blob_sha: str = ""
    pull_request_url: str | None = None
    pull_request_number: int | None = None
    review_branch: str | None = None
    # Vista previa publicada junto al archivo principal
    image_path: str | None = None
    image_url: str | None = None
    raw_image_url: str | None = None

    @property
    def pending_review(self) -> bool:
        return self.mode is PublishMode.REVIEW

    def attach_preview(self, preview: "PublishResult") -> None:
        self.image_path = preview.storage_path
        self.image_url = preview.public_url
        self.raw_image_url = preview.raw_url

    def to_dict(self) -> dict[str, Any]:
        """Forma JSON que devuelve la API."""
        data: dict[str, Any] = {
            "path": self.storage_path,
            "publicUrl": self.public_url,
            "rawUrl": self.raw_url,
            "branch": self.branch,
            "commit": self.commit_sha,
            "mode": self.mode.value,
        }
        if self.image_url:
            data["imagePath"] = self.image_path
            data["imageUrl"] = self.image_url
            data["rawImageUrl"] = self.raw_image_url
        if self.pull_request_url:
            data["pullRequestUrl"] = self.pull_request_url
            data["reviewBranch"] = self.review_branch
        return data


class PublishWorkflow:
    """
    Orquesta la publicación sobre un GitHubClient.

    Args:
        client: Cliente del repositorio.
        config: Configuración de la app (branch destino, CDN, prefijos).
    """

    def __init__(self, client: GitHubClient, config: AppConfig):
        self._client = client
        self._config = config

    @property
    def target_branch(self) -> str:
        return self._config.branch

    def resolve_mode(self, review_requested: bool = False) -> PublishMode:
        return resolve_mode(self._config, review_requested)

    def public_url(self, path: str, commit_sha: str, pin: UrlPin) -> str:
        ref = commit_sha if pin is UrlPin.COMMIT and commit_sha else self.target_branch
        return cdn_url(self._client.repo, ref, path, host=self._config.cdn.host)

    # ============================================================
    # Publicación
    # ============================================================

    def publish_upload(
        self,
        category: Category,
        fields: tuple[str | None, str | None],
        filename: str | None,
        content: bytes,
        review_requested: bool = False,
        pin: UrlPin | str | None = None,
        timestamp: int | None = None,
        preview: tuple[str | None, bytes] | None = None,
    ) -> PublishResult:
        """
        Valida, ubica y publica un upload.

        Args:
            preview: (filename, bytes) opcional de la imagen de vista
                previa. Va bajo la raíz de imágenes con el mismo
                namespace y timestamp que el archivo principal, y en
                REVIEW comparte branch y PR con él.

        Raises:
            UnsupportedFormat, PayloadTooLarge: Antes de tocar la red
                (se validan ambos archivos).
            Auto3DError: Cualquier fallo remoto.
        """
        ts = int(time.time()) if timestamp is None else int(timestamp)
        storage = self._config.storage

        assets = [place_asset(category, fields, filename, content, storage, timestamp=ts)]
        if preview is not None:
            preview_name, preview_content = preview
            assets.append(
                place_asset(Category.IMAGE, fields, preview_name, preview_content, storage, timestamp=ts)
            )

        results = self.publish_many(
            [self.request_for(asset) for asset in assets],
            self.resolve_mode(review_requested),
            pin=pin,
        )
        for asset, result in zip(assets, results):
            asset.blob_sha = result.blob_sha

        principal = results[0]
        if len(results) > 1:
            principal.attach_preview(results[1])
        return principal

    @staticmethod
    def request_for(asset: ContentAsset) -> PublishRequest:
        return PublishRequest(
            path=asset.storage_path,
            content=asset.content,
            message=f"Upload {asset.storage_path}",
        )

    def publish(
        self,
        request: PublishRequest,
        mode: PublishMode,
        pin: UrlPin | str | None = None,
    ) -> PublishResult:
        return self.publish_many([request], mode, pin=pin)[0]

    def publish_many(
        self,
        batch: list[PublishRequest],
        mode: PublishMode,
        pin: UrlPin | str | None = None,
    ) -> list[PublishResult]:
        """Un commit por path; en REVIEW todos van al mismo branch y PR."""
        if not batch:
            raise ValidationError("Nothing to publish")
        pin = UrlPin.parse(pin, default=UrlPin.parse(self._config.cdn.pin))
        if mode is PublishMode.REVIEW:
            return self._publish_review(batch, pin)
        return self._publish_direct(batch, pin)

    def _publish_direct(self, batch: list[PublishRequest], pin: UrlPin) -> list[PublishResult]:
        branch = self.target_branch
        results: list[PublishResult] = []

        for request in batch:
            logger.info(f"Publishing {request.path} directly to {branch}")
            try:
                written = self._client.write_file(
                    request.path, request.content, request.message, branch
                )
            except Auto3DError:
                if results:
                    publicados = ", ".join(r.storage_path for r in results)
                    logger.warning(f"Already published before the failure: {publicados}")
                raise

            results.append(PublishResult(
                storage_path=request.path,
                public_url=self.public_url(request.path, written.commit_sha, pin),
                raw_url=raw_url(self._client.repo, branch, request.path),
                branch=branch,
                commit_sha=written.commit_sha,
                blob_sha=written.blob_sha,
                mode=PublishMode.DIRECT,
            ))

        return results

    def _publish_review(self, batch: list[PublishRequest], pin: UrlPin) -> list[PublishResult]:
        target = self.target_branch
        paths = [request.path for request in batch]
        review = review_branch_name(
            self._config.review.branch_prefix, "upload", paths[0]
        )
        total = len(batch) + 3
        logger.info(f"Publishing {', '.join(paths)} for review ({review} -> {target})")

        logger.step(1, total, f"Reading head of {target}")
        head = self._client.get_branch_head_commit(target)

        logger.step(2, total, f"Creating {review}")
        self._client.create_branch(head, review)

        escritos = []
        try:
            for paso, request in enumerate(batch, start=3):
                logger.step(paso, total, f"Committing {request.path}")
                escritos.append(self._client.write_file(
                    request.path, request.content, request.message, review
                ))

            logger.step(total, total, "Opening pull request")
            pr = self._client.open_pull_request(
                review,
                target,
                f"{self._config.review.pr_title_prefix} Add {' + '.join(paths)}".strip(),
                body=self._config.review.pr_body,
            )
        except Auto3DError:
            logger.warning(f"Review branch {review} left in place after failure")
            raise

        return [
            PublishResult(
                storage_path=request.path,
                public_url=self.public_url(request.path, written.commit_sha, pin),
                raw_url=raw_url(self._client.repo, target, request.path),
                branch=target,
                commit_sha=written.commit_sha,
                blob_sha=written.blob_sha,
                mode=PublishMode.REVIEW,
                pull_request_url=pr.url,
                pull_request_number=pr.number,
                review_branch=review,
            )
            for request, written in zip(batch, escritos)
        ]
