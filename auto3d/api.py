"""
api.py — Servidor FastAPI de Auto3D.

Endpoints:
    GET    /              — Info básica del servicio
    GET    /health        — Ping a GitHub (público, solo booleanos)
    POST   /api/uploads   — Sube un modelo o imagen (multipart, con vista previa opcional)
    GET    /api/assets    — Lista assets de una categoría
    DELETE /api/assets    — Retira un asset

Identidad: el login lo pone el proxy OAuth de delante en el header
configurado (X-Forwarded-User por defecto). Sin header = anónimo.

Errores: cualquier Auto3DError sale como
    {"error": "<tag>", "message": "<texto>"}
con el status HTTP de su clase.

Uso:
    python -m auto3d serve
    python -m auto3d serve --port 8080
"""

from __future__ import annotations

import time

from fastapi import FastAPI, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from auto3d import __version__
from auto3d.access import AccessPolicy, Operation, Principal
from auto3d.config import AppConfig, StorageConfig, load_config
from auto3d.errors import Auto3DError, ValidationError
from auto3d.publishing.catalog import Catalog, check_removable
from auto3d.publishing.github_client import GitHubClient
from auto3d.publishing.health import ping
from auto3d.publishing.placement import (
    Category,
    category_roots,
    check_extension,
    check_size,
    sanitize_filename,
)
from auto3d.publishing.workflow import PublishWorkflow, resolve_mode
from auto3d.utils.logger import get_logger

logger = get_logger("auto3d.api")

_start_time: float = 0.0


# ================================================================
# App factory
# ================================================================

def create_app(
    config: AppConfig | None = None,
    client: GitHubClient | None = None,
) -> FastAPI:
    """
    Crea la app FastAPI.

    Args:
        config: Configuración ya cargada. Si es None, load_config().
        client: Cliente de GitHub a reutilizar. Si es None se construye
            en el primer request que lo necesite (así una config
            incompleta no impide arrancar y /health lo puede reportar).

    Returns:
        FastAPI app lista para servir.
    """
    global _start_time
    _start_time = time.time()

    app = FastAPI(
        title="Auto3D API",
        description="Publica modelos e imágenes de autopartes en GitHub + jsDelivr",
        version=__version__,
    )

    app.state.config = config or load_config()
    app.state.client = client
    app.state.policy = AccessPolicy(app.state.config.allowed_logins)

    _register_error_handlers(app)
    _register_routes(app)

    return app


def _client(app: FastAPI) -> GitHubClient:
    if app.state.client is None:
        app.state.client = GitHubClient.from_config(app.state.config)
    return app.state.client


def _principal(request: Request) -> Principal:
    config: AppConfig = request.app.state.config
    login = request.headers.get(config.api.identity_header, "").strip()
    return Principal(login or None)


def _authorize(request: Request, operation: Operation) -> Principal:
    principal = _principal(request)
    request.app.state.policy.require(principal, operation)
    return principal


async def _read_upload(upload: UploadFile, category: Category, storage: StorageConfig) -> bytes:
    """
    Lee un upload hasta límite + 1 bytes.

    La extensión se revisa antes que el tamaño. Si el archivo excede
    el límite, el error reporta su tamaño real (UploadFile.size) y no
    los bytes leídos.
    """
    check_extension(sanitize_filename(upload.filename, category), category, storage)
    content = await upload.read(category.max_bytes(storage) + 1)
    check_size(max(len(content), upload.size or 0), category, storage)
    return content


# ================================================================
# Errores
# ================================================================

def _register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(Auto3DError)
    async def auto3d_error(request: Request, exc: Auto3DError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.tag}: {exc.message}")
        else:
            logger.warning(f"{request.method} {request.url.path}: {exc.tag}: {exc.message}")
        return JSONResponse(content=exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        campos = ", ".join(
            ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query"))
            for err in exc.errors()
        )
        error = ValidationError(f"Invalid request fields: {campos or 'unknown'}")
        return JSONResponse(content=error.to_dict(), status_code=error.status_code)


# ================================================================
# Routes
# ================================================================

def _register_routes(app: FastAPI) -> None:
    """Registra todos los endpoints."""

    @app.get("/")
    async def root():
        config: AppConfig = app.state.config
        return {
            "name": "Auto3D",
            "version": __version__,
            "repo": config.repo,
            "branch": config.branch,
            "reviewRequired": config.require_review,
            "uptime_seconds": int(time.time() - _start_time),
        }

    @app.get("/health")
    async def health():
        """
        Ping a GitHub. Público y sin efectos.

        200 si todo OK, 503 si algo falla, 500 si falta configuración.
        """
        config: AppConfig = app.state.config
        config.require_remote()
        report = await run_in_threadpool(ping, config, _client(app))
        return JSONResponse(
            content=report.to_dict(),
            status_code=200 if report.ok else 503,
        )

    @app.post("/api/uploads", status_code=201)
    async def upload(
        request: Request,
        file: UploadFile | None = File(None),
        image: UploadFile | None = File(None),
        category: str | None = Form(None),
        brand: str | None = Form(None),
        model: str | None = Form(None),
        review: bool = Form(False),
        pin: str | None = Form(None),
    ):
        """
        Sube un binario y devuelve su URL pública.

        `image` es la vista previa opcional: se publica en el mismo
        request, con el mismo namespace y timestamp, y sale en imageUrl.
        """
        principal = _authorize(request, Operation.PUBLISH)
        config: AppConfig = app.state.config

        if file is None:
            raise ValidationError('No file received. Send the field "file".')
        categoria = Category.parse(category)

        content = await _read_upload(file, categoria, config.storage)
        preview = None
        if image is not None:
            preview_content = await _read_upload(image, Category.IMAGE, config.storage)
            # Un campo image vacío equivale a no mandarlo
            if preview_content:
                preview = (image.filename, preview_content)

        workflow = PublishWorkflow(_client(app), config)
        result = await run_in_threadpool(
            workflow.publish_upload,
            categoria,
            (brand, model),
            file.filename,
            content,
            review,
            pin,
            None,
            preview,
        )
        logger.success(f"{principal.login} published {result.storage_path}")
        return result.to_dict()

    @app.get("/api/assets")
    async def list_assets(
        request: Request,
        category: str = Query(...),
        prefix: str | None = Query(None),
    ):
        """Assets publicados de una categoría, más recientes primero."""
        _authorize(request, Operation.LIST)
        categoria = Category.parse(category)
        catalog = Catalog(_client(app), app.state.config)
        page = await run_in_threadpool(catalog.list_assets, categoria, prefix)
        return page.to_dict()

    @app.delete("/api/assets")
    async def delete_asset(
        request: Request,
        path: str = Query(...),
        review: bool = Query(False),
    ):
        """Retira un asset (commit directo o PR)."""
        principal = _authorize(request, Operation.REMOVE)
        config: AppConfig = app.state.config
        path = check_removable(path, category_roots(config.storage))

        catalog = Catalog(_client(app), config)
        result = await run_in_threadpool(
            catalog.remove, path, resolve_mode(config, review)
        )
        logger.success(f"{principal.login} removed {path}")
        return result.to_dict()
