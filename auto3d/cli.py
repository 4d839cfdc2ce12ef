"""
cli.py — Punto de entrada de Auto3D en la terminal (Click + Rich).

Comandos disponibles:
    python -m auto3d serve                         → Levanta la API (uvicorn)
    python -m auto3d upload FILE -c model -b BMW -m E46 -i preview.png
    python -m auto3d upload FILE -c image --review → Sube vía pull request
    python -m auto3d list -c image --prefix kia    → Lista assets
    python -m auto3d remove images/kia/x/1-a.png   → Retira un asset
    python -m auto3d ping                          → Verifica credencial y repo
    python -m auto3d config --show                 → Muestra configuración

Los comandos que tocan el repo pasan por la misma allow-list que la
API: el login sale de --login o de AUTO3D_LOGIN.

Desde código (testing):
    from click.testing import CliRunner
    from auto3d.cli import main
    CliRunner().invoke(main, ["ping"])
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import NoReturn

import click
from rich.panel import Panel
from rich.table import Table

from auto3d import __version__
from auto3d.access import AccessPolicy, Operation, Principal
from auto3d.config import AppConfig, load_config
from auto3d.errors import Auto3DError
from auto3d.publishing.catalog import Catalog
from auto3d.publishing.github_client import GitHubClient
from auto3d.publishing.health import ping as run_ping
from auto3d.publishing.placement import Category
from auto3d.publishing.workflow import PublishWorkflow, resolve_mode
from auto3d.utils.logger import console as rich_console
from auto3d.utils.logger import get_logger

logger = get_logger("auto3d.cli")

login_option = click.option(
    "--login",
    envvar="AUTO3D_LOGIN",
    default=None,
    help="Login de GitHub con el que se opera (o AUTO3D_LOGIN)",
)


def _authorized_client(
    config: AppConfig, login: str | None, operation: Operation
) -> GitHubClient:
    """Allow-list primero; el cliente solo se construye si pasa."""
    AccessPolicy(config.allowed_logins).require(Principal(login), operation)
    return GitHubClient.from_config(config)


def _fail(error: Auto3DError) -> NoReturn:
    logger.error(f"{error.tag}: {error.message}")
    sys.exit(1)


def _emit_json(data: dict) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


@click.group()
@click.version_option(version=__version__, prog_name="Auto3D")
def main():
    """Auto3D — Publica modelos 3D e imágenes de autopartes en GitHub."""
    pass


@main.command()
@click.option("--host", default=None, help="Host (default: api.host de config.yaml)")
@click.option("--port", default=None, type=int, help="Puerto (default: api.port)")
def serve(host: str | None, port: int | None):
    """Levanta el servidor HTTP."""
    import uvicorn

    from auto3d.api import create_app

    cfg = load_config()
    faltantes = cfg.missing_settings()
    if faltantes:
        logger.warning(f"Missing {', '.join(faltantes)}: uploads will fail until set")

    uvicorn.run(
        create_app(config=cfg),
        host=host or cfg.api.host,
        port=port or cfg.api.port,
        log_level="info",
    )


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--category", "-c",
    type=click.Choice([c.value for c in Category]),
    required=True,
    help="model (.glb) o image (.png/.jpg/.jpeg/.webp)",
)
@click.option("--brand", "-b", default="", help="Marca (ej: 'Kia')")
@click.option("--model", "-m", "model_name", default="", help="Modelo (ej: 'Carnival')")
@click.option(
    "--image", "-i",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Imagen de vista previa, publicada junto al archivo",
)
@click.option("--review", is_flag=True, default=False, help="Publicar vía pull request")
@click.option(
    "--pin",
    type=click.Choice(["branch", "commit"]),
    default=None,
    help="Ref de la URL pública (default: cdn.pin de config.yaml)",
)
@click.option("--json", "as_json", is_flag=True, default=False, help="Salida JSON")
@login_option
def upload(
    file: Path,
    category: str,
    brand: str,
    model_name: str,
    image: Path | None,
    review: bool,
    pin: str | None,
    as_json: bool,
    login: str | None,
):
    """Sube un archivo y muestra su URL pública."""
    cfg = load_config()
    try:
        client = _authorized_client(cfg, login, Operation.PUBLISH)
        result = PublishWorkflow(client, cfg).publish_upload(
            Category.parse(category),
            (brand, model_name),
            file.name,
            file.read_bytes(),
            review_requested=review,
            pin=pin,
            preview=(image.name, image.read_bytes()) if image else None,
        )
    except Auto3DError as e:
        _fail(e)

    if as_json:
        _emit_json(result.to_dict())
        return

    lineas = [
        f"[bold]Path:[/bold] {result.storage_path}",
        f"[bold]URL:[/bold] {result.public_url}",
        f"[bold]Raw:[/bold] {result.raw_url}",
        f"[bold]Commit:[/bold] {result.commit_sha[:7]}",
    ]
    if result.image_url:
        lineas.append(f"[bold]Vista previa:[/bold] {result.image_url}")
    if result.pull_request_url:
        lineas.append(f"[bold]Pull request:[/bold] {result.pull_request_url}")
    rich_console.print(Panel(
        "\n".join(lineas),
        title="Pendiente de revisión" if result.pending_review else "Publicado",
        border_style="yellow" if result.pending_review else "green",
    ))


@main.command("list")
@click.option(
    "--category", "-c",
    type=click.Choice([c.value for c in Category]),
    required=True,
)
@click.option("--prefix", "-p", default=None, help="Prefijo de namespace (ej: 'kia/carnival')")
@click.option("--json", "as_json", is_flag=True, default=False, help="Salida JSON")
@login_option
def list_assets(category: str, prefix: str | None, as_json: bool, login: str | None):
    """Lista los assets publicados de una categoría."""
    cfg = load_config()
    try:
        client = _authorized_client(cfg, login, Operation.LIST)
        page = Catalog(client, cfg).list_assets(Category.parse(category), prefix)
    except Auto3DError as e:
        _fail(e)

    if as_json:
        _emit_json(page.to_dict())
        return

    tabla = Table(title=f"{page.repo}@{page.branch}")
    tabla.add_column("Path", style="cyan")
    tabla.add_column("Tamaño", justify="right")
    tabla.add_column("URL", style="green")
    for item in page.items:
        tabla.add_row(item.path, f"{item.size:,}", item.url)
    rich_console.print(tabla)


@main.command()
@click.argument("path")
@click.option("--review", is_flag=True, default=False, help="Retirar vía pull request")
@login_option
def remove(path: str, review: bool, login: str | None):
    """Retira un asset publicado."""
    cfg = load_config()
    try:
        client = _authorized_client(cfg, login, Operation.REMOVE)
        result = Catalog(client, cfg).remove(path, resolve_mode(cfg, review))
    except Auto3DError as e:
        _fail(e)

    if result.pull_request_url:
        logger.success(f"Removal of {result.deleted} pending review: {result.pull_request_url}")
    else:
        logger.success(f"Removed {result.deleted} ({result.commit_sha[:7]})")


@main.command()
def ping():
    """Verifica que la credencial llegue al repo con permiso de escritura."""
    cfg = load_config()
    try:
        report = run_ping(cfg)
    except Auto3DError as e:
        _fail(e)

    tabla = Table(title="Ping")
    tabla.add_column("Check", style="cyan")
    tabla.add_column("Estado")
    for nombre, valor in report.to_dict().items():
        tabla.add_row(nombre, "[green]sí[/green]" if valor else "[red]no[/red]")
    rich_console.print(tabla)

    if not report.ok:
        sys.exit(1)


@main.command()
@click.option("--show", is_flag=True, help="Muestra la configuración actual")
@click.option("--validate", is_flag=True, help="Valida la configuración")
def config(show: bool, validate: bool):
    """Gestiona la configuración de Auto3D."""
    cfg = load_config()

    if show:
        tabla = Table(title="Configuración de Auto3D")
        tabla.add_column("Parámetro", style="cyan")
        tabla.add_column("Valor", style="green")

        tabla.add_row("Repo", cfg.repo or "(no configurado)")
        tabla.add_row("Branch", cfg.branch)
        tabla.add_row("Token", "configurado" if cfg.token else "falta")
        tabla.add_row("GitHub App", "configurada" if cfg.uses_github_app else "no")
        tabla.add_row("Revisión obligatoria", "sí" if cfg.require_review else "no")
        tabla.add_row(
            "Allow-list",
            ", ".join(cfg.allowed_logins) or "(cualquier login autenticado)",
        )
        tabla.add_row("CDN", f"{cfg.cdn.host} (pin: {cfg.cdn.pin})")
        tabla.add_row("Raíces", f"{cfg.storage.model_root}/, {cfg.storage.image_root}/")
        tabla.add_row("Límite modelos", f"{cfg.storage.max_model_bytes:,} bytes")
        tabla.add_row("Límite imágenes", f"{cfg.storage.max_image_bytes:,} bytes")

        rich_console.print(tabla)

    if validate:
        try:
            cfg.require_remote()
        except Auto3DError as e:
            _fail(e)
        logger.success("Configuración completa")
