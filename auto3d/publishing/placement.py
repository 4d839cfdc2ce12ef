"""
placement.py — Dónde vive cada asset dentro del repo y cómo se llega a él.

Funciones puras, sin I/O. Todo el resto del proyecto deriva paths,
nombres de branch y URLs desde aquí.

Formato del path:
    {raíz}/{marca}/{modelo}/{unix-seconds}-{archivo}

    images/kia/carnival/1700000000-preview.JPG
    models/bmw/e46/1700000123-bumper.glb

El timestamp hace que cada subida tenga un path nuevo: los assets
publicados son append-only y el orden alfabético inverso es, en la
práctica, orden de recencia.

Uso:
    from auto3d.publishing.placement import Category, place_asset
    asset = place_asset(Category.IMAGE, ("Kia", "Carnival"), "preview.JPG",
                        data, timestamp=1700000000, storage=config.storage)
    asset.storage_path  # "images/kia/carnival/1700000000-preview.JPG"
"""

from __future__ import annotations

import hashlib
import re
import time
import unicodedata
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath

from auto3d.config import StorageConfig
from auto3d.errors import PayloadTooLarge, UnsupportedFormat, ValidationError

PLACEHOLDER = "x"

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]+")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class Category(Enum):
    """Tipo de asset. Decide raíz, extensiones y límite de tamaño."""
    MODEL = "model"
    IMAGE = "image"

    @classmethod
    def parse(cls, value: "str | Category | None") -> "Category":
        """
        Acepta "model"/"models"/"image"/"images" sin importar mayúsculas.

        Raises:
            ValidationError: Si no es una categoría conocida.
        """
        if isinstance(value, Category):
            return value
        normalizado = (value or "").strip().lower().rstrip("s")
        for category in cls:
            if category.value == normalizado:
                return category
        raise ValidationError(
            f"Unknown category {value!r}: expected 'model' or 'image'"
        )

    @property
    def default_filename(self) -> str:
        return "model.glb" if self is Category.MODEL else "preview.png"

    def root(self, storage: StorageConfig) -> str:
        return storage.model_root if self is Category.MODEL else storage.image_root

    def extensions(self, storage: StorageConfig) -> tuple[str, ...]:
        if self is Category.MODEL:
            return storage.model_extensions
        return storage.image_extensions

    def max_bytes(self, storage: StorageConfig) -> int:
        if self is Category.MODEL:
            return storage.max_model_bytes
        return storage.max_image_bytes


@dataclass
class ContentAsset:
    """
    Un binario listo para publicar.

    blob_sha queda en None hasta que GitHub confirma la escritura.
    """
    category: Category
    namespace_key: str
    original_filename: str
    filename: str
    storage_path: str
    content: bytes
    timestamp: int
    blob_sha: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


# ================================================================
# Normalización
# ================================================================

def normalize_segment(text: str | None) -> str:
    """
    Convierte texto libre en un segmento de path seguro.

    "Škoda Octavia" → "skoda-octavia"; "!!!" → "x".
    """
    descompuesto = unicodedata.normalize("NFKD", text or "")
    sin_acentos = "".join(c for c in descompuesto if not unicodedata.combining(c))
    segmento = _NON_ALNUM.sub("-", sin_acentos).strip("-").lower()
    return segmento or PLACEHOLDER


def namespace_key(fields: tuple[str | None, str | None] | list[str | None]) -> str:
    """("Kia", "Carnival") → "kia/carnival"."""
    return "/".join(normalize_segment(f) for f in fields)


def normalize_prefix(prefix: str | None) -> str:
    """
    Normaliza un prefijo de búsqueda segmento a segmento.

    A diferencia de namespace_key, los segmentos vacíos se descartan
    en vez de volverse "x": "Kia/" → "kia".
    """
    if not prefix:
        return ""
    return "/".join(
        normalize_segment(part) for part in prefix.split("/") if part.strip()
    )


def sanitize_filename(name: str | None, category: Category) -> str:
    """Reemplaza lo que no sea [A-Za-z0-9_.-] por "_"."""
    base = PurePosixPath((name or "").replace("\\", "/")).name
    if not base:
        return category.default_filename
    return _UNSAFE_FILENAME_CHARS.sub("_", base)


# ================================================================
# Validación (antes de cualquier request)
# ================================================================

def check_extension(filename: str, category: Category, storage: StorageConfig) -> None:
    """
    Raises:
        UnsupportedFormat: "Only .glb allowed", etc.
    """
    extension = PurePosixPath(filename).suffix.lower()
    permitidas = category.extensions(storage)
    if extension not in permitidas:
        raise UnsupportedFormat(f"Only {', '.join(permitidas)} allowed")


def check_size(size: int, category: Category, storage: StorageConfig) -> None:
    """
    El límite es inclusivo: size == límite pasa.

    Raises:
        PayloadTooLarge: Con tamaño observado y límite.
    """
    limite = category.max_bytes(storage)
    if size > limite:
        raise PayloadTooLarge(size, limite, label=f"{category.value} file")


# ================================================================
# Paths, branches y URLs
# ================================================================

def build_storage_path(
    category: Category,
    fields: tuple[str | None, str | None] | list[str | None],
    filename: str | None,
    timestamp: int,
    storage: StorageConfig,
) -> str:
    """Path determinístico para (categoría, campos, archivo, timestamp)."""
    nombre = sanitize_filename(filename, category)
    return (
        f"{category.root(storage)}/{namespace_key(fields)}/"
        f"{int(timestamp)}-{nombre}"
    )


def place_asset(
    category: Category,
    fields: tuple[str | None, str | None] | list[str | None],
    filename: str | None,
    content: bytes,
    storage: StorageConfig,
    timestamp: int | None = None,
) -> ContentAsset:
    """
    Valida y ubica un upload.

    Extensión y tamaño se revisan aquí, antes de que exista
    cualquier request a GitHub.

    Raises:
        UnsupportedFormat, PayloadTooLarge
    """
    nombre = sanitize_filename(filename, category)
    check_extension(nombre, category, storage)
    check_size(len(content), category, storage)

    ts = int(time.time()) if timestamp is None else int(timestamp)
    return ContentAsset(
        category=category,
        namespace_key=namespace_key(fields),
        original_filename=filename or "",
        filename=nombre,
        storage_path=build_storage_path(category, fields, filename, ts, storage),
        content=content,
        timestamp=ts,
    )


def category_roots(storage: StorageConfig) -> tuple[str, ...]:
    return tuple(c.root(storage) for c in Category)


def review_branch_name(prefix: str, action: str, path: str, timestamp: int | None = None) -> str:
    """
    Nombre de branch válido para git a partir de un path.

    ("auto3d", "upload", "images/kia/x/17-a.png") →
    "auto3d/upload/images-kia-x-17-a-png-<sha1[:7] del path>"

    El slug pierde mayúsculas y "_"; el digest del path exacto
    mantiene distintos "17-A.png" y "17-a.png".
    """
    digest = hashlib.sha1(path.encode("utf-8")).hexdigest()[:7]
    nombre = f"{prefix.strip('/')}/{action}/{normalize_segment(path)}-{digest}"
    if timestamp is not None:
        nombre += f"-{int(timestamp)}"
    return nombre


def cdn_url(repo: str, ref: str, path: str, host: str = "cdn.jsdelivr.net") -> str:
    """https://{host}/gh/{owner}/{repo}@{ref}/{path}"""
    return f"https://{host}/gh/{repo}@{ref}/{path}"


def raw_url(repo: str, branch: str, path: str) -> str:
    """Link directo a raw.githubusercontent.com sobre el branch."""
    return f"https://raw.githubusercontent.com/{repo}/{branch}/{path}"
