"""Atomic filesystem operations and the file service used by mask sheets.

Provides:
    - Atomic writes: tmp file -> fsync -> rename (no partial reads)
    - Atomic PNG saves from uint8 numpy buffers (optional PNG text chunks)
    - YAML load/save
    - File service: existence checks, path resolution, unused temp names,
      protected (read-only) location checks
    - Default cache / temporary directories

Atlas images and their metadata are always written as a pair; an atlas
image must never be observed half-written by a reader that then trusts
stale metadata, hence every image write goes through tmp + rename.

Usage:
    from mask_atlas.utils import fs
    fs.atomic_save_image(pixels, cache / "__masks_64x64__.png")
    name = fs.unused_filename(fs.temp_dir())
    if fs.file_exists(name, directory): ...
"""

import os
import tempfile
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

import numpy as np
import yaml
from PIL import Image
from PIL.PngImagePlugin import PngInfo


PathLike = Union[str, Path]

# Environment overrides for the default directories
CACHE_DIR_ENV = "MASK_ATLAS_CACHE_DIR"
TEMP_DIR_ENV = "MASK_ATLAS_TEMP_DIR"


def ensure_dir(p: PathLike) -> Path:
    """Create directory if it doesn't exist, return Path object.

    Parameters
    ----------
    p : Union[str, Path]
        Directory path

    Returns
    -------
    Path
        Path object (guaranteed to exist)
    """
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


def cache_dir() -> Path:
    """Default directory for built atlases (``$MASK_ATLAS_CACHE_DIR`` or ~/.cache)."""
    override = os.environ.get(CACHE_DIR_ENV)
    if override:
        return ensure_dir(override)
    return ensure_dir(Path.home() / ".cache" / "mask_atlas")


def temp_dir() -> Path:
    """Default directory for capture snapshots (``$MASK_ATLAS_TEMP_DIR`` or system tmp)."""
    override = os.environ.get(TEMP_DIR_ENV)
    if override:
        return ensure_dir(override)
    return ensure_dir(Path(tempfile.gettempdir()) / "mask_atlas")


def atomic_write_bytes(
    path: PathLike,
    data: bytes,
    tmp_suffix: str = ".tmp"
) -> None:
    """Write bytes to file atomically (tmp -> fsync -> rename).

    Parameters
    ----------
    path : Union[str, Path]
        Target file path
    data : bytes
        Data to write
    tmp_suffix : str
        Temporary file suffix, default ".tmp"

    Notes
    -----
    The tmp file lives in the target directory so the rename stays on one
    filesystem.
    """
    path = Path(path)
    ensure_dir(path.parent)

    tmp_path = path.with_suffix(path.suffix + tmp_suffix)

    try:
        with open(tmp_path, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        tmp_path.replace(path)
    except Exception as e:
        if tmp_path.exists():
            tmp_path.unlink()
        raise RuntimeError(f"Failed to write {path} atomically: {e}") from e


def atomic_save_image(
    img: Union[np.ndarray, Image.Image],
    path: PathLike,
    text_chunks: Optional[Dict[str, str]] = None,
    pil_kwargs: Optional[Dict[str, Any]] = None
) -> None:
    """Save image atomically (prevents partial reads).

    Parameters
    ----------
    img : Union[np.ndarray, Image.Image]
        (H, W) uint8 luminance buffer, (H, W, C) uint8 buffer or a PIL image
    path : Union[str, Path]
        Target file path (extension determines format)
    text_chunks : Optional[Dict[str, str]]
        PNG tEXt chunks (keyword -> text) to embed; PNG only
    pil_kwargs : Optional[Dict[str, Any]]
        Additional kwargs for PIL.Image.save

    Notes
    -----
    Non-uint8 numpy input is clipped to [0, 255] before saving.
    """
    path = Path(path)
    ensure_dir(path.parent)
    pil_kwargs = dict(pil_kwargs or {})

    if isinstance(img, np.ndarray):
        if img.dtype != np.uint8:
            img = np.clip(img, 0, 255).astype(np.uint8)
        if img.ndim == 3 and img.shape[2] == 1:
            img = img.squeeze(2)
        pil_img = Image.fromarray(img)
    else:
        pil_img = img

    if text_chunks:
        info = PngInfo()
        for keyword, text in text_chunks.items():
            info.add_text(keyword, text)
        pil_kwargs["pnginfo"] = info

    # Keep the real extension last so PIL can infer the format
    tmp_path = path.with_name(path.stem + ".tmp" + path.suffix)
    try:
        pil_img.save(tmp_path, **pil_kwargs)
        tmp_path.replace(path)
    except Exception as e:
        if tmp_path.exists():
            tmp_path.unlink()
        raise RuntimeError(f"Failed to save image {path} atomically: {e}") from e


def load_image(path: PathLike, mode: str = "L") -> np.ndarray:
    """Load an image file as a uint8 numpy buffer in the given PIL mode."""
    with Image.open(path) as im:
        return np.asarray(im.convert(mode), dtype=np.uint8).copy()


def read_png_text(path: PathLike) -> Dict[str, str]:
    """Return the tEXt/iTXt chunks of a PNG file (empty dict if none)."""
    with Image.open(path) as im:
        return dict(getattr(im, "text", {}) or {})


def atomic_yaml_dump(obj: Any, path: PathLike) -> None:
    """Save object as YAML atomically (safe_dump, insertion order kept)."""
    yaml_str = yaml.safe_dump(
        obj,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True
    )
    atomic_write_bytes(Path(path), yaml_str.encode('utf-8'))


def load_yaml(path: PathLike) -> Dict[str, Any]:
    """Load YAML file safely.

    Raises
    ------
    FileNotFoundError
        If file doesn't exist
    yaml.YAMLError
        If YAML parsing fails
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Failed to parse YAML file {path}: {e}") from e


# ============================================================================
# FILE SERVICE
# ============================================================================

def resolve_path(filename: PathLike, directory: Optional[PathLike] = None) -> Path:
    """Resolve ``filename`` against ``directory`` (absolute names pass through)."""
    filename = Path(filename)
    if filename.is_absolute() or directory is None:
        return filename
    return Path(directory) / filename


def file_exists(filename: PathLike, directory: Optional[PathLike] = None) -> bool:
    """True if ``filename`` names an existing regular file in ``directory``."""
    return resolve_path(filename, directory).is_file()


def unused_filename(directory: PathLike, suffix: str = "png") -> str:
    """Generate a random file name that does not exist yet in ``directory``."""
    while True:
        name = f"{uuid.uuid4().hex}.{suffix}"
        if not file_exists(name, directory):
            return name


def is_protected_dir(
    directory: PathLike,
    read_only_dirs: Iterable[PathLike] = ()
) -> bool:
    """True if files in ``directory`` must not be deleted or rewritten.

    A directory is protected when it is one of ``read_only_dirs`` (bundled
    resources) or when it exists but is not writable by this process.
    """
    directory = Path(directory).resolve()
    for ro in read_only_dirs:
        if Path(ro).resolve() == directory:
            return True
    return directory.exists() and not os.access(directory, os.W_OK)


def safe_remove(path: PathLike) -> bool:
    """Remove a file if present.

    Returns
    -------
    bool
        True if removed, False if it didn't exist. Other OS errors propagate.
    """
    path = Path(path)
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True
