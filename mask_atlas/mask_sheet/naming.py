"""Sheet options -> frame dimensions and a deterministic atlas filename.

A frame dimension is either explicit (``dimx``/``dimy``/``dim``) or the
product of a per-cell pixel size and a cell count (``pixw``/``pix_dim`` x
``npix_cols``/``npix`` for width, ``pixh``/``pix_dim`` x
``npix_rows``/``npix`` for height).  The filename encodes whichever form
was used, so repeating a request with the same shape finds the same file::

    {"name": "fills", "dim": 64}                              -> __fills_64x64__.png
    {"name": "fills", "pix_dim": 8, "npix": 4, "id": 2}       -> __fills_8p4x8p4_id_2__.png
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from mask_atlas.mask_sheet.errors import MissingOptionError


@dataclass(frozen=True, slots=True)
class SheetSpec:
    """Resolved request: frame size, atlas filename and persistence choice."""

    frame_w: int
    frame_h: int
    filename: str
    method: str | None
    data: Any


def is_pos_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def get_pix_int(
    opts: Mapping[str, Any] | None,
    spec_name: str,
    common_name: str,
    message: str | None = None,
) -> int:
    """Read a positive integer option, preferring ``spec_name`` over ``common_name``.

    Raises
    ------
    MissingOptionError
        If ``opts`` is missing or neither option holds a positive integer.
    """
    if opts is None:
        raise MissingOptionError("Missing options")

    value = opts.get(spec_name)
    if value is None:
        value = opts.get(common_name)

    if not is_pos_int(value):
        if message:
            raise MissingOptionError(f"Missing pixel {message}")
        raise MissingOptionError(f"Missing field: <{spec_name}> or <{common_name}>")
    return value


def _dim(
    opts: Mapping[str, Any],
    explicit: int | None,
    dim_name: str,
    npix_name: str,
    size_message: str,
    count_message: str,
) -> tuple[int, str]:
    if explicit is not None:
        if not is_pos_int(explicit):
            raise MissingOptionError(f"Missing pixel {size_message}")
        return explicit, f"{explicit}"

    pix_dim = get_pix_int(opts, dim_name, "pix_dim", size_message)
    npix = get_pix_int(opts, npix_name, "npix", count_message)
    return pix_dim * npix, f"{pix_dim}p{npix}"


def _explicit(opts: Mapping[str, Any], name: str) -> int | None:
    value = opts.get(name)
    return value if value is not None else opts.get("dim")


def frame_dims(opts: Mapping[str, Any] | None) -> tuple[int, int, str, str]:
    """Frame (width, height) plus the filename fragment for each axis."""
    if opts is None:
        raise MissingOptionError("Missing options")

    fdimx, xstr = _dim(opts, _explicit(opts, "dimx"), "pixw", "npix_cols", "width", "column count")

    explicit_y = _explicit(opts, "dimy")
    has_cells_y = any(opts.get(k) is not None for k in ("pixh", "pix_dim", "npix_rows", "npix"))
    if explicit_y is None and not has_cells_y:
        # explicit width only: square frames
        return fdimx, fdimx, xstr, xstr

    fdimy, ystr = _dim(opts, explicit_y, "pixh", "npix_rows", "height", "row count")
    return fdimx, fdimy, xstr, ystr


def sheet_filename(name: str, xstr: str, ystr: str, sheet_id: Any = None) -> str:
    suffix = f"_id_{sheet_id}" if sheet_id is not None else ""
    return f"__{name}_{xstr}x{ystr}{suffix}__.png"


def resolve_sheet_spec(opts: Mapping[str, Any] | None) -> SheetSpec:
    """Resolve sheet options into a :class:`SheetSpec`.

    Raises
    ------
    MissingOptionError
        If options, the name, or a frame dimension are missing.
    """
    if opts is None:
        raise MissingOptionError("Missing options")

    fdimx, fdimy, xstr, ystr = frame_dims(opts)

    name = opts.get("name")
    if not name:
        raise MissingOptionError("Missing filename")

    return SheetSpec(
        frame_w=fdimx,
        frame_h=fdimy,
        filename=sheet_filename(name, xstr, ystr, opts.get("id")),
        method=opts.get("method"),
        data=opts.get("data"),
    )
