"""Schema validation and config loading for mask sheets.

Provides centralized validation using pydantic:
    - Sheet options (sheet.v1 ``sheet:`` block): naming, frame dims, persistence
    - Atlas metadata: the persisted ``{frames, xdim, ydim}`` structure
    - Sheet config (sheet.v1 YAML): options + frame list + stage + logging

Metadata validation here is purely structural (types, flattened triple
layout, positive dims).  Whether cached metadata is *usable* for a given
request (stored dims strictly larger than the requested frame) is decided
by the persistence adapter.

Usage:
    from mask_atlas.utils import validators

    cfg = validators.load_sheet_config("configs/sheet_example.yaml")
    meta = validators.AtlasMetadataV1(**decoded)
"""

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
    model_validator,
)


# JSON scalars, so keys come back from storage with their type intact
FrameKey = Union[StrictInt, StrictFloat, StrictStr]

PersistenceMethod = Literal["raw", "database_file", "database_handle", "image_metadata"]


# ============================================================================
# ATLAS METADATA
# ============================================================================

class AtlasMetadataV1(BaseModel):
    """Persisted atlas metadata.

    ``frames`` is flattened as ``[key1, x1, y1, key2, x2, y2, ...]`` so that
    integer keys survive a JSON round trip (JSON object keys are strings).
    """
    frames: List[FrameKey] = Field(..., min_length=3, description="Flattened (key, x, y) triples")
    xdim: int = Field(..., gt=0, description="Atlas width (px)")
    ydim: int = Field(..., gt=0, description="Atlas height (px)")

    @field_validator('frames')
    @classmethod
    def validate_triples(cls, v: List[FrameKey]) -> List[FrameKey]:
        if len(v) % 3 != 0:
            raise ValueError(f"frames must hold (key, x, y) triples, got {len(v)} items")
        for i in range(0, len(v), 3):
            x, y = v[i + 1], v[i + 2]
            if not isinstance(x, int) or not isinstance(y, int):
                raise ValueError(f"Frame {v[i]!r} has non-integer offset ({x!r}, {y!r})")
        keys = v[0::3]
        if len(set(keys)) != len(keys):
            raise ValueError("Frame keys must be unique")
        return v

    def to_payload(self) -> Dict[str, Any]:
        """Plain dict in the on-disk shape."""
        return {"frames": list(self.frames), "xdim": self.xdim, "ydim": self.ydim}


# ============================================================================
# SHEET OPTIONS
# ============================================================================

class SheetOptionsV1(BaseModel):
    """Options naming and shaping one mask sheet.

    Frame width comes from ``dimx``/``dim`` or ``pixw|pix_dim`` x
    ``npix_cols|npix``; height likewise with ``dimy``/``pixh``/``npix_rows``.
    Presence checks for these happen when the sheet spec is resolved, so
    missing values report which option is absent.
    """
    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    name: Optional[str] = Field(None, description="Base name of the atlas file")
    id: Optional[FrameKey] = Field(None, description="Optional discriminator appended as _id_<id>")

    dim: Optional[int] = Field(None, gt=0, description="Square frame size (px)")
    dimx: Optional[int] = Field(None, gt=0, description="Frame width (px)")
    dimy: Optional[int] = Field(None, gt=0, description="Frame height (px)")
    pixw: Optional[int] = Field(None, gt=0, description="Pixels per cell column")
    pixh: Optional[int] = Field(None, gt=0, description="Pixels per cell row")
    pix_dim: Optional[int] = Field(None, gt=0, description="Pixels per cell (both axes)")
    npix_cols: Optional[int] = Field(None, gt=0, description="Cell columns per frame")
    npix_rows: Optional[int] = Field(None, gt=0, description="Cell rows per frame")
    npix: Optional[int] = Field(None, gt=0, description="Cells per frame (both axes)")

    method: Optional[PersistenceMethod] = Field(None, description="Metadata persistence method (default raw)")
    data: Any = Field(None, description="Persistence source: raw payload, db path/handle, image target")

    dir: Optional[str] = Field(None, description="Directory for the atlas image (default cache dir)")
    read_only_dirs: List[str] = Field(default_factory=list, description="Bundled, non-deletable locations")
    recreate: bool = Field(False, description="Rebuild even if a valid atlas exists")
    hidden: bool = Field(False, description="Frame content is not guaranteed visible on the stage")

    clear: Optional[FrameKey] = Field(None, description="Key meaning 'fully hidden'")
    full: Optional[FrameKey] = Field(None, description="Key meaning 'fully unmasked'")

    def to_opts(self) -> Dict[str, Any]:
        """Options as a plain mapping, unset fields dropped."""
        opts = self.model_dump(exclude_none=True, exclude={"data"})
        if self.data is not None:
            # live handles (e.g. sqlite3.Connection) are passed through untouched
            opts["data"] = self.data
        return opts


# ============================================================================
# SHEET CONFIG (sheet.v1 YAML)
# ============================================================================

class FrameSpecV1(BaseModel):
    """One frame to paint into the atlas."""
    key: FrameKey = Field(..., description="Frame key, unique in the sheet")
    painter: Literal["fill", "diagonal", "rect", "blank"] = Field("fill", description="Built-in painter")
    fraction: float = Field(0.5, ge=0.0, le=1.0, description="Fill fraction (fill painter)")
    rect: Optional[Tuple[int, int, int, int]] = Field(None, description="x, y, w, h (rect painter)")
    is_white: bool = Field(False, description="White background, black shapes")

    @model_validator(mode='after')
    def validate_rect(self) -> 'FrameSpecV1':
        if self.painter == "rect" and self.rect is None:
            raise ValueError(f"Frame {self.key!r}: painter 'rect' requires 'rect: [x, y, w, h]'")
        return self


class StageV1(BaseModel):
    """Visible canvas of the reference renderer (px)."""
    width: int = Field(1024, gt=6)
    height: int = Field(768, gt=6)


class LoggingV1(BaseModel):
    """Logging block forwarded to setup_logging()."""
    log_level: str = Field("INFO")
    log_file: Optional[str] = Field(None)
    json_lines: bool = Field(False, alias="json")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('log_level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got '{v}'")
        return v.upper()


class SheetConfigV1(BaseModel):
    """Complete sheet build config."""
    model_config = ConfigDict(populate_by_name=True)

    schema_version: str = Field("sheet.v1", alias="schema", description="Schema version")
    sheet: SheetOptionsV1
    frames: List[FrameSpecV1] = Field(..., min_length=1)
    stage: StageV1 = Field(default_factory=StageV1)
    logging: LoggingV1 = Field(default_factory=LoggingV1)

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "sheet.v1":
            raise ValueError(f"Expected schema 'sheet.v1', got '{v}'")
        return v

    @model_validator(mode='after')
    def validate_unique_keys(self) -> 'SheetConfigV1':
        keys = [f.key for f in self.frames]
        dupes = sorted({str(k) for k in keys if keys.count(k) > 1})
        if dupes:
            raise ValueError(f"Duplicate frame keys: {dupes}")
        return self


# ============================================================================
# PUBLIC API
# ============================================================================

def load_sheet_config(path: Union[str, Path]) -> SheetConfigV1:
    """Load and validate a sheet config from YAML.

    Parameters
    ----------
    path : Union[str, Path]
        Path to a sheet.v1 YAML file

    Returns
    -------
    SheetConfigV1
        Validated config

    Raises
    ------
    FileNotFoundError
        If path doesn't exist
    ValueError
        If validation fails (message names the file)
    """
    from . import fs

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Sheet config not found: {path}")

    data = fs.load_yaml(path)
    if data is None:
        raise ValueError(f"Empty sheet config: {path}")
    try:
        return SheetConfigV1(**data)
    except Exception as e:
        raise ValueError(f"Sheet config validation failed at {path}: {e}") from e


def coerce_options(opts: Union[SheetOptionsV1, Dict[str, Any], None]) -> Optional[Dict[str, Any]]:
    """Accept either a SheetOptionsV1 or a plain mapping; None passes through."""
    if opts is None:
        return None
    if isinstance(opts, SheetOptionsV1):
        return opts.to_opts()
    return dict(opts)
