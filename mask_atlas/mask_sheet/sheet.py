"""Mask sheet facade: build an atlas once, reuse it afterwards.

A :class:`MaskSheet` is always in exactly one of three states:

    Building    fresh atlas under construction (add_frame / commit)
    Committed   built by this object, frozen, usable by set()
    Loaded      found valid on disk at construction, read-only

Construction looks for the atlas file derived from the options.  If it is
there (and ``recreate`` is not set) the stored metadata is read through the
persistence adapter; usable metadata means Loaded.  Otherwise a stale file
is deleted (fatal in a protected location) and the sheet starts Building.

Typical use::

    sheet = MaskSheet({"name": "fills", "dim": 64, "clear": 0, "full": 4}, renderer)
    if not sheet.is_loaded():
        for key in range(5):
            sheet.add_frame(fill_painter(key / 4), key)
        sheet.commit()
    sheet.set(target, 2)

:class:`DataSheet` runs the same placement and metadata steps without any
pixel work, to pre-populate metadata before the atlas image exists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Hashable, Mapping

from mask_atlas.mask_sheet.capture import CaptureStrategy, ResourceOwnershipTable
from mask_atlas.mask_sheet.errors import (
    CapacityError,
    MissingOptionError,
    ProtectedLocationError,
    SheetStateError,
)
from mask_atlas.mask_sheet.grid import GridCursor, GridPlan, canvas_bound, final_dims, grid_counts
from mask_atlas.mask_sheet.naming import resolve_sheet_spec
from mask_atlas.mask_sheet.persistence import AtlasMetadata, PersistenceAdapter
from mask_atlas.mask_sheet.registry import FrameRegistry, to_frame_map
from mask_atlas.raster.renderer import RasterRenderer
from mask_atlas.raster.scene import Bounds, Group, Rect, new_rect
from mask_atlas.utils import fs
from mask_atlas.utils.validators import coerce_options

logger = logging.getLogger(__name__)

# painter(group, fill, frame_w, frame_h, key) draws one frame's shapes
Painter = Callable[[Group, float, int, int, Hashable], Any]

# after(group, key) runs once the frame has been captured
AfterHook = Callable[[Group, Hashable], Any]


def compute_scales(frame_w: int, frame_h: int, xdim: int, ydim: int) -> tuple[float, float]:
    """Scale factors mapping atlas space onto the requested frame size."""
    return frame_w / xdim, frame_h / ydim


def _no_yield() -> None:
    pass


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class BuildContext:
    """Mutable build state, owned by exactly one :class:`Building` value.

    ``mgroup``, ``stash`` and ``strategy`` are only present for pixel
    builds; data-only builds leave them ``None``.
    """

    registry: FrameRegistry
    plan: GridPlan
    cursor: GridCursor
    mgroup: Group | None = None
    stash: Group | None = None
    strategy: CaptureStrategy | None = None


@dataclass(frozen=True, slots=True)
class Building:
    ctx: BuildContext


@dataclass(frozen=True, slots=True)
class Committed:
    metadata: AtlasMetadata
    frames: dict
    mask: Any
    xscale: float
    yscale: float
    source: Any


@dataclass(frozen=True, slots=True)
class Loaded:
    metadata: AtlasMetadata
    frames: dict
    mask: Any
    xscale: float
    yscale: float
    source: Any


SheetState = Building | Committed | Loaded


def _ready(metadata: AtlasMetadata, frame_w: int, frame_h: int, mask: Any, source: Any, kind: type) -> Any:
    xscale, yscale = compute_scales(frame_w, frame_h, metadata.xdim, metadata.ydim)
    return kind(
        metadata=metadata,
        frames=to_frame_map(metadata.frames),
        mask=mask,
        xscale=xscale,
        yscale=yscale,
        source=source,
    )


# ---------------------------------------------------------------------------
# Mask sheet
# ---------------------------------------------------------------------------


class MaskSheet:
    """Atlas of mask frames plus the metadata to apply them.

    Parameters
    ----------
    opts : Mapping | SheetOptionsV1
        Sheet options (see :class:`~mask_atlas.utils.validators.SheetOptionsV1`).
    renderer : Any
        Renderer/Capture Service; a :class:`RasterRenderer` by default.
    into : Group | None
        Parent for frame content groups; the renderer's stage by default.
    yield_fn : Callable | None
        Continuation run between snapshot and reload on the off-screen
        capture path.
    trash : ResourceOwnershipTable | None
        Owner table for temporary snapshots.
    temp_directory : str | Path | None
        Where snapshots are written; :func:`fs.temp_dir` by default.

    Raises
    ------
    MissingOptionError
        If options, the name or a frame dimension are missing.
    ProtectedLocationError
        If a stale atlas must be deleted from a protected directory.
    """

    def __init__(
        self,
        opts: Any,
        renderer: Any = None,
        into: Group | None = None,
        yield_fn: Callable[[], Any] | None = None,
        trash: ResourceOwnershipTable | None = None,
        temp_directory: str | Path | None = None,
    ) -> None:
        opts = coerce_options(opts)
        spec = resolve_sheet_spec(opts)

        self.frame_w = spec.frame_w
        self.frame_h = spec.frame_h
        self.filename = spec.filename
        self.directory = Path(opts["dir"]) if opts.get("dir") else fs.cache_dir()
        self.path = fs.resolve_path(self.filename, self.directory)
        self.read_only_dirs = tuple(opts.get("read_only_dirs") or ())
        self.hidden = bool(opts.get("hidden"))

        self.renderer = renderer if renderer is not None else RasterRenderer()
        self.into = into if into is not None else getattr(self.renderer, "stage", None)
        self.adapter = PersistenceAdapter(spec.method, spec.data, image_path=self.path)

        self._clear = opts.get("clear")
        self._full = opts.get("full")
        self._yield = yield_fn or _no_yield
        self._trash = trash
        self._temp_directory = temp_directory

        exists = fs.file_exists(self.filename, self.directory)
        metadata = None
        if exists and not opts.get("recreate"):
            metadata = self.adapter.read(self.filename, self.frame_w, self.frame_h)

        if metadata is not None:
            mask = self.renderer.load_mask(self.filename, self.directory)
            self._state: SheetState = _ready(metadata, self.frame_w, self.frame_h, mask, spec.data, Loaded)
            logger.info("Loaded mask sheet %s (%d frames)", self.path, len(self._state.frames))
            return

        if exists:
            self._remove_stale()
        self._state = Building(self._new_context())
        logger.info(
            "Building mask sheet %s (%dx%d frames, capacity %d)",
            self.path, self.frame_w, self.frame_h, self._state.ctx.plan.capacity,
        )

    # -- construction helpers ------------------------------------------------

    def _remove_stale(self) -> None:
        if fs.is_protected_dir(self.directory, self.read_only_dirs):
            raise ProtectedLocationError("Mask sheet is missing data")
        fs.safe_remove(self.path)
        logger.warning("Removed stale mask sheet %s", self.path)

    def _new_context(self) -> BuildContext:
        canvas_w, canvas_h = canvas_bound(self.renderer.content_width, self.renderer.content_height)

        mgroup, stash = Group(), Group()
        mgroup.is_visible = False
        stash.is_visible = False

        return BuildContext(
            registry=FrameRegistry(),
            plan=grid_counts(self.frame_w, self.frame_h, canvas_w, canvas_h),
            cursor=GridCursor(),
            mgroup=mgroup,
            stash=stash,
            strategy=CaptureStrategy(self.renderer, canvas_w, canvas_h, self._temp_directory, self._trash),
        )

    # -- state access --------------------------------------------------------

    @property
    def state(self) -> SheetState:
        return self._state

    def _building(self) -> BuildContext:
        if not isinstance(self._state, Building):
            raise SheetStateError("Mask already created")
        return self._state.ctx

    def _ready_state(self) -> Committed | Loaded:
        if isinstance(self._state, Building):
            raise SheetStateError("Mask not ready")
        return self._state

    # -- build ---------------------------------------------------------------

    def add_frame(
        self,
        painter: Painter,
        key: Hashable,
        is_white: bool = False,
        after: AfterHook | None = None,
    ) -> None:
        """Paint, capture and place one frame.

        The content group gets a frame-sized background (white if
        ``is_white``, else black) and ``painter`` draws over it in the
        opposite colour.  A frame whose painting or capture fails takes no
        cell and leaves nothing behind in ``into``.

        Raises
        ------
        SheetStateError
            If the sheet was committed or loaded.
        CapacityError
            If every grid cell is already used.
        CaptureError
            If the content cannot be brought onto the visible canvas.
        TypeError, ValueError
            If ``key`` is not an int, finite float or str, or is already used.
        """
        ctx = self._building()
        if not ctx.cursor.has_room(ctx.plan):
            raise CapacityError("No space for new frames")

        ctx.registry.check(key)
        x, y = ctx.cursor.position

        content = Group()
        if self.into is not None:
            self.into.insert(content)
        try:
            background = 1.0 if is_white else 0.0
            new_rect(content, 0, 0, self.frame_w, self.frame_h, background)
            painter(content, 1.0 - background, self.frame_w, self.frame_h, key)
            content.is_visible = not self.hidden

            ox, oy = content.stage_origin()
            left, top = ox + content.x, oy + content.y
            bounds = Bounds(left, top, left + self.frame_w, top + self.frame_h)

            image = ctx.strategy.capture(content, bounds, self.hidden, self._yield)

            # Only a captured frame takes a cell
            ctx.registry.record(key, x, y)
            ctx.mgroup.insert(image)
            image.move_to(x, y)
            ctx.cursor = ctx.cursor.advance(ctx.plan)
            logger.debug("Placed frame %r at (%d, %d)", key, x, y)

            if after is not None:
                after(content, key)
        finally:
            content.remove_self()

    def commit(self) -> AtlasMetadata:
        """Save the atlas and its corrected metadata; the sheet becomes read-only.

        Raises
        ------
        SheetStateError
            If already committed/loaded, or no frame was added.
        """
        ctx = self._building()
        if len(ctx.registry) == 0:
            raise SheetStateError("Cannot commit a mask sheet without frames")

        xdim, ydim = final_dims(ctx.cursor, ctx.plan)
        metadata = AtlasMetadata(
            frames=ctx.registry.corrected(xdim, ydim, self.frame_w, self.frame_h), xdim=xdim, ydim=ydim
        )

        new_rect(ctx.mgroup, 0, 0, xdim, ydim, 0.0).to_back()
        self.renderer.snapshot_to_file(ctx.mgroup, self.filename, self.directory)

        ctx.registry.correct(xdim, ydim, self.frame_w, self.frame_h)
        source = self.adapter.write(metadata, self.filename)

        # Releases off-screen capture snapshots through their images' teardown
        ctx.mgroup.remove_self()
        ctx.stash.remove_self()

        mask = self.renderer.load_mask(self.filename, self.directory)
        self._state = _ready(metadata, self.frame_w, self.frame_h, mask, source, Committed)
        logger.info("Committed mask sheet %s (%dx%d, %d frames)", self.path, xdim, ydim, len(ctx.registry))
        return metadata

    # -- rect stash ----------------------------------------------------------

    def get_rect(
        self,
        group: Group,
        x: float,
        y: float,
        w: float,
        h: float,
        fill: float | None = None,
    ) -> Rect:
        """Top-left aligned rect in ``group``, reusing a stashed one if possible."""
        ctx = self._building()
        if ctx.stash.num_children == 0:
            return new_rect(group, x, y, w, h, fill)

        rect = group.insert(ctx.stash[ctx.stash.num_children - 1])
        rect.move_to(x, y)
        rect.width, rect.height = w, h
        rect.set_fill_color(1.0 if fill is None else fill)
        rect.is_visible = True
        return rect

    def stash_rect(self, rect: Rect) -> None:
        """Hand a rect back for reuse; removed outright once building is over."""
        if isinstance(self._state, Building):
            self._state.ctx.stash.insert(rect)
        else:
            rect.remove_self()

    # -- use -----------------------------------------------------------------

    def bind_patterns(self, clear: Hashable | None = None, full: Hashable | None = None) -> None:
        """Designate the keys meaning "fully hidden" and "fully unmasked"."""
        self._clear = clear
        self._full = full

    def set(self, target: Any, key: Hashable) -> None:
        """Apply frame ``key`` to ``target``.

        The clear key hides ``target``; the full key shows it unmasked;
        any other key attaches the atlas as a stencil positioned by the
        frame's corrected offset.

        Raises
        ------
        SheetStateError
            If the sheet is still building.
        KeyError
            If ``key`` names no frame.
        """
        state = self._ready_state()

        if self._clear is not None and key == self._clear:
            target.is_visible = False
            return

        target.is_visible = True
        if self._full is not None and key == self._full:
            target.set_mask(None)
            return

        try:
            x, y = state.frames[key]
        except KeyError:
            raise KeyError(f"No frame {key!r} in mask sheet {self.filename}") from None

        target.set_mask(state.mask)
        target.mask_x = x * state.xscale
        target.mask_y = y * state.yscale
        target.mask_scale_x = state.xscale
        target.mask_scale_y = state.yscale

    # -- introspection -------------------------------------------------------

    def get_data(self) -> AtlasMetadata | None:
        if isinstance(self._state, Building):
            return None
        return self._state.metadata

    def get_source(self) -> Any:
        if isinstance(self._state, Building):
            return None
        return self._state.source

    def is_loaded(self) -> bool:
        return not isinstance(self._state, Building)

    @property
    def xscale(self) -> float:
        return self._ready_state().xscale

    @property
    def yscale(self) -> float:
        return self._ready_state().yscale

    def __repr__(self) -> str:
        return f"MaskSheet({self.filename!r}, state={type(self._state).__name__})"


# ---------------------------------------------------------------------------
# Data-only sheet
# ---------------------------------------------------------------------------


class DataSheet:
    """Placement and metadata without pixels.

    Produces the metadata an atlas of the same shape would have, so it can
    be stored before the image exists.  ``canvas_width``/``canvas_height``
    stand in for the visible area a renderer would report.
    """

    def __init__(self, opts: Any, canvas_width: int = 1024, canvas_height: int = 768) -> None:
        opts = coerce_options(opts)
        spec = resolve_sheet_spec(opts)

        self.frame_w = spec.frame_w
        self.frame_h = spec.frame_h
        self.filename = spec.filename
        if spec.method == "image_metadata":
            raise MissingOptionError(
                "Data-only sheets need a raw or database persistence method: "
                "image_metadata writes into an atlas image that does not exist yet"
            )
        directory = Path(opts["dir"]) if opts.get("dir") else None
        self.adapter = PersistenceAdapter(
            spec.method, spec.data, image_path=fs.resolve_path(self.filename, directory)
        )

        canvas_w, canvas_h = canvas_bound(canvas_width, canvas_height)
        self._state: Building | Committed = Building(
            BuildContext(
                registry=FrameRegistry(),
                plan=grid_counts(self.frame_w, self.frame_h, canvas_w, canvas_h),
                cursor=GridCursor(),
            )
        )

    @property
    def state(self) -> Building | Committed:
        return self._state

    def _building(self) -> BuildContext:
        if not isinstance(self._state, Building):
            raise SheetStateError("Data already created")
        return self._state.ctx

    def add_frame(self, key: Hashable) -> None:
        ctx = self._building()
        if not ctx.cursor.has_room(ctx.plan):
            raise CapacityError("No space for new frames")

        x, y = ctx.cursor.position
        ctx.registry.record(key, x, y)
        ctx.cursor = ctx.cursor.advance(ctx.plan)

    def commit(self) -> AtlasMetadata:
        ctx = self._building()
        if len(ctx.registry) == 0:
            raise SheetStateError("Cannot commit a mask sheet without frames")

        xdim, ydim = final_dims(ctx.cursor, ctx.plan)
        metadata = AtlasMetadata(
            frames=ctx.registry.corrected(xdim, ydim, self.frame_w, self.frame_h), xdim=xdim, ydim=ydim
        )
        ctx.registry.correct(xdim, ydim, self.frame_w, self.frame_h)
        source = self.adapter.write(metadata, self.filename)

        self._state = _ready(metadata, self.frame_w, self.frame_h, None, source, Committed)
        logger.info("Committed mask data for %s (%dx%d, %d frames)", self.filename, xdim, ydim, len(ctx.registry))
        return metadata

    def get_data(self) -> AtlasMetadata | None:
        if isinstance(self._state, Building):
            return None
        return self._state.metadata

    def get_source(self) -> Any:
        if isinstance(self._state, Building):
            return None
        return self._state.source

    def is_loaded(self) -> bool:
        return isinstance(self._state, Committed)

    def frame_map(self) -> Mapping[Hashable, tuple[int, int]]:
        if isinstance(self._state, Building):
            raise SheetStateError("Mask not ready")
        return self._state.frames
