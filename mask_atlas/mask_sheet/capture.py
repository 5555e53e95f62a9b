"""Region capture for mask frames, with an off-screen snapshot fallback.

Three paths, picked per frame:

1. Content is visible: capture the frame bounds straight off the stage.
2. Content may be hidden but lies inside the frame bounds: capture the
   content group directly.
3. Content spills outside the frame bounds: translate it fully on-screen,
   snapshot it to a temporary PNG, give the caller's continuation a turn,
   then reload the part that corresponds to the (untranslated) frame bounds
   through a one-frame image sheet.  Direct captures of off-screen content
   are unreliable, the snapshot is not.

The temporary PNG must outlive the image that was loaded from it, so it is
registered in a :class:`ResourceOwnershipTable` against that image and
deleted when the image is torn down.

Content that cannot fit on the visible canvas even after translation is a
fatal :class:`CaptureError`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from mask_atlas.mask_sheet.errors import CaptureError
from mask_atlas.utils import fs

logger = logging.getLogger(__name__)


def _no_yield() -> None:
    pass


# ---------------------------------------------------------------------------
# Deferred release
# ---------------------------------------------------------------------------


class ResourceOwnershipTable:
    """Owner -> release actions, run exactly once when the owner is torn down.

    Owners exposing ``add_teardown(callback)`` (scene display objects) get
    their actions released automatically from ``remove_self()``; others must
    call :meth:`release` from their own teardown path.
    """

    def __init__(self) -> None:
        self._owners: dict[int, Any] = {}
        self._actions: dict[int, list[Callable[[], Any]]] = {}

    def register(self, owner: Any, action: Callable[[], Any]) -> None:
        key = id(owner)
        if key not in self._actions:
            self._owners[key] = owner
            self._actions[key] = []
            if hasattr(owner, "add_teardown"):
                owner.add_teardown(self.release)
        self._actions[key].append(action)

    def release(self, owner: Any) -> int:
        """Run and forget the actions registered for ``owner``; returns how many ran."""
        key = id(owner)
        self._owners.pop(key, None)
        actions = self._actions.pop(key, [])
        for action in actions:
            action()
        return len(actions)

    def pending(self, owner: Any | None = None) -> int:
        """Number of unreleased actions, for one owner or overall."""
        if owner is not None:
            return len(self._actions.get(id(owner), []))
        return sum(len(actions) for actions in self._actions.values())


# Shared table used when a strategy is not given its own
default_trash = ResourceOwnershipTable()


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------


class CaptureStrategy:
    """Obtain a capturable image for one frame region.

    Parameters
    ----------
    renderer : Any
        Renderer/Capture Service (``capture_bounds``, ``capture_group``,
        ``snapshot_to_file``, ``build_single_frame_sheet``,
        ``instantiate_from_sheet``).
    canvas_w, canvas_h : int
        Usable visible canvas; translated content must fit inside it.
    temp_directory : str | Path | None
        Where snapshots go; defaults to :func:`fs.temp_dir`.
    trash : ResourceOwnershipTable | None
        Table owning temp snapshots; defaults to the module-wide table.
    """

    def __init__(
        self,
        renderer: Any,
        canvas_w: int,
        canvas_h: int,
        temp_directory: str | Path | None = None,
        trash: ResourceOwnershipTable | None = None,
    ) -> None:
        self.renderer = renderer
        self.canvas_w = canvas_w
        self.canvas_h = canvas_h
        self.temp_directory = Path(temp_directory) if temp_directory is not None else fs.temp_dir()
        self.trash = trash if trash is not None else default_trash

    def capture(
        self,
        group: Any,
        bounds: Any,
        hidden: bool = False,
        yield_fn: Callable[[], Any] | None = None,
    ) -> Any:
        """Image of ``group``'s content restricted to ``bounds``."""
        if not hidden:
            return self.renderer.capture_bounds(bounds)

        gbounds = group.content_bounds
        if bounds.contains(gbounds):
            logger.debug("Capturing hidden group directly (%s)", gbounds)
            return self.renderer.capture_group(group)

        return self._capture_offscreen(group, bounds, gbounds, yield_fn or _no_yield)

    def _capture_offscreen(self, group: Any, bounds: Any, gbounds: Any, yield_fn: Callable[[], Any]) -> Any:
        move_x, move_y = max(0, -gbounds.x_min), max(0, -gbounds.y_min)

        if gbounds.x_max + move_x > self.canvas_w:
            raise CaptureError("Frame too wide to capture!")
        if gbounds.y_max + move_y > self.canvas_h:
            raise CaptureError("Frame too tall to capture!")

        name = fs.unused_filename(self.temp_directory)
        x0, y0 = group.x, group.y
        group.x, group.y = x0 + move_x, y0 + move_y
        try:
            self.renderer.snapshot_to_file(group, name, self.temp_directory)
        finally:
            group.x, group.y = x0, y0

        yield_fn()

        # Snapshot origin is the translated content's top-left
        moved = gbounds.translated(move_x, move_y)
        frame_rect = (
            int(round(bounds.x_min + move_x - moved.x_min)),
            int(round(bounds.y_min + move_y - moved.y_min)),
            int(round(bounds.width)),
            int(round(bounds.height)),
        )
        sheet = self.renderer.build_single_frame_sheet(name, self.temp_directory, frame_rect)
        image = self.renderer.instantiate_from_sheet(group.parent, sheet, 0)

        path = fs.resolve_path(name, self.temp_directory)
        self.trash.register(image, lambda: fs.safe_remove(path))
        logger.debug("Captured off-screen content via %s (moved by %s, %s)", path, move_x, move_y)
        return image
