"""Build (or reuse) a mask atlas from a sheet.v1 YAML config.

Steps:
    1. Load and validate the config (SheetConfigV1)
    2. Configure logging from its ``logging:`` block (CLI flags win)
    3. Open the sheet: an existing valid atlas is reused as-is
    4. Otherwise paint every frame with its built-in painter and commit
    5. Print a summary (file, atlas size, frame count, persistence result)
    6. Optionally write a YAML manifest of the atlas and its frame offsets

With ``--data-only`` no pixels are produced: the frame placement metadata
is computed and persisted exactly as a full build would, so it can be
stored ahead of the atlas image.

CLI:
    python scripts/build_mask_sheet.py configs/sheet_example.yaml
    python scripts/build_mask_sheet.py configs/sheet_example.yaml --recreate -v
    python scripts/build_mask_sheet.py configs/sheet_example.yaml --data-only
    python scripts/build_mask_sheet.py configs/sheet_example.yaml --manifest outputs/masks/fills.yaml

build_sheet_main() is callable from code (and tests) and returns the same
summary as a dict.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from mask_atlas.mask_sheet import DataSheet, MaskSheet, MaskSheetError
from mask_atlas.mask_sheet.painters import painter_for
from mask_atlas.raster import RasterRenderer, Stage
from mask_atlas.utils import fs
from mask_atlas.utils.logging_config import install_excepthook, set_level, setup_logging
from mask_atlas.utils.validators import load_sheet_config

logger = logging.getLogger(__name__)


def build_sheet_main(
    config_path: str,
    data_only: bool = False,
    recreate: bool = False,
    output_dir: Optional[str] = None,
    manifest_path: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the sheet described by ``config_path``.

    Parameters
    ----------
    config_path : str
        Path to a sheet.v1 YAML file
    data_only : bool
        Compute and persist metadata without painting
    recreate : bool
        Rebuild even if a valid atlas already exists
    output_dir : Optional[str]
        Overrides ``sheet.dir``
    manifest_path : Optional[str]
        Where to write a ``sheet_manifest.v1`` YAML; skipped when None

    Returns
    -------
    Dict[str, Any]
        filename, path (None for data-only), xdim, ydim, frames, reused,
        source, manifest (None unless written)
    """
    cfg = load_sheet_config(config_path)
    opts = cfg.sheet.to_opts()
    if recreate:
        opts["recreate"] = True
    if output_dir is not None:
        opts["dir"] = str(output_dir)

    if data_only:
        sheet = DataSheet(opts, canvas_width=cfg.stage.width, canvas_height=cfg.stage.height)
        for frame in cfg.frames:
            sheet.add_frame(frame.key)
        metadata = sheet.commit()
        image_path, reused = None, False
    else:
        renderer = RasterRenderer(Stage(cfg.stage.width, cfg.stage.height))
        sheet = MaskSheet(opts, renderer)
        reused = sheet.is_loaded()

        if not reused:
            for frame in cfg.frames:
                sheet.add_frame(painter_for(frame), frame.key, is_white=frame.is_white)
            sheet.commit()

        metadata = sheet.get_data()
        image_path = str(sheet.path)

    summary = {
        'filename': sheet.filename,
        'path': image_path,
        'xdim': metadata.xdim,
        'ydim': metadata.ydim,
        'frames': len(metadata.frames) // 3,
        'reused': reused,
        'source': sheet.get_source(),
        'manifest': None,
    }

    # =======================================================================
    # SHEET MANIFEST
    # =======================================================================
    if manifest_path is not None:
        frames = metadata.frames
        manifest_data = {
            'schema': 'sheet_manifest.v1',
            'config': str(config_path),
            'filename': summary['filename'],
            'path': image_path,
            'xdim': metadata.xdim,
            'ydim': metadata.ydim,
            'reused': reused,
            'frames': [
                {'key': frames[i], 'x': frames[i + 1], 'y': frames[i + 2]}
                for i in range(0, len(frames), 3)
            ],
        }
        fs.atomic_yaml_dump(manifest_data, manifest_path)
        summary['manifest'] = str(manifest_path)
        logger.info("Wrote sheet manifest %s", manifest_path)

    return summary


def main() -> int:
    """CLI entrypoint for mask sheet builds."""
    parser = argparse.ArgumentParser(
        description="Build or reuse a mask atlas from a sheet.v1 config",
    )
    parser.add_argument(
        "config",
        type=Path,
        help="Sheet config (YAML, schema sheet.v1)",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory for the atlas image (overrides sheet.dir)",
    )
    parser.add_argument(
        "--recreate",
        action="store_true",
        help="Rebuild even if a valid atlas exists",
    )
    parser.add_argument(
        "--data-only",
        action="store_true",
        help="Persist frame metadata only, no image",
    )
    parser.add_argument(
        "--manifest",
        type=Path,
        default=None,
        help="Write a YAML manifest of the atlas and its frame offsets",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    if not args.config.exists():
        print(f"Error: Config file does not exist: {args.config}", file=sys.stderr)
        return 1

    log_cfg = load_sheet_config(args.config).logging
    setup_logging(
        log_level=log_cfg.log_level,
        log_file=log_cfg.log_file,
        json=log_cfg.json_lines,
    )
    if args.verbose:
        set_level("DEBUG")
    install_excepthook()

    try:
        summary = build_sheet_main(
            str(args.config),
            data_only=args.data_only,
            recreate=args.recreate,
            output_dir=args.output_dir,
            manifest_path=args.manifest,
        )
    except MaskSheetError as e:
        logger.error("Mask sheet build failed: %s", e)
        return 1

    action = "Reused" if summary['reused'] else "Built"
    target = summary['path'] or summary['filename']
    print(f"{action} {target}: {summary['xdim']}x{summary['ydim']}, {summary['frames']} frames")
    if isinstance(summary['source'], str) and not summary['reused']:
        print(summary['source'])
    return 0


if __name__ == "__main__":
    sys.exit(main())
