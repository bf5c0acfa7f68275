"""Embedded stylesheets and their materialization into the served root.

The stylesheets ship as package data in ``vendor/``. The local renderer
writes them next to the served documents so rendered pages can link them by
root-relative URL.
"""

import contextlib
import logging
import os
import tempfile
from pathlib import Path

from .errors import AssetError, AssetWriteError

logger = logging.getLogger(__name__)

# Path to the bundled stylesheets (ships with docserve)
_VENDOR_DIR = Path(__file__).parent / "vendor"

ASSET_MODE = 0o700


def asset_names() -> list[str]:
    """Return the names of all embedded assets, sorted."""
    return sorted(p.name for p in _VENDOR_DIR.glob("*.css") if p.is_file())


def read_asset(name: str) -> bytes:
    """Return the payload of one embedded asset.

    Raises:
        AssetError: If no asset with that name is bundled.
    """
    if name not in asset_names():
        raise AssetError(f"Unknown asset: {name}")
    try:
        return (_VENDOR_DIR / name).read_bytes()
    except OSError as e:
        raise AssetError(f"Cannot read asset {name}: {e}") from e


def materialize(root: Path) -> list[Path]:
    """Write every embedded asset into ``root``.

    Each payload is written to a temporary file in ``root`` and renamed over
    the asset path, so concurrent readers see either the old file or the
    complete new one. Writing stops at the first failure; assets written
    before it stay on disk.

    Args:
        root: Directory to write the assets into.

    Returns:
        Absolute paths of the written assets, in asset-name order.

    Raises:
        AssetError: If an embedded asset cannot be read.
        AssetWriteError: If an asset cannot be written.
    """
    root = Path(root).resolve()
    paths = []
    for name in asset_names():
        path = root / name
        data = read_asset(name)
        try:
            _replace_file(path, data)
        except OSError as e:
            raise AssetWriteError(path, e) from e
        logger.debug("Wrote asset %s (%d bytes)", path, len(data))
        paths.append(path)
    return paths


def _replace_file(path: Path, data: bytes) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(tmp_name, ASSET_MODE)
        os.replace(tmp_name, path)
    except OSError:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise
