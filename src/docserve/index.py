"""Directory index: which files live directly in which directory."""

import os
from pathlib import Path


def build_index(root: Path | str) -> dict[str, list[str]]:
    """Map every directory under ``root`` to its immediate file names.

    ``root`` itself and empty directories are included. Keys are directory
    paths as reached from ``root`` (so a relative root yields relative keys).
    File order follows the filesystem's enumeration order, which is not
    guaranteed to be stable across platforms.

    Args:
        root: Directory to traverse.

    Returns:
        Mapping of directory path to the names of the files directly in it.

    Raises:
        NotADirectoryError: If ``root`` is not a directory.
    """
    root = os.fspath(root)
    if not os.path.isdir(root):
        raise NotADirectoryError(f"Not a directory: {root}")

    index: dict[str, list[str]] = {}
    for dirpath, _dirnames, filenames in os.walk(root):
        index[dirpath] = list(filenames)
    return index
