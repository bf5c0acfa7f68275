"""Filesystem abstraction with transparent Markdown rendering.

``DirFileSystem`` opens paths below a root directory. ``RenderingFileSystem``
wraps another filesystem and replaces the content of Markdown files with a
rendered HTML page, keeping the handle contract intact: ``stat().size``
always matches the bytes ``read()`` produces, and directory handles pass
through untouched.
"""

import errno
import io
import logging
import os
import posixpath
import stat as stat_module
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from .config import DEFAULT_SUFFIXES
from .render import Renderer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileInfo:
    """Metadata for one filesystem entry."""

    name: str
    size: int
    mode: int
    mtime: float
    is_dir: bool

    @classmethod
    def from_stat(cls, name: str, st: os.stat_result) -> "FileInfo":
        return cls(
            name=name,
            size=st.st_size,
            mode=st.st_mode,
            mtime=st.st_mtime,
            is_dir=stat_module.S_ISDIR(st.st_mode),
        )


@dataclass(frozen=True)
class VirtualFileInfo(FileInfo):
    """Metadata of a rendered file.

    Everything comes from the underlying file except ``size``, which is the
    length of the rendered content.
    """

    underlying: FileInfo | None = None

    @classmethod
    def wrap(cls, info: FileInfo, size: int) -> "VirtualFileInfo":
        return cls(
            name=info.name,
            size=size,
            mode=info.mode,
            mtime=info.mtime,
            is_dir=info.is_dir,
            underlying=info,
        )


class File(ABC):
    """An open file or directory.

    Regular files support ``read``/``seek``/``tell``; directories support
    ``readdir``. Both support ``stat`` and ``close``. Each handle is closed
    exactly once by whoever opened it.
    """

    @abstractmethod
    def read(self, size: int = -1) -> bytes: ...

    @abstractmethod
    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int: ...

    @abstractmethod
    def tell(self) -> int: ...

    @abstractmethod
    def stat(self) -> FileInfo: ...

    @abstractmethod
    def readdir(self, n: int = 0) -> list[FileInfo]:
        """Return directory entries.

        With ``n <= 0`` all remaining entries are returned. With ``n > 0`` at
        most ``n`` entries are returned and the next call continues after
        them; an exhausted directory yields an empty list.
        """
        ...

    @abstractmethod
    def close(self) -> None: ...

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class FileSystem(ABC):
    """Something that opens files by slash-separated name."""

    @abstractmethod
    def open(self, name: str) -> File:
        """Open ``name``.

        Raises:
            FileNotFoundError: If the name does not resolve.
            OSError: For other failures to open it.
        """
        ...


class OSFile(File):
    """A real file or directory on disk."""

    def __init__(self, path: Path, stream: io.BufferedReader | None = None):
        self.path = path
        self._stream = stream
        self._entries: list[FileInfo] | None = None
        self._cursor = 0

    @classmethod
    def open(cls, path: Path) -> "OSFile":
        st = os.stat(path)
        if stat_module.S_ISDIR(st.st_mode):
            return cls(path)
        return cls(path, open(path, "rb"))

    @property
    def is_dir(self) -> bool:
        return self._stream is None

    def read(self, size: int = -1) -> bytes:
        if self._stream is None:
            raise IsADirectoryError(errno.EISDIR, "Is a directory", str(self.path))
        return self._stream.read(size)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if self._stream is None:
            raise IsADirectoryError(errno.EISDIR, "Is a directory", str(self.path))
        return self._stream.seek(offset, whence)

    def tell(self) -> int:
        if self._stream is None:
            raise IsADirectoryError(errno.EISDIR, "Is a directory", str(self.path))
        return self._stream.tell()

    def stat(self) -> FileInfo:
        if self._stream is not None and not self._stream.closed:
            st = os.fstat(self._stream.fileno())
        else:
            st = os.stat(self.path)
        return FileInfo.from_stat(self.path.name, st)

    def readdir(self, n: int = 0) -> list[FileInfo]:
        if self._stream is not None:
            raise NotADirectoryError(errno.ENOTDIR, "Not a directory", str(self.path))
        if self._entries is None:
            self._entries = _scan(self.path)

        if n <= 0:
            entries = self._entries[self._cursor :]
        else:
            entries = self._entries[self._cursor : self._cursor + n]
        self._cursor += len(entries)
        return entries

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()


def _scan(path: Path) -> list[FileInfo]:
    entries = []
    with os.scandir(path) as it:
        for entry in it:
            try:
                st = entry.stat()
            except OSError:
                # Dangling symlink: describe the link itself
                st = entry.stat(follow_symlinks=False)
            entries.append(FileInfo.from_stat(entry.name, st))
    return entries


class DirFileSystem(FileSystem):
    """Opens names relative to a root directory.

    Names are slash-separated and cleaned before use, so ``..`` components
    can never reach outside the root.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def resolve(self, name: str) -> Path:
        """Map a request name to a path below the root."""
        if "\x00" in name or (os.sep != "/" and os.sep in name):
            raise FileNotFoundError(errno.ENOENT, "Invalid file name", name)
        cleaned = posixpath.normpath("/" + name.lstrip("/"))
        relative = cleaned.lstrip("/")
        return self.root / relative if relative else self.root

    def open(self, name: str) -> File:
        return OSFile.open(self.resolve(name))


class VirtualFile(File):
    """A file whose readable content has been replaced.

    Reads, seeks and ``stat().size`` are served from ``content``. The
    original handle is kept only for ``readdir`` and ``close``; its own
    content is never read through this wrapper. ``content`` stays readable
    after ``close``.
    """

    def __init__(self, underlying: File, content: bytes):
        self._underlying = underlying
        self._content = bytes(content)
        self._reader = io.BytesIO(self._content)

    @property
    def content(self) -> bytes:
        return self._content

    def read(self, size: int = -1) -> bytes:
        return self._reader.read(size)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._reader.seek(offset, whence)

    def tell(self) -> int:
        return self._reader.tell()

    def stat(self) -> VirtualFileInfo:
        return VirtualFileInfo.wrap(self._underlying.stat(), len(self._content))

    def readdir(self, n: int = 0) -> list[FileInfo]:
        return self._underlying.readdir(n)

    def close(self) -> None:
        self._underlying.close()


class RenderingFileSystem(FileSystem):
    """Serves Markdown files from ``delegate`` as rendered HTML pages.

    Directories are returned as-is. A regular file is read completely and
    rendered on every open when its suffix is one of ``markdown_suffixes``,
    or always when ``render_all`` is set. Everything else passes through.
    """

    def __init__(
        self,
        delegate: FileSystem,
        renderer: Renderer,
        render_all: bool = False,
        markdown_suffixes: list[str] | None = None,
    ):
        self.delegate = delegate
        self.renderer = renderer
        self.render_all = render_all
        suffixes = markdown_suffixes if markdown_suffixes is not None else DEFAULT_SUFFIXES
        self.markdown_suffixes = {s.lower() for s in suffixes}

    def should_render(self, name: str) -> bool:
        if self.render_all:
            return True
        return posixpath.splitext(name)[1].lower() in self.markdown_suffixes

    def open(self, name: str) -> File:
        logger.debug("Open: %s", name)
        handle = self.delegate.open(name)
        try:
            info = handle.stat()
            if info.is_dir or not self.should_render(info.name):
                return handle
            content = self.renderer.render(handle.read())
        except Exception:
            handle.close()
            raise
        return VirtualFile(handle, content)
