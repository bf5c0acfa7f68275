"""docserve - Serve a directory over HTTP, rendering Markdown as HTML pages."""

__version__ = "0.1.0"

from .errors import (
    AssetError,
    AssetWriteError,
    CleanupError,
    DocserveError,
    RemoteRenderError,
    RenderError,
)
from .page import assemble
from .render import LocalRenderer, RemoteRenderer, RenderStrategy, create_renderer
from .vfs import DirFileSystem, RenderingFileSystem, VirtualFile

__all__ = [
    "assemble",
    "create_renderer",
    "LocalRenderer",
    "RemoteRenderer",
    "RenderStrategy",
    "DirFileSystem",
    "RenderingFileSystem",
    "VirtualFile",
    "DocserveError",
    "RenderError",
    "AssetError",
    "AssetWriteError",
    "RemoteRenderError",
    "CleanupError",
    "__version__",
]
