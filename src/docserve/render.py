"""Markdown to HTML page rendering.

Two strategies exist: a local one that converts with Python-Markdown and
links stylesheets materialized into the served root, and a remote one that
posts the document to a Markdown rendering API and links hosted
stylesheets.
"""

import enum
import logging
import posixpath
from abc import ABC, abstractmethod
from pathlib import Path

import markdown
import requests

from .assets import asset_names, materialize
from .cleanup import PendingCleanup
from .config import DEFAULT_EXTENSIONS, GITHUB_MARKDOWN_ENDPOINT, DocserveConfig
from .errors import RemoteRenderError
from .page import assemble

logger = logging.getLogger(__name__)

REMOTE_STYLESHEETS = [
    "https://cdnjs.cloudflare.com/ajax/libs/github-markdown-css/5.5.1/github-markdown.min.css",
    "//cdnjs.cloudflare.com/ajax/libs/octicons/2.1.2/octicons.css",
]

MARKDOWN_CONTENT_TYPE = "text/x-markdown"
CHUNK_SIZE = 8192


class RenderStrategy(enum.Enum):
    """Which renderer backs the server."""

    LOCAL = "local"
    REMOTE = "remote"

    @classmethod
    def from_offline(cls, offline: bool) -> "RenderStrategy":
        return cls.LOCAL if offline else cls.REMOTE


class Renderer(ABC):
    """Converts a Markdown document into a complete HTML page."""

    strategy: RenderStrategy

    @abstractmethod
    def render(self, source: bytes) -> bytes:
        """Render Markdown bytes to a page.

        Either the whole page is returned or an exception is raised; partial
        output is never returned.
        """
        ...

    @property
    @abstractmethod
    def stylesheets(self) -> list[str]:
        """Stylesheet URLs linked from rendered pages."""
        ...


class LocalRenderer(Renderer):
    """Render with Python-Markdown and stylesheets served from the root.

    Each render rewrites the bundled stylesheets into ``root`` and registers
    them with ``cleanup`` so they are removed when the server stops.
    """

    strategy = RenderStrategy.LOCAL

    def __init__(
        self,
        root: Path,
        cleanup: PendingCleanup,
        extensions: list[str] | None = None,
        stylesheet_base: str = "/",
    ):
        self.root = Path(root)
        self.cleanup = cleanup
        self.extensions = list(extensions if extensions is not None else DEFAULT_EXTENSIONS)
        self.stylesheet_base = stylesheet_base

    @property
    def stylesheets(self) -> list[str]:
        return [posixpath.join(self.stylesheet_base, name) for name in asset_names()]

    def render(self, source: bytes) -> bytes:
        paths = materialize(self.root)
        self.cleanup.register(paths)
        fragment = self.convert(source)
        logger.debug("Rendered %d bytes locally", len(source))
        return assemble(fragment, self.stylesheets)

    def convert(self, source: bytes) -> bytes:
        """Convert Markdown bytes to an HTML fragment."""
        text = source.decode("utf-8", errors="replace")
        # Markdown instances are not thread-safe; this builds one per call
        html = markdown.markdown(text, extensions=self.extensions)
        return html.encode("utf-8")


class RemoteRenderer(Renderer):
    """Render through a remote Markdown API (GitHub's raw endpoint by default).

    Any transport error or non-success status fails the render. There is no
    retry and no fallback to local rendering. With ``timeout=None`` a hung
    API blocks the calling thread indefinitely.
    """

    strategy = RenderStrategy.REMOTE

    def __init__(
        self,
        endpoint: str = GITHUB_MARKDOWN_ENDPOINT,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def stylesheets(self) -> list[str]:
        return list(REMOTE_STYLESHEETS)

    def render(self, source: bytes) -> bytes:
        fragment = self.fetch(source)
        logger.debug("Rendered %d bytes via %s", len(source), self.endpoint)
        return assemble(fragment, self.stylesheets)

    def fetch(self, source: bytes) -> bytes:
        """POST the document and return the rendered fragment.

        Raises:
            RemoteRenderError: On transport errors or a non-success status.
        """
        try:
            response = self.session.post(
                self.endpoint,
                data=source,
                headers={"Content-Type": MARKDOWN_CONTENT_TYPE},
                timeout=self.timeout,
                stream=True,
            )
        except requests.RequestException as e:
            raise RemoteRenderError(f"Remote renderer {self.endpoint} failed: {e}") from e

        try:
            if not response.ok:
                raise RemoteRenderError(
                    f"Remote renderer {self.endpoint} answered "
                    f"{response.status_code} {response.reason}",
                    status_code=response.status_code,
                )
            return b"".join(response.iter_content(chunk_size=CHUNK_SIZE))
        except requests.RequestException as e:
            raise RemoteRenderError(
                f"Remote renderer {self.endpoint} failed mid-response: {e}",
                status_code=response.status_code,
            ) from e
        finally:
            response.close()


def create_renderer(
    config: DocserveConfig,
    cleanup: PendingCleanup,
    session: requests.Session | None = None,
) -> Renderer:
    """Build the renderer selected by ``config.render.offline``."""
    strategy = RenderStrategy.from_offline(config.render.offline)
    if strategy is RenderStrategy.LOCAL:
        return LocalRenderer(
            config.root_dir,
            cleanup,
            extensions=config.render.extensions,
        )
    return RemoteRenderer(
        endpoint=config.render.endpoint,
        timeout=config.render.timeout,
        session=session,
    )
