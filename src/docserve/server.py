"""HTTP front end serving a directory through the rendering filesystem."""

import html
import io
import logging
import posixpath
import threading
import urllib.parse
from http import HTTPStatus
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer

from . import __version__
from .cleanup import PendingCleanup
from .config import DocserveConfig
from .errors import CleanupError, DocserveError, RemoteRenderError
from .render import create_renderer
from .vfs import DirFileSystem, File, FileInfo, FileSystem, RenderingFileSystem, VirtualFile

logger = logging.getLogger(__name__)

RENDERED_CONTENT_TYPE = "text/html; charset=utf-8"
INDEX_PAGE = "index.html"


class DocServer(ThreadingHTTPServer):
    """Threaded HTTP server bound to one filesystem.

    In strict mode the first render failure stops the server; the error is
    kept in ``fatal_error`` for the caller of ``run_server`` to re-raise.
    """

    daemon_threads = True

    def __init__(self, address, filesystem: FileSystem, strict: bool = False):
        super().__init__(address, DocRequestHandler)
        self.filesystem = filesystem
        self.strict = strict
        self.fatal_error: DocserveError | None = None
        self._abort_lock = threading.Lock()

    def abort(self, error: DocserveError) -> None:
        """Record ``error`` and stop serving."""
        with self._abort_lock:
            if self.fatal_error is not None:
                return
            self.fatal_error = error
        # shutdown() waits for serve_forever to return
        threading.Thread(target=self.shutdown, daemon=True).start()


class DocRequestHandler(SimpleHTTPRequestHandler):
    """Serves files, directory listings and rendered Markdown pages."""

    server: DocServer
    server_version = f"docserve/{__version__}"

    def send_head(self):
        name = self._request_name()
        handle = self._open(name)
        if handle is None:
            return None

        try:
            info = handle.stat()
            if not info.is_dir:
                return self._send_file(handle, info, name)

            if not urllib.parse.urlsplit(self.path).path.endswith("/"):
                handle.close()
                self._redirect_to_slash()
                return None

            index_name = posixpath.join(name, INDEX_PAGE)
            try:
                index = self.server.filesystem.open(index_name)
            except OSError:
                index = None
            except DocserveError as e:
                handle.close()
                self._render_failed(index_name, e)
                return None

            if index is not None:
                index_info = index.stat()
                if not index_info.is_dir:
                    handle.close()
                    return self._send_file(index, index_info, index_name)
                index.close()

            return self._send_listing(handle, name)
        except Exception:
            handle.close()
            raise

    def log_message(self, format, *args):
        logger.info("%s - %s", self.address_string(), format % args)

    def _request_name(self) -> str:
        path = urllib.parse.urlsplit(self.path).path
        return urllib.parse.unquote(path, errors="surrogatepass")

    def _open(self, name: str) -> File | None:
        try:
            return self.server.filesystem.open(name)
        except OSError:
            self.send_error(HTTPStatus.NOT_FOUND, "File not found")
        except DocserveError as e:
            self._render_failed(name, e)
        return None

    def _send_file(self, handle: File, info: FileInfo, name: str) -> File:
        if isinstance(handle, VirtualFile):
            ctype = RENDERED_CONTENT_TYPE
        else:
            ctype = self.guess_type(name)
        self.send_response(HTTPStatus.OK)
        self.send_header("Content-type", ctype)
        self.send_header("Content-Length", str(info.size))
        self.send_header("Last-Modified", self.date_time_string(int(info.mtime)))
        self.end_headers()
        return handle

    def _redirect_to_slash(self) -> None:
        parts = urllib.parse.urlsplit(self.path)
        new_url = urllib.parse.urlunsplit(
            (parts.scheme, parts.netloc, parts.path + "/", parts.query, parts.fragment)
        )
        self.send_response(HTTPStatus.MOVED_PERMANENTLY)
        self.send_header("Location", new_url)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def _send_listing(self, handle: File, name: str) -> io.BytesIO:
        try:
            entries = handle.readdir()
        finally:
            handle.close()

        title = html.escape(f"Directory listing for {name}", quote=False)
        lines = [
            "<!DOCTYPE HTML>",
            '<html lang="en">',
            "<head>",
            '<meta charset="utf-8">',
            f"<title>{title}</title>",
            "</head>",
            "<body>",
            f"<h1>{title}</h1>",
            "<hr>",
            "<ul>",
        ]
        for entry in sorted(entries, key=lambda e: e.name.lower()):
            display = entry.name + "/" if entry.is_dir else entry.name
            link = urllib.parse.quote(display, errors="surrogatepass")
            lines.append(
                f'<li><a href="{link}">{html.escape(display, quote=False)}</a></li>'
            )
        lines.extend(["</ul>", "<hr>", "</body>", "</html>\n"])
        encoded = "\n".join(lines).encode("utf-8", "surrogateescape")

        self.send_response(HTTPStatus.OK)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        return io.BytesIO(encoded)

    def _render_failed(self, name: str, error: DocserveError) -> None:
        if self.server.strict:
            logger.critical("Rendering %s failed, stopping server: %s", name, error)
            self.send_error(HTTPStatus.INTERNAL_SERVER_ERROR, "Render failed")
            self.server.abort(error)
            return

        logger.error("Rendering %s failed: %s", name, error)
        if isinstance(error, RemoteRenderError):
            self.send_error(HTTPStatus.BAD_GATEWAY, "Remote render failed")
        else:
            self.send_error(HTTPStatus.INTERNAL_SERVER_ERROR, "Render failed")


def create_server(
    config: DocserveConfig,
    cleanup: PendingCleanup,
    session=None,
) -> DocServer:
    """Wire renderer, filesystems and HTTP server together from ``config``."""
    root = config.root_dir
    renderer = create_renderer(config, cleanup, session=session)
    filesystem = RenderingFileSystem(
        DirFileSystem(root),
        renderer,
        render_all=config.render.render_all,
        markdown_suffixes=config.render.markdown_suffixes,
    )
    server = DocServer(
        (config.server.host, config.server.port),
        filesystem,
        strict=config.strict,
    )
    logger.info(
        "Serving %s with the %s renderer", root, renderer.strategy.value
    )
    return server


def run_server(server: DocServer, cleanup: PendingCleanup) -> None:
    """Serve until interrupted or aborted, then remove materialized assets.

    Raises:
        DocserveError: The render failure that stopped a strict server.
        CleanupError: If assets could not be removed and the server is strict.
    """
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        server.server_close()
        cleanup_error = drain_cleanup(cleanup)

    if server.fatal_error is not None:
        raise server.fatal_error
    if cleanup_error is not None and server.strict:
        raise cleanup_error


def drain_cleanup(cleanup: PendingCleanup) -> CleanupError | None:
    """Remove pending assets, returning the failure instead of raising it."""
    try:
        removed = cleanup.drain()
    except CleanupError as e:
        logger.warning("%s", e)
        return e
    logger.info("Cleanup removed %d asset(s)", len(removed))
    return None

