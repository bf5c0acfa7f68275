"""Tests for docserve.server module.

Runs a real threaded HTTP server on an ephemeral port.
"""

import threading
from unittest.mock import MagicMock

import pytest
import requests
from bs4 import BeautifulSoup

from docserve.cleanup import PendingCleanup
from docserve.config import DocserveConfig, RenderConfig, ServerConfig
from docserve.errors import CleanupError, RemoteRenderError
from docserve.render import LocalRenderer, RemoteRenderer
from docserve.server import DocServer, create_server, drain_cleanup, run_server
from docserve.vfs import DirFileSystem, RenderingFileSystem

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(256))


@pytest.fixture
def site(tmp_path):
    root = tmp_path / "site"
    root.mkdir()
    (root / "doc.md").write_text("# Header\n\nText")
    (root / "image.png").write_bytes(PNG_BYTES)
    guide = root / "guide"
    guide.mkdir()
    (guide / "intro.md").write_text("Intro")
    home = root / "home"
    home.mkdir()
    (home / "index.html").write_text("<p>home page</p>")
    return root


@pytest.fixture
def start_server():
    """Start DocServer instances in background threads; stop them afterwards."""
    started = []

    def _start(filesystem, strict=False, target=None):
        server = DocServer(("127.0.0.1", 0), filesystem, strict=strict)
        thread = threading.Thread(target=target or server.serve_forever, daemon=True)
        thread.start()
        started.append((server, thread))
        host, port = server.server_address[:2]
        return server, thread, f"http://{host}:{port}"

    yield _start

    for server, thread in started:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


def _local_fs(root, cleanup=None):
    if cleanup is None:
        cleanup = PendingCleanup()
    renderer = LocalRenderer(root, cleanup)
    return RenderingFileSystem(DirFileSystem(root), renderer)


def _failing_remote_fs(root, status=500):
    response = MagicMock()
    response.ok = False
    response.status_code = status
    response.reason = "Internal Server Error"
    session = MagicMock()
    session.post.return_value = response
    renderer = RemoteRenderer(endpoint="http://api.test/markdown", session=session)
    return RenderingFileSystem(DirFileSystem(root), renderer)


class TestServing:
    """Tests for GET/HEAD handling."""

    def test_markdown_served_as_html(self, site, start_server):
        """Test a Markdown file is served as a rendered page."""
        _, _, url = start_server(_local_fs(site))

        resp = requests.get(f"{url}/doc.md", timeout=5)

        assert resp.status_code == 200
        assert resp.headers["Content-Type"] == "text/html; charset=utf-8"
        assert int(resp.headers["Content-Length"]) == len(resp.content)
        assert resp.content.startswith(b"<html><head>")
        soup = BeautifulSoup(resp.content, "html.parser")
        assert soup.find("article").find("h1").get_text() == "Header"

    def test_stylesheets_reachable_after_render(self, site, start_server):
        """Test the linked stylesheets are served from the root."""
        _, _, url = start_server(_local_fs(site))

        page = requests.get(f"{url}/doc.md", timeout=5)
        soup = BeautifulSoup(page.content, "html.parser")
        for link in soup.find_all("link"):
            resp = requests.get(f"{url}{link['href']}", timeout=5)
            assert resp.status_code == 200
            assert resp.headers["Content-Type"] == "text/css"

    def test_binary_passthrough(self, site, start_server):
        _, _, url = start_server(_local_fs(site))

        resp = requests.get(f"{url}/image.png", timeout=5)

        assert resp.status_code == 200
        assert resp.headers["Content-Type"] == "image/png"
        assert resp.content == PNG_BYTES

    def test_head_reports_rendered_length(self, site, start_server):
        _, _, url = start_server(_local_fs(site))

        head = requests.head(f"{url}/doc.md", timeout=5)
        get = requests.get(f"{url}/doc.md", timeout=5)

        assert head.status_code == 200
        assert int(head.headers["Content-Length"]) == len(get.content)

    def test_missing_file_is_404(self, site, start_server):
        _, _, url = start_server(_local_fs(site))

        resp = requests.get(f"{url}/missing.md", timeout=5)
        assert resp.status_code == 404

    def test_escape_attempt_is_404(self, site, start_server):
        (site.parent / "secret.md").write_text("secret")
        _, _, url = start_server(_local_fs(site))

        resp = requests.get(f"{url}/%2e%2e/secret.md", timeout=5)
        assert resp.status_code == 404

    def test_directory_redirects_to_slash(self, site, start_server):
        _, _, url = start_server(_local_fs(site))

        resp = requests.get(f"{url}/guide?x=1", timeout=5, allow_redirects=False)

        assert resp.status_code == 301
        assert resp.headers["Location"] == "/guide/?x=1"

    def test_directory_listing(self, site, start_server):
        """Test directories list their entries without being rendered."""
        _, _, url = start_server(_local_fs(site))

        resp = requests.get(f"{url}/", timeout=5)

        assert resp.status_code == 200
        soup = BeautifulSoup(resp.content, "html.parser")
        links = {a["href"] for a in soup.find_all("a")}
        assert {"doc.md", "image.png", "guide/", "home/"} <= links
        assert soup.find("article") is None

    def test_directory_index_page(self, site, start_server):
        _, _, url = start_server(_local_fs(site))

        resp = requests.get(f"{url}/home/", timeout=5)

        assert resp.status_code == 200
        assert resp.content == b"<p>home page</p>"


class TestRenderFailures:
    """Tests for render failure handling."""

    def test_remote_failure_is_502(self, site, start_server):
        """Test a failing remote renderer answers 502 and keeps serving."""
        server, _, url = start_server(_failing_remote_fs(site))

        resp = requests.get(f"{url}/doc.md", timeout=5)
        assert resp.status_code == 502

        assert requests.get(f"{url}/image.png", timeout=5).status_code == 200
        assert server.fatal_error is None

    def test_asset_failure_is_500(self, site, start_server):
        # Assets are written into a directory that does not exist
        renderer = LocalRenderer(site / "missing", PendingCleanup())
        fs = RenderingFileSystem(DirFileSystem(site), renderer)
        _, _, url = start_server(fs)

        resp = requests.get(f"{url}/doc.md", timeout=5)
        assert resp.status_code == 500

    def test_strict_failure_stops_server(self, site, start_server):
        """Test strict mode aborts the server on the first render failure."""
        server, thread, url = start_server(_failing_remote_fs(site), strict=True)

        resp = requests.get(f"{url}/doc.md", timeout=5)

        assert resp.status_code == 500
        thread.join(timeout=5)
        assert not thread.is_alive()
        assert isinstance(server.fatal_error, RemoteRenderError)


class TestRunServer:
    """Tests for run_server() and drain_cleanup()."""

    def test_drains_assets_on_shutdown(self, site):
        """Test materialized assets are removed when the server stops."""
        cleanup = PendingCleanup()
        errors = []

        def target():
            try:
                run_server(server, cleanup)
            except Exception as e:
                errors.append(e)

        server = DocServer(("127.0.0.1", 0), _local_fs(site, cleanup))
        thread = threading.Thread(target=target, daemon=True)
        thread.start()
        host, port = server.server_address[:2]

        requests.get(f"http://{host}:{port}/doc.md", timeout=5)
        assert (site / "octicons.css").exists()

        server.shutdown()
        thread.join(timeout=5)

        assert errors == []
        assert not (site / "octicons.css").exists()
        assert not (site / "github-flavored-markdown.css").exists()
        assert (site / "doc.md").exists()

    def test_strict_failure_reraised(self, site):
        errors = []
        server = DocServer(("127.0.0.1", 0), _failing_remote_fs(site), strict=True)

        def target():
            try:
                run_server(server, PendingCleanup())
            except Exception as e:
                errors.append(e)

        thread = threading.Thread(target=target, daemon=True)
        thread.start()
        host, port = server.server_address[:2]

        requests.get(f"http://{host}:{port}/doc.md", timeout=5)
        thread.join(timeout=5)

        assert len(errors) == 1
        assert isinstance(errors[0], RemoteRenderError)

    def test_drain_cleanup_returns_failure(self, tmp_path):
        blocker = tmp_path / "dir.css"
        blocker.mkdir()
        cleanup = PendingCleanup()
        cleanup.register([blocker])

        error = drain_cleanup(cleanup)

        assert isinstance(error, CleanupError)

    def test_drain_cleanup_success(self, tmp_path):
        path = tmp_path / "a.css"
        path.write_text("x")
        cleanup = PendingCleanup()
        cleanup.register([path])

        assert drain_cleanup(cleanup) is None
        assert not path.exists()


class TestCreateServer:
    """Tests for create_server()."""

    def test_wires_local_renderer(self, site):
        config = DocserveConfig(root=site, server=ServerConfig(port=0))
        cleanup = PendingCleanup()
        server = create_server(config, cleanup)
        try:
            fs = server.filesystem
            assert isinstance(fs, RenderingFileSystem)
            assert isinstance(fs.renderer, LocalRenderer)
            assert fs.renderer.cleanup is cleanup
            assert fs.delegate.root == site
            assert server.strict is False
        finally:
            server.server_close()

    def test_wires_remote_renderer(self, site):
        config = DocserveConfig(
            root=site,
            strict=True,
            server=ServerConfig(port=0),
            render=RenderConfig(offline=False, render_all=True),
        )
        server = create_server(config, PendingCleanup())
        try:
            assert isinstance(server.filesystem.renderer, RemoteRenderer)
            assert server.filesystem.render_all is True
            assert server.strict is True
        finally:
            server.server_close()
