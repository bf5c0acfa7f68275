"""Exception types for docserve."""

from pathlib import Path


class DocserveError(Exception):
    """Base exception for docserve errors."""

    pass


class RenderError(DocserveError):
    """A Markdown document could not be turned into a page."""

    pass


class AssetError(DocserveError):
    """An embedded asset could not be located."""

    pass


class AssetWriteError(AssetError, RenderError):
    """Writing an embedded asset into the served root failed."""

    def __init__(self, path: Path, error: OSError):
        super().__init__(f"Cannot write asset {path}: {error}")
        self.path = path
        self.error = error


class RemoteRenderError(RenderError):
    """The remote rendering API failed or answered with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CleanupError(DocserveError):
    """One or more materialized assets could not be removed."""

    def __init__(self, failures: list[tuple[Path, OSError]]):
        details = "; ".join(f"{path}: {error}" for path, error in failures)
        super().__init__(f"Cannot remove {len(failures)} asset(s): {details}")
        self.failures = failures
