"""Configuration management for docserve.

Handles loading .docserve.yaml files with directory traversal,
environment variable overrides, and default values.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import DocserveError

CONFIG_FILENAME = ".docserve.yaml"
ENV_ROOT = "DOCSERVE_ROOT"
ENV_OFFLINE = "DOCSERVE_OFFLINE"
ENV_PORT = "DOCSERVE_PORT"

GITHUB_MARKDOWN_ENDPOINT = "https://api.github.com/markdown/raw"
DEFAULT_SUFFIXES = [".md", ".markdown", ".mdown", ".mkd", ".mkdn"]
DEFAULT_EXTENSIONS = ["extra", "sane_lists"]

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class ServerConfig:
    """HTTP listener settings."""

    host: str = "127.0.0.1"
    port: int = 2000


@dataclass
class RenderConfig:
    """Markdown rendering settings."""

    offline: bool = True  # True = local renderer, False = remote API
    render_all: bool = False  # Render every regular file, not only Markdown
    markdown_suffixes: list[str] = field(default_factory=lambda: list(DEFAULT_SUFFIXES))
    extensions: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    endpoint: str = GITHUB_MARKDOWN_ENDPOINT
    timeout: float | None = None  # None = wait for the remote API indefinitely


@dataclass
class DocserveConfig:
    """Complete docserve configuration."""

    root: Path | None = None  # Directory to serve; None = cwd
    strict: bool = False  # Render failures stop the server
    server: ServerConfig = field(default_factory=ServerConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    config_path: Path | None = None  # Path where config was loaded from

    @property
    def root_dir(self) -> Path:
        """The served directory, falling back to the working directory."""
        return Path(self.root) if self.root is not None else Path.cwd()

    def validate(self) -> None:
        """Validate configuration.

        Raises:
            DocserveError: If configuration is invalid.
        """
        if not 0 <= self.server.port <= 65535:
            raise DocserveError(
                f"Invalid port: {self.server.port}. Must be between 0 and 65535"
            )

        if self.render.timeout is not None and self.render.timeout <= 0:
            raise DocserveError("timeout must be positive")

        if not self.render.endpoint.startswith(("http://", "https://")):
            raise DocserveError(
                f"Invalid endpoint: {self.render.endpoint}. Must be an http(s) URL"
            )

        for suffix in self.render.markdown_suffixes:
            if not suffix.startswith("."):
                raise DocserveError(
                    f"Markdown suffix '{suffix}' must start with '.'"
                )

        if self.root is not None and not Path(self.root).is_dir():
            raise DocserveError(f"Root directory not found: {self.root}")


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find .docserve.yaml by traversing up from start_path.

    Args:
        start_path: Directory to start searching from. Defaults to cwd.

    Returns:
        Path to config file if found, None otherwise.
    """
    if start_path is None:
        start_path = Path.cwd()
    else:
        start_path = Path(start_path).resolve()

    # If start_path is a file, use its parent directory
    if start_path.is_file():
        start_path = start_path.parent

    current = start_path
    while True:
        config_path = current / CONFIG_FILENAME
        if config_path.is_file():
            return config_path

        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(
    config_path: Path | None = None,
    start_path: Path | None = None,
    root_override: Path | None = None,
    offline_override: bool | None = None,
) -> DocserveConfig:
    """Load configuration from file, environment, and overrides.

    Priority (highest to lowest):
    1. Function arguments (root_override, offline_override)
    2. Environment variables (DOCSERVE_ROOT, DOCSERVE_OFFLINE, DOCSERVE_PORT)
    3. Config file (.docserve.yaml)
    4. Defaults

    Args:
        config_path: Explicit path to config file. If None, searches.
        start_path: Directory to start config file search from.
        root_override: Served directory from the CLI.
        offline_override: Local/remote switch from the CLI.

    Returns:
        Loaded and validated configuration.
    """
    config = DocserveConfig()

    # Find or use explicit config file
    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.is_file():
            raise DocserveError(f"Config file not found: {config_path}")
    else:
        config_path = find_config_file(start_path)

    if config_path is not None:
        config = _load_config_file(config_path)
        config.config_path = config_path

    # Override with environment variables
    env_root = os.environ.get(ENV_ROOT)
    if env_root:
        config.root = Path(env_root)

    env_offline = os.environ.get(ENV_OFFLINE)
    if env_offline:
        config.render.offline = _parse_bool(env_offline, ENV_OFFLINE)

    env_port = os.environ.get(ENV_PORT)
    if env_port:
        try:
            config.server.port = int(env_port)
        except ValueError as e:
            raise DocserveError(f"Invalid {ENV_PORT}: {env_port}") from e

    # Override with function arguments
    if root_override is not None:
        config.root = Path(root_override)
    if offline_override is not None:
        config.render.offline = offline_override

    config.validate()
    return config


def _parse_bool(value: str, name: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise DocserveError(f"Invalid boolean for {name}: {value}")


def _load_config_file(config_path: Path) -> DocserveConfig:
    """Load configuration from a YAML file.

    Relative ``root`` paths are resolved against the config file's directory.

    Raises:
        DocserveError: If file cannot be read or parsed.
    """
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise DocserveError(f"Invalid YAML in {config_path}: {e}") from e
    except OSError as e:
        raise DocserveError(f"Cannot read config file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise DocserveError(f"Config file {config_path} must contain a mapping")

    config = DocserveConfig(config_path=config_path)

    if data.get("root") is not None:
        root = Path(str(data["root"]))
        if not root.is_absolute():
            root = config_path.parent / root
        config.root = root

    if "strict" in data:
        config.strict = bool(data["strict"])

    if "server" in data and isinstance(data["server"], dict):
        server_data = data["server"]
        port = server_data.get("port", config.server.port)
        try:
            port = int(port)
        except (TypeError, ValueError) as e:
            raise DocserveError(f"Invalid port in {config_path}: {port}") from e
        config.server = ServerConfig(
            host=str(server_data.get("host", config.server.host)),
            port=port,
        )

    if "render" in data and isinstance(data["render"], dict):
        render_data = data["render"]
        timeout = render_data.get("timeout", config.render.timeout)
        if timeout is not None:
            try:
                timeout = float(timeout)
            except (TypeError, ValueError) as e:
                raise DocserveError(
                    f"Invalid timeout in {config_path}: {timeout}"
                ) from e
        config.render = RenderConfig(
            offline=bool(render_data.get("offline", config.render.offline)),
            render_all=bool(render_data.get("render_all", config.render.render_all)),
            markdown_suffixes=[
                str(s).lower()
                for s in render_data.get(
                    "markdown_suffixes", config.render.markdown_suffixes
                )
            ],
            extensions=[
                str(e) for e in render_data.get("extensions", config.render.extensions)
            ],
            endpoint=str(render_data.get("endpoint", config.render.endpoint)),
            timeout=timeout,
        )

    return config


def create_default_config(path: Path | None = None) -> Path:
    """Create a default .docserve.yaml config file.

    Args:
        path: Directory to create config in. Defaults to cwd.

    Returns:
        Path to created config file.

    Raises:
        DocserveError: If file already exists or cannot be written.
    """
    if path is None:
        path = Path.cwd()
    else:
        path = Path(path)

    config_path = path / CONFIG_FILENAME

    if config_path.exists():
        raise DocserveError(f"Config file already exists: {config_path}")

    config_content = f'''# docserve configuration

# Directory to serve (relative to this file). Defaults to the working directory.
# root: "docs"

# Stop the server on the first render failure instead of answering 500/502
strict: false

server:
  host: "127.0.0.1"
  port: 2000

render:
  offline: true          # true = render locally, false = use the remote API
  render_all: false      # true = render every file, not only Markdown
  markdown_suffixes: {DEFAULT_SUFFIXES!r}
  extensions: {DEFAULT_EXTENSIONS!r}
  endpoint: "{GITHUB_MARKDOWN_ENDPOINT}"
  # timeout: 10          # Seconds to wait for the remote API
'''

    try:
        config_path.write_text(config_content)
    except OSError as e:
        raise DocserveError(f"Cannot write config file: {e}") from e

    return config_path


def config_to_dict(config: DocserveConfig) -> dict[str, Any]:
    """Convert config to dictionary for display."""
    result: dict[str, Any] = {
        "root": str(config.root) if config.root is not None else None,
        "strict": config.strict,
    }
    result["server"] = {
        "host": config.server.host,
        "port": config.server.port,
    }
    result["render"] = {
        "offline": config.render.offline,
        "render_all": config.render.render_all,
        "markdown_suffixes": list(config.render.markdown_suffixes),
        "extensions": list(config.render.extensions),
        "endpoint": config.render.endpoint,
        "timeout": config.render.timeout,
    }
    result["config_path"] = str(config.config_path) if config.config_path else None
    return result
