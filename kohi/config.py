"""Configuration management for Kohi.

Loads YAML settings (settings.yaml) and environment variables (.env)
into a typed Config object. Property getters provide safe access with
sensible defaults for every subsystem: page credentials, webhook
server, command loading, image cache, HTTP timeouts and logging.

Key classes:
    Config: Central configuration manager.

Key functions:
    get_config: Singleton accessor for the global Config instance.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml
from dotenv import load_dotenv

from .exceptions import ConfigError

logger = structlog.get_logger("kohi.bot")

DEFAULT_GRAPH_API_URL = "https://graph.facebook.com/v23.0"
DEFAULT_WELCOME_MESSAGE = (
    "Yo, I'm Kohi. Just your chill AI buddy, here to kick it and help with "
    "whatever you throw my way. Questions, random tasks, or just chatting, "
    "I got you.\n\n"
    'Wanna see what I can do? Hit "Help" and we\'ll keep it simple.'
)


class Config:
    """Central configuration manager for Kohi.

    Loads settings.yaml and .env from the config directory. Provides
    typed property accessors for every configurable subsystem.
    Read-only after __init__.

    Args:
        config_dir: Path to the config directory. Defaults to
            ``<repo_root>/config/``.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        if config_dir is None:
            config_dir = Path(os.environ.get("KOHI_CONFIG_DIR") or Path(__file__).parent.parent / "config")
        self.config_dir = Path(config_dir)

        env_file = self.config_dir / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        self.settings = self._load_yaml("settings.yaml")

    def _load_yaml(self, filename: str) -> dict:
        """Load a YAML configuration file."""
        filepath = self.config_dir / filename
        if filepath.exists():
            with open(filepath, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        return {}

    def validate(self):
        """Validate settings at startup.

        Logs warnings/errors but does not raise. The one fatal
        condition, a missing page token, is reported separately by
        ``require_page_access_token``.
        """
        if not self.page_access_token:
            logger.error(
                "page_access_token_missing",
                token_file=str(self.token_file),
            )
        if not self.commands_dir.is_dir():
            logger.warning("commands_dir_missing", path=str(self.commands_dir))

        prefix = self.command_prefix
        if len(prefix) != 1 or prefix.isspace():
            logger.error("config_invalid_value", key="command_prefix", value=prefix)

        allowlist = self.settings.get("command_allowlist")
        if allowlist is not None and not isinstance(allowlist, list):
            logger.error("command_allowlist_invalid_type", type=type(allowlist).__name__)

        ttl = self.image_cache_ttl_minutes
        if not isinstance(ttl, (int, float)) or ttl <= 0:
            logger.error("config_invalid_value", key="image_cache.ttl_minutes", value=ttl)

        if not self.graph_api_url.startswith("https://"):
            logger.warning("insecure_graph_api_url", url=self.graph_api_url)

    # --- Page credentials ---

    @property
    def token_file(self) -> Path:
        """File holding the page access token (default ``config/token.txt``)."""
        configured = self.settings.get("token_file", "token.txt")
        path = Path(configured).expanduser()
        if not path.is_absolute():
            path = self.config_dir / path
        return path

    @property
    def page_access_token(self) -> str:
        """Page access token. Env var PAGE_ACCESS_TOKEN takes precedence."""
        token = os.environ.get("PAGE_ACCESS_TOKEN", "").strip()
        if token:
            return token
        path = self.token_file
        if path.is_file():
            try:
                return path.read_text(encoding="utf-8").strip()
            except OSError as e:
                logger.error("token_file_read_error", path=str(path), error=str(e))
        return ""

    def require_page_access_token(self) -> str:
        """Return the page token or raise ConfigError."""
        token = self.page_access_token
        if not token:
            raise ConfigError(
                "Page access token not configured",
                key="PAGE_ACCESS_TOKEN",
                token_file=str(self.token_file),
            )
        return token

    @property
    def verify_token(self) -> str:
        """Webhook verification token. Env var VERIFY_TOKEN takes precedence."""
        return os.environ.get("VERIFY_TOKEN") or self.settings.get("verify_token", "pagebot")

    @property
    def app_secret(self) -> str:
        """App secret for X-Hub-Signature-256 checks (empty disables them)."""
        return os.environ.get("APP_SECRET") or self.settings.get("app_secret", "")

    @property
    def graph_api_url(self) -> str:
        """Base Graph API URL including version, without trailing slash."""
        url = self.settings.get("graph_api_url", DEFAULT_GRAPH_API_URL)
        return url.rstrip("/")

    # --- Webhook server ---

    @property
    def host(self) -> str:
        return self.settings.get("host", "0.0.0.0")

    @property
    def port(self) -> int:
        """Listening port. Env var PORT takes precedence (default 3000)."""
        return int(os.environ.get("PORT") or self.settings.get("port", 3000))

    @property
    def request_timeout(self) -> float:
        """Total timeout in seconds for every outbound HTTP call (default 30)."""
        return float(self.settings.get("request_timeout", 30))

    # --- Commands ---

    @property
    def command_prefix(self) -> str:
        return str(self.settings.get("command_prefix", "-"))

    @property
    def default_command(self) -> str:
        """Command that receives unprefixed text nobody claimed (default ``ai``)."""
        return str(self.settings.get("default_command", "ai")).lower()

    @property
    def commands_dir(self) -> Path:
        """Directory scanned for handler modules (default: bundled handlers)."""
        configured = self.settings.get("commands_dir")
        if configured:
            return Path(configured).expanduser()
        return Path(__file__).parent / "handlers"

    @property
    def command_allowlist(self) -> Optional[List[str]]:
        """Handler file stems allowed to load, or None to load all."""
        allowlist = self.settings.get("command_allowlist")
        if allowlist is None or not isinstance(allowlist, list):
            return None
        return [str(a) for a in allowlist]

    @property
    def command_options(self) -> Dict[str, Dict[str, Any]]:
        """Per-command settings from the ``commands`` section."""
        options = self.settings.get("commands", {})
        return options if isinstance(options, dict) else {}

    @property
    def hot_reload(self) -> bool:
        """Watch commands_dir and reload the registry on change (default True)."""
        return bool(self.settings.get("hot_reload", True))

    @property
    def setup_menu(self) -> bool:
        """Push Get Started + persistent menu on start and reload (default True)."""
        return bool(self.settings.get("setup_menu", True))

    @property
    def welcome_message(self) -> str:
        return self.settings.get("welcome_message", DEFAULT_WELCOME_MESSAGE)

    # --- Image cache ---

    @property
    def image_cache_ttl_minutes(self) -> float:
        """How long a cached inbound image stays readable (default 24h)."""
        return self.settings.get("image_cache", {}).get("ttl_minutes", 24 * 60)

    @property
    def image_cache_sweep_every(self) -> int:
        """Sweep expired entries synchronously after every N writes (default 50)."""
        return int(self.settings.get("image_cache", {}).get("sweep_every", 50))

    @property
    def image_cache_sweep_interval_minutes(self) -> float:
        """Periodic sweep interval (default: same as the TTL)."""
        cache_config = self.settings.get("image_cache", {})
        return cache_config.get("sweep_interval_minutes", self.image_cache_ttl_minutes)

    # --- Logging ---

    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        configured = self.settings.get("log_dir")
        if configured:
            return Path(configured).expanduser()
        return Path(__file__).parent.parent / "logs"

    @property
    def logging_level(self) -> str:
        """Global log level (default INFO). Controls console and combined file."""
        log_config = self.settings.get("logging", {})
        return log_config.get("level", "INFO")

    @property
    def logging_subsystem_levels(self) -> dict:
        """Per-subsystem log level overrides. E.g. {"transport": "DEBUG"}."""
        log_config = self.settings.get("logging", {})
        return log_config.get("subsystem_levels", {})

    @property
    def logging_max_file_size_mb(self) -> int:
        """Max size per log file in MB before rotation (default 10)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("max_file_size_mb", 10)

    @property
    def logging_backup_count(self) -> int:
        """Number of rotated log files to keep (default 5)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("backup_count", 5)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config
