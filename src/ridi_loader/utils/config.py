"""
Configuration management for ridi-loader.
"""

import tomllib
from pathlib import Path

from ..core.ridi.paths import PlatformPaths
from .errors import ConfigError

DEFAULT_PARALLEL = 4
DEFAULT_MAX_RETRIES = 3


class Config:
    """Global configuration manager.

    Each value is taken from, in order: the constructor argument (CLI option),
    an environment variable, the TOML config file, the default.
    """

    def __init__(
        self,
        device_id=None,
        user_idx=None,
        output_dir=None,
        library_path=None,
        parallel=None,
        max_retries=None,
        force=False,
        state_path=None,
        config_path=None,
        paths: PlatformPaths | None = None,
    ):
        """
        Args:
            device_id: RIDI device id (optional)
            user_idx: RIDI user index (optional)
            output_dir: Output directory for decrypted books (optional)
            library_path: RIDI library root override (optional)
            parallel: Number of books decrypted at once (optional)
            max_retries: Attempt budget per book (optional)
            force: Re-decrypt books that look already decrypted
            state_path: Processing state file (optional)
            config_path: TOML config file (optional)
            paths: Platform path provider
        """
        self.paths = paths or PlatformPaths()
        self.env = self.paths.env
        self.config_path = self._get_config_path(config_path)
        file_values = self._load_file(self.config_path)

        self.device_id = self._pick(device_id, "RIDI_DEVICE_ID", file_values.get("device_id"), "")
        self.user_idx = str(self._pick(user_idx, "RIDI_USER_IDX", file_values.get("user_idx"), ""))
        self.output_dir = self._as_path(
            self._pick(output_dir, "RIDI_OUTPUT_DIR", file_values.get("output_directory"), None)
        )
        self.library_path = self._as_path(
            self._pick(library_path, "RIDI_LIBRARY_PATH", file_values.get("library_path"), None)
        )
        self.state_path = self._as_path(
            self._pick(state_path, "RIDI_LOADER_STATE", file_values.get("state_path"), None)
        ) or self.paths.state_path()
        self.parallel = self._positive_int(
            "parallel", self._pick(parallel, None, file_values.get("parallel"), DEFAULT_PARALLEL)
        )
        self.max_retries = self._positive_int(
            "max_retries",
            self._pick(max_retries, None, file_values.get("max_retries"), DEFAULT_MAX_RETRIES),
        )
        self.force = bool(force)

    def _get_config_path(self, custom_path=None) -> Path:
        """
        Get config file path with priority order:
        1. Custom path (--config parameter)
        2. Environment variable RIDI_LOADER_CONFIG
        3. <config dir>/config.toml
        """
        if custom_path:
            return Path(custom_path).expanduser()

        if env_path := self.env.get("RIDI_LOADER_CONFIG"):
            return Path(env_path).expanduser()

        return self.paths.config_dir() / "config.toml"

    @staticmethod
    def _load_file(path: Path) -> dict:
        if not path.exists():
            return {}
        try:
            with open(path, "rb") as f:
                return tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Cannot read config file {path}: {e}")

    def _pick(self, explicit, env_var, file_value, default):
        if explicit is not None:
            return explicit
        if env_var and (env_value := self.env.get(env_var)):
            return env_value
        if file_value is not None:
            return file_value
        return default

    @staticmethod
    def _as_path(value) -> Path | None:
        return Path(value).expanduser() if value else None

    @staticmethod
    def _positive_int(name: str, value) -> int:
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{name} must be an integer, got {value!r}")
        if number < 1:
            raise ConfigError(f"{name} must be at least 1, got {number}")
        return number

    def require_credentials(self) -> None:
        """Raise ConfigError unless a device id is configured."""
        if not self.device_id:
            raise ConfigError(
                "Device ID is not set. Pass --device-id, set RIDI_DEVICE_ID "
                f"or add device_id to {self.config_path}"
            )
