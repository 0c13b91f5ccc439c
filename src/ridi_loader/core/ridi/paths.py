"""
Platform-specific filesystem locations used by ridi-loader.
"""

import os
import platform
from enum import Enum
from pathlib import Path
from typing import Mapping

APP_NAME = "ridi-loader"


class LibrarySource(Enum):
    """Where a candidate library root came from."""

    USER_SPECIFIED = "user_specified"
    ENVIRONMENT = "environment"
    COMMON_PATH = "common_path"


class PlatformPaths:
    """Resolves RIDI library candidates and ridi-loader's own directories.

    All lookups of the OS name, home directory and environment go through
    this object so discovery can be tested against a fake filesystem.
    """

    def __init__(
        self,
        system: str | None = None,
        home: Path | None = None,
        env: Mapping[str, str] | None = None,
    ):
        self.system = system if system is not None else platform.system()
        self.home = Path(home) if home is not None else Path.home()
        self.env = env if env is not None else os.environ

    @property
    def is_windows(self) -> bool:
        return self.system == "Windows"

    @property
    def is_macos(self) -> bool:
        return self.system == "Darwin"

    def _env_path(self, name: str) -> Path | None:
        value = self.env.get(name)
        return Path(value).expanduser() if value else None

    def library_candidates(self) -> list[tuple[Path, LibrarySource]]:
        """Candidate RIDI library roots, in discovery order, without duplicates."""
        candidates: list[tuple[Path, LibrarySource]] = []

        if env_library := self._env_path("RIDI_LIBRARY_PATH"):
            candidates.append((env_library, LibrarySource.ENVIRONMENT))

        if self.is_windows:
            for var in ("APPDATA", "LOCALAPPDATA"):
                if base := self._env_path(var):
                    candidates.append((base / "Ridibooks" / "library", LibrarySource.COMMON_PATH))
        elif self.is_macos:
            support = self.home / "Library" / "Application Support"
            candidates.append((support / "Ridibooks" / "library", LibrarySource.COMMON_PATH))
            container = (
                self.home / "Library" / "Containers" / "com.ridi.books"
                / "Data" / "Library" / "Application Support" / "Ridibooks" / "library"
            )
            candidates.append((container, LibrarySource.COMMON_PATH))
        else:
            data_home = self._env_path("XDG_DATA_HOME") or self.home / ".local" / "share"
            candidates.append((data_home / "Ridibooks" / "library", LibrarySource.COMMON_PATH))
            candidates.append((self.home / ".ridibooks" / "library", LibrarySource.COMMON_PATH))

        # Generic fallback for manual copies of the library
        candidates.append((self.home / "Ridibooks" / "library", LibrarySource.COMMON_PATH))

        seen: set[Path] = set()
        unique = []
        for path, source in candidates:
            if path in seen:
                continue
            seen.add(path)
            unique.append((path, source))
        return unique

    def cache_dir(self) -> Path:
        if self.is_windows:
            base = self._env_path("LOCALAPPDATA") or self.home / "AppData" / "Local"
        elif self.is_macos:
            base = self.home / "Library" / "Caches"
        else:
            base = self._env_path("XDG_CACHE_HOME") or self.home / ".cache"
        return base / APP_NAME

    def config_dir(self) -> Path:
        if self.is_windows:
            base = self._env_path("APPDATA") or self.home / "AppData" / "Roaming"
        else:
            base = self._env_path("XDG_CONFIG_HOME") or self.home / ".config"
        return base / APP_NAME

    def state_path(self) -> Path:
        """Well-known location of the persisted batch state."""
        return self.cache_dir() / "state.json"
