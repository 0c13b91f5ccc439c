import pytest

from ridi_loader.core.ridi import PlatformPaths
from ridi_loader.utils.config import Config

from helpers import DEVICE_ID


@pytest.fixture
def library(tmp_path):
    """Empty RIDI library root with one user bucket."""
    root = tmp_path / "Ridibooks" / "library"
    (root / "_1234567").mkdir(parents=True)
    return root


@pytest.fixture
def bucket(library):
    return library / "_1234567"


@pytest.fixture
def fake_paths(tmp_path):
    """Linux platform paths rooted in a temporary home with an empty environment."""
    home = tmp_path / "home"
    home.mkdir()
    return PlatformPaths(system="Linux", home=home, env={})


@pytest.fixture
def config(fake_paths, library, tmp_path):
    return Config(
        device_id=DEVICE_ID,
        user_idx="1234567",
        library_path=library,
        state_path=tmp_path / "state.json",
        paths=fake_paths,
    )


@pytest.fixture
def isolated_env(monkeypatch, tmp_path):
    """Point HOME at a temporary directory and clear ridi-loader variables."""
    home = tmp_path / "home"
    home.mkdir(exist_ok=True)
    monkeypatch.setenv("HOME", str(home))
    for var in (
        "RIDI_DEVICE_ID",
        "RIDI_USER_IDX",
        "RIDI_OUTPUT_DIR",
        "RIDI_LIBRARY_PATH",
        "RIDI_LOADER_STATE",
        "RIDI_LOADER_CONFIG",
        "XDG_CONFIG_HOME",
        "XDG_CACHE_HOME",
        "XDG_DATA_HOME",
    ):
        monkeypatch.delenv(var, raising=False)
    return home
