"""
Tests for the data directory service.
"""

from pathlib import Path

from ybuild.adapters.base import Descriptor
from ybuild.core.config.datadirs import DataDirs, default_cache_root, package_hash


class TestCacheRoot:
    def test_env_override(self, tmp_path):
        assert default_cache_root({"YB_CACHE_DIR": str(tmp_path)}) == tmp_path

    def test_xdg_cache_home(self, tmp_path, monkeypatch):
        monkeypatch.setattr("sys.platform", "linux")
        assert default_cache_root({"XDG_CACHE_HOME": str(tmp_path)}) == tmp_path / "yb"

    def test_blank_override_ignored(self, tmp_path, monkeypatch):
        monkeypatch.setattr("sys.platform", "linux")
        root = default_cache_root({"YB_CACHE_DIR": "  ", "XDG_CACHE_HOME": str(tmp_path)})
        assert root == tmp_path / "yb"


class TestPackageHash:
    def test_stable_and_short(self, tmp_path):
        assert package_hash(tmp_path) == package_hash(str(tmp_path))
        assert len(package_hash(tmp_path)) == 12

    def test_differs_per_package(self, tmp_path):
        assert package_hash(tmp_path / "a") != package_hash(tmp_path / "b")


class TestDataDirs:
    def test_downloads_and_tools_created(self, data_dirs):
        assert data_dirs.downloads().is_dir()
        assert data_dirs.tools().is_dir()
        assert data_dirs.downloads() == data_dirs.root / "downloads"

    def test_build_home_layout(self, data_dirs, package_dir):
        home = data_dirs.build_home(package_dir, "default", Descriptor("linux", "amd64"))

        assert home.is_dir()
        assert home == data_dirs.root / "build-home" / package_hash(package_dir) / "default" / "linux-amd64"

    def test_build_homes_isolated_by_target(self, data_dirs, package_dir):
        linux = Descriptor("linux", "amd64")
        assert data_dirs.build_home(package_dir, "a", linux) != data_dirs.build_home(package_dir, "b", linux)

    def test_target_name_is_one_component(self, data_dirs, package_dir):
        home = data_dirs.build_home(package_dir, "../escape", Descriptor("linux", "amd64"))
        assert data_dirs.build_home_root(package_dir) in home.parents

    def test_clean_single_target(self, data_dirs, package_dir):
        linux = Descriptor("linux", "amd64")
        a = data_dirs.build_home(package_dir, "a", linux)
        b = data_dirs.build_home(package_dir, "b", linux)
        (a / ".cache").mkdir()

        removed = data_dirs.clean(package_dir, ["a"])

        assert removed == [a.parent]
        assert not a.exists()
        assert b.exists()

    def test_clean_all(self, data_dirs, package_dir):
        data_dirs.build_home(package_dir, "a", Descriptor("linux", "amd64"))

        removed = data_dirs.clean(package_dir)

        assert removed == [data_dirs.build_home_root(package_dir)]
        assert not data_dirs.build_home_root(package_dir).exists()

    def test_clean_nothing(self, data_dirs, package_dir):
        assert data_dirs.clean(package_dir, ["never-built"]) == []

    def test_default_root_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("YB_CACHE_DIR", str(tmp_path / "c"))
        assert DataDirs().root == Path(tmp_path / "c")
