"""
Tests for netrc collection and injection into a biome.
"""

import os
import stat

import pytest

from ybuild.adapters import FakeBiome, NetrcBiome, inject_netrc
from ybuild.core.config.netrc import cat_netrc, config_dirs, default_netrc_files
from ybuild.core.errors import RunError, ValidationError


class TestConfigDirs:
    def test_xdg_variables(self, tmp_path):
        environ = {"XDG_CONFIG_HOME": "/home/me/.cfg", "XDG_CONFIG_DIRS": os.pathsep.join(["/etc/a", "/etc/b"])}
        assert [str(p) for p in config_dirs(environ)] == ["/home/me/.cfg", "/etc/a", "/etc/b"]

    def test_defaults(self):
        dirs = config_dirs({})
        assert str(dirs[0]).endswith(".config")
        assert str(dirs[1]) == "/etc/xdg"

    def test_netrc_names(self):
        files = default_netrc_files({"XDG_CONFIG_HOME": "/cfg", "XDG_CONFIG_DIRS": "/etc/xdg"})
        assert [str(p) for p in files] == ["/cfg/yb/netrc", "/etc/xdg/yb/netrc"]


class TestCatNetrc:
    def test_missing_defaults_skipped(self, tmp_path):
        present = tmp_path / "present"
        present.write_text("machine a\n")
        assert cat_netrc([tmp_path / "absent", present], []) == b"machine a\n"

    def test_explicit_after_defaults(self, tmp_path):
        default = tmp_path / "default"
        default.write_text("machine a")
        flag = tmp_path / "flag"
        flag.write_text("machine b\n")
        assert cat_netrc([default], [flag]) == b"machine a\nmachine b\n"

    def test_missing_explicit_is_an_error(self, tmp_path):
        with pytest.raises(ValidationError, match="read netrc"):
            cat_netrc([], [tmp_path / "absent"])

    def test_nothing_found(self, tmp_path):
        assert cat_netrc([tmp_path / "absent"], []) == b""


class TestInjectNetrc:
    def test_no_data_leaves_biome_alone(self):
        biome = FakeBiome()
        assert inject_netrc(biome, b"") is biome
        assert biome.call_count == 0

    def test_written_private_on_host(self, tmp_path):
        biome = FakeBiome(host_root=tmp_path)

        wrapped = inject_netrc(biome, b"machine a\n")

        netrc = tmp_path / "home" / ".netrc"
        assert netrc.read_bytes() == b"machine a\n"
        assert stat.S_IMODE(netrc.stat().st_mode) == 0o600
        assert isinstance(wrapped, NetrcBiome)

    def test_removed_on_close(self, tmp_path):
        biome = FakeBiome(host_root=tmp_path)
        wrapped = inject_netrc(biome, b"machine a\n")

        wrapped.close()

        assert not (tmp_path / "home" / ".netrc").exists()
        assert biome.closed

    def test_written_through_commands_without_host_path(self):
        biome = FakeBiome()

        wrapped = inject_netrc(biome, b"machine a\n")
        wrapped.close()

        assert biome.argvs == [
            ["tee", "/home/.netrc"],
            ["chmod", "600", "/home/.netrc"],
            ["rm", "-rf", "/home/.netrc"],
        ]
        assert biome.call_log[0].stdin.read() == b"machine a\n"

    def test_failed_removal_still_closes(self):
        biome = FakeBiome()
        wrapped = inject_netrc(biome, b"machine a\n")
        biome.set_failure(["rm"])

        wrapped.close()

        assert biome.closed

    def test_failed_write_propagates(self):
        biome = FakeBiome()
        biome.set_failure(["tee"])
        with pytest.raises(RunError):
            inject_netrc(biome, b"machine a\n")
