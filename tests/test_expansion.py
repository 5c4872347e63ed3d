"""
Tests for environment template expansion.
"""

import pytest

from ybuild.core.engine.expansion import ExpansionContext, expand, expand_env
from ybuild.core.errors import ExpansionError, ManifestError

CTX = ExpansionContext({"db": "172.18.0.2", "my cache": "172.18.0.3"})


class TestExpand:
    def test_plain_value_untouched(self):
        assert expand("postgres://localhost", CTX) == "postgres://localhost"

    def test_container_ip(self):
        assert expand('{{ .Containers.IP "db" }}', CTX) == "172.18.0.2"

    def test_embedded_in_text(self):
        assert expand('postgres://{{ .Containers.IP "db" }}:5432/app', CTX) == "postgres://172.18.0.2:5432/app"

    def test_whitespace_variants(self):
        assert expand('{{.Containers.IP "db"}}', CTX) == "172.18.0.2"
        assert expand("{{ .Containers.IP `my cache` }}", CTX) == "172.18.0.3"

    def test_multiple_actions(self):
        value = '{{ .Containers.IP "db" }},{{ .Containers.IP "my cache" }}'
        assert expand(value, CTX) == "172.18.0.2,172.18.0.3"

    def test_unknown_label(self):
        with pytest.raises(ExpansionError, match="find IP for redis"):
            expand('{{ .Containers.IP "redis" }}', CTX)

    def test_unsupported_action(self):
        with pytest.raises(ExpansionError, match="unsupported template action"):
            expand("{{ .Env.HOME }}", CTX)

    def test_unterminated_action(self):
        with pytest.raises(ExpansionError, match="unterminated"):
            expand('{{ .Containers.IP "db"', CTX)

    def test_expansion_error_is_manifest_error(self):
        assert issubclass(ExpansionError, ManifestError)


class TestExpandEnv:
    def test_expands_each_value(self):
        env = {"DB_HOST": '{{ .Containers.IP "db" }}', "MODE": "test"}
        assert expand_env(env, CTX) == {"DB_HOST": "172.18.0.2", "MODE": "test"}

    def test_error_names_variable(self):
        with pytest.raises(ExpansionError, match="expand REDIS_HOST"):
            expand_env({"REDIS_HOST": '{{ .Containers.IP "redis" }}'}, CTX)
