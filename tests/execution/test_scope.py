"""Tests for Scope parsing."""

import pytest

from modelchain.core.errors import InvalidConfigError
from modelchain.execution.scope import Scope


class TestScope:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("privileged", Scope.PRIVILEGED),
            ("server", Scope.PRIVILEGED),
            ("client", Scope.RESTRICTED),
            ("RESTRICTED", Scope.RESTRICTED),
            ("isomorphic", Scope.DUAL),
            ("hybrid", Scope.DUAL),
            (None, Scope.DUAL),
            (Scope.DUAL, Scope.DUAL),
        ],
    )
    def test_parse(self, value, expected):
        assert Scope.parse(value) is expected

    def test_unknown(self):
        with pytest.raises(InvalidConfigError):
            Scope.parse("kernel")

    def test_environment_rejects_dual(self):
        assert Scope.environment("server") is Scope.PRIVILEGED
        with pytest.raises(InvalidConfigError):
            Scope.environment("dual")

    def test_is_environment(self):
        assert Scope.PRIVILEGED.is_environment
        assert not Scope.DUAL.is_environment
