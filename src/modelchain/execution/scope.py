"""Execution scopes.

A scope says which environment a step may run in. Chains execute in exactly
one *environment* scope (privileged or restricted); steps are registered
for privileged, restricted, or dual (both).
"""

from __future__ import annotations

from enum import Enum

from modelchain.core.errors import InvalidConfigError


class Scope(str, Enum):
    """Capability scope of a step or of a running chain."""

    PRIVILEGED = "privileged"  # has the environment handle
    RESTRICTED = "restricted"  # outbound calls only
    DUAL = "dual"  # runs in both, branches on scope

    @property
    def is_environment(self) -> bool:
        """True for scopes a chain can actually execute in."""
        return self is not Scope.DUAL

    @classmethod
    def parse(cls, value: Scope | str | None) -> Scope:
        """Normalize a scope value.

        Accepts enum members, their values, and the aliases used by model
        definitions (``server``, ``client``, ``isomorphic``, ``hybrid``).
        ``None`` means dual.
        """
        if value is None:
            return cls.DUAL
        if isinstance(value, Scope):
            return value
        normalized = str(value).strip().lower()
        if normalized in _ALIASES:
            return _ALIASES[normalized]
        raise InvalidConfigError("scope", value)

    @classmethod
    def environment(cls, value: Scope | str) -> Scope:
        """Parse a scope that must be an execution environment."""
        scope = cls.parse(value)
        if not scope.is_environment:
            raise InvalidConfigError(
                "scope", value, "A chain executes in 'privileged' or 'restricted' scope, not 'dual'"
            )
        return scope


_ALIASES: dict[str, Scope] = {
    "privileged": Scope.PRIVILEGED,
    "server": Scope.PRIVILEGED,
    "restricted": Scope.RESTRICTED,
    "client": Scope.RESTRICTED,
    "dual": Scope.DUAL,
    "hybrid": Scope.DUAL,
    "isomorphic": Scope.DUAL,
}
