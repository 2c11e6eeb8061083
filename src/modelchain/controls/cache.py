"""Cacheable - reuse a terminal payload for ``ttl`` seconds.

Key is ``subject.operation:`` plus the canonical JSON of the arguments.

    hit   (not expired)  terminate with the cached payload, downstream skipped
    miss                 run ``children`` as a sub-pipeline when declared,
                         otherwise the downstream chain; cache the payload
                         that run terminated with

A declared ``children`` list replaces the downstream chain entirely: the
steps after ``cacheable`` do not run on a miss. A run that does not
terminate caches nothing.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from modelchain.controls.state import CacheEntry, ControlState, get_default_control_state
from modelchain.core.errors import InvalidConfigError
from modelchain.core.logging import get_logger
from modelchain.execution.adapter import DualView
from modelchain.execution.chain import Continuation
from modelchain.execution.outcome import Outcome
from modelchain.execution.spec import Spec, parse_specs

logger = get_logger(__name__)


def cache_key(view: DualView) -> str:
    """``subject.operation:<canonical JSON of arguments>``."""
    encoded = json.dumps(view.arguments, sort_keys=True, separators=(",", ":"), default=str)
    return f"{view.key}:{encoded}"


def _parse_config(args: Any) -> tuple[float, tuple[Spec, ...]]:
    if isinstance(args, Mapping):
        ttl = args.get("ttl")
        children = args.get("children", args.get("middlewares"))
    else:
        ttl, children = args, None
    if isinstance(ttl, bool) or not isinstance(ttl, (int, float)) or ttl < 0:
        raise InvalidConfigError("cacheable.ttl", ttl, f"cacheable needs a non-negative 'ttl' in seconds, got {ttl!r}")
    return float(ttl), parse_specs(children)


def create_cacheable(args: Any, state: ControlState | None = None):
    """Factory for the ``cacheable`` step."""
    ttl, children = _parse_config(args)

    async def cacheable(view: DualView, call_next: Continuation) -> Outcome | None:
        st = state or get_default_control_state()
        key = cache_key(view)
        now = st.now()

        with st.cache.locked():
            cached = st.cache.get(key)
            if cached is not None and cached.expires_at <= now:
                st.cache.pop(key)
                cached = None

        if cached is not None:
            logger.debug("cache_hit", key=key)
            return view.terminate(cached.value)

        logger.debug("cache_miss", key=key, children=len(children))
        already_terminated = view.is_terminated
        if children:
            await view.run_nested(children)
        else:
            await call_next()

        if view.is_terminated and not already_terminated:
            st.cache.set(key, CacheEntry(value=view.payload, expires_at=now + ttl))
        return view.outcome

    return cacheable


__all__ = ["cache_key", "create_cacheable"]
