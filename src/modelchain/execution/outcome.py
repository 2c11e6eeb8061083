"""
Outcome of a chain invocation: ``Continue`` or ``Terminated(payload)``.

A step ends the chain early by producing a ``Terminated`` outcome, either by
returning it or through ``ctx.terminate(payload)`` (which returns one). The
outcome is threaded back up through every continuation, so each "after"
section can see whether downstream terminated and with what payload.

Manifesto:
    - **Explicit over Implicit:** the result of a chain is a value, not a
      side effect on some outer variable
    - **First payload wins:** once terminated, later payloads are ignored
    - **Immutability:** frozen dataclasses, safe to share across waiters

Architecture:
    ::

        Outcome = Continue | Terminated
        ├── Continue()            chain ran (or is running) to completion
        └── Terminated(payload)   chain short-circuited with a payload

Examples:
    >>> CONTINUE.is_terminated()
    False
    >>> Terminated({"id": 1}).payload
    {'id': 1}

Tags:
    outcome, result-pattern, short-circuit, modelchain

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Continue:
    """The chain has not been short-circuited."""

    def is_terminated(self) -> bool:
        return False

    @property
    def payload(self) -> None:
        return None

    def to_dict(self) -> dict[str, Any]:
        return {"terminated": False}

    def __repr__(self) -> str:
        return "Continue()"


@dataclass(frozen=True, slots=True)
class Terminated:
    """The chain was short-circuited with ``payload`` as its single result."""

    payload: Any = None

    def is_terminated(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {"terminated": True, "payload": self.payload}

    def __repr__(self) -> str:
        return f"Terminated({self.payload!r})"


Outcome = Continue | Terminated

CONTINUE = Continue()


__all__ = ["CONTINUE", "Continue", "Outcome", "Terminated"]
