from __future__ import annotations

import shutil
from dataclasses import dataclass
from typing import Union

from slideharvest.errors import MissingToolError


@dataclass(frozen=True, slots=True)
class Found:
    name: str
    path: str


@dataclass(frozen=True, slots=True)
class Unavailable:
    name: str
    reason: str


ToolLookup = Union[Found, Unavailable]


def resolve_tool(name: str, configured: str | None = None) -> ToolLookup:
    """Locate an executable, preferring an explicitly configured path."""

    candidate = (configured or "").strip() or name
    resolved = shutil.which(candidate)
    if resolved:
        return Found(name=name, path=resolved)
    return Unavailable(name=name, reason=f"{candidate} was not found on PATH")


def require_tool(lookup: ToolLookup, hint: str) -> str:
    if isinstance(lookup, Found):
        return lookup.path
    raise MissingToolError(lookup.name, hint)
