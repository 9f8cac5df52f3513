"""
Parameter resolution - merges graph-supplied and user-configured values.

Every node parameter can be fed from two places:

1. Dynamic inputs: values produced by upstream nodes at graph-execution time
2. Static config: values the user typed into the node's fields

Dynamic values always outrank static ones when both are defined. A value is
"defined" when it is neither ``None`` nor the empty string, so ``0`` and
``False`` are legitimate values that win over a static default.

Absence yields the fallback and the caller decides whether that makes the
node insufficient for direct execution. Bindings without a string name are
skipped with a warning.
"""

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_WORD = re.compile(r"[^0-9a-zA-Z]+")


def to_snake_case(name: str) -> str:
    """'Image URL' -> 'image_url', 'Input 1' -> 'input_1', 'taskId' -> 'task_id'."""
    name = _CAMEL_BOUNDARY.sub("_", name.strip())
    return _NON_WORD.sub("_", name).strip("_").lower()


class NamedValue(BaseModel):
    """One ``{name, value}`` binding as delivered by the engine."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: Any = None


class ParameterSpec(BaseModel):
    """
    Declaration of one node parameter.

    Example:
        ParameterSpec(name="Prompt", required=True, description="Image description")
        ParameterSpec(name="Seed", default=42, tool_arg="seed")
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Port/field name shared by dynamic and static sources")
    default: Any = Field(default=None, description="Fallback when neither source is defined")
    required: bool = Field(default=False, description="Needed for direct execution")
    description: str = ""
    tool_arg: str | None = Field(
        default=None,
        description="Agent-facing argument name; defaults to the snake_case parameter name",
    )

    @property
    def arg_name(self) -> str:
        return self.tool_arg or to_snake_case(self.name)


def is_defined(value: Any) -> bool:
    """True unless the value is ``None`` or the empty string."""
    return value is not None and value != ""


def _normalize(candidates: Iterable[NamedValue | Mapping[str, Any]] | None) -> list[NamedValue]:
    if not candidates:
        return []
    normalized = []
    for candidate in candidates:
        if isinstance(candidate, NamedValue):
            normalized.append(candidate)
        elif isinstance(candidate, Mapping) and isinstance(candidate.get("name"), str):
            normalized.append(NamedValue(name=candidate["name"], value=candidate.get("value")))
        else:
            logger.warning(f"Ignoring malformed binding {candidate!r}: expected {{name, value}}")
    return normalized


def _first_match(candidates: list[NamedValue], name: str) -> NamedValue | None:
    for candidate in candidates:
        if candidate.name == name:
            return candidate
    return None


_ABSENT = object()


def _lookup(name: str, dynamic: list[NamedValue], static: list[NamedValue]) -> Any:
    for source in (dynamic, static):
        match = _first_match(source, name)
        if match is not None and is_defined(match.value):
            return match.value
    return _ABSENT


def resolve(
    name: str,
    dynamic: Iterable[NamedValue | Mapping[str, Any]] | None,
    static: Iterable[NamedValue | Mapping[str, Any]] | None,
    fallback: Any = None,
) -> Any:
    """
    Resolve the effective value of one parameter.

    The first binding with a matching name is taken from each source
    (declaration order). A defined dynamic value wins, then a defined static
    value, then ``fallback``.
    """
    found = _lookup(name, _normalize(dynamic), _normalize(static))
    return found if found is not _ABSENT else fallback


@dataclass(frozen=True)
class ResolvedParameters:
    """Effective values for every declared parameter plus the required ones that are absent."""

    values: dict[str, Any] = field(default_factory=dict)
    missing: tuple[str, ...] = ()

    @property
    def sufficient(self) -> bool:
        return not self.missing

    def __getitem__(self, name: str) -> Any:
        return self.values[name]

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)


class ParameterResolver:
    """Resolves a node's declared parameters against one invocation's inputs."""

    def __init__(self, specs: Iterable[ParameterSpec]):
        self.specs: tuple[ParameterSpec, ...] = tuple(specs)

    def resolve_all(
        self,
        dynamic: Iterable[NamedValue | Mapping[str, Any]] | None,
        static: Iterable[NamedValue | Mapping[str, Any]] | None,
    ) -> ResolvedParameters:
        dynamic_values = _normalize(dynamic)
        static_values = _normalize(static)

        values: dict[str, Any] = {}
        missing: list[str] = []
        for spec in self.specs:
            found = _lookup(spec.name, dynamic_values, static_values)
            if found is _ABSENT:
                values[spec.name] = spec.default
                if spec.required:
                    missing.append(spec.name)
            else:
                values[spec.name] = found
        return ResolvedParameters(values=values, missing=tuple(missing))

    def from_tool_args(self, args: Mapping[str, Any]) -> ResolvedParameters:
        """Map validated agent arguments (keyed by ``arg_name``) back onto parameter names."""
        values: dict[str, Any] = {}
        missing: list[str] = []
        for spec in self.specs:
            value = args.get(spec.arg_name)
            if is_defined(value):
                values[spec.name] = value
            else:
                values[spec.name] = spec.default
                if spec.required:
                    missing.append(spec.name)
        return ResolvedParameters(values=values, missing=tuple(missing))
