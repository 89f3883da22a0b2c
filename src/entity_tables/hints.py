"""Helpers for reading entity dataclasses: field lists, annotations, constructors."""

from __future__ import annotations

import collections.abc
import dataclasses
import inspect
import sys
import types
import typing
from typing import Any

from entity_tables.errors import MappingError, UnsupportedTypeError
from entity_tables.types import DEFAULT_KINDS, ScalarKind

_NONE_TYPE = type(None)

_COLLECTION_ORIGINS = (
    list,
    tuple,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Collection,
    collections.abc.Iterable,
)


def persistent_fields(cls: Any) -> list[dataclasses.Field]:
    """Return the declared fields of an entity in declaration order."""
    if not isinstance(cls, type) or not dataclasses.is_dataclass(cls):
        raise MappingError(cls, "Entity must be a dataclass")
    return list(dataclasses.fields(cls))


def resolve_hints(cls: type) -> dict[str, Any]:
    """Resolve field annotations, keeping ``Annotated`` metadata.

    Falls back to resolving one field at a time so a single unresolvable
    forward reference only affects the field that uses it.
    """
    try:
        return typing.get_type_hints(cls, include_extras=True)
    except (NameError, TypeError):
        pass

    module = sys.modules.get(cls.__module__)
    globalns = dict(vars(module)) if module is not None else {}
    localns = {cls.__name__: cls}
    hints: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        holder = type(cls.__name__, (), {"__annotations__": {f.name: f.type}})
        try:
            hints[f.name] = typing.get_type_hints(holder, globalns, localns, include_extras=True)[f.name]
        except (NameError, SyntaxError, TypeError):
            hints[f.name] = None
    return hints


def unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    """Strip ``X | None`` / ``Optional[X]``; return (inner, nullable)."""
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not _NONE_TYPE]
        nullable = len(args) != len(typing.get_args(annotation))
        if len(args) == 1:
            return args[0], nullable
        return annotation, nullable
    return annotation, False


def unwrap(annotation: Any) -> tuple[Any, bool, ScalarKind | None]:
    """Strip optional and ``Annotated`` wrappers.

    Returns:
        (base annotation, nullable, kind named in Annotated metadata or None)
    """
    kind: ScalarKind | None = None
    nullable = False
    while True:
        if typing.get_origin(annotation) is typing.Annotated:
            base, *extras = typing.get_args(annotation)
            for extra in extras:
                if isinstance(extra, ScalarKind):
                    kind = extra
            annotation = base
            continue
        inner, is_optional = unwrap_optional(annotation)
        if is_optional:
            nullable = True
            annotation = inner
            continue
        return annotation, nullable, kind


def scalar_kind(annotation: Any, override: ScalarKind | None, column: str) -> tuple[ScalarKind, bool]:
    """Classify a scalar annotation.

    Raises:
        UnsupportedTypeError: If the annotation maps to no supported kind.
    """
    base, nullable, annotated_kind = unwrap(annotation)
    kind = override or annotated_kind
    if kind is None:
        kind = DEFAULT_KINDS.get(base) if isinstance(base, type) else None
    if kind is None:
        raise UnsupportedTypeError(f"Unsupported field type {base!r}", column)
    if base is not typing.Any and isinstance(base, type) and not issubclass(base, kind.python_type):
        raise UnsupportedTypeError(
            f"Annotation {base.__name__} does not match kind {kind.value}", column
        )
    return kind, nullable


def collection_element(annotation: Any) -> Any | None:
    """Return the element type of ``list[X]`` (optionally wrapped), else None."""
    base, _, _ = unwrap(annotation)
    origin = typing.get_origin(base)
    if origin not in _COLLECTION_ORIGINS:
        return None
    args = typing.get_args(base)
    if not args:
        return None
    element, _, _ = unwrap(args[0])
    return element if isinstance(element, type) else None


def check_constructor(cls: type, params: list[tuple[str, type]]) -> None:
    """Verify ``cls(**values)`` accepts the given scalar parameters.

    The named parameters must appear in the given order with compatible
    annotations; any other parameter needs a default.

    Raises:
        MappingError: If no matching constructor is found.
    """
    try:
        signature = inspect.signature(cls)
    except (TypeError, ValueError) as exc:
        raise MappingError(cls, f"Failed to resolve constructor: {exc}") from exc
    try:
        init_hints = typing.get_type_hints(cls.__init__, include_extras=True)
    except (NameError, TypeError):
        init_hints = {}

    wanted = dict(params)
    position = {name: index for index, name in enumerate(signature.parameters)}
    previous = -1
    for name, expected in params:
        parameter = signature.parameters.get(name)
        if parameter is None or parameter.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.VAR_POSITIONAL,
            inspect.Parameter.VAR_KEYWORD,
        ):
            raise MappingError(cls, f"Failed to resolve constructor: no parameter for field '{name}'")
        if position[name] < previous:
            raise MappingError(cls, f"Failed to resolve constructor: parameter '{name}' is out of order")
        previous = position[name]

        annotation = init_hints.get(name, parameter.annotation)
        if annotation is inspect.Parameter.empty or isinstance(annotation, str):
            continue
        base, _, _ = unwrap(annotation)
        if base is typing.Any or not isinstance(base, type):
            continue
        if not issubclass(base, expected):
            raise MappingError(
                cls,
                f"Failed to resolve constructor: parameter '{name}' is {base.__name__}, "
                f"expected {expected.__name__}",
            )

    for name, parameter in signature.parameters.items():
        if name in wanted or parameter.kind in (
            inspect.Parameter.VAR_POSITIONAL,
            inspect.Parameter.VAR_KEYWORD,
        ):
            continue
        if parameter.default is inspect.Parameter.empty:
            raise MappingError(
                cls, f"Failed to resolve constructor: parameter '{name}' has no default"
            )
