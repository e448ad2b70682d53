"""
Per-document transforms applied between fetch and store.

A transform is a plain function taking a document and returning the
document to write. Transforms are referenced by name in the migration
configuration and applied in order.

Built-in transforms:
    - ``identity``: Leave documents unchanged
    - ``strip-fields:<a>,<b>``: Remove top level fields
    - ``rename-field:<old>:<new>``: Rename a top level field

Example:
    >>> transform = build_transform(["strip-fields:owner,groups", "rename-field:tlp:tlp_level"])
    >>> transform({"id": "indicator-1", "owner": "x", "tlp": "green"})
    {'id': 'indicator-1', 'tlp_level': 'green'}
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

from intelstore.migration.exceptions import UnknownTransformError

logger = logging.getLogger(__name__)

Document = dict[str, Any]
DocumentTransform = Callable[[Document], Document]
TransformFactory = Callable[[str], DocumentTransform]


def identity(doc: Document) -> Document:
    return doc


def strip_fields(argument: str) -> DocumentTransform:
    fields = tuple(f.strip() for f in argument.split(",") if f.strip())
    if not fields:
        raise UnknownTransformError(f"strip-fields:{argument}")

    def transform(doc: Document) -> Document:
        return {k: v for k, v in doc.items() if k not in fields}

    return transform


def rename_field(argument: str) -> DocumentTransform:
    old, sep, new = argument.partition(":")
    if not sep or not old or not new:
        raise UnknownTransformError(f"rename-field:{argument}")

    def transform(doc: Document) -> Document:
        if old not in doc:
            return doc
        renamed = {k: v for k, v in doc.items() if k != old}
        renamed[new] = doc[old]
        return renamed

    return transform


_FACTORIES: dict[str, TransformFactory] = {
    "strip-fields": strip_fields,
    "rename-field": rename_field,
}

_TRANSFORMS: dict[str, DocumentTransform] = {
    "identity": identity,
}


def register_transform(name: str, transform: DocumentTransform) -> None:
    """Register a named transform taking no argument."""
    if name in _TRANSFORMS or name in _FACTORIES:
        logger.warning("Replacing document transform %s", name)
    _TRANSFORMS[name] = transform


def get_transform(spec: str) -> DocumentTransform:
    """
    Resolve a transform by name, ``name:argument`` for parameterized ones.

    Raises:
        UnknownTransformError: If no transform has this name.
    """
    if spec in _TRANSFORMS:
        return _TRANSFORMS[spec]
    name, sep, argument = spec.partition(":")
    if sep and name in _FACTORIES:
        return _FACTORIES[name](argument)
    raise UnknownTransformError(spec)


def build_transform(specs: Iterable[str]) -> DocumentTransform:
    """Compose transforms in the given order."""
    transforms = [get_transform(spec) for spec in specs]
    if not transforms:
        return identity

    def transform(doc: Document) -> Document:
        for step in transforms:
            doc = step(doc)
        return doc

    return transform


__all__ = [
    "Document",
    "DocumentTransform",
    "build_transform",
    "get_transform",
    "identity",
    "register_transform",
    "rename_field",
    "strip_fields",
]
