"""
Tracers injected into intelstore components.

Stores, the batch pipeline, the index manager and the migration repository
take an optional ``tracer`` and otherwise build one with :func:`create_tracer`.
The coordinator reuses the tracer of its context. Span names follow
``intelstore.<component>.<operation>``.

Example:
    >>> pipeline = BatchPipeline(tracer=create_tracer(__name__, enable_tracing=True))
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from opentelemetry.trace import Span

from intelstore.observability.tracing import OTEL_AVAILABLE


@runtime_checkable
class Tracer(Protocol):
    """What components need from a tracer: spans, and whether they are real."""

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]: ...

    @property
    def enabled(self) -> bool: ...


class NullTracer:
    """Used when tracing is disabled or OpenTelemetry is not installed."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Spans on the global OpenTelemetry tracer provider.

    Raises:
        ImportError: If the ``telemetry`` extra is not installed.
    """

    def __init__(self, tracer_name: str) -> None:
        from opentelemetry import trace

        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        return self._tracer.start_as_current_span(name, attributes=attributes or {})

    @property
    def enabled(self) -> bool:
        return True


class MockTracer:
    """
    Records ``(name, attributes)`` of every span, for span assertions in tests.

    Example:
        >>> tracer = MockTracer()
        >>> store = InMemoryDocumentStore(tracer=tracer)
        >>> await store.count("ctia_indicator")
        >>> tracer.span_names
        ['intelstore.memory_store.count']
    """

    def __init__(self) -> None:
        self.spans: list[tuple[str, dict[str, Any] | None]] = []

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        self.spans.append((name, attributes))
        yield None

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [name for name, _ in self.spans]

    def clear(self) -> None:
        self.spans.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """OpenTelemetry tracer when enabled and installed, NullTracer otherwise."""
    if enable_tracing and OTEL_AVAILABLE:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
]
