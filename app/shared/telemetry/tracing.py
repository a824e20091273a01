"""Span helpers for the sync dispatcher."""

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode


def add_span_attributes(**attributes: str | int | float | bool) -> None:
    """Add attributes to the current span."""
    span = trace.get_current_span()
    if span and span.is_recording():
        for key, value in attributes.items():
            span.set_attribute(key, value)


class TracedOperation:
    """Context manager for a traced operation (sync or async).

    The span is made current, so add_span_attributes inside the block lands on it.
    """

    def __init__(self, operation_name: str, attributes: dict | None = None) -> None:
        self.operation_name = operation_name
        self.attributes = attributes or {}
        self.tracer = trace.get_tracer(__name__)
        self.span: trace.Span | None = None
        self._cm = None

    def __enter__(self) -> "TracedOperation":
        self._cm = self.tracer.start_as_current_span(
            self.operation_name,
            attributes=self.attributes,
            record_exception=False,
            set_status_on_exception=False,
        )
        self.span = self._cm.__enter__()
        return self

    def __exit__(
        self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object
    ) -> None:
        if self.span is None or self._cm is None:
            return
        if exc_val is not None:
            self.span.set_status(Status(StatusCode.ERROR, str(exc_val)))
            self.span.record_exception(exc_val)
        else:
            self.span.set_status(Status(StatusCode.OK))
        self._cm.__exit__(exc_type, exc_val, exc_tb)

    async def __aenter__(self) -> "TracedOperation":
        return self.__enter__()

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)
