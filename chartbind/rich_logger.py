"""
Rich logging handler for chartbind diagnostics.

Library modules only log named events (record.event) with structured extra
fields. This handler renders them with Rich console output, keeping
presentation out of the solver and binding code.
"""

import logging

from rich.console import Console
from rich.panel import Panel

from chartbind.core.config import config


class DiagnosticsHandler(logging.Handler):
    """
    Logging handler that formats chartbind diagnostics with Rich.

    Records carrying an `event` attribute are dispatched to a dedicated
    renderer; anything else is printed as a dim line.
    """

    def __init__(self, console: Console | None = None, level: int = logging.NOTSET):
        super().__init__(level)
        self.console = console or Console(stderr=True)

    def emit(self, record: logging.LogRecord):
        try:
            event = getattr(record, "event", None)
            if event in ("autoconfig_failed", "concept_not_found"):
                self._handle_autoconfig(record)
            elif event == "invariants_failed":
                self._handle_invariants_failed(record)
            elif event == "query_failed":
                self._handle_query_failed(record)
            elif event in ("source_not_found", "marker_without_source", "query_without_concept"):
                self._handle_missing(record)
            elif event == "unknown_strategy":
                self.console.print(f"[red]✗[/red] {record.getMessage()}")
            elif event is not None and event.endswith(("_start", "_end")):
                self.console.print(f"[dim]{event} {self._binding(record)}[/dim]")
            else:
                self.console.print(f"[dim]{record.getMessage()}[/dim]")
        except Exception:
            # Don't let logging errors crash the application
            self.handleError(record)

    @staticmethod
    def _binding(record: logging.LogRecord) -> str:
        binding = getattr(record, "binding", None)
        return repr(binding) if binding is not None else ""

    def _handle_autoconfig(self, record: logging.LogRecord):
        space = getattr(record, "space", None)
        where = f" in space {list(space)}" if space is not None else ""
        self.console.print(
            f"[yellow]⚠ autoconfig[/yellow] [bold]{self._binding(record)}[/bold]{where}: "
            f"{record.getMessage()}"
        )

    def _handle_invariants_failed(self, record: logging.LogRecord):
        failures = getattr(record, "failures", [])
        self.console.print(Panel(
            "\n".join(f"• {failure}" for failure in failures) or record.getMessage(),
            title=f"[yellow]Invariants failed: {self._binding(record)}[/yellow]",
            border_style="yellow",
        ))

    def _handle_query_failed(self, record: logging.LogRecord):
        query = getattr(record, "query", None)
        body = record.getMessage()
        if query is not None:
            body += f"\n[dim]{query}[/dim]"
        self.console.print(Panel(body, title="[red]Query failed[/red]", border_style="red"))

    def _handle_missing(self, record: logging.LogRecord):
        self.console.print(f"[yellow]⚠[/yellow] {record.getMessage()}")


class LogContext:
    """
    Context manager for logging start/end events.

    Usage:
        with LogContext(logger, "marker_load", {"binding": marker}):
            await ...

    This logs "marker_load_start" on enter and "marker_load_end" on exit, at DEBUG.
    """

    def __init__(self, logger: logging.Logger | None, event: str, extra: dict | None = None):
        self.logger = logger
        self.event = event
        self.extra = extra or {}

    def __enter__(self):
        if self.logger:
            self.logger.debug(self.event + "_start", extra={**self.extra, "event": self.event + "_start"})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.logger:
            self.logger.debug(self.event + "_end", extra={**self.extra, "event": self.event + "_end"})
        return False  # Don't suppress exceptions


def setup_rich_logger(
    level: int | str | None = None, console: Console | None = None, silent: bool = False
) -> logging.Logger:
    """
    Attach a DiagnosticsHandler to the "chartbind" logger.

    The level defaults to config.log_level. With silent=True a NullHandler is
    attached instead, muting library diagnostics.

    Usage:
        setup_rich_logger(logging.DEBUG)
        await marker.load()   # diagnostics render on the Rich console
    """
    logger = logging.getLogger("chartbind")
    logger.setLevel(level if level is not None else config.log_level)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    if silent:
        logger.addHandler(logging.NullHandler())
    else:
        logger.addHandler(DiagnosticsHandler(console))

    # Prevent propagation to root logger
    logger.propagate = False

    return logger
