"""Event logging for linear solver iterations.

Solvers report the progress of each ``solve`` call through an
:class:`IterationLogger`. Every report is stored as an
:class:`IterationEvent` so that residual histories and solve durations can
be queried after the fact, and is optionally echoed to a text stream
depending on the configured verbosity.
"""

import sys
import time
from typing import Any, Optional, TextIO

import attrs

EVENT_TYPES = {"start", "stop", "progress"}
VERBOSITY_LEVELS = {None, "default", "verbose", "debug"}

# Labels echoed at 'verbose' level; 'debug' echoes everything.
_VERBOSE_LABELS = {"linear-iterate", "restart", "end-linear-iterate"}


@attrs.define(frozen=True)
class IterationEvent:
    """Record of a single solver event.

    Attributes
    ----------
    name : str
        Label of the event (e.g. ``'linear-iterate'``).
    event_type : str
        ``'start'``, ``'stop'`` or ``'progress'``.
    timestamp : float
        Wall-clock time from :func:`time.perf_counter`.
    metadata : dict
        Values reported with the event (iteration counts, residual
        norms, status strings).
    """
    name: str = attrs.field(validator=attrs.validators.instance_of(str))
    event_type: str = attrs.field(
        validator=attrs.validators.in_(EVENT_TYPES)
    )
    timestamp: float = attrs.field(
        validator=attrs.validators.instance_of(float)
    )
    metadata: dict = attrs.field(factory=dict)


class IterationLogger:
    """Callback-style event log for iterative linear solvers.

    Parameters
    ----------
    verbosity : str or None, default='default'
        Output verbosity level. Options:
        - None: no-op, nothing is recorded
        - 'default': record events, print nothing until
          :meth:`print_summary`
        - 'verbose': also print iteration, restart and final status lines
        - 'debug': print every event as it is recorded
    stream : TextIO, optional
        Destination for printed output. Defaults to ``sys.stdout``.

    Notes
    -----
    Create one instance per solver, or share one between solvers that run
    on the same thread.
    """

    def __init__(
        self,
        verbosity: Optional[str] = "default",
        stream: Optional[TextIO] = None,
    ) -> None:
        if verbosity == "None":
            verbosity = None
        if verbosity not in VERBOSITY_LEVELS:
            raise ValueError(
                f"verbosity must be None, 'default', 'verbose', or 'debug', "
                f"got '{verbosity}'"
            )
        self.verbosity = verbosity
        self.stream = stream
        self.events: list[IterationEvent] = []
        self._active_starts: dict[str, float] = {}

    @property
    def enabled(self) -> bool:
        """Return True when events are being recorded."""
        return self.verbosity is not None

    def _echo(self, text: str) -> None:
        print(text, file=self.stream if self.stream is not None
              else sys.stdout)

    def _record(self, name: str, event_type: str, metadata: dict) -> float:
        if not name:
            raise ValueError("event name cannot be empty")
        timestamp = time.perf_counter()
        self.events.append(
            IterationEvent(
                name=name,
                event_type=event_type,
                timestamp=timestamp,
                metadata=metadata,
            )
        )
        return timestamp

    def start_event(self, event_name: str, **metadata: Any) -> None:
        """Record the start of a solve or other timed operation."""
        if not self.enabled:
            return
        timestamp = self._record(event_name, "start", dict(metadata))
        self._active_starts[event_name] = timestamp
        if self.verbosity == "debug":
            self._echo(f"[DEBUG] Started: {event_name} {_format(metadata)}")

    def stop_event(self, event_name: str, **metadata: Any) -> None:
        """Record the end of an operation started with :meth:`start_event`.

        A stop without a matching start is stored anyway so that it shows
        up in diagnostics.
        """
        if not self.enabled:
            return
        timestamp = self._record(event_name, "stop", dict(metadata))
        start = self._active_starts.pop(event_name, None)
        if self.verbosity == "debug":
            if start is None:
                self._echo(f"[DEBUG] Warning: stop_event('{event_name}') "
                           "without matching start")
            else:
                self._echo(f"[DEBUG] Stopped: {event_name} "
                           f"({timestamp - start:.3e}s) {_format(metadata)}")

    def progress(self, event_name: str, **metadata: Any) -> None:
        """Record a progress report, e.g. one Arnoldi step."""
        if not self.enabled:
            return
        self._record(event_name, "progress", dict(metadata))
        if self.verbosity == "debug":
            self._echo(f"[DEBUG] {event_name}: {_format(metadata)}")
        elif self.verbosity == "verbose" and event_name in _VERBOSE_LABELS:
            self._echo(f"{event_name}: {_format(metadata)}")

    def residual_history(self, solve_index: int = -1) -> list[float]:
        """Return the residual norm estimates of one solve.

        Parameters
        ----------
        solve_index : int, default=-1
            Index of the solve among all recorded ``linear-solver`` starts.
            Negative values count from the most recent solve.

        Returns
        -------
        list[float]
            ``res_norm`` of every ``linear-iterate`` event of that solve,
            in order.
        """
        starts = [i for i, event in enumerate(self.events)
                  if event.name == "linear-solver"
                  and event.event_type == "start"]
        if not starts:
            return []
        first = starts[solve_index]
        position = starts.index(first)
        last = (starts[position + 1] if position + 1 < len(starts)
                else len(self.events))
        return [
            event.metadata["res_norm"]
            for event in self.events[first:last]
            if event.name == "linear-iterate"
        ]

    def get_event_duration(self, event_name: str) -> Optional[float]:
        """Return the duration of the most recent completed ``event_name``.

        Returns
        -------
        float or None
            Duration in seconds, or None if no matching start/stop pair
        """
        start_time = None
        stop_time = None

        for event in reversed(self.events):
            if event.name == event_name:
                if event.event_type == "stop" and stop_time is None:
                    stop_time = event.timestamp
                elif event.event_type == "start" and stop_time is not None:
                    start_time = event.timestamp
                    break

        if start_time is not None and stop_time is not None:
            return stop_time - start_time
        return None

    def print_summary(self) -> None:
        """Print one line per recorded solve.

        Only prints at 'default' verbosity; 'verbose' and 'debug' have
        already echoed the same information inline.
        """
        if self.verbosity != "default":
            return
        solves = [event for event in self.events
                  if event.name == "linear-solver"
                  and event.event_type == "stop"]
        if not solves:
            return
        self._echo("\nLinear solver summary:")
        for index, event in enumerate(solves):
            self._echo(f"  solve {index}: {_format(event.metadata)}")

    def clear(self) -> None:
        """Drop all recorded events."""
        self.events.clear()
        self._active_starts.clear()


def _format(metadata: dict) -> str:
    parts = []
    for key, value in metadata.items():
        if isinstance(value, float):
            parts.append(f"{key} = {value:.16g}")
        else:
            parts.append(f"{key} = {value}")
    return ", ".join(parts)
