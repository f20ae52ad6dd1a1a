"""
Live tailing of CloudFormation stack events.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

import click

from errors import is_quiet_poll_error

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_ERROR_BACKOFF = 5.0
DEFAULT_LOOKBACK = 20.0

# Longest sleep between checks of a caller's cancellation event
CANCEL_CHECK_INTERVAL = 0.1


class Severity(Enum):
    """Display severity of a stack event."""

    ERROR = "red"
    WARNING = "yellow"
    SUCCESS = "green"
    INFO = "blue"


# Checked in order; the first substring found in the status wins.
# These are display hints only, not an authoritative reading of stack state.
SEVERITY_RULES = (
    ("FAILED", Severity.ERROR),
    ("DELETE", Severity.ERROR),
    ("UPDATE", Severity.WARNING),
    ("CREATE", Severity.SUCCESS),
)


def classify_status(status: str) -> Severity:
    """Map a resource status such as UPDATE_IN_PROGRESS to a display severity."""
    for marker, severity in SEVERITY_RULES:
        if marker in status:
            return severity
    return Severity.INFO


@dataclass(frozen=True)
class StackEvent:
    """One entry of a stack's event log."""

    event_id: str
    timestamp: datetime
    logical_resource_id: str = ""
    resource_type: str = ""
    status: str = ""
    reason: str = ""

    @classmethod
    def from_api(cls, event: Dict[str, Any]) -> "StackEvent":
        timestamp = event["Timestamp"]
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return cls(
            event_id=event["EventId"],
            timestamp=timestamp,
            logical_resource_id=event.get("LogicalResourceId", ""),
            resource_type=event.get("ResourceType", ""),
            status=event.get("ResourceStatus", ""),
            reason=event.get("ResourceStatusReason", ""),
        )

    @property
    def severity(self) -> Severity:
        return classify_status(self.status)

    def format(self) -> str:
        local = self.timestamp.astimezone()
        clock = local.strftime("%H:%M:%S.") + f"{local.microsecond // 1000:03d}"
        return (
            f"{clock}  {self.logical_resource_id:<25} {self.resource_type:<35} "
            f"{self.status:<35} {self.reason}"
        )


def display_event(event: StackEvent) -> None:
    """Print an event colored by its severity."""
    click.secho(event.format(), fg=event.severity.value)


class EventTailer:
    """
    Poll a stack's event log in a background thread and emit new events.

    The tailer owns its seen-id set for the lifetime of one session. It stops
    as soon as its stop event or the caller's cancel event is set, whether it
    is sleeping between polls or backing off after an error.
    """

    def __init__(
        self,
        cloudformation: Any,
        stack_name: str,
        on_event: Callable[[StackEvent], None] = display_event,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        error_backoff: float = DEFAULT_ERROR_BACKOFF,
        lookback: float = DEFAULT_LOOKBACK,
        stop_event: Optional[threading.Event] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.cloudformation = cloudformation
        self.stack_name = stack_name
        self.on_event = on_event
        self.poll_interval = poll_interval
        self.error_backoff = error_backoff
        self.lookback = lookback
        self.stop_event = stop_event or threading.Event()
        self.cancel_event = cancel_event

        self.floor: datetime = datetime.now(timezone.utc) - timedelta(seconds=lookback)
        self._seen: Set[str] = set()
        self._thread: Optional[threading.Thread] = None

    @property
    def stopped(self) -> bool:
        if self.stop_event.is_set():
            return True
        return self.cancel_event is not None and self.cancel_event.is_set()

    def start(self) -> "EventTailer":
        """Start tailing in a daemon thread."""
        if self._thread is not None:
            raise RuntimeError(f"Tailer for {self.stack_name} already started")
        self.floor = datetime.now(timezone.utc) - timedelta(seconds=self.lookback)
        self._thread = threading.Thread(
            target=self.run, name=f"tail-{self.stack_name}", daemon=True
        )
        self._thread.start()
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the tailer to stop and wait for its thread to exit."""
        self.stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def run(self) -> None:
        """Poll until stopped."""
        while not self._pause(self.poll_interval):
            try:
                self.poll_once()
            except Exception as e:
                if not is_quiet_poll_error(e):
                    logger.warning(
                        f"describe stack events failed for stack, {self.stack_name} - {e}"
                    )
                if self._pause(self.error_backoff):
                    return

    def _pause(self, seconds: float) -> bool:
        """Sleep up to `seconds`. Returns True as soon as the tailer is stopped."""
        if self.cancel_event is None:
            return self.stop_event.wait(seconds)

        deadline = time.monotonic() + seconds
        while not self.stopped:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self.stop_event.wait(min(remaining, CANCEL_CHECK_INTERVAL))
        return True

    def poll_once(self) -> List[StackEvent]:
        """Fetch all pages once and emit unseen events, oldest first per page."""
        emitted: List[StackEvent] = []
        request: Dict[str, Any] = {"StackName": self.stack_name}

        while not self.stopped:
            response = self.cloudformation.describe_stack_events(**request)
            if self.stopped:
                break

            fresh = self._collect(response.get("StackEvents", []))
            for event in reversed(fresh):
                self.on_event(event)
                emitted.append(event)

            next_token = response.get("NextToken")
            if not next_token:
                break
            request["NextToken"] = next_token

        return emitted

    def _collect(self, raw_events: List[Dict[str, Any]]) -> List[StackEvent]:
        """Collect unseen events from a newest-first page, stopping at the floor."""
        fresh: List[StackEvent] = []
        for raw in raw_events:
            event = StackEvent.from_api(raw)
            if event.timestamp < self.floor:
                break
            if event.event_id in self._seen:
                continue
            self._seen.add(event.event_id)
            fresh.append(event)
        return fresh
