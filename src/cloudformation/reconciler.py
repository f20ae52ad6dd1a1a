"""
Create-or-update reconciliation of a CloudFormation stack.
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import click
from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from errors import (
    CreateError,
    DeleteError,
    DeploymentCancelled,
    DescribeError,
    UpdateError,
    WaitError,
    is_no_updates,
    is_stack_missing,
)

from .events import (
    DEFAULT_ERROR_BACKOFF,
    DEFAULT_LOOKBACK,
    DEFAULT_POLL_INTERVAL,
    EventTailer,
)
from .parameters import StackParameter

logger = logging.getLogger(__name__)

DEFAULT_CAPABILITIES = ("CAPABILITY_NAMED_IAM", "CAPABILITY_AUTO_EXPAND")


class ReconciliationOutcome(Enum):
    """Terminal result of one reconciliation attempt."""

    CREATED = "created"
    UPDATED = "updated"
    # The update had nothing to change, so the stack was deleted. Reconcile again.
    DELETED_FOR_RETRY = "deleted_for_retry"

    @property
    def needs_retry(self) -> bool:
        return self is ReconciliationOutcome.DELETED_FOR_RETRY


# botocore waiter names
CREATE_COMPLETE = "stack_create_complete"
UPDATE_COMPLETE = "stack_update_complete"
DELETE_COMPLETE = "stack_delete_complete"

# WaiterError reason when a single attempt ends without a terminal state
_STILL_WAITING = "Max attempts exceeded"


class StackReconciler:
    """
    Drive a stack towards a template: create it, update it, or delete it so
    the next attempt can create it afresh.

    While a create or update is in progress the stack's events are tailed in
    a background thread. The tailer is stopped before reconcile() returns,
    whatever the outcome.
    """

    def __init__(
        self,
        cloudformation: Any,
        capabilities: Sequence[str] = DEFAULT_CAPABILITIES,
        wait_delay: float = 15.0,
        wait_max_attempts: int = 240,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        error_backoff: float = DEFAULT_ERROR_BACKOFF,
        event_lookback: float = DEFAULT_LOOKBACK,
        tailer_factory: Optional[
            Callable[[str, threading.Event], EventTailer]
        ] = None,
    ):
        """
        Initialize the reconciler.

        Args:
            cloudformation: boto3 CloudFormation client
            capabilities: Capabilities acknowledged on create and update
            wait_delay: Seconds between stack status checks while waiting
            wait_max_attempts: Status checks before a wait gives up
            poll_interval: Seconds between event polls while tailing
            error_backoff: Seconds to back off after a failed event poll
            event_lookback: Seconds of event history shown when tailing starts
            tailer_factory: Builds an (unstarted) tailer for a stack name and
                the caller's cancel event
        """
        self.cloudformation = cloudformation
        self.capabilities = list(capabilities)
        self.wait_delay = wait_delay
        self.wait_max_attempts = wait_max_attempts
        self.poll_interval = poll_interval
        self.error_backoff = error_backoff
        self.event_lookback = event_lookback
        self.tailer_factory = tailer_factory or self._default_tailer

    @classmethod
    def from_config(cls, config: Any, cloudformation: Any) -> "StackReconciler":
        """Build a reconciler from a DeployConfig."""
        return cls(
            cloudformation,
            capabilities=config.capabilities,
            wait_delay=config.wait_delay,
            wait_max_attempts=config.wait_max_attempts,
            poll_interval=config.poll_interval,
            error_backoff=config.error_backoff,
            event_lookback=config.event_lookback,
        )

    def _default_tailer(
        self, stack_name: str, cancel_event: threading.Event
    ) -> EventTailer:
        return EventTailer(
            self.cloudformation,
            stack_name,
            poll_interval=self.poll_interval,
            error_backoff=self.error_backoff,
            lookback=self.event_lookback,
            cancel_event=cancel_event,
        )

    def reconcile(
        self,
        stack_name: str,
        template_body: str,
        parameters: List[StackParameter],
        cancel_event: Optional[threading.Event] = None,
    ) -> ReconciliationOutcome:
        """
        Create or update the stack and block until the operation finishes.

        Returns:
            CREATED or UPDATED on success, DELETED_FOR_RETRY when the update
            had nothing to do and the stack was deleted instead.

        Raises:
            DescribeError, CreateError, UpdateError, DeleteError,
            DeploymentCancelled
        """
        cancel_event = cancel_event or threading.Event()
        if cancel_event.is_set():
            raise DeploymentCancelled("reconcile stack", stack_name, "cancelled")

        if self.describe_stack(stack_name) is None:
            return self._create(stack_name, template_body, parameters, cancel_event)
        return self._update(stack_name, template_body, parameters, cancel_event)

    def describe_stack(self, stack_name: str) -> Optional[Dict[str, Any]]:
        """Return the stack description, or None if the stack does not exist."""
        try:
            response = self.cloudformation.describe_stacks(StackName=stack_name)
        except ClientError as e:
            if is_stack_missing(e):
                return None
            raise DescribeError("describe stack", stack_name, e) from e
        except BotoCoreError as e:
            raise DescribeError("describe stack", stack_name, e) from e

        stacks = response.get("Stacks") or []
        return stacks[0] if stacks else None

    def _stack_request(
        self, stack_name: str, template_body: str, parameters: List[StackParameter]
    ) -> Dict[str, Any]:
        return {
            "StackName": stack_name,
            "TemplateBody": template_body,
            "Parameters": [p.to_api() for p in parameters],
            "Capabilities": self.capabilities,
        }

    def _create(
        self,
        stack_name: str,
        template_body: str,
        parameters: List[StackParameter],
        cancel_event: threading.Event,
    ) -> ReconciliationOutcome:
        try:
            self.cloudformation.create_stack(
                **self._stack_request(stack_name, template_body, parameters)
            )
        except (ClientError, BotoCoreError) as e:
            raise CreateError("create stack", stack_name, e) from e

        click.echo(f"🚀 Created stack {stack_name}")
        try:
            self._wait_while_tailing(stack_name, CREATE_COMPLETE, cancel_event)
        except WaitError as e:
            raise CreateError("create stack", stack_name, e) from e

        click.echo(f"✅ Stack {stack_name} created")
        return ReconciliationOutcome.CREATED

    def _update(
        self,
        stack_name: str,
        template_body: str,
        parameters: List[StackParameter],
        cancel_event: threading.Event,
    ) -> ReconciliationOutcome:
        try:
            self.cloudformation.update_stack(
                **self._stack_request(stack_name, template_body, parameters)
            )
        except ClientError as e:
            if is_no_updates(e):
                logger.info(f"No updates to perform on {stack_name}: {e}")
                self.delete_stack(stack_name)
                click.echo(f"🗑️  Deleting stack {stack_name}")
                return ReconciliationOutcome.DELETED_FOR_RETRY
            raise UpdateError("update stack", stack_name, e) from e
        except BotoCoreError as e:
            raise UpdateError("update stack", stack_name, e) from e

        click.echo(f"🔄 Updating stack {stack_name}")
        try:
            self._wait_while_tailing(stack_name, UPDATE_COMPLETE, cancel_event)
        except WaitError as e:
            raise UpdateError("update stack", stack_name, e) from e

        click.echo(f"✅ Stack {stack_name} updated")
        return ReconciliationOutcome.UPDATED

    def delete_stack(self, stack_name: str) -> None:
        """Request deletion of the stack without waiting for it."""
        try:
            self.cloudformation.delete_stack(StackName=stack_name)
        except (ClientError, BotoCoreError) as e:
            raise DeleteError("delete stack", stack_name, e) from e

    def _wait_while_tailing(
        self, stack_name: str, waiter_name: str, cancel_event: threading.Event
    ) -> None:
        tailer = self.tailer_factory(stack_name, cancel_event)
        tailer.start()
        try:
            self.wait_for_terminal_state(stack_name, waiter_name, cancel_event)
        finally:
            tailer.stop(timeout=self.error_backoff)

    def wait_for_terminal_state(
        self,
        stack_name: str,
        waiter_name: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """
        Wait for the stack using a botocore CloudFormation waiter.

        The waiter runs one attempt at a time so cancel_event is observed
        between status checks. Its acceptors decide success and failure.

        Raises:
            WaitError: The waiter reached a failure state, the status could
                not be read, or the attempts ran out
            DeploymentCancelled: cancel_event was set
        """
        cancel_event = cancel_event or threading.Event()
        operation = f"wait for {waiter_name} on stack"
        waiter = self.cloudformation.get_waiter(waiter_name)

        for _ in range(self.wait_max_attempts):
            if cancel_event.is_set():
                raise DeploymentCancelled(operation, stack_name, "cancelled")

            try:
                waiter.wait(
                    StackName=stack_name,
                    WaiterConfig={"Delay": 0, "MaxAttempts": 1},
                )
                return
            except WaiterError as e:
                if _STILL_WAITING not in str(e):
                    raise WaitError(
                        operation, stack_name, self._failure_detail(stack_name, e)
                    ) from e
                logger.debug(
                    f"Stack {stack_name} is {_last_status(e)}, waiting {self.wait_delay}s"
                )
            except (ClientError, BotoCoreError) as e:
                raise WaitError(operation, stack_name, e) from e

            if cancel_event.wait(self.wait_delay):
                raise DeploymentCancelled(operation, stack_name, "cancelled")

        raise WaitError(
            operation,
            stack_name,
            f"still waiting after {self.wait_max_attempts} checks",
        )

    def _failure_detail(self, stack_name: str, error: WaiterError) -> str:
        status = _last_status(error)
        detail = f"stack reached {status}" if status else str(error)
        reason = self.first_failure_reason(stack_name)
        if reason:
            detail = f"{detail} ({reason})"
        return detail

    def wait_for_deletion(
        self, stack_name: str, cancel_event: Optional[threading.Event] = None
    ) -> None:
        """Block until a deleted stack is gone."""
        try:
            self.wait_for_terminal_state(stack_name, DELETE_COMPLETE, cancel_event)
        except WaitError as e:
            raise DeleteError("delete stack", stack_name, e) from e

    def first_failure_reason(self, stack_name: str) -> Optional[str]:
        """Find the most recent failed resource event, for error messages."""
        try:
            response = self.cloudformation.describe_stack_events(StackName=stack_name)
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Could not retrieve stack events: {e}")
            return None

        for event in response.get("StackEvents", []):
            if "FAILED" in event.get("ResourceStatus", ""):
                return (
                    f"{event.get('LogicalResourceId')} ({event.get('ResourceType')}) "
                    f"failed: {event.get('ResourceStatusReason', 'No reason provided')}"
                )
        return None


def _last_status(error: WaiterError) -> Optional[str]:
    """Stack status from the waiter's last DescribeStacks response, if any."""
    stacks = (error.last_response or {}).get("Stacks") or []
    return stacks[0].get("StackStatus") if stacks else None
