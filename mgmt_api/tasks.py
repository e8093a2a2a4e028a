"""Turns the server's asynchronous task pattern into a single awaited call.

Long-running commands (publish, install-policy, run-script, ...) answer with a
``task-id`` (or a ``tasks`` list of them) instead of a result. The resolver
polls ``show-task`` until no task or sub-task is ``in progress`` and returns
the last ``show-task`` response. If any task ended ``failed`` or
``partially succeeded`` that response has ``success`` set to False.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Iterator, List, Optional, Sequence, Union

from .exceptions import ProtocolError, TaskResolutionError
from .models import ApiResponse, Session
from .types import JSONObject

SHOW_TASK_COMMAND = "show-task"
IN_PROGRESS = "in progress"
FAILED_STATUSES = ("failed", "partially succeeded")
SUB_TASKS_KEY = "sub-tasks"

log = logging.getLogger(__name__)


def iter_tasks(payload: JSONObject) -> Iterator[JSONObject]:
    """Yield every task of a ``show-task`` payload, sub-tasks included."""
    stack: List[Any] = list(reversed(payload.get("tasks") or []))
    while stack:
        task = stack.pop()
        if not isinstance(task, dict):
            continue
        yield task
        stack.extend(reversed(task.get(SUB_TASKS_KEY) or []))


def mark_failures(response: ApiResponse) -> None:
    for task in iter_tasks(response.payload):
        if task.get("status") in FAILED_STATUSES:
            log.warning(f"Task {task.get('task-id')} ended with status '{task.get('status')}'")
            response.success = False
            return


class TaskResolver:
    """Polls ``show-task`` until tasks finish.

    Args:
        transport: Object with an ``async send(session, command, payload)``
        poll_interval: Seconds to wait between polls
        sleep: Coroutine used to wait (``asyncio.sleep``)
    """

    def __init__(self, transport, poll_interval: float = 2.0,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.transport = transport
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    async def _show_task(self, session: Session, task_id: Union[str, List[str]]) -> ApiResponse:
        payload = {"task-id": task_id, "details-level": "full"}
        try:
            response = await self.transport.send(session, SHOW_TASK_COMMAND, payload)
        except ProtocolError as e:
            raise TaskResolutionError(
                f"ERROR: failed to handle asynchronous task as synchronous, task result is undefined: {e}"
            ) from e
        if not response.success:
            raise TaskResolutionError(
                f"ERROR: failed to handle asynchronous task as synchronous, "
                f"'{SHOW_TASK_COMMAND}' failed: {response.error_message}"
            )
        if not isinstance(response.payload.get("tasks"), list):
            raise TaskResolutionError(
                f"ERROR: failed to handle asynchronous task as synchronous, "
                f"'{SHOW_TASK_COMMAND}' returned no tasks"
            )
        return response

    def _deadline(self, timeout: Optional[float]) -> Optional[float]:
        return None if timeout is None else self._clock() + timeout

    async def _wait_for(self, session: Session, task_id: str, deadline: Optional[float]) -> ApiResponse:
        while True:
            response = await self._show_task(session, task_id)
            pending = [task for task in iter_tasks(response.payload) if task.get("status") == IN_PROGRESS]
            if not pending:
                return response
            if deadline is not None and self._clock() >= deadline:
                raise TaskResolutionError(f"ERROR: timed out waiting for task {task_id}")
            log.debug(f"Task {task_id}: {len(pending)} task(s) still in progress")
            await self._sleep(self.poll_interval)

    async def resolve(self, session: Session, task_id: str, timeout: Optional[float] = None) -> ApiResponse:
        """Wait for one task and its sub-tasks.

        Args:
            session: Logged-in session
            task_id: Identifier returned by the triggering call
            timeout: Optional overall deadline in seconds

        Returns:
            The final ``show-task`` response

        Raises:
            TaskResolutionError: If ``show-task`` fails or the deadline passes
        """
        log.info(f"Waiting for task {task_id}")
        response = await self._wait_for(session, task_id, self._deadline(timeout))
        mark_failures(response)
        return response

    async def resolve_many(self, session: Session, tasks: Sequence[Union[JSONObject, str]],
                           timeout: Optional[float] = None) -> ApiResponse:
        """Wait for every task of a ``tasks`` list, one after the other.

        Returns:
            One ``show-task`` response covering all the tasks
        """
        deadline = self._deadline(timeout)
        task_ids = []
        for task in tasks:
            task_id = task.get("task-id") if isinstance(task, dict) else task
            if task_id is None:
                raise TaskResolutionError("ERROR: task entry without 'task-id'")
            log.info(f"Waiting for task {task_id}")
            await self._wait_for(session, str(task_id), deadline)
            task_ids.append(str(task_id))

        response = await self._show_task(session, task_ids)
        mark_failures(response)
        return response
