#!/usr/bin/env python3

import os
import fcntl
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, TextIO
from rich.table import Table
from rich.text import Text
from .phases import MaintenanceTask, TaskContext, TaskOutcome, TaskStatus, default_tasks

logger = logging.getLogger(__name__)

DEFAULT_LOCK_PATH = "/run/system_maintenance.lock"

STATUS_STYLES = {
    TaskStatus.SUCCESS: "green",
    TaskStatus.WARNING: "yellow",
    TaskStatus.ERROR: "red",
    TaskStatus.SKIPPED: "dim",
}

@dataclass
class RunSummary:
    outcomes: List[TaskOutcome] = field(default_factory=list)

    def add(self, outcomes: List[TaskOutcome]) -> None:
        self.outcomes.extend(outcomes)

    def count(self, status: TaskStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    def counts(self) -> Dict[str, int]:
        return {status.value: self.count(status) for status in TaskStatus}

    @property
    def has_errors(self) -> bool:
        return self.count(TaskStatus.ERROR) > 0

    def headline(self) -> str:
        return (
            f"Maintenance summary: {self.count(TaskStatus.SUCCESS)} succeeded, "
            f"{self.count(TaskStatus.WARNING)} warning(s), "
            f"{self.count(TaskStatus.ERROR)} error(s), "
            f"{self.count(TaskStatus.SKIPPED)} skipped."
        )

    def to_table(self) -> Table:
        table = Table(title="Maintenance Summary")
        table.add_column("Task")
        table.add_column("Status")
        table.add_column("Message")

        for outcome in self.outcomes:
            table.add_row(
                outcome.task,
                Text(outcome.status.value, style=STATUS_STYLES[outcome.status]),
                Text(outcome.message)
            )

        return table

class TaskRunner:
    """Runs the maintenance tasks in order; a failing task never stops the next one"""

    def __init__(self, context: TaskContext, tasks: Optional[List[MaintenanceTask]] = None):
        self.context = context
        self.tasks = tasks if tasks is not None else default_tasks()

    def run(self) -> RunSummary:
        summary = RunSummary()
        log = self.context.log

        log.section_header("System Maintenance Routine Started")

        for task in self.tasks:
            log.section_header(task.title)
            summary.add(self._run_task(task))

        log.section_header("System Maintenance Routine Completed")
        log.info(summary.headline())
        return summary

    def _run_task(self, task: MaintenanceTask) -> List[TaskOutcome]:
        try:
            return task.run(self.context)
        except Exception as e:
            logger.debug(f"Task {task.name} raised", exc_info=True)
            self.context.log.error(f"Unexpected failure in '{task.title}': {e}")
            return [TaskOutcome(task.name, TaskStatus.ERROR, f"Unexpected failure: {e}")]

class RunLock:
    """Exclusive, non-blocking flock guarding against overlapping runs"""

    def __init__(self, lock_path: str = DEFAULT_LOCK_PATH):
        self.lock_path = lock_path
        self._handle: Optional[TextIO] = None

    @property
    def acquired(self) -> bool:
        return self._handle is not None

    def acquire(self) -> bool:
        if self._handle is not None:
            return True

        lock_dir = os.path.dirname(self.lock_path)
        if lock_dir:
            os.makedirs(lock_dir, exist_ok=True)

        handle = open(self.lock_path, 'a+')
        try:
            fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            # Held by another run
            handle.close()
            return False

        handle.seek(0)
        handle.truncate()
        handle.write(f"{os.getpid()}\n")
        handle.flush()
        self._handle = handle
        return True

    def release(self) -> None:
        if self._handle is None:
            return

        fcntl.flock(self._handle, fcntl.LOCK_UN)
        self._handle.close()
        self._handle = None
