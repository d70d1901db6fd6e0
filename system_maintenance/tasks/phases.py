#!/usr/bin/env python3

import os
from abc import ABC, abstractmethod
from enum import Enum
from datetime import datetime
from dataclasses import dataclass
from typing import List, Optional
from ..config.manager import MaintenanceConfig
from ..reporting.logger import MaintenanceLogger, Severity
from ..storage.manager import StorageManager, BACKUP_RETENTION_DAYS, TEMP_FILE_MAX_AGE_DAYS
from .executor import CommandExecutor
from .packages import PackageManager, partition_package_names

# Never pruned even when listed as temporary directories
PROTECTED_DIRECTORIES = {'/', '/bin', '/boot', '/etc', '/home', '/lib', '/root', '/sbin', '/usr', '/var'}

class TaskStatus(Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    SKIPPED = "skipped"

STATUS_SEVERITIES = {
    TaskStatus.SUCCESS: Severity.INFO,
    TaskStatus.SKIPPED: Severity.INFO,
    TaskStatus.WARNING: Severity.WARNING,
    TaskStatus.ERROR: Severity.ERROR,
}

@dataclass
class TaskOutcome:
    task: str
    status: TaskStatus
    message: str
    output: str = ""

@dataclass
class TaskContext:
    config: MaintenanceConfig
    log: MaintenanceLogger
    executor: CommandExecutor
    storage: StorageManager
    package_manager: Optional[PackageManager] = None

class MaintenanceTask(ABC):
    name: str = ""
    title: str = ""

    @abstractmethod
    def run(self, context: TaskContext) -> List[TaskOutcome]:
        pass

    def report(self, context: TaskContext, status: TaskStatus, message: str, output: str = "") -> TaskOutcome:
        """Log an outcome with the severity matching its status and return it"""
        text = message
        if output and status is TaskStatus.ERROR:
            text = f"{message} Output: {output}"
        context.log.log(text, STATUS_SEVERITIES[status])
        return TaskOutcome(self.name, status, message, output)

class UpdateCheckTask(MaintenanceTask):
    name = "updates"
    title = "1. Checking System Updates"

    def run(self, context: TaskContext) -> List[TaskOutcome]:
        package_manager = context.package_manager
        if package_manager is None:
            return [self.report(
                context, TaskStatus.ERROR,
                "No supported package manager found (pacman or apt). Cannot check for updates."
            )]

        outcomes = []

        context.log.info("Synchronizing package databases...")
        sync_result = package_manager.sync_databases()
        if sync_result.succeeded:
            outcomes.append(self.report(context, TaskStatus.SUCCESS, "Package databases synchronized successfully."))
        else:
            outcomes.append(self.report(
                context, TaskStatus.ERROR,
                "Failed to synchronize package databases.", sync_result.output
            ))

        context.log.info("Checking for package updates...")
        query = package_manager.query_updates()
        if query.failed:
            outcomes.append(self.report(
                context, TaskStatus.ERROR,
                "Failed to query package updates.", query.result.output
            ))
            return outcomes

        if not query.packages:
            outcomes.append(self.report(context, TaskStatus.SUCCESS, "No updates available. System is up-to-date."))
            return outcomes

        context.log.info("Updates available:")
        context.log.info(query.listing)
        outcomes.append(TaskOutcome(
            self.name, TaskStatus.SUCCESS,
            f"{len(query.packages)} package update(s) available.", query.listing
        ))

        if context.config.auto_update_enabled:
            context.log.info(f"Auto-update enabled. Running {package_manager.name} upgrade...")
            upgrade_result = package_manager.upgrade()
            if upgrade_result.succeeded:
                outcomes.append(self.report(context, TaskStatus.SUCCESS, "System updated successfully."))
            else:
                outcomes.append(self.report(
                    context, TaskStatus.ERROR,
                    "System update encountered errors.", upgrade_result.output
                ))

        return outcomes

class BackupTask(MaintenanceTask):
    name = "backup"
    title = "2. Backup Routine"

    def run(self, context: TaskContext) -> List[TaskOutcome]:
        outcomes = []
        storage = context.storage
        backup_base = context.config.backup_base

        try:
            if storage.ensure_backup_root():
                outcomes.append(self.report(
                    context, TaskStatus.SUCCESS,
                    f"Backup base directory {backup_base} created successfully."
                ))
        except OSError as e:
            outcomes.append(self.report(
                context, TaskStatus.ERROR,
                f"Failed to create backup base directory {backup_base}: {e}"
            ))
            return outcomes

        space_check = storage.check_disk_space()
        if 'error' not in space_check and not space_check['sufficient_space']:
            outcomes.append(self.report(
                context, TaskStatus.WARNING,
                f"Only {space_check['available_gb']:.1f} GB free at {backup_base}. Backups may fail."
            ))

        if not context.config.backup_dirs:
            outcomes.append(self.report(context, TaskStatus.SKIPPED, "No backup directories configured."))
            return outcomes

        context.log.info("Starting backup routines...")
        # All sources of one run share a dated set
        started = datetime.now()

        for source_dir in context.config.backup_dirs:
            if not os.path.isdir(source_dir):
                outcomes.append(self.report(
                    context, TaskStatus.WARNING,
                    f"Backup source directory {source_dir} does not exist. Skipping."
                ))
                continue

            try:
                target_dir = storage.create_backup_target(source_dir, started)
            except OSError as e:
                outcomes.append(self.report(
                    context, TaskStatus.ERROR,
                    f"Failed to create backup directory {storage.get_backup_target(source_dir, started)}: {e}"
                ))
                continue

            context.log.info(f"Backing up {source_dir} to {target_dir}")
            rsync_result = context.executor.run(self.rsync_command(source_dir, target_dir))
            if rsync_result.succeeded:
                outcomes.append(self.report(
                    context, TaskStatus.SUCCESS,
                    f"Backup of {source_dir} completed successfully."
                ))
            else:
                outcomes.append(self.report(
                    context, TaskStatus.ERROR,
                    f"Backup of {source_dir} encountered errors.", rsync_result.output
                ))

        return outcomes

    @staticmethod
    def rsync_command(source_dir: str, target_dir: str) -> List[str]:
        # Trailing slashes copy the contents rather than the directory itself
        return [
            'rsync', '-a', '--delete',
            source_dir.rstrip('/') + '/',
            target_dir.rstrip('/') + '/'
        ]

class BackupRetentionTask(MaintenanceTask):
    name = "backup-retention"
    title = "2a. Cleaning Up Old Backups"

    def run(self, context: TaskContext) -> List[TaskOutcome]:
        backup_base = context.config.backup_base
        if not os.path.isdir(backup_base):
            return [self.report(
                context, TaskStatus.SKIPPED,
                f"Backup base directory {backup_base} does not exist. Nothing to clean."
            )]

        result = context.storage.cleanup_old_backups(BACKUP_RETENTION_DAYS)
        for path in result['deleted']:
            context.log.debug(f"Removed backup set {path}")

        if result['errors']:
            return [self.report(
                context, TaskStatus.ERROR,
                "Cleanup of old backups encountered errors.", "\n".join(result['errors'])
            )]

        return [self.report(
            context, TaskStatus.SUCCESS,
            f"Old backups cleaned successfully. Removed {result['deleted_directories']} backup set(s)."
        )]

class TempCleanupTask(MaintenanceTask):
    name = "temp-cleanup"
    title = "3. Cleaning Temporary Files"

    def run(self, context: TaskContext) -> List[TaskOutcome]:
        outcomes = []

        if not context.config.temp_dirs:
            outcomes.append(self.report(context, TaskStatus.SKIPPED, "No temporary directories configured."))

        for temp_dir in context.config.temp_dirs:
            if os.path.normpath(temp_dir) in PROTECTED_DIRECTORIES:
                outcomes.append(self.report(
                    context, TaskStatus.ERROR,
                    f"Refusing to clean protected directory {temp_dir}."
                ))
                continue

            if not os.path.isdir(temp_dir):
                outcomes.append(self.report(
                    context, TaskStatus.WARNING,
                    f"Temporary directory {temp_dir} does not exist. Skipping."
                ))
                continue

            context.log.info(f"Cleaning files in {temp_dir} older than {TEMP_FILE_MAX_AGE_DAYS} day.")
            result = context.storage.cleanup_directory(temp_dir, TEMP_FILE_MAX_AGE_DAYS)
            if result['errors']:
                outcomes.append(self.report(
                    context, TaskStatus.ERROR,
                    f"Issues encountered while cleaning {temp_dir}.", "\n".join(result['errors'])
                ))
            else:
                outcomes.append(self.report(
                    context, TaskStatus.SUCCESS,
                    f"Temporary files in {temp_dir} cleaned successfully."
                ))

        return outcomes

class OrphanRemovalTask(MaintenanceTask):
    name = "orphans"
    title = "4. Dependency Management (Orphan Packages)"

    def run(self, context: TaskContext) -> List[TaskOutcome]:
        package_manager = context.package_manager
        if package_manager is None:
            return [self.report(
                context, TaskStatus.WARNING,
                "No supported package manager found. Skipping dependency management."
            )]

        if not package_manager.is_available():
            return [self.report(
                context, TaskStatus.WARNING,
                f"'{package_manager.binary}' command not found. Skipping dependency management."
            )]

        query = package_manager.query_orphans()
        if query.failed:
            return [self.report(
                context, TaskStatus.ERROR,
                "Failed to query orphan packages.", query.result.output
            )]

        if not query.packages:
            return [self.report(context, TaskStatus.SUCCESS, "No orphan packages found.")]

        outcomes = []
        context.log.info("Orphan packages found:")
        context.log.info(query.listing)

        packages, rejected = partition_package_names(query.packages)
        if rejected:
            outcomes.append(self.report(
                context, TaskStatus.WARNING,
                f"Ignoring orphan package names with unexpected characters: {', '.join(rejected)}"
            ))

        if not packages:
            return outcomes

        removal_result = package_manager.remove_packages(packages)
        if removal_result.succeeded:
            outcomes.append(self.report(
                context, TaskStatus.SUCCESS,
                "Orphan packages removed successfully.", "\n".join(packages)
            ))
        else:
            outcomes.append(self.report(
                context, TaskStatus.ERROR,
                "Failed to remove orphan packages.", removal_result.output
            ))

        return outcomes

def default_tasks() -> List[MaintenanceTask]:
    """The maintenance phases in the order they run"""
    return [
        UpdateCheckTask(),
        BackupTask(),
        BackupRetentionTask(),
        TempCleanupTask(),
        OrphanRemovalTask(),
    ]
