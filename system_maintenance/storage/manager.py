#!/usr/bin/env python3

import os
import stat
import shutil
import logging
import psutil
from typing import Dict, List, Optional, Any
from datetime import datetime, timedelta
from ..config.manager import ConfigManager

logger = logging.getLogger(__name__)

BACKUP_RETENTION_DAYS = 5
TEMP_FILE_MAX_AGE_DAYS = 1
MIN_FREE_SPACE_GB = 1.0

class StorageManager:
    def __init__(self, config_manager: ConfigManager):
        self.config_manager = config_manager
        self.config = config_manager.get_config()

    def ensure_backup_root(self) -> bool:
        """Create the backup root if needed; returns True when it was created"""
        if os.path.isdir(self.config.backup_base):
            return False

        os.makedirs(self.config.backup_base, mode=0o755, exist_ok=True)
        logger.debug(f"Created backup root: {self.config.backup_base}")
        return True

    def get_backup_target(self, source_dir: str, when: Optional[datetime] = None) -> str:
        """Dated target directory for a backup source: <base>/<YYYYMMDD>/<name>_backup"""
        when = when or datetime.now()
        dir_name = os.path.basename(os.path.normpath(source_dir)) or "root"
        return os.path.join(
            self.config.backup_base,
            when.strftime("%Y%m%d"),
            f"{dir_name}_backup"
        )

    def create_backup_target(self, source_dir: str, when: Optional[datetime] = None) -> str:
        target_dir = self.get_backup_target(source_dir, when)
        os.makedirs(target_dir, mode=0o755, exist_ok=True)
        return target_dir

    def cleanup_old_backups(self, days_old: int = BACKUP_RETENTION_DAYS) -> Dict[str, Any]:
        """Remove top-level backup sets older than days_old; the root itself is kept"""
        cleanup_result = {
            'freed_space': 0,
            'deleted_files': 0,
            'deleted_directories': 0,
            'deleted': [],
            'errors': []
        }

        backup_base = self.config.backup_base
        if not os.path.isdir(backup_base):
            return cleanup_result

        cutoff_timestamp = self._cutoff(days_old)

        try:
            entries = sorted(os.scandir(backup_base), key=lambda e: e.name)
        except OSError as e:
            cleanup_result['errors'].append(f"Failed to list {backup_base}: {e}")
            return cleanup_result

        for entry in entries:
            try:
                if not entry.is_dir(follow_symlinks=False):
                    continue
                if entry.stat(follow_symlinks=False).st_mtime >= cutoff_timestamp:
                    continue

                size = self._get_directory_size(entry.path)
                shutil.rmtree(entry.path)
                cleanup_result['freed_space'] += size
                cleanup_result['deleted_directories'] += 1
                cleanup_result['deleted'].append(entry.path)
                logger.debug(f"Deleted old backup set: {entry.path}")

            except OSError as e:
                cleanup_result['errors'].append(f"Failed to delete {entry.path}: {e}")

        return cleanup_result

    def cleanup_directory(self, directory: str, days_old: int = TEMP_FILE_MAX_AGE_DAYS) -> Dict[str, Any]:
        """Remove every entry below directory whose mtime is older than days_old.

        Old directories are removed with their whole contents; newer ones are
        descended into. Symlinks are removed, never followed. The directory
        itself is kept.
        """
        result = {
            'freed_space': 0,
            'deleted_files': 0,
            'deleted_directories': 0,
            'deleted': [],
            'errors': []
        }

        self._cleanup_entries(directory, self._cutoff(days_old), result)
        return result

    def _cleanup_entries(self, directory: str, cutoff_timestamp: float, result: Dict[str, Any]) -> None:
        try:
            entries = list(os.scandir(directory))
        except OSError as e:
            result['errors'].append(f"Failed to list {directory}: {e}")
            return

        for entry in entries:
            try:
                entry_stat = entry.stat(follow_symlinks=False)
                is_directory = stat.S_ISDIR(entry_stat.st_mode)

                if entry_stat.st_mtime < cutoff_timestamp:
                    if is_directory:
                        size = self._get_directory_size(entry.path)
                        shutil.rmtree(entry.path)
                        result['deleted_directories'] += 1
                    else:
                        size = entry_stat.st_size
                        os.unlink(entry.path)
                        result['deleted_files'] += 1

                    result['freed_space'] += size
                    result['deleted'].append(entry.path)
                    logger.debug(f"Deleted old entry: {entry.path}")

                elif is_directory:
                    self._cleanup_entries(entry.path, cutoff_timestamp, result)

            except FileNotFoundError:
                # Removed by its owner while we were scanning
                continue
            except OSError as e:
                result['errors'].append(f"Failed to delete {entry.path}: {e}")

    def _cutoff(self, days_old: int) -> float:
        return (datetime.now() - timedelta(days=days_old)).timestamp()

    def _get_directory_size(self, path: str) -> int:
        """Calculate total size of a directory recursively"""
        total_size = 0
        for dirpath, dirnames, filenames in os.walk(path):
            for filename in filenames:
                file_path = os.path.join(dirpath, filename)
                try:
                    total_size += os.lstat(file_path).st_size
                except OSError:
                    # Skip files that can't be accessed
                    continue
        return total_size

    def check_disk_space(self, required_gb: float = MIN_FREE_SPACE_GB) -> Dict[str, Any]:
        """Check if there's enough free space at the backup root"""
        space_check = {
            'path': self.config.backup_base,
            'sufficient_space': True,
            'available_gb': 0.0,
            'required_gb': required_gb
        }

        try:
            disk_usage = psutil.disk_usage(self.config.backup_base)
        except OSError as e:
            logger.error(f"Failed to check disk space for {self.config.backup_base}: {e}")
            space_check['error'] = str(e)
            return space_check

        available_gb = disk_usage.free / (1024**3)
        space_check['available_gb'] = available_gb
        space_check['sufficient_space'] = available_gb >= required_gb
        return space_check

    def list_backup_sets(self) -> List[Dict[str, Any]]:
        """Describe the dated backup sets under the backup root, oldest first"""
        backup_base = self.config.backup_base
        if not os.path.isdir(backup_base):
            return []

        now = datetime.now().timestamp()
        backup_sets = []
        for entry in sorted(os.scandir(backup_base), key=lambda e: e.name):
            if not entry.is_dir(follow_symlinks=False):
                continue
            modified = entry.stat(follow_symlinks=False).st_mtime
            backup_sets.append({
                'name': entry.name,
                'path': entry.path,
                'size': self._get_directory_size(entry.path),
                'age_days': (now - modified) / 86400,
                'expired': modified < self._cutoff(BACKUP_RETENTION_DAYS)
            })

        return backup_sets

    def get_storage_info(self) -> Dict[str, Any]:
        """Get disk usage and backup set information for the backup root"""
        storage_info = {
            'backup_base': self.config.backup_base,
            'exists': os.path.isdir(self.config.backup_base),
            'backup_sets': self.list_backup_sets(),
            'last_updated': datetime.now().isoformat()
        }

        if storage_info['exists']:
            try:
                disk_usage = psutil.disk_usage(self.config.backup_base)
                storage_info.update({
                    'total_size': disk_usage.total,
                    'used_space': disk_usage.used,
                    'free_space': disk_usage.free,
                    'used_percent': disk_usage.percent
                })
            except OSError as e:
                logger.error(f"Failed to get disk usage for {self.config.backup_base}: {e}")

        return storage_info
