#!/usr/bin/env python3

import os
import yaml
import logging
from typing import Any, Optional, Tuple
from dataclasses import dataclass, asdict, fields

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/system_maintenance.yaml"

PACKAGE_MANAGER_CHOICES = ("auto", "pacman", "apt")

@dataclass(frozen=True)
class MaintenanceConfig:
    log_file: str = "/var/log/system_maintenance.log"
    # Root of the dated backup sets
    backup_base: str = "/backup"
    backup_dirs: Tuple[str, ...] = ("/etc", "/var/www")
    # Entries older than one day are removed from these
    temp_dirs: Tuple[str, ...] = ("/tmp", "/var/tmp")
    auto_update: str = "no"
    package_manager: str = "auto"  # 'auto', 'pacman' or 'apt'

    def __post_init__(self):
        # YAML 1.1 reads unquoted yes/no as booleans
        if isinstance(self.auto_update, bool):
            object.__setattr__(self, 'auto_update', "yes" if self.auto_update else "no")

        object.__setattr__(self, 'backup_dirs', self._as_path_tuple(self.backup_dirs))
        object.__setattr__(self, 'temp_dirs', self._as_path_tuple(self.temp_dirs))

        if self.package_manager not in PACKAGE_MANAGER_CHOICES:
            raise ValueError(
                f"package_manager must be one of {', '.join(PACKAGE_MANAGER_CHOICES)}, "
                f"got '{self.package_manager}'"
            )

    @staticmethod
    def _as_path_tuple(value: Any) -> Tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        return tuple(str(path) for path in value)

    @property
    def auto_update_enabled(self) -> bool:
        return str(self.auto_update).strip().lower() == "yes"

class ConfigManager:
    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config: Optional[MaintenanceConfig] = None
        self.created_default = False

    def load_config(self) -> MaintenanceConfig:
        if self._config is not None:
            return self._config

        if not os.path.exists(self.config_path):
            self._create_config_template()

        try:
            with open(self.config_path, 'r') as f:
                data = yaml.safe_load(f)

            if not isinstance(data, dict):
                raise ValueError("configuration must be a mapping of settings")

            known_keys = {field.name for field in fields(MaintenanceConfig)}
            unknown_keys = sorted(str(key) for key in set(data) - known_keys)
            if unknown_keys:
                logger.warning(f"Ignoring unknown settings in {self.config_path}: {', '.join(unknown_keys)}")

            self._config = MaintenanceConfig(**{key: value for key, value in data.items() if key in known_keys})
            return self._config

        except Exception as e:
            raise ValueError(f"Error loading config from {self.config_path}: {e}")

    def _create_config_template(self) -> None:
        """Write the default configuration, readable by the owner only"""
        config_dict = asdict(MaintenanceConfig())

        template = f"""# {self.config_path}
# Default configuration for System Maintenance

# Log file path (the directory must be writable by root)
log_file: {config_dict['log_file']}

# Backup configuration:
# backup_base is the root backup directory.
backup_base: {config_dict['backup_base']}
# backup_dirs lists the directories to back up.
backup_dirs:
"""
        for path in config_dict['backup_dirs']:
            template += f"  - {path}\n"

        template += """
# Temporary directories to clean (files older than 1 day will be removed)
temp_dirs:
"""
        for path in config_dict['temp_dirs']:
            template += f"  - {path}\n"

        template += f"""
# Update configuration:
# Set auto_update to "yes" to upgrade packages automatically.
auto_update: "{config_dict['auto_update']}"

# Package manager: auto, pacman or apt
package_manager: {config_dict['package_manager']}
"""

        config_dir = os.path.dirname(self.config_path)
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)

        fd = os.open(self.config_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, 'w') as f:
            f.write(template)

        # The creation mode is subject to the umask
        os.chmod(self.config_path, 0o600)
        self.created_default = True

    def get_config(self) -> MaintenanceConfig:
        if self._config is None:
            return self.load_config()
        return self._config
