#!/usr/bin/env python3

import os
import shutil
import logging
from typing import Dict, Optional
from ..config.manager import ConfigManager

logger = logging.getLogger(__name__)

SERVICE_NAME = "system-maintenance"

SCHEDULE_CHOICES = ("hourly", "daily", "twice-daily", "weekly", "monthly")

class SystemdServiceGenerator:
    def __init__(self, config_manager: ConfigManager, service_dir: Optional[str] = None):
        self.config_manager = config_manager
        self.service_dir = service_dir or "/etc/systemd/system"

    def generate_service_unit(self) -> str:
        exec_start = self._generate_run_command()

        service_content = f"""[Unit]
Description=System Maintenance - package updates, backups and cleanup
After=network-online.target
Wants=network-online.target

[Service]
Type=oneshot
ExecStart={exec_start}
StandardOutput=journal
StandardError=journal
SyslogIdentifier={SERVICE_NAME}

# Resource limits
Nice=10
IOSchedulingClass=idle
"""

        return service_content

    def generate_timer_unit(self, schedule: str = "daily") -> str:
        on_calendar = self._schedule_to_systemd_calendar(schedule)

        timer_content = f"""[Unit]
Description=Timer for System Maintenance ({schedule})
Requires={SERVICE_NAME}.service

[Timer]
OnCalendar={on_calendar}
RandomizedDelaySec=1800
Persistent=true
AccuracySec=1h

[Install]
WantedBy=timers.target
"""

        return timer_content

    def _generate_run_command(self) -> str:
        executable = shutil.which(SERVICE_NAME) or f"/usr/local/bin/{SERVICE_NAME}"

        # Units run with / as the working directory
        command_parts = [
            executable,
            "--config", os.path.abspath(self.config_manager.config_path),
            "run"
        ]

        return " ".join(command_parts)

    def _schedule_to_systemd_calendar(self, schedule: str) -> str:
        schedule_mapping = {
            "hourly": "hourly",
            "daily": "daily",
            "weekly": "weekly",
            "monthly": "monthly",
            "twice-daily": "*-*-* 06,18:00:00",
        }

        return schedule_mapping.get(schedule, "daily")

    def create_service_files(self, schedule: str = "daily", enable_timer: bool = True) -> Dict[str, Optional[str]]:
        service_content = self.generate_service_unit()
        timer_content = self.generate_timer_unit(schedule)

        os.makedirs(self.service_dir, exist_ok=True)

        service_file = os.path.join(self.service_dir, f"{SERVICE_NAME}.service")
        timer_file = os.path.join(self.service_dir, f"{SERVICE_NAME}.timer")

        try:
            with open(service_file, 'w') as f:
                f.write(service_content)
            logger.info(f"Created service file: {service_file}")

            if enable_timer:
                with open(timer_file, 'w') as f:
                    f.write(timer_content)
                logger.info(f"Created timer file: {timer_file}")

            return {
                'service_file': service_file,
                'timer_file': timer_file if enable_timer else None,
                'service_name': SERVICE_NAME
            }

        except PermissionError as e:
            error_msg = f"Permission denied writing unit files to {self.service_dir}. Try running with sudo or use --output-dir."
            logger.error(error_msg)
            raise PermissionError(error_msg) from e
