#!/usr/bin/env python3

"""
Pytest configuration and shared fixtures for system-maintenance test suite.
"""

import os
import sys
import time
import logging
import tempfile
import pytest
from unittest.mock import Mock
from pathlib import Path
from typing import Dict, List, Optional, Tuple

# Add the project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from system_maintenance.config.manager import ConfigManager, MaintenanceConfig
from system_maintenance.reporting.logger import APP_LOGGER_NAME, MaintenanceLogger
from system_maintenance.storage.manager import StorageManager
from system_maintenance.tasks.executor import CommandExecutor, CommandResult
from system_maintenance.tasks.packages import PacmanPackageManager
from system_maintenance.tasks.phases import TaskContext


class FakeExecutor(CommandExecutor):
    """Records commands instead of running them.

    Responses are keyed by a command prefix tuple and give (returncode, output);
    anything unmatched succeeds with no output.
    """

    def __init__(self, responses: Optional[Dict[Tuple[str, ...], Tuple[int, str]]] = None,
                 available: Tuple[str, ...] = ("pacman", "apt-get", "rsync")):
        super().__init__()
        self.responses = dict(responses or {})
        self.available = set(available)
        self.commands: List[List[str]] = []
        self.envs: List[Optional[Dict[str, str]]] = []

    def run(self, command, env=None):
        self.commands.append(list(command))
        self.envs.append(env)
        for prefix, (returncode, output) in self.responses.items():
            if tuple(command[:len(prefix)]) == prefix:
                return CommandResult(list(command), returncode, output)
        return CommandResult(list(command), 0, "")

    def is_available(self, binary):
        return binary in self.available

    def ran(self, *prefix) -> int:
        """Number of recorded commands starting with prefix"""
        return sum(1 for command in self.commands if tuple(command[:len(prefix)]) == prefix)


class RecordingHandler(logging.Handler):
    """Keeps every record for assertions"""

    def __init__(self):
        super().__init__(logging.DEBUG)
        self.records: List[logging.LogRecord] = []

    def emit(self, record):
        self.records.append(record)

    def messages(self, level: Optional[int] = None) -> List[str]:
        return [r.getMessage() for r in self.records if level is None or r.levelno == level]

    def contains(self, text: str, level: Optional[int] = None) -> bool:
        return any(text in message for message in self.messages(level))


def set_age(path: str, days: float) -> None:
    """Backdate the mtime of path (without following symlinks)"""
    timestamp = time.time() - days * 86400
    os.utime(path, (timestamp, timestamp), follow_symlinks=False)


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that gets cleaned up after test"""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir

    # Cleanup
    import shutil
    if os.path.exists(temp_dir):
        shutil.rmtree(temp_dir)


@pytest.fixture
def sample_config(temp_dir):
    """Provide a configuration whose paths all live in the temp directory"""
    return MaintenanceConfig(
        log_file=os.path.join(temp_dir, "log", "system_maintenance.log"),
        backup_base=os.path.join(temp_dir, "backup"),
        backup_dirs=[os.path.join(temp_dir, "src", "etc"), os.path.join(temp_dir, "src", "www")],
        temp_dirs=[os.path.join(temp_dir, "tmp"), os.path.join(temp_dir, "var_tmp")],
        auto_update="no",
        package_manager="pacman"
    )


@pytest.fixture
def mock_config_manager(sample_config, temp_dir):
    """Provide a mock ConfigManager returning the sample configuration"""
    mock_manager = Mock(spec=ConfigManager)
    mock_manager.get_config.return_value = sample_config
    mock_manager.load_config.return_value = sample_config
    mock_manager.config_path = os.path.join(temp_dir, "system_maintenance.yaml")
    return mock_manager


@pytest.fixture
def log_records():
    """Provide a recording handler attached to a private logger"""
    return RecordingHandler()


@pytest.fixture
def maintenance_log(log_records):
    """Provide a MaintenanceLogger whose records land in log_records"""
    test_logger = logging.Logger("system-maintenance-test", logging.DEBUG)
    test_logger.addHandler(log_records)
    return MaintenanceLogger(test_logger)


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def task_context(sample_config, mock_config_manager, maintenance_log, fake_executor):
    """Provide a TaskContext wired to fakes and the temp-dir configuration"""
    return TaskContext(
        config=sample_config,
        log=maintenance_log,
        executor=fake_executor,
        storage=StorageManager(mock_config_manager),
        package_manager=PacmanPackageManager(fake_executor)
    )


@pytest.fixture(autouse=True)
def reset_app_logger():
    """Detach handlers added to the application logger during a test"""
    yield

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
        handler.close()


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


def pytest_collection_modifyitems(config, items):
    """Add the integration marker to integration test classes"""
    for item in items:
        if "Integration" in item.cls.__name__ if item.cls else False:
            item.add_marker(pytest.mark.integration)
