#!/usr/bin/env python3

import re
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Type
from .executor import CommandExecutor, CommandResult

logger = logging.getLogger(__name__)

# Package names are handed to the removal command as argv entries
PACKAGE_NAME_PATTERN = re.compile(r'^[A-Za-z0-9@._+-]+$')

@dataclass
class PackageQuery:
    result: CommandResult
    packages: List[str] = field(default_factory=list)
    lines: List[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        # Query tools exit nonzero with no output when there is nothing to report
        return not self.result.succeeded and bool(self.result.output)

    @property
    def listing(self) -> str:
        return "\n".join(self.lines)

def partition_package_names(names: List[str]) -> Tuple[List[str], List[str]]:
    """Split names into (valid, rejected) using PACKAGE_NAME_PATTERN"""
    valid, rejected = [], []
    for name in names:
        if PACKAGE_NAME_PATTERN.match(name) and not name.startswith('-'):
            valid.append(name)
        else:
            rejected.append(name)
    return valid, rejected

class PackageManager(ABC):
    name: str = ""
    binary: str = ""
    env: Optional[Dict[str, str]] = None

    def __init__(self, executor: CommandExecutor):
        self.executor = executor

    def is_available(self) -> bool:
        return self.executor.is_available(self.binary)

    def _run(self, command: List[str]) -> CommandResult:
        return self.executor.run(command, env=dict(self.env) if self.env else None)

    @abstractmethod
    def sync_databases(self) -> CommandResult:
        pass

    @abstractmethod
    def query_updates(self) -> PackageQuery:
        pass

    @abstractmethod
    def upgrade(self) -> CommandResult:
        pass

    @abstractmethod
    def query_orphans(self) -> PackageQuery:
        pass

    @abstractmethod
    def remove_packages(self, packages: List[str]) -> CommandResult:
        pass

class PacmanPackageManager(PackageManager):
    name = "pacman"
    binary = "pacman"

    def sync_databases(self) -> CommandResult:
        return self._run(['pacman', '-Sy'])

    def query_updates(self) -> PackageQuery:
        result = self._run(['pacman', '-Qu'])
        lines = self._package_lines(result)
        # Lines look like "linux 6.9.1-1 -> 6.9.2-1"
        packages = [line.split()[0] for line in lines]
        return PackageQuery(result, packages, lines)

    def upgrade(self) -> CommandResult:
        return self._run(['pacman', '-Syu', '--noconfirm'])

    def query_orphans(self) -> PackageQuery:
        result = self._run(['pacman', '-Qtdq'])
        lines = self._package_lines(result)
        # -Qtdq prints one bare name per line
        return PackageQuery(result, list(lines), lines)

    def remove_packages(self, packages: List[str]) -> CommandResult:
        return self._run(['pacman', '-Rns', '--noconfirm'] + list(packages))

    def _package_lines(self, result: CommandResult) -> List[str]:
        if not result.succeeded:
            return []
        return [
            line.strip() for line in result.output.splitlines()
            if line.strip() and not line.startswith(('warning:', 'error:', '::'))
        ]

class AptPackageManager(PackageManager):
    name = "apt"
    binary = "apt-get"
    env = {'DEBIAN_FRONTEND': 'noninteractive'}

    def sync_databases(self) -> CommandResult:
        return self._run(['apt-get', 'update'])

    def query_updates(self) -> PackageQuery:
        result = self._run(['apt-get', '--simulate', 'upgrade'])
        return self._parse_simulation(result, 'Inst ')

    def upgrade(self) -> CommandResult:
        return self._run(['apt-get', '-y', 'upgrade'])

    def query_orphans(self) -> PackageQuery:
        result = self._run(['apt-get', '--simulate', 'autoremove'])
        return self._parse_simulation(result, 'Remv ')

    def remove_packages(self, packages: List[str]) -> CommandResult:
        return self._run(['apt-get', '-y', 'purge'] + list(packages))

    def _parse_simulation(self, result: CommandResult, action: str) -> PackageQuery:
        """Collect the packages a simulated apt-get run would act on"""
        if not result.succeeded:
            return PackageQuery(result)

        lines = [
            line[len(action):].strip() for line in result.output.splitlines()
            if line.startswith(action)
        ]
        packages = [line.split()[0] for line in lines if line]
        return PackageQuery(result, packages, lines)

PACKAGE_MANAGERS: Dict[str, Type[PackageManager]] = {
    "pacman": PacmanPackageManager,
    "apt": AptPackageManager,
}

def detect_package_manager(preference: str, executor: CommandExecutor) -> Optional[PackageManager]:
    """Resolve the configured backend, probing the PATH when set to 'auto'"""
    if preference != "auto":
        return PACKAGE_MANAGERS[preference](executor)

    for name, backend_class in PACKAGE_MANAGERS.items():
        backend = backend_class(executor)
        if backend.is_available():
            logger.debug(f"Detected package manager: {name}")
            return backend

    return None
