#!/usr/bin/env python3

import os
import shutil
import logging
import subprocess
from dataclasses import dataclass
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

@dataclass
class CommandResult:
    command: List[str]
    returncode: int
    output: str = ""

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0

class CommandExecutor:
    """Runs external commands and captures their combined stdout/stderr.

    Commands are passed as argument lists and never go through a shell.
    There is no timeout: a hanging command blocks the run.
    """

    def __init__(self, env: Optional[Dict[str, str]] = None):
        self.env = env or {}

    def run(self, command: List[str], env: Optional[Dict[str, str]] = None) -> CommandResult:
        command_str = " ".join(command)
        logger.debug(f"Executing: {command_str}")

        run_env = None
        if self.env or env:
            run_env = os.environ.copy()
            run_env.update(self.env)
            run_env.update(env or {})

        try:
            completed = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                env=run_env,
                check=False
            )
        except FileNotFoundError:
            logger.debug(f"Command not found: {command[0]}")
            return CommandResult(command, 127, f"Command not found: {command[0]}")
        except OSError as e:
            logger.debug(f"Failed to start {command_str}: {e}")
            return CommandResult(command, 126, str(e))

        output = (completed.stdout or "").rstrip()
        logger.debug(f"{command[0]} exited with code {completed.returncode}")
        return CommandResult(command, completed.returncode, output)

    @staticmethod
    def is_available(binary: str) -> bool:
        return shutil.which(binary) is not None
