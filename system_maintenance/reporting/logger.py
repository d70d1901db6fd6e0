#!/usr/bin/env python3

import time
import logging
from enum import Enum
from typing import Optional
from rich.console import Console
from rich.text import Text

APP_LOGGER_NAME = "system_maintenance"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Section headers sit between INFO and WARNING
HEADER = 25
logging.addLevelName(HEADER, "HEADER")

BANNER_BORDER = "#" * 63
BANNER_TITLE_WIDTH = 57

class Severity(Enum):
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    HEADER = HEADER

SEVERITY_PREFIXES = {
    logging.WARNING: "WARNING: ",
    logging.ERROR: "ERROR: ",
    logging.CRITICAL: "ERROR: ",
}

SEVERITY_STYLES = {
    logging.DEBUG: "dim",
    logging.INFO: "green",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "bold red",
    HEADER: "cyan",
}

def render_message(record: logging.LogRecord) -> str:
    """Message text with the severity prefix used in both sinks"""
    return SEVERITY_PREFIXES.get(record.levelno, "") + record.getMessage()

def format_banner(title: str) -> str:
    return "\n".join([
        BANNER_BORDER,
        f"# {title:^{BANNER_TITLE_WIDTH}} #",
        BANNER_BORDER,
    ])

class PlainFileFormatter(logging.Formatter):
    """Uncolored '<timestamp> - <message>' lines for the log file"""

    def __init__(self):
        super().__init__(datefmt=TIMESTAMP_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        if getattr(record, 'banner', False):
            return record.getMessage()

        line = f"{self.formatTime(record, self.datefmt)} - {render_message(record)}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line

class ConsoleHandler(logging.Handler):
    """Writes color-coded records and section banners through rich"""

    def __init__(self, console: Optional[Console] = None, level: int = logging.NOTSET):
        super().__init__(level)
        self.console = console or Console(highlight=False, soft_wrap=True)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            style = SEVERITY_STYLES.get(record.levelno, "")

            if getattr(record, 'banner', False):
                self.console.print()
                self.console.print(Text(format_banner(record.getMessage()), style=style))
                self.console.print()
                return

            timestamp = time.strftime(TIMESTAMP_FORMAT, time.localtime(record.created))
            line = Text(f"{timestamp} - ")
            line.append(render_message(record), style=style)
            self.console.print(line)
        except Exception:
            self.handleError(record)

class MaintenanceLogger:
    """Severity-aware logging facade handed to the runner and its tasks"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(APP_LOGGER_NAME)

    def log(self, message: str, severity: Severity = Severity.INFO) -> None:
        self.logger.log(severity.value, message)

    def info(self, message: str) -> None:
        self.log(message, Severity.INFO)

    def warning(self, message: str) -> None:
        self.log(message, Severity.WARNING)

    def error(self, message: str) -> None:
        self.log(message, Severity.ERROR)

    def debug(self, message: str) -> None:
        self.logger.debug(message)

    def section_header(self, title: str) -> None:
        self.logger.log(HEADER, title, extra={'banner': True})
