#!/usr/bin/env python3

import os
import sys
import signal
import logging
import argparse
from typing import Any, Dict, List, Optional
from rich.console import Console

from .config.manager import ConfigManager
from .reporting.logger import (
    APP_LOGGER_NAME, ConsoleHandler, MaintenanceLogger, PlainFileFormatter
)
from .storage.manager import StorageManager
from .systemd.service_generator import SystemdServiceGenerator, SCHEDULE_CHOICES
from .tasks.executor import CommandExecutor
from .tasks.packages import detect_package_manager
from .tasks.phases import TaskContext
from .tasks.runner import DEFAULT_LOCK_PATH, RunLock, TaskRunner

logger = logging.getLogger(__name__)

def setup_logging(level: str = "INFO", console: Optional[Console] = None) -> MaintenanceLogger:
    """Configure the console sink; the log file is attached once the config is loaded"""
    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(getattr(logging, level.upper()))
    app_logger.propagate = False

    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
        handler.close()

    app_logger.addHandler(ConsoleHandler(console))
    return MaintenanceLogger(app_logger)

def add_log_file(log: MaintenanceLogger, log_file: str) -> None:
    """Append every record to log_file from now on"""
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
    file_handler.setFormatter(PlainFileFormatter())
    log.logger.addHandler(file_handler)

def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser"""
    parser = argparse.ArgumentParser(
        description="System Maintenance Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                    # Run the maintenance routine
  %(prog)s status                             # Show configuration and backup storage
  %(prog)s setup-systemd --schedule weekly    # Install a weekly timer
        """
    )

    parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
        default=None
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Set logging level"
    )

    parser.add_argument(
        "--lock-file",
        default=DEFAULT_LOCK_PATH,
        help="Lock file guarding against overlapping runs"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("run", help="Run the maintenance routine (default)")

    subparsers.add_parser("status", help="Show configuration and backup storage status")

    systemd_parser = subparsers.add_parser("setup-systemd", help="Write systemd service and timer units")
    systemd_parser.add_argument(
        "--schedule", "-s",
        choices=SCHEDULE_CHOICES,
        default="daily",
        help="How often the timer fires"
    )
    systemd_parser.add_argument(
        "--no-timer",
        action="store_true",
        help="Don't create the timer unit"
    )
    systemd_parser.add_argument(
        "--output-dir", "-o",
        default=None,
        help="Directory for the unit files (default: /etc/systemd/system)"
    )

    return parser

def _raise_exit(signum: int, frame: Any) -> None:
    raise SystemExit(128 + signum)

def install_signal_handlers() -> Dict[int, Any]:
    """Turn SIGTERM/SIGHUP into SystemExit so the exit handler still runs"""
    previous = {}
    for signum in (signal.SIGTERM, signal.SIGHUP):
        previous[signum] = signal.signal(signum, _raise_exit)
    return previous

def restore_signal_handlers(previous: Dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)

def on_exit(log: MaintenanceLogger, exit_code: int) -> None:
    """Report the final status of a maintenance run"""
    if exit_code != 0:
        log.error(f"Script exited unexpectedly with exit code {exit_code}")
    else:
        log.info("Script execution completed.")

def cmd_run(args, log: MaintenanceLogger) -> int:
    """Handle run command"""
    if os.geteuid() != 0:
        print("ERROR: This script must be run as root.", file=sys.stderr)
        return 1

    config_manager = ConfigManager(args.config)
    config = config_manager.load_config()
    add_log_file(log, config.log_file)

    if config_manager.created_default:
        log.info(f"Default configuration file created at {config_manager.config_path}")

    run_lock = RunLock(args.lock_file)
    if not run_lock.acquire():
        log.error(f"Another maintenance run holds {args.lock_file}. Exiting.")
        return 1

    try:
        executor = CommandExecutor()
        context = TaskContext(
            config=config,
            log=log,
            executor=executor,
            storage=StorageManager(config_manager),
            package_manager=detect_package_manager(config.package_manager, executor)
        )

        summary = TaskRunner(context).run()
        Console().print(summary.to_table())
    finally:
        run_lock.release()

    return 0

def run_maintenance(args, log: MaintenanceLogger) -> int:
    """Run the routine with the exit handler registered around it"""
    exit_code = 1
    previous_handlers = install_signal_handlers()

    try:
        exit_code = cmd_run(args, log)

    except KeyboardInterrupt:
        log.error("Interrupted by user")
        exit_code = 130

    except SystemExit as e:
        if e.code is None:
            exit_code = 0
        else:
            exit_code = e.code if isinstance(e.code, int) else 1

    except Exception as e:
        log.error(f"Unexpected error: {e}")
        logger.debug("Unexpected error", exc_info=True)
        exit_code = 1

    finally:
        on_exit(log, exit_code)
        restore_signal_handlers(previous_handlers)

    return exit_code

def cmd_status(args) -> int:
    """Handle status command"""
    config_manager = ConfigManager(args.config)
    try:
        config = config_manager.load_config()
    except (ValueError, OSError) as e:
        print(f"Error: {e}")
        return 1

    if config_manager.created_default:
        print(f"Default configuration file created at {config_manager.config_path}\n")

    print("=== System Maintenance Status ===\n")

    print(f"Configuration: {config_manager.config_path}")
    print(f"  Log file: {config.log_file}")
    print(f"  Backup root: {config.backup_base}")
    print(f"  Backup sources: {', '.join(config.backup_dirs) or '(none)'}")
    print(f"  Temporary directories: {', '.join(config.temp_dirs) or '(none)'}")
    print(f"  Auto-update: {'yes' if config.auto_update_enabled else 'no'}")

    package_manager = detect_package_manager(config.package_manager, CommandExecutor())
    if package_manager is None:
        print("  Package manager: none found")
    else:
        availability = "available" if package_manager.is_available() else "not installed"
        print(f"  Package manager: {package_manager.name} ({availability})")

    print()

    storage_info = StorageManager(config_manager).get_storage_info()
    if not storage_info['exists']:
        print(f"Backup storage: {config.backup_base} does not exist yet")
        return 0

    used_pct = storage_info.get('used_percent', 0)
    free_gb = storage_info.get('free_space', 0) / (1024**3)
    print(f"Backup storage: {config.backup_base}: {used_pct:.1f}% used, {free_gb:.1f}GB free")

    backup_sets = storage_info['backup_sets']
    print(f"Backup sets: {len(backup_sets)}")
    for backup_set in backup_sets:
        size_mb = backup_set['size'] / (1024**2)
        expired = " (expired)" if backup_set['expired'] else ""
        print(f"  {backup_set['name']}: {size_mb:.1f} MB, {backup_set['age_days']:.1f} days old{expired}")

    return 0

def cmd_setup_systemd(args) -> int:
    """Handle setup-systemd command"""
    config_manager = ConfigManager(args.config)

    try:
        service_gen = SystemdServiceGenerator(config_manager, args.output_dir)
        created = service_gen.create_service_files(
            schedule=args.schedule,
            enable_timer=not args.no_timer
        )
    except Exception as e:
        print(f"Error creating systemd units: {e}")
        return 1

    print(f"Service file written to: {created['service_file']}")
    if created['timer_file']:
        print(f"Timer file written to: {created['timer_file']}")
        print("\nTo enable the timer, run:")
        print("  sudo systemctl daemon-reload")
        print(f"  sudo systemctl enable --now {created['service_name']}.timer")
    else:
        print("\nTo run the service once, run:")
        print("  sudo systemctl daemon-reload")
        print(f"  sudo systemctl start {created['service_name']}.service")

    return 0

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    log = setup_logging(args.log_level)

    if args.command == "status":
        return cmd_status(args)

    if args.command == "setup-systemd":
        return cmd_setup_systemd(args)

    return run_maintenance(args, log)

if __name__ == "__main__":
    sys.exit(main())
