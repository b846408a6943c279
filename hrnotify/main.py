"""Main entry point for the HR notification worker."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import signal
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from hrnotify.config.environment import EnvironmentConfig
from hrnotify.config.exceptions import ConfigurationError
from hrnotify.config.loader import load_config
from hrnotify.config.models import AppConfig
from hrnotify.domain.models import NotificationType
from hrnotify.logging import get_logger
from hrnotify.logging.config import configure_logging
from hrnotify.notifications.queue import EmailQueue
from hrnotify.notifications.recipients import RecipientResolver, default_recipient_config
from hrnotify.notifications.service import NotificationService
from hrnotify.notifications.templates import TemplateEngine
from hrnotify.notifications.transport import Transport, build_transport
from hrnotify.persistence import NotificationRuleRepository, get_session
from hrnotify.persistence.database import close_database, init_database
from hrnotify.scheduler import DeliveryWorker, SchedulerService

logger = get_logger(__name__, component="cli")


@dataclass
class Runtime:
    """Long-lived components built once at startup."""

    transport: Transport
    queue: EmailQueue
    service: NotificationService
    worker: DeliveryWorker

    def close(self) -> None:
        self.service.shutdown(wait=False)
        self.queue.shutdown()
        self.transport.close()
        close_database()


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Priority: CLI flag, then LOG_LEVEL, then the config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level

    level = env_config.log_level
    env_config.log_level = getattr(level, "value", level).upper()
    return app_config, env_config


def check_transport(transport: Transport) -> bool:
    """Health-check the mail transport once at startup and log the result.

    An unhealthy transport is not fatal: emails stay queued until it recovers.
    """
    healthy = transport.health_check()
    if healthy:
        logger.info(
            f"Mail transport {transport.name} is ready",
            extra={"event": "transport.health_checked", "transport": transport.name, "healthy": True},
        )
    else:
        logger.warning(
            f"Mail transport {transport.name} is not ready; emails will stay queued",
            extra={"event": "transport.health_checked", "transport": transport.name, "healthy": False},
        )
    return healthy


def build_runtime(app_config: AppConfig, env_config: EnvironmentConfig) -> Runtime:
    """Wire transport, queue, templates, resolver and service together."""
    transport = build_transport(
        env_config,
        app_name=app_config.branding.app_name,
        timeout=app_config.queue.send_timeout_seconds,
    )
    check_transport(transport)
    queue = EmailQueue(transport, config=app_config.queue)
    service = NotificationService(
        queue,
        templates=TemplateEngine(branding=app_config.branding),
        resolver=RecipientResolver(),
    )
    return Runtime(
        transport=transport,
        queue=queue,
        service=service,
        worker=DeliveryWorker(queue),
    )


def seed_rules(overwrite: bool = False) -> int:
    """Store the built-in recipient rule for every notification type.

    Existing rules are kept unless ``overwrite`` is set.

    Returns:
        Number of rules written
    """
    written = 0
    with get_session() as session:
        repo = NotificationRuleRepository(session)
        existing = {rule.type for rule in repo.list_all()}
        for notification_type in NotificationType:
            if notification_type in existing and not overwrite:
                continue
            repo.upsert(notification_type, default_recipient_config(notification_type))
            written += 1

    logger.info(
        f"Seeded {written} notification rules",
        extra={"event": "rules.seeded", "written": written, "overwrite": overwrite},
    )
    return written


def print_stats(runtime: Runtime) -> None:
    stats = runtime.queue.get_stats()
    rows = [
        ("Total", stats.total),
        ("Queued", stats.queued),
        ("Sending", stats.sending),
        ("Sent", stats.sent),
        ("Failed", stats.failed),
        ("Sent today", stats.today_sent),
        ("Failed today", stats.today_failed),
        ("Sent last 7 days", stats.week_sent),
        ("Failed last 7 days", stats.week_failed),
    ]
    width = max(len(label) for label, _ in rows)
    for label, value in rows:
        print(f"{label.ljust(width)}  {value}")
    print(f"{'Transport'.ljust(width)}  {runtime.transport.name}"
          f" ({'configured' if runtime.queue.is_transport_configured() else 'not configured'})")


def run_command(args: argparse.Namespace, runtime: Runtime) -> Optional[int]:
    """Run a one-shot operator command. Returns None when no command was given."""
    if args.seed_rules:
        written = seed_rules(overwrite=args.overwrite)
        print(f"Seeded {written} notification rule(s)")
        return 0

    if args.stats:
        print_stats(runtime)
        return 0

    if args.retry is not None:
        if runtime.queue.retry(args.retry):
            print(f"Email {args.retry} requeued")
            return 0
        print(f"Email {args.retry} not found or not in FAILED state", file=sys.stderr)
        return 1

    if args.send_test:
        result = runtime.service.send_test_email(args.send_test)
        print(result.message)
        return 0 if result.success else 1

    if args.process_once:
        run = runtime.worker.run_once()
        logger.info(
            f"Queue run completed: {run.batch.sent} sent, {run.batch.failed} failed, "
            f"{run.batch.skipped} skipped, {run.requeued} requeued",
            extra={
                "event": "service.process_once.completed",
                "duration_seconds": run.duration_seconds,
                "sent": run.batch.sent,
                "failed": run.batch.failed,
                "skipped": run.batch.skipped,
                "requeued": run.requeued,
            },
        )
        return 1 if run.error else 0

    return None


def run_daemon(app_config: AppConfig, runtime: Runtime) -> int:
    shutdown_event = threading.Event()

    scheduler_service = SchedulerService(
        job_callable=runtime.worker.run_once,
        interval_seconds=app_config.queue.process_interval_seconds,
        shutdown_event=shutdown_event,
    )

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        scheduler_service.shutdown(wait=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler_service.start()
    logger.info(
        "Worker started. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started"},
    )

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info(
            "Keyboard interrupt received, shutting down",
            extra={"event": "service.keyboard_interrupt"},
        )
        scheduler_service.shutdown(wait=False)

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="HR notification worker - queued email delivery with retry"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )

    commands = parser.add_mutually_exclusive_group()
    commands.add_argument(
        "--process-once",
        action="store_true",
        help="Process one batch of queued emails and exit",
    )
    commands.add_argument(
        "--stats",
        action="store_true",
        help="Print delivery statistics and exit",
    )
    commands.add_argument(
        "--retry",
        type=int,
        metavar="ID",
        default=None,
        help="Requeue a FAILED email by id",
    )
    commands.add_argument(
        "--send-test",
        metavar="EMAIL",
        default=None,
        help="Send a test email to EMAIL and report the outcome",
    )
    commands.add_argument(
        "--seed-rules",
        action="store_true",
        help="Store the built-in recipient rule for each notification type",
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="With --seed-rules, replace rules that already exist",
    )
    return parser


def main(argv=None) -> int:
    """
    Main entry point for the notification worker.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    runtime = None
    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=env_config.environment,
        )

        logger.info(
            "Notification worker starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "environment": env_config.environment,
            },
        )

        init_database(env_config.database_url)
        runtime = build_runtime(app_config, env_config)

        logger.info(
            "Services initialized",
            extra={
                "event": "services.initialized",
                "transport": runtime.transport.name,
                "transport_configured": runtime.queue.is_transport_configured(),
                "batch_size": app_config.queue.batch_size,
                "max_retries": app_config.queue.max_retries,
                "process_interval_seconds": app_config.queue.process_interval_seconds,
            },
        )

        exit_code = run_command(args, runtime)
        if exit_code is None:
            exit_code = run_daemon(app_config, runtime)

        logger.info(
            "Notification worker stopped",
            extra={
                "event": "service.stopping",
                "uptime_seconds": round(time.time() - start_time, 2),
            },
        )
        return exit_code

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={
                "event": "service.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1
    finally:
        if runtime is not None:
            runtime.close()
        else:
            close_database()


if __name__ == "__main__":
    sys.exit(main())
