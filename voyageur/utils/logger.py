"""
Logging utility for the Voyageur Nest backend.
"""
import logging
import sys
from typing import Optional
from colorama import Fore, Style, init
import structlog

# Initialize colorama for cross-platform colored output
init(autoreset=True)


class ColorizedFormatter(logging.Formatter):
    """Formatter that colors level names and messages on the console."""

    COLORS = {
        'DEBUG': Fore.CYAN,
        'INFO': Fore.GREEN,
        'WARNING': Fore.YELLOW,
        'ERROR': Fore.RED,
        'CRITICAL': Fore.MAGENTA + Style.BRIGHT,
    }

    def format(self, record):
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{Style.RESET_ALL}"

        if record.levelno >= logging.WARNING:
            record.msg = f"{Fore.RED}{record.msg}{Style.RESET_ALL}"
        elif record.levelno == logging.INFO:
            record.msg = f"{Fore.GREEN}{record.msg}{Style.RESET_ALL}"

        return super().format(record)


def setup_logger(
    name: str = "voyageur",
    level: str = "INFO",
    log_file: Optional[str] = None
) -> structlog.BoundLogger:
    """
    Set up structured logging with colorized console output.

    Args:
        name: Logger name
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path; when given, events are rendered as JSON

    Returns:
        Configured structured logger
    """
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if log_file else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logger = structlog.get_logger(name)

    stdlib_logger = logging.getLogger(name)
    stdlib_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Avoid stacking handlers when the app factory runs more than once
    if not stdlib_logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(ColorizedFormatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        stdlib_logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            stdlib_logger.addHandler(file_handler)

    return logger


def get_logger(name: str = "voyageur") -> structlog.BoundLogger:
    """Get a structured logger bound to ``name``."""
    return structlog.get_logger(name)


def _empty_stats() -> dict:
    return {
        'emails_ingested': 0,
        'emails_parsed': 0,
        'bookings_created': 0,
        'bookings_updated': 0,
        'bookings_cancelled': 0,
        'imports_skipped': 0,
        'events_synced': 0,
        'conflicts_detected': 0,
        'errors': 0,
        'platforms': {},
    }


class SyncLogger:
    """Logger for CLI import/sync runs that keeps summary counters."""

    def __init__(self, logger: structlog.BoundLogger):
        self.logger = logger
        self.stats = _empty_stats()

    def log_email_ingested(self, message_id: str, sender: str):
        self.stats['emails_ingested'] += 1
        self.logger.info("Email ingested", message_id=message_id, sender=sender)

    def log_email_parsed(self, platform: str, event_type: str, confidence: float):
        """Log a parsed OTA email and count it against its platform."""
        self.stats['emails_parsed'] += 1
        self.stats['platforms'][platform] = self.stats['platforms'].get(platform, 0) + 1
        self.logger.info(
            "Email parsed",
            platform=platform,
            event_type=event_type,
            confidence=confidence,
        )

    def log_import_outcome(self, outcome: str, booking_id: Optional[str] = None):
        """Log the outcome of importing one parsed email."""
        key = {
            'created': 'bookings_created',
            'updated': 'bookings_updated',
            'cancelled': 'bookings_cancelled',
        }.get(outcome, 'imports_skipped')
        self.stats[key] += 1
        self.logger.info("Email import finished", outcome=outcome, booking_id=booking_id)

    def log_calendar_sync(self, platform: str, records_processed: int, conflicts: int):
        self.stats['events_synced'] += records_processed
        self.stats['conflicts_detected'] += conflicts
        self.logger.info(
            "Calendar synced",
            platform=platform,
            records_processed=records_processed,
            conflicts=conflicts,
        )

    def log_conflicts(self, count: int):
        self.stats['conflicts_detected'] += count
        self.logger.info("Conflicts detected", count=count)

    def log_error(self, error: Exception, context: str = ""):
        """Log an error."""
        self.stats['errors'] += 1
        self.logger.error(
            "Error occurred",
            error=str(error),
            error_type=type(error).__name__,
            context=context
        )

    def print_summary(self):
        """Print a summary of all operations."""
        self.logger.info("Run summary", **{k: v for k, v in self.stats.items()})

        print(f"\n{Fore.CYAN}{'='*50}")
        print(f"{Fore.WHITE}RUN SUMMARY")
        print(f"{Fore.CYAN}{'='*50}")
        print(f"{Fore.GREEN}✓ Emails ingested: {self.stats['emails_ingested']}")
        print(f"{Fore.GREEN}✓ Emails parsed: {self.stats['emails_parsed']}")
        print(f"{Fore.BLUE}✓ Bookings created: {self.stats['bookings_created']}")
        print(f"{Fore.BLUE}✓ Bookings updated: {self.stats['bookings_updated']}")
        print(f"{Fore.BLUE}✓ Bookings cancelled: {self.stats['bookings_cancelled']}")
        print(f"{Fore.YELLOW}⚠ Imports skipped: {self.stats['imports_skipped']}")
        print(f"{Fore.GREEN}✓ Calendar events synced: {self.stats['events_synced']}")
        print(f"{Fore.YELLOW}⚠ Conflicts detected: {self.stats['conflicts_detected']}")
        print(f"{Fore.RED}✗ Errors: {self.stats['errors']}")

        if self.stats['platforms']:
            print(f"\n{Fore.WHITE}By Platform:")
            for platform, count in self.stats['platforms'].items():
                print(f"  {Fore.CYAN}{platform}: {count}")

        print(f"{Fore.CYAN}{'='*50}\n")

    def reset_stats(self):
        """Reset statistics."""
        self.stats = _empty_stats()
