"""
Logging setup and per-run issue tracking.

All module loggers live under the `cgifreeze` namespace and propagate to the
package logger, which gets a rotating debug log, an error-only log and a
console handler once per process.
"""

import logging
import logging.handlers
import os
import sys
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union


LOG_LEVEL_ENV = "CGIFREEZE_LOG_LEVEL"
ROOT_LOGGER = "cgifreeze"

FILE_FORMAT = '%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s'
CONSOLE_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'


def resolve_level(level: Union[int, str, None] = None) -> int:
    """
    Resolve a log level from an explicit value or the CGIFREEZE_LOG_LEVEL
    environment variable. Unknown names fall back to INFO.
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _rotating_file(path: Path, level: int, max_mb: int, backups: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_mb * 1024 * 1024, backupCount=backups, encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    return handler


def initialize_logging(log_dir: str = "logs", level: Union[int, str, None] = None) -> logging.Logger:
    """
    Configure the package logger and return it.

    Calling this again only adjusts the console level; handlers are attached
    the first time.

    Args:
        log_dir: directory for cgifreeze.log and cgifreeze_errors.log
        level: console level; falls back to CGIFREEZE_LOG_LEVEL, then INFO
    """
    console_level = resolve_level(level)
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG)

    consoles = [h for h in logger.handlers if getattr(h, 'name', None) == 'cgifreeze-console']
    if consoles:
        for handler in consoles:
            handler.setLevel(console_level)
        return logger

    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    logger.addHandler(_rotating_file(directory / f"{ROOT_LOGGER}.log", logging.DEBUG, 10, 5))
    logger.addHandler(_rotating_file(directory / f"{ROOT_LOGGER}_errors.log", logging.ERROR, 5, 3))

    console = logging.StreamHandler(sys.stdout)
    console.set_name('cgifreeze-console')
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))
    logger.addHandler(console)

    logger.debug(f"cgifreeze started: Python {sys.version.split()[0]} on {sys.platform}, "
                 f"logs in {directory.absolute()}")
    return logger


@dataclass
class TrackedIssue:
    id: str
    message: str
    type: Optional[str] = None  # exception class name; None for warnings
    context: Optional[str] = None
    url: Optional[str] = None
    details: str = ''
    timestamp: datetime = field(default_factory=datetime.now)

    def describe(self) -> str:
        text = f"[{self.id}] "
        text += f"{self.type}: {self.message}" if self.type else self.message
        if self.context:
            text += f" (Context: {self.context})"
        if self.url:
            text += f" (URL: {self.url})"
        return text


class ErrorTracker:
    """
    Collects the errors and warnings of one run so they can be summarized
    and written out as a report afterwards. Every issue is also logged.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.errors: List[TrackedIssue] = []
        self.warnings: List[TrackedIssue] = []

    @staticmethod
    def _next_id(prefix: str, count: int) -> str:
        return f"{prefix}_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{count:03d}"

    def log_error(self, error: Exception, context: Optional[str] = None, url: Optional[str] = None) -> str:
        """Record an exception and log it; the traceback goes to the debug log."""
        issue = TrackedIssue(
            id=self._next_id("ERR", len(self.errors)),
            message=str(error),
            type=type(error).__name__,
            context=context,
            url=url,
            details=''.join(traceback.format_exception(type(error), error, error.__traceback__)),
        )
        self.errors.append(issue)
        self.logger.error(issue.describe())
        self.logger.debug(f"[{issue.id}] Full traceback:\n{issue.details}")
        return issue.id

    def log_warning(self, message: str, context: Optional[str] = None, url: Optional[str] = None) -> str:
        issue = TrackedIssue(id=self._next_id("WARN", len(self.warnings)), message=message,
                             context=context, url=url)
        self.warnings.append(issue)
        self.logger.warning(issue.describe())
        return issue.id

    @property
    def has_issues(self) -> bool:
        return bool(self.errors or self.warnings)

    def error_types(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for issue in self.errors:
            counts[issue.type] = counts.get(issue.type, 0) + 1
        return counts

    def save_error_report(self, output_path: str) -> None:
        """Write every tracked issue to a plain text report."""
        lines = [
            "CGIFREEZE ERROR REPORT",
            "=" * 50,
            "",
            f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            f"Total Errors: {len(self.errors)}",
            f"Total Warnings: {len(self.warnings)}",
        ]
        for title, issues in (("ERRORS", self.errors), ("WARNINGS", self.warnings)):
            if not issues:
                continue
            lines += ["", f"{title}:", "-" * 30]
            for issue in issues:
                lines.append(f"[{issue.id}] {issue.timestamp:%Y-%m-%d %H:%M:%S}")
                if issue.type:
                    lines.append(f"Type: {issue.type}")
                lines.append(f"Message: {issue.message}")
                if issue.context:
                    lines.append(f"Context: {issue.context}")
                if issue.url:
                    lines.append(f"URL: {issue.url}")
                if issue.details:
                    lines.append(f"Traceback:\n{issue.details}")
                lines.append("-" * 30)

        try:
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write("\n".join(lines) + "\n")
        except OSError as e:
            self.logger.error(f"Failed to save error report: {e}")
            return
        self.logger.info(f"Error report saved to: {output_path}")
