# passkey_auth/core/security_logger.py
"""
Dedicated security logger for passkey audit events.

Writes one line per event in a format fail2ban and log shippers can parse.
All user-controlled fields are sanitized before they reach the record.
"""

import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

from passkey_auth.core.config import settings


def sanitize(value: object, max_length: int = 255) -> str:
    """
    Sanitize a field value so it cannot break the key=value line format.

    Removes newlines, brackets, angle brackets, whitespace runs and control
    characters, then truncates.
    """
    if value is None or value == "":
        return "unknown"

    text = str(value).strip()
    text = re.sub(r"[\n\r\[\]<>\x00-\x1f\x7f-\x9f]", "", text)
    # Spaces would split the field in key=value parsers.
    text = re.sub(r"\s+", "_", text)
    return text[:max_length] or "unknown"


class SecurityLogger:
    """
    Process-wide security event logger.

    Log format (file handler):
        2026-01-05 10:15:30 SECURITY [EVENT_TYPE] field=value ...

    When no log path is configured the records propagate to the root logger
    so they land wherever the application already ships its logs.
    """

    _instance = None
    _initialized = False

    def __new__(cls, log_path: Path | None = None):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, log_path: Path | None = None):
        if SecurityLogger._initialized:
            return

        self.logger = logging.getLogger("security")
        self.logger.setLevel(logging.INFO)
        self.log_path: Path | None = None
        self._file_handler: RotatingFileHandler | None = None
        self.configure(log_path)

        SecurityLogger._initialized = True

    def configure(self, log_path: Path | None) -> None:
        """
        Point the file handler at `log_path`, replacing any previous one.

        None detaches the file and lets records propagate to the root logger.
        """
        if log_path == self.log_path:
            return

        if self._file_handler is not None:
            self.logger.removeHandler(self._file_handler)
            self._file_handler.close()
            self._file_handler = None

        self.log_path = log_path
        if log_path is None:
            self.logger.propagate = True
            return

        log_path.parent.mkdir(parents=True, exist_ok=True)
        # 50MB per file, keep 10 backups
        handler = RotatingFileHandler(
            str(log_path),
            maxBytes=50 * 1024 * 1024,
            backupCount=10,
        )
        # The message itself carries "EVENT_TYPE] field=..."
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s SECURITY [%(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        self.logger.addHandler(handler)
        self.logger.propagate = False
        self._file_handler = handler

    def passkey_registered(self, user_id: str, passkey_id: str, name: str) -> None:
        """Log a completed registration ceremony."""
        self.logger.info(
            f"PASSKEY_REGISTERED] user_id={sanitize(user_id)} "
            f"passkey_id={sanitize(passkey_id)} name={sanitize(name, max_length=64)}"
        )

    def passkey_verified(self, user_id: str, passkey_id: str) -> None:
        """Log a successful assertion (audit trail, not for banning)."""
        self.logger.info(
            f"PASSKEY_VERIFIED] user_id={sanitize(user_id)} passkey_id={sanitize(passkey_id)}"
        )

    def passkey_failed(self, user_id: str, ceremony: str, reason: str) -> None:
        """
        Log a failed ceremony.

        Args:
            user_id: User the ceremony was started for
            ceremony: "registration" or "authentication"
            reason: Short failure code (verification_failed, challenge_expired, ...)
        """
        self.logger.info(
            f"PASSKEY_FAILED] user_id={sanitize(user_id)} ceremony={sanitize(ceremony)} "
            f"reason={sanitize(reason, max_length=64)}"
        )

    def sign_count_regression(
        self, user_id: str, passkey_id: str, stored: int, reported: int
    ) -> None:
        """
        Log a signature counter that did not increase.

        This is the classic indicator of a cloned authenticator. The login is
        still allowed; this record is what operators alert on.
        """
        self.logger.warning(
            f"SIGN_COUNT_REGRESSION] user_id={sanitize(user_id)} "
            f"passkey_id={sanitize(passkey_id)} stored={int(stored)} reported={int(reported)}"
        )

    def passkey_deleted(self, user_id: str, passkey_id: str) -> None:
        self.logger.info(
            f"PASSKEY_DELETED] user_id={sanitize(user_id)} passkey_id={sanitize(passkey_id)}"
        )


# Singleton instance for easy import
security_log = SecurityLogger(settings.SECURITY_LOG_PATH)
