"""Compact logging for the Curio Market API.

Every line is rendered as:
  HH:MM:SS LEVEL   │ subscription_servi │ message

Multi-step flows (subscription activation, checkout) use the
``log_success`` / ``log_warn`` / ``log_fail`` helpers so the outcome of each
step stands out in the server log. Payment secrets are masked before any
handler sees them.
"""

import logging
import os
import re
import sys
import time

from curio_market.core.config import settings

# ── ANSI colours ────────────────────────────────────────────────────────────

BOLD = "\033[1m"
DIM = "\033[2m"
RESET = "\033[0m"
RED = "\033[91m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
CYAN = "\033[96m"

# Colour only on a terminal, or when FORCE_COLOR=1 (docker compose logs)
if not (sys.stdout.isatty() or os.environ.get("FORCE_COLOR", "") == "1"):
    BOLD = DIM = RESET = RED = GREEN = YELLOW = CYAN = ""

_LEVEL_COLOURS = {
    "DEBUG": DIM,
    "INFO": CYAN,
    "WARNING": YELLOW,
    "ERROR": RED,
    "CRITICAL": f"{BOLD}{RED}",
}

NAME_WIDTH = 18

# Stripe API keys, webhook secrets, PaymentIntent/SetupIntent client secrets
# and bearer tokens
_SECRET_PATTERNS = [
    re.compile(r"\b(sk|rk)_(live|test)_[A-Za-z0-9]+"),
    re.compile(r"\bwhsec_[A-Za-z0-9]+"),
    re.compile(r"\b((?:pi|seti)_[A-Za-z0-9]+)_secret_[A-Za-z0-9]+"),
    re.compile(r"(Bearer\s+)[A-Za-z0-9\-_.]+"),
]


def redact(text: str) -> str:
    """Mask payment secrets and bearer tokens in ``text``."""
    for pattern in _SECRET_PATTERNS:
        if pattern.groups == 1:
            text = pattern.sub(lambda m: f"{m.group(1)}***", text)
        else:
            text = pattern.sub("***", text)
    return text


class _RedactSecretsFilter(logging.Filter):

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


class _HealthCheckFilter(logging.Filter):
    """Drop load balancer polling of /api/health from the access log."""

    def filter(self, record: logging.LogRecord) -> bool:
        return f"{settings.API_PREFIX}/health" not in record.getMessage()


class CurioFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        ts = time.strftime("%H:%M:%S", time.localtime(record.created))
        colour = _LEVEL_COLOURS.get(record.levelname, "")

        # "curio_market.services.subscription_service" → "subscription_servi"
        name = record.name.rsplit(".", 1)[-1][:NAME_WIDTH]

        message = record.getMessage()
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            message = f"{message}\n{record.exc_text}"

        return (
            f"{DIM}{ts}{RESET} {colour}{record.levelname:<7}{RESET} {DIM}│{RESET} "
            f"{BOLD}{name:<{NAME_WIDTH}}{RESET} {DIM}│{RESET} {message}"
        )


QUIET_LOGGERS = (
    "sqlalchemy",
    "sqlalchemy.engine",
    "httpx",
    "httpcore",
    "stripe",
    "boto3",
    "botocore",
    "urllib3",
)


def setup_logging() -> None:
    """Configure application logging. Call once at startup."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CurioFormatter())
    handler.addFilter(_RedactSecretsFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    logging.getLogger("uvicorn.access").addFilter(_HealthCheckFilter())
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


# ── Step helpers ────────────────────────────────────────────────────────────

def log_success(logger: logging.Logger, msg: str) -> None:
    logger.info(f"  {GREEN}✓{RESET} {msg}")


def log_warn(logger: logging.Logger, msg: str) -> None:
    """A step degraded but the request carried on."""
    logger.warning(f"  {YELLOW}⚠{RESET} {msg}")


def log_fail(logger: logging.Logger, msg: str) -> None:
    logger.error(f"  {RED}✗{RESET} {msg}")
