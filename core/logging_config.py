from pathlib import Path
import logging
import re
import sys
from typing import Optional
from datetime import datetime

MASKED = "***MASKED***"
_API_KEY_RE = re.compile(r"pk_[A-Za-z0-9]+")


def mask_sensitive(text: str) -> str:
    """Replace anything that looks like a private API key with a masked token."""
    return _API_KEY_RE.sub(f"pk_{MASKED}", text)


class SensitiveDataFilter(logging.Filter):
    """Mask API keys in log records before any handler formats them."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except Exception:
            return True
        masked = mask_sensitive(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def setup_logging(
    logs_dir: Optional[str | Path] = None,
    log_file_name: str = "server.log",
    level: str | int = logging.INFO,
    mask_sensitive_data: bool = True,
) -> logging.Logger:
    """Configure root logging to stderr and a file under `logs_dir`.

    Idempotent: calling multiple times won't add duplicate handlers.
    stdout is left untouched because the stdio MCP transport owns it.
    Returns a module-level logger for callers to use.
    """
    if logs_dir is None:
        logs_dir = Path(__file__).resolve().parent.parent / "logs"
    else:
        logs_dir = Path(logs_dir)

    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        # continue with stderr only if the logs dir cannot be created
        pass

    # Add timestamp to the logfile name so each run writes to a timestamped file
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    base = Path(log_file_name).stem
    ext = Path(log_file_name).suffix or ".log"
    log_file = logs_dir / f"{base}_{timestamp}{ext}"

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")

    file_handler_exists = any(isinstance(h, logging.FileHandler) for h in root_logger.handlers)
    if not file_handler_exists:
        try:
            fh = logging.FileHandler(log_file, encoding="utf-8")
            fh.setFormatter(formatter)
            fh.setLevel(level)
            root_logger.addHandler(fh)
        except OSError:
            # If file handler cannot be created (permissions, etc), fall back to stderr only
            pass

    stream_stderr_exists = False
    for h in root_logger.handlers:
        if isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr:
            stream_stderr_exists = True
            break

    if not stream_stderr_exists:
        sh = logging.StreamHandler(sys.stderr)
        sh.setFormatter(formatter)
        sh.setLevel(level)
        root_logger.addHandler(sh)

    if mask_sensitive_data:
        for h in root_logger.handlers:
            if not any(isinstance(f, SensitiveDataFilter) for f in h.filters):
                h.addFilter(SensitiveDataFilter())

    return logging.getLogger(__name__)
