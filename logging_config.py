"""Centralized logging configuration with optional Supabase collection.

This module provides:
- PlainFormatter for stderr
- JSONFormatter for structured entries
- SupabaseHandler for batched remote log collection
- Audit helpers for authentication attempts and failures
"""

import atexit
import logging
import re
import sys
import threading
from queue import Queue, Empty
from typing import Optional

# Security-relevant events go through their own logger so they can be routed
# or retained separately from ordinary request logging.
audit_logger = logging.getLogger("audit")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, service_name: str = None):
        super().__init__()
        self.service_name = service_name or "unknown"

    def format(self, record: logging.LogRecord) -> dict:
        # Extract tag from message if present: [TAG] message
        tag = None
        message = record.getMessage()
        tag_match = re.match(r'\[([A-Z_]+)\]\s*(.*)', message)
        if tag_match:
            tag = tag_match.group(1)
            message = tag_match.group(2)

        log_entry = {
            "service": self.service_name,
            "level": record.levelname,
            "tag": tag,
            "message": message,
            "module": record.module,
            "extra": {
                "function": record.funcName,
                "line": record.lineno,
            }
        }

        audit = getattr(record, "audit", None)
        if audit:
            log_entry["extra"]["audit"] = audit

        if record.exc_info:
            log_entry["extra"]["exception"] = self.formatException(record.exc_info)

        return log_entry


class PlainFormatter(logging.Formatter):
    """Plain text formatter for stderr output."""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


class SupabaseHandler(logging.Handler):
    """Logging handler that batches entries into a Supabase table.

    Entries are flushed every flush_interval seconds or as soon as
    batch_size entries are waiting.
    """

    def __init__(
        self,
        supabase_client,
        service_name: str,
        table: str = "logs",
        batch_size: int = 20,
        flush_interval: float = 10.0,
    ):
        super().__init__()
        self.supabase = supabase_client
        self.service_name = service_name
        self.table = table
        self.batch_size = batch_size
        self.flush_interval = flush_interval

        self._queue: Queue = Queue()
        self._flush_lock = threading.Lock()
        self._shutdown = threading.Event()
        self._flush_thread = threading.Thread(target=self._flush_worker, daemon=True)
        self._flush_thread.start()

        atexit.register(self.close)

    def emit(self, record: logging.LogRecord):
        try:
            if isinstance(self.formatter, JSONFormatter):
                log_entry = self.formatter.format(record)
            else:
                log_entry = {
                    "service": self.service_name,
                    "level": record.levelname,
                    "tag": None,
                    "message": record.getMessage(),
                    "module": record.module,
                    "extra": {}
                }

            self._queue.put(log_entry)

            if self._queue.qsize() >= self.batch_size:
                self.flush()

        except Exception:
            self.handleError(record)

    def _flush_worker(self):
        # Event.wait returns early on shutdown
        while not self._shutdown.wait(self.flush_interval):
            if not self._queue.empty():
                self.flush()

    def flush(self):
        """Send queued entries to Supabase."""
        with self._flush_lock:
            logs = []
            while len(logs) < self.batch_size * 2:
                try:
                    logs.append(self._queue.get_nowait())
                except Empty:
                    break

            if not logs or not self.supabase:
                return

            try:
                self.supabase.table(self.table).insert(logs).execute()
            except Exception as e:
                # Logging from here would recurse into this handler
                print(f"[WARNING] Failed to send logs to Supabase: {e}", file=sys.stderr)

    def close(self):
        """Flush remaining entries and stop the background thread."""
        if not self._shutdown.is_set():
            self._shutdown.set()
            self.flush()
        super().close()


_supabase_handler: Optional[SupabaseHandler] = None


def setup_logging(
    service_name: str = None,
    supabase_client=None,
    level: str = "INFO",
) -> logging.Logger:
    """Configure the root logger.

    Args:
        service_name: Name stamped on structured entries.
        supabase_client: Supabase client for remote collection, or None.
        level: Root log level name.

    Returns:
        Configured root logger.

    Behavior:
        - Always adds a stderr handler
        - Adds a Supabase handler if a client is provided
        - Falls back to stderr only if the Supabase handler cannot be built
    """
    global _supabase_handler

    service_name = service_name or "hevy-ha-mcp-server"
    level_value = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(level_value, int):
        level_value = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level_value)
    root_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(level_value)
    stderr_handler.setFormatter(PlainFormatter())
    root_logger.addHandler(stderr_handler)

    supabase_enabled = False
    if supabase_client:
        try:
            _supabase_handler = SupabaseHandler(
                supabase_client=supabase_client,
                service_name=service_name,
            )
            _supabase_handler.setLevel(level_value)
            _supabase_handler.setFormatter(JSONFormatter(service_name))
            root_logger.addHandler(_supabase_handler)
            supabase_enabled = True
        except Exception as e:
            print(f"[WARNING] Supabase logging setup failed: {e}", file=sys.stderr)

    # Supabase talks through httpx
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    if supabase_enabled:
        logger.info(f"[STARTUP] Supabase logging enabled for service: {service_name}")
    else:
        logger.info("[STARTUP] Supabase logging disabled (no client)")

    return root_logger


def log_auth_attempt(success: bool, client_ip: Optional[str], client_id: Optional[str] = None) -> None:
    """Record the outcome of a credential exchange."""
    audit = {"event": "auth_attempt", "success": success, "client_ip": client_ip, "client_id": client_id}
    outcome = "succeeded" if success else "failed"
    audit_logger.info(
        f"[AUTH] Authentication {outcome} for client {client_id} from {client_ip}",
        extra={"audit": audit},
    )


def log_auth_failure(reason: str, client_ip: Optional[str]) -> None:
    """Record a rejected credential with a machine-readable reason code."""
    audit = {"event": "auth_failure", "reason": reason, "client_ip": client_ip}
    audit_logger.warning(
        f"[AUTH_FAILURE] {reason} from {client_ip}",
        extra={"audit": audit},
    )
