"""Session logging to a JSON Lines file."""
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO
import json


class SessionLogger:
    """Logs structured session events to a timestamped JSONL file."""

    def __init__(self, logs_dir: Optional[Path] = None):
        """Initialize session logger.

        Args:
            logs_dir: Directory for log files (default: .storyintake/logs)
        """
        self.logs_dir = Path(logs_dir or ".storyintake/logs")
        self.logs_dir.mkdir(parents=True, exist_ok=True)

        self.session_start = datetime.now()
        timestamp = self.session_start.strftime("%Y%m%d_%H%M%S")
        self.log_file_path = self.logs_dir / f"session_{timestamp}.jsonl"

        # Line buffered for immediate writes
        self.log_file: Optional[TextIO] = open(self.log_file_path, 'a', encoding='utf-8', buffering=1)

        self._write_event("session_start", {
            "timestamp": self.session_start.isoformat(),
            "log_file": str(self.log_file_path),
            "cwd": str(Path.cwd()),
            "pid": os.getpid()
        })

    def _write_event(self, event_type: str, data: Dict[str, Any]):
        if not self.log_file:
            return
        record = {"event": event_type, **data}
        self.log_file.write(json.dumps(record, default=str, ensure_ascii=False) + "\n")

    def log_event(self, component: str, status: str, detail: Optional[Dict[str, Any]] = None):
        """Log a `{component, status, detail}` event.

        Args:
            component: Agent or service that produced the event
            status: One of success, error, rate_limited
            detail: Extra event fields
        """
        self._write_event("api_event", {
            "timestamp": datetime.now().isoformat(),
            "component": component,
            "status": status,
            "detail": detail or {}
        })

    def log_api_call(
        self,
        model: str,
        messages: List[Dict[str, str]],
        response: str,
        tokens: Optional[Dict[str, int]] = None,
        request_params: Optional[Dict[str, Any]] = None,
        finish_reason: Optional[str] = None
    ):
        """Log an API call with full request and response details."""
        self._write_event("api_call", {
            "timestamp": datetime.now().isoformat(),
            "model": model,
            "request_params": request_params or {},
            "messages": messages,
            "response": response,
            "response_length": len(response) if response else 0,
            "tokens": tokens or {},
            "finish_reason": finish_reason
        })

    def log_api_error(
        self,
        model: str,
        error: Exception,
        messages: List[Dict[str, str]],
        request_params: Optional[Dict[str, Any]] = None
    ):
        """Log a failed API call."""
        self._write_event("api_error", {
            "timestamp": datetime.now().isoformat(),
            "model": model,
            "error_type": type(error).__name__,
            "error": str(error),
            "request_params": request_params or {},
            "messages": messages
        })

    def close(self):
        """Write the session end event and close the file."""
        if self.log_file:
            self._write_event("session_end", {
                "timestamp": datetime.now().isoformat(),
                "duration_seconds": (datetime.now() - self.session_start).total_seconds()
            })
            self.log_file.close()
            self.log_file = None


# Global session logger instance
_session_logger: Optional[SessionLogger] = None


def get_session_logger() -> Optional[SessionLogger]:
    """Get the global session logger."""
    return _session_logger


def init_session_logger(logs_dir: Optional[Path] = None) -> SessionLogger:
    """Initialize the global session logger.

    Args:
        logs_dir: Directory for log files

    Returns:
        The new session logger
    """
    global _session_logger
    if _session_logger:
        _session_logger.close()
    _session_logger = SessionLogger(logs_dir)
    return _session_logger


def close_session_logger():
    """Close and clear the global session logger."""
    global _session_logger
    if _session_logger:
        _session_logger.close()
        _session_logger = None
