"""
Audit logging for context filter decisions.

Writes one JSONL line per chat turn: gate decision, tier counts, token
estimate and the endpoints that made it into the context. Secrets in the
message preview are redacted before anything touches disk.
"""

from typing import Any, Dict, Optional
from pathlib import Path
from datetime import datetime, timezone
import json
import re

from loguru import logger

from src.apicontext.retrieval.logging import ContextLogger
from src.apicontext.retrieval.models import ContextFilterResult

from .config import AuditConfig, DEFAULT_AUDIT_CONFIG

_REDACTED = "***REDACTED***"

_SECRET_PATTERNS = (
    re.compile(r"Bearer\s+[A-Za-z0-9\-_.]{20,}", re.IGNORECASE),
    re.compile(r"\b(?:sk-|pk-|api_key=|apikey=)[A-Za-z0-9\-_]{16,}", re.IGNORECASE),
    re.compile(r"Basic\s+[A-Za-z0-9+/]{20,}={0,2}", re.IGNORECASE),
    re.compile(r"AKIA[0-9A-Z]{16}"),
    re.compile(r"\b[0-9a-fA-F]{32,}\b"),
    re.compile(r'"password"\s*:\s*"[^"]{4,}"', re.IGNORECASE),
)


def redact_secrets(text: str) -> str:
    """Replace anything that looks like a credential with a marker."""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(_REDACTED, text)
    return text


class ContextAuditLogger(ContextLogger):
    """
    Audit logger for context filter results.

    Appends to a JSONL file through a dedicated loguru sink with rotation.
    """

    def __init__(
        self,
        log_dir: Optional[str] = None,
        config: Optional[AuditConfig] = None,
    ):
        """
        Initialize the audit logger.

        Args:
            log_dir: Directory for audit logs (overrides config.log_dir)
            config: AuditConfig instance (default: DEFAULT_AUDIT_CONFIG)
        """
        base = config or DEFAULT_AUDIT_CONFIG
        self.config = AuditConfig(
            log_dir=log_dir or base.log_dir,
            file_name=base.file_name,
            rotation=base.rotation,
            retention=base.retention,
            compression=base.compression,
            preview_chars=base.preview_chars,
        )

        # Ensure log directory exists
        self.log_path = Path(self.config.log_dir)
        self.log_path.mkdir(parents=True, exist_ok=True)
        self.log_file = self.log_path / self.config.file_name

        self._sink_id = logger.add(
            str(self.log_file),
            format="{message}",  # Raw JSON, no formatting
            rotation=self.config.rotation,
            retention=self.config.retention,
            compression=self.config.compression,
            serialize=False,
            enqueue=True,  # Thread-safe
            filter=lambda record: record["extra"].get("audit") is True,
        )

    def log_context(self, message: str, result: ContextFilterResult) -> None:
        stats = result.stats
        query = result.analyzed_query
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": "context_filter",
            "message_preview": redact_secrets((message or "")[: self.config.preview_chars]),
            "gate_decision": stats.gate_decision,
            "budget_mode": stats.budget_mode,
            "total_endpoints": stats.total_endpoints,
            "sent_full": stats.sent_full,
            "sent_summary": stats.sent_summary,
            "excluded": stats.excluded,
            "estimated_input_tokens": stats.estimated_input_tokens,
            "estimated_cost_saving_percent": stats.estimated_cost_saving_percent,
            "processing_time_ms": round(stats.processing_time_ms, 3),
        }
        if query is not None:
            entry["intent"] = query.intent
            entry["method_hint"] = query.method_hint
        if result.search_results:
            entry["top_endpoints"] = [r.endpoint.id for r in result.search_results[:5]]

        self._write_entry(entry)

    def _write_entry(self, entry: Dict[str, Any]) -> None:
        """Write a JSONL entry to the audit log."""
        json_line = json.dumps(entry, separators=(",", ":"), default=str)
        logger.bind(audit=True).info(json_line)

    def close(self) -> None:
        """Flush pending lines and remove the audit sink from loguru."""
        logger.remove(self._sink_id)
