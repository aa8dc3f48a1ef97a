"""
Configuration for context audit logging.
"""


class AuditConfig:
    """Where and how the per-request audit trail is written."""

    def __init__(
        self,
        log_dir: str = "./logs",
        file_name: str = "context_audit.jsonl",
        rotation: str = "10 MB",
        retention: str = "30 days",
        compression: str = "gz",
        preview_chars: int = 200,
    ):
        self.log_dir = log_dir
        self.file_name = file_name
        self.rotation = rotation
        self.retention = retention
        self.compression = compression
        self.preview_chars = preview_chars


# Default configuration instance
DEFAULT_AUDIT_CONFIG = AuditConfig()
