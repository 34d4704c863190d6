import json
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variables for correlation
run_id_var: ContextVar[Optional[str]] = ContextVar('run_id', default=None)
snapshot_hash_var: ContextVar[Optional[str]] = ContextVar('snapshot_hash', default=None)
playlist_id_var: ContextVar[Optional[str]] = ContextVar('playlist_id', default=None)
stage_var: ContextVar[Optional[str]] = ContextVar('stage', default=None)


class SecretMasker:
    """Masks sensitive information in log messages."""

    def __init__(self):
        """Initialize secret masker with patterns."""
        # Group 1 is kept verbatim, group 2 is the secret
        self.patterns = [
            # Spotify access and refresh tokens
            r'(?i)((?:access_token|refresh_token)[\s]*[:=][\s]*["\']?)([a-zA-Z0-9\-_\.]{10,})',
            # Client secrets
            r'(?i)(client_secret[\s]*[:=][\s]*["\']?)([a-zA-Z0-9\-_\.]{10,})',
            # Generic tokens, keys and passwords
            r'(?i)((?:token|key|secret|password|auth)[\s]*[:=][\s]*["\']?)([a-zA-Z0-9\-_\.]{10,})',
            # Bearer credentials in authorization headers
            r'(?i)(bearer[\s]+)([a-zA-Z0-9\-_\.]{10,})',
            # OAuth codes
            r'(?i)(\bcode[\s]*[:=][\s]*["\']?)([a-zA-Z0-9\-_\.]{20,})',
        ]

        self.compiled_patterns = [re.compile(pattern) for pattern in self.patterns]

    @staticmethod
    def _mask(secret: str) -> str:
        # Keep first 4 and last 4 characters, mask the rest
        if len(secret) > 8:
            return secret[:4] + '*' * (len(secret) - 8) + secret[-4:]
        return '*' * len(secret)

    def mask_secrets(self, text: str) -> str:
        """Mask sensitive information in text."""
        if not text:
            return text

        masked_text = text
        for pattern in self.compiled_patterns:
            masked_text = pattern.sub(
                lambda match: match.group(1) + self._mask(match.group(2)), masked_text
            )

        return masked_text

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask sensitive information in dictionary."""
        if not data:
            return data

        masked_data = {}

        for key, value in data.items():
            if isinstance(value, str):
                masked_data[key] = self.mask_secrets(value)
            elif isinstance(value, dict):
                masked_data[key] = self.mask_dict(value)
            elif isinstance(value, list):
                masked_data[key] = [self.mask_dict(item) if isinstance(item, dict)
                                    else self.mask_secrets(item) if isinstance(item, str)
                                    else item for item in value]
            else:
                masked_data[key] = value

        return masked_data


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self):
        """Initialize formatter."""
        super().__init__()
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': self.masker.mask_secrets(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Add correlation fields if available
        run_id = run_id_var.get()
        snapshot_hash = snapshot_hash_var.get()
        playlist_id = playlist_id_var.get()
        stage = stage_var.get()
        if run_id:
            log_entry['runId'] = run_id
        if snapshot_hash:
            log_entry['snapshotHash'] = snapshot_hash
        if playlist_id:
            log_entry['playlistId'] = playlist_id
        if stage:
            log_entry['stage'] = stage

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'fields') and record.fields:
            log_entry['fields'] = self.masker.mask_dict(record.fields)

        return json.dumps(log_entry, ensure_ascii=False)


class CorrelationContext:
    """Context manager for correlation data."""

    def __init__(self, run_id: Optional[str] = None,
                 snapshot_hash: Optional[str] = None,
                 playlist_id: Optional[str] = None,
                 stage: Optional[str] = None):
        """Initialize correlation context."""
        self._values = {
            run_id_var: run_id,
            snapshot_hash_var: snapshot_hash,
            playlist_id_var: playlist_id,
            stage_var: stage,
        }
        self._tokens = []

    def __enter__(self):
        """Set correlation context."""
        for var, value in self._values.items():
            if value is not None:
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore correlation context."""
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def setup_logging(level: str = 'INFO',
                  log_file: Optional[str] = None,
                  structured: bool = True,
                  run_id: Optional[str] = None) -> logging.Logger:
    """Configure the `syncme` logger tree."""
    logger = logging.getLogger('syncme')
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()

    if structured:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if run_id:
        run_id_var.set(run_id)

    return logger


def log_with_fields(logger: logging.Logger, level: str, message: str,
                    fields: Optional[Dict[str, Any]] = None, **kwargs):
    """Log message with additional structured fields."""
    merged = dict(fields or {})
    merged.update(kwargs)
    logger.log(getattr(logging, level.upper()), message, extra={'fields': merged} if merged else None)
