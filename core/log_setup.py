"""
Logging bootstrap shared by the worker CLI and the platform server.
"""

import logging
import re
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class SecretMaskingFilter(logging.Filter):
    """Redact the seed phrase and key-like strings from all log output.

    Matches 64-char hex (raw keys) and 87/88-char base58 (Solana secret keys).
    Signatures are 87/88 base58 chars too, but the pipeline only ever logs
    their 16-char prefixes.
    """
    _PATTERN = re.compile(
        r'(?<![0-9a-fA-F])([0-9a-fA-F]{64})(?![0-9a-fA-F])'
        r'|(?<![1-9A-HJ-NP-Za-km-z])([1-9A-HJ-NP-Za-km-z]{87,88})(?![1-9A-HJ-NP-Za-km-z])'
    )

    def __init__(self, secrets: Optional[list[str]] = None):
        super().__init__()
        self._secrets = [s for s in (secrets or []) if s]

    def _mask(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, "[REDACTED]")
        return self._PATTERN.sub("[REDACTED]", text)

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if isinstance(record.msg, str):
            record.msg = self._mask(record.msg)
        if record.args:
            try:
                formatted = record.getMessage()
            except (TypeError, ValueError):
                return True
            masked = self._mask(formatted)
            if masked != formatted:
                record.msg = masked
                record.args = None
        return True


def setup_logging(level: str = "INFO", secrets: Optional[list[str]] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )
    mask_filter = SecretMaskingFilter(secrets)
    for handler in logging.root.handlers:
        handler.addFilter(mask_filter)
