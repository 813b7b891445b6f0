"""
audit.py

Encrypted, append-only audit records: one per scoring decision.

Each record's payload is sealed with AES-256-GCM under a fresh 96-bit nonce.
Two key modes:

* durable key (``AuditLogger(key=...)``, e.g. from PHISHSENTRY_AUDIT_KEY):
  records can be read back with ``AuditLogger.decrypt``.
* no key: every record gets its own throw-away key that is never stored.
  Records are write-only; nobody, including this process, can decrypt them.
  A warning is logged when a logger is created in this mode.

Requires:
    pip install cryptography redis
"""

import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import AuditError

logger = logging.getLogger("phishsentry.audit")

NONCE_BYTES = 12
KEY_BITS = 256
DEFAULT_REDIS_KEY = "phishsentry:audit"


@dataclass(frozen=True)
class AuditRecord:
    timestamp: str
    level: str
    message: str
    caller_id: Optional[str]
    action: str
    ciphertext: str  # hex
    iv: str  # hex

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def envelope(self) -> Dict[str, Any]:
        """What the bundled sinks write: no plaintext message or caller."""
        return {
            "timestamp": self.timestamp,
            "level": self.level,
            "action": self.action,
            "iv": self.iv,
            "ciphertext": self.ciphertext,
        }


def load_audit_key(hex_key: str) -> bytes:
    try:
        key = bytes.fromhex(hex_key.strip())
    except ValueError:
        raise AuditError("audit key must be hex encoded")
    if len(key) != KEY_BITS // 8:
        raise AuditError(f"audit key must be {KEY_BITS // 8} bytes, got {len(key)}")
    return key


def _associated_data(timestamp: str, action: str) -> bytes:
    return f"{timestamp}|{action}".encode("utf-8")


class LoggingAuditSink:
    def __init__(self, logger_name: str = "phishsentry.audit.sink"):
        self.log = logging.getLogger(logger_name)

    def emit(self, record: AuditRecord) -> None:
        level = logging.getLevelName(record.level.upper())
        if not isinstance(level, int):
            level = logging.INFO
        self.log.log(level, "audit %s", json.dumps(record.envelope(), sort_keys=True))


class RedisAuditSink:
    """Append records to a Redis list (RPUSH keeps them in write order)."""

    def __init__(self, client, key: str = DEFAULT_REDIS_KEY):
        self.client = client
        self.key = key

    def emit(self, record: AuditRecord) -> None:
        self.client.rpush(self.key, json.dumps(record.envelope(), sort_keys=True))


class AuditLogger:

    def __init__(self, sink=None, key: Optional[bytes] = None):
        if key is not None and len(key) != KEY_BITS // 8:
            raise AuditError(f"audit key must be {KEY_BITS // 8} bytes")
        self.sink = sink if sink is not None else LoggingAuditSink()
        self._key = key
        if key is None:
            logger.warning("No audit key configured: records use per-record keys "
                           "and cannot be decrypted later")

    @property
    def write_only(self) -> bool:
        return self._key is None

    def record(self, level: str, message: str, caller_id: Optional[str], action: str,
               details: Optional[Dict[str, Any]] = None) -> AuditRecord:
        """Encrypt one decision and hand it to the sink. Errors propagate to the caller."""
        timestamp = datetime.now(timezone.utc).isoformat()
        payload = json.dumps({
            "timestamp": timestamp,
            "level": level,
            "message": message,
            "caller_id": caller_id,
            "action": action,
            "details": details,
        }, sort_keys=True, default=str).encode("utf-8")

        key = self._key if self._key is not None else AESGCM.generate_key(bit_length=KEY_BITS)
        iv = os.urandom(NONCE_BYTES)
        ciphertext = AESGCM(key).encrypt(iv, payload, _associated_data(timestamp, action))

        record = AuditRecord(
            timestamp=timestamp,
            level=level,
            message=message,
            caller_id=caller_id,
            action=action,
            ciphertext=ciphertext.hex(),
            iv=iv.hex(),
        )
        self.sink.emit(record)
        return record

    def decrypt(self, record: AuditRecord) -> Dict[str, Any]:
        if self._key is None:
            raise AuditError("audit records are write-only: no durable key configured")
        try:
            plaintext = AESGCM(self._key).decrypt(
                bytes.fromhex(record.iv),
                bytes.fromhex(record.ciphertext),
                _associated_data(record.timestamp, record.action),
            )
        except (InvalidTag, ValueError):
            raise AuditError("audit record failed authentication")
        return json.loads(plaintext)
