"""
audit_log.py
Registro de auditoria de peticiones aceptadas (una linea por peticion).

Formato:
    IP:<id> | Time:<RFC3339> | Body:<cuerpo>
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime

logger = logging.getLogger(__name__)

LOG_FILE = "./log.txt"


@dataclass
class AuditRecord:
    client_id: str
    time: datetime
    body: bytes


def rfc3339(ts):
    if ts.tzinfo is None:
        ts = ts.astimezone()
    out = ts.replace(microsecond=0).isoformat()
    if out.endswith("+00:00"):
        out = out[:-6] + "Z"
    return out


def format_record(record):
    body = record.body.decode("utf-8", errors="replace")
    return f"IP:{record.client_id} | Time:{rfc3339(record.time)} | Body:{body}\n"


class AuditLog:
    """Sink de solo-anexar. Un fallo de escritura nunca afecta la decision."""

    def __init__(self, path=LOG_FILE):
        self.path = path
        self._lock = threading.Lock()

    def write(self, record):
        line = format_record(record)
        try:
            with self._lock:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line)
        except OSError as e:
            logger.error("Error escribiendo log %s: %s", self.path, e)
            return False
        logger.debug("Log successful.")
        return True
