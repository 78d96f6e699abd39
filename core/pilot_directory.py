"""
Pilot directory: staff number -> notification email and hourly pay rate.

Backed by a small JSON file:

    {"pilots": {"174423": {"email": "x@example.com", "pay_rate": 150.0}}}

A missing or corrupt file reads as an empty directory.
"""

import json
import logging
import os
import re
import threading
from typing import Dict, List, Optional

from core.parameters import PilotDirectoryConfig

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
_STAFF_NO_RE = re.compile(r'^\d+$')


def _validate_staff_no(staff_no: str) -> str:
    value = str(staff_no or '').strip()
    if not _STAFF_NO_RE.match(value):
        raise ValueError(f"Invalid staff number '{staff_no}'")
    return value


class PilotDirectory:

    def __init__(self, path: str, readonly: bool = False):
        self.path = path
        self.readonly = readonly
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: PilotDirectoryConfig) -> 'PilotDirectory':
        return cls(config.path, config.readonly)

    def _read(self) -> Dict[str, Dict]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read pilot directory {self.path}: {e}")
            return {}
        pilots = data.get('pilots') if isinstance(data, dict) else None
        return pilots if isinstance(pilots, dict) else {}

    def _write(self, pilots: Dict[str, Dict]):
        if self.readonly:
            raise PermissionError("Pilot directory is read-only")
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump({'pilots': pilots}, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self.path)

    def _update(self, staff_no: str, **changes):
        staff_no = _validate_staff_no(staff_no)
        with self._lock:
            pilots = self._read()
            record = dict(pilots.get(staff_no, {}))
            record.update(changes)
            pilots[staff_no] = record
            self._write(pilots)

    # ------------------------------------------------------------------

    def get_email(self, staff_no: str) -> Optional[str]:
        record = self._read().get(str(staff_no).strip())
        return record.get('email') if record else None

    def set_email(self, staff_no: str, email: str):
        email = (email or '').strip().lower()
        if not _EMAIL_RE.match(email):
            raise ValueError(f"Invalid email address '{email}'")
        self._update(staff_no, email=email)

    def get_pay_rate(self, staff_no: Optional[str]) -> Optional[float]:
        if not staff_no:
            return None
        record = self._read().get(str(staff_no).strip())
        rate = record.get('pay_rate') if record else None
        if rate is None:
            return None
        try:
            return float(rate)
        except (TypeError, ValueError):
            logger.error(f"Ignoring unreadable pay rate {rate!r} for staff {staff_no}")
            return None

    def set_pay_rate(self, staff_no: str, pay_rate: float):
        try:
            rate = float(pay_rate)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid pay rate '{pay_rate}'")
        if rate < 0:
            raise ValueError("Pay rate must not be negative")
        self._update(staff_no, pay_rate=rate)

    def delete(self, staff_no: str) -> bool:
        staff_no = _validate_staff_no(staff_no)
        with self._lock:
            pilots = self._read()
            if staff_no not in pilots:
                return False
            del pilots[staff_no]
            self._write(pilots)
            return True

    def list_pilots(self) -> List[Dict]:
        pilots = self._read()
        return [dict(record, staff_no=staff_no) for staff_no, record in sorted(pilots.items())]
