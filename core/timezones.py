"""
Airport timezone lookup
=======================

Resolves an IATA airport code to an IANA timezone name.  Instances are
callables (`lookup('PER') -> 'Australia/Perth'`) so the calendar builder can
take any `port -> zone` function, and tests can pass a plain dict.get.

Resolution order:
1. Runtime overrides (add_override)
2. CSV table (optional; columns containing 'iata' and 'time zone'/'iana')
3. Built-in table for the network's common ports
4. airportsdata (~7,800 IATA airports)
5. Default zone ('Australia/Sydney')
"""

import logging
import re
from typing import Dict, Optional

import airportsdata
import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = 'Australia/Sydney'

_IATA_RE = re.compile(r'^[A-Z0-9]{3}$')

BUILTIN_AIRPORT_TIMEZONES: Dict[str, str] = {
    'PER': 'Australia/Perth',
    'SLJ': 'Australia/Perth',
    'ZNE': 'Australia/Perth',
    'SYD': 'Australia/Sydney',
    'CBR': 'Australia/Sydney',
    'MEL': 'Australia/Melbourne',
    'BNE': 'Australia/Brisbane',
    'CNS': 'Australia/Brisbane',
    'OOL': 'Australia/Brisbane',
    'ADL': 'Australia/Adelaide',
    'DRW': 'Australia/Darwin',
    'ASP': 'Australia/Darwin',
    'HBA': 'Australia/Hobart',
    'NRT': 'Asia/Tokyo',
    'DXB': 'Asia/Dubai',
    'DOH': 'Asia/Qatar',
    'BOM': 'Asia/Kolkata',
    'CGK': 'Asia/Jakarta',
    'PEK': 'Asia/Shanghai',
    'PVG': 'Asia/Shanghai',
    'ICN': 'Asia/Seoul',
    'TPE': 'Asia/Taipei',
}

# Module-level load (cached)
_IATA_DB = airportsdata.load('IATA')


def normalize_port(port: Optional[str]) -> str:
    return (port or '').strip().upper()


def load_timezone_csv(path: str) -> Dict[str, str]:
    """
    Read an airport timezone CSV.

    The code column is the first header containing 'iata'; the zone column
    is the first containing 'time zone' or 'iana'.  Rows whose code is not a
    3-character IATA code are skipped.
    """
    df = pd.read_csv(path, dtype=str)
    headers = {col: str(col).strip().lower() for col in df.columns}

    code_col = next((col for col, h in headers.items() if 'iata' in h), None)
    tz_col = next(
        (col for col, h in headers.items() if 'time zone' in h or 'iana' in h),
        None,
    )
    if code_col is None or tz_col is None:
        raise ValueError(f"{path}: expected 'IATA' and 'Time Zone'/'IANA' columns")

    table: Dict[str, str] = {}
    for code, tz in zip(df[code_col], df[tz_col]):
        if pd.isna(code) or pd.isna(tz):
            continue
        code = normalize_port(code)
        tz = str(tz).strip()
        if _IATA_RE.match(code) and tz:
            table[code] = tz
    return table


class AirportTimezoneLookup:
    """IATA code -> IANA zone name, with layered sources."""

    def __init__(self, table: Optional[Dict[str, str]] = None,
                 default_timezone: str = DEFAULT_TIMEZONE,
                 use_airportsdata: bool = True):
        self._overrides: Dict[str, str] = {}
        self._table: Dict[str, str] = {normalize_port(k): v for k, v in (table or {}).items()}
        self.default_timezone = default_timezone
        self.use_airportsdata = use_airportsdata

    @classmethod
    def from_csv(cls, path: Optional[str], **kwargs) -> 'AirportTimezoneLookup':
        """Build a lookup from a CSV file; an unreadable file leaves the table empty."""
        table: Dict[str, str] = {}
        if path:
            try:
                table = load_timezone_csv(path)
                logger.info(f"Loaded {len(table)} airport timezones from {path}")
            except (OSError, ValueError) as e:
                logger.warning(f"Airport timezone CSV {path} unavailable: {e}")
        return cls(table=table, **kwargs)

    def add_override(self, port: str, timezone: str):
        """Add/override an airport at runtime."""
        self._overrides[normalize_port(port)] = timezone

    def lookup(self, port: Optional[str]) -> Optional[str]:
        """Zone for `port`, or None when no source knows it."""
        code = normalize_port(port)
        if not code:
            return None
        if code in self._overrides:
            return self._overrides[code]
        if code in self._table:
            return self._table[code]
        if code in BUILTIN_AIRPORT_TIMEZONES:
            return BUILTIN_AIRPORT_TIMEZONES[code]
        if self.use_airportsdata:
            entry = _IATA_DB.get(code)
            if entry and entry.get('tz'):
                return entry['tz']
        return None

    def __call__(self, port: Optional[str]) -> str:
        zone = self.lookup(port)
        if zone is None:
            if port:
                logger.debug(f"Airport '{port}' has no timezone; using {self.default_timezone}")
            return self.default_timezone
        return zone

    def is_australian_airport(self, port: Optional[str]) -> bool:
        zone = self.lookup(port)
        return bool(zone) and zone.startswith('Australia/')
