"""
Roster Store
============

Holds every ingested roster version, bucketed per employee.

ingest(raw_text) decides between three outcomes:
- exact duplicate (same SHA-256 of the raw text): nothing stored
- same bid period as a stored version: that version is replaced in place
- new bid period: appended as another version

Versions from different bid periods are never compared or merged.

Persistence is a collaborator with load() -> dict and save(dict).  I/O
failures are logged and otherwise ignored; the in-memory store stays
authoritative.
"""

import hashlib
import json
import logging
import os
import threading
import uuid
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional

from models.data_models import Employee, Roster, RosterBucket
from parsers.roster_parser import RosterTextParser
from core.parameters import StoreConfig

logger = logging.getLogger(__name__)

STORE_FORMAT_VERSION = 1


def compute_content_hash(raw_text: str) -> str:
    return hashlib.sha256((raw_text or '').encode('utf-8')).hexdigest()


def compute_period_key(roster: Roster) -> str:
    """'bp-<bidPeriod>', else '<start>_<end>' with 'start-unknown'/'end-unknown' fallbacks."""
    summary = roster.summary
    if summary.bid_period:
        return f"bp-{summary.bid_period}"
    start = summary.period_start.isoformat() if summary.period_start else 'start-unknown'
    end = summary.period_end.isoformat() if summary.period_end else 'end-unknown'
    return f"{start}_{end}"


@dataclass
class IngestResult:
    roster_id: str
    roster: Roster
    is_new: bool
    updated: bool = False
    previous_roster: Optional[Roster] = None
    period_key: Optional[str] = None


# ============================================================================
# PERSISTENCE
# ============================================================================

class JsonFilePersistence:
    """Whole-store JSON snapshot on disk, written atomically (tmp + rename)."""

    def __init__(self, path: str):
        self.path = path
        self._read_error_logged = False
        self._write_error_logged = False

    @classmethod
    def from_config(cls, config: StoreConfig) -> Optional['JsonFilePersistence']:
        if not config.persist_enabled:
            return None
        return cls(config.persist_path)

    def load(self) -> Dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            if not self._read_error_logged:
                logger.error(f"Failed to read roster store {self.path}: {e}")
                self._read_error_logged = True
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, data: Dict):
        directory = os.path.dirname(self.path)
        tmp_path = f"{self.path}.tmp"
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if not self._write_error_logged:
                logger.error(f"Failed to write roster store {self.path}: {e}")
                self._write_error_logged = True


# ============================================================================
# STORE
# ============================================================================

class RosterStore:
    """
    Versioned roster storage keyed by roster id (staff number).

    Concurrent ingests for the same employee are serialised by a
    per-employee lock; different employees proceed independently.
    """

    def __init__(self, persistence=None, parser: Optional[RosterTextParser] = None,
                 id_factory: Optional[Callable[[], str]] = None):
        self.persistence = persistence
        self.parser = parser or RosterTextParser()
        self.id_factory = id_factory or (lambda: f"anonymous-{uuid.uuid4().hex}")

        self._buckets: Dict[str, RosterBucket] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._save_lock = threading.Lock()

        if self.persistence is not None:
            self.hydrate(self.persistence.load())

    def _lock_for(self, roster_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(roster_id)
            if lock is None:
                lock = self._locks[roster_id] = threading.Lock()
            return lock

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    def ingest(self, raw_text: str) -> IngestResult:
        parsed = self.parser.parse(raw_text)
        roster_id = parsed.employee.staff_no or self.id_factory()
        content_hash = compute_content_hash(raw_text)
        period_key = compute_period_key(parsed)
        roster = replace(parsed, content_hash=content_hash, period_key=period_key)

        with self._lock_for(roster_id):
            bucket = self._buckets.get(roster_id)
            if bucket is None:
                bucket = self._buckets[roster_id] = RosterBucket(employee=roster.employee)

            if content_hash in bucket.roster_hashes:
                existing = self._find_duplicate(bucket, content_hash, period_key)
                logger.info(f"Duplicate roster for {roster_id} ({period_key}); ignored")
                return IngestResult(roster_id, existing or roster, is_new=False,
                                    previous_roster=existing, period_key=period_key)

            bucket.roster_hashes.add(content_hash)
            bucket.employee = roster.employee

            index = next((i for i, r in enumerate(bucket.rosters) if r.period_key == period_key), None)
            if index is not None:
                previous = bucket.rosters[index]
                bucket.rosters[index] = roster
                logger.info(f"Replaced roster {roster_id} {period_key}")
                result = IngestResult(roster_id, roster, is_new=True, updated=True,
                                      previous_roster=previous, period_key=period_key)
            else:
                bucket.rosters.append(roster)
                logger.info(f"Stored new roster {roster_id} {period_key} "
                            f"({len(bucket.rosters)} version(s))")
                result = IngestResult(roster_id, roster, is_new=True, period_key=period_key)

        self.persist()
        return result

    @staticmethod
    def _find_duplicate(bucket: RosterBucket, content_hash: str,
                        period_key: str) -> Optional[Roster]:
        for roster in bucket.rosters:
            if roster.content_hash == content_hash:
                return roster
        # Hash seen before but that version has since been replaced
        for roster in bucket.rosters:
            if roster.period_key == period_key:
                return roster
        return None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_bucket(self, roster_id: str) -> Optional[RosterBucket]:
        return self._buckets.get(roster_id)

    def get_rosters(self, roster_id: str) -> List[Roster]:
        bucket = self._buckets.get(roster_id)
        return list(bucket.rosters) if bucket else []

    def get_employee(self, roster_id: str) -> Optional[Employee]:
        bucket = self._buckets.get(roster_id)
        return bucket.employee if bucket else None

    def has_roster(self, roster_id: str) -> bool:
        return roster_id in self._buckets

    def list_roster_ids(self) -> List[str]:
        return sorted(self._buckets)

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def serialize(self) -> Dict:
        with self._registry_lock:
            buckets = dict(self._buckets)
        return {
            'version': STORE_FORMAT_VERSION,
            'rosters': {roster_id: bucket.to_dict() for roster_id, bucket in buckets.items()},
        }

    def hydrate(self, data: Optional[Dict]):
        if not data:
            return
        loaded = 0
        for roster_id, bucket_data in (data.get('rosters') or {}).items():
            try:
                self._buckets[roster_id] = RosterBucket.from_dict(bucket_data)
                loaded += 1
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable stored roster {roster_id}: {e}")
        logger.info(f"Loaded {loaded} roster bucket(s) from persistence")

    def persist(self):
        if self.persistence is None:
            return
        with self._save_lock:
            self.persistence.save(self.serialize())
