"""
In-process stores shared between webhook handler threads.

CriteriaStore   per-repository review criteria (case-insensitive keys)
PayoutLedger    append-only log of payout attempts, newest first

Both are lock-guarded. With a data_dir they also write through to JSON files
so state survives restarts; without one they live for the process lifetime.
"""

import os
import logging
import threading
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Optional

from pr_security import load_json_data, save_json_data

logger = logging.getLogger(__name__)

CRITERIA_FILE = "criteria.json"
PAYOUTS_FILE = "payouts.json"


def _utc_now():
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class PayoutAttempt:
    repo: str
    pr_number: int
    contributor_wallet: str
    amount: str
    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    timestamp: str = field(default_factory=_utc_now)

    def to_dict(self):
        return asdict(self)

    def to_api(self):
        return {
            "repo": self.repo,
            "prNumber": self.pr_number,
            "contributorWallet": self.contributor_wallet,
            "amount": self.amount,
            "success": self.success,
            "txHash": self.tx_hash,
            "error": self.error,
            "timestamp": self.timestamp,
        }


class CriteriaStore:
    def __init__(self, data_dir=None):
        self._lock = threading.Lock()
        self._path = os.path.join(data_dir, CRITERIA_FILE) if data_dir else None
        self._criteria = {}
        if self._path:
            self._criteria = dict(load_json_data(self._path, default={}))

    def get(self, repo_full_name):
        with self._lock:
            return self._criteria.get(repo_full_name.lower())

    def set(self, repo_full_name, criteria):
        with self._lock:
            self._criteria[repo_full_name.lower()] = criteria
            if self._path:
                save_json_data(self._path, self._criteria)


class PayoutLedger:
    def __init__(self, data_dir=None):
        self._lock = threading.Lock()
        self._path = os.path.join(data_dir, PAYOUTS_FILE) if data_dir else None
        self._entries = []
        if self._path:
            stored = load_json_data(self._path, default={"payouts": []})
            self._entries = [PayoutAttempt(**entry) for entry in stored.get("payouts", [])]

    def append(self, attempt):
        with self._lock:
            self._entries.insert(0, attempt)
            if self._path:
                save_json_data(self._path, {"payouts": [e.to_dict() for e in self._entries]})
        logger.info("payout recorded | repo=%s pr=%s success=%s tx=%s",
                    attempt.repo, attempt.pr_number, attempt.success, attempt.tx_hash)

    def list(self, repo=None):
        with self._lock:
            entries = list(self._entries)
        if repo:
            entries = [e for e in entries if e.repo.lower() == repo.lower()]
        return entries

    def find_success(self, repo, pr_number):
        """Successful attempt for (repo, pr), if any."""
        with self._lock:
            for entry in self._entries:
                if entry.success and entry.pr_number == pr_number and entry.repo.lower() == repo.lower():
                    return entry
        return None

    def stats(self):
        with self._lock:
            total = len(self._entries)
            successful = sum(1 for e in self._entries if e.success)
        return {"total": total, "successful": successful, "failed": total - successful}
