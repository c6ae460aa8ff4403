"""
Nyx Bounty Payout Engine
Releases a repository bounty to a contributor wallet on NEAR.

Safety:
    - At most one successful payout per (repo, PR): a per-PR lock plus a
      ledger check, so a redelivered merge event never pays twice
    - Only the chain call is retried (3 attempts, linear backoff)
    - Exactly one ledger record per logical release, holding the final outcome
    - Wallets come only from an explicit override or a /link-wallet command;
      a GitHub handle is never treated as a wallet
"""

import time
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from agent_errors import DependencyUnavailable
from agent_store import PayoutAttempt
from near_agent import near_to_yocto, yocto_to_near
from pr_security import extract_linked_wallet, log_security_event

logger = logging.getLogger(__name__)

# =============================================================================
# CONFIG
# =============================================================================

MAX_ATTEMPTS = 3
BACKOFF_SECONDS = 1


@dataclass(frozen=True)
class PayoutResult:
    success: bool
    amount: str
    contributor_wallet: str
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    duplicate: bool = False

    def to_api(self):
        body = {"success": self.success, "amount": self.amount, "contributorWallet": self.contributor_wallet}
        if self.tx_hash:
            body["txHash"] = self.tx_hash
        if self.error:
            body["error"] = self.error
        if self.duplicate:
            body["duplicate"] = True
        return body

# =============================================================================
# WALLET RESOLUTION
# =============================================================================

def resolve_contributor_wallet(pr_body, comments, pr_author, suffix, override=None):
    """
    Find the payout wallet for a merged PR.
    Priority: override, latest /link-wallet comment by the PR author, PR body.
    Returns: (wallet or None, source)
    """
    if override:
        return override, "override"

    author = (pr_author or "").lower()
    for comment in reversed(comments or []):
        wallet = extract_linked_wallet(comment.get("body"), suffix)
        if not wallet:
            continue
        commenter = ((comment.get("user") or {}).get("login") or "").lower()
        if author and commenter == author:
            return wallet, "comment"
        log_security_event("wallet_link_ignored", {"commenter": commenter, "pr_author": author, "wallet": wallet})

    wallet = extract_linked_wallet(pr_body, suffix)
    if wallet:
        return wallet, "pr_body"

    return None, None

# =============================================================================
# PAYOUT ENGINE
# =============================================================================

class PayoutEngine:
    def __init__(self, chain, ledger, max_attempts=MAX_ATTEMPTS, backoff_seconds=BACKOFF_SECONDS, sleep=time.sleep):
        self.chain = chain
        self.ledger = ledger
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep
        self._locks = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _pr_lock(self, repo_full_name, pr_number):
        """Serialize releases for one (repo, PR); the entry is dropped once no caller holds or awaits it."""
        key = (repo_full_name.lower(), pr_number)
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def lookup_bounty(self, repo_full_name):
        """Current repository pool as a decimal NEAR string."""
        return yocto_to_near(self.chain.get_bounty(repo_full_name))

    def _release_with_retry(self, repo_full_name, contributor_wallet, pr_number, yocto):
        """
        Call release_bounty up to max_attempts times.
        Returns: (tx_hash, error)
        """
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self.chain.release_bounty(repo_full_name, contributor_wallet, yocto), None
            except DependencyUnavailable as e:
                last_error = e.message
                logger.warning("chain release attempt failed | repo=%s pr=%s attempt=%d/%d error=%s",
                               repo_full_name, pr_number, attempt, self.max_attempts, e.message)
                if e.auth_refused:
                    break
                if attempt < self.max_attempts:
                    self.sleep(attempt * self.backoff_seconds)
        return None, last_error

    def release_bounty(self, repo_full_name, contributor_wallet, pr_number, amount=None):
        """
        Release a bounty for one merged PR.
        Returns: PayoutResult. Failures are results, not exceptions.
        """
        with self._pr_lock(repo_full_name, pr_number):
            previous = self.ledger.find_success(repo_full_name, pr_number)
            if previous:
                logger.warning("payout already released | repo=%s pr=%s tx=%s",
                               repo_full_name, pr_number, previous.tx_hash)
                return PayoutResult(
                    success=True,
                    amount=previous.amount,
                    contributor_wallet=previous.contributor_wallet,
                    tx_hash=previous.tx_hash,
                    duplicate=True,
                )

            tx_hash, error = None, None
            if amount is None:
                try:
                    amount = self.lookup_bounty(repo_full_name)
                except DependencyUnavailable as e:
                    amount, error = "0", f"Bounty lookup failed: {e.message}"

            if error is None:
                try:
                    yocto = near_to_yocto(amount)
                except ValueError as e:
                    yocto, error = 0, str(e)
                else:
                    if yocto <= 0:
                        error = "No bounty funds available"

            if error is None:
                logger.info("attempting bounty payout | repo=%s pr=%s wallet=%s amount=%s NEAR",
                            repo_full_name, pr_number, contributor_wallet, amount)
                tx_hash, error = self._release_with_retry(repo_full_name, contributor_wallet, pr_number, yocto)

            success = tx_hash is not None
            self.ledger.append(PayoutAttempt(
                repo=repo_full_name,
                pr_number=pr_number,
                contributor_wallet=contributor_wallet,
                amount=str(amount),
                success=success,
                tx_hash=tx_hash,
                error=None if success else error,
            ))

            if success:
                logger.info("bounty released | repo=%s pr=%s amount=%s tx=%s", repo_full_name, pr_number, amount, tx_hash)
            else:
                logger.error("bounty payout failed | repo=%s pr=%s error=%s", repo_full_name, pr_number, error)

            return PayoutResult(
                success=success,
                amount=str(amount),
                contributor_wallet=contributor_wallet,
                tx_hash=tx_hash,
                error=None if success else error,
            )
