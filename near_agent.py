"""
NEAR chain agent client.

The bounty contract is reached through the shade agent HTTP API, which holds
the agent keys and signs transactions:

    POST /api/agent/view          {methodName, args}   read-only contract view
    POST /api/agent/call          {methodName, args}   signed contract call
    POST /api/agent/getAccountId                        agent account id

Amounts cross this boundary as yoctoNEAR integers (1 NEAR = 10^24 yocto).
Conversion is exact integer/string arithmetic; floats never touch amounts.
"""

import re
import logging

import requests

from agent_errors import DependencyUnavailable

logger = logging.getLogger(__name__)

NEAR_DECIMALS = 24
YOCTO_PER_NEAR = 10 ** NEAR_DECIMALS
NEAR_AMOUNT_RE = re.compile(r'^\s*(\d+)(?:\.(\d*))?\s*$')

VIEW_TIMEOUT = 15
CALL_TIMEOUT = 60

# =============================================================================
# AMOUNT CONVERSION
# =============================================================================

def near_to_yocto(amount):
    """
    Convert a decimal NEAR string to integer yoctoNEAR.
    Raises ValueError for malformed input or more than 24 fractional digits.
    """
    match = NEAR_AMOUNT_RE.match(str(amount))
    if not match:
        raise ValueError(f"Invalid NEAR amount: {amount!r}")

    whole, fraction = match.group(1), (match.group(2) or "")
    fraction = fraction.rstrip("0")
    if len(fraction) > NEAR_DECIMALS:
        raise ValueError(f"NEAR amount has more than {NEAR_DECIMALS} decimals: {amount!r}")

    return int(whole) * YOCTO_PER_NEAR + int(fraction.ljust(NEAR_DECIMALS, "0") or "0")


def yocto_to_near(yocto):
    """Convert yoctoNEAR (int or digit string) to a canonical decimal NEAR string."""
    value = int(yocto)
    if value < 0:
        raise ValueError("Negative yoctoNEAR amount")

    whole, remainder = divmod(value, YOCTO_PER_NEAR)
    if not remainder:
        return str(whole)
    fraction = str(remainder).rjust(NEAR_DECIMALS, "0").rstrip("0")
    return f"{whole}.{fraction}"


def _extract_tx_hash(result):
    if not isinstance(result, dict):
        return None
    transaction = result.get("transaction") or {}
    outcome = result.get("transaction_outcome") or {}
    return transaction.get("hash") or result.get("txHash") or outcome.get("id")


def _failure_of(result):
    status = result.get("status") if isinstance(result, dict) else None
    if isinstance(status, dict) and "Failure" in status:
        return status["Failure"]
    return None

# =============================================================================
# CLIENT
# =============================================================================

class ShadeAgentClient:
    def __init__(self, api_url, session=None):
        self.api_url = (api_url or "").rstrip("/")
        self.session = session or requests.Session()
        self._account_id = None

    def _post(self, path, body, timeout):
        url = f"{self.api_url}{path}"
        try:
            response = self.session.request("POST", url, json=body, timeout=timeout)
        except requests.exceptions.RequestException as e:
            raise DependencyUnavailable("chain", f"Chain agent unreachable: {e}") from e

        if not response.ok:
            raise DependencyUnavailable(
                "chain",
                f"Chain agent {path} => {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def view(self, method_name, args):
        return self._post("/api/agent/view", {"methodName": method_name, "args": args}, VIEW_TIMEOUT)

    def call(self, method_name, args):
        return self._post("/api/agent/call", {"methodName": method_name, "args": args}, CALL_TIMEOUT)

    def account_id(self):
        """Agent account id, cached after the first successful lookup."""
        if self._account_id is None:
            data = self._post("/api/agent/getAccountId", {}, VIEW_TIMEOUT)
            account = data.get("accountId") if isinstance(data, dict) else data
            if not account:
                raise DependencyUnavailable("chain", "Chain agent returned no account id")
            self._account_id = str(account)
        return self._account_id

    # =========================================================================
    # BOUNTY CONTRACT
    # =========================================================================

    def get_bounty(self, repo_id):
        """Bounty pool for a repository, in yoctoNEAR."""
        result = self.view("get_bounty", {"repo_id": repo_id})
        if isinstance(result, dict):
            result = result.get("amount")
        if result in (None, ""):
            return 0
        try:
            return int(str(result).strip().strip('"'))
        except ValueError as e:
            raise DependencyUnavailable("chain", f"Unexpected get_bounty result: {result!r}") from e

    def release_bounty(self, repo_id, recipient, yocto_amount):
        """
        Transfer yocto_amount from the repository pool to recipient.
        Returns: transaction hash. Raises DependencyUnavailable unless confirmed.
        """
        result = self.call("release_bounty", {
            "repo_id": repo_id,
            "recipient": recipient,
            "amount": str(yocto_amount),
        })

        failure = _failure_of(result)
        if failure is not None:
            raise DependencyUnavailable("chain", f"release_bounty failed on-chain: {failure}")

        tx_hash = _extract_tx_hash(result)
        if not tx_hash:
            raise DependencyUnavailable("chain", "release_bounty returned no transaction hash")
        return tx_hash

    def register_repo(self, repo_id, maintainer_id):
        result = self.call("register_repo", {"repo_id": repo_id, "maintainer_id": maintainer_id})
        failure = _failure_of(result)
        if failure is not None:
            raise DependencyUnavailable("chain", f"register_repo failed on-chain: {failure}")
        return _extract_tx_hash(result)
