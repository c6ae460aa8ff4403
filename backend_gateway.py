"""
Backend Gateway client.

Typed access to the backend-of-record for bounty and delegated-token state.
Every call carries the shared `x-agent-secret` header.

    GET  /api/bounty/<owner>/<repo>/pr/<n>       bounty + delegated GitHub token
    GET  /api/bounty/<owner>/<repo>/issue/<n>    open bounty attached to an issue
    POST /api/bounty/attach                      create or update a bounty
    POST /api/bounty/<id>/mark-paid              open -> paid
"""

import logging
from dataclasses import dataclass, asdict
from typing import Optional

import requests

from agent_errors import DependencyUnavailable, Unauthorized

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15


@dataclass(frozen=True)
class BountyRecord:
    id: str
    repo_full_name: str
    amount: str
    status: str = "open"
    issue_number: Optional[int] = None
    pr_number: Optional[int] = None

    @property
    def is_open(self):
        return self.status == "open"

    @classmethod
    def from_api(cls, data, repo_full_name=""):
        if not isinstance(data, dict):
            return None
        # Amounts stay decimal strings end to end
        return cls(
            id=str(data.get("id") or ""),
            repo_full_name=data.get("repoFullName") or data.get("repo") or repo_full_name,
            amount=str(data.get("amount") or "0"),
            status=data.get("status") or "open",
            issue_number=data.get("issueNumber"),
            pr_number=data.get("prNumber"),
        )

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class BountyLookup:
    bounty: Optional[BountyRecord]
    github_token: Optional[str]


class BackendGateway:
    def __init__(self, base_url, agent_secret, timeout=DEFAULT_TIMEOUT, session=None):
        self.base_url = (base_url or "").rstrip("/")
        self.agent_secret = agent_secret or ""
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def configured(self):
        return bool(self.base_url)

    def _request(self, method, path, json=None, allow_not_found=False):
        """
        Send one request to the backend.
        Returns: decoded JSON body ({} when empty), or None on an allowed 404.
        """
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method=method,
                url=url,
                json=json,
                headers={"x-agent-secret": self.agent_secret, "Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise DependencyUnavailable("backend", f"Backend unreachable: {e}") from e

        if allow_not_found and response.status_code == 404:
            return _json_or_empty(response) or None

        if not response.ok:
            body = _json_or_empty(response)
            message = body.get("error") if isinstance(body, dict) else None
            raise DependencyUnavailable(
                "backend",
                f"Backend {method} {path} => {response.status_code}: {message or response.text[:200]}",
                status_code=response.status_code,
            )

        return _json_or_empty(response)

    # =========================================================================
    # BOUNTY STATE
    # =========================================================================

    def get_bounty_and_token(self, owner, repo, pr_number):
        """
        Fetch the open bounty for a PR and the repo owner's delegated token.
        Raises Unauthorized when the backend hands out no token.
        """
        full_name = f"{owner}/{repo}"
        data = self._request("GET", f"/api/bounty/{owner}/{repo}/pr/{pr_number}", allow_not_found=True) or {}

        token = data.get("githubToken")
        if not token:
            raise Unauthorized(
                "No delegated GitHub token for repository",
                details={"repo": full_name, "pr_number": pr_number},
            )

        bounty = BountyRecord.from_api(data.get("bounty"), repo_full_name=full_name)
        return BountyLookup(bounty=bounty, github_token=token)

    def get_issue_bounty(self, owner, repo, issue_number):
        """Open bounty attached to an issue, or None."""
        full_name = f"{owner}/{repo}"
        data = self._request("GET", f"/api/bounty/{owner}/{repo}/issue/{issue_number}", allow_not_found=True) or {}
        bounty = BountyRecord.from_api(data.get("bounty"), repo_full_name=full_name)
        if bounty is None or not bounty.is_open:
            return None
        return bounty

    def attach_bounty(self, repo, amount, issue_number=None, pr_number=None):
        """Create or update the bounty for (repo, issue|pr). Backend upserts."""
        if not issue_number and not pr_number:
            raise ValueError("attach_bounty needs an issue_number or a pr_number")

        body = {"repo": repo, "amount": str(amount)}
        if issue_number:
            body["issueNumber"] = issue_number
        if pr_number:
            body["prNumber"] = pr_number

        data = self._request("POST", "/api/bounty/attach", json=body)
        bounty = BountyRecord.from_api(data.get("bounty"), repo_full_name=repo)
        logger.info("bounty attached | repo=%s issue=%s pr=%s amount=%s", repo, issue_number, pr_number, amount)
        return bounty

    def mark_paid(self, bounty_id):
        """
        Transition a bounty open -> paid.
        Returns: (ok, error). Never raises; the transfer already happened.
        """
        try:
            self._request("POST", f"/api/bounty/{bounty_id}/mark-paid")
        except DependencyUnavailable as e:
            logger.error("mark-paid failed | bounty=%s error=%s", bounty_id, e.message)
            return False, e.message
        logger.info("bounty marked paid | bounty=%s", bounty_id)
        return True, None


def _json_or_empty(response):
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {}
