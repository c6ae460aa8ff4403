"""
GitHub REST helpers acting with a repository owner's delegated token.
The token is passed per call and never stored on the client.
"""

import logging

import requests

from agent_errors import DependencyUnavailable

logger = logging.getLogger(__name__)

# =============================================================================
# CONFIG
# =============================================================================

GITHUB_API = "https://api.github.com"
MAX_DIFF_CHARS = 50_000
TRUNCATION_MARKER = "\n\n... [diff truncated: {omitted} of {total} characters omitted] ..."
DIFF_TIMEOUT = 90
API_TIMEOUT = 15
MAX_COMMENT_PAGES = 10


def github_headers(token, accept="application/vnd.github+json"):
    """Get GitHub API headers."""
    return {
        "Authorization": f"Bearer {token}",
        "Accept": accept,
    }


def truncate_diff(diff, limit=MAX_DIFF_CHARS):
    """
    Bound a diff to `limit` characters, appending an explicit marker.
    Returns: (text, truncated)
    """
    if len(diff) <= limit:
        return diff, False
    marker = TRUNCATION_MARKER.format(omitted=len(diff) - limit, total=len(diff))
    return diff[:limit] + marker, True


class GitHubClient:
    def __init__(self, api_url=GITHUB_API, session=None):
        self.api_url = api_url.rstrip("/")
        self.session = session or requests.Session()

    def _send(self, method, url, token, accept="application/vnd.github+json", json=None, params=None, timeout=API_TIMEOUT):
        try:
            response = self.session.request(
                method=method,
                url=url,
                headers=github_headers(token, accept),
                json=json,
                params=params,
                timeout=timeout,
            )
        except requests.exceptions.RequestException as e:
            raise DependencyUnavailable("github", f"GitHub unreachable: {e}") from e

        if not response.ok:
            raise DependencyUnavailable(
                "github",
                f"GitHub {method} {url} => {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    # =========================================================================
    # DIFFS
    # =========================================================================

    def fetch_diff(self, diff_url, token):
        """Fetch a PR diff as text, capped at MAX_DIFF_CHARS."""
        response = self._send(
            "GET", diff_url, token,
            accept="application/vnd.github.v3.diff",
            timeout=DIFF_TIMEOUT,
        )
        diff, truncated = truncate_diff(response.text)
        if truncated:
            logger.warning("diff truncated | url=%s original_chars=%d limit=%d",
                           diff_url, len(response.text), MAX_DIFF_CHARS)
        return diff

    # =========================================================================
    # COMMENTS
    # =========================================================================

    def post_comment(self, repo_full_name, number, body, token):
        """Post a comment on an issue or PR. Returns the created comment."""
        owner, _, repo = repo_full_name.partition("/")
        if not owner or not repo:
            raise ValueError(f"Invalid repo full name: {repo_full_name!r}")

        url = f"{self.api_url}/repos/{owner}/{repo}/issues/{number}/comments"
        response = self._send("POST", url, token, json={"body": body})
        return response.json() if response.content else {}

    def list_comments(self, repo_full_name, number, token):
        """All comments on an issue or PR, oldest first."""
        owner, _, repo = repo_full_name.partition("/")
        url = f"{self.api_url}/repos/{owner}/{repo}/issues/{number}/comments"

        comments = []
        for page in range(1, MAX_COMMENT_PAGES + 1):
            response = self._send("GET", url, token, params={"per_page": 100, "page": page})
            batch = response.json() or []
            comments.extend(batch)
            if len(batch) < 100:
                break
        return comments
