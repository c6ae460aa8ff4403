"""
Comment Publisher
Posts review verdicts and payout results back to GitHub. Posting is a
best-effort notification: failures are logged and reported as False, never
raised, so nothing already done is rolled back.
"""

import logging

from agent_errors import DependencyUnavailable

logger = logging.getLogger(__name__)

REVIEW_DISCLAIMER = "> Note: The AI does not close PRs. Maintainers decide whether to close or merge."


def format_review_comment(verdict, extra=None):
    status = "✅ Approved" if verdict.approved else "❌ Changes requested"
    issues = "\n".join(f"- {issue}" for issue in verdict.issues) or "- No issues found."
    suggestions = "\n".join(f"- {s}" for s in verdict.suggestions) or "- No suggestions."

    lines = [
        "## Nyx Agent Review",
        f"**Status:** {status}",
        f"**Score:** {verdict.score}/100",
        "",
        "**Summary**",
        verdict.summary or "(no summary)",
        "",
        "**Issues**",
        issues,
        "",
        "**Suggestions**",
        suggestions,
        "",
    ]
    if extra:
        lines += [extra, ""]
    lines.append(REVIEW_DISCLAIMER)
    return "\n".join(lines)


def format_payout_success(amount, wallet, tx_hash, explorer_tx_url=None):
    tx_ref = f"[`{tx_hash}`]({explorer_tx_url.format(tx_hash)})" if explorer_tx_url else f"`{tx_hash}`"
    return (
        "## 🎉 Bounty Released\n\n"
        f"**Amount**: {amount} NEAR\n"
        f"**Wallet**: `{wallet}`\n"
        f"**Transaction**: {tx_ref}\n\n"
        "Thank you for your contribution!"
    )


def format_payout_failure(amount, wallet, error):
    return (
        "## ❌ Bounty Release Failed\n\n"
        f"**Amount**: {amount} NEAR\n"
        f"**Wallet**: `{wallet}`\n"
        f"**Error**: {error or 'Unknown error'}\n\n"
        "No funds were confirmed on-chain. The bounty stays open and a maintainer can retry the release."
    )


def format_missing_wallet(suffix):
    return (
        "## ⚠️ No Payout Wallet Linked\n\n"
        "This PR was merged with an open bounty, but no NEAR wallet is linked.\n\n"
        "The PR author can link one by commenting:\n"
        f"```\n/link-wallet your-account{suffix}\n```\n"
        "A maintainer can then release the bounty manually."
    )


class CommentPublisher:
    def __init__(self, github):
        self.github = github

    def _post(self, repo_full_name, number, body, token, kind):
        try:
            self.github.post_comment(repo_full_name, number, body, token)
        except (DependencyUnavailable, ValueError) as e:
            logger.error("comment post failed | kind=%s repo=%s number=%s error=%s", kind, repo_full_name, number, e)
            return False
        logger.info("comment posted | kind=%s repo=%s number=%s", kind, repo_full_name, number)
        return True

    def post_review(self, repo_full_name, pr_number, verdict, token, extra=None):
        return self._post(repo_full_name, pr_number, format_review_comment(verdict, extra), token, "review")

    def post_payout_result(self, repo_full_name, pr_number, message, token):
        return self._post(repo_full_name, pr_number, message, token, "payout")
