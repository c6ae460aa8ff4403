from unittest.mock import MagicMock

from agent_errors import DependencyUnavailable
from comment_publisher import (
    CommentPublisher,
    format_payout_failure,
    format_payout_success,
    format_review_comment,
)
from pr_reviewer import ReviewVerdict


def test_review_comment_layout():
    verdict = ReviewVerdict(approved=False, score=41, summary="Needs work.",
                            issues=["No tests", "Unused import"], suggestions=[])
    body = format_review_comment(verdict, extra="Bounty: 5 NEAR")

    assert body.startswith("## Nyx Agent Review")
    assert "Changes requested" in body
    assert "41/100" in body
    assert "- No tests\n- Unused import" in body
    assert "- No suggestions." in body
    assert body.index("Bounty: 5 NEAR") < body.index("does not close PRs")


def test_payout_messages_never_mix_success_and_failure():
    success = format_payout_success("5", "alice.testnet", "Tx1", "https://testnet.nearblocks.io/txns/{}")
    failure = format_payout_failure("5", "alice.testnet", "Chain agent unreachable")

    assert "Bounty Released" in success
    assert "(https://testnet.nearblocks.io/txns/Tx1)" in success
    assert "Released" not in failure.replace("Release Failed", "")
    assert "Chain agent unreachable" in failure


def test_publish_failure_is_reported_not_raised():
    github = MagicMock()
    github.post_comment.side_effect = DependencyUnavailable("github", "rate limited", status_code=403)
    publisher = CommentPublisher(github)

    verdict = ReviewVerdict(approved=True, score=90, summary="ok")
    assert publisher.post_review("acme/widgets", 1, verdict, "gho") is False
    assert publisher.post_payout_result("acme/widgets", 1, "msg", "gho") is False


def test_publish_success():
    github = MagicMock()
    publisher = CommentPublisher(github)
    assert publisher.post_payout_result("acme/widgets", 3, "hello", "gho") is True
    github.post_comment.assert_called_once_with("acme/widgets", 3, "hello", "gho")
