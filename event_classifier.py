"""
Webhook event parsing and classification.

A raw GitHub payload is parsed once into a WebhookEvent, then collapsed into
an ordered list of intents:

    Ignore                      nothing to do
    BountySync                  `/bounty N` from a trusted author  (fire-and-forget)
    IssueLink                   PR opened with `#N` references     (fire-and-forget)
    ReviewRequest               PR opened / synchronize / reopened (critical)
    MergePayout                 PR closed with merged == true      (critical)

Sync intents always come before the single critical intent, so the
orchestrator can dispatch them in order and take its response status from
the last one.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from agent_errors import MalformedPayload
from pr_security import extract_bounty_amount, extract_issue_references, is_trusted_association, log_security_event

logger = logging.getLogger(__name__)

RECOGNIZED_EVENTS = {"pull_request", "issues", "issue_comment"}
RECOGNIZED_ACTIONS = {"opened", "synchronize", "reopened", "closed", "created"}
REVIEW_ACTIONS = {"opened", "synchronize", "reopened"}


@dataclass
class WebhookEvent:
    event_type: str
    action: str
    repo_full_name: str = ""
    issue_or_pr_number: Optional[int] = None
    title: str = ""
    body: str = ""
    contributor_handle: str = ""
    base_branch: str = ""
    head_branch: str = ""
    diff_url: str = ""
    merged: bool = False
    raw_comment_or_issue_body: str = ""
    author_association: str = ""
    is_pull_request: bool = False

    @property
    def owner_and_repo(self):
        owner, _, repo = self.repo_full_name.partition("/")
        return owner, repo


# =============================================================================
# INTENTS
# =============================================================================

@dataclass(frozen=True)
class PullRequestMetadata:
    number: int
    title: str
    body: str
    contributor: str
    base_branch: str
    head_branch: str
    diff_url: str


@dataclass(frozen=True)
class Ignore:
    reason: str = ""


@dataclass(frozen=True)
class BountySync:
    target_number: int
    is_issue: bool
    amount: str


@dataclass(frozen=True)
class IssueLink:
    pr_number: int
    referenced_issue_numbers: Tuple[int, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ReviewRequest:
    pr_number: int
    diff_url: str
    metadata: PullRequestMetadata


@dataclass(frozen=True)
class MergePayout:
    pr_number: int


SYNC_INTENTS = (BountySync, IssueLink)
CRITICAL_INTENTS = (ReviewRequest, MergePayout)

# =============================================================================
# PARSING
# =============================================================================

def _as_number(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    return None


def _obj(value):
    return value if isinstance(value, dict) else {}


def _text(value):
    return value if isinstance(value, str) else ""


def parse_event(event_type, payload):
    """
    Build a WebhookEvent from a decoded GitHub payload.
    Raises MalformedPayload when a recognized event lacks its core objects
    or carries them with the wrong JSON type. Wrongly typed leaf fields
    are read as empty.
    """
    if not isinstance(payload, dict):
        raise MalformedPayload("Payload must be a JSON object")

    action = payload.get("action")
    if action is not None and not isinstance(action, str):
        raise MalformedPayload("Malformed action")
    repository = payload.get("repository")
    if repository is not None and not isinstance(repository, dict):
        raise MalformedPayload("Malformed repository data")

    event = WebhookEvent(event_type=event_type or "", action=action or "",
                         repo_full_name=_text(_obj(repository).get("full_name")))

    if event_type == "pull_request":
        pr = payload.get("pull_request")
        if not isinstance(pr, dict):
            raise MalformedPayload("Missing pull_request data")
        event.issue_or_pr_number = _as_number(pr.get("number"))
        event.title = _text(pr.get("title"))
        event.body = _text(pr.get("body"))
        event.contributor_handle = _text(_obj(pr.get("user")).get("login"))
        event.base_branch = _text(_obj(pr.get("base")).get("ref"))
        event.head_branch = _text(_obj(pr.get("head")).get("ref"))
        event.diff_url = _text(pr.get("diff_url"))
        event.merged = pr.get("merged") is True
        event.author_association = _text(pr.get("author_association"))
        event.is_pull_request = True

    elif event_type in ("issues", "issue_comment"):
        issue = payload.get("issue")
        if not isinstance(issue, dict):
            raise MalformedPayload("Missing issue data")
        event.issue_or_pr_number = _as_number(issue.get("number"))
        event.title = _text(issue.get("title"))
        event.body = _text(issue.get("body"))
        event.is_pull_request = bool(issue.get("pull_request"))

        if event_type == "issue_comment":
            comment = payload.get("comment")
            if not isinstance(comment, dict):
                raise MalformedPayload("Missing comment data")
            event.raw_comment_or_issue_body = _text(comment.get("body"))
            event.contributor_handle = _text(_obj(comment.get("user")).get("login"))
            event.author_association = _text(comment.get("author_association"))
        else:
            event.raw_comment_or_issue_body = event.body
            event.contributor_handle = _text(_obj(issue.get("user")).get("login"))
            event.author_association = _text(issue.get("author_association"))

    return event

# =============================================================================
# CLASSIFICATION
# =============================================================================

def _require_target(event):
    if not event.repo_full_name or "/" not in event.repo_full_name:
        raise MalformedPayload("Missing repository full_name")
    if not event.issue_or_pr_number:
        raise MalformedPayload("Missing issue or pull request number")


def _classify_bounty_command(event):
    amount, error = extract_bounty_amount(event.raw_comment_or_issue_body)
    if error:
        logger.info("bounty command rejected | repo=%s number=%s reason=%s",
                    event.repo_full_name, event.issue_or_pr_number, error)
        return Ignore(reason=error)
    if amount is None:
        return Ignore(reason="no bounty command")
    if not is_trusted_association(event.author_association):
        log_security_event("bounty_command_untrusted", {
            "repo": event.repo_full_name,
            "number": event.issue_or_pr_number,
            "author": event.contributor_handle,
            "association": event.author_association,
        })
        return Ignore(reason="bounty command from untrusted author")

    return BountySync(
        target_number=event.issue_or_pr_number,
        is_issue=not event.is_pull_request,
        amount=amount,
    )


def _review_request(event):
    metadata = PullRequestMetadata(
        number=event.issue_or_pr_number,
        title=event.title,
        body=event.body,
        contributor=event.contributor_handle,
        base_branch=event.base_branch,
        head_branch=event.head_branch,
        diff_url=event.diff_url,
    )
    missing = [name for name in ("title", "contributor", "base_branch", "head_branch", "diff_url")
               if not getattr(metadata, name)]
    if missing:
        raise MalformedPayload("Incomplete pull request data", details={"missing": missing})
    return ReviewRequest(pr_number=event.issue_or_pr_number, diff_url=event.diff_url, metadata=metadata)


def classify(event: WebhookEvent) -> List[object]:
    """
    Map a WebhookEvent to its ordered intents.
    Returns [Ignore(...)] when nothing applies; never an empty list.
    """
    if event.event_type not in RECOGNIZED_EVENTS or event.action not in RECOGNIZED_ACTIONS:
        return [Ignore(reason=f"unhandled {event.event_type or 'unknown'}/{event.action or 'unknown'}")]

    if event.event_type == "issue_comment":
        if event.action != "created":
            return [Ignore(reason="comment action")]
        _require_target(event)
        return [_classify_bounty_command(event)]

    if event.event_type == "issues":
        if event.action != "opened":
            return [Ignore(reason="issue action")]
        _require_target(event)
        return [_classify_bounty_command(event)]

    # pull_request
    if event.action == "closed":
        if not event.merged:
            return [Ignore(reason="closed without merge")]
        _require_target(event)
        return [MergePayout(pr_number=event.issue_or_pr_number)]

    if event.action not in REVIEW_ACTIONS:
        return [Ignore(reason=f"pull_request/{event.action}")]

    _require_target(event)
    intents = []
    if event.action == "opened":
        refs = extract_issue_references(event.body, exclude=event.issue_or_pr_number)
        if refs:
            intents.append(IssueLink(pr_number=event.issue_or_pr_number, referenced_issue_numbers=tuple(refs)))
    intents.append(_review_request(event))
    return intents
