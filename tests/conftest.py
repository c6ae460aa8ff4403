import hashlib
import hmac
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import requests

import agent_web
from agent_config import Settings
from agent_store import CriteriaStore, PayoutLedger
from backend_gateway import BackendGateway, BountyLookup, BountyRecord
from bounty_payout import PayoutEngine
from comment_publisher import CommentPublisher
from pr_reviewer import ReviewVerdict
from webhook_orchestrator import WebhookOrchestrator

WEBHOOK_SECRET = "whsec-test"
MAINTAINER_SECRET = "maintainer-test"


def sign(body, secret=WEBHOOK_SECRET):
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def pr_payload(action="opened", number=42, body="Adds a feature", merged=False, repo="acme/widgets", author="alice"):
    return {
        "action": action,
        "repository": {"full_name": repo},
        "pull_request": {
            "number": number,
            "title": "Add widget caching",
            "body": body,
            "user": {"login": author},
            "base": {"ref": "main"},
            "head": {"ref": "feature/cache"},
            "diff_url": f"https://github.com/{repo}/pull/{number}.diff",
            "merged": merged,
            "author_association": "CONTRIBUTOR",
        },
    }


def issue_comment_payload(comment, number=7, association="OWNER", repo="acme/widgets", is_pr=False):
    issue = {"number": number, "title": "Widget bug", "body": "", "user": {"login": "bob"}}
    if is_pr:
        issue["pull_request"] = {"url": f"https://api.github.com/repos/{repo}/pulls/{number}"}
    return {
        "action": "created",
        "repository": {"full_name": repo},
        "issue": issue,
        "comment": {"body": comment, "user": {"login": "maintainer"}, "author_association": association},
    }


def post_webhook(client, event_type, payload, secret=WEBHOOK_SECRET, signature=None):
    body = json.dumps(payload).encode()
    headers = {
        "X-GitHub-Event": event_type,
        "X-Hub-Signature-256": signature if signature is not None else sign(body, secret),
        "Content-Type": "application/json",
    }
    return client.post("/api/webhook", data=body, headers=headers)


APPROVED = ReviewVerdict(approved=True, score=92, summary="Looks good.", issues=[], suggestions=["Add a test"])


@pytest.fixture
def settings():
    return Settings(
        github_webhook_secret=WEBHOOK_SECRET,
        backend_url="https://backend.example",
        maintainer_secret=MAINTAINER_SECRET,
        near_ai_api_key="key",
    )


@pytest.fixture
def env(settings):
    """Services with mocked outbound dependencies and real engine/ledger/orchestrator."""
    gateway = MagicMock(spec=BackendGateway)
    gateway.configured = True
    gateway.get_bounty_and_token.return_value = BountyLookup(bounty=None, github_token="gho_delegated")
    gateway.mark_paid.return_value = (True, None)

    github = MagicMock()
    github.fetch_diff.return_value = "diff --git a/x.py b/x.py\n+print('hi')\n"
    github.list_comments.return_value = []

    reviewer = MagicMock()
    reviewer.review.return_value = APPROVED

    chain = MagicMock()
    chain.release_bounty.return_value = "TxHash111"
    chain.account_id.return_value = "nyx-agent.testnet"

    ledger = PayoutLedger()
    criteria = CriteriaStore()
    payout_engine = PayoutEngine(chain, ledger, sleep=lambda seconds: None)
    publisher = CommentPublisher(github)
    orchestrator = WebhookOrchestrator(settings, gateway, github, reviewer, payout_engine, publisher)

    services = agent_web.AgentServices(
        settings=settings,
        gateway=gateway,
        github=github,
        ai=MagicMock(),
        criteria=criteria,
        ledger=ledger,
        chain=chain,
        reviewer=reviewer,
        payout_engine=payout_engine,
        publisher=publisher,
        orchestrator=orchestrator,
    )
    app = agent_web.create_app(settings=settings, services=services)
    return SimpleNamespace(
        app=app,
        client=app.test_client(),
        services=services,
        gateway=gateway,
        github=github,
        reviewer=reviewer,
        chain=chain,
        ledger=ledger,
    )


def open_bounty(amount="5", pr_number=42):
    return BountyRecord(id="b-1", repo_full_name="acme/widgets", amount=amount, status="open", pr_number=pr_number)


def make_response(status_code=200, json_body=None, text=None):
    """Real requests.Response with a canned body, for stubbing Session.request."""
    response = requests.Response()
    response.status_code = status_code
    if json_body is not None:
        response._content = json.dumps(json_body).encode()
        response.headers["Content-Type"] = "application/json"
    else:
        response._content = (text or "").encode()
    response.encoding = "utf-8"
    return response
