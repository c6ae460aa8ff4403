"""
Webhook Orchestrator
Drives one GitHub delivery through the pipeline:

    Received -> Verified -> Classified -> Ignored | BountySynced | IssueLinked
                                          | Reviewed | PaidOut | Failed

Nothing is retried here. Bounty-sync and issue-link are side paths whose
failures are logged and swallowed; review and merge-payout are critical and
abort the event with a structured error.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum

from agent_errors import (
    AgentError, DependencyUnavailable, InvalidSignature, MalformedPayload, PayoutFailed, Unauthorized,
)
from backend_gateway import BountyLookup
from bounty_payout import resolve_contributor_wallet
from comment_publisher import format_missing_wallet, format_payout_failure, format_payout_success
from event_classifier import (
    BountySync, Ignore, IssueLink, MergePayout, ReviewRequest,
    RECOGNIZED_ACTIONS, RECOGNIZED_EVENTS, classify, parse_event,
)
from pr_security import log_security_event, verify_github_signature

logger = logging.getLogger(__name__)


class EventState(str, Enum):
    RECEIVED = "Received"
    VERIFIED = "Verified"
    CLASSIFIED = "Classified"
    IGNORED = "Ignored"
    BOUNTY_SYNCED = "BountySynced"
    ISSUE_LINKED = "IssueLinked"
    REVIEWED = "Reviewed"
    PAID_OUT = "PaidOut"
    FAILED = "Failed"


@dataclass
class WebhookOutcome:
    state: EventState
    http_status: int
    body: dict = field(default_factory=dict)


def _ignored(reason=""):
    body = {"status": "ignored"}
    if reason:
        body["reason"] = reason
    return WebhookOutcome(EventState.IGNORED, 200, body)


def _failed(error):
    return WebhookOutcome(EventState.FAILED, error.http_status, error.to_dict())


class WebhookOrchestrator:
    def __init__(self, settings, gateway, github, reviewer, payout_engine, publisher):
        self.settings = settings
        self.gateway = gateway
        self.github = github
        self.reviewer = reviewer
        self.payout_engine = payout_engine
        self.publisher = publisher

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    def handle(self, raw_body, signature, event_type):
        """Process one delivery. Returns a WebhookOutcome; never raises AgentError."""
        if not verify_github_signature(raw_body, signature, self.settings.github_webhook_secret):
            log_security_event("webhook_invalid_signature", {"event": event_type}, self.settings.data_dir)
            return _failed(InvalidSignature("Invalid signature"))

        try:
            payload = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError) as e:
            logger.error("failed to parse webhook payload | error=%s", e)
            return _failed(MalformedPayload("Invalid JSON"))

        if not isinstance(payload, dict):
            return _failed(MalformedPayload("Payload must be a JSON object"))

        action = payload.get("action")
        if action is not None and not isinstance(action, str):
            return _failed(MalformedPayload("Malformed action"))
        if event_type not in RECOGNIZED_EVENTS or action not in RECOGNIZED_ACTIONS:
            return _ignored()

        try:
            event = parse_event(event_type, payload)
            intents = classify(event)
        except MalformedPayload as e:
            return _failed(e)

        logger.debug("event classified | event=%s action=%s repo=%s number=%s intents=%s",
                     event.event_type, event.action, event.repo_full_name, event.issue_or_pr_number,
                     [type(i).__name__ for i in intents])

        outcome = _ignored()
        for intent in intents:
            try:
                outcome = self._dispatch(event, intent)
            except AgentError as e:
                logger.error("event processing failed | repo=%s number=%s intent=%s error=%s",
                             event.repo_full_name, event.issue_or_pr_number, type(intent).__name__, e.message)
                return _failed(e)
        return outcome

    def _dispatch(self, event, intent):
        if isinstance(intent, Ignore):
            return _ignored()
        if isinstance(intent, BountySync):
            return self._handle_bounty_sync(event, intent)
        if isinstance(intent, IssueLink):
            return self._handle_issue_link(event, intent)
        if isinstance(intent, ReviewRequest):
            return self._handle_review(event, intent)
        if isinstance(intent, MergePayout):
            return self._handle_merge(event, intent)
        raise TypeError(f"Unhandled intent: {intent!r}")

    def _lookup(self, event, pr_number):
        """Bounty + delegated token, fetched fresh for this event only."""
        if not self.gateway.configured:
            # Standalone mode: no backend, static token, no bounty records
            if not self.settings.github_token:
                raise Unauthorized("No GitHub token available", details={"repo": event.repo_full_name})
            return BountyLookup(bounty=None, github_token=self.settings.github_token)

        owner, repo = event.owner_and_repo
        return self.gateway.get_bounty_and_token(owner, repo, pr_number)

    # =========================================================================
    # SIDE PATHS
    # =========================================================================

    def _handle_bounty_sync(self, event, intent):
        outcome = WebhookOutcome(EventState.BOUNTY_SYNCED, 200, {"status": "processed-sync"})
        if not self.gateway.configured:
            logger.warning("bounty sync skipped, no backend | repo=%s number=%s", event.repo_full_name, intent.target_number)
            return outcome

        try:
            self.gateway.attach_bounty(
                event.repo_full_name,
                intent.amount,
                issue_number=intent.target_number if intent.is_issue else None,
                pr_number=None if intent.is_issue else intent.target_number,
            )
        except (DependencyUnavailable, ValueError) as e:
            logger.error("bounty sync failed | repo=%s number=%s error=%s", event.repo_full_name, intent.target_number, e)
        return outcome

    def _handle_issue_link(self, event, intent):
        outcome = WebhookOutcome(EventState.ISSUE_LINKED, 200, {"status": "processed-sync"})
        if not self.gateway.configured:
            return outcome

        owner, repo = event.owner_and_repo
        try:
            for issue_number in intent.referenced_issue_numbers:
                bounty = self.gateway.get_issue_bounty(owner, repo, issue_number)
                if bounty is None:
                    continue
                self.gateway.attach_bounty(event.repo_full_name, bounty.amount, pr_number=intent.pr_number)
                logger.info("issue bounty linked | repo=%s issue=%s pr=%s amount=%s",
                            event.repo_full_name, issue_number, intent.pr_number, bounty.amount)
                break
        except DependencyUnavailable as e:
            logger.error("issue link failed | repo=%s pr=%s error=%s", event.repo_full_name, intent.pr_number, e.message)
        return outcome

    # =========================================================================
    # CRITICAL PATHS
    # =========================================================================

    def _handle_review(self, event, intent):
        lookup = self._lookup(event, intent.pr_number)
        diff = self.github.fetch_diff(intent.diff_url, lookup.github_token)
        verdict = self.reviewer.review(diff, event.repo_full_name, intent.metadata)

        extra = None
        if lookup.bounty is not None and lookup.bounty.is_open:
            extra = f"💰 **Bounty:** {lookup.bounty.amount} NEAR is attached to this PR and is released on merge."

        self.publisher.post_review(event.repo_full_name, intent.pr_number, verdict, lookup.github_token, extra=extra)
        return WebhookOutcome(EventState.REVIEWED, 200, {"status": "processed"})

    def _handle_merge(self, event, intent):
        repo_full_name, pr_number = event.repo_full_name, intent.pr_number

        if self.settings.pause_payouts:
            log_security_event("payout_blocked_pause", {"repo": repo_full_name, "pr_number": pr_number},
                               self.settings.data_dir)
            return _ignored("payouts paused")

        lookup = self._lookup(event, pr_number)
        bounty = lookup.bounty
        if bounty is None or not bounty.is_open:
            logger.info("no open bounty for merged PR | repo=%s pr=%s", repo_full_name, pr_number)
            return WebhookOutcome(EventState.IGNORED, 200, {"status": "no-bounty-for-merge"})

        comments = []
        if not self.settings.test_contributor_wallet:
            comments = self.github.list_comments(repo_full_name, pr_number, lookup.github_token)

        wallet, source = resolve_contributor_wallet(
            event.body, comments, event.contributor_handle,
            self.settings.wallet_suffix, override=self.settings.test_contributor_wallet,
        )
        if not wallet:
            logger.info("no wallet linked, skipping payout | repo=%s pr=%s", repo_full_name, pr_number)
            self.publisher.post_payout_result(repo_full_name, pr_number,
                                              format_missing_wallet(self.settings.wallet_suffix),
                                              lookup.github_token)
            return WebhookOutcome(EventState.IGNORED, 200, {"status": "skipped-no-wallet"})

        logger.info("payout wallet resolved | repo=%s pr=%s wallet=%s source=%s", repo_full_name, pr_number, wallet, source)
        result = self.payout_engine.release_bounty(repo_full_name, wallet, pr_number, amount=bounty.amount)

        if result.duplicate:
            return WebhookOutcome(EventState.PAID_OUT, 200, {"status": "processed-merge", "duplicate": True})

        if not result.success:
            log_security_event("payout_failed", {
                "repo": repo_full_name, "pr_number": pr_number, "wallet": wallet, "error": result.error,
            }, self.settings.data_dir)
            self.publisher.post_payout_result(repo_full_name, pr_number,
                                              format_payout_failure(result.amount, wallet, result.error),
                                              lookup.github_token)
            raise PayoutFailed("Payout failed", details={"error": result.error})

        if bounty.id and self.gateway.configured:
            self.gateway.mark_paid(bounty.id)

        self.publisher.post_payout_result(
            repo_full_name, pr_number,
            format_payout_success(result.amount, wallet, result.tx_hash, self.settings.explorer_tx_url),
            lookup.github_token,
        )
        return WebhookOutcome(EventState.PAID_OUT, 200, {"status": "processed-merge", "txHash": result.tx_hash})
