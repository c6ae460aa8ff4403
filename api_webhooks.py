"""
Nyx GitHub Webhook Handler
POST /api/webhook - verify, classify and process one GitHub delivery

Listens for:
- pull_request (opened / synchronize / reopened) -> AI review comment
- pull_request (closed + merged = true)          -> bounty payout on NEAR
- issues (opened), issue_comment (created)       -> `/bounty N` sync to backend

Processing is synchronous: GitHub gets the final status for the delivery.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint('webhooks', __name__)


@webhooks_bp.route('/api/webhook', methods=['POST'])
def github_webhook():
    services = current_app.extensions["nyx"]
    signature = request.headers.get('X-Hub-Signature-256', '')
    event_type = request.headers.get('X-GitHub-Event', '')
    delivery = request.headers.get('X-GitHub-Delivery', '')

    try:
        outcome = services.orchestrator.handle(request.get_data(), signature, event_type)
    except Exception as e:
        logger.exception("webhook processing crashed | event=%s delivery=%s", event_type, delivery)
        return jsonify({"error": "Processing failed", "details": str(e)}), 500

    logger.info("webhook handled | event=%s delivery=%s state=%s status=%d",
                event_type, delivery, outcome.state.value, outcome.http_status)
    return jsonify(outcome.body), outcome.http_status
