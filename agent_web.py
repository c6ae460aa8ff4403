"""
Nyx Bounty Agent - web service
Flask app that receives GitHub webhooks, reviews pull requests with NEAR AI
and releases repository bounties on NEAR when a PR is merged.

Run:
    python agent_web.py            (PORT, default 3000)

Endpoints:
    POST /api/webhook              GitHub deliveries
    GET  /api/health               liveness + agent account + payout stats
    /api/bounty/*, /api/repo/*, /api/criteria   see api_bounties.py
"""

import logging
from dataclasses import dataclass

from flask import Flask, jsonify, request

from agent_config import Settings, load_settings
from agent_errors import DependencyUnavailable
from agent_store import CriteriaStore, PayoutLedger
from ai_provider import AIProvider
from api_bounties import bounties_bp
from api_webhooks import webhooks_bp
from backend_gateway import BackendGateway
from bounty_payout import PayoutEngine
from comment_publisher import CommentPublisher
from github_client import GitHubClient
from near_agent import ShadeAgentClient
from pr_reviewer import PRReviewer
from webhook_orchestrator import WebhookOrchestrator

VERSION = "1.0.0"

logger = logging.getLogger("nyx")

# =============================================================================
# LOGGING
# =============================================================================

def setup_logging(debug=False):
    """Attach one stream handler to the root logger; safe to call repeatedly."""
    level = logging.DEBUG if debug else logging.INFO
    root = logging.getLogger()
    root.setLevel(level)
    if not any(getattr(h, "_nyx", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S"
        ))
        handler._nyx = True
        root.addHandler(handler)

# =============================================================================
# SERVICES
# =============================================================================

@dataclass
class AgentServices:
    settings: Settings
    gateway: BackendGateway
    github: GitHubClient
    ai: AIProvider
    criteria: CriteriaStore
    ledger: PayoutLedger
    chain: ShadeAgentClient
    reviewer: PRReviewer
    payout_engine: PayoutEngine
    publisher: CommentPublisher
    orchestrator: WebhookOrchestrator


def build_services(settings):
    gateway = BackendGateway(settings.backend_url, settings.maintainer_secret)
    github = GitHubClient()
    ai = AIProvider(settings.near_ai_api_key, settings.near_ai_base_url, settings.near_ai_model)
    criteria = CriteriaStore(settings.data_dir or None)
    ledger = PayoutLedger(settings.data_dir or None)
    chain = ShadeAgentClient(settings.shade_agent_api_url)
    reviewer = PRReviewer(ai, criteria, settings.eval_log_dir or None)
    payout_engine = PayoutEngine(chain, ledger)
    publisher = CommentPublisher(github)
    orchestrator = WebhookOrchestrator(settings, gateway, github, reviewer, payout_engine, publisher)

    return AgentServices(
        settings=settings,
        gateway=gateway,
        github=github,
        ai=ai,
        criteria=criteria,
        ledger=ledger,
        chain=chain,
        reviewer=reviewer,
        payout_engine=payout_engine,
        publisher=publisher,
        orchestrator=orchestrator,
    )

# =============================================================================
# APP FACTORY
# =============================================================================

def create_app(settings=None, services=None):
    settings = settings or (services.settings if services else load_settings())
    setup_logging(settings.debug)
    services = services or build_services(settings)

    app = Flask(__name__)
    app.extensions["nyx"] = services

    app.register_blueprint(webhooks_bp)
    app.register_blueprint(bounties_bp)

    if settings.debug:
        @app.before_request
        def log_request():
            logger.debug("request | method=%s path=%s", request.method, request.path)

    @app.route('/api/health')
    def health():
        try:
            account_id = services.chain.account_id()
            agent = "registered"
        except DependencyUnavailable as e:
            logger.warning("agent account lookup failed | error=%s", e.message)
            account_id, agent = None, "unreachable"

        return jsonify({
            "status": "ok",
            "version": VERSION,
            "agent": agent,
            "agentAccountId": account_id,
            "network": settings.network_id,
            "payouts": services.ledger.stats(),
        })

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not Found", "path": request.path}), 404

    if not settings.backend_url:
        logger.warning("BACKEND_URL not set, running standalone with GITHUB_TOKEN")
    if not settings.github_webhook_secret:
        logger.warning("GITHUB_WEBHOOK_SECRET not set, every webhook will be rejected")
    if settings.pause_payouts:
        logger.warning("PAUSE_PAYOUTS enabled, merged PRs will not be paid")
    logger.info("nyx agent ready | network=%s model=%s", settings.network_id, settings.near_ai_model)
    return app


if __name__ == '__main__':
    _settings = load_settings()
    create_app(_settings).run(host='0.0.0.0', port=_settings.port, debug=False, threaded=True)
