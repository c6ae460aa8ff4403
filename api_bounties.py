"""
Nyx Bounties API - maintainer and dashboard endpoints

GET  /api/bounty/<owner>/<repo>   - repository bounty pool on NEAR
POST /api/bounty/release          - manual bounty release (maintainer secret)
GET  /api/bounty/history          - payout ledger, newest first (?repo=owner/name)
POST /api/repo/register           - register a repository on the bounty contract
GET  /api/criteria                - review criteria for a repository (?repo=owner/name)
POST /api/criteria                - set review criteria (maintainer secret)
"""

import hmac
import logging

from flask import Blueprint, current_app, jsonify, request

from agent_errors import DependencyUnavailable
from near_agent import near_to_yocto, yocto_to_near
from pr_security import log_security_event

logger = logging.getLogger(__name__)

bounties_bp = Blueprint('bounties', __name__)


def _services():
    return current_app.extensions["nyx"]


def _secret_matches(provided, expected):
    """Constant-time compare; an unset expected secret never matches."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(str(provided).encode(), expected.encode())


def _valid_repo(repo):
    owner, _, name = (repo or "").partition("/")
    return bool(owner and name and "/" not in name)


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}

# =============================================================================
# BOUNTY POOL / PAYOUTS
# =============================================================================

@bounties_bp.route('/api/bounty/<owner>/<repo>', methods=['GET'])
def bounty_balance(owner, repo):
    services = _services()
    repo_full_name = f"{owner}/{repo}"
    try:
        amount = yocto_to_near(services.chain.get_bounty(repo_full_name))
    except (DependencyUnavailable, ValueError) as e:
        logger.warning("bounty balance lookup failed | repo=%s error=%s", repo_full_name, e)
        amount = "0"
    return jsonify({"repo": repo_full_name, "amount": amount, "currency": "NEAR"})


@bounties_bp.route('/api/bounty/release', methods=['POST'])
def release_bounty():
    services = _services()
    data = _json_body()
    repo = data.get("repo")
    wallet = (data.get("contributorWallet") or "").strip()
    pr_number = data.get("prNumber")
    amount = data.get("amount")

    if not repo or not wallet or pr_number in (None, ""):
        return jsonify({"error": "repo, contributorWallet and prNumber are required"}), 400

    if not _secret_matches(data.get("secret"), services.settings.maintainer_secret):
        log_security_event("manual_release_unauthorized", {"repo": repo, "ip": request.remote_addr},
                           services.settings.data_dir)
        return jsonify({"error": "Unauthorized"}), 401

    if not _valid_repo(repo):
        return jsonify({"error": "repo must be owner/name"}), 400
    try:
        pr_number = int(pr_number)
    except (TypeError, ValueError):
        return jsonify({"error": "prNumber must be an integer"}), 400
    if amount is not None:
        amount = str(amount)
        try:
            near_to_yocto(amount)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

    if services.settings.pause_payouts:
        log_security_event("payout_blocked_pause", {"repo": repo, "pr_number": pr_number, "manual": True},
                           services.settings.data_dir)
        return jsonify({"error": "Payouts are paused"}), 503

    result = services.payout_engine.release_bounty(repo, wallet, pr_number, amount=amount)
    return jsonify(result.to_api()), 200 if result.success else 500


@bounties_bp.route('/api/bounty/history', methods=['GET'])
def payout_history():
    services = _services()
    repo = request.args.get("repo") or None
    payouts = [entry.to_api() for entry in services.ledger.list(repo)]
    return jsonify({"payouts": payouts, "stats": services.ledger.stats()})

# =============================================================================
# REPOSITORY REGISTRATION
# =============================================================================

@bounties_bp.route('/api/repo/register', methods=['POST'])
def register_repo():
    services = _services()
    if not _secret_matches(request.headers.get('x-agent-secret'), services.settings.maintainer_secret):
        log_security_event("repo_register_unauthorized", {"ip": request.remote_addr}, services.settings.data_dir)
        return jsonify({"success": False, "error": "Unauthorized"}), 401

    data = _json_body()
    repo = data.get("repo")
    maintainer = (data.get("maintainerNearId") or data.get("maintainerWallet") or "").strip()
    if not _valid_repo(repo) or not maintainer:
        return jsonify({"success": False, "error": "repo (owner/name) and maintainerNearId are required"}), 400

    try:
        tx_hash = services.chain.register_repo(repo, maintainer)
    except DependencyUnavailable as e:
        logger.error("repo registration failed | repo=%s error=%s", repo, e.message)
        return jsonify({"success": False, "error": e.message}), 500

    logger.info("repo registered | repo=%s maintainer=%s tx=%s", repo, maintainer, tx_hash)
    return jsonify({"success": True, "repo": repo, "maintainerNearId": maintainer, "txHash": tx_hash})

# =============================================================================
# REVIEW CRITERIA
# =============================================================================

@bounties_bp.route('/api/criteria', methods=['GET'])
def get_criteria():
    repo = request.args.get("repo")
    if not repo:
        return jsonify({"error": "repo query parameter is required"}), 400
    return jsonify({"repo": repo, "criteria": _services().criteria.get(repo)})


@bounties_bp.route('/api/criteria', methods=['POST'])
def set_criteria():
    services = _services()
    data = _json_body()
    repo = data.get("repo")
    criteria = data.get("criteria")

    if not repo or not isinstance(criteria, str) or not criteria.strip():
        return jsonify({"error": "repo and criteria are required"}), 400
    if not _secret_matches(data.get("secret"), services.settings.maintainer_secret):
        return jsonify({"error": "Unauthorized"}), 401

    services.criteria.set(repo, criteria.strip())
    logger.info("criteria updated | repo=%s", repo)
    return jsonify({"success": True, "repo": repo, "criteria": criteria.strip()})
