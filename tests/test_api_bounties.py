from agent_config import Settings
from agent_errors import DependencyUnavailable

from conftest import MAINTAINER_SECRET


# =============================================================================
# HEALTH / 404
# =============================================================================

def test_health_reports_agent_and_payout_stats(env):
    resp = env.client.get("/api/health")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["status"] == "ok"
    assert data["agent"] == "registered"
    assert data["agentAccountId"] == "nyx-agent.testnet"
    assert data["payouts"] == {"total": 0, "successful": 0, "failed": 0}


def test_health_when_agent_unreachable(env):
    env.chain.account_id.side_effect = DependencyUnavailable("chain", "Chain agent unreachable")
    data = env.client.get("/api/health").get_json()
    assert data["status"] == "ok"
    assert data["agent"] == "unreachable"
    assert data["agentAccountId"] is None


def test_unknown_route_returns_json_404(env):
    resp = env.client.get("/api/nope")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Not Found", "path": "/api/nope"}


# =============================================================================
# BOUNTY BALANCE / HISTORY
# =============================================================================

def test_bounty_balance_in_near(env):
    env.chain.get_bounty.return_value = 12_500_000_000_000_000_000_000_000
    resp = env.client.get("/api/bounty/acme/widgets")
    assert resp.get_json() == {"repo": "acme/widgets", "amount": "12.5", "currency": "NEAR"}
    env.chain.get_bounty.assert_called_once_with("acme/widgets")


def test_bounty_balance_is_zero_on_chain_error(env):
    env.chain.get_bounty.side_effect = DependencyUnavailable("chain", "down")
    resp = env.client.get("/api/bounty/acme/widgets")
    assert resp.status_code == 200
    assert resp.get_json()["amount"] == "0"


def test_history_lists_payouts_newest_first(env):
    env.chain.release_bounty.side_effect = ["Tx1", "Tx2"]
    env.services.payout_engine.release_bounty("acme/widgets", "a.testnet", 1, amount="1")
    env.services.payout_engine.release_bounty("acme/gadgets", "b.testnet", 2, amount="2")

    data = env.client.get("/api/bounty/history").get_json()
    assert [p["txHash"] for p in data["payouts"]] == ["Tx2", "Tx1"]
    assert data["stats"]["successful"] == 2

    data = env.client.get("/api/bounty/history?repo=acme/widgets").get_json()
    assert [p["prNumber"] for p in data["payouts"]] == [1]


# =============================================================================
# MANUAL RELEASE
# =============================================================================

def _release(env, **overrides):
    body = {"repo": "acme/widgets", "contributorWallet": "alice.testnet", "prNumber": 42,
            "secret": MAINTAINER_SECRET, "amount": "5"}
    body.update(overrides)
    return env.client.post("/api/bounty/release", json=body)


def test_manual_release_pays_and_records(env):
    resp = _release(env)
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["success"] is True
    assert data["txHash"] == "TxHash111"
    env.chain.release_bounty.assert_called_once_with("acme/widgets", "alice.testnet", 5 * 10 ** 24)
    assert len(env.ledger.list()) == 1


def test_manual_release_is_at_most_once(env):
    _release(env)
    resp = _release(env)
    assert resp.status_code == 200
    assert resp.get_json()["duplicate"] is True
    assert env.chain.release_bounty.call_count == 1


def test_manual_release_requires_secret(env):
    resp = _release(env, secret="wrong")
    assert resp.status_code == 401
    env.chain.release_bounty.assert_not_called()


def test_manual_release_rejected_when_secret_unset(env):
    env.services.settings = Settings(maintainer_secret="")
    resp = _release(env, secret="")
    assert resp.status_code == 401
    env.chain.release_bounty.assert_not_called()


def test_manual_release_validates_fields(env):
    assert env.client.post("/api/bounty/release", json={"repo": "acme/widgets"}).status_code == 400
    assert _release(env, prNumber="forty-two").status_code == 400
    assert _release(env, amount="1.2.3").status_code == 400
    assert _release(env, repo="widgets").status_code == 400
    env.chain.release_bounty.assert_not_called()


def test_manual_release_failure_returns_500(env):
    env.chain.release_bounty.side_effect = DependencyUnavailable("chain", "down")
    resp = _release(env)
    assert resp.status_code == 500
    assert resp.get_json()["success"] is False
    assert env.ledger.list()[0].success is False


def test_manual_release_blocked_while_paused(env):
    env.services.settings = Settings(maintainer_secret=MAINTAINER_SECRET, pause_payouts=True)
    resp = _release(env)
    assert resp.status_code == 503
    env.chain.release_bounty.assert_not_called()


# =============================================================================
# REPO REGISTRATION
# =============================================================================

def test_register_repo(env):
    env.chain.register_repo.return_value = "RegTx"
    resp = env.client.post("/api/repo/register", json={"repo": "acme/widgets", "maintainerNearId": "m.testnet"},
                           headers={"x-agent-secret": MAINTAINER_SECRET})
    assert resp.status_code == 200
    assert resp.get_json()["success"] is True
    env.chain.register_repo.assert_called_once_with("acme/widgets", "m.testnet")


def test_register_repo_accepts_wallet_alias(env):
    env.client.post("/api/repo/register", json={"repo": "acme/widgets", "maintainerWallet": "w.testnet"},
                    headers={"x-agent-secret": MAINTAINER_SECRET})
    env.chain.register_repo.assert_called_once_with("acme/widgets", "w.testnet")


def test_register_repo_errors(env):
    resp = env.client.post("/api/repo/register", json={"repo": "acme/widgets", "maintainerNearId": "m.testnet"})
    assert resp.status_code == 401

    resp = env.client.post("/api/repo/register", json={"repo": "acme/widgets"},
                           headers={"x-agent-secret": MAINTAINER_SECRET})
    assert resp.status_code == 400

    env.chain.register_repo.side_effect = DependencyUnavailable("chain", "register_repo failed on-chain")
    resp = env.client.post("/api/repo/register", json={"repo": "acme/widgets", "maintainerNearId": "m.testnet"},
                           headers={"x-agent-secret": MAINTAINER_SECRET})
    assert resp.status_code == 500
    assert resp.get_json() == {"success": False, "error": "register_repo failed on-chain"}

# =============================================================================
# CRITERIA
# =============================================================================

def test_criteria_round_trip(env):
    resp = env.client.post("/api/criteria", json={"repo": "Acme/Widgets", "criteria": "Tests required.",
                                                  "secret": MAINTAINER_SECRET})
    assert resp.status_code == 200

    data = env.client.get("/api/criteria?repo=acme/widgets").get_json()
    assert data == {"repo": "acme/widgets", "criteria": "Tests required."}


def test_criteria_unknown_repo_is_null(env):
    assert env.client.get("/api/criteria?repo=acme/none").get_json()["criteria"] is None


def test_criteria_errors(env):
    assert env.client.get("/api/criteria").status_code == 400
    assert env.client.post("/api/criteria", json={"repo": "acme/widgets"}).status_code == 400
    resp = env.client.post("/api/criteria", json={"repo": "acme/widgets", "criteria": "x", "secret": "nope"})
    assert resp.status_code == 401
    assert env.services.criteria.get("acme/widgets") is None
