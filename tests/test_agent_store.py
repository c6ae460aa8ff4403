import json

from agent_store import CriteriaStore, PayoutAttempt, PayoutLedger


def _attempt(repo="acme/widgets", pr_number=1, success=True, tx_hash="Tx"):
    return PayoutAttempt(repo=repo, pr_number=pr_number, contributor_wallet="alice.testnet",
                         amount="5", success=success, tx_hash=tx_hash if success else None,
                         error=None if success else "failed")


def test_criteria_keys_are_case_insensitive():
    store = CriteriaStore()
    store.set("Acme/Widgets", "Must have tests.")
    assert store.get("acme/widgets") == "Must have tests."
    assert store.get("ACME/WIDGETS") == "Must have tests."
    assert store.get("acme/other") is None


def test_criteria_persist_to_data_dir(tmp_path):
    CriteriaStore(str(tmp_path)).set("acme/widgets", "Be kind.")
    assert CriteriaStore(str(tmp_path)).get("Acme/Widgets") == "Be kind."


def test_ledger_lists_newest_first_and_filters_by_repo():
    ledger = PayoutLedger()
    ledger.append(_attempt(pr_number=1))
    ledger.append(_attempt(repo="acme/gadgets", pr_number=2))
    ledger.append(_attempt(pr_number=3, success=False))

    assert [e.pr_number for e in ledger.list()] == [3, 2, 1]
    assert [e.pr_number for e in ledger.list("ACME/widgets")] == [3, 1]
    assert ledger.stats() == {"total": 3, "successful": 2, "failed": 1}


def test_find_success_skips_failures():
    ledger = PayoutLedger()
    ledger.append(_attempt(pr_number=9, success=False))
    assert ledger.find_success("acme/widgets", 9) is None

    ledger.append(_attempt(pr_number=9, tx_hash="TxOK"))
    assert ledger.find_success("Acme/Widgets", 9).tx_hash == "TxOK"
    assert ledger.find_success("acme/widgets", 10) is None


def test_ledger_persists_to_data_dir(tmp_path):
    PayoutLedger(str(tmp_path)).append(_attempt(pr_number=4, tx_hash="TxP"))

    reloaded = PayoutLedger(str(tmp_path))
    assert reloaded.find_success("acme/widgets", 4).tx_hash == "TxP"
    with open(tmp_path / "payouts.json") as f:
        assert json.load(f)["payouts"][0]["tx_hash"] == "TxP"


def test_attempt_api_shape():
    body = _attempt(pr_number=5, tx_hash="TxA").to_api()
    assert body["prNumber"] == 5
    assert body["contributorWallet"] == "alice.testnet"
    assert body["txHash"] == "TxA"
    assert body["success"] is True
    assert body["timestamp"]
