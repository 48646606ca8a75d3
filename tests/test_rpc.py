"""
End-to-end tests for the node RPC: signed calls over HTTP, devnet clock
control, queries, and error reporting.
"""
import pytest
from unittest.mock import Mock
from fastapi.testclient import TestClient

from stakeledger.ledger.core.clock import ManualClock, SystemClock
from stakeledger.ledger.core.node import LedgerNode
from stakeledger.ledger.rpc import api
from stakeledger.protocol.config.params import NetworkConfig
from stakeledger.protocol.crypto.keys import public_key_from_private
from stakeledger.protocol.crypto.addresses import address_from_pubkey
from stakeledger.protocol.types.common import CallType
from stakeledger.protocol.types.tx import SignedCall

from conftest import UNIT, MIN_STAKING_PERIOD, START_TIME, new_account


def make_config(**overrides) -> NetworkConfig:
    params = dict(
        network_id="devnet",
        initial_supply=1_000_000 * UNIT,
        min_staking_period=MIN_STAKING_PERIOD,
        manual_clock=True,
    )
    params.update(overrides)
    return NetworkConfig(**params)


@pytest.fixture
def rpc():
    owner_priv, _, owner = new_account()
    node = LedgerNode(owner=owner, config=make_config(), clock=ManualClock(START_TIME))
    api.node = node
    with TestClient(api.app) as client:
        yield client, node, owner_priv
    api.node = None


def send(client: TestClient, priv: bytes, call_type: CallType, args: dict, nonce: int = None):
    pub = public_key_from_private(priv)
    address = address_from_pubkey(pub)
    if nonce is None:
        nonce = client.get(f"/balance/{address}").json()["nonce"]

    call = SignedCall(call_type=call_type, from_address=address, nonce=nonce, args=args, pub_key=pub.hex())
    call.sign(priv)
    return client.post("/tx/send", json=call.model_dump(mode="json"))


def test_status(rpc):
    client, node, _ = rpc

    data = client.get("/status").json()

    assert data["network"] == "devnet"
    assert data["time"] == START_TIME
    assert data["token"]["address"] == node.token.address
    assert data["token"]["total_supply"] == str(1_000_000 * UNIT)
    assert data["staking"]["min_staking_period"] == MIN_STAKING_PERIOD
    assert data["staking"]["reward_rate_percent"] == 10
    assert data["staking"]["total_staked"] == "0"


def test_stake_and_unstake_over_rpc(rpc):
    client, node, owner_priv = rpc
    user_priv, _, user = new_account()
    staking = node.staking.address

    assert send(client, owner_priv, CallType.TRANSFER, {"to": user, "amount": 1000 * UNIT}).status_code == 200
    assert client.get(f"/balance/{user}").json()["balance"] == str(1000 * UNIT)

    assert send(client, user_priv, CallType.APPROVE, {"spender": staking, "amount": 100 * UNIT}).status_code == 200
    assert client.get(f"/allowance/{user}/{staking}").json()["allowance"] == str(100 * UNIT)

    resp = send(client, user_priv, CallType.STAKE, {"amount": 100 * UNIT})
    assert resp.status_code == 200
    assert resp.json()["status"] == "success"
    assert resp.json()["result"] == str(100 * UNIT)

    stake = client.get(f"/stake/{user}").json()
    assert stake["amount"] == 100 * UNIT
    assert stake["since"] == START_TIME
    assert stake["unlocks_at"] == START_TIME + MIN_STAKING_PERIOD

    early = send(client, user_priv, CallType.UNSTAKE, {})
    assert early.status_code == 400
    assert early.json()["detail"]["error"] == "StakingPeriodNotMet"
    receipt = client.get(f"/receipt/{early.json()['detail']['call_id']}").json()
    assert receipt["status"] == "reverted"

    assert client.post("/time/advance", json={"seconds": MIN_STAKING_PERIOD}).json()["time"] == START_TIME + MIN_STAKING_PERIOD
    assert client.get(f"/reward/{user}").json()["reward"] == str(10 * UNIT)

    resp = send(client, user_priv, CallType.UNSTAKE, {})
    assert resp.status_code == 200
    # Unfunded reserve pays no reward
    assert resp.json()["result"] == [str(100 * UNIT), "0"]
    assert client.get(f"/stake/{user}").json()["amount"] == 0

    events = client.get("/events", params={"name": "TokensUnstaked"}).json()["events"]
    assert len(events) == 1
    assert events[0]["args"] == {"participant": user, "principal": 100 * UNIT, "reward": 0}


def test_insufficient_balance_over_rpc(rpc):
    client, node, owner_priv = rpc
    user_priv, _, user = new_account()
    send(client, owner_priv, CallType.TRANSFER, {"to": user, "amount": 1000 * UNIT})
    send(client, user_priv, CallType.APPROVE, {"spender": node.staking.address, "amount": 2000 * UNIT})

    resp = send(client, user_priv, CallType.STAKE, {"amount": 2000 * UNIT})

    assert resp.status_code == 400
    assert resp.json()["detail"]["error"] == "InsufficientBalance"
    assert client.get(f"/stake/{user}").json()["amount"] == 0
    assert client.get(f"/balance/{user}").json()["balance"] == str(1000 * UNIT)


def test_unauthorized_fund_rewards(rpc):
    client, node, owner_priv = rpc
    user_priv, _, user = new_account()
    send(client, owner_priv, CallType.TRANSFER, {"to": user, "amount": 10 * UNIT})

    resp = send(client, user_priv, CallType.FUND_REWARDS, {"amount": UNIT})

    assert resp.status_code == 400
    assert resp.json()["detail"]["error"] == "Unauthorized"


def test_rejected_call_keeps_nonce(rpc):
    client, node, owner_priv = rpc
    owner = node.owner

    resp = send(client, owner_priv, CallType.TRANSFER, {"to": owner, "amount": 1}, nonce=7)

    assert resp.status_code == 400
    assert resp.json()["detail"]["error"] == "InvalidNonce"
    assert client.get(f"/balance/{owner}").json()["nonce"] == 0


def test_missing_receipt(rpc):
    client, _, _ = rpc
    assert client.get("/receipt/deadbeef").status_code == 404


def test_metrics_endpoint(rpc):
    client, _, _ = rpc

    resp = client.get("/metrics")

    assert resp.status_code == 200
    assert "stakeledger_total_staked" in resp.text
    assert "stakeledger_calls_total" in resp.text


def test_advance_time_needs_manual_clock():
    owner = new_account()[2]
    api.node = LedgerNode(owner=owner, config=make_config(manual_clock=False), clock=SystemClock())
    try:
        with TestClient(api.app) as client:
            assert client.post("/time/advance", json={"seconds": 10}).status_code == 400
    finally:
        api.node = None


def test_node_not_initialized():
    api.node = None
    with TestClient(api.app) as client:
        assert client.get("/status").status_code == 503


def test_wrong_argument_type_rejected_over_rpc(rpc):
    client, node, owner_priv = rpc

    resp = send(client, owner_priv, CallType.APPROVE, {"spender": ["x"], "amount": 1})

    assert resp.status_code == 400
    assert resp.json()["detail"]["error"] == "InvalidArguments"
    assert client.get(f"/balance/{node.owner}").json()["nonce"] == 0


def test_unexpected_contract_failure_is_reported_and_persisted(rpc, monkeypatch):
    client, node, owner_priv = rpc
    persist = Mock()
    monkeypatch.setattr(node, "persist", persist)

    def broken_move(*args):
        raise RuntimeError("ledger fault")

    monkeypatch.setattr(node.token, "_move", broken_move)
    recipient = new_account()[2]

    resp = send(client, owner_priv, CallType.TRANSFER, {"to": recipient, "amount": UNIT})

    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["error"] == "RuntimeError"
    assert client.get(f"/receipt/{detail['call_id']}").json()["status"] == "reverted"
    # The nonce was spent, and the spend was saved
    assert client.get(f"/balance/{node.owner}").json()["nonce"] == 1
    persist.assert_called_once()
    assert node.token.balance_of(recipient) == 0
