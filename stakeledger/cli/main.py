# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import sys
import json
import requests
import os
from typing import Dict, Any
from .keystore import KeyStore, KEYSTORE_DIR
from ..protocol.types.common import CallType
from ..protocol.types.tx import SignedCall
from ..protocol.config.params import to_units, from_units

DEFAULT_NODE = "http://localhost:8000"
TIMEOUT = 10

def get_node_url(args):
    return args.node or os.environ.get("STAKELEDGER_NODE", DEFAULT_NODE)

def get_keystore(args) -> KeyStore:
    return KeyStore(args.keys_dir or KEYSTORE_DIR)

def fail(message: str):
    print(f"Error: {message}")
    sys.exit(1)

def get_json(url: str) -> Dict[str, Any]:
    try:
        resp = requests.get(url, timeout=TIMEOUT)
    except requests.RequestException as e:
        fail(f"Connection error: {e}")
    if resp.status_code != 200:
        fail(resp.text)
    return resp.json()

# --- Keys Commands ---
def cmd_keys_add(args):
    ks = get_keystore(args)
    try:
        key = ks.create_key(args.name)
    except ValueError as e:
        fail(str(e))
    print(f"Key '{args.name}' created.")
    print(f"Address: {key['address']}")
    print(f"Pubkey:  {key['public_key']}")
    print("Important: Private key saved unencrypted. Do not share!")

def cmd_keys_import(args):
    ks = get_keystore(args)
    try:
        key = ks.import_key(args.name, args.private_key)
    except ValueError as e:
        fail(str(e))
    print(f"Key '{args.name}' imported.")
    print(f"Address: {key['address']}")

def cmd_keys_list(args):
    keys = get_keystore(args).list_keys()
    if not keys:
        print("No keys found.")
        return

    print(f"{'Name':<15} {'Address':<45}")
    print("-" * 60)
    for k in keys:
        print(f"{k['name']:<15} {k['address']:<45}")

def cmd_keys_show(args):
    key = get_keystore(args).get_key(args.name)
    if not key:
        fail(f"Key '{args.name}' not found.")
    print(json.dumps({k: v for k, v in key.items() if k != 'private_key'}, indent=2))

# --- Query Commands ---
def cmd_query_status(args):
    print(json.dumps(get_json(f"{get_node_url(args)}/status"), indent=2))

def cmd_query_balance(args):
    data = get_json(f"{get_node_url(args)}/balance/{args.address}")
    print(f"Balance: {from_units(int(data['balance']))}")
    print(f"Nonce: {data['nonce']}")

def cmd_query_allowance(args):
    url = get_node_url(args)
    spender = resolve_address(url, args.spender)
    data = get_json(f"{url}/allowance/{args.owner}/{spender}")
    print(f"Allowance: {from_units(int(data['allowance']))}")

def cmd_query_stake(args):
    data = get_json(f"{get_node_url(args)}/stake/{args.address}")
    if not data['amount']:
        print(f"{args.address} is not staking.")
        return
    print(f"Staked:     {from_units(data['amount'])}")
    print(f"Since:      {data['since']}")
    print(f"Unlocks at: {data['unlocks_at']}")
    print(f"Reward:     {from_units(data['accrued_reward'])}")

def cmd_query_reward(args):
    data = get_json(f"{get_node_url(args)}/reward/{args.address}")
    print(f"Accrued reward: {from_units(int(data['reward']))}")

def cmd_query_events(args):
    url = f"{get_node_url(args)}/events?since={args.since}&limit={args.limit}"
    if args.name:
        url += f"&name={args.name}"
    for ev in get_json(url)['events']:
        print(f"#{ev['index']:<6} {ev['timestamp']:<12} {ev['name']:<22} {json.dumps(ev['args'])}")

def cmd_query_receipt(args):
    print(json.dumps(get_json(f"{get_node_url(args)}/receipt/{args.call_id}"), indent=2))

# --- Tx Commands ---
def resolve_address(url: str, name: str) -> str:
    """Maps the 'staking' / 'token' aliases to contract addresses."""
    if name in ("staking", "token"):
        return get_json(f"{url}/status")[name]['address']
    return name

def send_call(args, call_type: CallType, call_args: Dict[str, Any]):
    ks = get_keystore(args)
    sender_key = ks.get_key(args.from_name)
    if not sender_key:
        fail(f"Key '{args.from_name}' not found.")

    url = get_node_url(args)
    from_addr = sender_key['address']
    nonce = get_json(f"{url}/balance/{from_addr}")['nonce']

    call = SignedCall(
        call_type=call_type,
        from_address=from_addr,
        nonce=nonce,
        args=call_args,
        pub_key=sender_key['public_key'],
    )
    call.sign(bytes.fromhex(sender_key['private_key']))

    try:
        resp = requests.post(f"{url}/tx/send", json=call.model_dump(mode="json"), timeout=TIMEOUT)
    except requests.RequestException as e:
        fail(f"Connection error: {e}")

    if resp.status_code != 200:
        detail = resp.json().get('detail', resp.text)
        if isinstance(detail, dict):
            fail(f"{detail.get('error')}: {detail.get('message')}")
        fail(str(detail))

    res = resp.json()
    print(f"Success! CallId: {res['call_id']}")
    return res

def cmd_tx_transfer(args):
    url = get_node_url(args)
    to = resolve_address(url, args.to_address)
    print(f"Transferring {args.amount} to {to}...")
    send_call(args, CallType.TRANSFER, {"to": to, "amount": to_units(args.amount)})

def cmd_tx_approve(args):
    url = get_node_url(args)
    spender = resolve_address(url, args.spender)
    print(f"Approving {spender} for {args.amount}...")
    send_call(args, CallType.APPROVE, {"spender": spender, "amount": to_units(args.amount)})

def cmd_tx_stake(args):
    print(f"Staking {args.amount}...")
    res = send_call(args, CallType.STAKE, {"amount": to_units(args.amount)})
    print(f"Total staked: {from_units(int(res['result']))}")

def cmd_tx_unstake(args):
    print("Unstaking...")
    res = send_call(args, CallType.UNSTAKE, {})
    principal, reward = res['result']
    print(f"Principal: {from_units(int(principal))}  Reward: {from_units(int(reward))}")

def cmd_tx_fund_rewards(args):
    print(f"Funding reward reserve with {args.amount}...")
    res = send_call(args, CallType.FUND_REWARDS, {"amount": to_units(args.amount)})
    print(f"Reward reserve: {from_units(int(res['result']))}")

def cmd_tx_transfer_ownership(args):
    print(f"Transferring staking ownership to {args.new_owner}...")
    send_call(args, CallType.TRANSFER_OWNERSHIP, {"new_owner": args.new_owner})

# --- Time Commands (devnet) ---
def cmd_time_advance(args):
    url = get_node_url(args)
    try:
        resp = requests.post(f"{url}/time/advance", json={"seconds": args.seconds}, timeout=TIMEOUT)
    except requests.RequestException as e:
        fail(f"Connection error: {e}")
    if resp.status_code != 200:
        fail(resp.text)
    print(f"Node time: {resp.json()['time']}")

COMMANDS = {
    ("keys", "add"): cmd_keys_add,
    ("keys", "import"): cmd_keys_import,
    ("keys", "list"): cmd_keys_list,
    ("keys", "show"): cmd_keys_show,
    ("query", "status"): cmd_query_status,
    ("query", "balance"): cmd_query_balance,
    ("query", "allowance"): cmd_query_allowance,
    ("query", "stake"): cmd_query_stake,
    ("query", "reward"): cmd_query_reward,
    ("query", "events"): cmd_query_events,
    ("query", "receipt"): cmd_query_receipt,
    ("tx", "transfer"): cmd_tx_transfer,
    ("tx", "approve"): cmd_tx_approve,
    ("tx", "stake"): cmd_tx_stake,
    ("tx", "unstake"): cmd_tx_unstake,
    ("tx", "fund-rewards"): cmd_tx_fund_rewards,
    ("tx", "transfer-ownership"): cmd_tx_transfer_ownership,
    ("time", "advance"): cmd_time_advance,
}

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stakeledger-cli", description="StakeLedger Client CLI")
    parser.add_argument("--node", help="Node URL (default: $STAKELEDGER_NODE or http://localhost:8000)")
    parser.add_argument("--keys-dir", help="Keystore directory (default: ~/.stakeledger/keys)")

    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    # keys
    p_keys = subparsers.add_parser("keys", help="Manage keys")
    sp_keys = p_keys.add_subparsers(dest="subcommand")

    pk_add = sp_keys.add_parser("add", help="Create new key")
    pk_add.add_argument("name", help="Key name")

    pk_imp = sp_keys.add_parser("import", help="Import private key")
    pk_imp.add_argument("name", help="Key name")
    pk_imp.add_argument("--private-key", required=True, help="Hex private key")

    sp_keys.add_parser("list", help="List keys")

    pk_show = sp_keys.add_parser("show", help="Show key details")
    pk_show.add_argument("name", help="Key name")

    # query
    p_query = subparsers.add_parser("query", help="Query ledger state")
    sp_query = p_query.add_subparsers(dest="subcommand")

    sp_query.add_parser("status", help="Node, token and staking summary")

    pq_bal = sp_query.add_parser("balance", help="Get token balance and nonce")
    pq_bal.add_argument("address", help="Account address")

    pq_allow = sp_query.add_parser("allowance", help="Get allowance")
    pq_allow.add_argument("owner", help="Owner address")
    pq_allow.add_argument("spender", help="Spender address, or 'staking'")

    pq_stake = sp_query.add_parser("stake", help="Get stake record")
    pq_stake.add_argument("address", help="Participant address")

    pq_reward = sp_query.add_parser("reward", help="Get accrued reward")
    pq_reward.add_argument("address", help="Participant address")

    pq_events = sp_query.add_parser("events", help="List committed events")
    pq_events.add_argument("--name", help="Event name filter (e.g. TokensStaked)")
    pq_events.add_argument("--since", type=int, default=0, help="First event index")
    pq_events.add_argument("--limit", type=int, default=100, help="Max events")

    pq_receipt = sp_query.add_parser("receipt", help="Get call receipt")
    pq_receipt.add_argument("call_id", help="Call id")

    # tx
    p_tx = subparsers.add_parser("tx", help="Create and send signed calls")
    sp_tx = p_tx.add_subparsers(dest="subcommand")

    pt_transfer = sp_tx.add_parser("transfer", help="Send tokens")
    pt_transfer.add_argument("to_address", help="Recipient address")
    pt_transfer.add_argument("amount", help="Amount in tokens")
    pt_transfer.add_argument("--from", dest="from_name", required=True, help="Sender key name")

    pt_approve = sp_tx.add_parser("approve", help="Approve a spender")
    pt_approve.add_argument("spender", help="Spender address, or 'staking'")
    pt_approve.add_argument("amount", help="Amount in tokens")
    pt_approve.add_argument("--from", dest="from_name", required=True, help="Owner key name")

    pt_stake = sp_tx.add_parser("stake", help="Stake tokens (approve 'staking' first)")
    pt_stake.add_argument("amount", help="Amount to stake in tokens")
    pt_stake.add_argument("--from", dest="from_name", required=True, help="Participant key name")

    pt_unstake = sp_tx.add_parser("unstake", help="Withdraw whole stake plus reward")
    pt_unstake.add_argument("--from", dest="from_name", required=True, help="Participant key name")

    pt_fund = sp_tx.add_parser("fund-rewards", help="Owner: fund the reward reserve (approve 'staking' first)")
    pt_fund.add_argument("amount", help="Amount in tokens")
    pt_fund.add_argument("--from", dest="from_name", required=True, help="Owner key name")

    pt_own = sp_tx.add_parser("transfer-ownership", help="Owner: hand the staking contract to a new owner")
    pt_own.add_argument("new_owner", help="New owner address")
    pt_own.add_argument("--from", dest="from_name", required=True, help="Owner key name")

    # time
    p_time = subparsers.add_parser("time", help="Devnet clock control")
    sp_time = p_time.add_subparsers(dest="subcommand")
    pt_adv = sp_time.add_parser("advance", help="Advance the node clock")
    pt_adv.add_argument("seconds", type=int, help="Seconds to advance")

    return parser

def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    handler = COMMANDS.get((args.command, getattr(args, "subcommand", None)))
    if handler is None:
        parser.print_help()
        sys.exit(1)
    handler(args)

if __name__ == "__main__":
    main()
