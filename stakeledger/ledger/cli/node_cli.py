import argparse
import os
import json
import logging
from uvicorn import Config, Server
from ...protocol.crypto.keys import generate_private_key, private_key_from_hex, public_key_from_private
from ...protocol.crypto.addresses import address_from_pubkey
from ...protocol.config.params import get_network, to_units
from ..core.node import LedgerNode, GENESIS_FILE
from ..rpc import api # import module to set globals

logger = logging.getLogger(__name__)

OWNER_KEY_FILE = "owner_key.hex"
DB_FILE = "ledger.db"


def load_owner_address(data_dir: str) -> str:
    key_path = os.path.join(data_dir, OWNER_KEY_FILE)
    if not os.path.exists(key_path):
        raise FileNotFoundError(f"No owner key at {key_path}. Run 'init' first.")
    with open(key_path, "r") as f:
        priv = private_key_from_hex(f.read())
    return address_from_pubkey(public_key_from_private(priv))


def cmd_init(args):
    """Initialize node: owner key, genesis allocation, data dir."""
    data_dir = args.datadir
    os.makedirs(data_dir, exist_ok=True)
    config = get_network(args.network)

    key_path = os.path.join(data_dir, OWNER_KEY_FILE)
    if not os.path.exists(key_path):
        if config.owner_priv_key:
            # Deterministic key for Devnet
            priv = private_key_from_hex(config.owner_priv_key)
            print("Using DETERMINISTIC Devnet owner key.")
        else:
            priv = generate_private_key()
        with open(key_path, "w") as f:
            f.write(priv.hex())
        os.chmod(key_path, 0o600)
    else:
        print(f"Key already exists at {key_path}")

    owner = load_owner_address(data_dir)
    print(f"Owner address: {owner}")

    genesis_path = os.path.join(data_dir, GENESIS_FILE)
    if not os.path.exists(genesis_path):
        alloc = {}
        for entry in args.alloc or []:
            address, _, amount = entry.partition("=")
            if not amount:
                raise ValueError(f"Bad --alloc entry '{entry}' (expected ADDRESS=AMOUNT)")
            alloc[address] = str(to_units(amount))
        genesis = {
            "network": config.network_id,
            "owner": owner,
            "alloc": alloc,
            "reward_reserve": str(to_units(args.reward_reserve)),
        }
        with open(genesis_path, "w") as f:
            json.dump(genesis, f, indent=2)
        print(f"Wrote genesis with {len(alloc)} allocations to {genesis_path}")
    else:
        print(f"Genesis already exists at {genesis_path}")


def cmd_run(args):
    config = get_network(args.network)
    owner = load_owner_address(args.datadir)

    node = LedgerNode(owner=owner, config=config, db_path=os.path.join(args.datadir, DB_FILE))
    api.node = node
    logger.info(f"Token {node.token.symbol} at {node.token.address}, staking at {node.staking.address}")

    server = Server(Config(app=api.app, host=args.host, port=args.port, log_level="info"))
    try:
        server.run()
    except KeyboardInterrupt:
        pass
    finally:
        node.close()
        api.node = None


def main(argv=None):
    parser = argparse.ArgumentParser(description="StakeLedger Node CLI")
    parser.add_argument("--datadir", default="./.stakeledger", help="Data directory")
    parser.add_argument("--network", default=None, help="devnet | testnet | mainnet (default: $STAKELEDGER_NETWORK or devnet)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Initialize node configuration")
    init_parser.add_argument("--alloc", action="append", help="Genesis allocation ADDRESS=AMOUNT (repeatable)")
    init_parser.add_argument("--reward-reserve", default="0", help="Tokens pre-funded into the reward reserve")

    run_parser = subparsers.add_parser("run", help="Run the node")
    run_parser.add_argument("--host", default="0.0.0.0", help="RPC Host")
    run_parser.add_argument("--port", type=int, default=8000, help="RPC Port")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=os.environ.get("STAKELEDGER_LOG_LEVEL", "INFO"),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    if args.command == "init":
        cmd_init(args)
    elif args.command == "run":
        cmd_run(args)

if __name__ == "__main__":
    main()
