#!/usr/bin/env python3
"""
Pair Factory command line

Usage:
    # Run the REST API over a fresh demo ledger
    pairfactory serve --port 8080

    # Print the clone runtime for a set of parameters
    pairfactory fingerprint --template 0x... --factory 0x... --nft 0x... --duration 2592000

    # Address a factory's next pair will get
    pairfactory predict --factory 0x... --template 0x... --nft 0x... --duration 2592000 --nonce 0

    # Ask a running server whether an address is a pair
    pairfactory is-pair --url http://localhost:8080 --address 0x... --variant native
"""

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from typing import Dict

from . import fingerprint
from .config import FactoryConfig
from .contracts import ERC20Token, ERC721Collection, PairTemplate
from .deployer import CloneDeployer
from .exceptions import FactoryError
from .factory import PairFactory, build_args, pair_salt
from .ledger import Ledger
from .pair_types import ImmutableArgs, PairVariant
from .rpc_client import FactoryAPIError, FactoryClient

log = logging.getLogger("pairfactory")

DEMO_NFT_SUPPLY = 10
DEMO_TOKEN_SUPPLY = 10 ** 24
DEMO_NATIVE_BALANCE = 10 ** 21


@dataclass
class Deployment:
    ledger: Ledger
    factory: PairFactory
    accounts: Dict[str, str]

    def to_dict(self) -> dict:
        return {"factory": self.factory.address, **self.accounts}


def bootstrap(config: FactoryConfig) -> Deployment:
    """
    Deploy templates, a factory and demo collaborators on a new ledger.

    The owner account holds NFTs 0..DEMO_NFT_SUPPLY-1 and the demo token
    supply, both pre-approved for the factory.
    """
    ledger = Ledger(chain_id=config.chain_id)
    owner = ledger.create_account("owner", balance=DEMO_NATIVE_BALANCE)

    native_template = ledger.deploy(owner, PairTemplate(PairVariant.NATIVE))
    token_template = ledger.deploy(owner, PairTemplate(PairVariant.TOKEN))
    factory = PairFactory.deploy(ledger, owner, native_template, token_template,
                                 fee_recipient=owner, fee_multiplier=config.fee_multiplier)

    nft = ledger.deploy(owner, ERC721Collection("Demo Collection", "DEMO"))
    token = ledger.deploy(owner, ERC20Token("Demo Token", "DTK"))
    with ledger.transaction():
        for token_id in range(DEMO_NFT_SUPPLY):
            ledger.call(owner, nft, "mint", owner, token_id)
        ledger.call(owner, nft, "set_approval_for_all", factory.address, True)
        ledger.call(owner, token, "mint", owner, DEMO_TOKEN_SUPPLY)
        ledger.call(owner, token, "approve", factory.address, DEMO_TOKEN_SUPPLY)

    accounts = {
        "owner": owner,
        "native_template": native_template,
        "token_template": token_template,
        "nft": nft,
        "token": token,
    }
    return Deployment(ledger=ledger, factory=factory, accounts=accounts)


# =============================================================================
# COMMANDS
# =============================================================================

def cmd_serve(args, config: FactoryConfig) -> int:
    from .server import create_app

    deployment = bootstrap(config)
    log.info("=" * 60)
    log.info("Pair factory server starting...")
    for name, address in deployment.to_dict().items():
        log.info(f"  {name:16s} {address}")
    log.info(f"  fee multiplier   {config.fee_multiplier}")
    log.info("=" * 60)

    app = create_app(deployment.factory)
    app.run(host=config.http_host, port=config.http_port, debug=False)
    return 0


def cmd_fingerprint(args, config: FactoryConfig) -> int:
    try:
        immutables = ImmutableArgs(factory=args.factory, nft=args.nft,
                                   duration=args.duration, token=args.token)
        runtime = fingerprint.encode(args.template, immutables.pack())
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps({
        "variant": immutables.variant.value,
        "runtime": "0x" + runtime.hex(),
        "length": len(runtime),
        "fingerprint_hash": "0x" + fingerprint.fingerprint_hash(args.factory, args.template).hex()
    }, indent=2))
    return 0


def cmd_predict(args, config: FactoryConfig) -> int:
    try:
        immutables = build_args(args.factory, args.variant, args.nft, args.duration, args.token)
        runtime = fingerprint.encode(args.template, immutables.pack())
        pair = CloneDeployer.predict_address(args.factory, pair_salt(args.factory, args.nonce),
                                             fingerprint.creation_code(runtime))
    except (ValueError, FactoryError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps({"pair": pair, "variant": immutables.variant.value, "nonce": args.nonce}, indent=2))
    return 0


def cmd_is_pair(args, config: FactoryConfig) -> int:
    client = FactoryClient(args.url, timeout=args.timeout)
    try:
        if args.variant:
            result = {"address": args.address, "variant": args.variant,
                      "is_pair": client.is_pair(args.address, args.variant)}
        else:
            variant = client.pair_variant(args.address)
            result = {"address": args.address, "variant": variant, "is_pair": variant is not None}
    except FactoryAPIError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0 if result["is_pair"] else 2


# =============================================================================
# MAIN
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="NFT pair factory")
    parser.add_argument("--log-level", default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the REST API over a demo ledger")
    serve.add_argument("--host", default=None, help="Bind address")
    serve.add_argument("--port", type=int, default=None, help="HTTP port")
    serve.add_argument("--fee-multiplier", type=int, default=None,
                       help="Initial protocol fee, 1e18 scale")
    serve.set_defaults(func=cmd_serve)

    fp = sub.add_parser("fingerprint", help="Print clone bytecode for parameters")
    fp.add_argument("--template", required=True)
    fp.add_argument("--factory", required=True)
    fp.add_argument("--nft", required=True)
    fp.add_argument("--duration", type=int, required=True, help="Staking duration (seconds)")
    fp.add_argument("--token", default=None, help="Trading token (TOKEN variant)")
    fp.set_defaults(func=cmd_fingerprint)

    predict = sub.add_parser("predict", help="Address of a factory's nonce-th pair")
    predict.add_argument("--factory", required=True)
    predict.add_argument("--template", required=True, help="Template of the chosen variant")
    predict.add_argument("--variant", default="native", choices=["native", "token"])
    predict.add_argument("--nft", required=True)
    predict.add_argument("--duration", type=int, required=True)
    predict.add_argument("--token", default=None)
    predict.add_argument("--nonce", type=int, default=0, help="Pairs the factory created before")
    predict.set_defaults(func=cmd_predict)

    check = sub.add_parser("is-pair", help="Query a running server")
    check.add_argument("--url", default="http://localhost:8080")
    check.add_argument("--address", required=True)
    check.add_argument("--variant", default="", choices=["", "native", "token"])
    check.add_argument("--timeout", type=int, default=30)
    check.set_defaults(func=cmd_is_pair)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = FactoryConfig.from_env()
    if args.log_level:
        config.log_level = args.log_level
    if getattr(args, "host", None):
        config.http_host = args.host
    if getattr(args, "port", None):
        config.http_port = args.port
    if getattr(args, "fee_multiplier", None) is not None:
        config.fee_multiplier = args.fee_multiplier

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
