import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from deployer import config
from deployer.artifacts import configure_logging, write_deployment_record
from deployer.errors import DeployError, ErrorKind
from deployer.executor import deployment_record
from deployer.models import DeployOptions, InstantiationRequest
from deployer.network_config import NetworkConfig, available_networks, load_network_config
from deployer.pipeline import run_deployment
from infra.chain import SubstrateChainClient
from infra.rpc import TokenMetadataService

log = logging.getLogger("deploy")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Deploy an ink! smart contract to a Substrate node")
    parser.add_argument("-p", "--path", type=Path, default=None, help="path to the contract build folder")
    parser.add_argument("--constructor", default=config.DEFAULT_CONSTRUCTOR, help="name of the constructor to call")
    parser.add_argument("--args", nargs="*", default=[], help="constructor arguments, encoded as strings")
    parser.add_argument(
        "--value",
        default=config.DEFAULT_VALUE,
        help="initial balance to transfer, e.g. 1000000 or 1.5mUNIT",
    )
    parser.add_argument(
        "--gas",
        dest="gas_limit",
        type=int,
        default=None,
        help="maximum gas (ref_time); omit together with --proof-size to estimate with a dry run",
    )
    parser.add_argument(
        "--proof-size",
        type=int,
        default=None,
        help="maximum proof size; omit together with --gas to estimate with a dry run",
    )
    parser.add_argument("--salt", default=None, help="hex salt for the contract address derivation")
    parser.add_argument("--url", default=None, help=f"websocket endpoint of a node (default {config.DEFAULT_URL})")
    parser.add_argument(
        "-s",
        "--suri",
        default=os.getenv("INK_DEPLOY_SURI", ""),
        help="secret key URI of the deploying account, e.g. //Alice or //Alice///SECRET_PASSWORD",
    )
    parser.add_argument("--network", default=config.DEFAULT_NETWORK, help="named network preset (configs/networks)")
    parser.add_argument("--storage-deposit-limit", type=int, default=None, help="maximum storage deposit")
    parser.add_argument("--dry-run", action="store_true", help="estimate only, do not submit anything")
    parser.add_argument("--out", type=Path, default=None, help="write a JSON deployment record here")
    parser.add_argument(
        "--timeout",
        type=float,
        default=config.SUBMIT_TIMEOUT_S,
        help="seconds to wait for the extrinsic to be included",
    )
    parser.add_argument("--log-dir", type=Path, default=None, help="also log to <dir>/deploy.log")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def _network(name: Optional[str]) -> Optional[NetworkConfig]:
    if not name:
        return None
    network = load_network_config(name)
    if network is None:
        known = ", ".join(available_networks()) or "none"
        raise DeployError(ErrorKind.INVALID_ARGUMENTS, f"unknown network {name!r} (available: {known})")
    return network


def _chain_factory(network: Optional[NetworkConfig]):
    def _factory(request: InstantiationRequest) -> SubstrateChainClient:
        return SubstrateChainClient(
            request.url,
            ss58_format=request.ss58_format,
            type_registry_preset=network.type_registry_preset if network else None,
        )

    return _factory


def _emit(out_path: Optional[Path], record: Dict[str, Any]) -> None:
    if out_path is None:
        return
    try:
        write_deployment_record(out_path, record)
    except OSError as exc:
        log.warning("Cannot write deployment record to %s: %s", out_path, exc)
        return
    log.info("Deployment record written to %s", out_path)


def main(argv: Optional[Sequence[str]] = None, *, token_metadata: Any = None, chain_factory: Any = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_dir, verbose=args.verbose)

    try:
        suri = str(args.suri or "").strip()
        if not suri:
            raise DeployError(ErrorKind.INVALID_ARGUMENTS, "missing --suri (or INK_DEPLOY_SURI)")
        network = _network(args.network)
        url = args.url or (network.url if network else config.DEFAULT_URL)

        options = DeployOptions(
            suri=suri,
            path=args.path,
            constructor=args.constructor,
            args=tuple(args.args or ()),
            value=args.value,
            gas_limit=args.gas_limit,
            proof_size=args.proof_size,
            salt=args.salt,
            url=url,
            storage_deposit_limit=args.storage_deposit_limit,
        )

        log.info("Deploy a smart contract to %s", url)
        deployment = asyncio.run(
            run_deployment(
                options,
                token_metadata=token_metadata or TokenMetadataService(),
                chain_factory=chain_factory or _chain_factory(network),
                dry_run=bool(args.dry_run),
                submit_timeout_s=args.timeout,
            )
        )
    except DeployError as exc:
        log.error("Deployment failed: %s", exc)
        if exc.deployment is not None:
            _emit(args.out, deployment_record(exc.deployment))
        print(json.dumps({"ok": False, "error": exc.kind.value, "message": str(exc)}), file=sys.stderr)
        return exc.exit_code

    record = deployment_record(deployment)
    print(json.dumps(record, indent=2))
    if args.dry_run:
        log.info("Dry run complete, nothing was submitted")
    else:
        log.info("Deployment complete")
    _emit(args.out, record)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
