# SPDX-License-Identifier: AGPL-3.0

import os
import sys
import traceback
from dataclasses import dataclass, field
from importlib import metadata

from .client import NodeClient
from .config import Config as CheckerConfig
from .config import (
    ConfigSource,
    arg_parser,
    default_config,
    resolve_config_files,
    toml_parser,
)
from .context import Account, RpcContext
from .contract import ContractInfo, load_contract
from .logs import debug, error, info, set_debug, warn
from .report import exitcode_for, report_results, write_json
from .result import RpcResult
from .runner import run_probes
from .ui import ui
from .utils import NamedTimer


def load_config(_args) -> CheckerConfig:
    config = default_config()

    # parse CLI args first, so that can get `--help` out of the way and resolve `--debug`
    # but don't apply the CLI overrides yet
    cli_overrides = arg_parser().parse_args(_args)

    # then for each config file, parse it and override the args
    config_files = resolve_config_files(_args)
    for config_file in config_files:
        if not os.path.exists(config_file):
            error(f"Config file not found: {config_file}")
            sys.exit(2)

        overrides = toml_parser().parse_file(config_file)
        config = config.with_overrides(ConfigSource.config_file, **overrides)

    # finally apply the CLI overrides
    config = config.with_overrides(ConfigSource.command_line, **vars(cli_overrides))

    if config.version:
        return config

    try:
        config.validate()
    except ValueError as err:
        error(f"Invalid configuration: {err}")
        sys.exit(2)

    return config


def load_contract_artifact(args: CheckerConfig) -> ContractInfo | None:
    if not args.contract:
        warn("No contract artifact configured, contract probes will fail (see --contract)")
        return None

    # raises OSError or ValueError, fatal for the run
    return load_contract(args.contract)


@dataclass(frozen=True)
class MainResult:
    exitcode: int
    results: list[RpcResult] = field(default_factory=list)


def _main(_args=None) -> MainResult:
    timer = NamedTimer("total")

    #
    # command line arguments
    #

    args = load_config(_args)

    if args.version:
        print(f"ethrpc-checker {metadata.version('ethrpc-checker')}")
        return MainResult(0)

    set_debug(args.debug)
    debug(f"Config:\n{args.formatted_layers()}")

    try:
        account = Account.from_key(args.rich_privkey)
    except (ValueError, TypeError) as err:
        error(f"Invalid rich_privkey: {type(err).__name__}")
        return MainResult(1)

    try:
        contract = load_contract_artifact(args)
    except (OSError, ValueError) as err:
        error(f"Could not load contract artifact {args.contract}: {err}")
        return MainResult(1)

    try:
        node = NodeClient.connect(args.rpc_endpoint, args.request_timeout)
    except Exception as err:
        error(f"Could not connect to {args.rpc_endpoint}: {type(err).__name__}: {err}")
        if args.debug:
            traceback.print_exc()
        return MainResult(1)

    ctx = RpcContext(
        node=node,
        account=account,
        timeout=args.timeout,
        filter_wait=args.filter_wait,
        contract=contract,
        storage_slot=args.storage_slot,
    )

    info(f"Checking {args.rpc_endpoint} with account {account.address}")

    #
    # run
    #

    on_probe = None
    if not args.no_status:
        ui.start_status()
        on_probe = ui.show_probe

    try:
        results = run_probes(ctx, on_probe=on_probe)
    finally:
        ui.stop_status()

    report_results(results, args.verbose)

    timer.stop()
    print(f"\n[time] {timer.report()}")

    result = MainResult(exitcode_for(results), results)

    if args.json_output:
        debug(f"Writing output to {args.json_output}")
        write_json(args.json_output, results)

    return result


# entrypoint for the `ethrpc-checker` script
def main() -> int:
    exitcode = _main().exitcode
    return exitcode


# entrypoint for `python -m ethrpc_checker`
if __name__ == "__main__":
    sys.exit(main())
