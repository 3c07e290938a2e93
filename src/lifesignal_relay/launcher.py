"""Command-line interface for the LifeSignal relay."""

import argparse
import asyncio
import json
import signal
import sys
from typing import Dict, List, Optional

import uvicorn

from .bootstrap import build_relay, create_ledgers
from .config import RelayConfig, load_config
from .domain.errors import ConfigError, OwnerNotFoundError, RelayError
from .domain.models import normalize_address
from .utils.logging_config import get_logger, initialize_logging


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="lifesignal-relay",
        description="LifeSignal relay - keeps the registry and automation ledgers consistent",
    )
    parser.add_argument(
        "--log-level",
        help="Override RELAY_LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)",
    )
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the relay with the HTTP control surface (default)")
    serve.add_argument("--host", help="Override RELAY_HOST")
    serve.add_argument("--port", type=int, help="Override RELAY_PORT")
    serve.add_argument(
        "--no-start",
        action="store_true",
        help="Serve the control surface without starting the relay (use POST /start)",
    )

    subparsers.add_parser("run", help="Run the relay headless until SIGINT/SIGTERM")
    subparsers.add_parser("check", help="Verify both ledger connections and the relay authorization")

    inspect = subparsers.add_parser("inspect", help="Print the merged state of one owner")
    inspect.add_argument("address", help="Owner address (0x...)")

    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "serve"
        args.host = None
        args.port = None
        args.no_start = False
    return args


async def serve(config: RelayConfig, start_relay: bool = True) -> int:
    """Run the control surface and, unless disabled, the relay in the same loop."""
    from .main import create_app

    logger = get_logger('main')
    components = build_relay(config)
    if start_relay:
        try:
            await components.supervisor.start()
        except RelayError as e:
            logger.critical(f"Relay failed to start: {e}")
            await components.supervisor.close()
            return 1

    app = create_app(components)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=config.server.host,
            port=config.server.port,
            log_level=config.logging.level.lower(),
        )
    )
    logger.info(f"Control surface listening on http://{config.server.host}:{config.server.port}")
    try:
        await server.serve()
    finally:
        await components.supervisor.close()
    return 0


async def run_headless(config: RelayConfig) -> int:
    """Run the relay without HTTP until a termination signal arrives."""
    logger = get_logger('main')
    components = build_relay(config)
    try:
        await components.supervisor.start()
    except RelayError as e:
        logger.critical(f"Relay failed to start: {e}")
        await components.supervisor.close()
        return 1

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C raises KeyboardInterrupt instead
            pass

    logger.info("Relay running headless; press Ctrl+C to stop")
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutdown requested")
        await components.supervisor.close()
    return 0


async def check_connections(config: RelayConfig) -> int:
    """Print connection diagnostics for both ledgers. Returns 0 when all pass."""
    registry, automation = create_ledgers(config)
    results: Dict[str, Dict[str, object]] = {}
    ok = True

    try:
        for name, client in (("registry", registry), ("automation", automation)):
            entry: Dict[str, object] = {"signer": client.signer_address}
            try:
                entry["chain_id"] = await client.get_chain_id()
                entry["block_number"] = await client.get_block_number()
                entry["connected"] = True
            except RelayError as e:
                entry["connected"] = False
                entry["error"] = str(e)
                ok = False
            results[name] = entry

        try:
            relay_address = await automation.get_relay_address()
            authorized = normalize_address(relay_address) == normalize_address(automation.signer_address)
            results["automation"]["relay_address"] = relay_address
            results["automation"]["authorized"] = authorized
            ok = ok and authorized
        except RelayError as e:
            results["automation"]["authorized"] = False
            results["automation"]["error"] = str(e)
            ok = False
    finally:
        await registry.close()
        await automation.close()

    print(json.dumps(results, indent=2, default=str))
    return 0 if ok else 2


async def inspect_owner(config: RelayConfig, address: str) -> int:
    """Print the merged two-ledger view of one owner."""
    from .api.owners import load_owner_status

    try:
        owner = normalize_address(address)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2

    registry, automation = create_ledgers(config)
    try:
        view = await load_owner_status(owner, registry, automation)
    except OwnerNotFoundError as e:
        print(str(e), file=sys.stderr)
        return 3
    except RelayError as e:
        print(f"Ledger read failed: {e}", file=sys.stderr)
        return 2
    finally:
        await registry.close()
        await automation.close()

    print(view.model_dump_json(indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = load_config()
    except ConfigError as e:
        initialize_logging(level=args.log_level, log_to_file=False)
        get_logger('main').critical(f"Invalid configuration: {e}")
        return 1

    if args.log_level:
        config.logging.level = args.log_level.upper()
    if args.command == "serve":
        if args.host:
            config.server.host = args.host
        if args.port:
            config.server.port = args.port

    # Diagnostics print to stdout; only the long-running commands write log files
    long_running = args.command in ("serve", "run")
    initialize_logging(
        log_dir=config.logging.log_dir,
        level=config.logging.level,
        log_to_file=config.logging.log_to_file and long_running,
    )
    logger = get_logger('main')
    logger.info(f"Configuration: {json.dumps(config.to_dict(), default=str)}")

    try:
        if args.command == "serve":
            return asyncio.run(serve(config, start_relay=not args.no_start))
        if args.command == "run":
            return asyncio.run(run_headless(config))
        if args.command == "check":
            return asyncio.run(check_connections(config))
        return asyncio.run(inspect_owner(config, args.address))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except ConfigError as e:
        logger.critical(f"Invalid configuration: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
