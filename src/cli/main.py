"""CLI entry point for the escrow client."""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import tomllib
from pathlib import Path
from typing import Any, Callable

import yaml

from engine.offer_book import OfferBook, fetch_offer, require_offer
from engine.orchestrator import TradeOrchestrator, TradePlan
from engine.rpc_client_factory import build_rpc_client
from escrow_client.errors import EscrowError
from escrow_client.pubkey import Pubkey
from escrow_client.rpc import RpcError
from utils.config_validator import ConfigValidationError, validate_config
from utils.credentials import store_rpc_api_key
from utils.logging_config import LogContext, setup_logging

LOGGER = logging.getLogger("escrow_client.cli")

SUPPORTED_FORMATS = (".json", ".toml", ".yaml", ".yml")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Escrow offer client")
    parser.add_argument("--version", action="version", version="escrow-client 0.1.0")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config", help="Path to JSON/TOML/YAML config file (defaults to devnet)."
    )
    common.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    )
    common.add_argument(
        "--log-json", action="store_true", help="Emit structured JSON logs."
    )
    common.add_argument("--log-file", help="Also write logs to this file.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser(
        "list-offers", parents=[common], help="List all open offers."
    )
    list_parser.add_argument("--maker", help="Only show offers from this maker.")
    list_parser.set_defaults(handler=run_list_offers)

    show_parser = subparsers.add_parser(
        "show-offer", parents=[common], help="Show a single offer."
    )
    show_parser.add_argument("--offer-id", type=int, required=True)
    show_parser.set_defaults(handler=run_show_offer)

    make_parser = subparsers.add_parser(
        "make-offer", parents=[common], help="Plan a new offer (token A for token B)."
    )
    make_parser.add_argument("--maker", required=True, help="Maker wallet address.")
    make_parser.add_argument("--mint-a", required=True, help="Mint offered.")
    make_parser.add_argument("--mint-b", required=True, help="Mint wanted.")
    make_parser.add_argument("--offer-id", type=int, required=True)
    make_parser.add_argument("--amount-a", required=True, help="Amount of token A, e.g. 1.5")
    make_parser.add_argument("--amount-b", required=True, help="Amount of token B wanted.")
    make_parser.set_defaults(handler=run_make_offer)

    take_parser = subparsers.add_parser(
        "take-offer", parents=[common], help="Plan taking an existing offer."
    )
    take_parser.add_argument("--taker", required=True, help="Taker wallet address.")
    take_parser.add_argument("--offer-id", type=int, required=True)
    take_parser.set_defaults(handler=run_take_offer)

    refund_parser = subparsers.add_parser(
        "refund-offer", parents=[common], help="Plan refunding your own offer."
    )
    refund_parser.add_argument("--maker", required=True, help="Maker wallet address.")
    refund_parser.add_argument("--offer-id", type=int, required=True)
    refund_parser.set_defaults(handler=run_refund_offer)

    store_parser = subparsers.add_parser(
        "store-credentials",
        parents=[common],
        help="Store the RPC api key in the OS keychain.",
    )
    store_parser.set_defaults(handler=run_store_credentials)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if hasattr(args, "handler"):
        return args.handler(args)
    parser.print_help()
    return 1


def _run(args: argparse.Namespace, action: Callable[[dict[str, Any]], Any]) -> int:
    configure_logging(args.log_level, structured=args.log_json, log_file=args.log_file)
    with LogContext(command=args.command):
        try:
            config = load_config(Path(args.config).expanduser()) if args.config else {}
            validate_config(config)
            output = action(config)
        except ConfigValidationError as exc:
            LOGGER.error("Configuration validation failed: %s", exc)
            return 2
        except (EscrowError, RpcError, FileNotFoundError, RuntimeError, ValueError) as exc:
            LOGGER.error(str(exc))
            return 2
        except Exception as exc:  # pragma: no cover - safeguard for unexpected issues.
            LOGGER.exception("Unexpected error: %s", exc)
            return 3
    if output is not None:
        print(json.dumps(output, indent=2))
    return 0


def _orchestrator(config: dict[str, Any]) -> TradeOrchestrator:
    return TradeOrchestrator(
        build_rpc_client(config),
        use_token_extensions=bool(config.get("use_token_extensions", False)),
    )


def _plan_output(plan: TradePlan) -> dict[str, Any]:
    LOGGER.info(
        "Planned %s for offer %s with %d setup step(s)",
        plan.kind.value,
        plan.offer_id,
        plan.setup_count,
    )
    return plan.to_payload()


def run_list_offers(args: argparse.Namespace) -> int:
    def action(config: dict[str, Any]) -> dict[str, Any]:
        book = OfferBook(build_rpc_client(config))
        result = book.refresh(force=True)
        offers = (
            book.filter_by_maker(Pubkey.from_string(args.maker))
            if args.maker
            else result.offers
        )
        return {
            "offers": [offer.to_payload() for offer in offers],
            "skipped": [
                {"address": str(item.address), "reason": item.reason}
                for item in result.skipped
            ],
        }

    return _run(args, action)


def run_show_offer(args: argparse.Namespace) -> int:
    def action(config: dict[str, Any]) -> dict[str, Any]:
        offer = fetch_offer(build_rpc_client(config), args.offer_id)
        return require_offer(offer, args.offer_id).to_payload()

    return _run(args, action)


def run_make_offer(args: argparse.Namespace) -> int:
    def action(config: dict[str, Any]) -> dict[str, Any]:
        plan = _orchestrator(config).plan_make_offer(
            Pubkey.from_string(args.maker),
            Pubkey.from_string(args.mint_a),
            Pubkey.from_string(args.mint_b),
            args.offer_id,
            args.amount_a,
            args.amount_b,
        )
        return _plan_output(plan)

    return _run(args, action)


def run_take_offer(args: argparse.Namespace) -> int:
    def action(config: dict[str, Any]) -> dict[str, Any]:
        plan = _orchestrator(config).plan_take_offer(
            Pubkey.from_string(args.taker), args.offer_id
        )
        return _plan_output(plan)

    return _run(args, action)


def run_refund_offer(args: argparse.Namespace) -> int:
    def action(config: dict[str, Any]) -> dict[str, Any]:
        plan = _orchestrator(config).plan_refund_offer(
            Pubkey.from_string(args.maker), args.offer_id
        )
        return _plan_output(plan)

    return _run(args, action)


def run_store_credentials(args: argparse.Namespace) -> int:
    def action(config: dict[str, Any]) -> None:
        api_key = getpass.getpass("RPC api key: ")
        store_rpc_api_key(api_key)
        LOGGER.info("Stored RPC api key in the OS keychain.")

    return _run(args, action)


def configure_logging(
    level: str, *, structured: bool = False, log_file: str | None = None
) -> None:
    """Configure logging with sanitization and proper formatting."""
    setup_logging(level=level, sanitize=True, structured=structured, log_file=log_file)


def load_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}. Ensure the path is correct and readable."
        )
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_FORMATS:
        supported = ", ".join(SUPPORTED_FORMATS)
        raise ValueError(
            f"Unsupported config format '{suffix}'. Supported formats: {supported}."
        )
    text = config_path.read_text(encoding="utf-8")
    try:
        if suffix == ".json":
            data = json.loads(text)
        elif suffix == ".toml":
            data = tomllib.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(
            f"Invalid JSON in config file {config_path}: {exc}. Validate the file format."
        ) from exc
    except (tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
        raise ValueError(f"Failed to parse config file {config_path}: {exc}.") from exc
    if not isinstance(data, dict):
        raise ValueError(
            f"Config file {config_path} must contain a JSON/TOML/YAML object mapping."
        )
    return data


if __name__ == "__main__":
    raise SystemExit(main())
