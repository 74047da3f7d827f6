"""Command line interface: catalog health, norm resolution, IMEX encoding and validation."""

import argparse
import json
import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv
from tabulate import tabulate

from .catalog_store import CatalogStore, NormPackCache
from .config_loader import load_norm_pack
from .errors import ValveSpecError
from .logic.calculators import DEFAULT_BETA, DEFAULT_MTTR, DEFAULT_TEST_INTERVAL, calculate_sil
from .logic.health import check_system_health
from .logic.imex_code import build_imex_code
from .logic.norm_resolver import NormResolver
from .logic.publication import PublicationValidator
from .logic.state import ValveConfiguration

logger = logging.getLogger(__name__)


def _load_configuration(path: str) -> ValveConfiguration:
    with open(path, 'r', encoding='utf-8') as f:
        return ValveConfiguration.from_dict(json.load(f))


def cmd_health(store: CatalogStore, args) -> int:
    health = check_system_health(store)
    rows = [
        ["Status", health.status.value],
        ["Pack version", health.pack_version or "-"],
        ["Active catalog versions", health.active_catalog_count],
        ["Standards", health.norm_count],
        ["Norm coverage", f"{health.norm_coverage_percent:.1f}%"],
        ["Domain coverage", f"{health.domain_coverage_percent:.1f}%"],
    ]
    print(tabulate(rows, tablefmt="grid"))
    for issue in health.issues:
        print(f"  - {issue}")
    return 0 if health.is_healthy else 1


def cmd_resolve(store: CatalogStore, args) -> int:
    result = NormResolver(store).resolve(args.valve_type.upper(), args.service_type.upper())
    if not result.is_valid:
        print(f"No construction standard for {args.valve_type}+{args.service_type}")
        if result.error:
            print(f"  {result.error}")
        return 1

    rows = [[c["code"], c["title"], "primary" if c["code"] == result.primary_standard else "informational"]
            for c in result.construction_standards]
    print(tabulate(rows, headers=["Standard", "Title", "Role"], tablefmt="grid"))
    print(f"Applicable: {', '.join(result.applicable_standards)}")

    rows = [[role, ", ".join(m.code for m in materials) or "-"] for role, materials in result.materials_by_role.items()]
    print(tabulate(rows, headers=["Role", "Materials"], tablefmt="grid"))
    return 0


def cmd_encode(store: CatalogStore, args) -> int:
    config = _load_configuration(args.file)
    result = build_imex_code(config, store.pack)
    print(result.value)
    rows = [[s.label, s.value, s.source or "-", s.confidence.value] for s in result.segments]
    print(tabulate(rows, headers=["Segment", "Code", "Source", "Confidence"], tablefmt="grid"))
    if result.missing:
        print(f"Missing: {', '.join(result.missing)}")
    return 0


def cmd_validate(store: CatalogStore, args) -> int:
    config = _load_configuration(args.file)
    sil_result = None
    if args.lambda_du is not None and config.sil_required:
        sil_result = calculate_sil(args.lambda_du, args.test_interval, args.mttr, args.beta, config.sil_certification)

    result = PublicationValidator(store).validate(config, sil_result)
    rows = [[c.id, c.rule, c.status.value, c.message] for c in result.checks]
    print(tabulate(rows, headers=["Check", "Rule", "Status", "Message"], tablefmt="grid"))
    print(f"Coverage: {result.coverage_percent:.0f}%")
    if result.can_publish:
        print("Publishable")
        return 0
    print(f"Blocked by: {', '.join(result.blocked_by)}")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="valvespec", description="Fail-closed valve specification engine")
    parser.add_argument("--pack", type=str, default=None,
                        help="Path to a norm pack config.yaml (default: NORM_PACK_PATH or NORM_PACK_ID)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("health", help="Check rule catalog health")

    resolve = subparsers.add_parser("resolve", help="Resolve norms for a valve and service type")
    resolve.add_argument("valve_type", help="e.g. ESFERA")
    resolve.add_argument("service_type", help="e.g. PIPELINE")

    encode = subparsers.add_parser("encode", help="Build the IMEX code for a configuration JSON file")
    encode.add_argument("file")

    validate = subparsers.add_parser("validate", help="Run the publication checks on a configuration JSON file")
    validate.add_argument("file")
    validate.add_argument("--lambda-du", type=float, default=None,
                          help="Dangerous undetected failure rate; enables the SIL calculation")
    validate.add_argument("--test-interval", type=float, default=DEFAULT_TEST_INTERVAL)
    validate.add_argument("--mttr", type=float, default=DEFAULT_MTTR)
    validate.add_argument("--beta", type=float, default=DEFAULT_BETA)

    return parser


COMMANDS = {
    "health": cmd_health,
    "resolve": cmd_resolve,
    "encode": cmd_encode,
    "validate": cmd_validate,
}


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "WARNING").upper())

    args = build_parser().parse_args(argv)
    pack_path = args.pack
    cache = NormPackCache(lambda: load_norm_pack(config_path=pack_path))
    store = CatalogStore(cache)

    try:
        return COMMANDS[args.command](store, args)
    except (OSError, ValueError, ValveSpecError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
