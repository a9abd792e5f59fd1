"""
Command-line entry point.

    python -m query_service [--uri URI] [--database DB] [--collection NAME]
                            [--operations FILE] [--json]

Runs the operations in FILE (a JSON array of descriptors), or the bookstore
catalog when no file is given, and prints the report.

Exit codes: 0 all operations succeeded, 1 at least one failed,
2 the store was unreachable, 3 the operations file was invalid.
"""

import argparse
import json
import sys
from typing import List, Optional

from pydantic import ValidationError

from query_service import config
from query_service.catalog import bookstore_sections
from query_service.descriptors import load_operations
from query_service.errors import StoreConnectionError
from query_service.logger import logger
from query_service.response_formatter import format_report, render_text
from query_service.runner import run_against

EXIT_OK = 0
EXIT_OPERATION_FAILED = 1
EXIT_CONNECTION_FAILED = 2
EXIT_INVALID_OPERATIONS = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="query_service",
        description="Run a list of MongoDB operations and report each outcome.",
    )
    parser.add_argument("--uri", default=config.MONGO_URI, help="MongoDB connection string")
    parser.add_argument("--database", default=config.DATABASE_NAME, help="database name")
    parser.add_argument("--collection", default=config.COLLECTION_NAME, help="collection name")
    parser.add_argument(
        "--operations",
        metavar="FILE",
        help="JSON file with an array of operation descriptors (default: bookstore catalog)",
    )
    parser.add_argument("--json", action="store_true", help="print the report as JSON")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    sections = None
    try:
        if args.operations:
            descriptors = load_operations(args.operations)
        else:
            catalog = bookstore_sections()
            sections = [(heading, len(ops)) for heading, ops in catalog]
            descriptors = [op for _, ops in catalog for op in ops]
    except (OSError, ValueError, ValidationError) as e:
        logger.error("Could not load operations: %s", e)
        return EXIT_INVALID_OPERATIONS

    try:
        report = run_against(args.uri, args.database, args.collection, descriptors)
    except StoreConnectionError as e:
        logger.error("Store unreachable: %s", e)
        return EXIT_CONNECTION_FAILED

    if args.json:
        print(json.dumps(format_report(report), indent=2))
    else:
        print(render_text(report, sections))

    return EXIT_OK if report.ok else EXIT_OPERATION_FAILED


if __name__ == "__main__":
    sys.exit(main())
