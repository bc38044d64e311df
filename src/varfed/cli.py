"""Command-line interface for varfed.

Runs federated variant queries from the terminal.

Usage:
    varfed query --position 19:100-200 --assembly GRCh38 --source cmh
    varfed query --position 19:100-200 --assembly hg19 --source stager --ensembl-id ENSG00000105976
    varfed query --position 19:100-200 --assembly GRCh38 --source cmh --format json
"""

import argparse
import asyncio
import json
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from varfed import __version__
from varfed.config import settings
from varfed.models import CombinedResult, GeneInput, QueryInput
from varfed.pipeline.orchestrator import Orchestrator
from varfed.sources import ADAPTERS

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=1)


def create_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser.

    Returns:
        Configured ArgumentParser with all commands and arguments.
    """
    parser = argparse.ArgumentParser(
        prog="varfed",
        description="varfed: federated variant query and annotation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  varfed query --position 19:100-200 --assembly GRCh38 --source cmh
  varfed query --position 19:100-200 --assembly hg19 --source cmh --source remote-test
  varfed query --position 19:100-200 --assembly GRCh38 --source cmh --format json
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # query command
    query_parser = subparsers.add_parser(
        "query",
        help="Query variant sources for a gene region",
        description="Query sources, lift coordinates and annotate the variants found",
    )
    query_parser.add_argument(
        "--position",
        type=str,
        required=True,
        help="Gene region as chromosome:start-end (e.g., 19:100-200)",
    )
    query_parser.add_argument(
        "--assembly",
        type=str,
        default="GRCh38",
        help="Requested assembly: GRCh37, GRCh38, hg19 or hg38 (default: GRCh38)",
    )
    query_parser.add_argument(
        "--source",
        dest="sources",
        action="append",
        required=True,
        help=f"Source to query, repeatable (known: {', '.join(sorted(ADAPTERS))})",
    )
    query_parser.add_argument("--gene-name", type=str, default=None, help="Gene symbol")
    query_parser.add_argument("--ensembl-id", type=str, default=None, help="Ensembl gene id")
    query_parser.add_argument(
        "--max-frequency",
        type=float,
        default=1.0,
        help="Maximum allele frequency passed to sources (default: 1.0)",
    )
    query_parser.add_argument(
        "--format",
        type=str,
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )

    # version command
    subparsers.add_parser(
        "version",
        help="Show version information",
    )

    return parser


def _run_async(coro):
    """Run an async coroutine from synchronous CLI context.

    Spins up a new event loop in a dedicated thread to avoid conflicts
    with any existing event loop.
    """
    def _target():
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(coro)
        finally:
            loop.close()

    future = _executor.submit(_target)
    return future.result()


async def _resolve(query_input: QueryInput) -> CombinedResult:
    # The orchestrator is built inside the loop that runs it
    orchestrator = Orchestrator()
    try:
        return await orchestrator.resolve(query_input)
    finally:
        await orchestrator.close()


def format_text(result: CombinedResult) -> str:
    """Human-readable summary of a combined result."""
    lines: list[str] = []
    for source_data in result.data:
        lines.append(f"{source_data.source}: {len(source_data.records)} record(s)")
        for record in source_data.records:
            variant = record.variant
            assembly = (variant.assembly_id_current or variant.assembly_id).value
            annotated = "annotated" if variant.info else "unannotated"
            lines.append(
                f"  {variant.chromosome}:{variant.start}-{variant.end} "
                f"{variant.ref}>{variant.alt} [{assembly}] "
                f"{record.individual.individual_id or '-'} ({annotated})"
            )
    for source_error in result.errors:
        lines.append(
            f"ERROR {source_error.source}: [{source_error.error.code}] {source_error.error.message}"
        )
    if not lines:
        lines.append("No results.")
    return "\n".join(lines)


def cmd_query(args: argparse.Namespace) -> int:
    """Execute the query command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        query_input = QueryInput(
            gene=GeneInput(
                position=args.position,
                gene_name=args.gene_name,
                ensembl_id=args.ensembl_id,
            ),
            assembly_id=args.assembly,
            sources=tuple(args.sources),
            max_frequency=args.max_frequency,
        )
        # Fail fast on a malformed position
        query_input.gene.region

        logger.info(
            "Querying %s for %s (%s)",
            ", ".join(query_input.sources), args.position, query_input.assembly_id.value,
        )
        result = _run_async(_resolve(query_input))

        if args.format == "json":
            print(json.dumps(result.to_dict(), indent=2))
        else:
            print(format_text(result))

        return 0

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except Exception as e:
        logger.error("Query failed: %s", e, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_version(args: argparse.Namespace) -> int:
    """Execute the version command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    print(f"varfed v{__version__}")
    print("Federated variant query and annotation")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    parser = create_parser()
    args = parser.parse_args(argv)

    # Route to command handler
    if args.command == "query":
        return cmd_query(args)
    elif args.command == "version":
        return cmd_version(args)
    else:
        # No command specified
        parser.print_help()
        return 0


def cli_entry() -> None:
    """Console script entry point for setuptools."""
    sys.exit(main())


if __name__ == "__main__":
    cli_entry()
