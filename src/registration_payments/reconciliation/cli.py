#!/usr/bin/env python3
"""Command-line interface for reconciliation tools.

Runs the Stripe / order-store reconciliation and per-user order
verification (for one user or the whole store) outside the HTTP service.

Usage:
    python -m registration_payments.reconciliation.cli reconcile
    python -m registration_payments.reconciliation.cli reconcile --email jane@example.com --format detailed_text
    python -m registration_payments.reconciliation.cli verify --user-id 6f1c...
    python -m registration_payments.reconciliation.cli bulk-verify -o verification.json
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from ..database import DatabaseManager
from ..verification import OrderVerificationService
from .models import ReconciliationRequest
from .service import ReconciliationService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ISSUES = 1
EXIT_FAILURE = 2


def _write_output(output: str, output_file: Optional[str]) -> None:
    if output_file:
        with open(output_file, "w") as f:
            f.write(output)
        logger.info(f"Report written to {output_file}")
    else:
        print(output)


async def run_reconciliation_async(
    email_filter: Optional[str] = None,
    output_file: Optional[str] = None,
    output_format: str = "json",
    include_details: bool = True,
) -> int:
    """Run reconciliation asynchronously.

    Args:
        email_filter: Optional customer email to restrict the run to.
        output_file: Optional output file path.
        output_format: Output format ('json', 'csv', 'text', 'detailed_text').
        include_details: Include per-user records in output.

    Returns:
        Exit code (0 clean, 1 discrepancies found, 2 failure).
    """
    db_manager = DatabaseManager()
    await db_manager.initialize()

    try:
        async with db_manager.session() as session:
            service = ReconciliationService(session)
            request = ReconciliationRequest(email_filter=email_filter)

            try:
                summary = await service.run_reconciliation(request)
            except Exception as e:
                logger.error(f"Reconciliation failed: {e}")
                return EXIT_FAILURE

            _write_output(
                service.generate_report(
                    summary=summary,
                    format=output_format,
                    include_details=include_details,
                ),
                output_file,
            )

            if summary.lookup_failures:
                logger.warning(
                    f"{len(summary.lookup_failures)} Stripe lookups failed; "
                    f"figures may be undercounted"
                )
            if summary.users_with_discrepancies > 0:
                logger.warning(
                    f"Reconciliation completed with issues: "
                    f"{summary.users_with_discrepancies} accounts with discrepancies"
                )
                return EXIT_ISSUES
            return EXIT_OK

    finally:
        await db_manager.shutdown()


async def run_verification_async(user_id: str, output_file: Optional[str] = None) -> int:
    """Verify the orders of one user and print the JSON result.

    Returns:
        Exit code (0 all orders match or are pending, 1 otherwise, 2 failure).
    """
    db_manager = DatabaseManager()
    await db_manager.initialize()

    try:
        async with db_manager.session() as session:
            service = OrderVerificationService(session)
            try:
                result = await service.verify_user_orders(user_id)
            except Exception as e:
                logger.error(f"Verification failed: {e}")
                return EXIT_FAILURE

            _write_output(result.model_dump_json(by_alias=True, indent=2), output_file)

            if result.mismatched_orders or result.error_orders or result.no_stripe_data_orders:
                return EXIT_ISSUES
            return EXIT_OK

    finally:
        await db_manager.shutdown()


async def run_bulk_verification_async(output_file: Optional[str] = None) -> int:
    """Verify every order in the store and print the JSON summary.

    Returns:
        Exit code (0 no user needs attention, 1 otherwise, 2 failure).
    """
    db_manager = DatabaseManager()
    await db_manager.initialize()

    try:
        async with db_manager.session() as session:
            service = OrderVerificationService(session)
            try:
                summary = await service.verify_all_orders()
            except Exception as e:
                logger.error(f"Bulk verification failed: {e}")
                return EXIT_FAILURE

            _write_output(summary.model_dump_json(by_alias=True, indent=2), output_file)

            if summary.user_results:
                logger.warning(f"{len(summary.user_results)} users have orders needing attention")
                return EXIT_ISSUES
            return EXIT_OK

    finally:
        await db_manager.shutdown()


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="registration-payments",
        description="Compare Stripe purchases with recorded registration orders.",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    reconcile_parser = subparsers.add_parser(
        "reconcile",
        help="Reconcile Stripe purchases against paid orders",
    )
    reconcile_parser.add_argument(
        "--email", "-e",
        help="Only reconcile the Stripe customer(s) with this email",
    )
    reconcile_parser.add_argument(
        "--output", "-o",
        help="Output file path (default: stdout)",
    )
    reconcile_parser.add_argument(
        "--format", "-f",
        choices=["json", "csv", "text", "detailed_text"],
        default="json",
        help="Output format (default: json)",
    )
    reconcile_parser.add_argument(
        "--summary-only",
        action="store_true",
        help="Only include aggregate counts, not per-user records",
    )

    verify_parser = subparsers.add_parser(
        "verify",
        help="Verify every order of a user against Stripe",
    )
    verify_parser.add_argument(
        "--user-id", "-u",
        required=True,
        help="User whose orders should be verified",
    )
    verify_parser.add_argument(
        "--output", "-o",
        help="Output file path (default: stdout)",
    )

    bulk_parser = subparsers.add_parser(
        "bulk-verify",
        help="Verify every order in the store against Stripe",
    )
    bulk_parser.add_argument(
        "--output", "-o",
        help="Output file path (default: stdout)",
    )

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Optional list of command-line arguments (for testing).

    Returns:
        Exit code.
    """
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return EXIT_ISSUES

    if parsed_args.command == "reconcile":
        return asyncio.run(run_reconciliation_async(
            email_filter=parsed_args.email,
            output_file=parsed_args.output,
            output_format=parsed_args.format,
            include_details=not parsed_args.summary_only,
        ))

    if parsed_args.command == "verify":
        return asyncio.run(run_verification_async(
            user_id=parsed_args.user_id,
            output_file=parsed_args.output,
        ))

    if parsed_args.command == "bulk-verify":
        return asyncio.run(run_bulk_verification_async(output_file=parsed_args.output))

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
