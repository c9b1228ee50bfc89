"""Report generation for reconciliation results."""

import json
import csv
import io

from .models import ReconciliationSummary

CSV_HEADER = [
    "email", "stripe_customer_id", "supabase_user_id", "item_name", "status",
    "stripe_quantity", "stripe_total", "supabase_quantity", "supabase_total",
    "total_difference",
]


def format_cents(amount: int) -> str:
    """Render a minor-unit amount as a signed decimal string."""
    sign = "-" if amount < 0 else ""
    return f"{sign}{abs(amount) // 100}.{abs(amount) % 100:02d}"


class ReportGenerator:
    """Generator for reconciliation reports in various formats."""

    def __init__(self, summary: ReconciliationSummary):
        """Initialize the report generator.

        Args:
            summary: The reconciliation summary to generate output from.
        """
        self.summary = summary

    def to_json(self, include_details: bool = True, indent: int = 2) -> str:
        """Generate JSON representation of the summary.

        Args:
            include_details: If True, include per-user records and lookup failures.
            indent: JSON indentation level.

        Returns:
            JSON string representation of the summary.
        """
        if include_details:
            data = self.summary.to_full_dict()
        else:
            data = self.summary.to_summary_dict()
        return json.dumps(data, indent=indent)

    def to_csv(self) -> str:
        """Generate CSV with one row per item discrepancy.

        Users whose only issue is a total difference get a single row with an
        empty item name.
        """
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(CSV_HEADER)

        for user in self.summary.users:
            common = [user.email, user.stripe_customer_id or "", user.supabase_user_id or ""]
            if not user.discrepancies:
                writer.writerow(common + [
                    "", "total_mismatch",
                    user.stripe_item_count, user.stripe_total,
                    user.supabase_item_count, user.supabase_total,
                    user.total_difference,
                ])
                continue
            for d in user.discrepancies:
                writer.writerow(common + [
                    d.item_name,
                    d.status.value,
                    d.stripe_quantity,
                    d.stripe_total,
                    d.supabase_quantity,
                    d.supabase_total,
                    user.total_difference,
                ])

        return output.getvalue()

    def to_summary_text(self) -> str:
        """Generate a human-readable text summary.

        Returns:
            Formatted text summary of the reconciliation.
        """
        s = self.summary
        lines = [
            "=" * 60,
            "STRIPE ORDER RECONCILIATION SUMMARY",
            "=" * 60,
            "Customers:",
            f"  Stripe Customers: {s.total_stripe_customers}",
            f"  Order Store Users: {s.total_supabase_users}",
            f"  Matched Emails: {s.total_matched_emails}",
            f"  Users With Discrepancies: {s.users_with_discrepancies}",
            "",
            "Purchases:",
            f"  Stripe Items: {s.total_stripe_purchases}",
            f"  Order Store Items: {s.total_supabase_purchases}",
            "",
            "Amounts:",
            f"  Stripe Total: {format_cents(s.total_stripe_amount)}",
            f"  Order Store Total: {format_cents(s.total_supabase_amount)}",
            f"  Difference: {format_cents(s.amount_difference)}",
        ]

        if s.lookup_failures:
            lines.extend([
                "",
                f"Lookup Failures: {len(s.lookup_failures)} (figures may be undercounted)",
            ])

        lines.append("=" * 60)
        return "\n".join(lines)

    def to_detailed_text(self) -> str:
        """Generate a detailed human-readable text report.

        Returns:
            Formatted text with summary, problem accounts and lookup failures.
        """
        lines = [self.to_summary_text(), ""]

        if self.summary.users:
            lines.extend([
                "ACCOUNTS WITH ISSUES",
                "-" * 40,
            ])
            for user in self.summary.users:
                lines.extend([
                    f"\n{user.email}",
                    f"  Stripe: {user.stripe_customer_id or 'N/A'} ({user.stripe_name or 'no name'})",
                    f"  Order Store: {user.supabase_user_id or 'N/A'} ({user.supabase_name or 'no name'})",
                    f"  Totals: stripe {format_cents(user.stripe_total)}, "
                    f"order store {format_cents(user.supabase_total)}, "
                    f"difference {format_cents(user.total_difference)}",
                ])
                for d in user.discrepancies:
                    lines.append(
                        f"    - {d.item_name}: {d.status.value} "
                        f"(stripe {d.stripe_quantity} x / {format_cents(d.stripe_total)}, "
                        f"order store {d.supabase_quantity} x / {format_cents(d.supabase_total)})"
                    )
            lines.append("")

        if self.summary.lookup_failures:
            lines.extend([
                "LOOKUP FAILURES",
                "-" * 40,
            ])
            for f in self.summary.lookup_failures:
                lines.append(f"  {f.operation} {f.reference}: {f.message}")
            lines.append("")

        return "\n".join(lines)
