"""
Wallet reconciliation.

Re-derives every vendor wallet from its ledger entries and cross-checks
escrow releases against wallet credits. Nothing is repaired here: every
discrepancy is reported (and logged at ERROR by the hourly task) so a
human can investigate before money moves again.

Checks:
    - wallet entries are numbered 1..n without gaps
    - balance_after[n] == balance_after[n - 1] + amount[n]
    - Vendor.wallet_balance == last balance_after == sum(amount)
    - a released escrow has exactly one credit of its vendor_amount
    - held, disputed and refunded escrows have no credit
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.db.models import Count, Sum

from core.services import BaseService

from settlement.models import EscrowTransaction, Vendor, WalletTransaction
from settlement.services.base import get_vendor
from settlement.state_machines import EscrowStatus, WalletTransactionType

if TYPE_CHECKING:
    import uuid


logger = logging.getLogger(__name__)


@dataclass
class WalletReconciliationReport:
    vendor_id: uuid.UUID
    entry_count: int = 0
    cached_balance: int = 0
    ledger_balance: int = 0
    discrepancies: list[str] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.discrepancies


@dataclass
class ReconciliationSummary:
    vendors_checked: int = 0
    wallet_reports: list[WalletReconciliationReport] = field(default_factory=list)
    escrow_discrepancies: list[str] = field(default_factory=list)

    @property
    def inconsistent_wallets(self) -> list[WalletReconciliationReport]:
        return [report for report in self.wallet_reports if not report.is_consistent]

    @property
    def discrepancy_count(self) -> int:
        wallet_count = sum(len(r.discrepancies) for r in self.inconsistent_wallets)
        return wallet_count + len(self.escrow_discrepancies)

    @property
    def is_consistent(self) -> bool:
        return self.discrepancy_count == 0


class ReconciliationService(BaseService):
    """Read-only audit of the wallet ledger invariants."""

    @staticmethod
    def verify_vendor_wallet(vendor_id: uuid.UUID | str) -> WalletReconciliationReport:
        vendor = get_vendor(vendor_id)
        report = WalletReconciliationReport(
            vendor_id=vendor.id,
            cached_balance=vendor.wallet_balance,
        )

        running = 0
        entries = (
            WalletTransaction.objects.filter(vendor=vendor)
            .order_by("sequence")
            .values_list("sequence", "amount", "balance_after")
        )
        for expected_sequence, (sequence, amount, balance_after) in enumerate(
            entries.iterator(), start=1
        ):
            report.entry_count += 1
            if sequence != expected_sequence:
                report.discrepancies.append(
                    f"sequence {sequence} found where {expected_sequence} was expected"
                )
            running += amount
            if balance_after != running:
                report.discrepancies.append(
                    f"entry {sequence}: balance_after {balance_after} != running total {running}"
                )
                # Continue from the recorded value so one bad row is reported once
                running = balance_after

        report.ledger_balance = (
            WalletTransaction.objects.filter(vendor=vendor).aggregate(total=Sum("amount"))[
                "total"
            ]
            or 0
        )
        if report.cached_balance != report.ledger_balance:
            report.discrepancies.append(
                f"wallet_balance {report.cached_balance} != ledger sum {report.ledger_balance}"
            )
        if report.entry_count and running != report.cached_balance:
            report.discrepancies.append(
                f"wallet_balance {report.cached_balance} != last balance_after {running}"
            )
        return report

    @staticmethod
    def verify_escrow_credits() -> list[str]:
        credits = {
            row["reference"]: row
            for row in WalletTransaction.objects.filter(
                reference_type="escrow", type=WalletTransactionType.CREDIT
            )
            .values("reference")
            .annotate(count=Count("id"), total=Sum("amount"))
        }

        discrepancies: list[str] = []
        escrows = EscrowTransaction.objects.values_list(
            "id", "order_id", "status", "vendor_amount"
        )
        for escrow_id, order_id, status, vendor_amount in escrows.iterator():
            credit = credits.pop(str(escrow_id), None)
            released = status == EscrowStatus.RELEASED

            if released and vendor_amount > 0:
                if credit is None:
                    discrepancies.append(f"order {order_id}: released without a wallet credit")
                elif credit["count"] != 1 or credit["total"] != vendor_amount:
                    discrepancies.append(
                        f"order {order_id}: {credit['count']} credit(s) totalling "
                        f"{credit['total']}, expected one of {vendor_amount}"
                    )
            elif credit is not None:
                discrepancies.append(f"order {order_id}: credited while {status}")

        for reference in credits:
            discrepancies.append(f"credit references unknown escrow {reference}")
        return discrepancies

    @classmethod
    def run(cls) -> ReconciliationSummary:
        summary = ReconciliationSummary()
        for vendor_id in Vendor.objects.values_list("id", flat=True).iterator():
            summary.wallet_reports.append(cls.verify_vendor_wallet(vendor_id))
            summary.vendors_checked += 1
        summary.escrow_discrepancies = cls.verify_escrow_credits()

        cls.get_logger().info(
            "Reconciliation completed",
            extra={
                "vendors_checked": summary.vendors_checked,
                "discrepancy_count": summary.discrepancy_count,
            },
        )
        return summary
