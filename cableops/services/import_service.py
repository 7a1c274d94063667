# cableops/services/import_service.py
"""
CSV import and export of customers.

Validation loads a fresh registry snapshot and runs the validator. Committing
a validated batch assigns each row's VC from inventory and creates the
customer; the rows are written concurrently and every row gets its own
outcome. When a customer write fails its VC is released again.
"""
import asyncio
import csv
import io
import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional

from ..core.audit import log_action
from ..core.config import get_settings
from ..core.constants import CustomerStatus
from ..core.diagnostics import Diagnostics
from ..core.exceptions import AuthorizationError, ValidationError
from ..models.actor import Actor
from ..models.customer import Connection, Customer, utcnow
from ..models.package import Package
from .balance import apply_balance, billing_cycle_label, compute_balance, open_connection, to_decimal
from .import_validator import (
    COLUMN_SCHEMA,
    ImportRow,
    ImportValidationSummary,
    ImportValidator,
    ParsedCSV,
    QuickSummary,
    build_validation_report,
    parse_csv,
    quick_summary,
)
from .protocols import AreaRegistry, CustomerStore, PackageRegistry, VCInventory
from .registry_service import RegistryLookup, RegistrySnapshot

logger = logging.getLogger(__name__)

EXTENDED_COLUMNS = ["packageAmount", "previousOutstanding", "currentOutstanding", "billDueDate"]


@dataclass
class ValidationRun:
    summary: ImportValidationSummary
    snapshot: RegistrySnapshot

    def report(self) -> List[str]:
        return build_validation_report(self.summary, self.snapshot)

    def quick(self) -> QuickSummary:
        return quick_summary(self.summary)


@dataclass(frozen=True)
class ImportOutcome:
    row_number: int
    vc_number: str
    customer_id: Optional[uuid.UUID] = None
    error: Optional[str] = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.customer_id is not None and self.error is None


class ImportService:
    def __init__(
        self,
        customers: CustomerStore,
        inventory: VCInventory,
        areas: AreaRegistry,
        packages: PackageRegistry,
        diagnostics: Optional[Diagnostics] = None,
        max_rows: Optional[int] = None,
        phone_length: Optional[int] = None,
    ):
        settings = get_settings()
        self.customers = customers
        self.inventory = inventory
        self.areas = areas
        self.packages = packages
        self.diagnostics = diagnostics
        self.max_rows = max_rows or settings.import_max_rows
        self.phone_length = phone_length or settings.phone_digits

    async def load_snapshot(self) -> RegistrySnapshot:
        return await RegistryLookup(self.areas, self.packages, self.inventory, self.diagnostics).load()

    async def validate_parsed(self, parsed: ParsedCSV) -> ValidationRun:
        snapshot = await self.load_snapshot()
        validator = ImportValidator(snapshot, self.diagnostics, self.max_rows, self.phone_length)
        return ValidationRun(summary=validator.validate(parsed), snapshot=snapshot)

    async def validate_text(self, text: str) -> ValidationRun:
        return await self.validate_parsed(parse_csv(text))

    async def validate_batch(self, records: Iterable[Mapping[str, Any]]) -> ValidationRun:
        return await self.validate_parsed(ParsedCSV.from_records(records))

    async def commit(
        self,
        summary: ImportValidationSummary,
        actor: Actor,
        allow_partial: bool = False,
        today: Optional[date] = None,
    ) -> List[ImportOutcome]:
        """
        Create customers for the rows of a validated batch.

        Only a batch that is ready to import is committed, unless allow_partial
        is set, in which case only the individually valid, non-duplicate rows
        are written. A structurally broken batch or one validated against an
        incomplete registry snapshot is never committed.

        Raises:
            AuthorizationError: actor is not an admin.
            ValidationError: the batch may not be committed.
        """
        if not actor.has_authority:
            raise AuthorizationError(f"User {actor.id} cannot import customers.")
        if summary.structural:
            raise ValidationError(f"Batch has structural errors: {'; '.join(summary.global_errors)}")
        if not summary.registry_complete:
            raise ValidationError("Batch was validated against an incomplete registry; validate again.")
        if not summary.ready_to_import and not allow_partial:
            raise ValidationError(
                f"Batch is not ready to import ({summary.invalid_rows} invalid rows, "
                f"{len(summary.global_errors)} global errors)."
            )

        duplicates = set(summary.duplicate_rows)
        outcomes: List[ImportOutcome] = []
        to_import = []
        for result in summary.results:
            if not result.is_valid:
                outcomes.append(
                    ImportOutcome(result.row_number, result.data.vc_number, error="Row has validation errors", skipped=True)
                )
            elif result.row_number in duplicates:
                outcomes.append(ImportOutcome(result.row_number, result.data.vc_number, error="Row is part of a duplicate", skipped=True))
            else:
                to_import.append(result)

        packages = {p.name: p for p in await self.packages.list_packages()}
        today = today or date.today()
        results = await asyncio.gather(
            *(self._import_row(r.data, packages, today) for r in to_import),
            return_exceptions=True,
        )
        for result, created in zip(to_import, results):
            if isinstance(created, BaseException):
                logger.error(f"Import of row {result.row_number} failed: {created}")
                outcomes.append(ImportOutcome(result.row_number, result.data.vc_number, error=str(created)))
            else:
                outcomes.append(ImportOutcome(result.row_number, result.data.vc_number, customer_id=created.id))

        outcomes.sort(key=lambda o: o.row_number)
        imported = sum(1 for o in outcomes if o.ok)
        failed = [o.row_number for o in outcomes if o.error and not o.skipped]
        log_action(
            "IMPORT",
            "customer",
            "bulk",
            actor=actor,
            details={
                "total_rows": summary.total_rows,
                "imported": imported,
                "failed_rows": failed,
                "skipped": sum(1 for o in outcomes if o.skipped),
            },
            status="success" if not failed else "failure",
        )
        logger.info(f"✅ CSV import finished: {imported}/{summary.total_rows} rows imported.")
        return outcomes

    async def _import_row(self, row: ImportRow, packages: dict[str, Package], today: date) -> Customer:
        package = packages.get(row.package_name)
        if package is None or not package.is_active:
            raise ValidationError(f'Package "{row.package_name}" is no longer available')
        price = to_decimal(package.price, "package price")
        status = row.status
        now = utcnow()

        customer = Customer(
            name=row.name,
            phone_number=row.phone_digits,
            email=row.email,
            address=row.address or None,
            area=row.area,
            vc_number=row.vc_number,
            package_name=package.name,
            package_amount=price,
            status=status.value,
            bill_due_date=today.day,
            billing_cycle=billing_cycle_label(today),
            activated_at=now if status != CustomerStatus.INACTIVE else None,
        )
        customer.set_connections(
            [
                open_connection(
                    Connection(
                        vc_number=row.vc_number,
                        is_primary=True,
                        plan_name=package.name,
                        plan_price=price,
                        status=status,
                    )
                )
            ]
        )
        # First cycle: nothing carried over, the package is charged once
        apply_balance(customer, compute_balance(Decimal("0"), price))

        await self.inventory.assign(row.vc_number, customer.id, customer.name)
        try:
            await self.customers.save(customer)
        except Exception:
            logger.error(f"Saving imported customer {row.name} failed; releasing VC {row.vc_number}.")
            await self.inventory.release(row.vc_number, reason="Import rolled back")
            raise
        return customer



def export_customers_csv(customers: Iterable[Customer], extended: bool = False) -> str:
    """
    Customers as CSV in the import column layout, so an export can be
    re-imported. extended adds balance columns, which the importer rejects.
    """
    headers = list(COLUMN_SCHEMA)
    if extended:
        headers += EXTENDED_COLUMNS
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(headers)
    for c in customers:
        row = [
            c.name,
            c.phone_number,
            c.email or "",
            c.address or "",
            c.area,
            c.vc_number or "",
            c.package_name or "",
            c.status,
        ]
        if extended:
            row += [c.package_amount, c.previous_outstanding, c.current_outstanding, c.bill_due_date]
        writer.writerow(row)
    return buffer.getvalue()
