# cableops/services/import_validator.py
"""
CSV bulk-import validator.

Pipeline, row-by-row then batch-wide:

1. structural guard (row count, header contract) - fatal, reported once;
2. required fields and formats per row;
3. cross-reference against a RegistrySnapshot (areas, packages, VC inventory);
4. duplicate phone / VC numbers inside the batch itself.

Findings are returned as data. Validation is pure computation over the
in-memory batch and the snapshot, so it runs synchronously.
"""
import csv
import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Mapping, Optional

from pydantic import BaseModel, Field

from ..core.constants import CustomerStatus
from ..core.diagnostics import Diagnostics
from .registry_service import RegistrySnapshot

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROWS = 1000
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _optional_text(value: Any) -> Optional[str]:
    return _text(value) or None


def phone_digits(value: Any) -> str:
    return re.sub(r"\D", "", _text(value))


@dataclass(frozen=True)
class ColumnSpec:
    field: str
    required: bool
    coerce: Callable[[Any], Any]


# CSV header (case-sensitive) -> typed ImportRow field
COLUMN_SCHEMA: dict[str, ColumnSpec] = {
    "name": ColumnSpec("name", True, _text),
    "phoneNumber": ColumnSpec("phone_number", True, _text),
    "email": ColumnSpec("email", False, _optional_text),
    "address": ColumnSpec("address", True, _text),
    "area": ColumnSpec("area", True, _text),
    "vcNumber": ColumnSpec("vc_number", True, _text),
    "packageName": ColumnSpec("package_name", True, _text),
    "status": ColumnSpec("raw_status", False, _text),
}

REQUIRED_COLUMNS = [header for header, spec in COLUMN_SCHEMA.items() if spec.required]


class ImportRow(BaseModel):
    name: str = ""
    phone_number: str = ""
    email: Optional[str] = None
    address: str = ""
    area: str = ""
    vc_number: str = ""
    package_name: str = ""
    raw_status: str = ""

    @property
    def phone_digits(self) -> str:
        return phone_digits(self.phone_number)

    @property
    def status(self) -> CustomerStatus:
        """Requested status, falling back to active for empty or unknown values."""
        try:
            return CustomerStatus(self.raw_status.lower())
        except ValueError:
            return CustomerStatus.ACTIVE

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "ImportRow":
        values = {}
        for header, spec in COLUMN_SCHEMA.items():
            if header in record:
                values[spec.field] = spec.coerce(record[header])
        return cls(**values)


class RowValidationResult(BaseModel):
    row_number: int
    data: ImportRow
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class ImportValidationSummary(BaseModel):
    total_rows: int = 0
    valid_rows: int = 0
    invalid_rows: int = 0
    global_errors: List[str] = Field(default_factory=list)
    results: List[RowValidationResult] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    # Rows taking part in an intra-batch duplicate
    duplicate_rows: List[int] = Field(default_factory=list)
    registry_complete: bool = True
    structural: bool = False
    ready_to_import: bool = False


class QuickSummary(BaseModel):
    status: str
    message: str
    details: List[str] = Field(default_factory=list)


@dataclass
class ParsedCSV:
    headers: List[str]
    rows: List[dict[str, str]]
    # 1-based data rows that carry more cells than there are headers
    malformed_rows: List[int] = field(default_factory=list)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "ParsedCSV":
        rows = [dict(r) for r in records]
        headers: List[str] = []
        for row in rows:
            for key in row:
                if key not in headers:
                    headers.append(key)
        return cls(headers=headers, rows=rows)


def parse_csv(text: str) -> ParsedCSV:
    """Split CSV text into a header list and one dict per non-blank data row."""
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    headers: Optional[List[str]] = None
    rows: List[dict[str, str]] = []
    malformed: List[int] = []

    for cells in reader:
        if not any(c.strip() for c in cells):
            continue
        if headers is None:
            headers = [c.strip() for c in cells]
            continue
        if len(cells) > len(headers):
            malformed.append(len(rows) + 1)
        padded = cells + [""] * (len(headers) - len(cells))
        rows.append(dict(zip(headers, padded)))

    return ParsedCSV(headers=headers or [], rows=rows, malformed_rows=malformed)


class ImportValidator:
    """
    Validates one batch against one registry snapshot.

    Args:
        snapshot: registry state loaded for this validation session
        diagnostics: optional collector for structural and registry problems
        max_rows: upper bound on the batch size
        phone_length: number of digits a phone number must have
    """

    def __init__(
        self,
        snapshot: RegistrySnapshot,
        diagnostics: Optional[Diagnostics] = None,
        max_rows: int = DEFAULT_MAX_ROWS,
        phone_length: int = 10,
    ):
        self.snapshot = snapshot
        self.diagnostics = diagnostics
        self.max_rows = max_rows
        self.phone_length = phone_length

    def validate(self, parsed: ParsedCSV) -> ImportValidationSummary:
        structural_error = self._structural_error(parsed)
        if structural_error:
            logger.warning(f"⚠️ CSV batch rejected: {structural_error}")
            if self.diagnostics:
                self.diagnostics.error("import", structural_error, rows=len(parsed.rows))
            return ImportValidationSummary(
                total_rows=len(parsed.rows),
                global_errors=[structural_error],
                warnings=list(self.snapshot.warnings),
                structural=True,
                registry_complete=self.snapshot.is_complete,
            )

        global_errors = [
            f"{name.replace('_', ' ').capitalize()} registry is unavailable; the batch cannot be imported until it loads"
            for name in sorted(self.snapshot.unavailable)
        ]

        results = [
            self.validate_row(ImportRow.from_record(record), number)
            for number, record in enumerate(parsed.rows, start=1)
        ]

        duplicate_errors, duplicate_rows = self._find_duplicates(results)
        global_errors.extend(duplicate_errors)

        valid_rows = sum(1 for r in results if r.is_valid)
        summary = ImportValidationSummary(
            total_rows=len(results),
            valid_rows=valid_rows,
            invalid_rows=len(results) - valid_rows,
            global_errors=global_errors,
            results=results,
            warnings=list(self.snapshot.warnings),
            duplicate_rows=sorted(duplicate_rows),
            registry_complete=self.snapshot.is_complete,
            ready_to_import=not global_errors and valid_rows == len(results),
        )
        logger.info(
            f"CSV batch validated: {summary.total_rows} rows, {summary.valid_rows} valid, "
            f"{summary.invalid_rows} invalid, {len(global_errors)} global errors"
        )
        if self.diagnostics:
            self.diagnostics.info(
                "import",
                "Batch validated",
                total_rows=summary.total_rows,
                valid_rows=summary.valid_rows,
                ready_to_import=summary.ready_to_import,
            )
        return summary

    def validate_records(self, records: Iterable[Mapping[str, Any]]) -> ImportValidationSummary:
        return self.validate(ParsedCSV.from_records(records))

    def _structural_error(self, parsed: ParsedCSV) -> Optional[str]:
        if not parsed.rows:
            return "CSV file is empty"
        if len(parsed.rows) > self.max_rows:
            return f"CSV file too large (max {self.max_rows} rows)"

        missing = [c for c in REQUIRED_COLUMNS if c not in parsed.headers]
        if missing:
            return f"Missing required columns: {', '.join(missing)}"

        unknown = [h for h in parsed.headers if h not in COLUMN_SCHEMA]
        if unknown:
            return f"Unknown columns: {', '.join(unknown)}"

        repeated = sorted({h for h in parsed.headers if parsed.headers.count(h) > 1})
        if repeated:
            return f"Duplicate columns: {', '.join(repeated)}"

        if parsed.malformed_rows:
            rows = ", ".join(str(n) for n in parsed.malformed_rows)
            return f"Rows with more values than columns: {rows}"
        return None

    def validate_row(self, row: ImportRow, row_number: int) -> RowValidationResult:
        result = RowValidationResult(row_number=row_number, data=row)
        errors, warnings = result.errors, result.warnings

        if not row.name:
            errors.append("Customer name is required")

        if not row.phone_number:
            errors.append("Phone number is required")
        elif len(row.phone_digits) != self.phone_length:
            errors.append(f"Invalid phone number format (should be {self.phone_length} digits)")

        if not row.address:
            warnings.append("Address is missing")

        if row.email and not EMAIL_PATTERN.match(row.email):
            warnings.append("Invalid email format")

        if row.raw_status and row.raw_status.lower() not in {s.value for s in CustomerStatus}:
            warnings.append(f'Invalid status "{row.raw_status}". Will default to "active"')

        self._check_area(row, errors)
        self._check_vc(row, errors)
        self._check_package(row, errors)
        return result

    # Cross-reference checks are skipped for a registry that failed to load;
    # the batch is already blocked by a global error in that case.

    def _check_area(self, row: ImportRow, errors: List[str]) -> None:
        if not row.area:
            errors.append("Area is required")
        elif "areas" not in self.snapshot.unavailable and row.area not in self.snapshot.areas:
            valid = ", ".join(sorted(self.snapshot.areas))
            errors.append(f'Invalid area "{row.area}". Valid areas: {valid}')

    def _check_vc(self, row: ImportRow, errors: List[str]) -> None:
        if not row.vc_number:
            errors.append("VC number is required")
            return
        if "vc_inventory" in self.snapshot.unavailable:
            return
        info = self.snapshot.vc_inventory.get(row.vc_number)
        if info is None:
            errors.append(f'VC number "{row.vc_number}" does not exist in inventory')
        elif not info.is_available:
            if info.customer_id and info.customer_name:
                errors.append(f'VC number "{row.vc_number}" is already assigned to customer: {info.customer_name}')
            else:
                errors.append(f'VC number "{row.vc_number}" is not available (status: {info.status})')

    def _check_package(self, row: ImportRow, errors: List[str]) -> None:
        if not row.package_name:
            errors.append("Package name is required")
            return
        if "packages" in self.snapshot.unavailable:
            return
        info = self.snapshot.packages.get(row.package_name)
        if info is None:
            valid = ", ".join(sorted(name for name, p in self.snapshot.packages.items() if p.is_active))
            errors.append(f'Invalid package "{row.package_name}". Valid packages: {valid}')
        elif not info.is_active:
            errors.append(f'Package "{row.package_name}" is not active')

    @staticmethod
    def _find_duplicates(results: List[RowValidationResult]) -> tuple[List[str], set[int]]:
        by_phone: dict[str, List[int]] = {}
        by_vc: dict[str, List[int]] = {}
        for r in results:
            if r.data.phone_digits:
                by_phone.setdefault(r.data.phone_digits, []).append(r.row_number)
            if r.data.vc_number:
                by_vc.setdefault(r.data.vc_number, []).append(r.row_number)

        errors: List[str] = []
        rows: set[int] = set()
        for label, groups in (("phone number", by_phone), ("VC number", by_vc)):
            for value, numbers in groups.items():
                if len(numbers) > 1:
                    errors.append(f"Duplicate {label} {value} found in rows {', '.join(map(str, numbers))}")
                    rows.update(numbers)
        return errors, rows


def build_validation_report(summary: ImportValidationSummary, snapshot: Optional[RegistrySnapshot] = None) -> List[str]:
    """Plain-text report lines for a validated batch."""
    rule = "=" * 60
    report = [rule, "CSV IMPORT VALIDATION REPORT", rule, ""]
    report += [
        "SUMMARY:",
        f"Total Rows: {summary.total_rows}",
        f"Valid Rows: {summary.valid_rows}",
        f"Invalid Rows: {summary.invalid_rows}",
        f"Ready to Import: {'YES' if summary.ready_to_import else 'NO'}",
        "",
    ]

    if summary.global_errors:
        report.append("GLOBAL ERRORS:")
        report += [f"  [error] {e}" for e in summary.global_errors]
        report.append("")

    flagged = [r for r in summary.results if not r.is_valid or r.warnings]
    if flagged:
        report.append("ROW VALIDATION DETAILS:")
        for r in flagged:
            report.append(f"Row {r.row_number}: {r.data.name}")
            report += [f"  [error] {e}" for e in r.errors]
            report += [f"  [warning] {w}" for w in r.warnings]
            report.append("")

    if snapshot is not None:
        report += [
            "SYSTEM STATUS:",
            f"  Areas Available: {len(snapshot.areas)}",
            f"  Packages Available: {sum(1 for p in snapshot.packages.values() if p.is_active)}",
            f"  VC Numbers in Inventory: {len(snapshot.vc_inventory)}",
        ]
        report += [f"  [warning] {w}" for w in snapshot.warnings]
    return report


def quick_summary(summary: ImportValidationSummary) -> QuickSummary:
    if summary.ready_to_import:
        return QuickSummary(
            status="success",
            message=f"All {summary.total_rows} rows are valid and ready to import",
            details=[f"{summary.valid_rows} valid customers", "All VC numbers available", "All areas and packages exist"],
        )
    if summary.global_errors:
        return QuickSummary(status="error", message="Critical validation errors found", details=list(summary.global_errors))

    warning_rows = sum(1 for r in summary.results if r.warnings)
    return QuickSummary(
        status="warning",
        message=f"{summary.invalid_rows} rows have errors, {warning_rows} have warnings",
        details=[
            f"{summary.valid_rows} rows are valid",
            f"{summary.invalid_rows} rows need fixing",
            "Check detailed report below",
        ],
    )
