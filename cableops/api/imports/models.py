# cableops/api/imports/models.py
import uuid
from typing import Any

from pydantic import BaseModel, Field

from ...services.import_validator import ImportValidationSummary, QuickSummary


class ImportRequest(BaseModel):
    """Either raw CSV text or already parsed records keyed by CSV header."""

    csv_text: str | None = None
    records: list[dict[str, Any]] | None = None


class ImportCommit(ImportRequest):
    allow_partial: bool = False


class ValidationResponse(BaseModel):
    summary: ImportValidationSummary
    quick: QuickSummary
    report: list[str] = Field(default_factory=list)


class ImportOutcomeRead(BaseModel):
    row_number: int
    vc_number: str
    ok: bool
    skipped: bool = False
    customer_id: uuid.UUID | None = None
    error: str | None = None


class CommitResponse(BaseModel):
    summary: ImportValidationSummary
    outcomes: list[ImportOutcomeRead]
    imported: int
