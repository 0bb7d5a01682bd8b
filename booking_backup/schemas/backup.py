"""
Response models for the restore endpoint.

Dry-run returns the plan preview (DryRunResponse); create-only and overwrite
return write counts and per-record failures (RestoreResponse). Field names
are camelCase to match what the upload form and scripts read.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from booking_backup.backup.executor import RestoreResult
from booking_backup.backup.ingest import ParseError
from booking_backup.backup.planner import PlanAction, PlanEntry, RestorePlan


class ParseErrorOut(BaseModel):
    line: int
    message: str

    @classmethod
    def from_error(cls, error: ParseError) -> "ParseErrorOut":
        return cls(line=error.line, message=error.message)


class PlanEntryOut(BaseModel):
    """One uploaded record in a restore preview."""

    line: int
    id: Optional[str] = Field(None, description="Record id, null when missing or unusable")
    key: Optional[str] = Field(None, description="Target object key")
    action: Literal["create", "conflict", "invalid", "check_failed"]
    reason: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: PlanEntry) -> "PlanEntryOut":
        return cls(
            line=entry.line,
            id=entry.record_id,
            key=entry.key,
            action=entry.action.value,
            reason=entry.reason,
        )


class DryRunResponse(BaseModel):
    """
    Restore preview. Nothing was written.
    """

    mode: Literal["dry-run"] = "dry-run"
    targetPrefix: str
    sandboxId: Optional[str] = None
    normalize: bool
    totalLines: int = Field(..., description="Non-blank lines in the upload")
    parseErrorsCount: int
    parseErrors: list[ParseErrorOut]
    wouldCreateCount: int
    wouldOverwriteCount: int = Field(..., description="Conflicts: skipped by create-only, replaced by overwrite")
    invalidCount: int
    checkFailedCount: int
    duplicateIds: list[str]
    conflicts: list[str]
    entries: list[PlanEntryOut]

    @classmethod
    def from_plan(cls, plan: RestorePlan, normalize: bool) -> "DryRunResponse":
        counts = plan.counts
        return cls(
            targetPrefix=plan.target.prefix,
            sandboxId=plan.target.sandbox_id,
            normalize=normalize,
            totalLines=plan.total_lines,
            parseErrorsCount=len(plan.parse_errors),
            parseErrors=[ParseErrorOut.from_error(e) for e in plan.parse_errors],
            wouldCreateCount=counts[PlanAction.CREATE.value],
            wouldOverwriteCount=counts[PlanAction.CONFLICT.value],
            invalidCount=counts[PlanAction.INVALID.value],
            checkFailedCount=counts[PlanAction.CHECK_FAILED.value],
            duplicateIds=plan.duplicate_ids,
            conflicts=sorted(
                e.record_id for e in plan.entries_with(PlanAction.CONFLICT) if e.record_id
            ),
            entries=[PlanEntryOut.from_entry(e) for e in plan.entries],
        )


class RecordErrorOut(BaseModel):
    id: str
    error: str


class RestoreResponse(BaseModel):
    """Report of a create-only or overwrite restore."""

    mode: Literal["create-only", "overwrite"]
    targetPrefix: str
    sandboxId: Optional[str] = None
    normalize: bool
    totalLines: int
    parseErrorsCount: int
    parseErrors: list[ParseErrorOut]
    createdCount: int
    overwrittenCount: int
    skippedCount: int
    invalidCount: int
    failedCount: int
    created: list[str]
    overwritten: list[str]
    skipped: list[str]
    invalid: list[str]
    failed: list[str]
    errors: list[RecordErrorOut]
    invalidEntries: list[PlanEntryOut]

    @classmethod
    def from_result(cls, result: RestoreResult) -> "RestoreResponse":
        plan = result.plan
        return cls(
            mode=result.mode.value,
            targetPrefix=plan.target.prefix,
            sandboxId=plan.target.sandbox_id,
            normalize=result.normalized,
            totalLines=plan.total_lines,
            parseErrorsCount=len(plan.parse_errors),
            parseErrors=[ParseErrorOut.from_error(e) for e in plan.parse_errors],
            createdCount=len(result.created),
            overwrittenCount=len(result.overwritten),
            skippedCount=len(result.skipped),
            invalidCount=len(result.invalid),
            failedCount=len(result.failed),
            created=result.created,
            overwritten=result.overwritten,
            skipped=result.skipped,
            invalid=result.invalid,
            failed=result.failed,
            errors=[RecordErrorOut(id=f.record_id, error=f.error) for f in result.errors],
            invalidEntries=[
                PlanEntryOut.from_entry(e) for e in plan.entries_with(PlanAction.INVALID)
            ],
        )
