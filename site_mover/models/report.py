"""Validation report models."""

from typing import Any

from pydantic import BaseModel, Field

from .enums import CheckName


class CheckResult(BaseModel):
    """Outcome of a single validation check."""

    name: CheckName
    ok: bool
    details: dict[str, Any] = Field(default_factory=dict)


class ReportSummary(BaseModel):
    total: int
    passed: int
    failed: int


class Report(BaseModel):
    """Ordered check results for a restored instance."""

    generated_at: str
    target_site_id: int
    checks: list[CheckResult]
    summary: ReportSummary

    @classmethod
    def from_checks(cls, target_site_id: int, checks: list[CheckResult], generated_at: str) -> "Report":
        passed = sum(1 for check in checks if check.ok)
        return cls(
            generated_at=generated_at,
            target_site_id=target_site_id,
            checks=checks,
            summary=ReportSummary(total=len(checks), passed=passed, failed=len(checks) - passed),
        )

    def failed_checks(self) -> list[str]:
        return [check.name.value for check in self.checks if not check.ok]
