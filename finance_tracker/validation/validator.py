"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking, required fields, positive amounts (pydantic)
- Description length
- This catches malformed input

STAGE 2 - REFERENCE VALIDATION:
- Category, payment method and amount type must exist
- ...and must be active
- This needs the catalog

WHY TWO STAGES:
1. Separation of concerns (structural vs referential)
2. Better error messages (know exactly what kind of issue)
3. Can skip stage 2 if stage 1 fails
4. Stage 2 needs access to storage

IMPORTANT: A failed validation means nothing is persisted and no balance
is touched.
"""

from typing import Any, Optional
from uuid import UUID

from pydantic import ValidationError

from finance_tracker.config import get_settings
from finance_tracker.models.ledger import (
    CatalogKind,
    EntryCreate,
    EntryUpdate,
    ValidationIssue,
    ValidationResult,
)
from finance_tracker.services.storage import CatalogStorageInterface


class EntryValidationError(Exception):
    """
    Input rejected before any persistence.

    Carries the full ValidationResult so callers can show every issue.
    """

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = [issue.message for issue in result.issues if issue.severity == "error"]
        super().__init__("; ".join(messages) or "Validation failed")

    @property
    def issues(self) -> list[ValidationIssue]:
        return self.result.issues


def issues_from_pydantic(error: ValidationError) -> list[ValidationIssue]:
    """Translate pydantic errors into ValidationIssues."""
    issues = []
    for err in error.errors():
        field = ".".join(str(part) for part in err.get("loc", ())) or "input"
        issue_type = "missing" if err.get("type") == "missing" else "invalid_value"
        issues.append(ValidationIssue(
            field=field,
            issue_type=issue_type,
            message=f"{field}: {err.get('msg', 'invalid value')}",
            severity="error",
        ))
    return issues


def schema_failure(issues: list[ValidationIssue]) -> ValidationResult:
    """A result for input that never made it past stage 1."""
    return ValidationResult(
        schema_valid=False,
        references_valid=False,
        is_valid=False,
        issues=issues,
        warnings=[i.message for i in issues if i.severity == "warning"],
    )


def parse_model(model: type, data: Any):
    """
    Build a pydantic input model, raising EntryValidationError on bad input.

    Accepts an instance of the model or a plain dict.
    """
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise EntryValidationError(schema_failure(issues_from_pydantic(e)))


_REFERENCE_LABELS = {
    CatalogKind.CATEGORY: "category",
    CatalogKind.PAYMENT_METHOD: "payment method",
    CatalogKind.AMOUNT_TYPE: "amount type",
}


class LedgerEntryValidator:
    """
    Validates expense/saving input through a two-stage pipeline.

    Stage 1: Schema validation (no storage needed)
    Stage 2: Reference validation (needs the catalog)
    """

    def __init__(self, catalog: CatalogStorageInterface):
        """
        Initialize validator.

        Args:
            catalog: Reference data used to check category, payment method
                     and amount type ids.
        """
        self._catalog = catalog
        self._settings = get_settings().app

    def _validate_schema(
        self,
        description: Optional[str],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Pydantic has already enforced types and positive amounts; this adds
        the configurable limits.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        limit = self._settings.max_description_length
        if description and len(description) > limit:
            issues.append(ValidationIssue(
                field="description",
                issue_type="too_long",
                message=f"Description must be at most {limit} characters",
                severity="error",
                suggested_fix="Shorten the description",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    async def _validate_references(
        self,
        references: dict[CatalogKind, Optional[UUID]],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Reference validation.

        Only references that were provided are checked; None means
        "unchanged" on updates.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        for kind, item_id in references.items():
            if item_id is None:
                continue
            item = await self._catalog.get_item(kind, item_id)
            if item is None or not item.is_active:
                label = _REFERENCE_LABELS[kind]
                issues.append(ValidationIssue(
                    field=f"{kind.value}_id",
                    issue_type="inactive_reference" if item else "unknown_reference",
                    message=f"Invalid or inactive {label}",
                    severity="error",
                    suggested_fix=f"Choose an active {label}",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    async def _validate(
        self,
        description: Optional[str],
        references: dict[CatalogKind, Optional[UUID]],
    ) -> ValidationResult:
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(description)
        all_issues.extend(schema_issues)

        # Only run stage 2 if stage 1 passes
        references_valid = False
        if schema_valid:
            references_valid, reference_issues = await self._validate_references(references)
            all_issues.extend(reference_issues)

        warnings = [issue.message for issue in all_issues if issue.severity == "warning"]

        return ValidationResult(
            schema_valid=schema_valid,
            references_valid=references_valid,
            is_valid=schema_valid and references_valid,
            issues=all_issues,
            warnings=warnings,
        )

    async def validate_create(self, data: EntryCreate) -> ValidationResult:
        """Validate input for a new entry. All references are required."""
        return await self._validate(
            data.description,
            {
                CatalogKind.CATEGORY: data.category_id,
                CatalogKind.PAYMENT_METHOD: data.payment_method_id,
                CatalogKind.AMOUNT_TYPE: data.amount_type_id,
            },
        )

    async def validate_update(self, data: EntryUpdate) -> ValidationResult:
        """Validate a partial update. Only provided references are checked."""
        return await self._validate(
            data.description,
            {
                CatalogKind.CATEGORY: data.category_id,
                CatalogKind.PAYMENT_METHOD: data.payment_method_id,
                CatalogKind.AMOUNT_TYPE: data.amount_type_id,
            },
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show in the UI.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed!"

        lines = []

        if result.has_errors:
            lines.append("❌ Please fix the following:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
