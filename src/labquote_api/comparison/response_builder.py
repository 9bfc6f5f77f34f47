from __future__ import annotations

from labquote_api.comparison.context import ComparisonResult, LaboratoryRow
from labquote_api.schemas.comparison import (
    AppliedBundleOut,
    ComparisonItemOut,
    ComparisonResponse,
    IncompleteLaboratoryOut,
    LaboratoryRowOut,
)


def build_comparison_response(result: ComparisonResult, *, currency: str) -> ComparisonResponse:
    return ComparisonResponse(
        items=[
            ComparisonItemOut(canonical_name=item.canonical_name, mapping_id=item.mapping_id)
            for item in result.items
        ],
        laboratories=[_row_out(row) for row in result.laboratories],
        cheapest_laboratory_id=result.cheapest_laboratory_id,
        incomplete_laboratories=[
            IncompleteLaboratoryOut(
                laboratory_id=incomplete.laboratory_id,
                missing_canonical_names=list(incomplete.missing_canonical_names),
            )
            for incomplete in result.incomplete_laboratories
        ],
        currency=currency,
        compared_at=result.compared_at,
    )


def _row_out(row: LaboratoryRow) -> LaboratoryRowOut:
    bundle = row.applied_bundle
    return LaboratoryRowOut(
        laboratory_id=row.laboratory.id,
        name=row.laboratory.name,
        code=row.laboratory.code,
        prices=dict(row.prices),
        is_complete=row.is_complete,
        missing_canonical_names=list(row.missing_canonical_names),
        raw_total=row.raw_total,
        applied_bundle=(
            AppliedBundleOut(id=bundle.id, name=bundle.name, discount=bundle.discount)
            if bundle is not None
            else None
        ),
        final_total=row.final_total,
        local_test_names=dict(row.local_test_names),
    )


__all__ = ["build_comparison_response"]
