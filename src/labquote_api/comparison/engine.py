"""Cross-laboratory price comparison.

``compare`` is a pure function of the selection and a ``CatalogSnapshot``: it
never reads the clock or the database, so identical inputs give identical
results.
"""

from __future__ import annotations

from collections.abc import Iterable

from labquote_api.comparison.bundles import qualifying_deals, select_best_deal
from labquote_api.comparison.context import (
    CatalogSnapshot,
    ComparisonItem,
    ComparisonResult,
    EntrySnapshot,
    IncompleteLaboratory,
    LaboratoryRow,
    MappingSnapshot,
)
from labquote_api.core.errors import ConflictError, NotFoundError, ValidationError

EMPTY_SELECTION_MESSAGE = "Select at least one test to compare"


def compare(selected_mapping_ids: Iterable[str], snapshot: CatalogSnapshot) -> ComparisonResult:
    selected = frozenset(selected_mapping_ids)
    if not selected:
        raise ValidationError(EMPTY_SELECTION_MESSAGE, ["testMappingIds"])

    missing = sorted(selected - snapshot.mappings.keys())
    if missing:
        raise NotFoundError(f"Unknown test mapping ids: {', '.join(missing)}", missing)

    mappings = sorted((snapshot.mappings[mapping_id] for mapping_id in selected), key=_sort_key)
    offers = _offers_by_laboratory(mappings, snapshot)

    rows: list[LaboratoryRow] = []
    for laboratory_id in sorted(offers):
        offered = offers[laboratory_id]
        prices = {
            mapping.id: offered[mapping.id].price_centimes
            for mapping in mappings
            if mapping.id in offered
        }
        local_names = {
            mapping.id: offered[mapping.id].local_test_name
            for mapping in mappings
            if mapping.id in offered
        }
        missing_names = tuple(
            mapping.canonical_name for mapping in mappings if mapping.id not in offered
        )
        raw_total = sum(prices.values())
        laboratory = snapshot.laboratories[laboratory_id]

        if missing_names:
            rows.append(
                LaboratoryRow(
                    laboratory=laboratory,
                    prices=prices,
                    missing_canonical_names=missing_names,
                    raw_total=raw_total,
                    local_test_names=local_names,
                )
            )
            continue

        bundle = select_best_deal(qualifying_deals(snapshot.deals, selected, prices), prices)
        final_total = raw_total - bundle.discount if bundle is not None else raw_total
        rows.append(
            LaboratoryRow(
                laboratory=laboratory,
                prices=prices,
                missing_canonical_names=(),
                raw_total=raw_total,
                applied_bundle=bundle,
                final_total=final_total,
                local_test_names=local_names,
            )
        )

    rows.sort(key=_row_key)
    complete = [row for row in rows if row.is_complete]
    cheapest = min(complete, key=_row_key).laboratory.id if complete else None

    return ComparisonResult(
        items=tuple(
            ComparisonItem(mapping_id=mapping.id, canonical_name=mapping.canonical_name)
            for mapping in mappings
        ),
        laboratories=tuple(rows),
        cheapest_laboratory_id=cheapest,
        incomplete_laboratories=tuple(
            IncompleteLaboratory(
                laboratory_id=row.laboratory.id,
                missing_canonical_names=row.missing_canonical_names,
            )
            for row in rows
            if not row.is_complete
        ),
        compared_at=snapshot.taken_at,
    )


def _offers_by_laboratory(
    mappings: Iterable[MappingSnapshot], snapshot: CatalogSnapshot
) -> dict[str, dict[str, EntrySnapshot]]:
    offers: dict[str, dict[str, EntrySnapshot]] = {}
    for mapping in mappings:
        for entry in mapping.entries:
            if entry.laboratory_id not in snapshot.laboratories:
                raise ConflictError(
                    f"Entry {entry.entry_id} points at a laboratory missing from the catalog",
                    [entry.entry_id, entry.laboratory_id],
                )
            by_mapping = offers.setdefault(entry.laboratory_id, {})
            if mapping.id in by_mapping:
                raise ConflictError(
                    "A laboratory has more than one entry for the same test mapping",
                    [mapping.id, entry.laboratory_id],
                )
            by_mapping[mapping.id] = entry
    return offers


def _sort_key(mapping: MappingSnapshot) -> tuple[str, str, str]:
    return mapping.sort_key


def _row_key(row: LaboratoryRow) -> tuple[int, int, str]:
    if row.final_total is not None:
        return (0, row.final_total, row.laboratory.id)
    return (1, len(row.missing_canonical_names), row.laboratory.id)


__all__ = ["compare"]
