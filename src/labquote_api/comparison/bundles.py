from __future__ import annotations

from collections.abc import Iterable, Mapping

from labquote_api.comparison.context import AppliedBundle, DealSnapshot

MIN_BUNDLE_SIZE = 2


def qualifying_deals(
    deals: Iterable[DealSnapshot],
    selected: frozenset[str],
    offered: Mapping[str, int],
) -> list[DealSnapshot]:
    """Deals whose whole mapping set is selected and offered by one laboratory."""
    return [
        deal
        for deal in deals
        if len(deal.mapping_ids) >= MIN_BUNDLE_SIZE
        and deal.mapping_ids <= selected
        and all(mapping_id in offered for mapping_id in deal.mapping_ids)
    ]


def select_best_deal(
    deals: Iterable[DealSnapshot], prices: Mapping[str, int]
) -> AppliedBundle | None:
    """Pick the single deal that lowers the total the most.

    Deals never stack. Equal savings go to the lowest deal id and a deal that
    saves nothing is not applied.
    """
    best: AppliedBundle | None = None
    for deal in sorted(deals, key=lambda candidate: candidate.id):
        subtotal = sum(prices[mapping_id] for mapping_id in deal.mapping_ids)
        discount = deal.discount_for(subtotal)
        if discount <= 0:
            continue
        if best is None or discount > best.discount:
            best = AppliedBundle(id=deal.id, name=deal.name, discount=discount)
    return best


__all__ = ["MIN_BUNDLE_SIZE", "qualifying_deals", "select_best_deal"]
