from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from labquote_api.comparison.context import ComparisonResult
from labquote_api.comparison.engine import EMPTY_SELECTION_MESSAGE, compare
from labquote_api.comparison.response_builder import build_comparison_response
from labquote_api.comparison.snapshot import SnapshotLoader
from labquote_api.core import metrics
from labquote_api.core.errors import LabquoteError, ValidationError
from labquote_api.schemas.comparison import ComparisonResponse

logger = logging.getLogger(__name__)


class ComparisonService:
    def __init__(self, session: AsyncSession, *, currency: str) -> None:
        self.session = session
        self.currency = currency

    async def run(
        self, mapping_ids: Iterable[str], *, now: datetime | None = None
    ) -> ComparisonResult:
        """Load one consistent snapshot and compare ``mapping_ids`` against it."""
        selected = list(dict.fromkeys(mapping_ids))
        moment = now or datetime.now(UTC)
        try:
            if not selected:
                raise ValidationError(EMPTY_SELECTION_MESSAGE, ["testMappingIds"])
            snapshot = await SnapshotLoader(self.session).load(selected, moment)
            result = compare(selected, snapshot)
        except LabquoteError as exc:
            metrics.increment("comparison.failed", kind=exc.kind)
            logger.info("Comparison rejected (%s): %s", exc.kind, exc.message)
            raise

        metrics.increment("comparison.run")
        logger.info(
            "Compared %d mappings across %d laboratories (cheapest=%s)",
            len(result.items),
            len(result.laboratories),
            result.cheapest_laboratory_id,
        )
        return result

    async def compare(
        self, mapping_ids: Iterable[str], *, now: datetime | None = None
    ) -> ComparisonResponse:
        result = await self.run(mapping_ids, now=now)
        return build_comparison_response(result, currency=self.currency)


__all__ = ["ComparisonService"]
