"""Detects optional remote columns and degrades payloads on rejection."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from taskboard.core.exceptions import SchemaMismatchError
from taskboard.services.mapper import CATEGORIES_COLUMN, task_mapper

logger = logging.getLogger(__name__)

RemoteCall = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


@dataclass
class RemoteCapabilities:
    """What the remote schema is known to accept in this session.

    ``None`` means not probed yet.
    """

    categories_supported: Optional[bool] = None

    @property
    def include_categories(self) -> bool:
        return self.categories_supported is not False


class CapabilityProber:
    """Sends task payloads, dropping the categories column once it is rejected."""

    @staticmethod
    async def send(
        call: RemoteCall,
        changes: Mapping[str, Any],
        capabilities: RemoteCapabilities,
        *,
        include_timestamps: bool = True,
    ) -> Dict[str, Any]:
        """Map ``changes`` to wire fields and invoke ``call``.

        On a categories schema mismatch the flag on ``capabilities`` is
        cleared and the call is repeated exactly once without the column.
        """
        fields = task_mapper.to_wire(
            changes,
            include_timestamps=include_timestamps,
            include_categories=capabilities.include_categories,
        )
        if not fields and CATEGORIES_COLUMN in changes:
            # Only categories were changed and the remote cannot store them.
            raise SchemaMismatchError(CATEGORIES_COLUMN)
        try:
            row = await call(fields)
        except SchemaMismatchError as exc:
            if exc.field != CATEGORIES_COLUMN or CATEGORIES_COLUMN not in fields:
                raise
            capabilities.categories_supported = False
            logger.warning("Remote schema rejected categories; omitting them for this session")

            degraded = task_mapper.to_wire(
                changes,
                include_timestamps=include_timestamps,
                include_categories=False,
            )
            if not degraded:
                # Nothing left to write once categories are dropped.
                raise
            return await call(degraded)

        if CATEGORIES_COLUMN in fields:
            capabilities.categories_supported = True
        return row


capability_prober = CapabilityProber()
