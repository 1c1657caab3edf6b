from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from sqlalchemy import Select, update
from sqlalchemy.orm import InstrumentedAttribute, Session


logger = logging.getLogger(__name__)


@dataclass
class MassUpdateResult:
    rows_selected: int = 0
    rows_updated: int = 0


class MassUpdate:
    """Keyset-paginated select followed by bulk primary-key updates.

    ``select`` must return the primary key as its first column and must be
    orderable by ``key_column``. ``handler`` turns each selected row into the
    parameter dict of a bulk UPDATE (it must include the primary key) or
    returns ``None`` to skip the row.
    """

    def __init__(
        self,
        session: Session,
        *,
        model: type,
        key_column: InstrumentedAttribute,
        select: Select,
        batch_size: int,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._session = session
        self._model = model
        self._key_column = key_column
        self._select = select
        self._batch_size = batch_size

    def execute(self, handler: Callable[[Sequence[Any]], dict[str, Any] | None]) -> MassUpdateResult:
        result = MassUpdateResult()
        last_key = None
        while True:
            stmt = self._select.order_by(self._key_column.asc()).limit(self._batch_size)
            if last_key is not None:
                stmt = stmt.where(self._key_column > last_key)
            rows = self._session.execute(stmt).all()
            if not rows:
                break

            params = []
            for row in rows:
                result.rows_selected += 1
                values = handler(row)
                if values is not None:
                    params.append(values)
            if params:
                self._session.execute(update(self._model), params)
                result.rows_updated += len(params)

            last_key = rows[-1][0]
            logger.debug("Mass update processed %d rows up to key %s", len(rows), last_key)
            if len(rows) < self._batch_size:
                break
        return result


class DataChange:
    """One versioned data migration step, executed inside a caller-owned transaction."""

    version: str = ""
    description: str = ""

    def execute(self, session: Session, *, batch_size: int) -> dict[str, int]:
        raise NotImplementedError
