"""Table data service: reads geocodable rows from tenant tables and writes results back.

Tenant tables are addressed by name with SQLAlchemy's lightweight
``table()``/``column()`` constructs, so no ORM mapping is needed. A row is
processable while its status column is NULL; geocoding sets it to true
(geometry stored as WKT) or false (no match).
"""

import re
from collections.abc import Sequence
from typing import Protocol

from sqlalchemy import bindparam, column, func, select, table, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.expression import TableClause

from geocoding_jobs.core.config import Settings
from geocoding_jobs.lib.backends.base import BackendResults, SourceRow
from geocoding_jobs.lib.jobs.errors import GeocodingValidationError
from geocoding_jobs.models.geocoding import Geocoding

_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


class TableDataProvider(Protocol):
    """Source of geocodable rows for a geocoding job."""

    async def processable_row_count(self, job: Geocoding) -> int:
        """Number of rows currently eligible for geocoding."""
        ...

    async def fetch_rows(self, job: Geocoding, fields: Sequence[str], limit: int | None = None) -> list[SourceRow]:
        """Eligible rows with the given columns, at most ``limit`` of them."""
        ...

    async def store_results(self, job: Geocoding, results: BackendResults) -> int:
        """Write per-row outcomes back to the table; returns rows updated."""
        ...


class SqlTableDataProvider:
    """TableDataProvider over tables living in the application database.

    Changes are flushed but not committed; the caller commits them together
    with the job's state change.
    """

    def __init__(self, session: AsyncSession, settings: Settings) -> None:
        self._session = session
        self._row_id = settings.geocoding_row_id_column
        self._status = settings.geocoding_status_column
        self._geometry = settings.geocoding_geometry_column

    def _table(self, job: Geocoding, fields: Sequence[str] = ()) -> TableClause:
        if not job.table_name or not _TABLE_NAME_RE.match(job.table_name):
            raise GeocodingValidationError({"table_name": ["is not a valid table name"]})
        names = dict.fromkeys([self._row_id, self._status, self._geometry, *fields])
        return table(job.table_name, *(column(name) for name in names))

    async def processable_row_count(self, job: Geocoding) -> int:
        t = self._table(job)
        result = await self._session.execute(select(func.count()).select_from(t).where(t.c[self._status].is_(None)))
        return int(result.scalar_one())

    async def fetch_rows(self, job: Geocoding, fields: Sequence[str], limit: int | None = None) -> list[SourceRow]:
        t = self._table(job, fields)
        query = (
            select(t.c[self._row_id], *(t.c[name] for name in fields if name != self._row_id))
            .where(t.c[self._status].is_(None))
            .order_by(t.c[self._row_id])
        )
        if limit is not None:
            query = query.limit(limit)

        result = await self._session.execute(query)
        rows: list[SourceRow] = []
        for row in result.all():
            values = dict(row._mapping)
            rows.append(SourceRow(row_id=int(values[self._row_id]), values=values))
        return rows

    async def store_results(self, job: Geocoding, results: BackendResults) -> int:
        t = self._table(job)
        matched = [
            {"match_id": match.row_id, "match_geometry": match.geometry.wkt}
            for match in results.matches
            if match.geometry is not None
        ]
        unmatched = [{"match_id": match.row_id} for match in results.matches if match.geometry is None]

        if matched:
            await self._session.execute(
                update(t)
                .where(t.c[self._row_id] == bindparam("match_id"))
                .values({t.c[self._geometry]: bindparam("match_geometry"), t.c[self._status]: True}),
                matched,
            )
        if unmatched:
            await self._session.execute(
                update(t).where(t.c[self._row_id] == bindparam("match_id")).values({t.c[self._status]: False}),
                unmatched,
            )
        await self._session.flush()
        return len(matched) + len(unmatched)
