"""SQL helpers shared by services"""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def upsert_insert(db: AsyncSession, model):
    """
    Dialect-specific INSERT supporting ``on_conflict_do_update``.

    PostgreSQL in production, SQLite for local runs and tests; both spell
    the upsert the same way through SQLAlchemy.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upsert not supported for dialect {dialect!r}")
