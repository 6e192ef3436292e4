"""
Module ORM Registry (``asset_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains its table definition before tables are created.

Architecture position
---------------------
**Modules layer** -- utility.  Imports kernel models, sibling
``asset_modules`` packages and the ``asset_batch`` tables.  MUST NOT be
imported by ``asset_kernel`` except lazily from ``db/engine.py``.

Usage
-----
The CLI and ``tests/conftest.py`` call ``create_all_tables()``.
"""

from sqlalchemy.engine import Engine


def import_all_orm_models() -> None:
    """Import kernel, module and batch ORM modules.  Idempotent."""
    # fmt: off
    import asset_kernel.services.sequence_service  # noqa: F401
    import asset_modules.assets.orm  # noqa: F401
    import asset_batch.models  # noqa: F401  # Depreciation schedule tables
    # fmt: on


def create_all_tables(engine: Engine | None = None) -> None:
    """Create every table.

    Preconditions:
        ``engine`` given, or ``init_engine_from_url()`` already called.
    """
    from asset_kernel.db.engine import create_tables

    import_all_orm_models()
    create_tables(engine)
