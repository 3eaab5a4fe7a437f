"""
Schema Patcher
==============
Idempotent, in-place schema evolution.

Each patch inspects the live table and only issues ``ALTER TABLE ... ADD
COLUMN`` when the column is absent, so running the patcher repeatedly is
safe. Missing tables are created from the ORM metadata, the system roles
are seeded and legacy users are linked to a role.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

from sqlalchemy import inspect, select, text, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

import metrics as app_metrics
from exceptions import MigrationError
from logging_config import get_logger
from models import Base, Role, User
from services.permissions import SYSTEM_ROLES, system_role_name_for

logger = get_logger(__name__)


@dataclass(frozen=True)
class ColumnPatch:
    """A column that older databases may be missing."""
    table: str
    column: str
    ddl: str

    @property
    def statement(self) -> str:
        return f"ALTER TABLE {self.table} ADD COLUMN {self.column} {self.ddl}"


COLUMN_PATCHES: List[ColumnPatch] = [
    ColumnPatch("project_equipment", "actual_return_date", "TIMESTAMP"),
    ColumnPatch("project_equipment", "assigned_by", "INTEGER REFERENCES users(id)"),
    ColumnPatch("project_equipment", "is_shared", "BOOLEAN NOT NULL DEFAULT false"),
    ColumnPatch("project_equipment", "authorization_code", "VARCHAR(100)"),
    ColumnPatch("users", "custom_role_id", "INTEGER REFERENCES roles(id)"),
    ColumnPatch("projects", "image", "VARCHAR(500)"),
]


def _existing_schema(sync_conn) -> Dict[str, set]:
    inspector = inspect(sync_conn)
    return {
        table: {col["name"] for col in inspector.get_columns(table)}
        for table in inspector.get_table_names()
    }


async def create_missing_tables(engine: AsyncEngine) -> List[str]:
    """Create tables declared in the metadata but absent from the database."""
    async with engine.begin() as conn:
        before = set((await conn.run_sync(_existing_schema)).keys())
        await conn.run_sync(Base.metadata.create_all)
        after = set((await conn.run_sync(_existing_schema)).keys())
    return sorted(after - before)


async def apply_column_patches(
    engine: AsyncEngine,
    patches: List[ColumnPatch] = COLUMN_PATCHES,
) -> List[str]:
    """
    Add columns that are missing from existing tables.

    Returns:
        "table.column" names that were added
    """
    added: List[str] = []

    async with engine.begin() as conn:
        schema = await conn.run_sync(_existing_schema)

        for patch in patches:
            columns = schema.get(patch.table)
            if columns is None:
                logger.warning("Skipping patch for missing table", table=patch.table, column=patch.column)
                continue
            if patch.column in columns:
                continue

            logger.info("Adding column", table=patch.table, column=patch.column)
            await conn.execute(text(patch.statement))
            columns.add(patch.column)
            added.append(f"{patch.table}.{patch.column}")

    return added


async def seed_system_roles(session: AsyncSession) -> List[str]:
    """Insert the built-in roles that do not exist yet."""
    result = await session.execute(select(Role.name))
    existing = set(result.scalars().all())

    seeded = []
    for name, spec in SYSTEM_ROLES.items():
        if name in existing:
            continue
        session.add(Role(
            name=name,
            description=spec["description"],
            is_system_role=True,
            **spec["permissions"],
        ))
        seeded.append(name)

    await session.flush()
    return seeded


async def backfill_user_roles(session: AsyncSession) -> int:
    """Point users without a custom role at the system role matching their legacy role."""
    result = await session.execute(select(Role.id, Role.name).where(Role.is_system_role.is_(True)))
    role_ids = {name: role_id for role_id, name in result.all()}

    result = await session.execute(select(User.id, User.role).where(User.custom_role_id.is_(None)))
    updated = 0
    for user_id, legacy_role in result.all():
        role_id = role_ids.get(system_role_name_for(legacy_role))
        if role_id is None:
            continue
        await session.execute(
            update(User).where(User.id == user_id).values(custom_role_id=role_id)
        )
        updated += 1

    return updated


async def apply_schema_patches(engine: AsyncEngine) -> Dict[str, Any]:
    """
    Bring the database schema and seed data up to date.

    Returns:
        Dict with the tables created, columns added, roles seeded and the
        number of users backfilled. Every count is zero on a second run.

    Raises:
        MigrationError: If any step fails
    """
    step = "create_tables"
    try:
        tables_created = await create_missing_tables(engine)

        step = "column_patches"
        columns_added = await apply_column_patches(engine)

        step = "seed_roles"
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        async with session_factory() as session:
            roles_seeded = await seed_system_roles(session)

            step = "backfill_roles"
            users_backfilled = await backfill_user_roles(session)
            await session.commit()

    except Exception as e:
        logger.error("Schema patch failed", step=step, error=str(e), exc_info=True)
        raise MigrationError(f"Schema patch failed during {step}: {e}", step=step, original_error=e) from e

    app_metrics.schema_patches_applied_total.labels(kind="table").inc(len(tables_created))
    app_metrics.schema_patches_applied_total.labels(kind="column").inc(len(columns_added))

    stats = {
        "tables_created": tables_created,
        "columns_added": columns_added,
        "roles_seeded": roles_seeded,
        "users_backfilled": users_backfilled,
    }
    logger.info(
        "Schema patches applied",
        tables_created=len(tables_created),
        columns_added=len(columns_added),
        roles_seeded=len(roles_seeded),
        users_backfilled=users_backfilled,
    )
    return stats
