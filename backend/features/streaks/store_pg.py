"""
backend/features/streaks/store_pg.py

SQL-backed streak store over the shared SQLAlchemy engine.

Reads ``check_ins`` and writes the ``streak`` / ``streak_updated_on`` columns of
``profiles`` with a per-row atomic upsert, so concurrent per-user workers need
no additional locking.
"""

from typing import List, Optional

from sqlalchemy import inspect, select, update, insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import func

from backend.core.database import check_connection, check_ins, get_db_session, get_engine, init_engine, profiles
from backend.core.errors import FetchError, NotFoundError, PersistError
from backend.features.streaks.store import parse_date
from backend.models.streak import StreakState

REQUIRED_TABLES = ("profiles", "check_ins")

_UPSERT_DIALECTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class PostgresStreakStore:
    """
    SQL streak store.

    Named for production (PostgreSQL); any SQLAlchemy URL works, tests use SQLite.
    """

    def __init__(self, database_url: Optional[str] = None):
        if database_url:
            init_engine(database_url)

    def list_user_ids(self) -> List[str]:
        try:
            with get_db_session() as session:
                rows = session.execute(select(profiles.c.id).order_by(profiles.c.id)).fetchall()
        except SQLAlchemyError as exc:
            raise FetchError(f"Failed to list profiles: {exc}") from exc
        return [row[0] for row in rows if row[0]]

    def list_checkin_timestamps(self, user_id: str) -> List[object]:
        try:
            with get_db_session() as session:
                rows = session.execute(
                    select(check_ins.c.created_at)
                    .where(check_ins.c.user_id == user_id)
                    .order_by(check_ins.c.created_at.desc())
                ).fetchall()
        except SQLAlchemyError as exc:
            raise FetchError(f"Failed to list check-ins: {exc}", user_id=user_id) from exc
        return [row[0] for row in rows]

    def upsert_streak_state(self, user_id: str, state: StreakState) -> None:
        values = {
            "streak": state.streak_count,
            "streak_updated_on": state.last_confirmed_date,
        }
        try:
            with get_db_session() as session:
                dialect_insert = _UPSERT_DIALECTS.get(session.get_bind().dialect.name)
                if dialect_insert is not None:
                    stmt = dialect_insert(profiles).values(id=user_id, **values)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[profiles.c.id],
                        set_={**values, "updated_at": func.now()},
                    )
                    session.execute(stmt)
                else:
                    result = session.execute(
                        update(profiles).where(profiles.c.id == user_id).values(**values, updated_at=func.now())
                    )
                    if not result.rowcount:
                        session.execute(insert(profiles).values(id=user_id, **values))
                session.commit()
        except SQLAlchemyError as exc:
            raise PersistError(f"Failed to save streak state: {exc}", user_id=user_id) from exc

    def get_streak_state(self, user_id: str) -> StreakState:
        try:
            with get_db_session() as session:
                row = session.execute(
                    select(profiles.c.streak, profiles.c.streak_updated_on).where(profiles.c.id == user_id)
                ).first()
        except SQLAlchemyError as exc:
            raise FetchError(f"Failed to read streak state: {exc}", user_id=user_id) from exc
        if row is None:
            raise NotFoundError(f"Unknown user: {user_id}")
        return StreakState(
            streak_count=int(row.streak or 0),
            last_confirmed_date=parse_date(row.streak_updated_on),
        )

    def check_ready(self) -> bool:
        if not check_connection():
            return False
        inspector = inspect(get_engine())
        return all(inspector.has_table(name) for name in REQUIRED_TABLES)
