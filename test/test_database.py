"""
Tests for the unit-of-work helper
"""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError

from orgtree.database import atomic, is_write_conflict
from orgtree.exceptions import ConflictError, DatabaseError, ErrorCode, OrganizationNotFoundError


class DriverError(Exception):
    def __init__(self, sqlstate=None):
        super().__init__(f"driver error {sqlstate}")
        self.sqlstate = sqlstate


def _driver_error(sqlstate=None) -> DBAPIError:
    return DBAPIError("UPDATE organizations SET path=...", {}, DriverError(sqlstate))


class TestIsWriteConflict:
    @pytest.mark.parametrize("sqlstate", ["40001", "40P01", "55P03"])
    def test_retryable_sqlstates(self, sqlstate):
        assert is_write_conflict(_driver_error(sqlstate)) is True

    def test_integrity_and_operational_errors(self):
        assert is_write_conflict(IntegrityError("INSERT", {}, Exception("duplicate key"))) is True
        assert is_write_conflict(OperationalError("UPDATE", {}, Exception("database is locked"))) is True

    def test_other_errors(self):
        assert is_write_conflict(_driver_error("42601")) is False
        assert is_write_conflict(_driver_error()) is False
        assert is_write_conflict(SQLAlchemyError("mapper misconfigured")) is False


class TestAtomic:
    @pytest.mark.asyncio
    async def test_commits_on_success(self):
        db = AsyncMock()

        async with atomic(db, "move"):
            pass

        db.commit.assert_awaited_once()
        db.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_deadlock_becomes_conflict(self):
        db = AsyncMock()

        with pytest.raises(ConflictError) as exc_info:
            async with atomic(db, "move"):
                raise _driver_error("40P01")

        assert exc_info.value.error_code == ErrorCode.CONFLICT
        assert exc_info.value.details == {"operation": "move"}
        db.rollback.assert_awaited_once()
        db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_commit_is_rolled_back(self):
        db = AsyncMock()
        db.commit.side_effect = OperationalError("COMMIT", {}, Exception("could not serialize access"))

        with pytest.raises(ConflictError):
            async with atomic(db, "reconcile_entitlements"):
                pass

        db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_other_driver_errors_become_database_error(self):
        db = AsyncMock()

        with pytest.raises(DatabaseError) as exc_info:
            async with atomic(db, "delete_organization"):
                raise _driver_error("42601")

        assert exc_info.value.status_code == 500
        db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_domain_errors_pass_through(self):
        db = AsyncMock()

        with pytest.raises(OrganizationNotFoundError):
            async with atomic(db, "move"):
                raise OrganizationNotFoundError("org-1")

        db.rollback.assert_awaited_once()
