import unittest
from datetime import timezone
from unittest.mock import MagicMock, patch

from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

from portfolio_backend.db import (
    DuplicateEmailError,
    InMemoryDbClient,
    SqlDbClient,
    StorageError,
    is_transient_error,
    run_with_retry,
)


def _operational_error(message: str) -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception(message))


class SqlDbClientTests(unittest.TestCase):
    """
    Uses in-memory SQLite through SQLAlchemy, the same engine the service runs on.
    """

    def setUp(self):
        self.db = SqlDbClient("sqlite+pysqlite:///:memory:", retry_delay_seconds=0)
        self.db.initialize()

    def tearDown(self):
        self.db.close()

    def test_initialize_creates_tables_and_is_idempotent(self):
        self.db.initialize()
        tables = set(inspect(self.db.engine).get_table_names())
        self.assertEqual(tables, {"users", "projects"})

    def test_initialize_failure_names_table(self):
        db = SqlDbClient("sqlite+pysqlite:////nonexistent-dir/nested/portfolio.db")
        with self.assertRaises(StorageError) as ctx:
            db.initialize()
        self.assertIn("users", str(ctx.exception))
        db.close()

    def test_create_and_get_user(self):
        user = self.db.create_user("Ada", "ada@example.com", "Hi")
        self.assertEqual(user.id, 1)
        self.assertEqual(user.created_at.tzinfo, timezone.utc)
        fetched = self.db.get_user(user.id)
        self.assertEqual(fetched, user)
        self.assertIsNone(self.db.get_user(999))

    def test_duplicate_email_raises(self):
        self.db.create_user("Ada", "ada@example.com")
        with self.assertRaises(DuplicateEmailError):
            self.db.create_user("Imposter", "ada@example.com")
        self.assertEqual(len(self.db.list_users()), 1)

    def test_update_and_delete_user(self):
        user = self.db.create_user("Ada", "ada@example.com")
        self.assertTrue(self.db.update_user(user.id, "Ada L.", "ada@example.com", "x"))
        self.assertFalse(self.db.update_user(9999, "Nobody", "n@example.com", ""))
        updated = self.db.get_user(user.id)
        self.assertEqual(updated.name, "Ada L.")
        self.assertEqual(updated.created_at, user.created_at)

        self.assertTrue(self.db.delete_user(user.id))
        self.assertFalse(self.db.delete_user(user.id))

    def test_update_user_email_collision(self):
        self.db.create_user("One", "one@example.com")
        two = self.db.create_user("Two", "two@example.com")
        with self.assertRaises(DuplicateEmailError):
            self.db.update_user(two.id, "Two", "one@example.com", "")
        self.assertEqual(self.db.get_user(two.id).email, "two@example.com")

    def test_deleted_ids_are_not_reused(self):
        first = self.db.create_user("A", "a@example.com")
        self.db.delete_user(first.id)
        second = self.db.create_user("B", "b@example.com")
        self.assertGreater(second.id, first.id)

    def test_projects_roundtrip_and_order(self):
        older = self.db.create_project("Old")
        newer = self.db.create_project("New", technologies="Python")
        self.assertEqual([p.id for p in self.db.list_projects()], [newer.id, older.id])
        self.assertEqual(self.db.get_project(older.id).description, "")

        self.assertTrue(self.db.update_project(older.id, "Old v2", "d", "t", "l"))
        self.assertEqual(self.db.get_project(older.id).title, "Old v2")
        self.assertTrue(self.db.delete_project(older.id))
        self.assertIsNone(self.db.get_project(older.id))

    def test_operational_failure_becomes_storage_error(self):
        db = SqlDbClient("sqlite+pysqlite:///:memory:")
        # Tables were never created.
        with self.assertRaises(StorageError) as ctx:
            db.list_users()
        self.assertIn("no such table", str(ctx.exception))
        db.close()

    def test_operations_retry_transient_errors(self):
        self.db.create_user("Ada", "ada@example.com")
        real_session = self.db.Session
        calls = []

        def flaky_session():
            calls.append(1)
            if len(calls) == 1:
                raise _operational_error("database is locked")
            return real_session()

        with patch.object(self.db, "Session", side_effect=flaky_session):
            users = self.db.list_users()
        self.assertEqual([u.email for u in users], ["ada@example.com"])
        self.assertEqual(len(calls), 2)

    def test_exhausted_retries_become_storage_error(self):
        with patch.object(
            self.db, "Session", side_effect=_operational_error("database is locked")
        ) as mock_session:
            with self.assertRaises(StorageError) as ctx:
                self.db.get_project(1)
        self.assertIn("locked", str(ctx.exception))
        self.assertEqual(mock_session.call_count, 3)

    def test_out_of_range_ids_match_nothing(self):
        huge = 2**64
        self.assertIsNone(self.db.get_user(huge))
        self.assertFalse(self.db.update_user(huge, "A", "a@example.com", ""))
        self.assertFalse(self.db.delete_user(-huge))
        self.assertIsNone(self.db.get_project(huge))
        self.assertFalse(self.db.update_project(huge, "T", "", "", ""))
        self.assertFalse(self.db.delete_project(huge))


class InMemoryDbClientTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.db.initialize()

    def test_unique_email(self):
        self.db.create_user("Ada", "ada@example.com")
        with self.assertRaises(DuplicateEmailError):
            self.db.create_user("Other", "ada@example.com")

    def test_update_keeps_own_email(self):
        user = self.db.create_user("Ada", "ada@example.com")
        self.assertTrue(self.db.update_user(user.id, "Ada", "ada@example.com", "new"))
        self.assertEqual(self.db.get_user(user.id).message, "new")

    def test_list_newest_first(self):
        first = self.db.create_project("First")
        second = self.db.create_project("Second")
        self.assertEqual([p.id for p in self.db.list_projects()], [second.id, first.id])

    def test_reset(self):
        self.db.create_user("Ada", "ada@example.com")
        self.db.reset()
        self.assertEqual(self.db.list_users(), [])
        self.assertEqual(self.db.create_user("Bo", "bo@example.com").id, 1)


class RetryTests(unittest.TestCase):
    def test_transient_classification(self):
        self.assertTrue(is_transient_error(_operational_error("database is locked")))
        self.assertTrue(is_transient_error(_operational_error("database table is busy")))
        self.assertFalse(is_transient_error(_operational_error("no such table: users")))
        self.assertFalse(is_transient_error(ValueError("locked")))

    def test_retries_transient_errors_then_succeeds(self):
        operation = MagicMock(
            side_effect=[_operational_error("database is locked"), "ok"]
        )
        self.assertEqual(run_with_retry(operation, attempts=3, delay_seconds=0), "ok")
        self.assertEqual(operation.call_count, 2)

    def test_gives_up_after_attempts(self):
        operation = MagicMock(side_effect=_operational_error("database is locked"))
        with self.assertRaises(OperationalError):
            run_with_retry(operation, attempts=3, delay_seconds=0)
        self.assertEqual(operation.call_count, 3)

    def test_non_transient_errors_are_not_retried(self):
        operation = MagicMock(side_effect=DuplicateEmailError("a@b.co"))
        with self.assertRaises(DuplicateEmailError):
            run_with_retry(operation, attempts=3, delay_seconds=0)
        self.assertEqual(operation.call_count, 1)

    def test_rejects_zero_attempts(self):
        with self.assertRaises(ValueError):
            run_with_retry(lambda: None, attempts=0)


if __name__ == "__main__":
    unittest.main()
