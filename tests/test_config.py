import os
import tempfile
import unittest

from config import build_balance_repository, build_link_repository, load_settings
from infrastructure.db.balance_repository_sqlite import SqliteBalanceRepository
from infrastructure.db.link_repository_sqlite import SqliteIdentityLinkRepository
from infrastructure.http.balance_api_client import HttpBalanceRepository


class LoadSettingsTests(unittest.TestCase):
    def test_defaults(self):
        settings = load_settings({})

        self.assertEqual(settings.balance_backend, "sqlite")
        self.assertEqual(settings.db_path, "balances.db")
        self.assertEqual(settings.store_timeout, 10.0)
        self.assertEqual(settings.command_prefix, "!")
        self.assertIsNone(settings.discord_token)

    def test_values_from_environment(self):
        settings = load_settings(
            {
                "DISCORD_TOKEN": "abc",
                "BALANCE_BACKEND": "HTTP",
                "BALANCE_API_BASE": "https://example.invalid",
                "STORE_TIMEOUT_SECONDS": "2.5",
                "LOG_LEVEL": "debug",
            }
        )

        self.assertEqual(settings.discord_token, "abc")
        self.assertEqual(settings.balance_backend, "http")
        self.assertEqual(settings.store_timeout, 2.5)
        self.assertEqual(settings.log_level, "DEBUG")

    def test_unknown_backend(self):
        with self.assertRaises(RuntimeError):
            load_settings({"BALANCE_BACKEND": "firestore"})

    def test_bad_timeout(self):
        with self.assertRaises(RuntimeError):
            load_settings({"STORE_TIMEOUT_SECONDS": "soon"})


class BuildRepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self._tmpdir.name, "bot.db")

    def tearDown(self) -> None:
        self._tmpdir.cleanup()

    def test_sqlite_backend(self):
        settings = load_settings({"DB_PATH": self.db_path})

        self.assertIsInstance(build_link_repository(settings), SqliteIdentityLinkRepository)
        self.assertIsInstance(build_balance_repository(settings), SqliteBalanceRepository)

    def test_http_backend_keeps_links_local(self):
        settings = load_settings(
            {
                "DB_PATH": self.db_path,
                "BALANCE_BACKEND": "http",
                "BALANCE_API_BASE": "https://example.invalid/",
            }
        )

        self.assertIsInstance(build_link_repository(settings), SqliteIdentityLinkRepository)
        repo = build_balance_repository(settings)
        self.assertIsInstance(repo, HttpBalanceRepository)
        self.assertEqual(repo.base_url, "https://example.invalid")

    def test_http_backend_requires_base_url(self):
        settings = load_settings({"BALANCE_BACKEND": "http"})

        with self.assertRaises(RuntimeError):
            build_balance_repository(settings)


if __name__ == "__main__":
    unittest.main()
