"""Dependency injection container for Ledger Reconciler.

Provides centralized dependency management using a simple container pattern.
Settings decide which database backs the repositories and how the matching
engine is tuned; everything is built lazily on first access and cached.

Usage:
    from ledger_reconciler.container import Container, get_container

    # Get container singleton
    container = get_container()

    # Access services
    service = container.reconciliation_service
"""

from functools import cached_property, lru_cache
from typing import TYPE_CHECKING, Union

from ledger_reconciler.config import DatabaseType, Settings, get_settings
from ledger_reconciler.logging_config import get_logger

if TYPE_CHECKING:
    from ledger_reconciler.repositories.interfaces import (
        LedgerTransactionRepository,
        ReconciliationSessionRepository,
    )
    from ledger_reconciler.repositories.postgres import PostgresDatabase
    from ledger_reconciler.repositories.sqlite import SQLiteDatabase
    from ledger_reconciler.services.concurrency import SessionLockRegistry
    from ledger_reconciler.services.matching import MatchingEngine
    from ledger_reconciler.services.reconciliation import ReconciliationServiceImpl

    Database = Union[SQLiteDatabase, PostgresDatabase]

logger = get_logger(__name__)


class Container:
    """Dependency injection container.

    The container can be configured with custom settings for testing:

        test_settings = Settings(database_type=DatabaseType.SQLITE, sqlite_path=":memory:")
        container = Container(settings=test_settings)
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize the container.

        Args:
            settings: Application settings. If None, loads from environment.
        """
        self._settings = settings or get_settings()
        logger.debug(
            "container_created",
            database_type=self._settings.database_type.value,
            environment=self._settings.environment.value,
        )

    @property
    def settings(self) -> Settings:
        """Get application settings."""
        return self._settings

    @cached_property
    def database(self) -> "Database":
        """Get the database, which is also the unit of work.

        - SQLite for development/testing
        - PostgreSQL when database_type is postgres

        The schema is created on first access.
        """
        if self._settings.database_type == DatabaseType.POSTGRES:
            return self._create_postgres_database()
        return self._create_sqlite_database()

    def _create_sqlite_database(self) -> "SQLiteDatabase":
        from ledger_reconciler.repositories.sqlite import SQLiteDatabase

        db_path = str(self._settings.sqlite_path)
        logger.info("initializing_sqlite_database", path=db_path)

        db = SQLiteDatabase(db_path)
        db.initialize()
        return db

    def _create_postgres_database(self) -> "PostgresDatabase":
        from ledger_reconciler.repositories.postgres import PostgresDatabase

        url = self._settings.database_url
        if not url:
            raise ValueError("database_url must be set when database_type is postgres")

        logger.info(
            "initializing_postgres_database",
            # Don't log the full URL as it may contain credentials
            host=url.split("@")[-1].split("/")[0] if "@" in url else "localhost",
        )

        db = PostgresDatabase(url)
        db.initialize()
        return db

    @cached_property
    def session_repository(self) -> "ReconciliationSessionRepository":
        if self._settings.database_type == DatabaseType.POSTGRES:
            from ledger_reconciler.repositories.postgres import (
                PostgresReconciliationSessionRepository,
            )

            return PostgresReconciliationSessionRepository(self.database)
        from ledger_reconciler.repositories.sqlite import (
            SQLiteReconciliationSessionRepository,
        )

        return SQLiteReconciliationSessionRepository(self.database)

    @cached_property
    def ledger_repository(self) -> "LedgerTransactionRepository":
        if self._settings.database_type == DatabaseType.POSTGRES:
            from ledger_reconciler.repositories.postgres import (
                PostgresLedgerTransactionRepository,
            )

            return PostgresLedgerTransactionRepository(self.database)
        from ledger_reconciler.repositories.sqlite import (
            SQLiteLedgerTransactionRepository,
        )

        return SQLiteLedgerTransactionRepository(self.database)

    @cached_property
    def lock_registry(self) -> "SessionLockRegistry":
        from ledger_reconciler.services.concurrency import SessionLockRegistry

        return SessionLockRegistry(self._settings.lock_timeout_seconds)

    @cached_property
    def matching_engine(self) -> "MatchingEngine":
        from ledger_reconciler.services.matching import MatchingEngine
        from ledger_reconciler.services.scoring import WeightedMatchScorer

        s = self._settings
        return MatchingEngine(
            scorer=WeightedMatchScorer(
                slack_days=s.date_slack_days,
                date_weight=s.date_weight,
                description_weight=s.description_weight,
            ),
            slack_days=s.date_slack_days,
            exact_match_days=s.exact_match_days,
            acceptance_threshold=s.acceptance_threshold,
            workers=s.scoring_workers,
        )

    @cached_property
    def reconciliation_service(self) -> "ReconciliationServiceImpl":
        """Get the reconciliation service for bank statement matching."""
        from ledger_reconciler.services.balance import BalanceReconciler
        from ledger_reconciler.services.candidates import CandidateGenerator
        from ledger_reconciler.services.reconciliation import ReconciliationServiceImpl

        return ReconciliationServiceImpl(
            session_repo=self.session_repository,
            ledger_repo=self.ledger_repository,
            unit_of_work=self.database,
            candidate_generator=CandidateGenerator(
                self.ledger_repository, slack_days=self._settings.date_slack_days
            ),
            matching_engine=self.matching_engine,
            balance_reconciler=BalanceReconciler(self._settings.balance_epsilon),
            lock_registry=self.lock_registry,
            operation_timeout_seconds=self._settings.operation_timeout_seconds,
        )

    def close(self) -> None:
        """Close all resources held by the container.

        Should be called during application shutdown.
        """
        if "database" in self.__dict__:
            logger.info("closing_database_connection")
            self.database.close()

    def __enter__(self) -> "Container":
        """Enter context manager."""
        return self

    def __exit__(self, *args: object) -> None:
        """Exit context manager, closing resources."""
        self.close()


# Module-level container instance
_container: Container | None = None


@lru_cache
def get_container() -> Container:
    """Get the global container singleton.

    The container is created lazily on first access using default settings.
    For testing, create a Container directly with custom settings instead
    of using this function.
    """
    global _container
    if _container is None:
        _container = Container()
    return _container


def set_container(container: Container) -> None:
    """Install a container as the global instance (used by tests and the CLI)."""
    global _container
    reset_container()
    _container = container


def reset_container() -> None:
    """Reset the global container.

    Used primarily for testing to ensure a fresh container state.
    """
    global _container
    if _container is not None:
        _container.close()
        _container = None
    get_container.cache_clear()


# FastAPI dependency functions
def get_reconciliation_service() -> "ReconciliationServiceImpl":
    """FastAPI dependency for reconciliation service."""
    return get_container().reconciliation_service


def get_ledger_repository() -> "LedgerTransactionRepository":
    """FastAPI dependency for ledger transaction access."""
    return get_container().ledger_repository
