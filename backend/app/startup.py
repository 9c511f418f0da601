"""
Application startup validation.

Checks run once before the review service starts serving. Problems that the
service can work around (no upstream credentials, no Redis) are reported as
warnings; problems it cannot (no database, no data source at all) are errors.
"""

import logging
import sys
from typing import List, Tuple

import sqlalchemy as sa
from sqlalchemy import text
from sqlalchemy.engine import Engine
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from core.cache import RedisCacheBackend
from core.config import Settings
from modules.reviews.services.mock_dataset import MockReviewDataset

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ["listings", "reviews", "review_categories", "review_audit_logs"]


class StartupValidator:
    """Validates application startup requirements"""

    def __init__(self, settings: Settings, engine: Engine):
        self.settings = settings
        self.engine = engine
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def check_database_connection(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
            logger.info("Database connection successful")
            return True
        except SQLAlchemyError as e:
            self.errors.append(f"Database connection failed: {str(e)}")
            return False

    def check_required_tables(self) -> bool:
        try:
            existing_tables = sa.inspect(self.engine).get_table_names()
        except SQLAlchemyError as e:
            self.warnings.append(f"Could not check database tables: {str(e)}")
            return True

        missing_tables = [t for t in REQUIRED_TABLES if t not in existing_tables]
        if missing_tables:
            self.warnings.append(f"Missing database tables: {', '.join(missing_tables)}")
        return True

    def check_redis_connection(self) -> bool:
        """Only relevant when the Redis cache backend is selected"""
        if self.settings.cache_backend != "redis":
            return True

        backend = RedisCacheBackend.from_settings(self.settings)
        try:
            backend.client.ping()
            logger.info("Redis connection successful")
            return True
        except RedisError as e:
            if self.settings.environment == "production":
                self.errors.append(f"Redis connection failed in production: {str(e)}")
                return False
            self.warnings.append(f"Redis connection failed: {str(e)} - cache will bypass")
            return True
        finally:
            backend.close()

    def check_data_sources(self) -> bool:
        """At least one of the upstream API and the mock dataset must be usable"""
        mock_available = MockReviewDataset(self.settings.hostaway_mock_data_path).is_available()

        if self.settings.hostaway_mock_mode:
            self.warnings.append("Hostaway mock mode enabled - serving mock reviews only")
        elif not self.settings.hostaway_configured:
            self.warnings.append(
                "HOSTAWAY_ACCOUNT_ID / HOSTAWAY_API_KEY not set - serving mock reviews"
            )

        if not mock_available:
            if self.settings.hostaway_mock_mode or not self.settings.hostaway_configured:
                self.errors.append("No review data source: mock dataset could not be loaded")
                return False
            self.warnings.append("Mock dataset unavailable - no fallback if Hostaway fails")
        return True

    def validate_all(self) -> Tuple[bool, List[str], List[str]]:
        checks = [
            ("Database Connection", self.check_database_connection),
            ("Database Tables", self.check_required_tables),
            ("Redis Connection", self.check_redis_connection),
            ("Review Data Sources", self.check_data_sources),
        ]

        all_passed = True
        for check_name, check_func in checks:
            logger.info(f"Running check: {check_name}")
            if not check_func():
                all_passed = False

        return all_passed, self.errors, self.warnings


def run_startup_checks(settings: Settings, engine: Engine) -> Tuple[bool, List[str]]:
    """Run all startup validation checks"""
    logger.info(f"Starting review service (environment: {settings.environment})")

    validator = StartupValidator(settings, engine)
    passed, errors, warnings = validator.validate_all()

    for warning in warnings:
        logger.warning(f"Startup warning: {warning}")
    for error in errors:
        logger.error(f"Startup error: {error}")

    if not passed and settings.environment == "production":
        logger.error("Cannot start in production with errors!")
        sys.exit(1)
    elif not passed:
        logger.warning(f"Starting in {settings.environment} mode despite errors")
    else:
        logger.info("All startup checks passed")

    return passed, warnings
