"""Smoke tests for application startup and wiring."""

from unittest.mock import MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from app.main import create_app
from app.startup import StartupValidator, run_startup_checks
from core.config import Settings
from core.database import Base


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    yield test_engine
    test_engine.dispose()


def _settings(**overrides) -> Settings:
    fields = dict(cache_backend="memory", environment="development")
    fields.update(overrides)
    return Settings(**fields)


class TestStartupValidator:
    def test_bundled_mock_data_is_enough_to_start(self, engine):
        Base.metadata.create_all(bind=engine)

        passed, errors, warnings = StartupValidator(_settings(), engine).validate_all()

        assert passed is True
        assert errors == []
        assert any("serving mock reviews" in w for w in warnings)

    def test_missing_tables_are_a_warning(self, engine):
        passed, errors, warnings = StartupValidator(_settings(), engine).validate_all()

        assert passed is True
        assert any("Missing database tables" in w for w in warnings)

    def test_no_data_source_is_an_error(self, engine, tmp_path):
        settings = _settings(hostaway_mock_data_path=str(tmp_path / "missing.json"))

        passed, errors, _ = StartupValidator(settings, engine).validate_all()

        assert passed is False
        assert errors == ["No review data source: mock dataset could not be loaded"]

    def test_configured_upstream_only_warns_without_mock(self, engine, tmp_path):
        settings = _settings(
            hostaway_account_id="61148",
            hostaway_api_key="key",
            hostaway_mock_data_path=str(tmp_path / "missing.json"),
        )

        passed, _, warnings = StartupValidator(settings, engine).validate_all()

        assert passed is True
        assert "Mock dataset unavailable - no fallback if Hostaway fails" in warnings

    @pytest.mark.parametrize("environment,passes", [("development", True), ("production", False)])
    def test_redis_failure(self, engine, environment, passes):
        backend = MagicMock()
        backend.client.ping.side_effect = RedisConnectionError("refused")
        settings = _settings(cache_backend="redis", environment=environment)

        with patch("app.startup.RedisCacheBackend") as backend_cls:
            backend_cls.from_settings.return_value = backend
            result = StartupValidator(settings, engine).check_redis_connection()

        assert result is passes
        backend.close.assert_called_once()

    def test_production_errors_stop_the_process(self, engine, tmp_path):
        settings = _settings(
            environment="production",
            hostaway_mock_data_path=str(tmp_path / "missing.json"),
        )

        with pytest.raises(SystemExit):
            run_startup_checks(settings, engine)


def test_provider_routes_registered_before_review_lookup(engine):
    app = create_app(app_settings=_settings(), engine=engine, run_checks=False)

    paths = [route.path for route in app.router.routes]

    assert paths.index("/api/reviews/hostaway") < paths.index("/api/reviews/{review_id}")
    assert paths.index("/api/reviews/google/health") < paths.index("/api/reviews/{review_id}")
    assert "/api/reviews/hostaway/cache/invalidate" in paths
    assert "/api/listings/slug/{slug}" in paths
