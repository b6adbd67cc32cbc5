"""
Tests for settings and production validation.
"""

from relay_shared.config.settings import Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.port == 8080
        assert settings.heartbeat_interval == 30.0
        assert settings.shutdown_grace_period == 5.0
        assert settings.status_log_interval == 300.0

    def test_port_from_environment(self, monkeypatch):
        monkeypatch.setenv("PORT", "9001")

        assert Settings(_env_file=None).port == 9001

    def test_origins_unrestricted_by_default(self):
        assert Settings(_env_file=None, allowed_origins="").origins == ["*"]

    def test_origins_parsed(self):
        settings = Settings(
            _env_file=None,
            allowed_origins="http://localhost:3000, https://relay.example.com,",
        )

        assert settings.origins == ["http://localhost:3000", "https://relay.example.com"]


class TestValidateProduction:
    def test_defaults_pass(self):
        assert Settings(_env_file=None).validate_production() == []

    def test_non_positive_timings(self):
        settings = Settings(_env_file=None, heartbeat_interval=0, shutdown_grace_period=-1)

        errors = settings.validate_production()

        assert "HEARTBEAT_INTERVAL must be positive" in errors
        assert "SHUTDOWN_GRACE_PERIOD must be positive" in errors

    def test_grace_period_longer_than_heartbeat(self):
        settings = Settings(_env_file=None, heartbeat_interval=5, shutdown_grace_period=10)

        assert settings.validate_production() == [
            "SHUTDOWN_GRACE_PERIOD should be shorter than HEARTBEAT_INTERVAL"
        ]

    def test_debug_in_production(self):
        settings = Settings(_env_file=None, environment="production", debug=True)

        assert "DEBUG must be False in production" in settings.validate_production()
