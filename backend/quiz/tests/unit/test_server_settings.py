import pytest
from pydantic import ValidationError

from quiz.server.settings import QuizServerSettings


class TestQuizServerSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("QUIZ_DEV_ENDPOINTS", raising=False)
        settings = QuizServerSettings()
        assert settings.idempotency_ttl_seconds == 600
        assert settings.idempotency_max_per_session == 128
        assert settings.session_idle_timeout_seconds == 900
        assert settings.missing_role_alert_threshold_seconds == 30
        assert (settings.ws_messages_per_second, settings.ws_burst, settings.ws_max_decode_errors) == (20.0, 40, 5)
        assert settings.dev_endpoints is False

    def test_values_from_env(self, monkeypatch):
        monkeypatch.setenv("QUIZ_IDEMPOTENCY_TTL_SECONDS", "60")
        monkeypatch.setenv("QUIZ_DEV_ENDPOINTS", "true")
        settings = QuizServerSettings()
        assert settings.idempotency_ttl_seconds == 60
        assert settings.dev_endpoints is True

    def test_cors_origins_json_array(self, monkeypatch):
        monkeypatch.setenv("QUIZ_CORS_ORIGINS", '["http://a.com","http://b.com"]')
        settings = QuizServerSettings()
        assert settings.cors_origins == ["http://a.com", "http://b.com"]

    def test_cors_origins_csv(self, monkeypatch):
        monkeypatch.setenv("QUIZ_CORS_ORIGINS", "http://a.com, http://b.com")
        settings = QuizServerSettings()
        assert settings.cors_origins == ["http://a.com", "http://b.com"]

    def test_cors_origins_empty_rejected(self, monkeypatch):
        monkeypatch.setenv("QUIZ_CORS_ORIGINS", "")
        with pytest.raises(ValidationError, match="cors_origins"):
            QuizServerSettings()

    @pytest.mark.parametrize(
        "field",
        [
            "idempotency_ttl_seconds",
            "idempotency_max_per_session",
            "session_idle_timeout_seconds",
            "session_eviction_interval_seconds",
            "missing_role_alert_threshold_seconds",
            "ws_messages_per_second",
            "ws_burst",
            "ws_max_decode_errors",
        ],
    )
    @pytest.mark.parametrize("value", [0, -1])
    def test_non_positive_rejected(self, field, value):
        with pytest.raises(ValidationError, match=field):
            QuizServerSettings(**{field: value})

    def test_log_dir_empty_rejected(self):
        with pytest.raises(ValidationError, match="log_dir"):
            QuizServerSettings(log_dir="")
