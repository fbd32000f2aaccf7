"""
Tests for secure configuration management

Covers validation of every config section, environment loading and the
SYNC_PROJECTS parser.
"""

import pytest

from dashsync.secure_config import (
    DEFAULT_SYNC_TARGETS,
    AzureDevOpsConfig,
    ConfigurationError,
    PollingConfig,
    RealtimeConfig,
    SecureConfig,
    SyncJobConfig,
    SyncTarget,
    ValidationThresholds,
    parse_sync_targets,
    validate_config_on_startup,
)

VALID_PAT = "k" * 52


class TestAzureDevOpsConfig:
    def test_valid_config(self):
        config = AzureDevOpsConfig(organization_url="https://dev.azure.com/contoso", pat=VALID_PAT, project="Product")

        assert config.project == "Product"

    @pytest.mark.parametrize(
        "url,message",
        [
            ("", "ADO_ORGANIZATION_URL is required"),
            ("http://dev.azure.com/contoso", "must use HTTPS"),
            ("https://example.org/contoso", "valid Azure DevOps URL"),
        ],
    )
    def test_invalid_url(self, url, message):
        with pytest.raises(ConfigurationError, match=message):
            AzureDevOpsConfig(organization_url=url, pat=VALID_PAT)

    @pytest.mark.parametrize(
        "pat,message",
        [
            ("", "ADO_PAT is required"),
            ("short", "too short"),
            ("your_pat_here_please_change_me", "placeholder"),
        ],
    )
    def test_invalid_pat(self, pat, message):
        with pytest.raises(ConfigurationError, match=message):
            AzureDevOpsConfig(organization_url="https://dev.azure.com/contoso", pat=pat)

    def test_project_with_injection_characters_rejected(self):
        with pytest.raises(ConfigurationError, match="invalid characters"):
            AzureDevOpsConfig(organization_url="https://dev.azure.com/contoso", pat=VALID_PAT, project="P'; DROP")


class TestRealtimeConfig:
    def test_defaults(self):
        config = RealtimeConfig()

        assert config.stream_url == "http://localhost:8000/api/sse/dashboard"
        assert config.grace_period == 5.0
        assert config.heartbeat_timeout == 60.0
        assert config.max_reconnect_attempts == 5

    def test_stream_url_joins_without_double_slash(self):
        assert RealtimeConfig(server_url="https://dash.test/").stream_url == "https://dash.test/api/sse/dashboard"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"server_url": "ftp://dash.test"},
            {"sse_endpoint": "api/sse"},
            {"grace_period": 0},
            {"reconnect_base_delay": 10, "reconnect_max_delay": 5},
            {"max_reconnect_attempts": 0},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigurationError):
            RealtimeConfig(**kwargs)


class TestPollingConfig:
    def test_defaults(self):
        config = PollingConfig()

        assert (config.default_interval, config.min_interval, config.max_error_interval) == (30.0, 5.0, 300.0)
        assert config.max_retries == 10

    @pytest.mark.parametrize(
        "kwargs",
        [{"default_interval": 2}, {"max_error_interval": 1}, {"max_retries": 0}, {"request_timeout": 0}],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigurationError):
            PollingConfig(**kwargs)


class TestValidationThresholds:
    def test_to_dict(self):
        assert ValidationThresholds().to_dict() == {
            "maxDateDiscrepancyDays": 1,
            "maxWorkItemCountDelta": 5,
            "syncFrequencyMinutes": 15,
            "alertThresholdHours": 2,
            "performanceSampleCap": 100,
        }

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_date_discrepancy_days": -1}, {"max_work_item_count_delta": -1}, {"alert_threshold_hours": 0}],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigurationError):
            ValidationThresholds(**kwargs)


class TestSyncJobConfig:
    def test_defaults(self):
        config = SyncJobConfig()

        assert config.interval_minutes == 15
        assert config.business_hours == (8, 18)
        assert config.weekdays_only is True
        assert config.projects == DEFAULT_SYNC_TARGETS

    @pytest.mark.parametrize("hours", [(18, 8), (-1, 10), (8, 24)])
    def test_invalid_business_hours(self, hours):
        with pytest.raises(ConfigurationError, match="Invalid business_hours"):
            SyncJobConfig(business_hours=hours)

    def test_duplicate_projects_rejected(self):
        target = SyncTarget("Dash", "Product", "Team")

        with pytest.raises(ConfigurationError, match="duplicate"):
            SyncJobConfig(projects=(target, target))


class TestParseSyncTargets:
    def test_parses_entries(self):
        targets = parse_sync_targets("Dash A|Product|Team A; Dash B | Product | Team B ;")

        assert targets == (SyncTarget("Dash A", "Product", "Team A"), SyncTarget("Dash B", "Product", "Team B"))

    @pytest.mark.parametrize("raw", ["Dash|Product", "Dash||Team", "a|b|c|d"])
    def test_malformed_entry(self, raw):
        with pytest.raises(ConfigurationError, match="frontendId\\|azureProject\\|team"):
            parse_sync_targets(raw)


class TestSecureConfigFromEnvironment:
    def test_realtime_offline_mode(self, monkeypatch):
        monkeypatch.setenv("DASHBOARD_OFFLINE_MODE", "true")
        monkeypatch.setenv("SSE_GRACE_PERIOD_SECONDS", "2.5")

        config = SecureConfig().get_realtime_config()

        assert config.push_enabled is False
        assert config.grace_period == 2.5

    def test_non_numeric_value_rejected(self, monkeypatch):
        monkeypatch.setenv("POLLING_INTERVAL_SECONDS", "soon")

        with pytest.raises(ConfigurationError, match="POLLING_INTERVAL_SECONDS must be a number"):
            SecureConfig().get_polling_config()

    def test_sync_projects_override(self, monkeypatch):
        monkeypatch.setenv("SYNC_PROJECTS", "Dash|Product|Team")
        monkeypatch.setenv("SYNC_WEEKDAYS_ONLY", "false")

        config = SecureConfig().get_sync_job_config()

        assert config.projects == (SyncTarget("Dash", "Product", "Team"),)
        assert config.weekdays_only is False

    def test_missing_ado_credentials(self, monkeypatch):
        monkeypatch.setenv("ADO_ORGANIZATION_URL", "")
        monkeypatch.setenv("ADO_PAT", "")

        with pytest.raises(ConfigurationError, match="ADO_ORGANIZATION_URL is required"):
            SecureConfig().get_ado_config()


class TestValidateConfigOnStartup:
    def test_unknown_section(self):
        with pytest.raises(ValueError, match="Unknown service: email"):
            validate_config_on_startup(["email"])

    def test_defaults_validate(self, monkeypatch):
        for name in ("DASHBOARD_SERVER_URL", "POLLING_INTERVAL_SECONDS", "SYNC_PROJECTS"):
            monkeypatch.delenv(name, raising=False)

        validate_config_on_startup(["realtime", "polling", "validation", "sync"])
