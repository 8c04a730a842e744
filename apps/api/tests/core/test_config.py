"""
Unit tests for settings, including the ERPIS_* fallbacks for the SSH tunnel.
"""

import pytest

from otp_relay.core.config import Settings

TUNNEL_ENV = [
    "SMS_JUMP_SERVER",
    "ERPIS_JUMP_SERVER",
    "SMS_SSH_USER",
    "ERPIS_SSH_USER",
    "SMS_SSH_KEY",
    "ERPIS_SSH_KEY",
    "SMS_SSH_PORT",
    "ERPIS_SSH_PORT",
    "SMS_TENANT_APP_KEY",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in TUNNEL_ENV:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestTunnelSettings:
    def test_defaults(self, clean_env):
        config = Settings(_env_file=None)

        assert config.sms_jump_server is None
        assert config.sms_ssh_user == "ec2-user"
        assert config.sms_ssh_port == 22
        assert config.has_sms_config is False

    def test_erpis_fallback(self, clean_env):
        clean_env.setenv("ERPIS_JUMP_SERVER", "erpis-jump.example.com")
        clean_env.setenv("ERPIS_SSH_KEY", "a2V5")
        clean_env.setenv("ERPIS_SSH_PORT", "2222")

        config = Settings(_env_file=None)

        assert config.sms_jump_server == "erpis-jump.example.com"
        assert config.sms_ssh_key == "a2V5"
        assert config.sms_ssh_port == 2222

    def test_sms_names_take_precedence(self, clean_env):
        clean_env.setenv("SMS_JUMP_SERVER", "sms-jump.example.com")
        clean_env.setenv("ERPIS_JUMP_SERVER", "erpis-jump.example.com")

        assert Settings(_env_file=None).sms_jump_server == "sms-jump.example.com"

    def test_has_sms_config_needs_all_three(self, clean_env):
        clean_env.setenv("SMS_JUMP_SERVER", "jump")
        clean_env.setenv("SMS_SSH_KEY", "a2V5")
        assert Settings(_env_file=None).has_sms_config is False

        clean_env.setenv("SMS_TENANT_APP_KEY", "app-key")
        assert Settings(_env_file=None).has_sms_config is True


class TestGeneralSettings:
    def test_cors_origins_list(self):
        config = Settings(_env_file=None, cors_origins="http://a.com, http://b.com,")
        assert config.cors_origins_list == ["http://a.com", "http://b.com"]

    def test_environment_flags(self):
        assert Settings(_env_file=None, python_env="Production").is_production
        assert Settings(_env_file=None, python_env="development").is_development

    def test_has_email_config(self):
        assert not Settings(_env_file=None, resend_api_key=None).has_email_config
        assert Settings(_env_file=None, resend_api_key="re_x").has_email_config
