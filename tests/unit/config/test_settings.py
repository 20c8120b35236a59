"""Unit tests for application settings."""

import pytest
from pydantic import SecretStr, ValidationError

from jpycwatch.config.settings import Settings, get_settings
from jpycwatch.constants.chains import ALCHEMY_RPC_TEMPLATES, DEFAULT_RPC_URLS, ChainId

_ENV_VARS = [
    "DEBUG",
    "LOG_LEVEL",
    "PORT",
    "ALCHEMY_API_KEY",
    "ETHEREUM_RPC_URL",
    "POLYGON_RPC_URL",
    "AVALANCHE_RPC_URL",
    "ETHERSCAN_API_KEY",
    "POLYGONSCAN_API_KEY",
    "SNOWTRACE_API_KEY",
    "MORALIS_API_KEY",
    "BLACKLIST_ADDRESSES",
    "CACHE_DIR",
    "RPC_TIMEOUT_SECONDS",
    "SOURCE_TIMEOUT_SECONDS",
    "PARALLEL_TIMEOUT_SECONDS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate tests from the developer's environment."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def make_settings(**kwargs: object) -> Settings:
    return Settings(_env_file=None, **kwargs)  # type: ignore[arg-type]


class TestSettingsValidation:
    """Tests for Settings validation."""

    def test_default_settings_are_valid(self) -> None:
        """Default settings should pass all validation."""
        settings = make_settings()

        assert settings.port == 8000
        assert settings.debug is False
        assert settings.log_level == "INFO"
        assert settings.cache_dir is None
        assert settings.cache_ttl_seconds == 1800
        assert settings.retry_max_retries == 3
        assert settings.blacklist == []

    def test_port_must_be_valid_range(self) -> None:
        """Port must be between 1 and 65535."""
        with pytest.raises(ValidationError) as exc_info:
            make_settings(port=0)
        assert "greater than or equal to 1" in str(exc_info.value)

        with pytest.raises(ValidationError) as exc_info:
            make_settings(port=70000)
        assert "less than or equal to 65535" in str(exc_info.value)

    def test_log_level_must_be_valid(self) -> None:
        """Log level must be one of the allowed values."""
        for level in ["DEBUG", "INFO", "WARNING", "ERROR"]:
            assert make_settings(log_level=level).log_level == level

        with pytest.raises(ValidationError):
            make_settings(log_level="INVALID")

    def test_pair_deadline_must_fit_primary_and_fallback(self) -> None:
        """A per-operation deadline shorter than two source deadlines is rejected."""
        with pytest.raises(ValidationError, match="twice source_timeout_seconds"):
            make_settings(source_timeout_seconds=12, parallel_timeout_seconds=15)

        settings = make_settings(
            rpc_timeout_seconds=5, source_timeout_seconds=5, parallel_timeout_seconds=11
        )
        assert settings.parallel_timeout_seconds == 11

    def test_source_deadline_must_fit_one_request(self) -> None:
        with pytest.raises(ValidationError, match="rpc_timeout_seconds"):
            make_settings(rpc_timeout_seconds=10, source_timeout_seconds=5)

    def test_rpc_url_must_use_http(self) -> None:
        """RPC URL overrides must use HTTP(S)."""
        make_settings(ethereum_rpc_url="https://eth.example.com")

        with pytest.raises(ValidationError) as exc_info:
            make_settings(ethereum_rpc_url="wss://eth.example.com")
        assert "RPC URL must start with" in str(exc_info.value)

    def test_blank_rpc_url_means_unset(self) -> None:
        assert make_settings(polygon_rpc_url="  ").polygon_rpc_url is None

    def test_values_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ETHERSCAN_API_KEY", "env-key")
        monkeypatch.setenv("RETRY_MAX_RETRIES", "5")

        settings = make_settings()

        assert settings.explorer_api_key_for(ChainId.ETHEREUM) == "env-key"
        assert settings.retry_max_retries == 5


class TestRpcResolution:
    """Tests for Settings.rpc_url_for()."""

    def test_public_default(self) -> None:
        settings = make_settings()

        for chain in ChainId:
            assert settings.rpc_url_for(chain) == DEFAULT_RPC_URLS[chain]

    def test_alchemy_template_when_key_set(self) -> None:
        settings = make_settings(alchemy_api_key=SecretStr("abc"))

        assert settings.rpc_url_for(ChainId.POLYGON) == ALCHEMY_RPC_TEMPLATES[
            ChainId.POLYGON
        ].format(api_key="abc")

    def test_explicit_override_wins(self) -> None:
        settings = make_settings(
            alchemy_api_key=SecretStr("abc"),
            avalanche_rpc_url="https://avax.example.com/rpc",
        )

        assert settings.rpc_url_for(ChainId.AVALANCHE) == "https://avax.example.com/rpc"


class TestHelpers:
    """Tests for key and blacklist helpers."""

    def test_explorer_keys_per_chain(self) -> None:
        settings = make_settings(
            etherscan_api_key=SecretStr("e"),
            polygonscan_api_key=SecretStr("p"),
        )

        assert settings.explorer_api_key_for(ChainId.ETHEREUM) == "e"
        assert settings.explorer_api_key_for(ChainId.POLYGON) == "p"
        assert settings.explorer_api_key_for(ChainId.AVALANCHE) == ""

    def test_blacklist_is_normalized(self) -> None:
        address = "0x" + "AB" * 20
        settings = make_settings(blacklist_addresses=f"{address}, junk,{address.lower()}")

        assert settings.blacklist == [address.lower()]

    def test_secrets_are_masked(self) -> None:
        settings = make_settings(moralis_api_key=SecretStr("secret"))

        assert "secret" not in repr(settings)

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()
