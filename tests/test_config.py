"""Test configuration loading."""

import pytest

from divergence_arb.config import Config


CONFIG_YAML = """
exchanges:
  left:
    name: gateio
    ccxt_id: gate
    symbol_suffix: _USDT
    fee_rate: 0.0002
    account:
      key: ${TEST_GATE_KEY}
      secret: ${TEST_GATE_SECRET}
  right:
    name: orderly
    ccxt_id: woofipro
    symbol_prefix: PERP_
    symbol_suffix: _USDC
    settle: USDC
monitor:
  pause_threshold_pct: 0.8
  min_volume: 0
"""


class TestConfig:
    """Test defaults and YAML loading."""

    def test_defaults(self):
        config = Config.default()
        assert config.exchanges.left.name == "gateio"
        assert config.exchanges.right.symbol_prefix == "PERP_"
        assert config.monitor.pause_threshold_pct == 0.5
        assert config.monitor.min_volume == 300000
        assert config.trading.min_order_amount == 12.0
        assert config.alerts is None

    def test_load_with_env_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_GATE_KEY", "abc123")
        monkeypatch.setenv("TEST_GATE_SECRET", "s3cret")
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)

        config = Config.load_from_file(str(path))

        assert config.exchanges.left.account.key == "abc123"
        assert config.exchanges.left.account.is_complete is True
        assert config.exchanges.left.fee_rate == 0.0002
        assert config.monitor.pause_threshold_pct == 0.8
        assert config.monitor.interval_sec == 1.0

    def test_unset_env_leaves_credentials_missing(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TEST_GATE_KEY", raising=False)
        monkeypatch.delenv("TEST_GATE_SECRET", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)

        config = Config.load_from_file(str(path))

        assert config.exchanges.left.account.key is None
        assert config.exchanges.left.account.is_complete is False

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config.load_from_file(str(tmp_path / "nope.yaml"))
