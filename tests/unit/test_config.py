# PATH: tests/unit/test_config.py
"""
Unit tests for configuration loading.
"""

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from config import (
    SamplerConfig,
    SimulationConfig,
    load_simulation_config,
    load_yaml,
)
from core.constants import DEFAULT_FUNDING_HEADROOM_WEI, ErrorCode
from core.exceptions import ConfigurationError

CONFIG_DIR = Path(__file__).parent.parent.parent / "config"


class TestConfigLoading(unittest.TestCase):
    """Tests for config loading functions."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        env = {k: v for k, v in os.environ.items() if not k.startswith("PRICE_")}
        self._env = patch.dict(os.environ, env, clear=True)
        self._env.start()
        self._dotenv = patch("config.load_dotenv")
        self._dotenv.start()

    def tearDown(self):
        self._dotenv.stop()
        self._env.stop()
        self._tmp.cleanup()

    def _write(self, text: str) -> Path:
        path = self.tmp / "simulation.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_config_dir_exists(self):
        """Config directory exists."""
        self.assertTrue(CONFIG_DIR.exists())

    def test_load_yaml_by_name(self):
        """Can load simulation.yaml from the config directory."""
        data = load_yaml("simulation.yaml")

        self.assertIn("simulation", data)
        self.assertIn("sampler", data)

    def test_load_yaml_missing(self):
        with self.assertRaises(FileNotFoundError):
            load_yaml("does-not-exist.yaml")

    def test_shipped_config_matches_defaults(self):
        """The shipped simulation.yaml loads and equals the built-in defaults."""
        config = load_simulation_config()

        self.assertEqual(config.simulation, SimulationConfig().validate())
        self.assertEqual(config.sampler, SamplerConfig().validate())
        self.assertEqual(config.simulation.funding_headroom_wei, DEFAULT_FUNDING_HEADROOM_WEI)
        self.assertEqual(config.rpc.urls, ("http://localhost:8545",))

    def test_missing_file_means_defaults(self):
        config = load_simulation_config(self.tmp / "absent.yaml")

        self.assertEqual(config.simulation, SimulationConfig().validate())
        self.assertEqual(config.rpc.urls, ())
        self.assertEqual(config.log_level, "INFO")

    def test_big_integers_as_strings(self):
        path = self._write(
            "simulation:\n"
            "  funding_headroom_wei: \"5e20\"\n"
            "  gas_price_wei: \"0x3b9aca00\"\n"
            "sampler:\n"
            "  buy_step_wei: \"1_000_000_000_000_000\"\n"
        )

        config = load_simulation_config(path)

        self.assertEqual(config.simulation.funding_headroom_wei, 5 * 10**20)
        self.assertEqual(config.simulation.gas_price_wei, 10**9)
        self.assertEqual(config.sampler.buy_step_wei, 10**15)

    def test_unknown_keys_ignored(self):
        path = self._write("simulation:\n  not_a_field: 1\n")

        config = load_simulation_config(path)

        self.assertEqual(config.simulation, SimulationConfig().validate())

    def test_non_integer_rejected(self):
        path = self._write("simulation:\n  gas_limit: lots\n")

        with self.assertRaises(ConfigurationError) as ctx:
            load_simulation_config(path)

        self.assertEqual(ctx.exception.code, ErrorCode.CONFIG_INVALID)

    def test_env_overrides(self):
        path = self._write("rpc:\n  urls: [\"http://yaml.test\"]\nlog_level: info\n")
        os.environ["PRICE_RPC_URLS"] = "http://a.test, http://b.test,"
        os.environ["PRICE_LOG_LEVEL"] = "debug"

        config = load_simulation_config(path)

        self.assertEqual(config.rpc.urls, ("http://a.test", "http://b.test"))
        self.assertEqual(config.log_level, "DEBUG")

    def test_addresses_normalised(self):
        path = self._write(
            "simulation:\n  router_address: \"0x7A250D5630B4CF539739DF2C5DACB4C659F2488D\"\n"
        )

        config = load_simulation_config(path)

        self.assertEqual(
            config.simulation.router_address,
            "0x7a250d5630b4cf539739df2c5dacb4c659f2488d",
        )


class TestConfigValidation(unittest.TestCase):
    """Invariants enforced by validate()."""

    def test_decoy_must_differ_from_trader(self):
        config = SimulationConfig(decoy_address=SimulationConfig().trader_address.upper().replace("0X", "0x"))
        with self.assertRaises(ConfigurationError):
            config.validate()

    def test_growth_must_exceed_one(self):
        with self.assertRaises(ConfigurationError):
            SimulationConfig(injector_growth_numerator=5, injector_growth_denominator=5).validate()

    def test_malformed_address(self):
        with self.assertRaises(ConfigurationError) as ctx:
            SimulationConfig(router_address="0x1234").validate()
        self.assertEqual(ctx.exception.details["field"], "router_address")

    def test_positive_amounts(self):
        for kwargs in ({"gas_price_wei": 0}, {"gas_limit": 0}, {"funding_headroom_wei": -1}, {"injector_retries": 0}):
            with self.subTest(**kwargs):
                with self.assertRaises(ConfigurationError):
                    SimulationConfig(**kwargs).validate()

    def test_sampler_grid(self):
        with self.assertRaises(ConfigurationError):
            SamplerConfig(sell_points=1).validate()
        with self.assertRaises(ConfigurationError):
            SamplerConfig(buy_steps=0).validate()
        with self.assertRaises(ConfigurationError):
            SamplerConfig(liquidity_holders=("nope",)).validate()


if __name__ == "__main__":
    unittest.main()
