"""Tests for configuration loading."""
import pytest
import tempfile
from pathlib import Path


SAMPLE_CONFIG = """
data_store:
  backend: "file"
  path: "./data"

analytics:
  missing_price_policy: "fail"
  yield_period: "yearly"
  cost_basis_method: "lifo"
  history_days: 180

methodology:
  name: "dat-core"
  version: "1.1.0"
  nav:
    intangibles_fraction: 0.2
    scenario_probabilities:
      bull: 0.4
  risk:
    risk_free_rate: 0.05
    stress_scenarios:
      - name: "Halving Crash"
        decline: -0.6
        probability: 0.1
  comparative:
    outlier_z_threshold: 3.0
"""

MINIMAL_CONFIG = """
data_store:
  backend: "file"
  path: "./data"

analytics: {}
"""


def write_config(content):
    f = tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False)
    f.write(content)
    f.flush()
    f.close()
    return f.name


def test_load_config_from_file():
    from dat_analytics.core.config import load_config

    config = load_config(write_config(SAMPLE_CONFIG))

    assert config.data_store.backend == "file"
    assert config.data_store.path == "./data"
    assert config.analytics.missing_price_policy == "fail"
    assert config.analytics.yield_period == "yearly"
    assert config.analytics.cost_basis_method == "LIFO"
    assert config.analytics.history_days == 180


def test_methodology_overrides_keep_other_defaults():
    from dat_analytics.core.config import load_config

    methodology = load_config(write_config(SAMPLE_CONFIG)).methodology

    assert methodology.version == "1.1.0"
    assert methodology.nav.intangibles_fraction == 0.2
    assert methodology.nav.scenario_probabilities == {"bull": 0.4, "bear": 0.2}
    assert methodology.nav.deferred_tax_fraction == 0.05
    assert methodology.risk.risk_free_rate == 0.05
    assert methodology.risk.trading_days == 252
    assert methodology.comparative.outlier_z_threshold == 3.0
    assert methodology.health.weights["solvency"] == 0.25


def test_stress_scenarios_replace_the_default_list():
    from dat_analytics.core.config import StressScenarioPolicy, load_config

    scenarios = load_config(write_config(SAMPLE_CONFIG)).methodology.risk.stress_scenarios

    assert scenarios == [StressScenarioPolicy(name="Halving Crash", decline=-0.6, probability=0.1)]


def test_mapping_overrides_merge_into_defaults():
    from dat_analytics.core.config import load_methodology

    methodology = load_methodology({
        "scenarios": {"default_price_scenarios": {"Bull": {"BTC": 150_000}, "Moon": {"BTC": 500_000}}},
        "health": {"weights": {"solvency": 0.30}},
    })

    scenarios = methodology.scenarios.default_price_scenarios
    assert list(scenarios) == ["Bull", "Base", "Bear", "Moon"]
    assert scenarios["Bull"] == {"BTC": 150_000, "ETH": 10_000.0, "SOL": 500.0}
    assert scenarios["Bear"]["BTC"] == 30_000.0
    assert methodology.health.weights["solvency"] == 0.30
    assert methodology.health.weights["liquidity"] == 0.20


def test_mapping_override_must_be_a_mapping():
    from dat_analytics.core.config import load_methodology, ConfigError

    with pytest.raises(ConfigError, match="methodology.health.weights"):
        load_methodology({"health": {"weights": [0.5]}})


def test_load_minimal_config_uses_defaults():
    from dat_analytics.core.config import Methodology, load_config

    config = load_config(write_config(MINIMAL_CONFIG))

    assert config.analytics.missing_price_policy == "exclude"
    assert config.analytics.yield_period == "quarterly"
    assert config.analytics.cost_basis_method == "FIFO"
    assert config.methodology == Methodology()


def test_load_config_missing_file():
    from dat_analytics.core.config import load_config, ConfigError

    with pytest.raises(ConfigError, match="not found"):
        load_config("/nonexistent/path/config.yaml")


def test_load_config_empty_file():
    from dat_analytics.core.config import load_config, ConfigError

    with pytest.raises(ConfigError, match="empty"):
        load_config(write_config(""))


def test_load_config_invalid_yaml():
    from dat_analytics.core.config import load_config, ConfigError

    with pytest.raises(ConfigError, match="parse YAML"):
        load_config(write_config("data_store: [unclosed"))


def test_load_config_missing_section():
    from dat_analytics.core.config import load_config, ConfigError

    with pytest.raises(ConfigError, match="analytics"):
        load_config(write_config('data_store:\n  backend: "file"\n'))


@pytest.mark.parametrize(
    "line, message",
    [
        ("missing_price_policy: skip", "missing_price_policy"),
        ("yield_period: monthly", "yield_period"),
        ("cost_basis_method: HIFO", "cost_basis_method"),
    ],
)
def test_load_config_invalid_analytics_option(line, message):
    from dat_analytics.core.config import load_config, ConfigError

    content = f'data_store:\n  path: "./data"\nanalytics:\n  {line}\n'

    with pytest.raises(ConfigError, match=message):
        load_config(write_config(content))


def test_unknown_methodology_key_is_rejected():
    from dat_analytics.core.config import load_config, ConfigError

    content = MINIMAL_CONFIG + "methodology:\n  nav:\n    goodwill_fraction: 0.1\n"

    with pytest.raises(ConfigError, match="methodology.nav.goodwill_fraction"):
        load_config(write_config(content))


def test_invalid_stress_scenario_entry_is_rejected():
    from dat_analytics.core.config import load_methodology, ConfigError

    with pytest.raises(ConfigError, match="stress_scenarios"):
        load_methodology({"risk": {"stress_scenarios": [{"name": "Oops"}]}})


def test_default_config_file_loads():
    from dat_analytics.core.config import load_config

    path = Path(__file__).parents[2] / "config" / "default.yaml"

    config = load_config(str(path))

    assert config.methodology.name == "dat-core"
    assert [s.name for s in config.methodology.risk.stress_scenarios] == [
        "Crypto Winter",
        "Market Correction",
        "Flash Crash",
        "Regulatory Shock",
        "Black Swan",
    ]
    assert set(config.methodology.scenarios.default_price_scenarios) == {"Bull", "Base", "Bear"}
