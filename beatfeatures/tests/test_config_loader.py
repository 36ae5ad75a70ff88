import pytest

from beatfeatures.pipeline.config_loader import ConfigLoader, UnknownConfigKeyError, parse_override
from beatfeatures.pipeline.config_struct import ExtractionConfig, validate_config
from beatfeatures.pipeline.errors import ConfigError, FatalInputError


def test_shipped_defaults_load():
    loader = ConfigLoader()
    config = loader.load()
    assert config.pool.workers == 4
    assert config.pool.discipline == "locked"
    assert loader.provenance["pool.workers"] == "default"
    assert config.features.to_feature_config().columns()[0] == "rating"


@pytest.mark.parametrize(
    "preset,one_hot,dots,entropy",
    [("basic", True, False, False), ("patterns", False, True, True), ("full", True, True, True)],
)
def test_shipped_presets(preset, one_hot, dots, entropy):
    loader = ConfigLoader()
    features = loader.load(preset=preset).features
    assert (features.one_hot_tier, features.dot_ratio, features.entropy_features) == (one_hot, dots, entropy)
    assert loader.provenance["features.entropy_features"] == f"preset:{preset}"


def test_overrides_win_and_are_tracked():
    loader = ConfigLoader()
    config = loader.load(overrides=[parse_override("pool.workers=8"), parse_override("pool.discipline=channel")])
    assert config.pool.workers == 8
    assert config.pool.discipline == "channel"
    assert loader.provenance["pool.workers"] == "override"


def test_layering_from_custom_dir(tmp_path):
    (tmp_path / "presets").mkdir()
    (tmp_path / "default.toml").write_text("[pool]\nworkers = 2\n")
    (tmp_path / "presets" / "fast.toml").write_text("[pool]\nworkers = 16\n[io]\nflush_every = 10\n")
    config = ConfigLoader().load(str(tmp_path), preset="fast")
    assert config.pool.workers == 16
    assert config.io.flush_every == 10
    assert config.fetch.timeout_s == ExtractionConfig().fetch.timeout_s


def test_unknown_keys_raise(tmp_path):
    (tmp_path / "default.toml").write_text("[pool]\nthreads = 2\n")
    with pytest.raises(UnknownConfigKeyError):
        ConfigLoader().load(str(tmp_path))
    with pytest.raises(UnknownConfigKeyError):
        ConfigLoader().load(str(tmp_path / "nowhere"), overrides=[("pool.nope", 1)])
    with pytest.raises(UnknownConfigKeyError):
        ConfigLoader().load(str(tmp_path / "nowhere"), overrides=[("pool", 1)])


def test_missing_preset_and_bad_toml(tmp_path):
    with pytest.raises(ConfigError):
        ConfigLoader().load(str(tmp_path), preset="nope")
    (tmp_path / "default.toml").write_text("[pool\n")
    with pytest.raises(ConfigError):
        ConfigLoader().load(str(tmp_path))


@pytest.mark.parametrize(
    "dotted,value",
    [
        ("pool.workers", 0),
        ("pool.workers", -3),
        ("pool.workers", "many"),
        ("pool.workers", 2.5),
        ("pool.discipline", "async"),
        ("pool.grace_period_s", -1),
        ("pool.poll_interval_s", 0),
        ("fetch.retries", -1),
        ("io.delimiter", ";;"),
    ],
)
def test_invalid_values_are_fatal(tmp_path, dotted, value):
    with pytest.raises(FatalInputError):
        ConfigLoader().load(str(tmp_path), overrides=[(dotted, value)])


def test_parse_override_values():
    assert parse_override("features.entropy_features=true") == ("features.entropy_features", True)
    assert parse_override("pool.grace_period_s=2.5") == ("pool.grace_period_s", 2.5)
    assert parse_override("fetch.user_agent=my agent") == ("fetch.user_agent", "my agent")
    with pytest.raises(ConfigError):
        parse_override("no-equals")


def test_validate_config_normalizes_workers():
    config = ExtractionConfig()
    config.pool.workers = 8.0
    assert validate_config(config).pool.workers == 8
