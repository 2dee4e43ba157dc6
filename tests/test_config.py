"""Tests for weft.config and weft.config_loader."""

from pathlib import Path

import pytest

from weft._errors import ConfigError
from weft.config import WeftConfig
from weft.config_loader import load_config


class TestWeftConfig:
    """WeftConfig — frozen dataclass with sensible defaults."""

    def test_defaults(self) -> None:
        config = WeftConfig()
        assert config.max_parallelism == 4
        assert config.debounce_ms == 0
        assert config.on_cell_change == "autorun"
        assert config.allow_self_loops is False
        assert config.max_events == 10_000
        assert config.verbose is False

    def test_frozen(self) -> None:
        config = WeftConfig()
        with pytest.raises(AttributeError):
            config.max_parallelism = 8  # type: ignore[misc]

    def test_debounce_seconds(self) -> None:
        assert WeftConfig(debounce_ms=250).debounce_seconds == 0.25

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_parallelism": 0},
            {"debounce_ms": -1},
            {"on_cell_change": "eager"},
            {"max_events": 0},
        ],
    )
    def test_invalid_values(self, kwargs: dict[str, object]) -> None:
        with pytest.raises(ConfigError):
            WeftConfig(**kwargs)  # type: ignore[arg-type]


class TestLoadConfig:
    """load_config — file discovery, sections and overrides."""

    def test_no_file_gives_defaults(self, tmp_path: Path) -> None:
        assert load_config(tmp_path) == WeftConfig()

    def test_yaml_top_level_keys(self, tmp_path: Path) -> None:
        (tmp_path / "weft.yaml").write_text("max_parallelism: 2\ndebounce_ms: 50\n")
        config = load_config(tmp_path)
        assert config.max_parallelism == 2
        assert config.debounce_ms == 50

    def test_yml_weft_section(self, tmp_path: Path) -> None:
        (tmp_path / "weft.yml").write_text("weft:\n  on_cell_change: lazy\nunrelated: 1\n")
        assert load_config(tmp_path).on_cell_change == "lazy"

    def test_toml(self, tmp_path: Path) -> None:
        (tmp_path / "weft.toml").write_text("[weft]\nallow_self_loops = true\nverbose = true\n")
        config = load_config(tmp_path)
        assert config.allow_self_loops is True
        assert config.verbose is True

    def test_yaml_preferred_over_toml(self, tmp_path: Path) -> None:
        (tmp_path / "weft.yaml").write_text("max_parallelism: 3\n")
        (tmp_path / "weft.toml").write_text("max_parallelism = 7\n")
        assert load_config(tmp_path).max_parallelism == 3

    def test_overrides_win(self, tmp_path: Path) -> None:
        (tmp_path / "weft.yaml").write_text("max_parallelism: 3\n")
        assert load_config(tmp_path, max_parallelism=1).max_parallelism == 1

    def test_empty_yaml(self, tmp_path: Path) -> None:
        (tmp_path / "weft.yaml").write_text("")
        assert load_config(tmp_path) == WeftConfig()

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        (tmp_path / "weft.yaml").write_text("max_parallelism: [1, 2\n")
        with pytest.raises(ConfigError, match="Cannot parse"):
            load_config(tmp_path)

    def test_non_mapping_yaml(self, tmp_path: Path) -> None:
        (tmp_path / "weft.yaml").write_text("- 1\n- 2\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(tmp_path)

    def test_malformed_toml(self, tmp_path: Path) -> None:
        (tmp_path / "weft.toml").write_text("max_parallelism = \n")
        with pytest.raises(ConfigError, match="Cannot parse"):
            load_config(tmp_path)

    def test_invalid_value_in_file(self, tmp_path: Path) -> None:
        (tmp_path / "weft.yaml").write_text("max_parallelism: 0\n")
        with pytest.raises(ConfigError):
            load_config(tmp_path)

    def test_unknown_override(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid weft configuration"):
            load_config(tmp_path, port=8000)
