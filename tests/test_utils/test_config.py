"""Tests for configuration loading and the run configuration."""

import pytest

from analit.core.models import Band
from analit.utils.config import (
    AnalysisConfig,
    ConfigManager,
    get_default_config,
    load_config,
    parse_bands,
)
from analit.utils.errors import ConfigurationError


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run in an empty directory so no config file is picked up implicitly."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestConfigManager:
    def test_dot_notation(self):
        manager = ConfigManager({"analysis": {"bands": "20-60"}})
        assert manager.get("analysis.bands") == "20-60"
        assert manager.get("analysis.missing", default=3) == 3
        assert manager.get("nothing.here") is None

    def test_required_key(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigManager({}).get("tools.ffmpeg", required=True)
        assert exc_info.value.config_key == "tools.ffmpeg"

    def test_set_creates_sections(self):
        manager = ConfigManager()
        manager.set("split.trim", 0.25)
        assert manager.get("split.trim") == 0.25

    def test_get_section(self):
        manager = ConfigManager({"logging": {"level": "DEBUG"}, "flat": 3})
        assert manager.get_section("logging") == {"level": "DEBUG"}
        assert manager.get_section("flat") == {}
        assert manager.get_section("missing") == {}

    def test_merge_is_deep(self):
        manager = ConfigManager(get_default_config())
        manager.merge({"analysis": {"bpm_engine": "aubio"}})
        assert manager.get("analysis.bpm_engine") == "aubio"
        assert manager.get("analysis.use_bands") is True

    def test_to_dict_is_a_copy(self):
        manager = ConfigManager({"output": {"path": "a.log"}})
        manager.to_dict()["output"]["path"] = "b.log"
        assert manager.get("output.path") == "a.log"

    def test_env_interpolation(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ANALIT_TEST_TOOLS", "/opt/tools")
        monkeypatch.delenv("ANALIT_TEST_UNSET", raising=False)
        path = tmp_path / "conf.yaml"
        path.write_text(
            "tools:\n"
            "  ffmpeg: ${ANALIT_TEST_TOOLS}/ffmpeg\n"
            "  aubio: ${ANALIT_TEST_UNSET}/aubio\n"
        )
        manager = ConfigManager.from_file(path)
        assert manager.get("tools.ffmpeg") == "/opt/tools/ffmpeg"
        assert manager.get("tools.aubio") == "${ANALIT_TEST_UNSET}/aubio"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ConfigManager.from_file(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("output: [unclosed\n")
        with pytest.raises(ConfigurationError):
            ConfigManager.from_file(path)

    def test_root_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            ConfigManager.from_file(path)


class TestLoadConfig:
    def test_defaults_without_file(self, workdir):
        assert load_config() == get_default_config()

    def test_discovers_local_file(self, workdir):
        (workdir / "analit.yaml").write_text("output:\n  format: json\n")
        config = load_config()
        assert config["output"]["format"] == "json"
        assert config["output"]["path"] == "out.log"

    def test_explicit_file_over_defaults(self, workdir):
        path = workdir / "custom.yaml"
        path.write_text("analysis:\n  bpm_engine: aubio\n  bands: [20-60, 60-120]\n")
        config = AnalysisConfig.from_dict(load_config(str(path)))
        assert config.bpm_engine == "aubio"
        assert config.bands == (Band(20, 60), Band(60, 120))
        assert config.use_loudness is True


class TestParseBands:
    def test_valid_list(self):
        assert parse_bands("20-60, 60-120") == (Band(20, 60), Band(60, 120))

    def test_invalid_entries_are_dropped(self):
        bands = parse_bands("20-60,bad,0-10,500-400,,100-200-300,1e3-2e3")
        assert bands == (Band(20, 60), Band(1000, 2000))

    def test_empty(self):
        assert parse_bands("") == ()


class TestAnalysisConfig:
    def test_defaults_match_default_config(self):
        assert AnalysisConfig.from_dict(get_default_config()) == AnalysisConfig()

    def test_default_bands(self):
        config = AnalysisConfig()
        assert len(config.bands) == 8
        assert config.bands[0] == Band(20, 60)
        assert config.bands[-1] == Band(10000, 20000)

    def test_tempo_enabled(self):
        assert AnalysisConfig(bpm_engine="aubio").tempo_enabled
        assert not AnalysisConfig().tempo_enabled

    def test_enum_values_are_case_insensitive(self):
        config = AnalysisConfig.from_dict({"output": {"format": "MD"}, "analysis": {"bpm_engine": "Aubio"}})
        assert config.report_format == "md"
        assert config.bpm_engine == "aubio"

    @pytest.mark.parametrize("config,key", [
        ({"output": {"format": "pdf"}}, "output.format"),
        ({"analysis": {"bpm_engine": "essentia"}}, "analysis.bpm_engine"),
        ({"performance": {"max_workers": 0}}, "performance.max_workers"),
        ({"analysis": {"stats_window": "wide"}}, "analysis.stats_window"),
        ({"tools": {"timeout": "forever"}}, "tools.timeout"),
        ({"analysis": {"use_bands": "sometimes"}}, "analysis.use_bands"),
    ])
    def test_invalid_values(self, config, key):
        with pytest.raises(ConfigurationError) as exc_info:
            AnalysisConfig.from_dict(config)
        assert exc_info.value.config_key == key

    @pytest.mark.parametrize("value,expected", [(0, None), (-5, None), (None, None), ("30", 30.0)])
    def test_optional_timeouts(self, value, expected):
        config = AnalysisConfig.from_dict({"tools": {"timeout": value}, "performance": {"run_timeout": value}})
        assert config.tool_timeout == expected
        assert config.run_timeout == expected

    @pytest.mark.parametrize("value,expected", [
        (False, False), ("false", False), ("No", False), ("0", False), (0, False),
        (True, True), ("TRUE", True), ("yes", True), ("on", True), (1, True),
    ])
    def test_flags(self, value, expected):
        config = AnalysisConfig.from_dict({"analysis": {"use_bands": value, "use_loudness": value}})
        assert config.use_bands is expected
        assert config.use_loudness is expected

    def test_flag_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ANALIT_TEST_LOUDNESS", "false")
        path = tmp_path / "conf.yaml"
        path.write_text("analysis:\n  use_loudness: ${ANALIT_TEST_LOUDNESS}\n")
        config = AnalysisConfig.from_dict(ConfigManager.from_file(path).to_dict())
        assert config.use_loudness is False
        assert config.use_bands is True

    def test_is_frozen(self):
        with pytest.raises(AttributeError):
            AnalysisConfig().bpm_engine = "aubio"
