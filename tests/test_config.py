from __future__ import annotations

from pathlib import Path

import pytest

from od2duck.config import Config, ConfigurationError, ProcessingConfig, SourceConfig


def test_environment_overrides(config, tmp_path: Path) -> None:
    assert config.processing.max_mem_gb == 1.0
    assert config.processing.max_cpu == 1
    assert config.processing.max_download_gb == 1.0
    assert config.storage.output_dir == tmp_path / "out"
    assert config.storage.temp_root == tmp_path / "tmp"
    assert config.source.base_url(2) == str(tmp_path / "mitma_v2")


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in [
        "OD2DUCK_MAX_MEM_GB", "OD2DUCK_MAX_CPU", "OD2DUCK_MAX_DOWNLOAD_GB",
        "OD2DUCK_OUTPUT_DIR", "OD2DUCK_V1_BASE_URL", "OD2DUCK_V2_BASE_URL",
        "OD2DUCK_SIMPLIFY_TOLERANCE",
    ]:
        monkeypatch.delenv(name, raising=False)

    config = Config()

    assert config.processing.max_mem_gb >= 4
    assert config.processing.max_cpu >= 1
    assert config.processing.max_download_gb == 1.0
    assert config.storage.output_dir == Path("data")
    assert config.source.base_url(1) == "https://opendata-movilidad.mitma.es"
    assert config.source.base_url(2) == "https://movilidad-opendata.mitma.es"
    assert config.source.simplify_tolerance == 200.0


def test_bad_number_is_a_configuration_error(config, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OD2DUCK_MAX_CPU", "many")

    with pytest.raises(ConfigurationError, match="OD2DUCK_MAX_CPU"):
        Config()


def test_out_of_range_value_is_a_configuration_error(config, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OD2DUCK_MAX_DOWNLOAD_GB", "0")

    with pytest.raises(ConfigurationError):
        Config()


def test_missing_env_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        Config(env_file=tmp_path / "missing.env")


def test_dataclass_validation() -> None:
    with pytest.raises(ValueError):
        ProcessingConfig(max_mem_gb=0, max_cpu=1)
    assert SourceConfig("https://a.example/", "https://b.example//").base_url(2) == "https://b.example"
