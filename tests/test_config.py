import pytest

from config import DEFAULT_CATALOG_PATH, DEFAULT_TOP_N, load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("VISA_CATALOG_PATH", "VISA_DEFAULT_TOP_N", "VISA_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = load_settings()

    assert settings.catalog_path == DEFAULT_CATALOG_PATH
    assert settings.default_top_n == DEFAULT_TOP_N
    assert settings.log_level == "INFO"


def test_environment_overrides(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("VISA_CATALOG_PATH", str(tmp_path / "catalog.json"))
    monkeypatch.setenv("VISA_DEFAULT_TOP_N", "5")
    monkeypatch.setenv("VISA_LOG_LEVEL", "debug")

    settings = load_settings()

    assert settings.catalog_path == tmp_path / "catalog.json"
    assert settings.default_top_n == 5
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("name, value", [("VISA_DEFAULT_TOP_N", "three"), ("VISA_DEFAULT_TOP_N", "0"), ("VISA_LOG_LEVEL", "LOUD")])
def test_invalid_settings_raise(monkeypatch, name, value) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(RuntimeError):
        load_settings()
