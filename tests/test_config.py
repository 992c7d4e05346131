from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from deferlink.app.config import AppConfig
from deferlink.app.di import AppContainer
from deferlink.modules.deeplinks.domain.models import DeepLinkConfig, Platform
from deferlink.modules.deeplinks.infrastructure.file_storage import JsonFileKeyValueStore
from deferlink.modules.shared.utils.logger import ConditionalLogger


def test_link_config_defaults() -> None:
    config = DeepLinkConfig(app_scheme="myapp", valid_domains=["myapp.com"])
    assert config.valid_paths == ("/",)
    assert config.enable_android_recovery is True
    assert config.enable_ios_recovery is False
    assert config.max_link_age == timedelta(days=7)
    assert config.attribution_timeout == timedelta(seconds=10)
    assert config.clipboard_timeout == timedelta(seconds=3)
    assert config.dedup_window == timedelta(seconds=5)
    assert config.storage_key_prefix == "deferlink_"
    assert config.enable_logging is False


def test_link_config_normalises_lists() -> None:
    config = DeepLinkConfig(app_scheme="myapp", valid_domains=["a.com", "b.com"], valid_paths=["/app/"])
    assert config.valid_domains == ("a.com", "b.com")
    assert config.valid_paths == ("/app/",)


@pytest.mark.parametrize(
    "overrides",
    [
        {"app_scheme": ""},
        {"app_scheme": "   "},
        {"valid_paths": []},
        {"max_link_age": timedelta(0)},
        {"attribution_timeout": timedelta(seconds=-1)},
        {"dedup_window": timedelta(seconds=-1)},
    ],
)
def test_link_config_rejects_invalid_values(overrides) -> None:
    values = {"app_scheme": "myapp", "valid_domains": ["myapp.com"], **overrides}
    with pytest.raises(ValueError):
        DeepLinkConfig(**values)


def test_link_config_replace_and_summary() -> None:
    config = DeepLinkConfig(app_scheme="myapp", valid_domains=["myapp.com"])
    changed = config.replace(max_link_age=timedelta(hours=48))
    assert changed.max_link_age == timedelta(hours=48)
    assert config.max_link_age == timedelta(days=7)

    summary = changed.summary()
    assert summary["max_link_age_hours"] == 48
    assert summary["valid_domains"] == ["myapp.com"]
    assert "on_deep_link" not in summary


def test_conditional_logger_uses_external_logger() -> None:
    class Collector:
        def __init__(self) -> None:
            self.lines: list[str] = []

        def debug(self, msg: str) -> None:
            self.lines.append(f"D {msg}")

        def info(self, msg: str) -> None:
            self.lines.append(f"I {msg}")

        def warning(self, msg: str) -> None:
            self.lines.append(f"W {msg}")

        def error(self, msg: str) -> None:
            self.lines.append(f"E {msg}")

    collector = Collector()
    log = ConditionalLogger(enabled=True, external=collector).child("Store")
    log.info("stored")
    log.error("failed")
    assert collector.lines == ["I Store: stored", "E Store: failed"]

    quiet = ConditionalLogger(enabled=False, external=collector)
    quiet.error("hidden")
    assert len(collector.lines) == 2


def test_conditional_logger_falls_back_to_stdlib(caplog) -> None:
    class Broken:
        def error(self, msg: str) -> None:
            raise RuntimeError("boom")

    log = ConditionalLogger(enabled=True, external=Broken())
    with caplog.at_level("ERROR", logger="deferlink"):
        log.error("still logged")
    assert "still logged" in caplog.text


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123456:TEST")
    monkeypatch.setenv("DEEPLINK_APP_SCHEME", "myapp")
    monkeypatch.setenv("DEEPLINK_VALID_DOMAINS", "myapp.com, www.myapp.com")
    monkeypatch.setenv("STORAGE_BACKEND", "json")
    monkeypatch.setenv("STORAGE_PATH", str(tmp_path / "data" / "deeplinks.json"))
    return tmp_path


def test_app_config_from_env(env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DEEPLINK_VALID_PATHS", "/app/;/content/")
    monkeypatch.setenv("DEEPLINK_PLATFORM", "android")
    monkeypatch.setenv("DEEPLINK_MAX_LINK_AGE_HOURS", "48")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    config = AppConfig(_env_file=None)

    assert config.valid_domains == ["myapp.com", "www.myapp.com"]
    assert config.valid_paths == ["/app/", "/content/"]
    assert config.platform is Platform.ANDROID

    link_config = config.to_link_config()
    assert link_config.max_link_age == timedelta(hours=48)
    assert link_config.enable_logging is True
    assert link_config.valid_paths == ("/app/", "/content/")


def test_app_config_defaults(env: Path) -> None:
    config = AppConfig(_env_file=None)
    assert config.valid_paths == ["/"]
    assert config.platform is None
    assert config.to_link_config().dedup_window == timedelta(seconds=5)


def test_app_config_rejects_bad_backend(env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STORAGE_BACKEND", "redis")
    with pytest.raises(ValueError):
        AppConfig(_env_file=None)


@pytest.mark.asyncio
async def test_container_wires_service(env: Path) -> None:
    config = AppConfig(_env_file=None)
    container = await AppContainer.build(config)

    assert isinstance(container.storage, JsonFileKeyValueStore)
    assert container.create_dispatcher() is not None

    await container.on_startup(None)
    assert container.deep_links.is_initialized is True
    assert await container.deep_links.store_deferred_link("myapp://content?id=1") is True

    await container.on_shutdown(None)
    assert container.deep_links.is_initialized is False
    assert container.link_source.closed is True
