from secure_assets.core.config import Settings


def _settings(**values) -> Settings:
    return Settings(_env_file=None, **values)


def test_database_url_async_driver_mapping() -> None:
    assert _settings(database_url="./data/app.sqlite").database_url_async == "sqlite+aiosqlite:///./data/app.sqlite"
    assert _settings(database_url="sqlite:///tmp/a.db").database_url_async == "sqlite+aiosqlite:///tmp/a.db"
    assert _settings(database_url="postgres://u:p@db/assets").database_url_async == "postgresql+asyncpg://u:p@db/assets"
    assert (
        _settings(database_url="postgresql+asyncpg://u:p@db/assets").database_url_async
        == "postgresql+asyncpg://u:p@db/assets"
    )


def test_csv_settings_are_normalized() -> None:
    settings = _settings(
        asset_allowed_ext=" PNG, .jpg,,svg ",
        asset_remote_allowlist="Example.com, cdn.test ",
        allowed_cors_origins="https://a.test, https://b.test",
        max_upload_size_mb=2,
    )
    assert settings.allowed_extensions == ["png", "jpg", "svg"]
    assert settings.remote_allowlist == ["example.com", "cdn.test"]
    assert settings.cors_origins == ["https://a.test", "https://b.test"]
    assert settings.max_upload_bytes == 2 * 1024 * 1024


def test_env_aliases(monkeypatch) -> None:
    monkeypatch.delenv("APP_PORT", raising=False)
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("ASSET_GH_OWNER", "acme")
    monkeypatch.setenv("ASSET_GH_REPO", "assets")
    settings = Settings(_env_file=None)
    assert settings.app_port == 8080
    assert settings.github_repo_full_name == "acme/assets"
