from __future__ import annotations

import types


def test_healthcheck_import() -> None:
    import feedesk.healthcheck as hc
    assert isinstance(hc, types.ModuleType)


def test_main_import() -> None:
    import feedesk.main as entry
    assert callable(entry.main)


def test_healthcheck_fails_without_token(monkeypatch) -> None:  # type: ignore[no-untyped-def]
    import feedesk.healthcheck as hc
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    assert hc.main() == 1


def test_env_example_keys_present() -> None:
    # Ensure critical env keys exist in example template for documentation correctness
    example = open('.env.example', 'r', encoding='utf-8').read()
    for key in [
        'TELEGRAM_BOT_TOKEN',
        'TELEGRAM_ADMIN_IDS',
        'DB_URL',
        'NOTIFY_WEBHOOK_URL',
        'UNIVERSITY_NOTIFY_BASE_URL',
        'REFERRAL_REWARD_COINS',
        'DEPENDENT_SURCHARGE',
    ]:
        assert key in example


def test_dotenv_file_feeds_settings(tmp_path, monkeypatch) -> None:  # type: ignore[no-untyped-def]
    import importlib
    from decimal import Decimal

    import feedesk.config as config

    (tmp_path / ".env").write_text(
        "DEFAULT_SELECTION_PROCESS_FEE=999.00\nTELEGRAM_BOT_TOKEN=123:abc\n", encoding="utf-8"
    )
    for name in ("DEFAULT_SELECTION_PROCESS_FEE", "TELEGRAM_BOT_TOKEN"):
        # setenv first so teardown removes whatever load_dotenv writes
        monkeypatch.setenv(name, "x")
        monkeypatch.delenv(name)
    monkeypatch.setattr(config, "settings", config.settings)
    monkeypatch.setattr(config, "Settings", config.Settings)
    monkeypatch.chdir(tmp_path)

    reloaded = importlib.reload(config)

    assert reloaded.settings.default_selection_process_fee == Decimal("999.00")
    assert reloaded.settings.telegram_bot_token == "123:abc"


def test_environment_wins_over_dotenv(tmp_path, monkeypatch) -> None:  # type: ignore[no-untyped-def]
    import importlib

    import feedesk.config as config

    (tmp_path / ".env").write_text("TELEGRAM_BOT_TOKEN=from-file\n", encoding="utf-8")
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "from-env")
    monkeypatch.setattr(config, "settings", config.settings)
    monkeypatch.setattr(config, "Settings", config.Settings)
    monkeypatch.chdir(tmp_path)

    assert importlib.reload(config).settings.telegram_bot_token == "from-env"
