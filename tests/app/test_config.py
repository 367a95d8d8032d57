from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

from gavel.app.config import AuctionSettings, load_auction_settings


def write_config(tmp_path: Path, payload: dict) -> Path:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_defaults_without_config_file(tmp_path: Path) -> None:
    settings = load_auction_settings(tmp_path / "missing.json")

    assert settings == AuctionSettings()
    assert settings.bid_retry_attempts == 5


def test_reads_auctions_section(tmp_path: Path) -> None:
    path = write_config(
        tmp_path,
        {
            "paths": {"db_path": "x.db"},
            "auctions": {
                "min_increment_ratio": 0.05,
                "anti_sniping_window_seconds": 60,
                "unknown_key": True,
            },
        },
    )

    settings = load_auction_settings(path)
    rules = settings.to_rules()

    assert settings.min_increment_ratio == 0.05
    assert rules.anti_sniping_window == timedelta(seconds=60)


def test_invalid_section_falls_back_to_defaults(tmp_path: Path, caplog) -> None:
    path = write_config(tmp_path, {"auctions": {"bid_retry_attempts": 0}})

    with caplog.at_level("WARNING"):
        settings = load_auction_settings(path)

    assert settings == AuctionSettings()
    assert "Invalid auction settings" in caplog.text
