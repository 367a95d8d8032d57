"""Engine settings loaded from the ``auctions`` section of ``config.json``."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from gavel.domain.engine import EngineRules
from gavel.infrastructure.db.config import load_config
from gavel.infrastructure.observability import get_logger

logger = get_logger(__name__)


class AuctionSettings(BaseModel):
    """Tunable auction rules.

    ``min_increment_ratio`` is a fraction of the starting bid, so ``0.01``
    means every bid after the first must beat the leader by 1% of the
    starting bid.
    """

    model_config = ConfigDict(extra="ignore")

    min_increment_ratio: float = Field(default=0.01, ge=0)
    anti_sniping_window_seconds: float = Field(default=300.0, ge=0)
    bid_retry_attempts: int = Field(default=5, ge=1)
    sweep_interval_seconds: float = Field(default=60.0, gt=0)

    def to_rules(self) -> EngineRules:
        return EngineRules(
            min_increment_ratio=self.min_increment_ratio,
            anti_sniping_window=timedelta(seconds=self.anti_sniping_window_seconds),
        )


def load_auction_settings(config_path: Path | str | None = None) -> AuctionSettings:
    """Read settings from the ``auctions`` section, falling back to defaults.

    An invalid section is logged and replaced by the defaults so a bad
    config file never prevents startup.
    """
    section = load_config(config_path).get("auctions") or {}
    if not isinstance(section, dict):
        logger.warning("Ignoring non-object 'auctions' config section")
        return AuctionSettings()
    try:
        return AuctionSettings(**section)
    except ValidationError as exc:
        logger.warning("Invalid auction settings, using defaults: %s", exc)
        return AuctionSettings()


__all__ = ["AuctionSettings", "load_auction_settings"]
