from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
	model_config = SettingsConfigDict(
		env_prefix="CONFIGURATOR_",
		env_file=".env",
		extra="ignore",
	)

	DATABASE_URL: str = Field(default="sqlite:///./configurator.db")

	# Rule engine
	RULE_MAX_PASSES: int = Field(default=1, ge=1, description="1 keeps single-pass evaluation")

	# Dynamic pricing
	DEMAND_MODEL: Literal["none", "time", "random"] = Field(default="time")
	DEMAND_SEED: Optional[int] = Field(default=None, description="Seed for the random demand model")
	PEAK_HOURS_START: int = Field(default=9, ge=0, le=23)
	PEAK_HOURS_END: int = Field(default=17, ge=0, le=23)
	PEAK_MODIFIER: Decimal = Field(default=Decimal("0.05"))
	OFF_PEAK_MODIFIER: Decimal = Field(default=Decimal("-0.02"))
	DEMAND_SPREAD: Decimal = Field(default=Decimal("0.05"))

	# Server-side re-validation
	PRICE_TOLERANCE: Decimal = Field(default=Decimal("0.01"), ge=0)

	# Session tracking
	TRACKER_BATCH_SIZE: int = Field(default=20, ge=1)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
	return Settings()
