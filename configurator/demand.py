"""
Demand / time-of-day price adjustments.

A demand model is any callable ``(PricingContext) -> Decimal`` returning a
signed delta added to the running price after discounts. Positive values are
surcharges, negative values are discounts.
"""
from __future__ import annotations

import random
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from .contracts import ZERO, PricingContext, to_decimal
from .settings import Settings, get_settings

DemandModel = Callable[[PricingContext], Decimal]

Clock = Callable[[], datetime]


def no_demand(context: PricingContext) -> Decimal:
	return ZERO


class TimeOfDayDemand:
	"""Surcharge during peak hours, small discount otherwise. Deterministic for a given clock."""

	def __init__(
		self,
		clock: Clock = datetime.now,
		*,
		peak_start: int = 9,
		peak_end: int = 17,
		peak_modifier: Decimal = Decimal("0.05"),
		off_peak_modifier: Decimal = Decimal("-0.02"),
	):
		self.clock = clock
		self.peak_start = peak_start
		self.peak_end = peak_end
		self.peak_modifier = peak_modifier
		self.off_peak_modifier = off_peak_modifier

	def time_modifier(self) -> Decimal:
		hour = self.clock().hour
		if self.peak_start <= hour <= self.peak_end:
			return self.peak_modifier
		return self.off_peak_modifier

	def modifier(self, context: PricingContext) -> Decimal:
		return self.time_modifier()

	def __call__(self, context: PricingContext) -> Decimal:
		return to_decimal(context.base_price) * self.modifier(context) * context.quantity


class RandomDemand(TimeOfDayDemand):
	"""Time-of-day term plus a uniform demand factor in [-spread, +spread)."""

	def __init__(
		self,
		seed: Optional[int] = None,
		clock: Clock = datetime.now,
		*,
		spread: Decimal = Decimal("0.05"),
		**kwargs,
	):
		super().__init__(clock, **kwargs)
		self.spread = spread
		self._random = random.Random(seed)

	def demand_factor(self) -> Decimal:
		sample = Decimal(str(self._random.random()))
		return sample * self.spread * 2 - self.spread

	def modifier(self, context: PricingContext) -> Decimal:
		return self.time_modifier() + self.demand_factor()


def demand_model_from_settings(settings: Optional[Settings] = None, clock: Clock = datetime.now) -> DemandModel:
	settings = settings or get_settings()
	hours = dict(
		peak_start=settings.PEAK_HOURS_START,
		peak_end=settings.PEAK_HOURS_END,
		peak_modifier=settings.PEAK_MODIFIER,
		off_peak_modifier=settings.OFF_PEAK_MODIFIER,
	)
	if settings.DEMAND_MODEL == "none":
		return no_demand
	if settings.DEMAND_MODEL == "random":
		return RandomDemand(settings.DEMAND_SEED, clock, spread=settings.DEMAND_SPREAD, **hours)
	return TimeOfDayDemand(clock, **hours)
