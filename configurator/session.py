from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from .contracts import (
	ZERO,
	BreakdownLine,
	EvaluationResult,
	InventoryChecker,
	PricingContext,
	PricingResult,
	Product,
	Selection,
)
from .errors import PricingRuleLoadError, RuleLoadError
from .pricing_engine import PricingEngine
from .rule_engine import RuleEngine
from .tracking import SessionTracker

logger = logging.getLogger(__name__)

RULES_ADJUSTMENT_LINE = "Configuration Rules Adjustment"


@dataclass
class SessionResult:
	evaluation: EvaluationResult
	pricing: PricingResult
	final_price: Decimal
	breakdown: List[BreakdownLine]
	warnings: List[str] = field(default_factory=list)

	@property
	def restrictions(self) -> List[str]:
		return self.evaluation.restrictions

	@property
	def auto_selections(self) -> Selection:
		return self.evaluation.auto_selections

	@property
	def validated_options(self) -> Selection:
		return self.evaluation.validated_options


def merge_results(evaluation: EvaluationResult, pricing: PricingResult) -> Tuple[Decimal, List[BreakdownLine]]:
	"""Fold the rule engine's price adjustment into the priced result."""
	breakdown = list(pricing.breakdown)
	final_price = pricing.final_price
	if evaluation.price_adjustment != 0:
		breakdown.append(BreakdownLine(item=RULES_ADJUSTMENT_LINE, price=evaluation.price_adjustment))
		final_price = max(ZERO, final_price + evaluation.price_adjustment)
	return final_price, breakdown


class ConfigurationSession:
	"""
	Drives one shopper's configuration of one product.

	Every selection or quantity change re-runs the rule engine and prices the
	validated selection. Suggested auto-selections are reported, never applied
	until ``accept_auto_selection`` is called. Each session owns its engines;
	do not share them between sessions.
	"""

	def __init__(
		self,
		product: Product,
		rule_engine: RuleEngine,
		pricing_engine: PricingEngine,
		*,
		quantity: int = 1,
		customer_segment: Optional[str] = None,
		inventory: Optional[InventoryChecker] = None,
		tracker: Optional[SessionTracker] = None,
	):
		if quantity < 1:
			raise ValueError("quantity must be >= 1")
		self.product = product
		self.rule_engine = rule_engine
		self.pricing_engine = pricing_engine
		self.quantity = quantity
		self.customer_segment = customer_segment
		self.inventory = inventory
		self.tracker = tracker
		self.warnings: List[str] = []
		self.last_result: Optional[SessionResult] = None
		self._selection: Selection = {}

	@property
	def selection(self) -> Selection:
		return dict(self._selection)

	@property
	def is_complete(self) -> bool:
		return all(self._selection.get(o.id) for o in self.product.required_options())

	def start(self) -> SessionResult:
		"""Load both rule sets. A failed load degrades the session instead of failing it."""
		self.warnings = []
		try:
			self.rule_engine.load(self.product.id)
		except RuleLoadError as exc:
			self.warnings.append(exc.user_message)
		try:
			self.pricing_engine.load(self.product.id)
		except PricingRuleLoadError as exc:
			self.warnings.append(exc.user_message)
		if self.warnings:
			logger.warning("Session for product %s started degraded: %s", self.product.id, "; ".join(self.warnings))
		if self.tracker is not None:
			self.tracker.start(self.product.id, [o.id for o in self.product.required_options()])
		return self.refresh()

	def select(self, option_id: str, value_id: str) -> SessionResult:
		option = self.product.option(option_id)
		if option is None:
			raise ValueError(f"Unknown option {option_id} for product {self.product.id}")
		if option.value(value_id) is None:
			raise ValueError(f"Unknown value {value_id} for option {option_id}")
		self._selection[option_id] = value_id
		if self.tracker is not None:
			self.tracker.track_option_selected(option_id, value_id, self._selection)
		return self.refresh()

	def clear(self, option_id: str) -> SessionResult:
		self._selection.pop(option_id, None)
		return self.refresh()

	def set_quantity(self, quantity: int) -> SessionResult:
		if quantity < 1:
			raise ValueError("quantity must be >= 1")
		self.quantity = quantity
		return self.refresh()

	def accept_auto_selection(self, option_id: str) -> SessionResult:
		if self.last_result is None or option_id not in self.last_result.auto_selections:
			raise KeyError(option_id)
		value_id = self.last_result.auto_selections[option_id]
		if self.tracker is not None:
			self.tracker.track_auto_selection_applied(option_id, value_id)
		return self.select(option_id, value_id)

	def available_values(self, option_id: str) -> List[str]:
		"""Values allowed by the rules and, when an inventory checker is set, in stock."""
		values = self.rule_engine.available_values(self._selection, self.product, option_id)
		if self.inventory is None or not values:
			return values
		stock: Dict[str, bool] = self.inventory.check_availability(values)
		return [v for v in values if stock.get(v, True)]

	def refresh(self) -> SessionResult:
		evaluation = self.rule_engine.evaluate(self._selection, self.product)
		pricing = self.pricing_engine.calculate_price(
			PricingContext(
				base_price=self.product.base_price,
				selection=evaluation.validated_options,
				quantity=self.quantity,
				product=self.product,
				customer_segment=self.customer_segment,
			)
		)
		final_price, breakdown = merge_results(evaluation, pricing)

		result = SessionResult(
			evaluation=evaluation,
			pricing=pricing,
			final_price=final_price,
			breakdown=breakdown,
			warnings=list(self.warnings),
		)
		self.last_result = result
		if self.tracker is not None:
			self.tracker.track_price_viewed(final_price)
		return result
