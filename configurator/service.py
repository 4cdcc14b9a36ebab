"""
Server-side validation and persistence of a finished configuration.

Nothing submitted by a client is trusted: the product, both rule sets and
the price are loaded and recomputed here, and any disagreement rejects the
configuration.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Mapping, Optional

from sqlalchemy.orm import Session

from .contracts import (
	CatalogRepository,
	ConfigurationStore,
	EvaluationResult,
	InventoryChecker,
	PricingContext,
	PricingResult,
	PricingRuleRepository,
	Product,
	RuleRepository,
	to_decimal,
)
from .db import db_session_scope
from .demand import DemandModel, TimeOfDayDemand, no_demand
from .errors import ConfigurationInvalid, InsufficientInventory, PriceMismatch, ProductNotFound
from .pricing_engine import PricingEngine
from .repositories import (
	SqlCatalogRepository,
	SqlConfigurationStore,
	SqlInventoryChecker,
	SqlPricingRuleRepository,
	SqlRuleRepository,
)
from .rule_engine import RuleEngine
from .session import merge_results
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class SavedConfiguration:
	configuration_id: str
	final_price: Decimal
	evaluation: EvaluationResult
	pricing: PricingResult


def selection_violations(product: Product, selection: Mapping[str, str]) -> List[str]:
	violations: List[str] = []
	for option_id, value_id in selection.items():
		option = product.option(option_id)
		if option is None:
			violations.append(f"Unknown option '{option_id}'")
		elif option.value(value_id) is None:
			violations.append(f"Invalid value '{value_id}' for option '{option_id}'")
	for option in product.required_options():
		if not selection.get(option.id):
			violations.append(f"Option '{option.name}' is required")
	return violations


class ConfigurationService:
	def __init__(
		self,
		catalog: CatalogRepository,
		rules: RuleRepository,
		pricing_rules: PricingRuleRepository,
		inventory: InventoryChecker,
		store: ConfigurationStore,
		*,
		settings: Optional[Settings] = None,
		clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
		demand_clock: Callable[[], datetime] = datetime.now,
		demand_model: Optional[DemandModel] = None,
	):
		self.catalog = catalog
		self.rules = rules
		self.pricing_rules = pricing_rules
		self.inventory = inventory
		self.store = store
		self.settings = settings or get_settings()
		self.clock = clock
		if demand_model is None:
			# The random demand term can never be reproduced, so it is not used here.
			# Peak hours use local time; `clock` (UTC) covers validity windows and timestamps.
			demand_model = no_demand if self.settings.DEMAND_MODEL == "none" else TimeOfDayDemand(
				demand_clock,
				peak_start=self.settings.PEAK_HOURS_START,
				peak_end=self.settings.PEAK_HOURS_END,
				peak_modifier=self.settings.PEAK_MODIFIER,
				off_peak_modifier=self.settings.OFF_PEAK_MODIFIER,
			)
		self.demand_model = demand_model

	@classmethod
	def from_db(cls, db: Session, **kwargs) -> "ConfigurationService":
		return cls(
			SqlCatalogRepository(db),
			SqlRuleRepository(db),
			SqlPricingRuleRepository(db),
			SqlInventoryChecker(db),
			SqlConfigurationStore(db),
			**kwargs,
		)

	def evaluate(
		self,
		product: Product,
		selection: Mapping[str, str],
		quantity: int,
		customer_segment: Optional[str] = None,
	) -> tuple[EvaluationResult, PricingResult, Decimal]:
		# Load errors propagate: the server never prices against a missing rule set.
		rule_engine = RuleEngine(self.rules, max_passes=self.settings.RULE_MAX_PASSES)
		rule_engine.load(product.id)
		pricing_engine = PricingEngine(self.pricing_rules, demand_model=self.demand_model, clock=self.clock)
		pricing_engine.load(product.id)

		evaluation = rule_engine.evaluate(selection, product)
		pricing = pricing_engine.calculate_price(
			PricingContext(
				base_price=product.base_price,
				selection=evaluation.validated_options,
				quantity=quantity,
				product=product,
				customer_segment=customer_segment,
			)
		)
		final_price, _ = merge_results(evaluation, pricing)
		return evaluation, pricing, final_price

	def validate_and_save(
		self,
		product_id: str,
		selection: Mapping[str, str],
		quantity: int,
		*,
		submitted_price: Optional[object] = None,
		name: Optional[str] = None,
		user_id: Optional[str] = None,
		customer_segment: Optional[str] = None,
	) -> SavedConfiguration:
		if quantity < 1:
			raise ConfigurationInvalid(["quantity must be >= 1"])

		product = self.catalog.get_product_with_options(product_id)
		if product is None:
			raise ProductNotFound(product_id)

		violations = selection_violations(product, selection)
		if violations:
			logger.warning("Rejected configuration for product %s: %s", product_id, violations)
			raise ConfigurationInvalid(violations)

		evaluation, pricing, final_price = self.evaluate(product, selection, quantity, customer_segment)

		violations = list(evaluation.restrictions)
		for option_id in selection:
			if option_id not in evaluation.validated_options:
				message = f"Option '{option_id}' is not allowed with the current selection"
				if message not in violations:
					violations.append(message)
		if violations:
			logger.warning("Rejected configuration for product %s: %s", product_id, violations)
			raise ConfigurationInvalid(violations)

		if submitted_price is not None:
			submitted = to_decimal(submitted_price)
			if abs(submitted - final_price) > self.settings.PRICE_TOLERANCE:
				logger.warning("Price mismatch for product %s: submitted %s, computed %s", product_id, submitted, final_price)
				raise PriceMismatch(submitted, final_price)

		availability = self.inventory.check_availability(list(selection.values()))
		short = [value_id for value_id, ok in availability.items() if not ok]
		if short:
			logger.warning("Insufficient inventory for product %s: %s", product_id, short)
			raise InsufficientInventory(short)

		configuration_id = self.store.save(
			product_id,
			selection,
			final_price,
			name=name,
			user_id=user_id,
			saved_at=self.clock(),
		)
		return SavedConfiguration(
			configuration_id=configuration_id,
			final_price=final_price,
			evaluation=evaluation,
			pricing=pricing,
		)


def save_configuration(
	product_id: str,
	selection: Mapping[str, str],
	quantity: int,
	**kwargs,
) -> SavedConfiguration:
	"""Validate and save in one transaction; any rejection rolls it back."""
	service_kwargs = {k: kwargs.pop(k) for k in ("settings", "clock", "demand_clock", "demand_model") if k in kwargs}
	with db_session_scope() as db:
		return ConfigurationService.from_db(db, **service_kwargs).validate_and_save(
			product_id, selection, quantity, **kwargs
		)
