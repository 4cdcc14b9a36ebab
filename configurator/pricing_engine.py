from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Tuple

from .contracts import (
	ZERO,
	BreakdownLine,
	DiscountLine,
	PricingContext,
	PricingResult,
	PricingRuleRepository,
	to_decimal,
)
from .demand import DemandModel, TimeOfDayDemand, demand_model_from_settings
from .errors import MalformedRuleError, PricingRuleLoadError
from .rule_types import (
	BundleRule,
	ConditionalRule,
	PricingRule,
	TimeBasedRule,
	VolumeDiscountRule,
	parse_pricing_rule,
)
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")

# rule type -> (percentage label, fixed amount label)
_DESCRIPTIONS = {
	"volume_discount": ("{}% volume discount", "${} volume discount"),
	"bundle": ("{}% bundle discount", "${} bundle savings"),
	"time_based": ("{}% limited time offer", "${} limited time savings"),
	"conditional": ("{}% special pricing", "${} special offer"),
}


def _utc_now() -> datetime:
	return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
	# Naive timestamps are stored as UTC.
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value


def _plain(value: Decimal) -> str:
	return format(value.normalize(), "f")


def parse_pricing_rule_set(records: Iterable[object]) -> List[PricingRule]:
	parsed: List[PricingRule] = []
	for raw in records:
		try:
			parsed.append(parse_pricing_rule(raw))
		except MalformedRuleError as exc:
			logger.warning("Skipping pricing rule: %s", exc.message)
	return parsed


def _evaluation_order(rules: Iterable[PricingRule]) -> Tuple[PricingRule, ...]:
	# sorted() is stable, so rules sharing a sequence keep their load order.
	return tuple(sorted(rules, key=lambda r: r.sequence))


@dataclass
class PricingInsights:
	competitive_position: str
	value_score: Decimal
	recommended_actions: List[str]


class PricingEngine:
	"""
	Computes a final price from base price, option surcharges and a stack
	of discount rules.

	Discounts compound: each applicable rule is computed against the price
	left by the rules before it, in ``sequence`` order (load order on ties).
	A demand model adds a signed adjustment afterwards; the result is never
	negative.
	"""

	def __init__(
		self,
		repository: Optional[PricingRuleRepository] = None,
		*,
		demand_model: Optional[DemandModel] = None,
		clock: Callable[[], datetime] = _utc_now,
		rules: Optional[Iterable[object]] = None,
	):
		self.repository = repository
		self.demand_model = demand_model if demand_model is not None else TimeOfDayDemand()
		self.clock = clock
		self._rules: Tuple[PricingRule, ...] = ()
		if rules is not None:
			self._rules = _evaluation_order(parse_pricing_rule_set(rules))

	@classmethod
	def from_settings(
		cls,
		repository: Optional[PricingRuleRepository] = None,
		settings: Optional[Settings] = None,
	) -> "PricingEngine":
		settings = settings or get_settings()
		return cls(repository, demand_model=demand_model_from_settings(settings))

	@property
	def rules(self) -> Tuple[PricingRule, ...]:
		return self._rules

	def load(self, product_id: str) -> None:
		"""Fetch active pricing rules; on failure fall back to no discounts and raise."""
		if self.repository is None:
			raise PricingRuleLoadError(product_id, "no pricing rule repository configured")
		try:
			records = self.repository.get_active_pricing_rules(product_id)
		except Exception as exc:
			self._rules = ()
			logger.warning("Pricing rule load failed for product %s, continuing without discounts: %s", product_id, exc)
			raise PricingRuleLoadError(product_id, str(exc)) from exc
		self._rules = _evaluation_order(parse_pricing_rule_set(records))
		logger.info("Loaded %d pricing rules for product %s", len(self._rules), product_id)

	def calculate_price(self, context: PricingContext) -> PricingResult:
		base_price = to_decimal(context.base_price)
		quantity = context.quantity

		base_total = base_price * quantity
		price = base_total
		breakdown = [BreakdownLine(item="Base Price", price=base_total)]
		discounts: List[DiscountLine] = []

		option_total = ZERO
		for option_id, value_id in context.selection.items():
			value = context.product.find_value(value_id, option_id)
			if value is None:
				continue
			modifier = to_decimal(value.price_modifier)
			if modifier != 0:
				line_total = modifier * quantity
				option_total += line_total
				breakdown.append(BreakdownLine(item=value.name, price=line_total))
		price += option_total

		for rule in self.applicable_rules(context):
			discount = self._discount(rule, price)
			if discount.amount > 0:
				logger.debug("Applying %s: -%s", rule.name, discount.amount)
				discounts.append(discount)
				price -= discount.amount

		delta = to_decimal(self.demand_model(context))
		if delta != 0:
			discounts.append(
				DiscountLine(
					rule="Dynamic Pricing",
					type="surcharge" if delta > 0 else "discount",
					amount=abs(delta),
					description="High demand surcharge" if delta > 0 else "Low inventory discount",
				)
			)
			price += delta

		return PricingResult(
			original_price=base_total + option_total,
			final_price=max(ZERO, price),
			discounts=discounts,
			breakdown=breakdown,
		)

	def applicable_rules(self, context: PricingContext) -> List[PricingRule]:
		now = _aware(self.clock())
		applicable = []
		for rule in self._rules:
			if rule.valid_from is not None and _aware(rule.valid_from) > now:
				continue
			if rule.valid_until is not None and _aware(rule.valid_until) < now:
				continue
			if context.quantity < rule.min_quantity:
				continue
			if self._conditions_match(rule, context):
				applicable.append(rule)
		return applicable

	@staticmethod
	def _conditions_match(rule: PricingRule, context: PricingContext) -> bool:
		conditions = rule.conditions
		if isinstance(rule, VolumeDiscountRule):
			threshold = conditions.min_quantity if conditions.min_quantity is not None else rule.min_quantity
			return context.quantity >= threshold
		if isinstance(rule, BundleRule):
			return all(context.selection.get(option_id) for option_id in conditions.required_options)
		if isinstance(rule, ConditionalRule):
			if conditions.customer_segment and context.customer_segment != conditions.customer_segment:
				return False
			if conditions.selected_options is not None:
				return all(
					context.selection.get(option_id) == value_id
					for option_id, value_id in conditions.selected_options.items()
				)
			return True
		if isinstance(rule, TimeBasedRule):
			return True
		return False

	@staticmethod
	def _discount(rule: PricingRule, current_price: Decimal) -> DiscountLine:
		percentage_label, fixed_label = _DESCRIPTIONS[rule.type]
		value = to_decimal(rule.discount_value)
		if rule.discount_type == "percentage":
			amount = current_price * (value / HUNDRED)
			description = percentage_label.format(_plain(value))
		else:
			amount = value
			description = fixed_label.format(_plain(value))
		return DiscountLine(rule=rule.name, type=rule.discount_type, amount=amount, description=description)

	def insights(self, context: PricingContext) -> PricingInsights:
		result = self.calculate_price(context)
		savings_pct = ZERO
		if result.original_price != 0:
			savings_pct = (result.original_price - result.final_price) / result.original_price * HUNDRED

		if result.final_price < 1000:
			position = "low"
		elif result.final_price > 5000:
			position = "high"
		else:
			position = "medium"

		if savings_pct > 10:
			actions = ["Highlight significant savings", "Consider upselling premium options"]
		else:
			actions = ["Add value proposition", "Consider bundle offers"]

		return PricingInsights(
			competitive_position=position,
			value_score=min(HUNDRED, max(ZERO, Decimal("80") + savings_pct)),
			recommended_actions=actions,
		)
