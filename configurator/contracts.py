"""
Shared types for the rule and pricing engines.

Catalog data (Product / ConfigOption / OptionValue) is owned by the catalog
and handed to the engines read-only, so those models are frozen. Engine
outputs are plain dataclasses built fresh on every call.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator


Selection = Dict[str, str]  # option id -> value id

OptionType = Literal["color", "size", "material", "feature", "accessory"]

ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
	"""Money coercion: None, NaN and unparsable input count as zero."""
	if value is None or isinstance(value, bool):
		return ZERO
	if isinstance(value, Decimal):
		return ZERO if value.is_nan() or value.is_infinite() else value
	try:
		result = Decimal(str(value))
	except (InvalidOperation, ValueError):
		return ZERO
	if result.is_nan() or result.is_infinite():
		return ZERO
	return result


class OptionValue(BaseModel):
	model_config = ConfigDict(frozen=True)

	id: str
	config_option_id: str
	name: str
	price_modifier: Decimal = ZERO
	available: bool = True
	display_order: int = 0

	@field_validator("price_modifier", mode="before")
	@classmethod
	def _coerce_modifier(cls, v: Any) -> Decimal:
		return to_decimal(v)


class ConfigOption(BaseModel):
	model_config = ConfigDict(frozen=True)

	id: str
	product_id: str
	name: str
	type: OptionType
	required: bool = False
	display_order: int = 0
	values: List[OptionValue] = Field(default_factory=list)

	def value(self, value_id: str) -> Optional[OptionValue]:
		for v in self.values:
			if v.id == value_id:
				return v
		return None


class Product(BaseModel):
	model_config = ConfigDict(frozen=True)

	id: str
	name: str
	base_price: Decimal
	category: Optional[str] = None
	options: List[ConfigOption] = Field(default_factory=list)

	@field_validator("base_price", mode="before")
	@classmethod
	def _coerce_base_price(cls, v: Any) -> Decimal:
		return to_decimal(v)

	@property
	def option_ids(self) -> List[str]:
		return [o.id for o in self.options]

	def option(self, option_id: str) -> Optional[ConfigOption]:
		for o in self.options:
			if o.id == option_id:
				return o
		return None

	def find_value(self, value_id: str, option_id: Optional[str] = None) -> Optional[OptionValue]:
		# Look in the named option first; value ids are unique across the product.
		if option_id is not None:
			option = self.option(option_id)
			if option is not None:
				found = option.value(value_id)
				if found is not None:
					return found
		for o in self.options:
			found = o.value(value_id)
			if found is not None:
				return found
		return None

	def required_options(self) -> List[ConfigOption]:
		return [o for o in self.options if o.required]


@dataclass
class EvaluationResult:
	validated_options: Selection
	restrictions: List[str] = field(default_factory=list)
	auto_selections: Selection = field(default_factory=dict)
	price_adjustment: Decimal = ZERO


@dataclass
class PricingContext:
	base_price: Decimal
	selection: Mapping[str, str]
	quantity: int
	product: Product
	customer_segment: Optional[str] = None


@dataclass
class DiscountLine:
	rule: str
	type: str
	amount: Decimal
	description: str


@dataclass
class BreakdownLine:
	item: str
	price: Decimal


@dataclass
class PricingResult:
	original_price: Decimal
	final_price: Decimal
	discounts: List[DiscountLine] = field(default_factory=list)
	breakdown: List[BreakdownLine] = field(default_factory=list)


# Collaborators implemented outside the engines. Rule repositories hand back
# raw records (storage rows or JSON objects); the engines parse them.

class RuleRepository(Protocol):
	def get_active_rules(self, product_id: str) -> Sequence[Mapping[str, Any]]:
		...


class PricingRuleRepository(Protocol):
	def get_active_pricing_rules(self, product_id: str) -> Sequence[Mapping[str, Any]]:
		...


class CatalogRepository(Protocol):
	def get_product_with_options(self, product_id: str) -> Optional[Product]:
		...


class InventoryChecker(Protocol):
	def check_availability(self, value_ids: Iterable[str]) -> Dict[str, bool]:
		...


class ConfigurationStore(Protocol):
	def save(
		self,
		product_id: str,
		selection: Mapping[str, str],
		final_price: Decimal,
		*,
		name: Optional[str] = None,
		user_id: Optional[str] = None,
		saved_at: Optional[datetime] = None,
	) -> str:
		...
