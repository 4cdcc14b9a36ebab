"""
Typed rule payloads.

Configuration and pricing rules are stored with a ``type`` column and
loosely structured JSON ``conditions`` / ``actions``. Each rule type maps to
its own model so a payload that does not fit its type is rejected when the
rule set is parsed, not in the middle of an evaluation pass.
"""
from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .contracts import ZERO, to_decimal
from .errors import MalformedRuleError


_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

_RECORD_ALIASES = {
	"rule_name": "name",
	"rule_type": "type",
	"is_active": "active",
}


def _snake(key: str) -> str:
	return _CAMEL_BOUNDARY.sub("_", key).lower()


def _snake_keys(payload: Any) -> Any:
	# Only the keys of this level are rewritten; nested mappings such as
	# selected_options are keyed by option ids and must stay untouched.
	if not isinstance(payload, Mapping):
		return payload
	return {_snake(str(k)): v for k, v in payload.items()}


def normalize_record(raw: Mapping[str, Any]) -> Dict[str, Any]:
	"""Map a storage row or camelCase JSON object onto the model field names."""
	record: Dict[str, Any] = {}
	for key, value in raw.items():
		key = _snake(str(key))
		record[_RECORD_ALIASES.get(key, key)] = value
	if record.get("id") is not None:
		record["id"] = str(record["id"])
	if record.get("product_id") is not None:
		record["product_id"] = str(record["product_id"])
	for key in ("conditions", "actions"):
		if key in record:
			record[key] = _snake_keys(record[key])
	return record


class _Payload(BaseModel):
	model_config = ConfigDict(frozen=True, extra="ignore")


def _none_to_empty(v: Any) -> Any:
	return {} if v is None else v


# ---------------------------------------------------------------------------
# Configuration rules
# ---------------------------------------------------------------------------

class RuleConditions(_Payload):
	selected_options: Dict[str, str] = Field(default_factory=dict)
	product_type: Optional[str] = None

	@field_validator("selected_options", mode="before")
	@classmethod
	def _selected(cls, v: Any) -> Any:
		return _none_to_empty(v)


class DependencyAction(_Payload):
	required_option: str
	required_value: Optional[str] = None


class RestrictionAction(_Payload):
	restricted_options: List[str]


class AutoSelectAction(_Payload):
	auto_select_option: str
	auto_select_value: str


class PricingAdjustmentAction(_Payload):
	price_modifier: Decimal = ZERO

	@field_validator("price_modifier", mode="before")
	@classmethod
	def _modifier(cls, v: Any) -> Decimal:
		return to_decimal(v)


class _ConfigurationRuleBase(_Payload):
	id: str
	product_id: Optional[str] = None
	name: str
	priority: int = 0
	active: bool = True
	conditions: RuleConditions = Field(default_factory=RuleConditions)

	@field_validator("conditions", mode="before")
	@classmethod
	def _conditions(cls, v: Any) -> Any:
		return _none_to_empty(v)


class DependencyRule(_ConfigurationRuleBase):
	type: Literal["dependency"]
	actions: DependencyAction


class RestrictionRule(_ConfigurationRuleBase):
	type: Literal["restriction"]
	actions: RestrictionAction


class AutoSelectRule(_ConfigurationRuleBase):
	type: Literal["auto_select"]
	actions: AutoSelectAction


class PricingAdjustmentRule(_ConfigurationRuleBase):
	type: Literal["pricing"]
	actions: PricingAdjustmentAction = Field(default_factory=PricingAdjustmentAction)

	@field_validator("actions", mode="before")
	@classmethod
	def _actions(cls, v: Any) -> Any:
		return _none_to_empty(v)


ConfigurationRule = Annotated[
	Union[DependencyRule, RestrictionRule, AutoSelectRule, PricingAdjustmentRule],
	Field(discriminator="type"),
]

_configuration_rule_adapter: TypeAdapter[ConfigurationRule] = TypeAdapter(ConfigurationRule)


# ---------------------------------------------------------------------------
# Pricing rules
# ---------------------------------------------------------------------------

class VolumeDiscountConditions(_Payload):
	min_quantity: Optional[int] = None


class TimeBasedConditions(_Payload):
	pass


class BundleConditions(_Payload):
	required_options: List[str] = Field(default_factory=list)


class ConditionalConditions(_Payload):
	customer_segment: Optional[str] = None
	selected_options: Optional[Dict[str, str]] = None


class _PricingRuleBase(_Payload):
	id: str
	product_id: Optional[str] = None
	name: str
	discount_type: Literal["percentage", "fixed_amount"]
	discount_value: Decimal = ZERO
	min_quantity: int = 1
	valid_from: Optional[datetime] = None
	valid_until: Optional[datetime] = None
	sequence: int = 0
	active: bool = True

	@field_validator("discount_value", mode="before")
	@classmethod
	def _discount_value(cls, v: Any) -> Decimal:
		return to_decimal(v)

	@field_validator("min_quantity", mode="before")
	@classmethod
	def _min_quantity(cls, v: Any) -> Any:
		return 1 if v is None else v

	@field_validator("sequence", mode="before")
	@classmethod
	def _sequence(cls, v: Any) -> Any:
		return 0 if v is None else v

	@field_validator("conditions", mode="before", check_fields=False)
	@classmethod
	def _conditions(cls, v: Any) -> Any:
		return _none_to_empty(v)


class VolumeDiscountRule(_PricingRuleBase):
	type: Literal["volume_discount"]
	conditions: VolumeDiscountConditions = Field(default_factory=VolumeDiscountConditions)


class TimeBasedRule(_PricingRuleBase):
	type: Literal["time_based"]
	conditions: TimeBasedConditions = Field(default_factory=TimeBasedConditions)


class BundleRule(_PricingRuleBase):
	type: Literal["bundle"]
	conditions: BundleConditions = Field(default_factory=BundleConditions)


class ConditionalRule(_PricingRuleBase):
	type: Literal["conditional"]
	conditions: ConditionalConditions = Field(default_factory=ConditionalConditions)


PricingRule = Annotated[
	Union[VolumeDiscountRule, TimeBasedRule, BundleRule, ConditionalRule],
	Field(discriminator="type"),
]

_pricing_rule_adapter: TypeAdapter[PricingRule] = TypeAdapter(PricingRule)

_CONFIGURATION_RULE_CLASSES = (DependencyRule, RestrictionRule, AutoSelectRule, PricingAdjustmentRule)
_PRICING_RULE_CLASSES = (VolumeDiscountRule, TimeBasedRule, BundleRule, ConditionalRule)


def _first_error(exc: ValidationError) -> str:
	err = exc.errors()[0]
	loc = ".".join(str(part) for part in err.get("loc", ()))
	return f"{loc}: {err.get('msg')}" if loc else str(err.get("msg"))


def parse_configuration_rule(raw: Any) -> ConfigurationRule:
	if isinstance(raw, _CONFIGURATION_RULE_CLASSES):
		return raw
	if not isinstance(raw, Mapping):
		raise MalformedRuleError(None, f"expected a mapping, got {type(raw).__name__}")
	record = normalize_record(raw)
	try:
		return _configuration_rule_adapter.validate_python(record)
	except ValidationError as exc:
		raise MalformedRuleError(record.get("id"), _first_error(exc)) from exc


def parse_pricing_rule(raw: Any) -> PricingRule:
	if isinstance(raw, _PRICING_RULE_CLASSES):
		return raw
	if not isinstance(raw, Mapping):
		raise MalformedRuleError(None, f"expected a mapping, got {type(raw).__name__}")
	record = normalize_record(raw)
	try:
		return _pricing_rule_adapter.validate_python(record)
	except ValidationError as exc:
		raise MalformedRuleError(record.get("id"), _first_error(exc)) from exc
