from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, Optional


class ConfiguratorError(Exception):
	"""
	Base error for the configuration engine.

	Carries a stable ``code`` plus structured ``details`` so callers can
	surface a user-facing message without parsing exception text.
	"""

	def __init__(
		self,
		message: str,
		*,
		code: str = "CONFIGURATOR_ERROR",
		details: Optional[Dict[str, Any]] = None,
		user_message: Optional[str] = None,
	) -> None:
		self.message = message
		self.code = code
		self.details: Dict[str, Any] = details or {}
		self.user_message = user_message or message
		super().__init__(self.message)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"code": self.code,
			"message": self.message,
			"user_message": self.user_message,
			"details": self.details,
		}


class RuleLoadError(ConfiguratorError):
	def __init__(self, product_id: str, reason: str):
		super().__init__(
			f"Failed to load configuration rules for product {product_id}: {reason}",
			code="RULE_LOAD_FAILED",
			details={"product_id": product_id, "reason": reason},
			user_message="Configuration rules are temporarily unavailable",
		)


class PricingRuleLoadError(ConfiguratorError):
	def __init__(self, product_id: str, reason: str):
		super().__init__(
			f"Failed to load pricing rules for product {product_id}: {reason}",
			code="PRICING_RULE_LOAD_FAILED",
			details={"product_id": product_id, "reason": reason},
			user_message="Discounts are temporarily unavailable",
		)


class MalformedRuleError(ConfiguratorError):
	def __init__(self, rule_id: Any, reason: str):
		super().__init__(
			f"Malformed rule {rule_id}: {reason}",
			code="MALFORMED_RULE",
			details={"rule_id": rule_id, "reason": reason},
		)


class ProductNotFound(ConfiguratorError):
	def __init__(self, product_id: str):
		super().__init__(
			f"Product not found: {product_id}",
			code="PRODUCT_NOT_FOUND",
			details={"product_id": product_id},
		)


class InsufficientInventory(ConfiguratorError):
	def __init__(self, value_ids: Iterable[str]):
		value_ids = list(value_ids)
		super().__init__(
			f"Insufficient inventory for option values: {', '.join(value_ids)}",
			code="INSUFFICIENT_INVENTORY",
			details={"value_ids": value_ids},
			user_message="Insufficient inventory for selected options",
		)


class ConfigurationInvalid(ConfiguratorError):
	def __init__(self, violations: Iterable[str]):
		violations = list(violations)
		super().__init__(
			"Configuration invalid",
			code="CONFIGURATION_INVALID",
			details={"violations": violations},
		)


class PriceMismatch(ConfiguratorError):
	def __init__(self, submitted: Decimal, computed: Decimal):
		super().__init__(
			f"Submitted price {submitted} does not match computed price {computed}",
			code="PRICE_MISMATCH",
			details={"submitted": str(submitted), "computed": str(computed)},
			user_message="The price has changed, please review your configuration",
		)
