"""
SQLAlchemy-backed implementations of the collaborators the engines and the
configuration service depend on. Rule repositories return plain dict
records; parsing into typed rules is the engines' job.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy.orm import Session, selectinload

from . import models
from .contracts import ConfigOption, OptionValue, Product

logger = logging.getLogger(__name__)


def _round_currency(value: Decimal) -> Decimal:
	return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class SqlRuleRepository:
	def __init__(self, db: Session):
		self.db = db

	def get_active_rules(self, product_id: str) -> List[Dict[str, Any]]:
		rows = (
			self.db.query(models.ConfigurationRule)
			.filter(models.ConfigurationRule.product_id == product_id)
			.filter(models.ConfigurationRule.is_active == True)  # noqa: E712
			.order_by(models.ConfigurationRule.priority.desc(), models.ConfigurationRule.id.asc())
			.all()
		)
		return [
			{
				"id": r.id,
				"product_id": r.product_id,
				"rule_name": r.rule_name,
				"rule_type": r.rule_type,
				"conditions": r.conditions,
				"actions": r.actions,
				"priority": r.priority,
				"is_active": r.is_active,
			}
			for r in rows
		]


class SqlPricingRuleRepository:
	def __init__(self, db: Session):
		self.db = db

	def get_active_pricing_rules(self, product_id: str) -> List[Dict[str, Any]]:
		rows = (
			self.db.query(models.PricingRule)
			.filter(models.PricingRule.product_id == product_id)
			.filter(models.PricingRule.is_active == True)  # noqa: E712
			.order_by(models.PricingRule.sequence.asc(), models.PricingRule.created_at.asc(), models.PricingRule.id.asc())
			.all()
		)
		return [
			{
				"id": r.id,
				"product_id": r.product_id,
				"rule_name": r.rule_name,
				"rule_type": r.rule_type,
				"conditions": r.conditions,
				"discount_type": r.discount_type,
				"discount_value": r.discount_value,
				"min_quantity": r.min_quantity,
				"valid_from": r.valid_from,
				"valid_until": r.valid_until,
				"sequence": r.sequence,
				"is_active": r.is_active,
			}
			for r in rows
		]


class SqlCatalogRepository:
	def __init__(self, db: Session):
		self.db = db

	def get_product_with_options(self, product_id: str) -> Optional[Product]:
		row = (
			self.db.query(models.Product)
			.options(
				selectinload(models.Product.category),
				selectinload(models.Product.options).selectinload(models.ConfigOption.values),
			)
			.filter(models.Product.id == product_id)
			.first()
		)
		if row is None:
			return None
		return Product(
			id=row.id,
			name=row.name,
			base_price=row.base_price,
			category=row.category.name if row.category else None,
			options=[
				ConfigOption(
					id=o.id,
					product_id=o.product_id,
					name=o.name,
					type=o.option_type,
					required=o.is_required,
					display_order=o.display_order,
					values=[
						OptionValue(
							id=v.id,
							config_option_id=v.config_option_id,
							name=v.name,
							price_modifier=v.price_modifier,
							available=v.is_available,
							display_order=v.display_order,
						)
						for v in o.values
					],
				)
				for o in row.options
			],
		)


class SqlInventoryChecker:
	"""Stock per option value. Values without an inventory record are treated as available."""

	def __init__(self, db: Session):
		self.db = db

	def _levels(self, value_ids: Iterable[str]) -> Dict[str, models.InventoryLevel]:
		value_ids = list(value_ids)
		if not value_ids:
			return {}
		rows = (
			self.db.query(models.InventoryLevel)
			.filter(models.InventoryLevel.option_value_id.in_(value_ids))
			.all()
		)
		return {r.option_value_id: r for r in rows}

	def check_availability(self, value_ids: Iterable[str]) -> Dict[str, bool]:
		value_ids = list(value_ids)
		levels = self._levels(value_ids)
		result: Dict[str, bool] = {}
		for value_id in value_ids:
			level = levels.get(value_id)
			if level is None:
				result[value_id] = True
			else:
				result[value_id] = level.available_quantity - level.reserved_quantity > 0
		return result

	def low_stock(self, value_ids: Iterable[str]) -> List[str]:
		levels = self._levels(value_ids)
		return [
			value_id
			for value_id, level in levels.items()
			if level.available_quantity - level.reserved_quantity <= level.low_stock_threshold
		]


class SqlConfigurationStore:
	def __init__(self, db: Session):
		self.db = db

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
		row = models.ProductConfiguration(
			product_id=product_id,
			user_id=user_id,
			configuration_name=name,
			total_price=_round_currency(final_price),
			configuration_data=dict(selection),
		)
		if saved_at is not None:
			row.created_at = saved_at
		self.db.add(row)
		self.db.flush()
		logger.info("Saved configuration %s for product %s", row.id, product_id)
		return row.id
