import os

os.environ.setdefault("CONFIGURATOR_DATABASE_URL", "sqlite://")

from decimal import Decimal

import pytest

from configurator.contracts import ConfigOption, OptionValue, Product


def _values(option_id, *rows):
	return [
		OptionValue(id=vid, config_option_id=option_id, name=name, price_modifier=Decimal(str(mod)), available=avail, display_order=i)
		for i, (vid, name, mod, avail) in enumerate(rows)
	]


@pytest.fixture
def laptop() -> Product:
	return Product(
		id="laptop",
		name="Workstation Laptop",
		base_price=Decimal("1000"),
		category="computers",
		options=[
			ConfigOption(
				id="memory",
				product_id="laptop",
				name="Memory",
				type="feature",
				required=True,
				values=_values(
					"memory",
					("8GB", "8 GB RAM", 0, True),
					("16GB", "16 GB RAM", 50, True),
					("32GB", "32 GB RAM", 150, True),
				),
			),
			ConfigOption(
				id="gpu",
				product_id="laptop",
				name="Graphics",
				type="feature",
				values=_values(
					"gpu",
					("RTX4060", "RTX 4060", 0, True),
					("RTX4080", "RTX 4080", 400, True),
					("RTX4090", "RTX 4090", 900, True),
					("A6000", "RTX A6000", 2500, False),
				),
			),
			ConfigOption(
				id="color",
				product_id="laptop",
				name="Color",
				type="color",
				values=_values(
					"color",
					("silver", "Silver", 0, True),
					("black", "Matte Black", 25, True),
				),
			),
			ConfigOption(
				id="cooling",
				product_id="laptop",
				name="Cooling",
				type="accessory",
				values=_values(
					"cooling",
					("standard", "Standard Cooling", 0, True),
					("vapor", "Vapor Chamber", 80, True),
				),
			),
		],
	)


def config_rule(rule_id, rule_type, actions, *, name=None, priority=0, selected=None, product_type=None):
	conditions = {}
	if selected is not None:
		conditions["selected_options"] = selected
	if product_type is not None:
		conditions["product_type"] = product_type
	return {
		"id": rule_id,
		"product_id": "laptop",
		"rule_name": name or rule_id,
		"rule_type": rule_type,
		"conditions": conditions,
		"actions": actions,
		"priority": priority,
		"is_active": True,
	}


def pricing_rule(rule_id, rule_type, discount_value, *, discount_type="percentage", conditions=None, min_quantity=1, name=None, **extra):
	record = {
		"id": rule_id,
		"product_id": "laptop",
		"rule_name": name or rule_id,
		"rule_type": rule_type,
		"conditions": conditions or {},
		"discount_type": discount_type,
		"discount_value": discount_value,
		"min_quantity": min_quantity,
		"is_active": True,
	}
	record.update(extra)
	return record
