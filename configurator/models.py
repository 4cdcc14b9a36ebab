import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
	JSON,
	Boolean,
	DateTime,
	ForeignKey,
	Integer,
	Numeric,
	String,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from .db import Base


def _uuid() -> str:
	return str(uuid.uuid4())


class Category(Base):
	__tablename__ = "categories"

	id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
	name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)


class Product(Base):
	__tablename__ = "products"

	id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
	category_id: Mapped[Optional[str]] = mapped_column(ForeignKey("categories.id"), nullable=True)
	name: Mapped[str] = mapped_column(String(255), nullable=False)
	base_price: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
	is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

	category: Mapped[Optional["Category"]] = relationship("Category")
	options: Mapped[list["ConfigOption"]] = relationship(
		"ConfigOption", back_populates="product", order_by="ConfigOption.display_order"
	)


class ConfigOption(Base):
	__tablename__ = "config_options"

	id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
	product_id: Mapped[str] = mapped_column(ForeignKey("products.id"), nullable=False)
	name: Mapped[str] = mapped_column(String(255), nullable=False)
	option_type: Mapped[str] = mapped_column(String(32), nullable=False)
	is_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
	display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

	product: Mapped["Product"] = relationship("Product", back_populates="options")
	values: Mapped[list["OptionValue"]] = relationship(
		"OptionValue", back_populates="option", order_by="OptionValue.display_order"
	)


class OptionValue(Base):
	__tablename__ = "option_values"

	id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
	config_option_id: Mapped[str] = mapped_column(ForeignKey("config_options.id"), nullable=False)
	name: Mapped[str] = mapped_column(String(255), nullable=False)
	price_modifier: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
	is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
	display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

	option: Mapped["ConfigOption"] = relationship("ConfigOption", back_populates="values")


class ConfigurationRule(Base):
	__tablename__ = "configuration_rules"

	id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
	product_id: Mapped[str] = mapped_column(ForeignKey("products.id"), nullable=False)
	rule_name: Mapped[str] = mapped_column(String(255), nullable=False)
	rule_type: Mapped[str] = mapped_column(String(32), nullable=False)
	conditions: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
	actions: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
	priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
	is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
	created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class PricingRule(Base):
	__tablename__ = "pricing_rules"

	id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
	product_id: Mapped[str] = mapped_column(ForeignKey("products.id"), nullable=False)
	rule_name: Mapped[str] = mapped_column(String(255), nullable=False)
	rule_type: Mapped[str] = mapped_column(String(32), nullable=False)
	conditions: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
	discount_type: Mapped[str] = mapped_column(String(32), nullable=False)
	discount_value: Mapped[float] = mapped_column(Numeric(12, 4), nullable=False, default=0)
	min_quantity: Mapped[Optional[int]] = mapped_column(Integer, default=1, nullable=True)
	valid_from: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
	valid_until: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
	sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
	is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
	created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class InventoryLevel(Base):
	__tablename__ = "inventory_levels"

	id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
	option_value_id: Mapped[str] = mapped_column(ForeignKey("option_values.id"), nullable=False, unique=True)
	available_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
	reserved_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
	low_stock_threshold: Mapped[int] = mapped_column(Integer, default=10, nullable=False)


class ProductConfiguration(Base):
	__tablename__ = "product_configurations"

	id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
	product_id: Mapped[str] = mapped_column(ForeignKey("products.id"), nullable=False)
	user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
	configuration_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
	total_price: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False)
	configuration_data: Mapped[dict] = mapped_column(JSON, nullable=False)
	created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
