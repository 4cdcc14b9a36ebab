from __future__ import annotations

import logging
from typing import Iterable, List, Mapping, Optional, Tuple

from .contracts import ZERO, EvaluationResult, Product, RuleRepository, Selection
from .errors import MalformedRuleError, RuleLoadError
from .rule_types import (
	AutoSelectRule,
	ConfigurationRule,
	DependencyRule,
	PricingAdjustmentRule,
	RestrictionRule,
	parse_configuration_rule,
)
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)


def _evaluation_order(rules: Iterable[ConfigurationRule]) -> Tuple[ConfigurationRule, ...]:
	# Highest priority first, ties broken by rule id.
	return tuple(sorted(rules, key=lambda r: (-r.priority, r.id)))


def parse_rule_set(records: Iterable[object]) -> List[ConfigurationRule]:
	"""Parse raw rule records, skipping (and logging) any that are malformed."""
	parsed: List[ConfigurationRule] = []
	for raw in records:
		try:
			parsed.append(parse_configuration_rule(raw))
		except MalformedRuleError as exc:
			logger.warning("Skipping configuration rule: %s", exc.message)
	return parsed


class RuleEngine:
	"""
	Evaluates a product's configuration rules against a candidate selection.

	The engine holds one immutable rule snapshot per session. ``evaluate`` is
	a pure function of that snapshot and its arguments: it never mutates the
	caller's selection and never touches I/O.

	Evaluation is a single pass in priority order by default. A restriction
	removing an option is visible to lower-priority rules in the same pass,
	but rules that already ran are not revisited. ``max_passes`` > 1 repeats
	the pass until the selection stops changing.
	"""

	def __init__(
		self,
		repository: Optional[RuleRepository] = None,
		*,
		max_passes: int = 1,
		rules: Optional[Iterable[object]] = None,
	):
		if max_passes < 1:
			raise ValueError("max_passes must be >= 1")
		self.repository = repository
		self.max_passes = max_passes
		self._rules: Tuple[ConfigurationRule, ...] = ()
		if rules is not None:
			self._rules = _evaluation_order(parse_rule_set(rules))

	@classmethod
	def from_settings(cls, repository: Optional[RuleRepository] = None, settings: Optional[Settings] = None) -> "RuleEngine":
		settings = settings or get_settings()
		return cls(repository, max_passes=settings.RULE_MAX_PASSES)

	@property
	def rules(self) -> Tuple[ConfigurationRule, ...]:
		return self._rules

	def load(self, product_id: str) -> None:
		"""
		Fetch the product's active rules and replace the snapshot.

		On failure the engine is left with an empty rule set and
		``RuleLoadError`` is raised; callers may catch it and keep configuring
		without constraints. The server must still re-validate before an order
		is accepted.
		"""
		if self.repository is None:
			raise RuleLoadError(product_id, "no rule repository configured")
		try:
			records = self.repository.get_active_rules(product_id)
		except Exception as exc:
			self._rules = ()
			logger.warning("Rule load failed for product %s, continuing without constraints: %s", product_id, exc)
			raise RuleLoadError(product_id, str(exc)) from exc
		self._rules = _evaluation_order(parse_rule_set(records))
		logger.info("Loaded %d configuration rules for product %s", len(self._rules), product_id)

	def evaluate(self, selection: Mapping[str, str], product: Product) -> EvaluationResult:
		working: Selection = dict(selection)
		seen_restrictions: List[str] = []
		result = EvaluationResult(validated_options=working)
		for pass_no in range(self.max_passes):
			before = dict(working)
			result = self._run_pass(working, product)
			for message in result.restrictions:
				if message not in seen_restrictions:
					seen_restrictions.append(message)
			if working == before:
				break
			logger.debug("Pass %d changed the selection", pass_no + 1)
		result.restrictions = seen_restrictions
		return result

	def _run_pass(self, working: Selection, product: Product) -> EvaluationResult:
		restrictions: List[str] = []
		auto_selections: Selection = {}
		price_adjustment = ZERO

		for rule in self._rules:
			if not self._matches(rule, working, product):
				continue
			logger.debug("Rule %s (%s) matched", rule.id, rule.type)

			if isinstance(rule, DependencyRule):
				required = rule.actions.required_option
				if not working.get(required):
					restrictions.append(f"{rule.name}: Please select {required}")

			elif isinstance(rule, RestrictionRule):
				for option_id in rule.actions.restricted_options:
					if working.get(option_id):
						restrictions.append(f"{rule.name}: {option_id} is not available with current selection")
						del working[option_id]

			elif isinstance(rule, AutoSelectRule):
				option_id = rule.actions.auto_select_option
				if not working.get(option_id):
					auto_selections[option_id] = rule.actions.auto_select_value

			elif isinstance(rule, PricingAdjustmentRule):
				price_adjustment += rule.actions.price_modifier

		return EvaluationResult(
			validated_options=working,
			restrictions=restrictions,
			auto_selections=auto_selections,
			price_adjustment=price_adjustment,
		)

	@staticmethod
	def _matches(rule: ConfigurationRule, selection: Mapping[str, str], product: Product) -> bool:
		conditions = rule.conditions
		for option_id, value_id in conditions.selected_options.items():
			# A missing option never matches.
			if option_id not in selection or selection[option_id] != value_id:
				return False
		if conditions.product_type is not None and product.category != conditions.product_type:
			return False
		return True

	def available_values(self, selection: Mapping[str, str], product: Product, option_id: str) -> List[str]:
		"""
		Values of ``option_id`` that can be chosen without triggering a
		restriction, found by evaluating one trial selection per value.
		"""
		option = product.option(option_id)
		if option is None:
			return []
		available: List[str] = []
		for value in option.values:
			if not value.available:
				continue
			trial = dict(selection)
			trial[option_id] = value.id
			if not self.evaluate(trial, product).restrictions:
				available.append(value.id)
		return available
