import random
from decimal import Decimal

import pytest

from configurator.errors import RuleLoadError
from configurator.rule_engine import RuleEngine

from conftest import config_rule


class StubRuleRepository:
	def __init__(self, records=None, error=None):
		self.records = records or []
		self.error = error
		self.calls = []

	def get_active_rules(self, product_id):
		self.calls.append(product_id)
		if self.error is not None:
			raise self.error
		return self.records


MEMORY_LIMITS_GPU = config_rule(
	"mem-gpu",
	"restriction",
	{"restricted_options": ["gpu"]},
	name="Low memory",
	priority=10,
	selected={"memory": "8GB"},
)


def test_restriction_removes_option_and_reports(laptop):
	engine = RuleEngine(rules=[MEMORY_LIMITS_GPU])
	selection = {"memory": "8GB", "gpu": "RTX4080"}

	result = engine.evaluate(selection, laptop)

	assert result.restrictions == ["Low memory: gpu is not available with current selection"]
	assert result.validated_options == {"memory": "8GB"}
	# caller's selection is untouched
	assert selection == {"memory": "8GB", "gpu": "RTX4080"}


def test_dependency_reports_missing_option(laptop):
	engine = RuleEngine(rules=[
		config_rule("needs-cooling", "dependency", {"required_option": "cooling"}, name="High-end GPU", selected={"gpu": "RTX4090"}),
	])

	missing = engine.evaluate({"gpu": "RTX4090"}, laptop)
	present = engine.evaluate({"gpu": "RTX4090", "cooling": "vapor"}, laptop)

	assert missing.restrictions == ["High-end GPU: Please select cooling"]
	assert missing.validated_options == {"gpu": "RTX4090"}
	assert present.restrictions == []


def test_auto_select_is_suggested_not_applied(laptop):
	engine = RuleEngine(rules=[
		config_rule("auto-cool", "auto_select", {"auto_select_option": "cooling", "auto_select_value": "vapor"}, selected={"gpu": "RTX4090"}),
	])

	result = engine.evaluate({"gpu": "RTX4090"}, laptop)
	already_set = engine.evaluate({"gpu": "RTX4090", "cooling": "standard"}, laptop)

	assert result.auto_selections == {"cooling": "vapor"}
	assert "cooling" not in result.validated_options
	assert already_set.auto_selections == {}


def test_pricing_rules_sum_adjustments(laptop):
	engine = RuleEngine(rules=[
		config_rule("p1", "pricing", {"price_modifier": 30}),
		config_rule("p2", "pricing", {"price_modifier": "-12.50"}, selected={"color": "black"}),
		config_rule("p3", "pricing", {"price_modifier": None}),
	])

	assert engine.evaluate({}, laptop).price_adjustment == Decimal("30")
	assert engine.evaluate({"color": "black"}, laptop).price_adjustment == Decimal("17.50")


def test_missing_condition_key_never_matches(laptop):
	engine = RuleEngine(rules=[
		config_rule("r", "dependency", {"required_option": "cooling"}, selected={"gpu": "RTX4090"}),
		config_rule("p", "pricing", {"price_modifier": 99}, selected={"gpu": "RTX4090"}),
	])

	result = engine.evaluate({"memory": "16GB"}, laptop)

	assert result.restrictions == []
	assert result.price_adjustment == 0


def test_product_type_condition(laptop):
	engine = RuleEngine(rules=[
		config_rule("desk", "pricing", {"price_modifier": 5}, product_type="desks"),
		config_rule("comp", "pricing", {"price_modifier": 7}, product_type="computers"),
	])
	assert engine.evaluate({}, laptop).price_adjustment == Decimal("7")


def test_restriction_is_visible_to_lower_priority_rules(laptop):
	engine = RuleEngine(rules=[
		MEMORY_LIMITS_GPU,
		config_rule("gpu-surcharge", "pricing", {"price_modifier": 40}, priority=1, selected={"gpu": "RTX4080"}),
	])

	result = engine.evaluate({"memory": "8GB", "gpu": "RTX4080"}, laptop)

	assert result.price_adjustment == 0


def test_single_pass_does_not_revisit_higher_priority_rules(laptop):
	# The dependency runs first and is satisfied; the restriction then removes
	# the dependency's requirement, which a single pass does not catch.
	rules = [
		config_rule("needs-gpu", "dependency", {"required_option": "gpu"}, name="Needs GPU", priority=10, selected={"memory": "8GB"}),
		config_rule("black-no-gpu", "restriction", {"restricted_options": ["gpu"]}, name="Black chassis", priority=1, selected={"color": "black"}),
	]
	selection = {"memory": "8GB", "color": "black", "gpu": "RTX4060"}

	single = RuleEngine(rules=rules).evaluate(selection, laptop)
	fixpoint = RuleEngine(rules=rules, max_passes=3).evaluate(selection, laptop)

	assert single.restrictions == ["Black chassis: gpu is not available with current selection"]
	assert fixpoint.restrictions == [
		"Black chassis: gpu is not available with current selection",
		"Needs GPU: Please select gpu",
	]
	assert single.validated_options == fixpoint.validated_options == {"memory": "8GB", "color": "black"}


def test_max_passes_must_be_positive():
	with pytest.raises(ValueError):
		RuleEngine(max_passes=0)


def test_priority_order_with_id_tie_break(laptop):
	engine = RuleEngine(rules=[
		config_rule("b", "pricing", {"price_modifier": 1}, priority=5),
		config_rule("c", "pricing", {"price_modifier": 1}, priority=1),
		config_rule("a", "pricing", {"price_modifier": 1}, priority=5),
	])
	assert [r.id for r in engine.rules] == ["a", "b", "c"]


def test_first_restriction_wins_in_priority_order(laptop):
	engine = RuleEngine(rules=[
		config_rule("low", "restriction", {"restricted_options": ["gpu"]}, name="Low", priority=1),
		config_rule("high", "restriction", {"restricted_options": ["gpu"]}, name="High", priority=9),
	])
	result = engine.evaluate({"gpu": "RTX4090"}, laptop)
	assert result.restrictions == ["High: gpu is not available with current selection"]


def test_malformed_rules_are_skipped(laptop, caplog):
	engine = RuleEngine(rules=[
		config_rule("broken", "restriction", {"restricted": "gpu"}),
		config_rule("unknown", "discount", {}),
		config_rule("ok", "pricing", {"price_modifier": 3}),
	])

	assert [r.id for r in engine.rules] == ["ok"]
	assert engine.evaluate({"gpu": "RTX4090"}, laptop).price_adjustment == Decimal("3")
	assert "Skipping configuration rule" in caplog.text


def test_load_replaces_rules(laptop):
	repo = StubRuleRepository([MEMORY_LIMITS_GPU])
	engine = RuleEngine(repo)

	engine.load("laptop")

	assert repo.calls == ["laptop"]
	assert len(engine.rules) == 1
	assert engine.evaluate({"memory": "8GB", "gpu": "RTX4090"}, laptop).restrictions


def test_load_failure_degrades_to_no_rules(laptop):
	engine = RuleEngine(StubRuleRepository([MEMORY_LIMITS_GPU]))
	engine.load("laptop")
	engine.repository = StubRuleRepository(error=ConnectionError("rules store down"))

	with pytest.raises(RuleLoadError) as exc:
		engine.load("laptop")

	assert exc.value.code == "RULE_LOAD_FAILED"
	assert engine.rules == ()
	result = engine.evaluate({"memory": "8GB", "gpu": "RTX4090"}, laptop)
	assert result.restrictions == []
	assert result.validated_options == {"memory": "8GB", "gpu": "RTX4090"}


def test_evaluate_before_load_is_unconstrained(laptop):
	engine = RuleEngine(StubRuleRepository([MEMORY_LIMITS_GPU]))
	result = engine.evaluate({"memory": "8GB", "gpu": "RTX4090"}, laptop)
	assert result.restrictions == []


def test_available_values(laptop):
	engine = RuleEngine(rules=[
		config_rule("no-4090-on-8", "restriction", {"restricted_options": ["memory"]}, priority=5, selected={"gpu": "RTX4090"}),
	])

	# A6000 is flagged unavailable in the catalog and never offered.
	assert engine.available_values({}, laptop, "gpu") == ["RTX4060", "RTX4080", "RTX4090"]
	assert engine.available_values({"memory": "8GB"}, laptop, "gpu") == ["RTX4060", "RTX4080"]
	assert engine.available_values({}, laptop, "nonexistent") == []


def test_available_values_does_not_mutate_inputs(laptop):
	engine = RuleEngine(rules=[MEMORY_LIMITS_GPU])
	rules_before = engine.rules
	selection = {"memory": "8GB", "gpu": "RTX4080"}

	for _ in range(3):
		engine.available_values(selection, laptop, "gpu")
		engine.available_values(selection, laptop, "memory")

	assert engine.rules is rules_before
	assert engine.rules[0].actions.restricted_options == ["gpu"]
	assert selection == {"memory": "8GB", "gpu": "RTX4080"}


OPTIONS = {
	"memory": ["8GB", "16GB", "32GB"],
	"gpu": ["RTX4060", "RTX4080", "RTX4090"],
	"color": ["silver", "black"],
	"cooling": ["standard", "vapor"],
}
# Restrictions only remove REMOVABLE options; every rule reads DRIVING options,
# so a removal can never change which rules match.
DRIVING = ["memory", "color"]
REMOVABLE = ["gpu", "cooling"]


def _random_rule_set(rng):
	rules = []
	for n in range(rng.randint(1, 8)):
		kind = rng.choice(["restriction", "dependency", "auto_select", "pricing"])
		cond_option = rng.choice(DRIVING)
		selected = {cond_option: rng.choice(OPTIONS[cond_option])}
		if kind == "restriction":
			actions = {"restricted_options": rng.sample(REMOVABLE, rng.randint(1, 2))}
		elif kind == "dependency":
			actions = {"required_option": rng.choice(DRIVING)}
		elif kind == "auto_select":
			opt = rng.choice(DRIVING)
			actions = {"auto_select_option": opt, "auto_select_value": rng.choice(OPTIONS[opt])}
		else:
			actions = {"price_modifier": rng.randint(-20, 50)}
		rules.append(config_rule(f"r{n}", kind, actions, priority=rng.randint(0, 100), selected=selected))
	return rules


@pytest.mark.parametrize("seed", range(25))
def test_reevaluating_validated_selection_is_stable(seed, laptop):
	rng = random.Random(seed)
	engine = RuleEngine(rules=_random_rule_set(rng))
	selection = {opt: rng.choice(vals) for opt, vals in OPTIONS.items() if rng.random() < 0.8}

	first = engine.evaluate(selection, laptop)
	second = engine.evaluate(first.validated_options, laptop)

	assert second.validated_options == first.validated_options
	assert second.auto_selections == first.auto_selections
	assert second.price_adjustment == first.price_adjustment
	assert [m for m in second.restrictions if "is not available" in m] == []
	assert [m for m in second.restrictions if "Please select" in m] == [
		m for m in first.restrictions if "Please select" in m
	]
