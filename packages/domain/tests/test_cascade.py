"""Tests for multi-level cascades and hierarchy assembly.

Tests cover:
1. Demo hierarchy (parent fund, Sub-Fund A 55% / Sub-Fund B 45%, 21% tax)
2. Push-down of after-tax amounts, retained remainder and fan-in
3. Cascade conservation
4. Validation and error propagation
5. build_fund_tree from flat rows
"""

from decimal import Decimal
from datetime import date

import pytest

from waterfall_domain.errors import InvalidInputError
from waterfall_domain.blocks import run_cascade, build_fund_tree
from waterfall_domain.schemas import (
    FundNode,
    FundRecord,
    InvestorCapitalAccount,
    TierType,
    WaterfallConfig,
    WaterfallTier,
    standard_waterfall,
)


TAX = Decimal("0.21")


def non_capital_total(node):
    return sum(
        (t.amount_distributed for t in node.waterfall_result.tier_distributions
         if t.tier_type != TierType.RETURN_OF_CAPITAL),
        Decimal("0"),
    )


class TestDemoHierarchy:
    """Parent fund distributing into two taxed sub-funds."""

    def test_sub_fund_a_taxed_on_non_capital_tiers(self, demo_hierarchy, accounts_by_fund, as_of):
        """1M at the parent: Sub-Fund A gets exactly 550K pre-tax.

        Its fan-up contribution is 550K less 21% of every non-capital tier.
        """
        result = run_cascade(Decimal("1000000"), demo_hierarchy, accounts_by_fund, as_of)

        sub_fund_a = result.node("sub-fund-a")
        assert sub_fund_a.allocated_amount == Decimal("550000")
        assert sub_fund_a.has_waterfall
        assert sub_fund_a.waterfall_result.total_distributable == Decimal("550000")
        assert sub_fund_a.tax_amount == TAX * non_capital_total(sub_fund_a)
        assert sub_fund_a.after_tax_amount == Decimal("550000") - TAX * non_capital_total(sub_fund_a)

        assert result.node("sub-fund-b").allocated_amount == Decimal("450000")

    def test_sub_fund_a_profit_is_taxed(self, demo_hierarchy, accounts_by_fund, as_of):
        """100M at the parent pushes 55M into Sub-Fund A, well past its 30M of capital."""
        result = run_cascade(Decimal("100000000"), demo_hierarchy, accounts_by_fund, as_of)

        sub_fund_a = result.node("sub-fund-a")
        assert sub_fund_a.allocated_amount == Decimal("55000000")
        assert sub_fund_a.waterfall_result.tier("tier-1").amount_distributed == Decimal("30000000")
        assert non_capital_total(sub_fund_a) == Decimal("25000000")
        assert sub_fund_a.tax_amount == Decimal("5250000")
        assert sub_fund_a.after_tax_amount == Decimal("49750000")
        assert sub_fund_a.after_tax_amount < sub_fund_a.allocated_amount

    def test_pass_through_root(self, demo_hierarchy, accounts_by_fund, as_of):
        result = run_cascade(Decimal("1000000"), demo_hierarchy, accounts_by_fund, as_of)

        root = result.root
        assert root.fund_id == "parent-fund"
        assert root.depth == 0
        assert not root.has_waterfall
        assert root.allocated_amount == Decimal("1000000")
        assert root.tax_amount == Decimal("0")
        assert root.after_tax_amount == Decimal("1000000")
        assert root.retained_amount == Decimal("0")
        assert [c.fund_id for c in root.children] == ["sub-fund-a", "sub-fund-b"]
        assert all(c.depth == 1 for c in root.children)

    def test_fan_in(self, demo_hierarchy, accounts_by_fund, as_of):
        result = run_cascade(Decimal("100000000"), demo_hierarchy, accounts_by_fund, as_of)

        root = result.root
        a, b = root.children
        assert root.children_after_tax_total == a.after_tax_amount + b.after_tax_amount
        assert a.children_after_tax_total == Decimal("0")
        assert root.after_tax_amount == Decimal("100000000")

    def test_zero_root_allocation(self, demo_hierarchy, accounts_by_fund, as_of):
        result = run_cascade(Decimal("0"), demo_hierarchy, accounts_by_fund, as_of)

        for node in result.iter_nodes():
            assert node.allocated_amount == 0
            assert node.tax_amount == 0
            assert node.after_tax_amount == 0
            assert node.children_after_tax_total == 0

    def test_leaves_and_lookup(self, demo_hierarchy, accounts_by_fund, as_of):
        result = run_cascade(Decimal("1000000"), demo_hierarchy, accounts_by_fund, as_of)

        assert [n.fund_id for n in result.leaves()] == ["sub-fund-a", "sub-fund-b"]
        assert result.node("missing") is None
        assert result.as_of_date == as_of
        assert result.root_allocation == Decimal("1000000")


class TestCascadeConservation:
    """Tax leaks out of the tree; nothing else does."""

    @pytest.mark.parametrize("amount", [
        Decimal("0"),
        Decimal("1000000"),
        Decimal("56000000.37"),
        Decimal("100000000"),
        Decimal("250000000"),
    ])
    def test_leaves_plus_tax_equal_root(self, amount, demo_hierarchy, accounts_by_fund, as_of):
        result = run_cascade(amount, demo_hierarchy, accounts_by_fund, as_of)

        leaf_total = sum((n.after_tax_amount for n in result.leaves()), Decimal("0"))
        assert leaf_total == amount - result.total_tax

    def test_three_levels(self, sub_fund_a_accounts, as_of):
        """Root → holding (pass-through, untaxed) → two taxed funds."""
        hierarchy = FundNode(
            fund_id="root",
            children=[
                FundNode(
                    fund_id="holding",
                    children=[
                        FundNode(fund_id="fund-x", ownership_percent_of_parent=Decimal("70"),
                                 waterfall_config=standard_waterfall(), tax_rate=TAX),
                        FundNode(fund_id="fund-y", ownership_percent_of_parent=Decimal("30"),
                                 tax_rate=Decimal("0.1")),
                    ],
                ),
            ],
        )
        accounts = {"fund-x": sub_fund_a_accounts}

        result = run_cascade(Decimal("80000000"), hierarchy, accounts, as_of)

        assert result.node("holding").depth == 1
        assert result.node("fund-x").depth == 2
        assert result.node("fund-x").allocated_amount == Decimal("56000000")
        fund_y = result.node("fund-y")
        assert fund_y.allocated_amount == Decimal("24000000")
        assert fund_y.tax_amount == Decimal("2400000")
        assert fund_y.after_tax_amount == Decimal("21600000")

        leaf_total = sum((n.after_tax_amount for n in result.leaves()), Decimal("0"))
        assert leaf_total == Decimal("80000000") - result.total_tax
        holding = result.node("holding")
        assert holding.children_after_tax_total == leaf_total


class TestPushDown:
    """Sibling percentages and the parent's retained remainder."""

    def test_parent_retains_unallocated_share(self, as_of):
        hierarchy = FundNode(
            fund_id="root",
            children=[
                FundNode(fund_id="a", ownership_percent_of_parent=Decimal("30")),
                FundNode(fund_id="b", ownership_percent_of_parent=Decimal("20")),
            ],
        )
        result = run_cascade(Decimal("1000"), hierarchy, {}, as_of)

        assert result.node("a").allocated_amount == Decimal("300")
        assert result.node("b").allocated_amount == Decimal("200")
        assert result.root.retained_amount == Decimal("500")

    def test_siblings_above_100_rejected(self, as_of):
        hierarchy = FundNode(
            fund_id="root",
            children=[
                FundNode(fund_id="a", ownership_percent_of_parent=Decimal("60")),
                FundNode(fund_id="b", ownership_percent_of_parent=Decimal("50")),
            ],
        )
        with pytest.raises(InvalidInputError, match="must not exceed 100%"):
            run_cascade(Decimal("1000"), hierarchy, {}, as_of)

    def test_pass_through_tax_on_full_allocation(self, as_of):
        hierarchy = FundNode(fund_id="root", tax_rate=Decimal("0.25"))
        result = run_cascade(Decimal("1000"), hierarchy, None, as_of)

        assert result.root.tax_amount == Decimal("250")
        assert result.root.after_tax_amount == Decimal("750")
        assert result.root.retained_amount == Decimal("750")

    def test_thirds_truncated_to_working_scale(self, as_of):
        """Sibling shares that do not terminate never overdraw the parent."""
        hierarchy = FundNode(
            fund_id="root",
            children=[
                FundNode(fund_id="a", ownership_percent_of_parent=Decimal("33.3333333333333333")),
                FundNode(fund_id="b", ownership_percent_of_parent=Decimal("33.3333333333333333")),
                FundNode(fund_id="c", ownership_percent_of_parent=Decimal("33.3333333333333334")),
            ],
        )
        amount = Decimal("1234567.890123456789012345678")

        result = run_cascade(amount, hierarchy, {}, as_of)

        root = result.root
        children_total = sum((c.allocated_amount for c in root.children), Decimal("0"))
        assert root.retained_amount >= 0
        assert children_total + root.retained_amount == root.after_tax_amount
        for child in root.children:
            assert child.allocated_amount.as_tuple().exponent >= -12
            assert child.allocated_amount <= amount * child.ownership_percent_of_parent / 100
        assert result.node("a").allocated_amount == Decimal("411522.630041152262")
        assert result.node("c").allocated_amount == Decimal("411522.630041152263")

        retained_total = sum((n.retained_amount for n in result.iter_nodes()), Decimal("0"))
        assert retained_total == amount - result.total_tax


class TestTaxedInternalNodes:
    """Children split what is left after the parent's own tax."""

    def test_taxed_pass_through_parent(self, as_of):
        hierarchy = FundNode(
            fund_id="root",
            tax_rate=Decimal("0.5"),
            children=[FundNode(fund_id="child", tax_rate=Decimal("0.5"))],
        )

        result = run_cascade(Decimal("100"), hierarchy, {}, as_of)

        root = result.root
        child = result.node("child")
        assert root.tax_amount == Decimal("50")
        assert root.after_tax_amount == Decimal("50")
        assert root.retained_amount == Decimal("0")
        assert child.allocated_amount == Decimal("50")
        assert child.tax_amount == Decimal("25")
        assert child.after_tax_amount == Decimal("25")
        assert result.total_tax == Decimal("75")

        leaf_total = sum((n.after_tax_amount for n in result.leaves()), Decimal("0"))
        assert leaf_total == Decimal("100") - result.total_tax

    def test_root_waterfall_feeds_children(self, demo_hierarchy, accounts_by_fund, parent_accounts, as_of):
        """Parent fund runs its own waterfall, then pushes its after-tax cash to 55/45 sub-funds.

        150M over 100M of parent capital: 50M is taxable at the parent (10.5M tax),
        139.5M goes down. Sub-Fund A gets 76.725M over 30M of capital, Sub-Fund B
        gets 62.775M over 25M.
        """
        hierarchy = demo_hierarchy.model_copy(update={
            "waterfall_config": standard_waterfall(),
            "tax_rate": TAX,
        })
        accounts = {**accounts_by_fund, "parent-fund": parent_accounts}

        result = run_cascade(Decimal("150000000"), hierarchy, accounts, as_of)

        root = result.root
        assert root.has_waterfall
        assert root.waterfall_result.total_distributable == Decimal("150000000")
        assert root.waterfall_result.tier("tier-1").amount_distributed == Decimal("100000000")
        assert non_capital_total(root) == Decimal("50000000")
        assert root.tax_amount == Decimal("10500000")
        assert root.after_tax_amount == Decimal("139500000")
        assert root.retained_amount == Decimal("0")

        sub_fund_a = result.node("sub-fund-a")
        sub_fund_b = result.node("sub-fund-b")
        assert sub_fund_a.allocated_amount == Decimal("76725000")
        assert sub_fund_a.tax_amount == Decimal("9812250")
        assert sub_fund_a.after_tax_amount == Decimal("66912750")
        assert sub_fund_b.allocated_amount == Decimal("62775000")
        assert sub_fund_b.tax_amount == Decimal("7932750")
        assert sub_fund_b.after_tax_amount == Decimal("54842250")

        assert root.children_after_tax_total == Decimal("121755000")
        assert root.children_after_tax_total != root.after_tax_amount
        assert root.children_after_tax_total != root.waterfall_result.total_distributable
        assert result.total_tax == Decimal("28245000")
        assert root.children_after_tax_total == Decimal("150000000") - result.total_tax

    def test_retained_plus_tax_equal_root_in_any_tree(self, sub_fund_a_accounts, as_of):
        """Taxed holding layer with a partial child and a waterfall fund below it."""
        hierarchy = FundNode(
            fund_id="root",
            tax_rate=Decimal("0.1"),
            children=[
                FundNode(
                    fund_id="holding",
                    ownership_percent_of_parent=Decimal("80"),
                    tax_rate=Decimal("0.05"),
                    children=[
                        FundNode(fund_id="fund-x", ownership_percent_of_parent=Decimal("60"),
                                 waterfall_config=standard_waterfall(), tax_rate=TAX),
                        FundNode(fund_id="fund-y", ownership_percent_of_parent=Decimal("25")),
                    ],
                ),
            ],
        )
        amount = Decimal("90000000.01")

        result = run_cascade(amount, hierarchy, {"fund-x": sub_fund_a_accounts}, as_of)

        retained_total = sum((n.retained_amount for n in result.iter_nodes()), Decimal("0"))
        assert retained_total == amount - result.total_tax
        for node in result.iter_nodes():
            assert node.retained_amount >= 0
            children_total = sum((c.allocated_amount for c in node.children), Decimal("0"))
            assert children_total + node.retained_amount == node.after_tax_amount


class TestCascadeValidation:
    """Errors abort the whole cascade."""

    def test_negative_root_rejected(self, demo_hierarchy, accounts_by_fund, as_of):
        with pytest.raises(InvalidInputError, match="must not be negative"):
            run_cascade(Decimal("-1"), demo_hierarchy, accounts_by_fund, as_of)

    def test_duplicate_fund_id_rejected(self, as_of):
        hierarchy = FundNode(
            fund_id="root",
            children=[
                FundNode(fund_id="a", ownership_percent_of_parent=Decimal("50")),
                FundNode(fund_id="a", ownership_percent_of_parent=Decimal("50")),
            ],
        )
        with pytest.raises(InvalidInputError, match="more than once"):
            run_cascade(Decimal("1000"), hierarchy, {}, as_of)

    def test_nested_waterfall_error_propagates(self, demo_hierarchy, sub_fund_a_accounts, as_of):
        """Sub-Fund B has a waterfall but no investors."""
        with pytest.raises(InvalidInputError, match="no investor capital accounts"):
            run_cascade(Decimal("1000000"), demo_hierarchy, {"sub-fund-a": sub_fund_a_accounts}, as_of)

    def test_malformed_nested_config_rejected(self, accounts_by_fund, as_of):
        bad_config = WaterfallConfig(
            id="bad-order",
            name="Bad Order",
            tiers=[
                WaterfallTier(id="tier-1", name="Return of Capital",
                              tier_type=TierType.RETURN_OF_CAPITAL, order=1),
                WaterfallTier(id="tier-2", name="Residual",
                              tier_type=TierType.RESIDUAL, order=1),
            ],
        )
        hierarchy = FundNode(
            fund_id="root",
            children=[FundNode(fund_id="sub-fund-a", waterfall_config=bad_config)],
        )
        with pytest.raises(InvalidInputError, match="both have order 1"):
            run_cascade(Decimal("1000000"), hierarchy, accounts_by_fund, as_of)

    def test_zero_allocation_without_investors_is_allowed(self, as_of):
        hierarchy = FundNode(
            fund_id="root",
            children=[FundNode(fund_id="empty", ownership_percent_of_parent=Decimal("0"),
                               waterfall_config=standard_waterfall())],
        )
        result = run_cascade(Decimal("1000"), hierarchy, {}, as_of)

        assert result.node("empty").allocated_amount == Decimal("0")
        assert result.node("empty").waterfall_result.investor_allocations == []
        assert result.root.retained_amount == Decimal("1000")


class TestBuildFundTree:
    """Flat rows from the structure store become a FundNode tree."""

    def test_builds_demo_structure(self):
        records = [
            FundRecord(fund_id="parent-fund", fund_name="Parent Fund"),
            FundRecord(fund_id="sub-fund-a", fund_name="Sub-Fund A", parent_id="parent-fund",
                       ownership_percent_of_parent=Decimal("55"),
                       waterfall_config=standard_waterfall(), tax_rate=TAX),
            FundRecord(fund_id="sub-fund-b", fund_name="Sub-Fund B", parent_id="parent-fund",
                       ownership_percent_of_parent=Decimal("45"),
                       waterfall_config=standard_waterfall(), tax_rate=TAX),
        ]
        root = build_fund_tree(records)

        assert root.fund_id == "parent-fund"
        assert [c.fund_id for c in root.children] == ["sub-fund-a", "sub-fund-b"]
        assert root.children[0].ownership_percent_of_parent == Decimal("55")
        assert root.children[1].tax_rate == TAX
        assert root.children[0].is_leaf

    def test_rows_in_any_order(self):
        records = [
            FundRecord(fund_id="leaf", parent_id="mid"),
            FundRecord(fund_id="mid", parent_id="root"),
            FundRecord(fund_id="root"),
        ]
        root = build_fund_tree(records)

        assert [n.fund_id for n in root.iter_nodes()] == ["root", "mid", "leaf"]

    def test_orphan_rejected(self):
        records = [FundRecord(fund_id="root"), FundRecord(fund_id="a", parent_id="nowhere")]
        with pytest.raises(InvalidInputError, match="not in the hierarchy"):
            build_fund_tree(records)

    @pytest.mark.parametrize("records", [
        [],
        [FundRecord(fund_id="r1"), FundRecord(fund_id="r2")],
    ])
    def test_exactly_one_root(self, records):
        with pytest.raises(InvalidInputError, match="exactly one root"):
            build_fund_tree(records)

    def test_duplicate_rejected(self):
        records = [FundRecord(fund_id="root"), FundRecord(fund_id="root")]
        with pytest.raises(InvalidInputError, match="Duplicate fund id 'root'"):
            build_fund_tree(records)

    def test_cycle_rejected(self):
        records = [
            FundRecord(fund_id="root"),
            FundRecord(fund_id="a", parent_id="b"),
            FundRecord(fund_id="b", parent_id="a"),
        ]
        with pytest.raises(InvalidInputError, match="cycle"):
            build_fund_tree(records)

    def test_built_tree_runs(self, sub_fund_a_accounts, as_of):
        records = [
            FundRecord(fund_id="root"),
            FundRecord(fund_id="sub-fund-a", parent_id="root",
                       waterfall_config=standard_waterfall(), tax_rate=TAX),
        ]
        result = run_cascade(Decimal("1000000"), build_fund_tree(records),
                             {"sub-fund-a": sub_fund_a_accounts}, as_of)

        assert result.node("sub-fund-a").allocated_amount == Decimal("1000000")
        assert result.node("sub-fund-a").tax_amount == Decimal("0")


def test_accounts_unchanged_by_cascade(demo_hierarchy, accounts_by_fund, as_of):
    before = {k: [a.model_dump() for a in v] for k, v in accounts_by_fund.items()}
    run_cascade(Decimal("100000000"), demo_hierarchy, accounts_by_fund, as_of)

    assert {k: [a.model_dump() for a in v] for k, v in accounts_by_fund.items()} == before


def test_explicit_dates_in_accounts(demo_hierarchy, as_of):
    """Contribution dates drive preferred return inside each sub-fund."""
    early = [InvestorCapitalAccount(investor_id="lp-1", capital_contributed=Decimal("30000000"),
                                    contribution_date=date(2020, 1, 1))]
    late = [InvestorCapitalAccount(investor_id="lp-1", capital_contributed=Decimal("30000000"),
                                   contribution_date=date(2024, 1, 1))]

    early_result = run_cascade(Decimal("100000000"), demo_hierarchy,
                               {"sub-fund-a": early, "sub-fund-b": early}, as_of)
    late_result = run_cascade(Decimal("100000000"), demo_hierarchy,
                              {"sub-fund-a": late, "sub-fund-b": late}, as_of)

    early_pref = early_result.node("sub-fund-a").waterfall_result.tier("tier-2").amount_distributed
    late_pref = late_result.node("sub-fund-a").waterfall_result.tier("tier-2").amount_distributed
    assert early_pref > late_pref
