"""
Retyrment - Alert Test Suite
============================
Tests for the alert prioritizer rules, their precedence, and the
critical-areas evaluator.
"""

import pytest
from datetime import date

# Import modules to test
import os
import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from planning_constants import EngineSettings
from models import (
    AlertType,
    EmergencyFundStatus,
    GapAnalysis,
    GapClassification,
    Goal,
    GoalStatus,
    HealthRecommendation,
    InsurancePolicy,
    Investment,
    Loan,
    MaturingSummary,
    SavedStrategy,
)
from alert_engine import (
    AlertContext,
    AlertPrioritizer,
    CriticalAreasEvaluator,
    add_months,
)


TODAY = date(2025, 1, 15)


def make_context(**overrides):
    """A context that triggers no alerts unless overridden."""
    defaults = dict(
        gap_analysis=GapAnalysis(required_corpus=1_000_000, monthly_income=100_000, current_monthly_expenses=50_000),
        classification=GapClassification(),
        emergency_fund=EmergencyFundStatus(current_total=500_000, target=300_000, gap=0, is_met=True),
        today=TODAY,
    )
    defaults.update(overrides)
    return AlertContext(**defaults)


# =============================================================================
# HELPER TESTS
# =============================================================================

class TestAddMonths:

    def test_simple(self):
        assert add_months(date(2025, 1, 15), 6) == date(2025, 7, 15)

    def test_year_rollover(self):
        assert add_months(date(2025, 10, 1), 6) == date(2026, 4, 1)

    def test_clamps_to_month_end(self):
        assert add_months(date(2025, 8, 31), 6) == date(2026, 2, 28)


# =============================================================================
# INDIVIDUAL RULE TESTS
# =============================================================================

class TestAlertRules:
    """Each rule in isolation."""

    @pytest.fixture
    def prioritizer(self):
        return AlertPrioritizer()

    def test_no_alerts_for_healthy_plan(self, prioritizer):
        assert prioritizer.prioritize(make_context()) == []

    def test_active_strategy_description(self, prioritizer):
        strategy = SavedStrategy.model_validate({
            "sellIlliquidAssets": True,
            "reinvestMaturities": True,
            "redirectLoanEMIs": True,
            "loanEndYear": 2030,
            "increaseSIP": True,
        })
        alert = prioritizer.active_strategy(make_context(saved_strategy=strategy))

        assert alert.type == AlertType.INFO
        assert alert.description == (
            "Sell Illiquid (TBD) • Reinvest Maturities • Redirect EMI (from 2030) • Increase SIP 20%"
        )
        assert alert.action_target == "/retirement"

    def test_strategy_without_levers_is_silent(self, prioritizer):
        assert prioritizer.active_strategy(make_context(saved_strategy=SavedStrategy())) is None

    def test_maturity_reinvestment(self, prioritizer):
        maturing = MaturingSummary(total_maturing_before_retirement=1_500_000, investment_count=2, insurance_count=1)
        alert = prioritizer.maturity_reinvestment(make_context(maturing=maturing))

        assert alert.title == "₹15.00L Available for Reinvestment"
        assert alert.description.startswith("3 investments/policies maturing before retirement.")

    def test_illiquid_covers_gap(self, prioritizer):
        classification = GapClassification(corpus_gap=200_000, illiquid_value=250_000, illiquid_covers_gap=True)
        alert = prioritizer.illiquid_covers_gap(make_context(classification=classification))

        assert alert.type == AlertType.WARNING
        assert "₹2.50L" in alert.description

    def test_maturities_help_replaces_shortfall(self, prioritizer):
        classification = GapClassification(corpus_gap=200_000, maturing_total=300_000, maturities_cover_gap=True)
        alert = prioritizer.corpus_gap(make_context(classification=classification))

        assert alert.code == "maturities_help"
        assert alert.type == AlertType.TIP

    def test_corpus_shortfall(self, prioritizer):
        classification = GapClassification(corpus_gap=200_000)
        alert = prioritizer.corpus_gap(make_context(classification=classification))

        assert alert.code == "corpus_shortfall"
        assert alert.type == AlertType.DANGER
        assert alert.title == "Corpus Shortfall: ₹2.00L"

    @pytest.mark.parametrize("maturities_cover", [True, False])
    def test_exactly_one_gap_alert(self, prioritizer, maturities_cover):
        classification = GapClassification(
            corpus_gap=200_000,
            illiquid_value=250_000,
            illiquid_covers_gap=True,
            maturing_total=300_000 if maturities_cover else 0,
            maturities_cover_gap=maturities_cover,
        )
        codes = [a.code for a in prioritizer.prioritize(make_context(classification=classification))]

        assert "illiquid_covers_gap" in codes
        assert ("maturities_help" in codes) != ("corpus_shortfall" in codes)

    def test_no_gap_alert_without_gap(self, prioritizer):
        assert prioritizer.corpus_gap(make_context(classification=GapClassification(corpus_gap=0))) is None

    def test_emi_freed_only_soonest_within_window(self, prioritizer):
        loans = [
            Loan(name="Car Loan", outstanding_amount=300_000, emi=25_000, end_date=date(2028, 6, 1)),
            Loan(name="Home Loan", outstanding_amount=5_000_000, emi=60_000, end_date=date(2040, 6, 1)),
        ]
        alerts = prioritizer.prioritize(make_context(loans=loans))

        assert [a.code for a in alerts] == ["emi_freed_soon"]
        assert alerts[0].title == "₹25.0K/mo Freed in 3y"
        assert alerts[0].description.startswith("After Car Loan ends")
        assert alerts[0].action_target == "/loans"

    def test_emi_outside_window_is_silent(self, prioritizer):
        loans = [Loan(outstanding_amount=1, emi=60_000, end_date=date(2040, 6, 1))]
        assert prioritizer.emi_freed_soon(make_context(loans=loans)) is None

    def test_loan_ending_this_year_is_silent(self, prioritizer):
        loans = [Loan(outstanding_amount=1, emi=10_000, end_date=date(2025, 12, 1))]
        assert prioritizer.emi_freed_soon(make_context(loans=loans)) is None

    def test_closed_loan_ignored(self, prioritizer):
        loans = [Loan(outstanding_amount=0, emi=10_000, end_date=date(2027, 1, 1))]
        assert prioritizer.emi_freed_soon(make_context(loans=loans)) is None

    def test_unnamed_loan(self, prioritizer):
        loans = [Loan(outstanding_amount=1, emi=10_000, end_date=date(2027, 1, 1))]
        assert prioritizer.emi_freed_soon(make_context(loans=loans)).description.startswith("After loan ends")

    def test_custom_loan_window(self):
        prioritizer = AlertPrioritizer(EngineSettings(loan_freedom_window_years=2))
        loans = [Loan(outstanding_amount=1, emi=10_000, end_date=date(2028, 1, 1))]
        assert prioritizer.emi_freed_soon(make_context(loans=loans)) is None

    def test_emergency_fund_gap(self, prioritizer):
        fund = EmergencyFundStatus(current_total=100_000, target=300_000, gap=200_000, is_met=False)
        alert = prioritizer.emergency_fund_gap(make_context(emergency_fund=fund))

        assert alert.description == "Need ₹2.00L more. Current: ₹1.00L (Cash + Tagged FD/RD)"
        assert alert.action_label == "Tag FDs"

    def test_emergency_fund_gap_needs_savings(self, prioritizer):
        fund = EmergencyFundStatus(current_total=100_000, target=300_000, gap=200_000, is_met=False)
        gap_analysis = GapAnalysis(net_monthly_savings=-5_000)
        context = make_context(emergency_fund=fund, gap_analysis=gap_analysis)

        assert prioritizer.emergency_fund_gap(context) is None

    def test_emergency_fund_maturing(self, prioritizer):
        investments = [
            Investment(type="FD", current_value=100_000, is_emergency_fund=True, maturity_date=date(2025, 4, 1)),
            Investment(type="FD", current_value=900_000, is_emergency_fund=True, maturity_date=date(2025, 9, 1)),
            Investment(type="RD", current_value=50_000, is_emergency_fund=False, maturity_date=date(2025, 3, 1)),
        ]
        alert = prioritizer.emergency_fund_maturing(make_context(investments=investments))

        assert alert.description.startswith("1 emergency fund (₹1.00L) maturing in 6 months.")

    def test_emergency_fund_maturing_ignores_past_dates(self, prioritizer):
        investments = [
            Investment(type="FD", current_value=100_000, is_emergency_fund=True, maturity_date=date(2024, 12, 1)),
        ]
        assert prioritizer.emergency_fund_maturing(make_context(investments=investments)) is None

    def test_goals_underfunded_lists_two(self, prioritizer):
        goals = [
            Goal(name="Car", target_year=2027, status=GoalStatus.UNFUNDED),
            Goal(name="Trip", target_year=2028, status=GoalStatus.UNFUNDED),
            Goal(name="House", target_year=2030, status=GoalStatus.UNFUNDED),
            Goal(name="Education", target_year=2031, status=GoalStatus.FUNDED),
        ]
        alert = prioritizer.goals_underfunded(make_context(goals=goals))

        assert alert.title == "3 Goal(s) Underfunded"
        assert alert.description == "Car, Trip..."

    def test_goals_underfunded_single(self, prioritizer):
        goals = [Goal(name="Car", target_year=2027, status=GoalStatus.UNFUNDED)]
        assert prioritizer.goals_underfunded(make_context(goals=goals)).description == "Car"


# =============================================================================
# PRECEDENCE TESTS
# =============================================================================

class TestAlertPrecedence:
    """Alerts come out in fixed precedence, not by severity."""

    def test_all_rules_in_order(self):
        context = make_context(
            saved_strategy=SavedStrategy(reinvest_maturities=True),
            maturing=MaturingSummary(total_maturing_before_retirement=50_000, investment_count=1),
            classification=GapClassification(
                corpus_gap=500_000, illiquid_value=600_000, maturing_total=50_000, illiquid_covers_gap=True,
            ),
            loans=[Loan(name="Car", outstanding_amount=1, emi=10_000, end_date=date(2027, 1, 1))],
            emergency_fund=EmergencyFundStatus(current_total=100_000, target=300_000, gap=200_000, is_met=False),
            investments=[
                Investment(type="FD", current_value=100_000, is_emergency_fund=True, maturity_date=date(2025, 3, 1)),
            ],
            goals=[Goal(name="Car", target_year=2027, status=GoalStatus.UNFUNDED)],
        )
        codes = [a.code for a in AlertPrioritizer().prioritize(context)]

        assert codes == [
            "active_strategy",
            "maturity_reinvestment",
            "illiquid_covers_gap",
            "corpus_shortfall",
            "emi_freed_soon",
            "emergency_fund_gap",
            "emergency_fund_maturing",
            "goals_underfunded",
        ]

    def test_codes_unique(self):
        prioritizer = AlertPrioritizer()
        prioritizer.rules.append(prioritizer.corpus_gap)
        context = make_context(classification=GapClassification(corpus_gap=1))

        codes = [a.code for a in prioritizer.prioritize(context)]
        assert codes == ["corpus_shortfall"]


# =============================================================================
# CRITICAL AREAS TESTS
# =============================================================================

class TestCriticalAreasEvaluator:

    @pytest.fixture
    def evaluator(self):
        return CriticalAreasEvaluator()

    @pytest.fixture
    def fund(self):
        return EmergencyFundStatus(current_total=500_000, target=300_000, gap=0, is_met=True)

    def test_group_only_health_cover(self, evaluator):
        policies = [InsurancePolicy(type="HEALTH", health_type="GROUP")]
        area = evaluator.health_cover(policies, HealthRecommendation(gap=0, total_recommended_cover=1_000_000))

        assert area.status is False
        assert area.detail.startswith("Group cover only")

    def test_health_unknown_without_recommendation(self, evaluator):
        area = evaluator.health_cover([InsurancePolicy(type="HEALTH", health_type="FAMILY_FLOATER")], None)
        assert area.status is None

    def test_health_adequate(self, evaluator):
        area = evaluator.health_cover([], HealthRecommendation(gap=0, total_recommended_cover=1_000_000))
        assert area.status is True
        assert area.detail == "Adequate coverage"

    def test_health_gap(self, evaluator):
        area = evaluator.health_cover([], HealthRecommendation(gap=500_000, total_recommended_cover=1_000_000))
        assert area.status is False
        assert area.detail == "Coverage gap exists"

    def test_emergency_area(self, evaluator, fund):
        area = evaluator.emergency_cover(fund)
        assert area.status is True
        assert area.detail == "₹5.00L / ₹3.00L"

    def test_emergency_area_without_expenses(self, evaluator):
        area = evaluator.emergency_cover(EmergencyFundStatus(current_total=10_000))
        assert area.status is None
        assert area.detail == "Add expenses to calculate"

    def test_accident_cover_by_name(self, evaluator):
        area = evaluator.accidental_cover([InsurancePolicy(type="LIFE", policy_name="Personal Accident Cover")])
        assert area.status is True
        assert area.detail == "Covered"

    def test_accident_cover_by_type(self, evaluator):
        assert evaluator.accidental_cover([InsurancePolicy(type="OTHER")]).status is True

    def test_accident_cover_missing(self, evaluator):
        area = evaluator.accidental_cover([InsurancePolicy(type="HEALTH", policy_name="Family Floater")])
        assert area.status is False
        assert area.detail == "Not found"

    def test_evaluate_order(self, evaluator, fund):
        labels = [a.label for a in evaluator.evaluate(fund, [])]
        assert labels == ["Health Cover", "Emergency Fund", "Accidental Cover"]


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
