"""
Retyrment - Alert Prioritizer
=============================
Turns the reconciled projection into a short list of user-facing alerts.

Alerts are emitted in a fixed precedence (not sorted by severity):
1. Active strategy summary
2. Maturity reinvestment opportunity
3. Illiquid assets can cover the gap
4. Maturities help close the gap, else corpus shortfall
5. EMI freed soon
6. Emergency fund gap
7. Emergency fund maturing soon
8. Goals underfunded

Every rule reads only its own inputs and returns at most one alert.
"""

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, Optional

from planning_constants import (
    ACCIDENT_KEYWORDS,
    ACCIDENT_POLICY_TYPE,
    ACTION_TARGETS,
    GROUP_HEALTH_TYPE,
    HEALTH_POLICY_TYPE,
    EngineSettings,
    format_inr,
)
from models import (
    Alert,
    AlertType,
    CriticalArea,
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

logger = logging.getLogger(__name__)


def add_months(start: date, months: int) -> date:
    """Same day `months` later, clamped to the end of a shorter month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


@dataclass
class AlertContext:
    """Inputs the alert rules draw on."""
    gap_analysis: GapAnalysis
    classification: GapClassification
    emergency_fund: EmergencyFundStatus
    maturing: MaturingSummary = field(default_factory=MaturingSummary)
    loans: List[Loan] = field(default_factory=list)
    investments: List[Investment] = field(default_factory=list)
    goals: List[Goal] = field(default_factory=list)
    saved_strategy: Optional[SavedStrategy] = None
    today: date = field(default_factory=date.today)


# =============================================================================
# ALERT PRIORITIZER
# =============================================================================

class AlertPrioritizer:
    """
    Builds the ordered alert list.

    The order of `self.rules` is the display order.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()
        self.rules: List[Callable[[AlertContext], Optional[Alert]]] = [
            self.active_strategy,
            self.maturity_reinvestment,
            self.illiquid_covers_gap,
            self.corpus_gap,
            self.emi_freed_soon,
            self.emergency_fund_gap,
            self.emergency_fund_maturing,
            self.goals_underfunded,
        ]

    def prioritize(self, context: AlertContext) -> List[Alert]:
        alerts = []
        seen = set()
        for rule in self.rules:
            alert = rule(context)
            if alert is None or alert.code in seen:
                continue
            seen.add(alert.code)
            alerts.append(alert)
        logger.debug("Prioritized %d alerts: %s", len(alerts), [a.code for a in alerts])
        return alerts

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    def active_strategy(self, context: AlertContext) -> Optional[Alert]:
        strategy = context.saved_strategy
        if strategy is None:
            return None

        levers = []
        if strategy.sell_illiquid_assets:
            levers.append(f"Sell Illiquid ({strategy.sell_illiquid_assets_year or 'TBD'})")
        if strategy.reinvest_maturities:
            levers.append("Reinvest Maturities")
        if strategy.redirect_loan_emis:
            levers.append(f"Redirect EMI (from {strategy.loan_end_year or 'TBD'})")
        if strategy.increase_sip:
            levers.append("Increase SIP 20%")

        if not levers:
            return None

        return Alert(
            code="active_strategy",
            type=AlertType.INFO,
            icon="📋",
            title="Your Active Strategy",
            description=" • ".join(levers),
            action_label="Update Strategy",
            action_target=ACTION_TARGETS["retirement"],
        )

    def maturity_reinvestment(self, context: AlertContext) -> Optional[Alert]:
        total = context.maturing.total_maturing_before_retirement
        if not total or total <= 0:
            return None

        return Alert(
            code="maturity_reinvestment",
            type=AlertType.SUCCESS,
            icon="💰",
            title=f"{format_inr(total, compact=True)} Available for Reinvestment",
            description=f"{context.maturing.instrument_count} investments/policies maturing before retirement. "
                        f"Consider reinvesting in higher-return assets.",
            action_label="View Details",
            action_target=ACTION_TARGETS["retirement"],
        )

    def illiquid_covers_gap(self, context: AlertContext) -> Optional[Alert]:
        if not context.classification.illiquid_covers_gap:
            return None

        return Alert(
            code="illiquid_covers_gap",
            type=AlertType.WARNING,
            icon="🏠",
            title="Illiquid Assets Can Cover Gap",
            description=f"Selling Gold/Real Estate ({format_inr(context.classification.illiquid_value, compact=True)}) "
                        f"would help meet your corpus requirement.",
            action_label="Plan Strategy",
            action_target=ACTION_TARGETS["retirement"],
        )

    def corpus_gap(self, context: AlertContext) -> Optional[Alert]:
        """Exactly one of maturities-help / corpus-shortfall for a positive gap."""
        classification = context.classification
        if classification.corpus_gap <= 0:
            return None

        if classification.maturities_cover_gap:
            return Alert(
                code="maturities_help",
                type=AlertType.TIP,
                icon="📊",
                title="Reinvesting Maturities Helps",
                description=f"If you reinvest {format_inr(classification.maturing_total, compact=True)} "
                            f"from maturities, you can meet your corpus target.",
                action_label="View Plan",
                action_target=ACTION_TARGETS["retirement"],
            )

        return Alert(
            code="corpus_shortfall",
            type=AlertType.DANGER,
            icon="⚠️",
            title=f"Corpus Shortfall: {format_inr(classification.corpus_gap, compact=True)}",
            description="Increase SIP or consider additional investments to meet retirement goals.",
            action_label="Adjust Plan",
            action_target=ACTION_TARGETS["retirement"],
        )

    def emi_freed_soon(self, context: AlertContext) -> Optional[Alert]:
        dated_loans = [loan for loan in context.loans if loan.is_active and loan.end_date is not None]
        if not dated_loans:
            return None

        soonest = min(dated_loans, key=lambda loan: loan.end_date)
        years_to_end = soonest.end_date.year - context.today.year
        if not 0 < years_to_end <= self.settings.loan_freedom_window_years:
            return None

        return Alert(
            code="emi_freed_soon",
            type=AlertType.TIP,
            icon="🎯",
            title=f"{format_inr(soonest.emi, compact=True)}/mo Freed in {years_to_end}y",
            description=f"After {soonest.name or 'loan'} ends, redirect EMI to investments "
                        f"for faster corpus growth.",
            action_label="View Loans",
            action_target=ACTION_TARGETS["loans"],
        )

    def emergency_fund_gap(self, context: AlertContext) -> Optional[Alert]:
        fund = context.emergency_fund
        if context.gap_analysis.effective_net_monthly_savings <= 0 or fund.gap <= 0:
            return None

        return Alert(
            code="emergency_fund_gap",
            type=AlertType.WARNING,
            icon="🆘",
            title="Emergency Fund Gap",
            description=f"Need {format_inr(fund.gap, compact=True)} more. "
                        f"Current: {format_inr(fund.current_total, compact=True)} (Cash + Tagged FD/RD)",
            action_label="Tag FDs",
            action_target=ACTION_TARGETS["investments"],
        )

    def emergency_fund_maturing(self, context: AlertContext) -> Optional[Alert]:
        months = self.settings.emergency_maturity_window_months
        window_end = add_months(context.today, months)
        maturing = [
            inv for inv in context.investments
            if inv.is_emergency_fund
            and inv.maturity_date is not None
            and context.today <= inv.maturity_date <= window_end
        ]
        if not maturing:
            return None

        count = len(maturing)
        total = sum(inv.value for inv in maturing)
        return Alert(
            code="emergency_fund_maturing",
            type=AlertType.WARNING,
            icon="⏰",
            title="Emergency Fund Maturing Soon",
            description=f"{count} emergency {'fund' if count == 1 else 'funds'} ({format_inr(total, compact=True)}) "
                        f"maturing in {months} months. Plan to reinvest to maintain emergency coverage.",
            action_label="Review",
            action_target=ACTION_TARGETS["investments"],
        )

    def goals_underfunded(self, context: AlertContext) -> Optional[Alert]:
        at_risk = [goal for goal in context.goals if goal.status == GoalStatus.UNFUNDED]
        if not at_risk:
            return None

        shown = self.settings.underfunded_goals_shown
        names = ", ".join(goal.name for goal in at_risk[:shown])
        if len(at_risk) > shown:
            names += "..."

        return Alert(
            code="goals_underfunded",
            type=AlertType.DANGER,
            icon="🎯",
            title=f"{len(at_risk)} Goal(s) Underfunded",
            description=names,
            action_label="Review Goals",
            action_target=ACTION_TARGETS["goals"],
        )


# =============================================================================
# CRITICAL AREAS
# =============================================================================

class CriticalAreasEvaluator:
    """Met / missing / unknown status for health cover, emergency fund and accident cover."""

    def evaluate(
        self,
        emergency_fund: EmergencyFundStatus,
        policies: List[InsurancePolicy],
        health_recommendation: Optional[HealthRecommendation] = None,
    ) -> List[CriticalArea]:
        return [
            self.health_cover(policies, health_recommendation),
            self.emergency_cover(emergency_fund),
            self.accidental_cover(policies),
        ]

    @staticmethod
    def health_cover(
        policies: List[InsurancePolicy],
        recommendation: Optional[HealthRecommendation],
    ) -> CriticalArea:
        health = [p for p in policies if (p.type or "").upper() == HEALTH_POLICY_TYPE]
        group_only = bool(health) and all(
            (p.health_type or "").upper() == GROUP_HEALTH_TYPE for p in health
        )

        if group_only:
            status, detail = False, "Group cover only (ends at retirement). Add personal/family policy."
        elif recommendation is None:
            status, detail = None, "Add family/insurance data"
        else:
            status = recommendation.gap <= 0 and recommendation.total_recommended_cover > 0
            detail = "Adequate coverage" if status else "Coverage gap exists"

        return CriticalArea(
            label="Health Cover",
            status=status,
            detail=detail,
            action_target=ACTION_TARGETS["insurance_recommendations"],
        )

    @staticmethod
    def emergency_cover(fund: EmergencyFundStatus) -> CriticalArea:
        if fund.target is None:
            detail = "Add expenses to calculate"
        else:
            detail = f"{format_inr(fund.current_total, compact=True)} / {format_inr(fund.target, compact=True)}"
        return CriticalArea(
            label="Emergency Fund",
            status=fund.is_met,
            detail=detail,
            action_target=ACTION_TARGETS["investments"],
        )

    @staticmethod
    def accidental_cover(policies: List[InsurancePolicy]) -> CriticalArea:
        def is_accident_policy(policy: InsurancePolicy) -> bool:
            name = (policy.policy_name or policy.company or "").lower()
            return (policy.type or "").upper() == ACCIDENT_POLICY_TYPE or any(k in name for k in ACCIDENT_KEYWORDS)

        covered = any(is_accident_policy(p) for p in policies)
        return CriticalArea(
            label="Accidental Cover",
            status=covered,
            detail="Covered" if covered else "Not found",
            action_target=ACTION_TARGETS["insurance"],
        )
