"""
Retyrment - Corpus Reconciliation Engine
========================================
Core reconciliation layer built on top of the scenario calculator's
RetirementProjection.

This module performs no I/O and keeps no state between calls. It:
1. Normalizes recurring amounts to monthly equivalents
2. Evaluates the emergency reserve
3. Merges pre- and post-retirement trajectories into one timeline
4. Corrects goal funding percentages against the timeline
5. Classifies whether a corpus gap can be closed
6. Hands everything to the alert prioritizer (alert_engine.py)
"""

import logging
from datetime import date
from typing import Iterable, List, Optional

from planning_constants import (
    CASH_ASSET_KEY,
    EMERGENCY_INSTRUMENT_TYPES,
    ILLIQUID_ASSET_TYPES,
    EngineSettings,
    to_monthly,
)
from models import (
    CalculationInput,
    CalculationResult,
    CashFlowSummary,
    EmergencyFundStatus,
    Expense,
    FreedUpExpense,
    GapAnalysis,
    GapClassification,
    Goal,
    IncomeProjectionRow,
    InsurancePolicy,
    Investment,
    Loan,
    MatrixRow,
    MaturingSummary,
    MaturityEvent,
    MergedTimelinePoint,
    ResolvedGoal,
    RetirementProjection,
)
from corpus_errors import InvalidInputError, TimelineIntegrityError
from alert_engine import AlertContext, AlertPrioritizer, CriticalAreasEvaluator

logger = logging.getLogger(__name__)


# =============================================================================
# CASH FLOW AGGREGATION
# =============================================================================

class CashFlowAggregator:
    """Monthly totals over expense, loan and insurance records."""

    @staticmethod
    def monthly_expenses(expenses: Iterable[Expense], essential_only: bool = False) -> float:
        return sum(
            to_monthly(e.amount, e.frequency)
            for e in expenses
            if e.is_essential or not essential_only
        )

    @staticmethod
    def monthly_emi(loans: Iterable[Loan]) -> float:
        """EMI currently paid on active loans."""
        return sum(loan.emi or 0.0 for loan in loans if loan.is_active)

    @staticmethod
    def monthly_premiums(policies: Iterable[InsurancePolicy]) -> float:
        return sum(to_monthly(p.premium, p.premium_frequency) for p in policies)

    @staticmethod
    def expense_end_year(expense: Expense, current_year: int) -> Optional[int]:
        """Year a time-bound expense stops; None if it never does."""
        if not expense.is_time_bound:
            return None
        if expense.end_date is not None:
            return expense.end_date.year
        if expense.end_age is not None and expense.dependent_current_age is not None:
            return current_year + (expense.end_age - expense.dependent_current_age)
        return None

    def ending_before(
        self,
        expenses: Iterable[Expense],
        retirement_year: int,
        current_year: int,
    ) -> List[FreedUpExpense]:
        """Time-bound expenses that stop before retirement, freeing cash flow."""
        ending = []
        for expense in expenses:
            end_year = self.expense_end_year(expense, current_year)
            if end_year is not None and end_year < retirement_year:
                ending.append(FreedUpExpense(
                    name=expense.name,
                    monthly_amount=round(to_monthly(expense.amount, expense.frequency), 2),
                    end_year=end_year,
                ))
        return ending

    def summarize(
        self,
        expenses: List[Expense],
        loans: List[Loan],
        policies: List[InsurancePolicy],
        retirement_year: int,
        current_year: int,
    ) -> CashFlowSummary:
        ending = self.ending_before(expenses, retirement_year, current_year)
        return CashFlowSummary(
            monthly_expenses=round(self.monthly_expenses(expenses), 2),
            essential_monthly_expenses=round(self.monthly_expenses(expenses, essential_only=True), 2),
            monthly_emi=round(self.monthly_emi(loans), 2),
            monthly_premiums=round(self.monthly_premiums(policies), 2),
            freed_up_by_retirement=round(sum(e.monthly_amount for e in ending), 2),
            ending_expenses=ending,
        )


# =============================================================================
# EMERGENCY FUND
# =============================================================================

class EmergencyFundEvaluator:
    """Liquid emergency coverage against a multiple of monthly expenses."""

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()

    def evaluate(
        self,
        cash_balance: float,
        instruments: Iterable[Investment],
        monthly_expenses: float,
    ) -> EmergencyFundStatus:
        current_total = (cash_balance or 0.0) + sum(
            inst.value for inst in instruments if inst.is_emergency_fund
        )

        # No expense data: the target is undefined, which is not the same as met
        if not monthly_expenses or monthly_expenses <= 0:
            return EmergencyFundStatus(current_total=round(current_total, 2))

        target = monthly_expenses * self.settings.emergency_fund_months
        return EmergencyFundStatus(
            current_total=round(current_total, 2),
            target=round(target, 2),
            gap=round(max(0.0, target - current_total), 2),
            is_met=current_total >= target,
        )

    @staticmethod
    def emergency_instruments(investments: Iterable[Investment]) -> List[Investment]:
        """FD/RD holdings; only these can be tagged as emergency reserve."""
        return [inv for inv in investments if (inv.type or "").upper() in EMERGENCY_INSTRUMENT_TYPES]


# =============================================================================
# TIMELINE MERGER
# =============================================================================

class TimelineMerger:
    """
    Splices the accumulation matrix and the post-retirement projection into
    one yearly corpus timeline.

    Index 0 of the income projection is the retirement year itself, which
    the last matrix row already covers, so it is always skipped.
    """

    def merge(
        self,
        matrix: List[MatrixRow],
        income_projection: List[IncomeProjectionRow],
        retirement_year: Optional[int] = None,
        retirement_age: Optional[int] = None,
        life_expectancy: Optional[int] = None,
        interpolate: bool = False,
    ) -> List[MergedTimelinePoint]:
        points = [
            MergedTimelinePoint(
                year=row.year,
                # One-time maturities would spike the curve; keep steady-state growth only
                net_corpus_excluding_inflow=max(0.0, row.net_corpus - row.total_inflow),
                is_post_retirement=False,
                age=row.age,
                total_inflow=row.total_inflow,
            )
            for row in matrix
        ]

        post_rows = income_projection[1:]
        if post_rows:
            if matrix:
                boundary_year, boundary_age = matrix[-1].year, matrix[-1].age
            elif retirement_year is not None:
                boundary_year, boundary_age = retirement_year, retirement_age
            else:
                raise InvalidInputError(
                    "Cannot place post-retirement years: matrix is empty and no retirement year was given",
                    {"field": "retirement_year"},
                )

            if interpolate:
                horizon = None
                if life_expectancy is not None and boundary_age is not None:
                    horizon = life_expectancy - boundary_age
                post_rows = self.densify(post_rows, horizon)

            for row in post_rows:
                points.append(MergedTimelinePoint(
                    year=boundary_year + row.year_offset,
                    net_corpus_excluding_inflow=row.corpus,
                    is_post_retirement=True,
                    age=boundary_age + row.year_offset if boundary_age is not None else row.age,
                ))

        self.check_integrity(points)
        logger.debug("Merged timeline: %d points (%d post-retirement)",
                     len(points), sum(1 for p in points if p.is_post_retirement))
        return points

    @staticmethod
    def densify(rows: List[IncomeProjectionRow], horizon: Optional[int] = None) -> List[IncomeProjectionRow]:
        """
        Fill a sparse post-retirement projection to one row per year by
        linear interpolation between the known offsets. Values are clamped
        at 0.
        """
        if not rows:
            return []

        known = sorted(rows, key=lambda r: r.year_offset)
        # Never stop short of a known row
        last_offset = known[-1].year_offset
        if horizon is not None:
            last_offset = max(horizon, last_offset)
        dense = []

        for offset in range(1, last_offset + 1):
            # Outside the known range, hold the nearest known value
            if offset <= known[0].year_offset:
                lower = upper = known[0]
            else:
                lower = upper = known[-1]
            for left, right in zip(known, known[1:]):
                if left.year_offset <= offset <= right.year_offset:
                    lower, upper = left, right
                    break

            if upper.year_offset != lower.year_offset:
                ratio = (offset - lower.year_offset) / (upper.year_offset - lower.year_offset)
                corpus = lower.corpus + ratio * (upper.corpus - lower.corpus)
            else:
                corpus = lower.corpus

            dense.append(IncomeProjectionRow(year_offset=offset, corpus=max(0.0, corpus)))

        return dense

    @staticmethod
    def check_integrity(points: List[MergedTimelinePoint]) -> None:
        """Years must be strictly increasing and consecutive."""
        for index in range(1, len(points)):
            previous, current = points[index - 1].year, points[index].year
            if current <= previous:
                problem = "duplicate year" if current == previous else "years out of order"
            elif current != previous + 1:
                problem = "missing years"
            else:
                continue

            details = {"index": index, "previous_year": previous, "year": current}
            logger.warning("Timeline integrity failure: %s %s", problem, details)
            raise TimelineIntegrityError(f"Projection timeline has {problem} at {current}", details)


# =============================================================================
# GOAL SHORTFALL RESOLVER
# =============================================================================

class GoalShortfallResolver:
    """
    Corrects a goal's funding-percent heuristic using the matrix row for
    the year the goal falls due.
    """

    def resolve(self, goal: Goal, matrix: List[MatrixRow]) -> ResolvedGoal:
        nominal_percent = max(0.0, min(goal.funding_percent or 0.0, 100.0))
        row = next((r for r in matrix if r.year == goal.target_year), None)

        # No corroborating data, or net assets covered the payout: trust the heuristic
        if row is None or not (row.net_corpus < 0 and row.goal_outflow > 0):
            return ResolvedGoal(goal=goal, actual_fundable_percent=nominal_percent)

        goal_amount = row.goal_outflow or goal.inflated_amount or goal.target_amount
        shortfall_amount = abs(row.net_corpus)
        fundable = max(0.0, goal_amount - shortfall_amount)

        if goal_amount > 0:
            fundable_percent = min(100.0, fundable / goal_amount * 100)
        else:
            fundable_percent = 0.0

        return ResolvedGoal(
            goal=goal,
            has_shortfall=True,
            actual_fundable_percent=fundable_percent,
            shortfall_amount=shortfall_amount,
        )

    def resolve_all(self, goals: Iterable[Goal], matrix: List[MatrixRow]) -> List[ResolvedGoal]:
        resolved = [self.resolve(goal, matrix) for goal in goals]
        logger.debug("Resolved %d goals, %d with shortfall",
                     len(resolved), sum(1 for r in resolved if r.has_shortfall))
        return resolved


# =============================================================================
# GAP & GAIN CLASSIFIER
# =============================================================================

class GapClassifier:
    """Whether illiquid assets or maturity inflows could close a corpus gap."""

    def classify(
        self,
        gap_analysis: GapAnalysis,
        asset_breakdown: dict,
        maturing: MaturingSummary,
        final_corpus: Optional[float] = None,
    ) -> GapClassification:
        corpus_gap = gap_analysis.corpus_gap or 0.0
        required = gap_analysis.required_corpus or 0.0
        if final_corpus is None:
            final_corpus = required - corpus_gap

        illiquid_value = sum(asset_breakdown.get(key) or 0.0 for key in ILLIQUID_ASSET_TYPES)
        maturing_total = maturing.total_maturing_before_retirement or 0.0

        has_gap = corpus_gap > 0
        return GapClassification(
            corpus_gap=corpus_gap,
            illiquid_value=illiquid_value,
            maturing_total=maturing_total,
            illiquid_covers_gap=has_gap and illiquid_value > 0 and final_corpus + illiquid_value >= required,
            maturities_cover_gap=has_gap and maturing_total > 0 and final_corpus + maturing_total >= required,
        )


# =============================================================================
# RECONCILIATION ENGINE (orchestrator)
# =============================================================================

class ReconciliationEngine:
    """
    Runs the full reconciliation for one CalculationInput.

    Pure with respect to its inputs: the only ambient value is the
    evaluation date, which callers can pin via `as_of` or `current_date`.
    """

    def __init__(self, settings: Optional[EngineSettings] = None, current_date: Optional[date] = None):
        self.settings = settings or EngineSettings()
        self.current_date = current_date
        self.cash_flow = CashFlowAggregator()
        self.emergency = EmergencyFundEvaluator(self.settings)
        self.merger = TimelineMerger()
        self.resolver = GoalShortfallResolver()
        self.classifier = GapClassifier()
        self.prioritizer = AlertPrioritizer(self.settings)
        self.critical_areas = CriticalAreasEvaluator()

    def calculate(self, calc_input: CalculationInput) -> CalculationResult:
        projection = calc_input.projection
        if projection is None:
            raise InvalidInputError("A retirement projection is required", {"field": "projection"})

        today = calc_input.as_of or self.current_date or date.today()
        summary = projection.summary
        gap = projection.gap_analysis
        retirement_year = self.retirement_year(projection, today)

        # Step 1: Cash flow from raw records
        cash_flow = self.cash_flow.summarize(
            calc_input.expenses,
            calc_input.loans,
            calc_input.insurances,
            retirement_year,
            today.year,
        )

        # Step 2: Emergency fund
        monthly_expenses = gap.effective_monthly_expenses or cash_flow.monthly_expenses
        instruments = self.emergency.emergency_instruments(calc_input.investments)
        emergency_fund = self.emergency.evaluate(
            calc_input.net_worth_asset_breakdown.get(CASH_ASSET_KEY) or 0.0,
            instruments,
            monthly_expenses,
        )

        # Step 3: Merged timeline
        merged = self.merger.merge(
            projection.matrix,
            projection.income_projection,
            retirement_year=retirement_year,
            retirement_age=summary.retirement_age,
            life_expectancy=summary.life_expectancy,
            interpolate=calc_input.interpolate_post_retirement,
        )

        # Step 4: Goals
        resolved_goals = self.resolver.resolve_all(calc_input.goals, projection.matrix)

        # Step 5: Gap classification
        classification = self.classifier.classify(
            gap,
            calc_input.net_worth_asset_breakdown,
            calc_input.maturing_before_retirement,
            final_corpus=summary.final_corpus,
        )

        # Step 6: Alerts
        alerts = self.prioritizer.prioritize(AlertContext(
            gap_analysis=gap,
            classification=classification,
            emergency_fund=emergency_fund,
            maturing=calc_input.maturing_before_retirement,
            loans=calc_input.loans,
            investments=instruments,
            goals=calc_input.goals,
            saved_strategy=calc_input.saved_strategy,
            today=today,
        ))

        return CalculationResult(
            merged_timeline=merged,
            resolved_goals=resolved_goals,
            emergency_fund=emergency_fund,
            alerts=alerts,
            gap_classification=classification,
            readiness_percent=self.readiness_percent(summary.final_corpus, gap.required_corpus),
            maturity_events=[
                MaturityEvent(year=row.year, age=row.age, total_inflow=row.total_inflow)
                for row in projection.matrix
                if row.total_inflow > 0
            ],
            cash_flow=cash_flow,
            critical_areas=self.critical_areas.evaluate(
                emergency_fund,
                calc_input.insurances,
                calc_input.health_recommendation,
            ),
        )

    @staticmethod
    def retirement_year(projection: RetirementProjection, today: date) -> int:
        """Calendar year of retirement: the last matrix year, else derived from ages."""
        if projection.matrix:
            return projection.matrix[-1].year
        summary = projection.summary
        return today.year + max(0, summary.retirement_age - summary.current_age)

    @staticmethod
    def readiness_percent(final_corpus: float, required_corpus: float) -> int:
        if not required_corpus or required_corpus <= 0:
            return 0
        return round(final_corpus / required_corpus * 100)
