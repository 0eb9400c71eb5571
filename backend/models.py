"""
Retyrment - Data Models
=======================
Pydantic models for the retirement corpus reconciliation engine.

These models serve as the contract between:
- The upstream scenario calculator (RetirementProjection)
- The record stores (goals, loans, expenses, investments, insurance)
- The reconciliation engine
- Frontend display (CalculationResult)

Field names are snake_case in Python and camelCase on the wire, so the
calculator's JSON (netCorpus, goalOutflow, ...) validates as-is.
"""

from datetime import date
from enum import Enum
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from planning_constants import Frequency, normalize_frequency


class CamelModel(BaseModel):
    """Base model: camelCase aliases, populated by either name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# ENUMS
# =============================================================================

class GoalStatus(str, Enum):
    FUNDED = "FUNDED"
    PARTIAL = "PARTIAL"
    UNFUNDED = "UNFUNDED"


class AlertType(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    DANGER = "danger"
    INFO = "info"
    TIP = "tip"


# =============================================================================
# RETIREMENT PROJECTION (produced by the scenario calculator)
# =============================================================================

class MatrixRow(CamelModel):
    """One pre-retirement year of the accumulation matrix."""

    year: int
    age: int
    net_corpus: float = 0.0
    total_inflow: float = 0.0
    goal_outflow: float = 0.0
    goals_this_year: List[str] = Field(default_factory=list)

    # Balances by bucket
    ppf_balance: float = 0.0
    epf_balance: float = 0.0
    mf_balance: float = 0.0
    other_liquid_balance: float = 0.0
    mf_sip: float = 0.0

    # Breakdown of total_inflow
    insurance_maturity: float = 0.0
    investment_maturity: float = 0.0
    money_back_payout: float = 0.0


class IncomeProjectionRow(CamelModel):
    """
    One post-retirement year. `year_offset` counts years from retirement;
    the calculator sends it under the key `year`.
    """

    year_offset: int = Field(
        validation_alias=AliasChoices("yearOffset", "year", "year_offset"),
        serialization_alias="yearOffset",
    )
    corpus: float = 0.0
    age: Optional[int] = None
    monthly_income: Optional[float] = None


class ProjectionSummary(CamelModel):
    final_corpus: float = 0.0
    retirement_age: int
    current_age: int
    life_expectancy: Optional[int] = None


class GapAnalysis(CamelModel):
    """Required vs projected corpus. corpus_gap > 0 means a shortfall."""

    required_corpus: float = 0.0
    corpus_gap: float = 0.0
    current_monthly_expenses: float = 0.0
    total_current_monthly_expenses: Optional[float] = None
    monthly_income: float = 0.0
    net_monthly_savings: Optional[float] = None

    @computed_field
    @property
    def effective_monthly_expenses(self) -> float:
        """Household expenses including continuing premiums when available."""
        return self.total_current_monthly_expenses or self.current_monthly_expenses or 0.0

    @computed_field
    @property
    def effective_net_monthly_savings(self) -> float:
        if self.net_monthly_savings is not None:
            return self.net_monthly_savings
        return self.monthly_income - self.effective_monthly_expenses


class RetirementProjection(CamelModel):
    matrix: List[MatrixRow] = Field(default_factory=list)
    income_projection: List[IncomeProjectionRow] = Field(default_factory=list)
    summary: ProjectionSummary
    gap_analysis: GapAnalysis = Field(default_factory=GapAnalysis)


# =============================================================================
# FINANCIAL RECORDS
# =============================================================================

class Goal(CamelModel):
    id: Optional[str] = None
    name: str = "Goal"
    target_year: int
    target_amount: float = 0.0
    inflated_amount: float = Field(default=0.0, description="Target amount inflated to target_year")
    funding_percent: float = Field(default=0.0, description="Heuristic estimate, may overstate feasibility")
    status: GoalStatus = GoalStatus.UNFUNDED


class Loan(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    outstanding_amount: float = 0.0
    emi: float = 0.0
    end_date: Optional[date] = None

    @computed_field
    @property
    def is_active(self) -> bool:
        return self.outstanding_amount > 0


class Expense(CamelModel):
    name: Optional[str] = None
    amount: Optional[float] = None
    frequency: Frequency = Frequency.MONTHLY
    is_essential: bool = False

    # Time-bound expenses (school fees, childcare, ...)
    is_time_bound: bool = False
    end_date: Optional[date] = None
    end_age: Optional[int] = None
    dependent_current_age: Optional[int] = None

    @field_validator("frequency", mode="before")
    @classmethod
    def coerce_frequency(cls, v):
        return normalize_frequency(v)


class Investment(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    type: str = "OTHER"
    current_value: Optional[float] = None
    invested_amount: Optional[float] = None
    is_emergency_fund: bool = False
    maturity_date: Optional[date] = None

    @computed_field
    @property
    def value(self) -> float:
        """Current value, falling back to the invested amount."""
        return self.current_value or self.invested_amount or 0.0


class InsurancePolicy(CamelModel):
    policy_name: Optional[str] = None
    company: Optional[str] = None
    type: Optional[str] = None
    health_type: Optional[str] = None
    premium: Optional[float] = None
    premium_frequency: Frequency = Frequency.YEARLY

    @field_validator("premium_frequency", mode="before")
    @classmethod
    def coerce_premium_frequency(cls, v):
        return normalize_frequency(v)


class HealthRecommendation(CamelModel):
    gap: float = 0.0
    total_recommended_cover: float = 0.0


class MaturingSummary(CamelModel):
    """Lump sums maturing before retirement."""

    total_maturing_before_retirement: float = 0.0
    investment_count: int = 0
    insurance_count: int = 0

    @computed_field
    @property
    def instrument_count(self) -> int:
        return self.investment_count + self.insurance_count


class SavedStrategy(CamelModel):
    """The user's saved withdrawal/rebalancing levers."""

    model_config = ConfigDict(extra="allow")

    sell_illiquid_assets: bool = False
    sell_illiquid_assets_year: Optional[int] = None
    reinvest_maturities: bool = False
    redirect_loan_emis: bool = Field(default=False, alias="redirectLoanEMIs")
    loan_end_year: Optional[int] = None
    increase_sip: bool = Field(default=False, alias="increaseSIP")


# =============================================================================
# CALCULATION REQUEST
# =============================================================================

class CalculationInput(CamelModel):
    """Everything one reconciliation run needs."""

    projection: Optional[RetirementProjection] = None
    goals: List[Goal] = Field(default_factory=list)
    loans: List[Loan] = Field(default_factory=list)
    expenses: List[Expense] = Field(default_factory=list)
    investments: List[Investment] = Field(default_factory=list)
    insurances: List[InsurancePolicy] = Field(default_factory=list)
    health_recommendation: Optional[HealthRecommendation] = None
    net_worth_asset_breakdown: Dict[str, float] = Field(default_factory=dict)
    maturing_before_retirement: MaturingSummary = Field(default_factory=MaturingSummary)
    saved_strategy: Optional[SavedStrategy] = None

    as_of: Optional[date] = Field(default=None, description="Evaluation date; defaults to today")
    interpolate_post_retirement: bool = Field(
        default=False,
        description="Densify a sparse post-retirement projection instead of rejecting it",
    )


# =============================================================================
# CALCULATION RESULTS
# =============================================================================

class MergedTimelinePoint(CamelModel):
    year: int
    net_corpus_excluding_inflow: float
    is_post_retirement: bool
    age: Optional[int] = None
    total_inflow: float = 0.0


class ResolvedGoal(CamelModel):
    goal: Goal
    has_shortfall: bool = False
    actual_fundable_percent: float = Field(ge=0, le=100)
    shortfall_amount: float = Field(default=0.0, ge=0)


class EmergencyFundStatus(CamelModel):
    current_total: float
    target: Optional[float] = Field(default=None, description="None when monthly expenses are unknown")
    gap: float = 0.0
    is_met: Optional[bool] = None


class GapClassification(CamelModel):
    corpus_gap: float = 0.0
    illiquid_value: float = 0.0
    maturing_total: float = 0.0
    illiquid_covers_gap: bool = False
    maturities_cover_gap: bool = False


class FreedUpExpense(CamelModel):
    name: Optional[str] = None
    monthly_amount: float
    end_year: int


class CashFlowSummary(CamelModel):
    monthly_expenses: float = 0.0
    essential_monthly_expenses: float = 0.0
    monthly_emi: float = 0.0
    monthly_premiums: float = 0.0
    freed_up_by_retirement: float = 0.0
    ending_expenses: List[FreedUpExpense] = Field(default_factory=list)


class MaturityEvent(CamelModel):
    year: int
    age: int
    total_inflow: float


class CriticalArea(CamelModel):
    label: str
    status: Optional[bool] = Field(default=None, description="True met, False missing, None unknown")
    detail: str
    action_target: str


class Alert(CamelModel):
    """A user-facing alert. Derived fresh on every run, never persisted."""

    code: str
    type: AlertType
    icon: str = ""
    title: str
    description: str
    action_label: str
    action_target: str


class CalculationResult(CamelModel):
    merged_timeline: List[MergedTimelinePoint]
    resolved_goals: List[ResolvedGoal]
    emergency_fund: EmergencyFundStatus
    alerts: List[Alert]

    gap_classification: GapClassification
    readiness_percent: int = 0
    maturity_events: List[MaturityEvent] = Field(default_factory=list)
    cash_flow: CashFlowSummary = Field(default_factory=CashFlowSummary)
    critical_areas: List[CriticalArea] = Field(default_factory=list)


# =============================================================================
# API REQUEST/RESPONSE MODELS
# =============================================================================

class TimelineRequest(CamelModel):
    projection: RetirementProjection
    interpolate_post_retirement: bool = False
    as_of: Optional[date] = Field(default=None, description="Evaluation date; defaults to today")


class GoalResolutionRequest(CamelModel):
    goals: List[Goal]
    matrix: List[MatrixRow] = Field(default_factory=list)
