"""
Retyrment - Planning Constants
==============================
Named thresholds and frequency tables used by the reconciliation engine.

These are the ONLY source of truth for the alert windows and multipliers.
Engines read them through EngineSettings so they can be tuned per call
(or per deployment via environment variables) without touching the rules.
"""

import os
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, ValidationError


# =============================================================================
# FREQUENCY ENUM
# =============================================================================

class Frequency(str, Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    HALF_YEARLY = "HALF_YEARLY"
    YEARLY = "YEARLY"
    ONE_TIME = "ONE_TIME"


# Months between two payments. ONE_TIME has no recurring interval.
MONTHS_PER_PAYMENT: Dict[Frequency, int] = {
    Frequency.MONTHLY: 1,
    Frequency.QUARTERLY: 3,
    Frequency.HALF_YEARLY: 6,
    Frequency.YEARLY: 12,
    Frequency.ONE_TIME: 0,
}

# Spellings seen on expense, loan and insurance records
FREQUENCY_ALIASES: Dict[str, Frequency] = {
    "monthly": Frequency.MONTHLY,
    "quarterly": Frequency.QUARTERLY,
    "halfyearly": Frequency.HALF_YEARLY,
    "semiannual": Frequency.HALF_YEARLY,
    "semiannually": Frequency.HALF_YEARLY,
    "yearly": Frequency.YEARLY,
    "annual": Frequency.YEARLY,
    "annually": Frequency.YEARLY,
    "onetime": Frequency.ONE_TIME,
    "once": Frequency.ONE_TIME,
    "single": Frequency.ONE_TIME,  # single-premium insurance policies
}


# =============================================================================
# ALERT THRESHOLDS
# =============================================================================

EMERGENCY_FUND_MONTHS = 6             # emergency reserve = 6x monthly expenses
LOAN_FREEDOM_WINDOW_YEARS = 10        # EMI-freed alert only for loans ending within 10y
EMERGENCY_MATURITY_WINDOW_MONTHS = 6  # warn when a tagged FD/RD matures within 6 months
UNDERFUNDED_GOALS_SHOWN = 2           # goal names listed in the underfunded alert

# Asset breakdown keys
CASH_ASSET_KEY = "CASH"
ILLIQUID_ASSET_TYPES = ("GOLD", "REAL_ESTATE")

# Investment types that can be tagged as emergency reserve
EMERGENCY_INSTRUMENT_TYPES = ("FD", "RD")

# Insurance
ACCIDENT_KEYWORDS = ("accident", "accidental", "personal accident")
HEALTH_POLICY_TYPE = "HEALTH"
GROUP_HEALTH_TYPE = "GROUP"
ACCIDENT_POLICY_TYPE = "OTHER"

# Where each alert sends the user
ACTION_TARGETS = {
    "retirement": "/retirement",
    "loans": "/loans",
    "investments": "/investments",
    "goals": "/goals",
    "insurance": "/insurance",
    "insurance_recommendations": "/insurance-recommendations",
}


# =============================================================================
# ENGINE SETTINGS
# =============================================================================

class EngineSettings(BaseModel):
    """Tunable thresholds for the reconciliation engine."""

    emergency_fund_months: int = Field(default=EMERGENCY_FUND_MONTHS, ge=1)
    loan_freedom_window_years: int = Field(default=LOAN_FREEDOM_WINDOW_YEARS, ge=1)
    emergency_maturity_window_months: int = Field(default=EMERGENCY_MATURITY_WINDOW_MONTHS, ge=0)
    underfunded_goals_shown: int = Field(default=UNDERFUNDED_GOALS_SHOWN, ge=1)

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Build settings, letting RETYRMENT_* environment variables override defaults."""
        overrides = {}
        env_map = {
            "RETYRMENT_EMERGENCY_FUND_MONTHS": "emergency_fund_months",
            "RETYRMENT_LOAN_WINDOW_YEARS": "loan_freedom_window_years",
            "RETYRMENT_EMERGENCY_MATURITY_MONTHS": "emergency_maturity_window_months",
        }
        for env_name, field_name in env_map.items():
            value = os.getenv(env_name)
            if value:
                overrides[field_name] = value

        try:
            return cls(**overrides)
        except ValidationError as exc:
            env_by_field = {field: env for env, field in env_map.items()}
            bad = sorted(env_by_field[err["loc"][0]] for err in exc.errors() if err["loc"])
            raise ValueError(f"Invalid environment setting {', '.join(bad)}: expected a whole number within range") from exc


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def normalize_frequency(frequency) -> Frequency:
    """
    Map a raw frequency value to a Frequency.

    Unknown or missing values fall back to MONTHLY, since most records
    default to monthly.
    """
    if isinstance(frequency, Frequency):
        return frequency
    if frequency is None:
        return Frequency.MONTHLY
    key = str(frequency).lower().replace("-", "").replace("_", "").replace(" ", "")
    return FREQUENCY_ALIASES.get(key, Frequency.MONTHLY)


def to_monthly(amount: Optional[float], frequency=None) -> float:
    """
    Convert an amount paid at `frequency` into its monthly equivalent.

    One-time amounts do not contribute to a recurring monthly rate.
    Never raises: a missing amount counts as 0.
    """
    if not amount:
        return 0.0
    freq = normalize_frequency(frequency)
    interval = MONTHS_PER_PAYMENT[freq]
    if interval == 0:
        return 0.0
    return amount / interval


def to_yearly(amount: Optional[float], frequency=None) -> float:
    """Yearly total of an amount; a one-time amount counts once."""
    if not amount:
        return 0.0
    freq = normalize_frequency(frequency)
    if freq == Frequency.ONE_TIME:
        return float(amount)
    return to_monthly(amount, freq) * 12


def _group_indian(whole: int) -> str:
    """Digit grouping in the Indian system: 12,34,56,789."""
    digits = str(whole)
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    parts = []
    while len(head) > 2:
        parts.insert(0, head[-2:])
        head = head[:-2]
    if head:
        parts.insert(0, head)
    return ",".join(parts) + "," + tail


def format_inr(amount: Optional[float], compact: bool = False) -> str:
    """
    Format a rupee amount.

    compact=True abbreviates to crore (Cr), lakh (L) and thousand (K).
    """
    if amount is None or amount != amount:  # None or NaN
        return "₹0"

    if compact:
        if amount >= 10_000_000:
            return f"₹{amount / 10_000_000:.2f}Cr"
        elif amount >= 100_000:
            return f"₹{amount / 100_000:.2f}L"
        elif amount >= 1000:
            return f"₹{amount / 1000:.1f}K"

    whole = int(round(abs(amount)))
    sign = "-" if amount < 0 and whole > 0 else ""
    return f"{sign}₹{_group_indian(whole)}"


def get_all_thresholds(settings: Optional[EngineSettings] = None) -> dict:
    """Active thresholds, for display and the reference API."""
    settings = settings or EngineSettings()
    return {
        **settings.model_dump(),
        "illiquid_asset_types": list(ILLIQUID_ASSET_TYPES),
        "emergency_instrument_types": list(EMERGENCY_INSTRUMENT_TYPES),
    }
