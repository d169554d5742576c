"""
Scholarship eligibility rule.

Income must be strictly below the ceiling and the academic score must reach
the minimum. Income comes from the verified ledger value when there is one,
otherwise from a provisional (locally decrypted) value. Without either the
applicant is ineligible.
"""
from typing import Optional
from dtos.application_dtos import Application, EligibilityReport

INCOME_CEILING = 50000
MIN_ACADEMIC_SCORE = 7


def resolve_income(application: Application, provisional_income: Optional[int] = None) -> Optional[int]:
    if application.is_verified:
        return application.clear_income
    return provisional_income


def is_eligible(application: Application, provisional_income: Optional[int] = None) -> bool:
    income = resolve_income(application, provisional_income)
    if income is None:
        return False
    return income < INCOME_CEILING and application.academic_score >= MIN_ACADEMIC_SCORE


def evaluate(application: Application, provisional_income: Optional[int] = None) -> EligibilityReport:
    """Per-criterion breakdown of :func:`is_eligible`."""
    income = resolve_income(application, provisional_income)
    return EligibilityReport(
        application_id=application.id,
        income_value=income,
        income_met=income is not None and income < INCOME_CEILING,
        score_met=application.academic_score >= MIN_ACADEMIC_SCORE,
        provisional=income is not None and not application.is_verified,
        eligible=is_eligible(application, provisional_income),
    )
