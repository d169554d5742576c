import pytest

from dtos.application_dtos import Application, LedgerRecord, VerificationStatus
from services.eligibility import INCOME_CEILING, evaluate, is_eligible


def make_application(score=8, verified_income=None):
    return Application(
        id="scholarship-1",
        applicant_name="Alice",
        academic_score=score,
        created_at=1_700_000_000,
        creator="0xA11ce",
        income_handle="0xhandle",
        status=VerificationStatus.VERIFIED if verified_income is not None else VerificationStatus.UNVERIFIED,
        clear_income=verified_income,
    )


def test_unknown_income_is_never_eligible():
    application = make_application(score=10)
    assert is_eligible(application) is False
    assert is_eligible(application, None) is False


def test_verified_income_and_score_both_met():
    assert is_eligible(make_application(score=8, verified_income=40000)) is True


def test_low_score_is_ineligible_despite_income():
    assert is_eligible(make_application(score=5, verified_income=30000)) is False


@pytest.mark.parametrize("income,expected", [
    (INCOME_CEILING - 1, True),
    (INCOME_CEILING, False),
    (INCOME_CEILING + 1, False),
])
def test_income_ceiling_is_strict(income, expected):
    assert is_eligible(make_application(score=7, verified_income=income)) is expected


def test_score_threshold_is_inclusive():
    assert is_eligible(make_application(score=7, verified_income=0)) is True
    assert is_eligible(make_application(score=6, verified_income=0)) is False


def test_provisional_income_used_only_when_unverified():
    unverified = make_application(score=9)
    assert is_eligible(unverified, 20000) is True

    # Verified value wins over any provisional claim
    verified = make_application(score=9, verified_income=90000)
    assert is_eligible(verified, 20000) is False


def test_is_eligible_is_deterministic():
    application = make_application(score=8)
    assert is_eligible(application, 45000) == is_eligible(application, 45000)


def test_evaluate_breakdown():
    report = evaluate(make_application(score=5), 45000)

    assert report.income_value == 45000
    assert report.income_met is True
    assert report.score_met is False
    assert report.provisional is True
    assert report.eligible is False


def test_evaluate_without_income():
    report = evaluate(make_application(score=9))

    assert report.income_value is None
    assert report.income_met is False
    assert report.provisional is False
    assert report.eligible is False


def test_verified_record_without_value_is_ineligible():
    record = LedgerRecord(
        name="Alice", creator="0xA11ce", timestamp=1_700_000_000,
        academic_score=9, is_verified=True, decrypted_value=None,
    )
    application = Application.from_record("scholarship-1", record, "0xhandle")

    assert application.is_verified
    assert application.clear_income is None
    assert is_eligible(application) is False
    assert evaluate(application).income_met is False
