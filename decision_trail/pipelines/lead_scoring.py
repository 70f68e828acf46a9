"""Lead scoring pipeline.

A second, unrelated workflow recorded with the same trace library:
enrich the lead, check qualification, score it, route it to a rep.
"""

from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from decision_trail.storage.base import StorageAdapter
from decision_trail.trace.models import ExecutionResult, ExecutionStatus, FilterVerdict
from decision_trail.trace.recorder import ExecutionRecorder

logger = structlog.get_logger(__name__)

PIPELINE_NAME = "lead-scoring"

FREE_MAIL_DOMAINS = frozenset({
    "gmail.com", "yahoo.com", "hotmail.com", "outlook.com", "icloud.com", "aol.com",
})
TARGET_INDUSTRIES = frozenset({"software", "technology", "saas", "fintech"})
SENIOR_TITLE_KEYWORDS = ("chief", "vp", "vice president", "director", "head", "founder")

GRADE_A_MIN = 70
GRADE_B_MIN = 50
SENIOR_REP_MIN = 70


class Lead(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    email: str
    source: str = "unknown"
    company: Optional[str] = None
    title: Optional[str] = None
    industry: Optional[str] = None
    employee_count: Optional[int] = Field(None, ge=0)
    website_visits: int = Field(0, ge=0)
    email_opens: int = Field(0, ge=0)

    @property
    def email_domain(self) -> str:
        return self.email.rsplit("@", 1)[-1].lower()


def grade_for(score: int) -> str:
    if score >= GRADE_A_MIN:
        return "A"
    if score >= GRADE_B_MIN:
        return "B"
    return "C"


def qualification_checks(lead: Lead) -> list[FilterVerdict]:
    business_email = lead.email_domain not in FREE_MAIL_DOMAINS
    industry = (lead.industry or "").lower()
    return [
        FilterVerdict(
            name="has_company_email",
            passed=business_email,
            detail=f"Business email domain ({lead.email_domain})" if business_email
            else f"Free-mail domain ({lead.email_domain})",
        ),
        FilterVerdict(
            name="has_title",
            passed=bool(lead.title),
            detail="Job title provided" if lead.title else "No job title",
        ),
        FilterVerdict(
            name="target_industry",
            passed=industry in TARGET_INDUSTRIES,
            detail=f"Industry '{lead.industry}' is targeted" if industry in TARGET_INDUSTRIES
            else f"Industry '{lead.industry}' is not in {sorted(TARGET_INDUSTRIES)}",
        ),
    ]


def score_lead(lead: Lead) -> dict[str, int]:
    """Points per signal group. Groups cap at 40/30/30 so the total stays in 0-100."""
    firmographic = 0
    if lead.company:
        firmographic += 10
    if (lead.industry or "").lower() in TARGET_INDUSTRIES:
        firmographic += 15
    if lead.employee_count is not None:
        if lead.employee_count >= 50:
            firmographic += 15
        elif lead.employee_count >= 10:
            firmographic += 8

    behavioral = min(30, lead.website_visits * 3 + lead.email_opens * 2)

    demographic = 0
    if lead.title:
        demographic += 10
        title = lead.title.lower()
        if any(keyword in title for keyword in SENIOR_TITLE_KEYWORDS):
            demographic += 20
        elif "manager" in title:
            demographic += 10

    return {
        "firmographic": firmographic,
        "behavioral": behavioral,
        "demographic": demographic,
    }


async def run_lead_scoring(
    lead: Lead,
    storage: StorageAdapter,
    *,
    auto_save: bool = False,
) -> ExecutionRecorder:
    recorder = ExecutionRecorder.create(
        PIPELINE_NAME,
        storage,
        auto_save=auto_save,
        metadata={"leadId": lead.id, "source": lead.source},
    )
    logger.info("lead_scoring_start", execution_id=recorder.id, lead_id=lead.id)

    # Step 1: Enrichment
    optional_fields = ["company", "title", "industry", "employee_count"]
    present = [name for name in optional_fields if getattr(lead, name) is not None]
    missing = [name for name in optional_fields if name not in present]
    (recorder.step("enrich_data")
        .input({"lead_id": lead.id, "email": lead.email})
        .output({"enriched_fields": present, "missing_fields": missing})
        .reason(f"Lead carries {len(present)} of {len(optional_fields)} optional fields")
        .record())

    # Step 2: Qualification
    checks = qualification_checks(lead)
    passed = sum(1 for c in checks if c.passed)
    qualified = passed == len(checks)
    (recorder.step("qualification_check")
        .input({"checks": [c.name for c in checks]})
        .output({"qualified": qualified, "checks_passed": passed, "checks_failed": len(checks) - passed})
        .reason("Lead meets all qualification criteria" if qualified
                else "Failed: " + ", ".join(c.name for c in checks if not c.passed))
        .filters(checks)
        .record())

    # Step 3: Scoring
    breakdown = score_lead(lead)
    total = sum(breakdown.values())
    grade = grade_for(total)
    (recorder.step("calculate_score")
        .input({"signals": list(breakdown)})
        .output({"total_score": total, "breakdown": breakdown, "grade": grade})
        .reason(f"Total score: {total}/100 - Grade {grade} lead")
        .record())

    # Step 4: Routing
    assigned = "senior-rep" if total >= SENIOR_REP_MIN else "junior-rep"
    priority = {"A": "high", "B": "medium"}.get(grade, "low")
    (recorder.step("route_to_sales")
        .input({"score": total, "grade": grade})
        .output({"assigned_to": assigned, "priority": priority})
        .reason(f"Score {total} routed to {assigned}")
        .record())

    recorder.set_result(ExecutionResult(
        selected={"id": lead.id, "score": total, "grade": grade},
        reason=f"{'Qualified' if qualified else 'Unqualified'} {grade}-grade lead assigned to {assigned}",
        confidence=total / 100,
    ))
    await recorder.complete(ExecutionStatus.SUCCESS if qualified else ExecutionStatus.FAILURE)

    logger.info(
        "lead_scoring_complete",
        execution_id=recorder.id,
        qualified=qualified,
        score=total,
        grade=grade,
    )
    return recorder
