"""
Celery tasks for budget alert scans.

Tasks:
- scan_budget_alerts: Evaluate alerts for every active budget of a company
- scan_all_budget_alerts: Run the scan for all active companies

Usage:
    from budgets.tasks import scan_budget_alerts
    scan_budget_alerts.delay(company_id=company.id)

    # Scheduling (e.g. nightly) is configured outside this project.
"""
import logging
from typing import Optional

from celery import shared_task
from django.conf import settings

from accounting.exceptions import LedgerDependencyError

logger = logging.getLogger(__name__)


@shared_task(bind=True)
def scan_budget_alerts(self, company_id: int, as_of: Optional[str] = None) -> dict:
    """
    Evaluate alerts for all active budgets of a company.

    A budget whose spending cannot be converted (missing exchange rate) is
    reported as failed and the scan moves on to the next budget.

    Args:
        company_id: ID of the company to scan
        as_of: Optional ISO date; defaults to today

    Returns:
        Dict with counts of scanned budgets, created alerts and failures
    """
    from datetime import date

    from accounts.models import Company
    from budgets.alerts import evaluate_budget_alerts
    from budgets.models import Budget

    if not getattr(settings, "BUDGET_ALERT_SCAN_ENABLED", True):
        logger.info("Budget alert scan disabled")
        return {"company_id": company_id, "skipped": True}

    try:
        company = Company.objects.get(id=company_id)
    except Company.DoesNotExist:
        logger.error(f"Company {company_id} not found")
        return {"error": f"Company {company_id} not found"}

    scan_date = date.fromisoformat(as_of) if as_of else None

    scanned = 0
    created = 0
    failed = []
    for budget in Budget.objects.filter(company=company, is_active=True):
        scanned += 1
        try:
            alerts = evaluate_budget_alerts(company, budget, as_of=scan_date)
        except LedgerDependencyError as e:
            logger.warning(
                "Budget alert scan failed for budget",
                extra={"company_id": company.id, "budget_id": budget.pk, "error_code": e.code},
            )
            failed.append({"budget_id": budget.pk, "error": e.to_dict()})
            continue
        created += len(alerts)

    logger.info(
        f"Completed budget alert scan for company {company_id}: "
        f"{scanned} budgets, {created} alerts created"
    )

    return {
        "company_id": company_id,
        "budgets_scanned": scanned,
        "alerts_created": created,
        "failed": failed,
    }


@shared_task(bind=True)
def scan_all_budget_alerts(self, as_of: Optional[str] = None) -> dict:
    """
    Scan budget alerts for all active companies.

    Returns:
        Summary keyed by company slug
    """
    from accounts.models import Company

    logger.info("Scanning budget alerts for all companies")

    results = {}
    total_created = 0
    for company in Company.objects.filter(is_active=True):
        result = scan_budget_alerts(company_id=company.id, as_of=as_of)
        results[company.slug] = result
        total_created += result.get("alerts_created", 0)

    logger.info(f"Completed all budget alert scans: {total_created} alerts created")

    return {
        "total_alerts_created": total_created,
        "companies": results,
    }
