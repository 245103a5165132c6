"""Treasury endpoints - monitoring run and alert administration"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ramp_gateway.api.v1.schemas import AlertListResponse, AlertSchema, MonitoringResponse
from ramp_gateway.api.dependencies import get_authorizer, get_caller, get_treasury_monitor
from ramp_gateway.infrastructure.database.session import get_db
from ramp_gateway.infrastructure.database.repositories import AlertRepository
from ramp_gateway.domain.authorization import Action, Authorizer, require
from ramp_gateway.domain.treasury import TreasuryMonitor, acknowledge_alert
from ramp_gateway.infrastructure.observability.metrics import record_alerts

router = APIRouter()


@router.post("/treasury/monitor", response_model=MonitoringResponse)
async def run_monitor(
    monitor: TreasuryMonitor = Depends(get_treasury_monitor),
    caller: Optional[str] = Depends(get_caller),
    authorizer: Authorizer = Depends(get_authorizer),
):
    """
    One monitoring pass, triggered by an external scheduler.

    Unreadable currencies are reported in `failed_currencies` and never block
    the others.
    """
    require(authorizer, caller, Action.RUN_MONITOR)
    report = await monitor.run()
    record_alerts(report.alerts_created)
    return MonitoringResponse(
        alerts_created=[AlertSchema.from_domain(alert) for alert in report.alerts_created],
        balances=report.balances,
        failed_currencies=report.failed_currencies,
        failed_transactions=report.failed_transactions,
    )


@router.get("/treasury/alerts", response_model=AlertListResponse)
def list_alerts(
    acknowledged: Optional[bool] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    caller: Optional[str] = Depends(get_caller),
    authorizer: Authorizer = Depends(get_authorizer),
):
    require(authorizer, caller, Action.VIEW_ADMIN)
    alerts = AlertRepository(db).list(acknowledged=acknowledged, limit=limit)
    return AlertListResponse(alerts=[AlertSchema.from_domain(alert) for alert in alerts])


@router.post("/treasury/alerts/{alert_id}/acknowledge", response_model=AlertSchema)
def acknowledge(
    alert_id: str,
    db: Session = Depends(get_db),
    caller: Optional[str] = Depends(get_caller),
    authorizer: Authorizer = Depends(get_authorizer),
):
    alert = acknowledge_alert(AlertRepository(db), db, authorizer, alert_id, caller)
    return AlertSchema.from_domain(alert)
