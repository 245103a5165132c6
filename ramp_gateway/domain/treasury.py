"""Treasury monitor - threshold alerts per currency plus failed-transaction rate"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Mapping, Optional

from ramp_gateway.domain.authorization import Action, Authorizer, require
from ramp_gateway.domain.models import AlertSeverity, AlertType, TreasuryAlert, TreasuryThresholds
from ramp_gateway.domain.ports import AlertNotifier, AlertStore, TransactionStore, TreasuryBalances, UnitOfWork
from ramp_gateway.domain.exceptions import ConcurrentModificationError, NotFoundError
from ramp_gateway.utils.date_utils import minutes_before, utc_now

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLDS: Dict[str, TreasuryThresholds] = {
    "SUI": TreasuryThresholds(critical=Decimal("50"), low=Decimal("100"), high=Decimal("1000")),
    "USDC": TreasuryThresholds(critical=Decimal("500"), low=Decimal("1000"), high=Decimal("10000")),
    "USDT": TreasuryThresholds(critical=Decimal("500"), low=Decimal("1000"), high=Decimal("10000")),
    "NAIRA": TreasuryThresholds(critical=Decimal("50000"), low=Decimal("100000"), high=Decimal("1000000")),
}


@dataclass
class MonitoringReport:
    alerts_created: List[TreasuryAlert] = field(default_factory=list)
    balances: Dict[str, Decimal] = field(default_factory=dict)
    failed_currencies: Dict[str, str] = field(default_factory=dict)
    failed_transactions: int = 0


class TreasuryMonitor:
    """
    Stateless check run by an external scheduler.

    Per currency:
    - balance < critical -> LOW_BALANCE / CRITICAL
    - balance < low      -> LOW_BALANCE / HIGH
    - balance > high     -> HIGH_BALANCE / LOW (good liquidity)

    An unacknowledged alert with the same (type, currency, severity) is never
    duplicated. A currency whose balance cannot be read is reported without
    blocking the others.
    """

    def __init__(
        self,
        balances: TreasuryBalances,
        alerts: AlertStore,
        transactions: TransactionStore,
        uow: UnitOfWork,
        notifier: Optional[AlertNotifier] = None,
        thresholds: Mapping[str, TreasuryThresholds] = DEFAULT_THRESHOLDS,
        failed_threshold: int = 3,
        window_minutes: int = 60,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.balances = balances
        self.alerts = alerts
        self.transactions = transactions
        self.uow = uow
        self.notifier = notifier
        self.thresholds = dict(thresholds)
        self.failed_threshold = failed_threshold
        self.window_minutes = window_minutes
        self.clock = clock

    async def run(self) -> MonitoringReport:
        report = MonitoringReport()
        currencies = list(self.thresholds)

        results = await asyncio.gather(
            *(self.balances.get_available_balance(currency) for currency in currencies),
            return_exceptions=True,
        )

        for currency, result in zip(currencies, results):
            if isinstance(result, Exception):
                reason = getattr(result, "message", None) or repr(result)
                report.failed_currencies[currency] = reason
                logger.warning("Treasury balance unavailable", extra={"currency": currency, "reason": reason})
                alert = self._raise_alert(
                    AlertType.SYSTEM_ERROR,
                    AlertSeverity.MEDIUM,
                    currency,
                    f"Unable to read {currency} treasury balance: {reason}",
                )
            else:
                report.balances[currency] = result
                alert = self._evaluate(currency, result)
            if alert:
                report.alerts_created.append(alert)

        report.failed_transactions, rate_alert = self._check_failed_transactions()
        if rate_alert:
            report.alerts_created.append(rate_alert)

        self.uow.commit()

        for alert in report.alerts_created:
            if alert.severity == AlertSeverity.CRITICAL and self.notifier:
                await self.notifier.notify(alert)

        logger.info(
            "Treasury monitoring completed",
            extra={
                "alerts_created": len(report.alerts_created),
                "failed_currencies": list(report.failed_currencies),
            },
        )
        return report

    def _evaluate(self, currency: str, balance: Decimal) -> Optional[TreasuryAlert]:
        limits = self.thresholds[currency]

        if balance < limits.critical:
            return self._raise_alert(
                AlertType.LOW_BALANCE,
                AlertSeverity.CRITICAL,
                currency,
                f"CRITICAL {currency} balance: {balance:,} (threshold: {limits.critical:,})",
                amount=balance,
                threshold=limits.critical,
            )
        if balance < limits.low:
            return self._raise_alert(
                AlertType.LOW_BALANCE,
                AlertSeverity.HIGH,
                currency,
                f"Low {currency} balance: {balance:,} (threshold: {limits.low:,})",
                amount=balance,
                threshold=limits.low,
            )
        if balance > limits.high:
            return self._raise_alert(
                AlertType.HIGH_BALANCE,
                AlertSeverity.LOW,
                currency,
                f"High {currency} balance: {balance:,} (threshold: {limits.high:,}) - Good liquidity!",
                amount=balance,
                threshold=limits.high,
            )
        return None

    def _check_failed_transactions(self) -> tuple[int, Optional[TreasuryAlert]]:
        """At least N failures in the window, and no unacknowledged rate alert inside it"""
        since = minutes_before(self.clock(), self.window_minutes)
        failed = self.transactions.count_failed_since(since)
        if failed < self.failed_threshold:
            return failed, None

        latest = self.alerts.latest_unacknowledged(AlertType.FAILED_TRANSACTION_RATE)
        if latest is not None and latest.created_at >= since:
            return failed, None

        alert = self._store(
            AlertType.FAILED_TRANSACTION_RATE,
            AlertSeverity.HIGH,
            None,
            f"High number of failed transactions: {failed} failures in the last {self.window_minutes} minutes",
            amount=Decimal(failed),
            threshold=Decimal(self.failed_threshold),
        )
        return failed, alert

    def _raise_alert(
        self,
        alert_type: AlertType,
        severity: AlertSeverity,
        currency: str,
        message: str,
        amount: Optional[Decimal] = None,
        threshold: Optional[Decimal] = None,
    ) -> Optional[TreasuryAlert]:
        if self.alerts.find_unacknowledged(alert_type, currency, severity) is not None:
            logger.info(
                "Alert already open",
                extra={"alert_type": alert_type.value, "currency": currency, "severity": severity.value},
            )
            return None
        return self._store(alert_type, severity, currency, message, amount, threshold)

    def _store(
        self,
        alert_type: AlertType,
        severity: AlertSeverity,
        currency: Optional[str],
        message: str,
        amount: Optional[Decimal] = None,
        threshold: Optional[Decimal] = None,
    ) -> Optional[TreasuryAlert]:
        """Each alert commits alone so a run that loses an insert race keeps the others"""
        try:
            alert = self.alerts.add(
                TreasuryAlert(
                    id=str(uuid.uuid4()),
                    type=alert_type,
                    severity=severity,
                    message=message,
                    created_at=self.clock(),
                    currency=currency,
                    amount=amount,
                    threshold=threshold,
                )
            )
        except ConcurrentModificationError:
            self.uow.rollback()
            logger.info(
                "Alert opened by a concurrent run",
                extra={"alert_type": alert_type.value, "currency": currency, "severity": severity.value},
            )
            return None
        self.uow.commit()
        logger.warning(
            "Treasury alert created",
            extra={"alert_id": alert.id, "alert_type": alert_type.value, "severity": severity.value},
        )
        return alert


def acknowledge_alert(
    alerts: AlertStore,
    uow: UnitOfWork,
    authorizer: Authorizer,
    alert_id: str,
    caller: str,
    clock: Callable[[], datetime] = utc_now,
) -> TreasuryAlert:
    """Mark an alert handled; acknowledging twice is a no-op"""
    require(authorizer, caller, Action.ACKNOWLEDGE_ALERT)
    alert = alerts.get(alert_id)
    if alert is None:
        raise NotFoundError(f"Alert {alert_id} not found")
    if alert.acknowledged:
        return alert
    alert = alerts.acknowledge(alert_id, caller, clock())
    uow.commit()
    return alert
