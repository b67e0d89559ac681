import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Tuple
from uuid import UUID

from mcfleet.core.config import Settings
from mcfleet.domain.alerts import DEFAULT_RULES, Alert, AlertRule, AlertType
from mcfleet.domain.instance import Instance, InstanceStatus
from mcfleet.domain.metrics import MetricSample
from mcfleet.domain.ports import AlertRepository, InstanceRepository, MetricSampleRepository

logger = logging.getLogger(__name__)

TITLES: Dict[AlertType, str] = {
    AlertType.HIGH_MEMORY: "High memory usage",
    AlertType.HIGH_CPU: "High CPU usage",
    AlertType.PLAYER_COUNT_HIGH: "High player count",
    AlertType.LOW_TPS: "Low server TPS",
    AlertType.SERVER_CRASH: "Server crashed",
}


def observed_value(rule: AlertRule, sample: MetricSample) -> float | None:
    if rule.type == AlertType.HIGH_MEMORY:
        return sample.memory_percent
    if rule.type == AlertType.HIGH_CPU:
        return sample.cpu_percent
    if rule.type == AlertType.PLAYER_COUNT_HIGH:
        return sample.player_count
    if rule.type == AlertType.LOW_TPS:
        return sample.tps
    return None


def breached(rule: AlertRule, value: float) -> bool:
    if rule.type == AlertType.LOW_TPS:
        return value < rule.threshold
    return value > rule.threshold


class AlertEvaluator:
    """
    Threshold rules over the latest samples.

    Cooldowns are kept in memory per (instance, alert type); a fired alert
    suppresses the same type on the same instance until the rule's cooldown
    has elapsed.
    """

    def __init__(
        self,
        alert_repo: AlertRepository,
        instance_repo: InstanceRepository,
        metric_repo: MetricSampleRepository,
        settings: Settings | None = None,
    ):
        self.settings = settings or Settings()
        self.alert_repo = alert_repo
        self.instance_repo = instance_repo
        self.metric_repo = metric_repo
        self._last_triggered: Dict[Tuple[UUID, AlertType], datetime] = {}
        self._task: asyncio.Task | None = None

    # -------------------------------
    # Evaluation
    # -------------------------------
    async def evaluate(
        self,
        instance_id: UUID,
        sample: MetricSample,
        rules: List[AlertRule] | None = None,
        now: datetime | None = None,
    ) -> List[Alert]:
        now = now or datetime.now(timezone.utc)
        fired: List[Alert] = []

        for rule in rules if rules is not None else DEFAULT_RULES:
            if not rule.enabled or rule.type == AlertType.SERVER_CRASH:
                continue
            value = observed_value(rule, sample)
            if value is None or not breached(rule, value):
                continue

            comparison = "below" if rule.type == AlertType.LOW_TPS else "above"
            alert = await self._trigger(
                instance_id,
                rule,
                message=f"{TITLES[rule.type]}: {value:.2f} is {comparison} threshold {rule.threshold}",
                current_value=value,
                now=now,
            )
            if alert:
                fired.append(alert)

        return fired

    async def check_crash(
        self,
        instance: Instance,
        rules: List[AlertRule] | None = None,
        now: datetime | None = None,
    ) -> Alert | None:
        if instance.status != InstanceStatus.ERROR:
            return None
        for rule in rules if rules is not None else DEFAULT_RULES:
            if rule.type == AlertType.SERVER_CRASH and rule.enabled:
                return await self._trigger(
                    instance.id,
                    rule,
                    message=f"Instance {instance.name} is in error state",
                    current_value=None,
                    now=now or datetime.now(timezone.utc),
                )
        return None

    async def resolve(self, alert_id: UUID) -> Alert | None:
        alert = await self.alert_repo.get(alert_id)
        if alert is None:
            return None
        if not alert.active:
            logger.debug("Alert %s is already resolved", alert_id)
            return alert
        alert.resolved_at = datetime.now(timezone.utc)
        await self.alert_repo.update(alert)
        logger.info("Alert %s resolved", alert_id)
        return alert

    async def _trigger(
        self,
        instance_id: UUID,
        rule: AlertRule,
        *,
        message: str,
        current_value: float | None,
        now: datetime,
    ) -> Alert | None:
        key = (instance_id, rule.type)
        last = self._last_triggered.get(key)
        if last is not None and now - last < timedelta(seconds=rule.cooldown_seconds):
            logger.debug("Alert %s for instance %s is in cooldown", rule.type.value, instance_id)
            return None

        alert = Alert(
            instance_id=instance_id,
            type=rule.type,
            severity=rule.severity,
            title=TITLES[rule.type],
            message=message,
            threshold=rule.threshold,
            current_value=current_value,
            triggered_at=now,
        )
        await self.alert_repo.create(alert)
        self._last_triggered[key] = now
        logger.warning("Alert triggered for instance %s: %s", instance_id, message)
        return alert

    def forget(self, instance_id: UUID) -> None:
        for key in [k for k in self._last_triggered if k[0] == instance_id]:
            del self._last_triggered[key]

    # -------------------------------
    # Loop
    # -------------------------------
    async def run_once(self) -> List[Alert]:
        fired: List[Alert] = []
        for instance in await self.instance_repo.list():
            if instance.status == InstanceStatus.ERROR:
                alert = await self.check_crash(instance)
                if alert:
                    fired.append(alert)
            elif instance.status == InstanceStatus.RUNNING:
                sample = await self.metric_repo.latest(instance.id)
                if sample is not None:
                    fired.extend(await self.evaluate(instance.id, sample))
        return fired

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(self.settings.ALERT_EVAL_INTERVAL_SECONDS))

    async def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def _loop(self, interval: float):
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Alert evaluation failed")
            await asyncio.sleep(interval)
