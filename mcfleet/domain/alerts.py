from uuid import UUID, uuid4
from enum import Enum
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Dict, List


class AlertType(str, Enum):
    HIGH_MEMORY = "high_memory"
    HIGH_CPU = "high_cpu"
    PLAYER_COUNT_HIGH = "player_count_high"
    LOW_TPS = "low_tps"
    SERVER_CRASH = "server_crash"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class AlertRule:
    type: AlertType
    threshold: float
    severity: Severity = Severity.WARNING
    cooldown_seconds: int = 15 * 60
    enabled: bool = True


@dataclass
class Alert:
    instance_id: UUID
    type: AlertType
    severity: Severity
    title: str
    message: str
    threshold: float | None = None
    current_value: float | None = None
    id: UUID = field(default_factory=uuid4)
    triggered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    resolved_at: datetime | None = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def active(self) -> bool:
        return self.resolved_at is None


DEFAULT_RULES: List[AlertRule] = [
    AlertRule(AlertType.HIGH_MEMORY, threshold=90, severity=Severity.WARNING, cooldown_seconds=30 * 60),
    AlertRule(AlertType.HIGH_CPU, threshold=95, severity=Severity.WARNING, cooldown_seconds=15 * 60),
    AlertRule(AlertType.SERVER_CRASH, threshold=0, severity=Severity.CRITICAL, cooldown_seconds=15 * 60),
]
