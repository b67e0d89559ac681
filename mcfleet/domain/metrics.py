from uuid import UUID
from enum import Enum
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Dict, Union

ExtensionValue = Union[int, float, str]


class StatsSource(str, Enum):
    CONSOLE = "console"
    LOG_FALLBACK = "log_fallback"


@dataclass(frozen=True)
class RuntimeCounters:
    """Point-in-time counters reported by the container runtime."""
    cpu_total_usage: int = 0
    system_cpu_usage: int = 0
    online_cpus: int = 1
    memory_usage_bytes: int = 0
    memory_limit_bytes: int = 0
    network_rx_bytes: int = 0
    network_tx_bytes: int = 0
    block_read_bytes: int = 0
    block_write_bytes: int = 0


@dataclass
class GameStats:
    source: StatsSource
    player_count: int = 0
    max_players: int | None = None
    tps: float | None = None
    memory_used_mb: int | None = None
    memory_max_mb: int | None = None
    entities: int | None = None
    chunks_loaded: int | None = None
    extensions: Dict[str, ExtensionValue] = field(default_factory=dict)


@dataclass(frozen=True)
class MetricSample:
    instance_id: UUID
    source: StatsSource
    cpu_percent: float = 0.0
    memory_used_bytes: int = 0
    memory_limit_bytes: int = 0
    network_rx_bytes: int = 0
    network_tx_bytes: int = 0
    block_read_bytes: int = 0
    block_write_bytes: int = 0
    player_count: int = 0
    max_players: int | None = None
    tps: float | None = None
    entities: int | None = None
    chunks_loaded: int | None = None
    game_memory_used_mb: int | None = None
    game_memory_max_mb: int | None = None
    extensions: Dict[str, ExtensionValue] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def memory_percent(self) -> float | None:
        if not self.memory_limit_bytes:
            return None
        return self.memory_used_bytes / self.memory_limit_bytes * 100
