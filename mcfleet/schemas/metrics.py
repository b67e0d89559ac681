from pydantic import BaseModel, ConfigDict
from uuid import UUID
from datetime import datetime
from typing import Dict, List, Optional, Union

from mcfleet.domain.metrics import StatsSource


class MetricSampleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    instance_id: UUID
    source: StatsSource
    timestamp: datetime
    cpu_percent: float
    memory_used_bytes: int
    memory_limit_bytes: int
    network_rx_bytes: int
    network_tx_bytes: int
    block_read_bytes: int
    block_write_bytes: int
    player_count: int
    max_players: Optional[int] = None
    tps: Optional[float] = None
    entities: Optional[int] = None
    chunks_loaded: Optional[int] = None
    game_memory_used_mb: Optional[int] = None
    game_memory_max_mb: Optional[int] = None
    extensions: Dict[str, Union[int, float, str]] = {}


class MetricsHistoryResponse(BaseModel):
    instance_id: UUID
    hours: int
    samples: List[MetricSampleResponse]


class MetricsSummary(BaseModel):
    avg_cpu_percent: float = 0.0
    avg_memory_used_bytes: float = 0.0
    avg_tps: float = 0.0
    max_players_24h: int = 0
    samples_last_hour: int = 0
