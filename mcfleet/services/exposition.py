"""
Prometheus text exposition for one instance.

Values are rendered through prometheus_client: a throwaway registry holds a
collector yielding one family per catalog entry, and ``generate_latest``
produces the text. Every entry in the catalog gets its HELP and TYPE lines
even when it has no samples.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, HistogramMetricFamily

from mcfleet.domain.instance import Instance, InstanceStatus
from mcfleet.domain.metrics import MetricSample
from mcfleet.services.console import ConsoleClient

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"
PREFIX = "minecraft_"
WORLD_LABELS = {"world": "overworld"}
MIB = 1024 * 1024

GAUGE = "gauge"
COUNTER = "counter"
HISTOGRAM = "histogram"


@dataclass(frozen=True)
class MetricDefinition:
    name: str
    help: str
    type: str


CATALOG: List[MetricDefinition] = [
    MetricDefinition("server_up", "Whether the server is up", GAUGE),
    MetricDefinition("server_uptime_seconds", "Server uptime in seconds", COUNTER),
    MetricDefinition("players_online", "Number of players currently online", GAUGE),
    MetricDefinition("players_max", "Maximum number of players allowed", GAUGE),
    MetricDefinition("players_total", "Total number of unique players that have joined", COUNTER),
    MetricDefinition("tps", "Server ticks per second", GAUGE),
    MetricDefinition("mspt", "Milliseconds per tick", GAUGE),
    MetricDefinition("memory_used_bytes", "Memory used by the server in bytes", GAUGE),
    MetricDefinition("memory_max_bytes", "Maximum memory available to the server in bytes", GAUGE),
    MetricDefinition("memory_free_bytes", "Free memory available to the server in bytes", GAUGE),
    MetricDefinition("world_size_bytes", "World size in bytes", GAUGE),
    MetricDefinition("entities_total", "Total number of entities in the world", GAUGE),
    MetricDefinition("chunks_loaded", "Number of loaded chunks", GAUGE),
    MetricDefinition("container_cpu_usage_percent", "Container CPU usage percentage", GAUGE),
    MetricDefinition("container_memory_usage_bytes", "Container memory usage in bytes", GAUGE),
    MetricDefinition("container_memory_limit_bytes", "Container memory limit in bytes", GAUGE),
    MetricDefinition("container_network_rx_bytes", "Container network bytes received", COUNTER),
    MetricDefinition("container_network_tx_bytes", "Container network bytes transmitted", COUNTER),
    MetricDefinition("container_disk_io_read_bytes", "Container disk bytes read", COUNTER),
    MetricDefinition("container_disk_io_write_bytes", "Container disk bytes written", COUNTER),
    MetricDefinition("rcon_connected", "Whether RCON is connected", GAUGE),
    MetricDefinition("rcon_commands_total", "Total number of RCON commands executed", COUNTER),
    MetricDefinition("rcon_command_duration_seconds", "Duration of RCON commands", HISTOGRAM),
]
CATALOG_BY_NAME: Dict[str, MetricDefinition] = {d.name: d for d in CATALOG}


@dataclass(frozen=True)
class MetricValue:
    """
    One sample to expose. ``name`` is a catalog name without the prefix.

    Histograms carry cumulative ``buckets`` (le, count) ending with "+Inf",
    and ``value`` is the sum of observations.
    """
    name: str
    value: float
    labels: Dict[str, str] = field(default_factory=dict)
    timestamp: Optional[float] = None
    buckets: Optional[List[Tuple[str, float]]] = None


class _ValuesCollector:
    def __init__(self, values: Iterable[MetricValue], prefix: str):
        self.prefix = prefix
        self.by_name: Dict[str, List[MetricValue]] = defaultdict(list)
        for value in values:
            if value.name not in CATALOG_BY_NAME:
                raise ValueError(f"Unknown metric {value.name!r}")
            self.by_name[value.name].append(value)

    def collect(self):
        for definition in CATALOG:
            values = self.by_name.get(definition.name, [])
            label_names = sorted({k for v in values for k in v.labels})
            name = self.prefix + definition.name

            if definition.type == COUNTER:
                family = CounterMetricFamily(name, definition.help, labels=label_names)
            elif definition.type == HISTOGRAM:
                family = HistogramMetricFamily(name, definition.help, labels=label_names)
            else:
                family = GaugeMetricFamily(name, definition.help, labels=label_names)

            for v in values:
                label_values = [v.labels.get(k, "") for k in label_names]
                if definition.type == HISTOGRAM:
                    family.add_metric(label_values, v.buckets or [("+Inf", 0)], v.value, timestamp=v.timestamp)
                else:
                    family.add_metric(label_values, v.value, timestamp=v.timestamp)
            yield family


def encode(values: Iterable[MetricValue], prefix: str = PREFIX) -> str:
    registry = CollectorRegistry(auto_describe=False)
    registry.register(_ValuesCollector(values, prefix))
    return generate_latest(registry).decode("utf-8")


def instance_labels(instance: Instance) -> Dict[str, str]:
    return {
        "server_id": str(instance.id),
        "server_name": instance.name,
        "server_type": instance.server_type,
        "mc_version": instance.version,
        "instance": f"{instance.name}:{instance.game_port}",
    }


def _duration_buckets(client: ConsoleClient) -> Tuple[List[Tuple[str, float]], float]:
    buckets: List[Tuple[str, float]] = []
    total = 0.0
    for metric in client.command_duration.collect():
        for s in metric.samples:
            if s.name.endswith("_bucket"):
                buckets.append((s.labels["le"], s.value))
            elif s.name.endswith("_sum"):
                total = s.value
    return buckets, total


def sample_values(
    instance: Instance,
    sample: MetricSample | None,
    console: ConsoleClient | None = None,
    timestamp: float | None = None,
) -> List[MetricValue]:
    """Map an instance and its latest sample onto catalog values."""
    labels = instance_labels(instance)
    values: List[MetricValue] = []

    def add(name: str, value, extra: Dict[str, str] | None = None) -> None:
        if value is None:
            return
        values.append(MetricValue(name, value, {**labels, **(extra or {})}, timestamp))

    add("server_up", 1 if instance.status == InstanceStatus.RUNNING else 0)

    if sample is not None:
        add("players_online", sample.player_count)
        add("players_max", sample.max_players)

        if sample.tps is not None:
            add("tps", sample.tps)
            add("mspt", 1000 / sample.tps if sample.tps > 0 else 0)

        # Game-reported memory wins over the container's view
        if sample.game_memory_used_mb is not None and sample.game_memory_max_mb:
            used = sample.game_memory_used_mb * MIB
            limit = sample.game_memory_max_mb * MIB
        else:
            used = sample.memory_used_bytes
            limit = sample.memory_limit_bytes or None
        add("memory_used_bytes", used)
        add("memory_max_bytes", limit)
        if limit is not None:
            add("memory_free_bytes", max(0, limit - used))

        add("entities_total", sample.entities, WORLD_LABELS)
        add("chunks_loaded", sample.chunks_loaded, WORLD_LABELS)

        add("container_cpu_usage_percent", sample.cpu_percent)
        add("container_memory_usage_bytes", sample.memory_used_bytes)
        add("container_memory_limit_bytes", sample.memory_limit_bytes)
        add("container_network_rx_bytes", sample.network_rx_bytes)
        add("container_network_tx_bytes", sample.network_tx_bytes)
        add("container_disk_io_read_bytes", sample.block_read_bytes)
        add("container_disk_io_write_bytes", sample.block_write_bytes)

    add("rcon_connected", 1 if console is not None and console.is_authenticated else 0)

    if console is not None:
        add("rcon_commands_total", console.commands_executed)
        buckets, total = _duration_buckets(console)
        values.append(MetricValue("rcon_command_duration_seconds", total, dict(labels), timestamp, buckets))

    return values
