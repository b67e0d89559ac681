import pytest
from uuid import uuid4
from unittest.mock import AsyncMock, MagicMock

from mcfleet.domain.errors import TransientRuntimeError
from mcfleet.domain.instance import Instance, InstanceStatus
from mcfleet.domain.metrics import StatsSource
from mcfleet.services.console import ConsoleResult
from mcfleet.services.game_stats import (
    ConsoleStatsSource,
    LogHeuristicSource,
    parse_console_stats,
    parse_log_stats,
)

SERVER_LOG = """\
[12:00:01] [Server thread/INFO]: Preparing level "survival_world"
[12:00:09] [Server thread/INFO]: Done (8.512s)! For help, type "help"
[12:01:00] [Server thread/INFO]: Steve joined the game
[12:02:00] [Server thread/INFO]: Alex joined the game
[12:03:00] [Server thread/INFO]: Herobrine joined the game
[12:04:00] [Server thread/INFO]: Alex left the game
"""


def running_instance():
    return Instance(
        id=uuid4(), name="survival", server_type="PAPER", version="1.20.4",
        status=InstanceStatus.RUNNING, container_id="docker-1",
    )


def test_parse_console_stats():
    stats = parse_console_stats({
        "list": "There are 3 of a max of 20 players online: Steve, Alex, Herobrine",
        "tps": "TPS from last 1m, 5m, 15m: 19.8, 19.95, 20.0",
        "memory": "Memory use: 1024 MB / 4096 MB",
        "forge entity list": "Total: 312",
        "forge tps": "Overall: Mean tick time: 12.3 ms. Mean TPS: 20.000",
    })

    assert stats.source == StatsSource.CONSOLE
    assert (stats.player_count, stats.max_players) == (3, 20)
    assert stats.tps == 19.8
    assert (stats.memory_used_mb, stats.memory_max_mb) == (1024, 4096)
    assert stats.entities == 312
    assert "Mean TPS" in stats.extensions["world_data"]


def test_parse_console_stats_tolerates_missing_commands():
    stats = parse_console_stats({"list": "Unknown command"})
    assert stats.player_count == 0
    assert stats.tps is None
    assert stats.extensions == {}


def test_parse_log_stats_counts_joins_and_leaves():
    stats = parse_log_stats(SERVER_LOG)

    assert stats.source == StatsSource.LOG_FALLBACK
    assert stats.player_count == 2
    assert stats.extensions["world_name"] == "survival_world"
    assert stats.extensions["startup_time"] == 8.512


def test_parse_log_stats_explicit_listing_wins():
    stats = parse_log_stats(SERVER_LOG + "[12:05:00] There are 7/50 players online:\n")
    assert (stats.player_count, stats.max_players) == (7, 50)


def test_parse_log_stats_never_negative():
    stats = parse_log_stats("Steve left the game\nAlex left the game\n")
    assert stats.player_count == 0


def test_parse_log_stats_reads_paper_tps_line():
    stats = parse_log_stats("§6TPS from last 1m, 5m, 15m: §a*20.0, §a19.97, §a19.99\n")
    assert stats.tps == 20.0


@pytest.mark.asyncio
async def test_log_source_falls_back_when_logs_unavailable():
    runtime = AsyncMock()
    runtime.logs = AsyncMock(side_effect=RuntimeError("daemon unreachable"))

    stats = await LogHeuristicSource(runtime).fetch(running_instance())

    assert stats.source == StatsSource.LOG_FALLBACK
    assert stats.player_count == 0
    assert "daemon unreachable" in stats.extensions["error"]


@pytest.mark.asyncio
async def test_console_source_requires_session():
    sessions = MagicMock()
    sessions.get.return_value = None

    with pytest.raises(TransientRuntimeError):
        await ConsoleStatsSource(sessions).fetch(running_instance())


@pytest.mark.asyncio
async def test_console_source_skips_unknown_commands():
    client = MagicMock(is_authenticated=True)

    async def execute(command):
        if command == "list":
            return ConsoleResult(True, "There are 1 of a max of 10 players online: Steve")
        return ConsoleResult.failure("Unknown command")

    client.execute = AsyncMock(side_effect=execute)
    sessions = MagicMock()
    sessions.get.return_value = client

    stats = await ConsoleStatsSource(sessions).fetch(running_instance())

    assert stats.source == StatsSource.CONSOLE
    assert stats.player_count == 1
    assert client.execute.await_count == len(ConsoleStatsSource.COMMANDS)


@pytest.mark.asyncio
async def test_console_source_raises_when_session_drops():
    client = MagicMock(is_authenticated=True)

    async def execute(command):
        client.is_authenticated = False
        return ConsoleResult.failure("Connection lost")

    client.execute = AsyncMock(side_effect=execute)
    sessions = MagicMock()
    sessions.get.return_value = client

    with pytest.raises(TransientRuntimeError):
        await ConsoleStatsSource(sessions).fetch(running_instance())
