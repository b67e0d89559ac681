"""
Game-level statistics: player counts, tick rate, game memory and entities.

Two sources implement ``GameStatsSource``. ``ConsoleStatsSource`` asks the
server over an authenticated console session; ``LogHeuristicSource`` reads the
container log tail when no session is available.
"""
import logging
import re
from typing import List

from mcfleet.domain.errors import TransientRuntimeError
from mcfleet.domain.instance import Instance
from mcfleet.domain.metrics import GameStats, StatsSource
from mcfleet.domain.ports import DockerRuntime, GameStatsSource
from mcfleet.services.console import ConsoleSessions

logger = logging.getLogger(__name__)

_COLOUR_CODE = re.compile(r"§.")

PLAYERS_PATTERN = re.compile(r"There are (\d+) of a max of (\d+) players online")
TPS_PATTERN = re.compile(r"TPS from last 1m, 5m, 15m: \*?([0-9]+(?:\.[0-9]+)?)")
MEMORY_PATTERN = re.compile(r"Memory use: (\d+) MB / (\d+) MB")
ENTITIES_PATTERN = re.compile(r"Total: (\d+)")

JOIN_PATTERN = re.compile(r"(\w+) joined the game")
LEAVE_PATTERN = re.compile(r"(\w+) left the game")
PLAYER_LIST_PATTERN = re.compile(r"There are (\d+)/(\d+) players online")
LOG_TPS_PATTERN = re.compile(r"TPS[^:\n]*:\s*\*?([0-9]+(?:\.[0-9]+)?)", re.IGNORECASE)
LOG_MEMORY_PATTERN = re.compile(r"Memory.*?(\d+).*?MB.*?(\d+).*?MB", re.IGNORECASE)
WORLD_PATTERN = re.compile(r'Preparing level "([^"]+)"')
STARTUP_PATTERN = re.compile(r"Done \(([0-9.]+)s\)!")

RECENT_EVENTS = 10


def strip_colour_codes(text: str) -> str:
    return _COLOUR_CODE.sub("", text)


def parse_console_stats(responses: dict) -> GameStats:
    """Build GameStats from console replies keyed by command."""
    stats = GameStats(source=StatsSource.CONSOLE)

    players = PLAYERS_PATTERN.search(responses.get("list", ""))
    if players:
        stats.player_count = int(players.group(1))
        stats.max_players = int(players.group(2))

    tps = TPS_PATTERN.search(responses.get("tps", ""))
    if tps:
        stats.tps = float(tps.group(1))

    memory = MEMORY_PATTERN.search(responses.get("memory", ""))
    if memory:
        stats.memory_used_mb = int(memory.group(1))
        stats.memory_max_mb = int(memory.group(2))

    entities = ENTITIES_PATTERN.search(responses.get("forge entity list", ""))
    if entities:
        stats.entities = int(entities.group(1))

    world_data = responses.get("forge tps")
    if world_data:
        stats.extensions["world_data"] = world_data

    return stats


def parse_log_stats(logs: str) -> GameStats:
    stats = GameStats(source=StatsSource.LOG_FALLBACK)
    logs = strip_colour_codes(logs)

    joins = JOIN_PATTERN.findall(logs)
    leaves = LEAVE_PATTERN.findall(logs)
    stats.player_count = max(0, len(joins[-RECENT_EVENTS:]) - len(leaves[-RECENT_EVENTS:]))

    # An explicit listing beats the join/leave estimate
    listing = PLAYER_LIST_PATTERN.search(logs)
    if listing:
        stats.player_count = int(listing.group(1))
        stats.max_players = int(listing.group(2))

    tps = LOG_TPS_PATTERN.search(logs)
    if tps:
        stats.tps = float(tps.group(1))

    memory = LOG_MEMORY_PATTERN.search(logs)
    if memory:
        stats.memory_used_mb = int(memory.group(1))
        stats.memory_max_mb = int(memory.group(2))

    world = WORLD_PATTERN.search(logs)
    if world:
        stats.extensions["world_name"] = world.group(1)

    startup = STARTUP_PATTERN.search(logs)
    if startup:
        stats.extensions["startup_time"] = float(startup.group(1))

    return stats


class ConsoleStatsSource(GameStatsSource):
    """
    Queries an authenticated console session.

    Raises TransientRuntimeError when there is no live session, or when the
    session drops part way through, so the caller can fall back to logs.
    Individual commands the server does not understand are simply skipped.
    """

    COMMANDS: List[str] = ["list", "tps", "memory", "forge tps", "forge entity list"]

    def __init__(self, sessions: ConsoleSessions):
        self.sessions = sessions

    async def fetch(self, instance: Instance) -> GameStats:
        client = self.sessions.get(instance.id)
        if client is None or not client.is_authenticated:
            raise TransientRuntimeError(f"No console session for instance {instance.id}")

        responses = {}
        for command in self.COMMANDS:
            result = await client.execute(command)
            if result.success:
                responses[command] = strip_colour_codes(result.body)
            elif not client.is_authenticated:
                raise TransientRuntimeError(f"Console session lost for instance {instance.id}: {result.error}")
            else:
                logger.debug("Console command %r failed for %s: %s", command, instance.id, result.error)

        return parse_console_stats(responses)


class LogHeuristicSource(GameStatsSource):
    def __init__(self, docker_runtime: DockerRuntime, tail: int = 100):
        self.runtime = docker_runtime
        self.tail = tail

    async def fetch(self, instance: Instance) -> GameStats:
        if not instance.container_id:
            return GameStats(source=StatsSource.LOG_FALLBACK, extensions={"error": "no container"})
        try:
            logs = await self.runtime.logs(instance.container_id, tail=self.tail)
        except Exception as exc:
            logger.warning("Could not read logs for instance %s: %s", instance.id, exc)
            return GameStats(source=StatsSource.LOG_FALLBACK, extensions={"error": str(exc)})
        return parse_log_stats(logs)
