from typing import Iterable, List, Set

from mcfleet.domain.errors import ProvisioningError
from mcfleet.domain.instance import Instance

MAX_PORT = 65535


def ports_in_use(instances: Iterable[Instance]) -> Set[int]:
    used: Set[int] = set()
    for instance in instances:
        used.update(instance.ports)
    return used


def allocate_port(base_port: int, in_use: Set[int]) -> int:
    """First port >= base_port that is not in use. Pure; the caller owns the set."""
    port = base_port
    while port in in_use:
        port += 1
    if port > MAX_PORT:
        raise ProvisioningError(f"No free port at or above {base_port}")
    return port


def allocate_ports(base_ports: Iterable[int], in_use: Set[int]) -> List[int]:
    """Allocate one port per base, never handing out the same port twice."""
    working = set(in_use)
    chosen = []
    for base in base_ports:
        port = allocate_port(base, working)
        working.add(port)
        chosen.append(port)
    return chosen
