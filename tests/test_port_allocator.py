import pytest
from uuid import uuid4

from mcfleet.domain.errors import ProvisioningError
from mcfleet.domain.instance import Instance
from mcfleet.services.port_allocator import allocate_port, allocate_ports, ports_in_use


def test_sequential_allocations_are_distinct_and_ascending():
    in_use = {25566, 25568}
    chosen = []
    for _ in range(5):
        port = allocate_port(25565, in_use)
        in_use.add(port)
        chosen.append(port)

    assert chosen == [25565, 25567, 25569, 25570, 25571]
    assert len(set(chosen)) == len(chosen)
    assert chosen == sorted(chosen)


def test_allocate_port_does_not_mutate_the_set():
    in_use = {25565}
    assert allocate_port(25565, in_use) == 25566
    assert in_use == {25565}


def test_allocate_ports_never_repeats_within_one_instance():
    # Overlapping bases must still yield three different ports
    assert allocate_ports([100, 100, 101], set()) == [100, 101, 102]


def test_ports_in_use_collects_all_three_ports():
    instances = [
        Instance(id=uuid4(), name="a", server_type="VANILLA", version="1.20",
                 game_port=25565, console_port=25575, query_port=25585),
        Instance(id=uuid4(), name="b", server_type="PAPER", version="1.20",
                 game_port=25566, console_port=None, query_port=None),
    ]
    assert ports_in_use(instances) == {25565, 25575, 25585, 25566}


def test_allocate_port_stops_at_the_top_of_the_range():
    assert allocate_port(65535, {65534}) == 65535
    with pytest.raises(ProvisioningError):
        allocate_port(65534, {65534, 65535})
