from mcfleet.services.docker_runtime import parse_runtime_counters


def test_parse_runtime_counters_sums_networks_and_block_io():
    raw = {
        "cpu_stats": {
            "cpu_usage": {"total_usage": 1_200_000_000, "percpu_usage": [1, 2, 3, 4]},
            "system_cpu_usage": 11_000_000_000,
        },
        "memory_stats": {"usage": 512 * 1024 ** 2, "limit": 2 * 1024 ** 3},
        "networks": {
            "eth0": {"rx_bytes": 1000, "tx_bytes": 200},
            "eth1": {"rx_bytes": 24, "tx_bytes": 56},
        },
        "blkio_stats": {
            "io_service_bytes_recursive": [
                {"major": 8, "minor": 0, "op": "Read", "value": 4096},
                {"major": 8, "minor": 0, "op": "Write", "value": 8192},
                {"major": 8, "minor": 16, "op": "read", "value": 4},
                {"major": 8, "minor": 0, "op": "Total", "value": 12288},
            ]
        },
    }

    counters = parse_runtime_counters(raw)

    assert counters.cpu_total_usage == 1_200_000_000
    assert counters.system_cpu_usage == 11_000_000_000
    assert counters.online_cpus == 4
    assert counters.memory_usage_bytes == 512 * 1024 ** 2
    assert counters.memory_limit_bytes == 2 * 1024 ** 3
    assert (counters.network_rx_bytes, counters.network_tx_bytes) == (1024, 256)
    assert (counters.block_read_bytes, counters.block_write_bytes) == (4100, 8192)


def test_parse_runtime_counters_handles_empty_document():
    counters = parse_runtime_counters({"blkio_stats": {"io_service_bytes_recursive": None}})

    assert counters.cpu_total_usage == 0
    assert counters.online_cpus == 1
    assert counters.network_rx_bytes == 0
