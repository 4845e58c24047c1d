"""Basic usage example for lakedash.

run data/generate_sample_data.py first.
"""

from datetime import datetime, timezone
from pathlib import Path

from lakedash import DatasourceRegistry

CONFIG = Path(__file__).parent.parent / "data" / "lakedash.yaml"

TIME_RANGE = {
    "from": datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc).isoformat(),
    "to": datetime(2024, 1, 1, 1, 0, tzinfo=timezone.utc).isoformat(),
}


def main():
    """Demonstrate lakedash against the sample DuckDB database."""
    with DatasourceRegistry.from_file(CONFIG) as registry:
        datasource = registry.get("local")

        print("=" * 60)
        print("lakedash Host Metrics Demo")
        print("=" * 60)

        # 1. Health check
        print("\n1. Health:")
        print(f"   {datasource.check_health().message}")

        # 2. A dashboard batch - each query gets its own response
        print("\n2. Dashboard batch:")
        responses = datasource.query_data(
            [
                {
                    "refId": "cpu",
                    "rawSqlQuery": (
                        "SELECT $__time(ts), host, cpu FROM host_metrics "
                        "WHERE $__timeFilter(ts) AND region = 'eu-west'"
                    ),
                    "timeRange": TIME_RANGE,
                    "intervalMs": 60_000,
                    "querySettings": {"convertLongToWide": True, "fillMode": 0},
                },
                {
                    "refId": "busiest",
                    "rawSqlQuery": (
                        "SELECT host, avg(cpu) AS avg_cpu FROM host_metrics "
                        "WHERE $__unixEpochFilter(epoch_s) GROUP BY host ORDER BY avg_cpu DESC LIMIT 3"
                    ),
                    "timeRange": TIME_RANGE,
                },
                {
                    "refId": "broken",
                    "rawSqlQuery": "SELECT * FROM no_such_table",
                    "timeRange": TIME_RANGE,
                },
            ]
        )

        cpu = responses["cpu"].frames[0]
        print(f"   cpu: {cpu.row_count} rows, series: {', '.join(cpu.columns[1:])}")

        for row in responses["busiest"].frames[0].data:
            print(f"   {row['host']}: {row['avg_cpu']:.1f}% avg cpu")

        print(f"   broken: {responses['broken'].error.splitlines()[0]}")

        # 3. Multi-statement: everything before the last ';' runs first
        print("\n3. Multi-statement:")
        responses = datasource.query_data(
            [
                {
                    "refId": "A",
                    "rawSqlQuery": "SET threads = 2; SELECT count(*) AS samples FROM host_metrics;",
                    "timeRange": TIME_RANGE,
                }
            ]
        )
        print(f"   samples: {responses['A'].frames[0].data[0]['samples']}")


if __name__ == "__main__":
    main()
