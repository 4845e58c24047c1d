"""Generate a sample host-metrics DuckDB database for lakedash.

writes data/lakedash.duckdb (long format, one row per host per minute) and
a lakedash.yaml next to it, so the CLI works out of the box:

    python data/generate_sample_data.py
    lakedash --help
    lakedash query local 'SELECT $__time(ts), host, cpu FROM host_metrics WHERE $__timeFilter(ts)' \\
        --config data/lakedash.yaml --from 2024-01-01T00:00:00 --to 2024-01-01T06:00:00 --wide
"""

import random
from datetime import date, datetime, timedelta
from pathlib import Path

import duckdb

HOSTS = {
    "web-1": "eu-west",
    "web-2": "eu-west",
    "db-1": "eu-west",
    "web-3": "us-east",
    "db-2": "us-east",
}


def generate_sample_data(db_path: Path, hours: int = 24) -> duckdb.DuckDBPyConnection:
    """Create host_metrics and deploys tables.

    Args:
        db_path: DuckDB file to (re)create.
        hours: How many hours of per-minute samples to generate.

    Returns:
        DuckDB connection with loaded data.
    """
    random.seed(42)  # Reproducible data

    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = duckdb.connect(str(db_path))

    conn.execute("""
        CREATE OR REPLACE TABLE host_metrics (
            ts TIMESTAMP,
            host VARCHAR,
            region VARCHAR,
            cpu DOUBLE,
            mem_used_mb BIGINT,
            epoch_s BIGINT
        )
    """)
    conn.executemany(
        "INSERT INTO host_metrics VALUES (?, ?, ?, ?, ?, ?)",
        generate_host_metrics(datetime(2024, 1, 1), hours),
    )

    # daily rollup with a DATE column - exercises date -> timestamp conversion
    conn.execute("""
        CREATE OR REPLACE TABLE deploys (
            deploy_date DATE,
            service VARCHAR,
            deploys INTEGER
        )
    """)
    conn.executemany("INSERT INTO deploys VALUES (?, ?, ?)", generate_deploys(14))

    return conn


def generate_host_metrics(start: datetime, hours: int) -> list[tuple]:
    """One sample per host per minute, with the odd gap."""
    rows = []
    for minute in range(hours * 60):
        ts = start + timedelta(minutes=minute)
        for host, region in HOSTS.items():
            # ~2% of samples go missing, like a real scraper
            if random.random() < 0.02:
                continue
            base = 60.0 if host.startswith("db") else 30.0
            cpu = round(min(100.0, max(0.0, random.gauss(base, 10))), 2)
            mem = random.randint(2_000, 16_000)
            epoch_s = int((ts - datetime(1970, 1, 1)).total_seconds())
            rows.append((ts, host, region, cpu, mem, epoch_s))
    return rows


def generate_deploys(days: int) -> list[tuple]:
    services = ["api", "web", "worker"]
    start = date(2024, 1, 1)
    return [
        (start + timedelta(days=day), service, random.randint(0, 6))
        for day in range(days)
        for service in services
    ]


def write_config(config_path: Path, db_path: Path) -> None:
    config_path.write_text(
        "datasources:\n"
        "  - name: local\n"
        "    engine: duckdb\n"
        f"    database: {db_path.resolve()}\n"
        "\n"
        "  # - name: warehouse\n"
        "  #   hostname: adb-1234567890.12.azuredatabricks.net\n"
        "  #   path: /sql/1.0/warehouses/abc123\n"
        "  #   authenticationMethod: dsn\n"
        "  #   token: ${DATABRICKS_TOKEN}\n"
    )


if __name__ == "__main__":
    import sys

    output_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else Path(__file__).parent
    db_path = output_dir / "lakedash.duckdb"
    conn = generate_sample_data(db_path)

    # Print summary
    result = conn.execute("SELECT COUNT(*), COUNT(DISTINCT host) FROM host_metrics").fetchone()
    print(f"Generated {result[0]} samples for {result[1]} hosts")

    result = conn.execute("SELECT SUM(deploys) FROM deploys").fetchone()
    print(f"Generated {result[0]} deploys")

    conn.close()

    write_config(output_dir / "lakedash.yaml", db_path)
    print(f"Config written to {output_dir / 'lakedash.yaml'}")
