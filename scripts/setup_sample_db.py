"""Utility that provisions a sample database and registers it as a tomedb connection."""

from __future__ import annotations

import argparse
import sqlite3
import subprocess
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tomedb.config import CONFIG_FILE, load_config
from tomedb.models import ConnectionParams, Engine
from tomedb.store import ConnectionStore
from tomedb.vault import CredentialVault

DEFAULT_CONTAINER = "tomedb-sample-{engine}"
DEFAULT_PASSWORD = "tomedb"
DEFAULT_DB = "tomedb_demo"
DEFAULT_USER = "tomedb"
DEFAULT_SQLITE_PATH = ROOT / "sample.sqlite3"

DOCKER = {
    Engine.POSTGRES: {
        "image": "postgres:16-alpine",
        "port": 5543,
        "container_port": 5432,
    },
    Engine.MYSQL: {
        "image": "mysql:8.4",
        "port": 3307,
        "container_port": 3306,
    },
}

SEED_SQL = {
    Engine.POSTGRES: """
    CREATE TABLE IF NOT EXISTS accounts (
        id SERIAL PRIMARY KEY,
        email TEXT NOT NULL,
        created_at TIMESTAMPTZ DEFAULT now()
    );
    CREATE TABLE IF NOT EXISTS orders (
        id SERIAL PRIMARY KEY,
        account_id INTEGER REFERENCES accounts(id),
        total NUMERIC(10,2) NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
    );
    INSERT INTO accounts (email) VALUES
        ('anna@example.com'),
        ('ben@example.com'),
        ('cara@example.com');
    INSERT INTO orders (account_id, total, status)
    SELECT id, (random()*100)::numeric(10,2), 'complete'
    FROM accounts;
    """,
    Engine.MYSQL: """
    CREATE TABLE IF NOT EXISTS accounts (
        id INT AUTO_INCREMENT PRIMARY KEY,
        email VARCHAR(255) NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    CREATE TABLE IF NOT EXISTS orders (
        id INT AUTO_INCREMENT PRIMARY KEY,
        account_id INT,
        total DECIMAL(10,2) NOT NULL,
        status VARCHAR(32) NOT NULL DEFAULT 'pending',
        FOREIGN KEY (account_id) REFERENCES accounts(id)
    );
    INSERT INTO accounts (email) VALUES
        ('anna@example.com'),
        ('ben@example.com'),
        ('cara@example.com');
    INSERT INTO orders (account_id, total, status)
    SELECT id, ROUND(RAND()*100, 2), 'complete'
    FROM accounts;
    """,
    Engine.SQLITE: """
    CREATE TABLE IF NOT EXISTS accounts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT NOT NULL,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    );
    CREATE TABLE IF NOT EXISTS orders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        account_id INTEGER REFERENCES accounts(id),
        total REAL NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
    );
    INSERT INTO accounts (email) VALUES
        ('anna@example.com'),
        ('ben@example.com'),
        ('cara@example.com');
    INSERT INTO orders (account_id, total, status)
    SELECT id, ROUND(ABS(RANDOM() % 10000) / 100.0, 2), 'complete'
    FROM accounts;
    """,
}


def run(cmd: list[str], *, check: bool = True, **kwargs) -> subprocess.CompletedProcess[str]:
    print("$", " ".join(cmd))
    return subprocess.run(cmd, check=check, text=True, **kwargs)


def container_exists(name: str) -> bool:
    result = subprocess.run(
        ["docker", "ps", "-a", "--filter", f"name={name}", "--format", "{{.ID}}"],
        text=True,
        capture_output=True,
    )
    return bool(result.stdout.strip())


def start_container(engine: Engine, name: str, port: int, password: str, database: str, user: str) -> None:
    if container_exists(name):
        print(f"Container '{name}' already exists. Reusing it.")
        run(["docker", "start", name], check=False)
    else:
        settings = DOCKER[engine]
        if engine is Engine.POSTGRES:
            env = [f"POSTGRES_PASSWORD={password}", f"POSTGRES_DB={database}", f"POSTGRES_USER={user}"]
        else:
            env = [
                f"MYSQL_ROOT_PASSWORD={password}",
                f"MYSQL_DATABASE={database}",
                f"MYSQL_USER={user}",
                f"MYSQL_PASSWORD={password}",
            ]
        cmd = ["docker", "run", "-d", "--name", name]
        for item in env:
            cmd.extend(["-e", item])
        cmd.extend(["-p", f"{port}:{settings['container_port']}", str(settings["image"])])
        run(cmd)
    wait_for_start(engine, name, user, password)


def wait_for_start(engine: Engine, name: str, user: str, password: str, retries: int = 30, delay: float = 1.0) -> None:
    if engine is Engine.POSTGRES:
        probe = ["docker", "exec", name, "pg_isready", "-U", user]
    else:
        probe = ["docker", "exec", name, "mysqladmin", "ping", "-u", user, f"-p{password}", "--silent"]
    for _ in range(retries):
        result = subprocess.run(probe, text=True, capture_output=True)
        if result.returncode == 0:
            return
        time.sleep(delay)
    print("Warning: database did not report ready state; continuing anyway.")


def seed_container(engine: Engine, name: str, database: str, user: str, password: str) -> None:
    sql = SEED_SQL[engine].strip()
    if engine is Engine.POSTGRES:
        cmd = ["docker", "exec", "-i", name, "psql", "-U", user, "-d", database, "-v", "ON_ERROR_STOP=1"]
    else:
        cmd = ["docker", "exec", "-i", name, "mysql", "-u", user, f"-p{password}", database]
    run(cmd, input=sql)


def seed_sqlite(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    connection = sqlite3.connect(path)
    try:
        connection.executescript(SEED_SQL[Engine.SQLITE])
        connection.commit()
    finally:
        connection.close()
    print(f"Seeded SQLite database at {path}.")


def register_connection(name: str, engine: Engine, params: ConnectionParams) -> None:
    config = load_config()
    store = ConnectionStore(CredentialVault.from_key_file(config.core.key_file), config)
    if any(descriptor.name == name for descriptor in store.list_connections()):
        print(f"Connection '{name}' already present in config; leaving as-is.")
        return
    descriptor = store.create_connection(name, engine, params, description="Sample data from setup_sample_db.py")
    print(f"Added connection '{name}' (id {descriptor.id}) to {CONFIG_FILE}.")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--engine",
        choices=[engine.value.lower() for engine in Engine],
        default="postgres",
        help="Database engine to provision",
    )
    parser.add_argument("--container", default=None, help="Docker container name")
    parser.add_argument("--port", type=int, default=None, help="Host port to expose the server on")
    parser.add_argument("--password", default=DEFAULT_PASSWORD, help="Database password")
    parser.add_argument("--database", default=DEFAULT_DB, help="Database name to create")
    parser.add_argument("--user", default=DEFAULT_USER, help="Database user")
    parser.add_argument("--sqlite-path", type=Path, default=DEFAULT_SQLITE_PATH, help="SQLite file to create")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    engine = Engine.parse(args.engine)
    name = f"{engine.value} Sample"

    if engine is Engine.SQLITE:
        path = args.sqlite_path.resolve()
        seed_sqlite(path)
        register_connection(name, engine, ConnectionParams(database=str(path)))
        print(f"Sample database is ready. Connect using the '{name}' connection.")
        return 0

    container = args.container or DEFAULT_CONTAINER.format(engine=engine.value.lower())
    port = args.port or int(DOCKER[engine]["port"])
    try:
        start_container(engine, container, port, args.password, args.database, args.user)
        seed_container(engine, container, args.database, args.user, args.password)
    except FileNotFoundError:
        print("Docker is not installed or not on PATH.")
        return 1
    register_connection(
        name,
        engine,
        ConnectionParams(
            host="localhost",
            port=port,
            database=args.database,
            user=args.user,
            password=args.password,
        ),
    )
    print(f"Sample database is ready. Connect using the '{name}' connection on localhost:{port}.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
