# -*- coding: utf-8 -*-

import sys
import signal
import argparse
import threading
import yaml
import logging
import structlog
from db2Pool.config_manager import validate_config
from db2Pool.connection_pool import ConnectionPool
from db2Pool.db2 import Db2Driver
from db2Pool.errors import PoolClosed, PoolError
from db2Pool.logging_manager import setup_logging
from db2Pool.prometheus import CustomExporter
from db2Pool.utils import decrypt_password, sanitize_config

logger = structlog.get_logger(__name__)

CREATE_TABLE_SQL = (
    "CREATE TABLE users ("
    "id INTEGER NOT NULL GENERATED ALWAYS AS IDENTITY PRIMARY KEY, "
    "name VARCHAR(50), age INTEGER)"
)
TABLE_EXISTS_SQL = (
    "SELECT 1 FROM syscat.tables WHERE tabschema = CURRENT SCHEMA AND tabname = 'USERS'"
)
INSERT_USER_SQL = "INSERT INTO users (name, age) VALUES (?, ?)"
SELECT_USERS_SQL = "SELECT id, name, age FROM users ORDER BY id"


def load_config_yaml(file_str):
    """
    Loads and parses a YAML configuration file.
    """
    logging.info(f"Loading configuration file: {file_str}")
    try:
        with open(file_str, "r") as f:
            file_dict = yaml.safe_load(f)
            if not isinstance(file_dict, dict):
                logging.fatal(f"Could not parse '{file_str}' as dict")
                sys.exit(1)
            return file_dict
    except yaml.YAMLError as e:
        logging.fatal(f"File {file_str} is not a valid YAML: {e}")
        sys.exit(1)
    except FileNotFoundError:
        logging.fatal(f"File {file_str} not found")
        sys.exit(1)
    except OSError as e:
        logging.fatal(f"Could not open file {file_str}: {e}")
        sys.exit(1)


def resolve_credentials(config):
    """
    Return the connection credentials with the password decrypted if needed.
    """
    credentials = config.connection.credentials
    if not credentials.encrypted:
        return credentials
    password = decrypt_password(credentials.db_passwd, config.global_config.encryption_key)
    return credentials.model_copy(update={"db_passwd": password, "encrypted": False})


def start_prometheus_exporter(port):
    """Start the Prometheus exporter serving pool metrics."""
    logging.info(f"Starting Prometheus exporter on port {port}.")
    exporter = CustomExporter(port=port)
    exporter.start()
    return exporter


def build_pool(config, driver, exporter=None):
    """Create the connection pool described by ``config.pool``."""
    pool_config = config.pool
    logger.info(
        "building pool",
        pool=pool_config.name,
        endpoint=str(config.connection.endpoint),
        pool_size=pool_config.pool_size,
    )
    return ConnectionPool(
        driver,
        config.connection.endpoint,
        resolve_credentials(config),
        pool_config.pool_size,
        name=pool_config.name,
        exporter=exporter,
        validate_on_acquire=pool_config.validate_on_acquire,
        shutdown_grace_period=pool_config.shutdown_grace_period,
    )


def ensure_schema(pool, timeout=None):
    """
    Create the ``users`` table if it does not exist yet.
    """
    with pool.connection(timeout) as conn:
        if not conn.execute(TABLE_EXISTS_SQL):
            conn.execute(CREATE_TABLE_SQL)
            conn.commit()
            logger.info("created table", table="users")


def insert_users(pool, users, timeout=None):
    """Insert ``{name: age}`` pairs through one pooled connection."""
    with pool.connection(timeout) as conn:
        for name, age in users.items():
            conn.execute(INSERT_USER_SQL, (name, age))
        conn.commit()


def select_users(pool, timeout=None):
    with pool.connection(timeout) as conn:
        return conn.execute(SELECT_USERS_SQL)


def run_worker(pool, worker_id, users, timeout, errors):
    """
    One demonstration client: insert its users, then read the table back.
    """
    log = logger.bind(worker=worker_id)
    try:
        insert_users(pool, {f"{name}-{worker_id}": age for name, age in users.items()}, timeout)
        for row_id, name, age in select_users(pool, timeout):
            log.info("user", id=row_id, name=name, age=age)
    except PoolClosed:
        # Shutdown was requested; not a workload failure.
        log.info("pool closed, worker stopping")
    except Exception as e:
        log.error("worker failed", error=str(e))
        errors.append(e)


def run_workload(pool, workload, timeout=None):
    """
    Run ``workload.workers`` threads sharing ``pool``; return the errors they hit.
    """
    ensure_schema(pool, timeout)
    errors = []
    threads = [
        threading.Thread(
            target=run_worker,
            args=(pool, i, workload.users, timeout, errors),
            name=f"worker-{i}",
        )
        for i in range(workload.workers)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    logger.info("workload finished", workers=len(threads), errors=len(errors), stats=pool.stats().model_dump())
    return errors


def install_signal_handlers(pool):
    """
    Shut the pool down gracefully on SIGINT/SIGTERM.
    """
    def handler(sig, frame):
        logging.info("Received termination signal, shutting down gracefully.")
        # Shutdown may wait for workers, so keep it off the signal frame.
        threading.Thread(target=pool.shutdown, name="pool-shutdown", daemon=True).start()

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def main(argv=None):
    parser = argparse.ArgumentParser(description='Db2 connection pool demonstration')
    parser.add_argument('config_file', type=str, help='Path to the config YAML file')
    args = parser.parse_args(argv)

    raw_config = load_config_yaml(args.config_file)
    try:
        config = validate_config(raw_config)
    except ValueError as e:
        logging.fatal(str(e))
        sys.exit(2)

    setup_logging(config.global_config.log_path, logging.getLevelName(config.global_config.log_level))
    logging.info(f"Loaded config: {sanitize_config(raw_config)}")

    exporter = None
    if config.global_config.port:
        exporter = start_prometheus_exporter(config.global_config.port)

    try:
        pool = build_pool(config, Db2Driver(exporter=exporter), exporter)
    except (PoolError, ValueError) as e:
        logging.critical(f"Could not create connection pool: {e}")
        sys.exit(1)

    install_signal_handlers(pool)
    with pool:
        try:
            errors = run_workload(pool, config.workload, config.pool.acquire_timeout)
        except PoolError as e:
            logging.error(f"Workload aborted: {e}")
            return 1
    return 1 if errors else 0


if __name__ == '__main__':
    sys.exit(main())
