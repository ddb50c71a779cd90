"""Entry point: python -m basketmigrator"""

import sys

from basketmigrator.config import EnvSettings, load_config
from basketmigrator.errors import BasketMigratorError
from basketmigrator.logging_config import configure_logging
from basketmigrator.runbook import print_report, run_rehearsal
from basketmigrator.scenario import build_simulation, load_scenario
from basketmigrator.state.redis_backend import MigrationStore


def main():
    settings = EnvSettings()
    config = load_config(settings.config_path)
    try:
        scenario = load_scenario(settings.scenario_path)
    except FileNotFoundError as e:
        print(f"Failed to load scenario: {e}")
        print("Set BASKETMIGRATOR_SCENARIO_PATH or create config/scenario.yaml")
        sys.exit(1)

    configure_logging(config.logging)

    store = None
    if settings.persist:
        store = MigrationStore(
            namespace=settings.redis_namespace,
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password,
        )

    sim = build_simulation(scenario, config)
    try:
        report = run_rehearsal(sim, store=store)
    except BasketMigratorError as e:
        print(f"Rehearsal aborted: {type(e).__name__}: {e}")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()

    print_report(sim, report)


if __name__ == "__main__":
    main()
