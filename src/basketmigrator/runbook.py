"""Migration rehearsal - runs the full operator sequence against a simulated basket.

1. propose the upgrade (timelock starts)
2. add the incoming asset
3. direct swaps toward the equal-weight target, draining the phased-out asset
4. flash-loan rebalance of the remaining underweight asset
5. redeem the phased-out residue, pause and remove it
6. wait out the delay and accept, validating storage
7. clear isolation and unpause
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from basketmigrator.config import AppConfig
from basketmigrator.migration.implementation import UpgradePayload
from basketmigrator.migration.state_machine import MigrationStateMachine
from basketmigrator.migration.timelock import DelayedUpgradeAdmin
from basketmigrator.models import DirectSwapResult, MigrationResult, RebalanceResult
from basketmigrator.rebalancing.planner import DirectSwapPlanner
from basketmigrator.rebalancing.weights import (
    compute_equal_weight_target,
    overweight_splits,
    read_scaled_balances,
    weights_bps,
)
from basketmigrator.scenario import Simulation, to_asset
from basketmigrator.state.redis_backend import MigrationStore
from basketmigrator.units import percent_to_full_scale
from basketmigrator.validation.snapshot import ExpectedStorage, capture_snapshot
from basketmigrator.validation.validator import StorageValidator

logger = structlog.get_logger(__name__)

TARGET_IMPLEMENTATION = "basket-v3"


@dataclass
class RehearsalReport:
    swaps: list[DirectSwapResult] = field(default_factory=list)
    rebalance: Optional[RebalanceResult] = None
    transitions: list[MigrationResult] = field(default_factory=list)
    weights_before: dict[str, int] = field(default_factory=dict)
    weights_after: dict[str, int] = field(default_factory=dict)


def _weights(sim: Simulation) -> dict[str, int]:
    balances = read_scaled_balances(sim.basket)
    return dict(zip(balances.keys(), weights_bps(list(balances.values()))))


def run_rehearsal(sim: Simulation, store: Optional[MigrationStore] = None) -> RehearsalReport:
    """Run the whole migration against `sim` and return what happened."""
    config: AppConfig = sim.config
    scenario = sim.scenario
    governor = scenario.governor
    executor = config.rebalance.executor_account
    report = RehearsalReport(weights_before=_weights(sim))

    admin = DelayedUpgradeAdmin(
        sim.basket,
        sim.clock,
        governor=governor,
        delay=config.migration.upgrade_delay_seconds,
        store=store,
    )
    machine = MigrationStateMachine(
        admin,
        sim.basket,
        StorageValidator(config.validation.tolerance_pct),
        store=store,
    )
    invariant = config.invariant.to_invariant_config()
    payload = UpgradePayload(
        forge_validator=scenario.forge_validator,
        config=invariant,
        max_assets=config.migration.max_assets_after_upgrade,
    ).encode()

    # 1. Propose. Storage must be untouched by the proposal itself.
    unchanged = ExpectedStorage.from_snapshot(capture_snapshot(sim.basket))
    report.transitions.append(machine.propose(governor, TARGET_IMPLEMENTATION, payload, expected=unchanged))

    # 2. Incoming asset
    if scenario.new_asset is not None:
        max_weight = (
            percent_to_full_scale(scenario.new_asset.max_weight_pct)
            if scenario.new_asset.max_weight_pct is not None
            else None
        )
        sim.basket.add_asset(governor, to_asset(scenario.new_asset), max_weight)

    # 3. Direct swaps out of the phased-out asset, paid from executor inventory
    balances = read_scaled_balances(sim.basket)
    remaining = [a for a in balances if a != scenario.phase_out]
    targets = compute_equal_weight_target(list(balances.values()), count=len(remaining))
    if scenario.phase_out is not None:
        planner = DirectSwapPlanner(sim.basket, balances, targets.target)
        for asset_id in remaining:
            if asset_id not in scenario.executor_holdings:
                continue
            result = planner.execute(asset_id, scenario.phase_out, executor, phase_out=True)
            if result.executed:
                report.swaps.append(result)
        logger.info(
            "runbook.direct_swaps_complete",
            swaps=len(report.swaps),
            drift=planner.drift(read_scaled_balances(sim.basket)),
        )

    # 4. Flash-loan rebalance into the two most overweight assets
    if scenario.rebalance is not None:
        rebalancer = sim.rebalancer()
        report.rebalance = rebalancer.rebalance(
            scenario.rebalance.loan_asset,
            targets.target,
            _splits(sim, rebalancer.destinations, targets.target),
            pct=config.rebalance.default_loan_pct,
        )

    # 5. Redeem the residue left behind by swap fees, then remove the asset
    if scenario.phase_out is not None:
        residue = sim.basket.get_asset_state(scenario.phase_out).balance
        if residue > 0:
            held = sim.basket.get_token_state().balances.get(executor, 0)
            sim.basket.redeem_exact([scenario.phase_out], [residue], held, executor, account=executor)
    report.transitions.append(machine.pause_for_upgrade(governor))
    if scenario.phase_out is not None:
        sim.basket.remove_asset(governor, scenario.phase_out)

    # 6. Timelock, then accept
    sim.clock.advance(config.migration.upgrade_delay_seconds)
    expected = ExpectedStorage.from_snapshot(capture_snapshot(sim.basket)).model_copy(
        update={
            "implementation_id": TARGET_IMPLEMENTATION,
            "forge_validator": scenario.forge_validator,
            "max_assets": config.migration.max_assets_after_upgrade,
            "config": invariant,
            "undergoing_recol": True,
        }
    )
    report.transitions.append(machine.accept_migration(governor, expected=expected))

    # 7. Re-enable
    for asset_id in sim.basket.get_basket().asset_ids:
        report.transitions.append(machine.clear_isolation(governor, asset_id))
    enabled = expected.model_copy(update={"undergoing_recol": False, "paused": False})
    report.transitions.append(machine.unpause(governor, expected=enabled))

    report.weights_after = _weights(sim)
    logger.info("runbook.complete", phase=machine.phase.value, transitions=len(report.transitions))
    return report


def _splits(sim: Simulation, destinations: list[str], target: int) -> list[int]:
    balances = read_scaled_balances(sim.basket)
    excess = [max(0, balances[d] - target) for d in destinations]
    return overweight_splits(*excess)


def print_report(sim: Simulation, report: RehearsalReport) -> None:
    """Print an operator summary of a rehearsal."""
    print("=" * 80)
    print("BASKET MIGRATION REHEARSAL")
    print("=" * 80)
    print(f"Implementation: {sim.basket.implementation_id}")
    print(f"Clock:          {sim.clock.now()}")
    print()

    print("Direct swaps:")
    for swap in report.swaps:
        plan = swap.plan
        print(f"  {plan.input_asset:>8} -> {plan.output_asset:<8} in={plan.native_amount} out={swap.amount_out}")
    if not report.swaps:
        print("  (none)")
    print()

    if report.rebalance is not None:
        r = report.rebalance
        print("Flash-loan rebalance:")
        print(f"  Loan:      {r.loan_amount} {r.loan_asset} (fee {r.lender_fee})")
        print(f"  Swapped:   {r.amounts_swapped}")
        print(f"  Recovered: {r.recovered}")
        print(f"  Shortfall: {r.shortfall}")
        print()

    print("Migration transitions:")
    for t in report.transitions:
        validated = "n/a" if t.validation is None else ("OK" if t.validation.ok else "FAILED")
        print(
            f"  {t.transition:<28} {t.phase_before.value:>16} -> {t.phase_after.value:<16} "
            f"recol={t.undergoing_recol!s:<5} paused={t.paused!s:<5} validation={validated}"
        )
    print()

    print("-" * 60)
    print(f"{'Asset':<10} {'Before':>10} {'After':>10}")
    print("-" * 60)
    for asset_id in sorted(set(report.weights_before) | set(report.weights_after)):
        before = report.weights_before.get(asset_id, 0) / 100
        after = report.weights_after.get(asset_id, 0) / 100
        print(f"{asset_id:<10} {before:>9.2f}% {after:>9.2f}%")
    print("=" * 80)
