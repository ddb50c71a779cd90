"""End-to-end rehearsal against the bundled scenario."""

from pathlib import Path

import pytest

from basketmigrator.models import MigrationPhase
from basketmigrator.runbook import print_report, run_rehearsal
from basketmigrator.scenario import build_simulation, load_scenario

REPO_ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture
def sim(test_config):
    scenario = load_scenario(REPO_ROOT / "config" / "scenario.yaml")
    return build_simulation(scenario, test_config)


class TestScenario:
    def test_seeds_ledger(self, sim):
        assert sim.ledger.balance_of("basket", "USDC") == sim.native("USDC", 1_200_000)
        assert sim.ledger.balance_of("rebalancer", "BUSD") == sim.native("BUSD", 1_000_000)
        assert sim.ledger.allowance("treasury", "rebalancer", "USDT") == sim.native("USDT", 1_000)
        assert sim.basket.get_token_state().total_supply == 4_000_000 * 10**18


class TestRehearsal:
    def test_full_migration(self, sim):
        report = run_rehearsal(sim)

        assert sim.basket.implementation_id == "basket-v3"
        assert report.transitions[-1].phase_after == MigrationPhase.ACTIVE
        assert all(t.validation is not None and t.validation.ok for t in report.transitions)

        basket = sim.basket.get_basket()
        assert basket.asset_ids == ["USDC", "DAI", "USDT", "BUSD"]
        assert not basket.undergoing_recol
        assert not basket.paused

    def test_rebalance_reaches_target(self, sim):
        report = run_rehearsal(sim)

        assert report.rebalance.loan_asset == "USDT"
        assert report.rebalance.shortfall > 0
        assert sim.basket.get_asset_state("USDT").balance == sim.native("USDT", 1_000_000)
        for weight in report.weights_after.values():
            assert 2490 <= weight <= 2510

    def test_phase_out_drained(self, sim):
        report = run_rehearsal(sim)

        assert len(report.swaps) == 1
        assert report.swaps[0].plan.input_asset == "BUSD"
        assert sim.ledger.balance_of("basket", "sUSD") == 0
        assert "sUSD" not in report.weights_after

    def test_print_report(self, sim, capsys):
        report = run_rehearsal(sim)
        print_report(sim, report)

        out = capsys.readouterr().out
        assert "BASKET MIGRATION REHEARSAL" in out
        assert "basket-v3" in out
        assert "accept" in out
