"""Migration state machine - phased upgrade of a live basket with validation gates.

Phases:

    Deployed -> ProposalPending -> Accepted -> InRecol
    InRecol -> Unpaused | IsolationCleared -> Active

After `Accepted` the phase follows the basket's own flags: still
recollateralising and paused is `InRecol`, recol cleared while paused is
`IsolationCleared`, unpaused while recollateralising is `Unpaused`, and
neither is `Active`.

Storage is validated after every transition. Callers may supply the
expected storage; otherwise it is derived from a snapshot taken just before
the transition with the transition's own changes applied (paused flag,
implementation pointer, initializer fields, isolation). A mismatch halts
the machine: no further transition runs until `revalidate` passes.
"""

from typing import Callable, Optional

import structlog

from basketmigrator.basket.base import BasketEngine
from basketmigrator.errors import MigrationHalted, PreconditionViolation, StorageMismatch
from basketmigrator.logging_config import get_migration_logger
from basketmigrator.migration.implementation import get_implementation
from basketmigrator.migration.timelock import DelayedUpgradeAdmin
from basketmigrator.models import (
    ISOLATED_STATUSES,
    AssetStatus,
    MigrationPhase,
    MigrationResult,
    ValidationReport,
)
from basketmigrator.state.redis_backend import MigrationStore
from basketmigrator.validation.snapshot import ExpectedStorage, capture_snapshot
from basketmigrator.validation.validator import StorageValidator

logger = structlog.get_logger(__name__)

_POST_ACCEPT = (
    MigrationPhase.IN_RECOL,
    MigrationPhase.UNPAUSED,
    MigrationPhase.ISOLATION_CLEARED,
    MigrationPhase.ACTIVE,
)

StorageChange = Callable[[ExpectedStorage], ExpectedStorage]


def _unchanged(baseline: ExpectedStorage) -> ExpectedStorage:
    return baseline


def _set_paused(paused: bool) -> StorageChange:
    def apply(baseline: ExpectedStorage) -> ExpectedStorage:
        return baseline.model_copy(update={"paused": paused})

    return apply


def _isolation_negated(asset_id: str) -> StorageChange:
    def apply(baseline: ExpectedStorage) -> ExpectedStorage:
        assets = [
            a.model_copy(update={"status": AssetStatus.NORMAL})
            if a.asset_id == asset_id and a.status in ISOLATED_STATUSES
            else a
            for a in baseline.assets or []
        ]
        return baseline.model_copy(
            update={
                "assets": assets,
                "undergoing_recol": any(a.status in ISOLATED_STATUSES for a in assets),
            }
        )

    return apply


class MigrationStateMachine:
    """Drives one proxy through propose, accept and re-enable."""

    def __init__(
        self,
        admin: DelayedUpgradeAdmin,
        basket: BasketEngine,
        validator: StorageValidator,
        *,
        store: Optional[MigrationStore] = None,
    ):
        self._admin = admin
        self._basket = basket
        self._validator = validator
        self._store = store
        self._migration_log = get_migration_logger()
        self._halted_report: Optional[ValidationReport] = None
        self.history: list[MigrationResult] = []
        self._phase = self._initial_phase()

    def _initial_phase(self) -> MigrationPhase:
        request = self._admin.request
        if request is None:
            return MigrationPhase.DEPLOYED
        if not request.executed:
            return MigrationPhase.PROPOSAL_PENDING
        return self._settled_phase()

    def _settled_phase(self) -> MigrationPhase:
        basket = self._basket.get_basket()
        if basket.undergoing_recol:
            return MigrationPhase.UNPAUSED if not basket.paused else MigrationPhase.IN_RECOL
        return MigrationPhase.ISOLATION_CLEARED if basket.paused else MigrationPhase.ACTIVE

    @property
    def phase(self) -> MigrationPhase:
        return self._phase

    @property
    def halted(self) -> bool:
        return self._halted_report is not None

    def _require_running(self) -> None:
        if self._halted_report is not None:
            raise MigrationHalted(self._halted_report)

    def _require_phase(self, *allowed: MigrationPhase) -> None:
        if self._phase not in allowed:
            raise PreconditionViolation(
                f"Transition not allowed from {self._phase.value}; "
                f"expected one of {[p.value for p in allowed]}"
            )

    def _record(self, result: MigrationResult) -> None:
        self.history.append(result)
        if self._store is not None:
            self._store.append_outcome("migration", result)

    def _accept_changes(self, baseline: ExpectedStorage) -> ExpectedStorage:
        request = self._admin.request
        update = {"implementation_id": request.implementation_id}
        update.update(get_implementation(request.implementation_id).expected_changes(request.payload))
        return baseline.model_copy(update=update)

    def _transition(
        self,
        name: str,
        action: Callable[[], None],
        next_phase: Callable[[], MigrationPhase],
        expected: Optional[ExpectedStorage],
        changes: StorageChange,
        timestamp: int,
    ) -> MigrationResult:
        self._require_running()
        before = self._phase
        baseline = None
        if expected is None:
            baseline = ExpectedStorage.from_snapshot(capture_snapshot(self._basket))
        action()
        self._phase = next_phase()

        if expected is None:
            expected = changes(baseline)
        report = self._validator.validate(capture_snapshot(self._basket), expected)

        basket = self._basket.get_basket()
        result = MigrationResult(
            transition=name,
            phase_before=before,
            phase_after=self._phase,
            implementation_id=self._basket.implementation_id,
            timestamp=timestamp,
            undergoing_recol=basket.undergoing_recol,
            paused=basket.paused,
            validation=report,
        )
        self._record(result)

        if not report.ok:
            self._halted_report = report
            self._migration_log.error(
                "migration.halted",
                transition=name,
                phase=self._phase.value,
                failures=[f.field for f in report.failures],
            )
            raise StorageMismatch(report)

        self._migration_log.info(
            "migration.transition",
            transition=name,
            phase_before=before.value,
            phase_after=self._phase.value,
            implementation_id=result.implementation_id,
            undergoing_recol=result.undergoing_recol,
            paused=result.paused,
            checks=len(report.checks),
        )
        return result

    def propose(
        self,
        actor: str,
        implementation_id: str,
        payload: bytes,
        expected: Optional[ExpectedStorage] = None,
    ) -> MigrationResult:
        """Submit the upgrade proposal and start the timelock."""
        self._require_running()
        self._require_phase(MigrationPhase.DEPLOYED)
        return self._transition(
            "propose",
            lambda: self._admin.propose(actor, implementation_id, payload),
            lambda: MigrationPhase.PROPOSAL_PENDING,
            expected,
            _unchanged,
            timestamp=self._admin.now(),
        )

    def pause_for_upgrade(self, actor: str, expected: Optional[ExpectedStorage] = None) -> MigrationResult:
        """Pause the basket while the proposal waits out its delay."""
        self._require_running()
        self._require_phase(MigrationPhase.PROPOSAL_PENDING)
        return self._transition(
            "pause",
            lambda: self._basket.pause(actor),
            lambda: MigrationPhase.PROPOSAL_PENDING,
            expected,
            _set_paused(True),
            timestamp=self._admin.now(),
        )

    def accept_migration(self, actor: str, expected: Optional[ExpectedStorage] = None) -> MigrationResult:
        """Execute the upgrade once the timelock has elapsed.

        Raises:
            NoPendingProposal: Nothing was proposed
            AlreadyMigrated: The proposal already executed
            TimelockNotElapsed: Called before `proposed_at + delay`
            StorageMismatch: Post-upgrade storage does not match `expected`
        """
        self._require_running()

        def settle() -> MigrationPhase:
            # Accepted is momentary: the initializer sets recol in the same step
            settled = self._settled_phase()
            logger.debug("migration.accepted", settled_phase=settled.value)
            return settled

        return self._transition(
            "accept",
            lambda: self._admin.accept(actor),
            settle,
            expected,
            self._accept_changes,
            timestamp=self._admin.now(),
        )

    def clear_isolation(
        self, actor: str, asset_id: str, expected: Optional[ExpectedStorage] = None
    ) -> MigrationResult:
        """Negate isolation of one asset. Recol ends once no asset is isolated."""
        self._require_running()
        self._require_phase(*_POST_ACCEPT)
        return self._transition(
            f"clear_isolation:{asset_id}",
            lambda: self._basket.negate_isolation(actor, asset_id),
            self._settled_phase,
            expected,
            _isolation_negated(asset_id),
            timestamp=self._admin.now(),
        )

    def unpause(self, actor: str, expected: Optional[ExpectedStorage] = None) -> MigrationResult:
        self._require_running()
        self._require_phase(*_POST_ACCEPT)
        return self._transition(
            "unpause",
            lambda: self._basket.unpause(actor),
            self._settled_phase,
            expected,
            _set_paused(False),
            timestamp=self._admin.now(),
        )

    def checkpoint(self, expected: ExpectedStorage) -> ValidationReport:
        """Validate live storage without changing phase. Halts on mismatch."""
        self._require_running()
        report = self._validator.validate(capture_snapshot(self._basket), expected)
        if not report.ok:
            self._halted_report = report
            self._migration_log.error(
                "migration.halted",
                transition="checkpoint",
                phase=self._phase.value,
                failures=[f.field for f in report.failures],
            )
            raise StorageMismatch(report)
        self._migration_log.info("migration.checkpoint_passed", phase=self._phase.value, checks=len(report.checks))
        return report

    def revalidate(self, expected: ExpectedStorage) -> ValidationReport:
        """Re-run validation on a halted machine and resume it when storage matches."""
        report = self._validator.validate(capture_snapshot(self._basket), expected)
        if not report.ok:
            self._halted_report = report
            raise MigrationHalted(report)
        if self._halted_report is not None:
            self._migration_log.info("migration.resumed", phase=self._phase.value)
        self._halted_report = None
        return report
