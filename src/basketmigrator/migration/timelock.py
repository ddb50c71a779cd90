"""Delayed upgrade admin - timelocked proposal and acceptance of implementation upgrades."""

from typing import Optional

import structlog

from basketmigrator.basket.base import BasketEngine
from basketmigrator.clock import Clock
from basketmigrator.errors import (
    AlreadyMigrated,
    NoPendingProposal,
    PreconditionViolation,
    TimelockNotElapsed,
    Unauthorized,
)
from basketmigrator.migration.implementation import get_implementation
from basketmigrator.models import MigrationRequest
from basketmigrator.state.redis_backend import MigrationStore

logger = structlog.get_logger(__name__)


class DelayedUpgradeAdmin:
    """Owns the upgrade path of one token proxy.

    A proposal starts a fixed delay. Acceptance is a plain comparison of the
    injected clock against `proposed_at + delay`; nothing polls. A request
    executes at most once, enforced by its persistent `executed` flag.
    """

    def __init__(
        self,
        proxy: BasketEngine,
        clock: Clock,
        *,
        governor: str,
        delay: int,
        proxy_id: str = "token-proxy",
        store: Optional[MigrationStore] = None,
    ):
        self._proxy = proxy
        self._clock = clock
        self.governor = governor
        self.delay = delay
        self.proxy_id = proxy_id
        self._store = store
        self._request: Optional[MigrationRequest] = None
        if store is not None:
            self._request = store.load_latest_request(proxy_id)

    @property
    def request(self) -> Optional[MigrationRequest]:
        return self._request.model_copy() if self._request else None

    def now(self) -> int:
        return self._clock.now()

    def _require_governor(self, actor: str) -> None:
        if actor != self.governor:
            raise Unauthorized(f"{actor} is not the governor")

    def _persist(self) -> None:
        if self._store is not None and self._request is not None:
            self._store.save_request(self._request)

    def propose(self, actor: str, implementation_id: str, payload: bytes) -> MigrationRequest:
        """Record an upgrade proposal and start its delay window."""
        self._require_governor(actor)
        if self._request is not None and not self._request.executed:
            raise PreconditionViolation(
                f"Upgrade to {self._request.implementation_id} already proposed"
            )
        try:
            get_implementation(implementation_id)
        except KeyError as e:
            raise PreconditionViolation(str(e)) from e
        if implementation_id == self._proxy.implementation_id:
            raise PreconditionViolation(f"Proxy already uses {implementation_id}")

        self._request = MigrationRequest(
            proxy_id=self.proxy_id,
            implementation_id=implementation_id,
            payload=payload,
            proposed_at=self._clock.now(),
            delay=self.delay,
        )
        self._persist()

        logger.info(
            "timelock.proposed",
            proxy_id=self.proxy_id,
            implementation_id=implementation_id,
            proposed_at=self._request.proposed_at,
            executable_at=self._request.executable_at,
        )
        return self.request

    def accept(self, actor: str) -> MigrationRequest:
        """Execute the pending proposal once its delay has elapsed.

        Raises:
            NoPendingProposal: Nothing has been proposed
            AlreadyMigrated: The request has already executed
            TimelockNotElapsed: now < proposed_at + delay
        """
        self._require_governor(actor)
        request = self._request
        if request is None:
            raise NoPendingProposal(f"No upgrade proposed for {self.proxy_id}")
        if request.executed:
            raise AlreadyMigrated(
                f"{request.implementation_id} already executed at {request.executed_at}"
            )
        now = self._clock.now()
        if now < request.executable_at:
            raise TimelockNotElapsed(now, request.executable_at)

        with self._proxy.atomic():
            self._proxy.upgrade_to_and_call(request.implementation_id, request.payload)
            request.executed = True
            request.executed_at = now
        self._persist()

        logger.info(
            "timelock.accepted",
            proxy_id=self.proxy_id,
            implementation_id=request.implementation_id,
            executed_at=now,
        )
        return self.request
