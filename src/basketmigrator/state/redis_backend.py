"""Redis-based persistence for migration requests and operator outcome reports."""

import json
from datetime import datetime, timezone
from typing import Optional

import redis
import structlog
from pydantic import BaseModel

from basketmigrator.models import MigrationRequest

logger = structlog.get_logger(__name__)


class MigrationStore:
    """Redis-backed store for migration requests and outcome reports.

    Requests are written without a TTL and never deleted: every proposal for
    a proxy lives in one hash keyed by its proposal timestamp.
    """

    def __init__(
        self,
        namespace: str = "basketmigrator",
        host: str = "localhost",
        port: int = 6379,
        password: Optional[str] = None,
    ):
        self._namespace = namespace
        self.OUTCOMES_KEY = f"{namespace}:outcomes"
        self._client = redis.Redis(
            host=host,
            port=port,
            password=password,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )

        logger.info(
            "redis.store_initialized",
            namespace=namespace,
            host=host,
            port=port,
        )

    def requests_key(self, proxy_id: str) -> str:
        return f"{self._namespace}:migrations:{proxy_id}"

    def save_request(self, request: MigrationRequest) -> None:
        """Write a request, overwriting the same proposal when it is executed."""
        try:
            self._client.hset(
                self.requests_key(request.proxy_id),
                str(request.proposed_at),
                request.model_dump_json(),
            )
            logger.debug(
                "redis.request_saved",
                proxy_id=request.proxy_id,
                implementation_id=request.implementation_id,
                executed=request.executed,
            )
        except Exception as e:
            logger.error(
                "redis.save_failed",
                proxy_id=request.proxy_id,
                error=str(e),
                exc_info=True,
            )
            raise

    def load_latest_request(self, proxy_id: str) -> Optional[MigrationRequest]:
        """Most recent proposal for a proxy, or None if it has never been proposed."""
        try:
            raw = self._client.hgetall(self.requests_key(proxy_id))
        except Exception as e:
            logger.error("redis.load_failed", proxy_id=proxy_id, error=str(e), exc_info=True)
            raise

        if not raw:
            logger.info("redis.no_request_found", proxy_id=proxy_id)
            return None

        latest = max(raw, key=int)
        return MigrationRequest.model_validate_json(raw[latest])

    def append_outcome(self, kind: str, result: BaseModel) -> None:
        """Append a structured outcome to the audit list."""
        entry = {
            "kind": kind,
            "recorded_at": datetime.now(timezone.utc).isoformat(),
            "result": result.model_dump(mode="json"),
        }
        try:
            self._client.rpush(self.OUTCOMES_KEY, json.dumps(entry, default=str))
        except Exception as e:
            logger.error("redis.outcome_failed", kind=kind, error=str(e), exc_info=True)
            raise

    def list_outcomes(self, limit: int = 100) -> list[dict]:
        """Most recent outcomes, oldest first."""
        entries = self._client.lrange(self.OUTCOMES_KEY, -limit, -1)
        outcomes = []
        for raw in entries:
            try:
                outcomes.append(json.loads(raw))
            except json.JSONDecodeError as e:
                logger.warning("redis.outcome_parse_failed", error=str(e))
        return outcomes

    def close(self) -> None:
        """Close Redis connection."""
        try:
            self._client.close()
            logger.debug("redis.connection_closed", namespace=self._namespace)
        except Exception as e:
            logger.warning("redis.close_failed", error=str(e))
