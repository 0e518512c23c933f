"""
============================================================================
Ads Safety Pipeline - External Ads Client Interface
============================================================================

Reliability Level: L6 Critical
Traceability: Every apply is logged with resource_ref and mutation_id

The mutation applier talks to the advertising platform through the
ExternalAdsClient interface only. Wire protocol, auth and quota handling
live behind it.

MockAdsClient simulates the platform in memory:
- Creates get refs customers/<tenant>/<resource>s/<n>
- Mutations with an entity_id reuse it as the resource ref
- Configurable failures (by mutation_id or entity_id) and latency
- Full apply history for assertions

ERROR CODES:
    - ADS-001: External apply failed
============================================================================
"""

from typing import Optional, Dict, Any, List, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from abc import ABC, abstractmethod
import logging
import threading
import time

from ads_safety.mutation_models import Mutation, MutationKind

# Configure module logger
logger = logging.getLogger(__name__)


class AdsClientErrorCode:
    APPLY_FAILED = "ADS-001"


class AdsClientError(Exception):
    """Transport or platform-side validation failure."""

    def __init__(self, message: str, error_code: str = AdsClientErrorCode.APPLY_FAILED):
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


@dataclass
class AppliedMutation:
    """Platform acknowledgement of an applied mutation."""
    resource_ref: str
    applied_fields: Dict[str, Any] = field(default_factory=dict)
    applied_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource_ref": self.resource_ref,
            "applied_fields": dict(self.applied_fields),
            "applied_at": self.applied_at.isoformat(),
        }


class ExternalAdsClient(ABC):
    """
    Abstract interface for advertising platform clients.

    Allows swapping between MockAdsClient (testing) and real clients.
    """

    @abstractmethod
    def apply(self, mutation: Mutation) -> AppliedMutation:
        """
        Apply one mutation.

        Raises:
            AdsClientError: On transport or platform validation failure
        """
        pass


class MockAdsClient(ExternalAdsClient):
    """
    In-memory advertising platform for tests and dry environments.

    Reliability Level: L6 Critical (Testing)
    """

    def __init__(
        self,
        fail_on: Optional[Iterable[str]] = None,
        latency_seconds: float = 0.0,
    ) -> None:
        self._fail_on = set(fail_on or [])
        self._latency_seconds = latency_seconds
        self._counter = 0
        self._lock = threading.Lock()
        self._entities: Dict[str, Dict[str, Any]] = {}
        self.history: List[Mutation] = []

    def fail_on(self, *keys: str) -> None:
        """Make applies fail for these mutation ids or entity ids."""
        self._fail_on.update(keys)

    def set_latency(self, seconds: float) -> None:
        self._latency_seconds = seconds

    def _generate_ref(self, mutation: Mutation) -> str:
        self._counter += 1
        return f"customers/{mutation.tenant_id}/{mutation.resource_type.value}s/{self._counter}"

    def get_entity(self, resource_ref: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entity = self._entities.get(resource_ref)
            return dict(entity) if entity is not None else None

    def apply(self, mutation: Mutation) -> AppliedMutation:
        if self._latency_seconds:
            time.sleep(self._latency_seconds)

        if mutation.mutation_id in self._fail_on or (
            mutation.entity_id is not None and mutation.entity_id in self._fail_on
        ):
            logger.error(
                f"[{AdsClientErrorCode.APPLY_FAILED}] Mock apply failed | "
                f"kind={mutation.kind.value} | "
                f"entity_id={mutation.entity_id} | "
                f"mutation_id={mutation.mutation_id}"
            )
            raise AdsClientError(
                f"Simulated platform failure for {mutation.resource_type.value} "
                f"{mutation.entity_id or mutation.mutation_id}"
            )

        with self._lock:
            resource_ref = mutation.entity_id or self._generate_ref(mutation)
            entity = self._entities.setdefault(resource_ref, {"status": "ENABLED"})
            if mutation.kind == MutationKind.REMOVE:
                entity["status"] = "REMOVED"
            elif mutation.kind == MutationKind.PAUSE:
                entity["status"] = "PAUSED"
            elif mutation.kind in (MutationKind.ENABLE, MutationKind.CREATE):
                entity["status"] = "ENABLED"
            entity.update(mutation.changes)
            self.history.append(mutation)

        logger.info(
            f"[ADS-MOCK] Mutation applied | "
            f"kind={mutation.kind.value} | "
            f"resource_ref={resource_ref} | "
            f"mutation_id={mutation.mutation_id}"
        )
        return AppliedMutation(resource_ref=resource_ref, applied_fields=dict(mutation.changes))


__all__ = [
    "AdsClientErrorCode",
    "AdsClientError",
    "AppliedMutation",
    "ExternalAdsClient",
    "MockAdsClient",
]
