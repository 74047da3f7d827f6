"""System Health Check.

A circuit breaker above the per-configuration validator: when the rule
catalog itself is unhealthy, new configurations must not be created.

Checks:
1. Exactly one ACTIVE catalog version
2. Every standard declares valve types
3. Every attribute domain has values (completeness against requirement)
4. Minimum number of standards
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from ..catalog_store import CatalogStore
from ..config_loader import CatalogStatus
from ..errors import NormPackUnavailableError, SystemBlockedError

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "HEALTHY"
    BLOCKED = "BLOCKED"


@dataclass
class SystemHealth:
    status: HealthStatus
    issues: list[str] = field(default_factory=list)
    active_catalog_count: int = 0
    norm_count: int = 0
    norm_coverage_percent: float = 0.0
    domain_coverage_percent: float = 0.0
    pack_version: Optional[str] = None
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "is_healthy": self.is_healthy,
            "issues": list(self.issues),
            "active_catalog_count": self.active_catalog_count,
            "norm_count": self.norm_count,
            "norm_coverage_percent": self.norm_coverage_percent,
            "domain_coverage_percent": self.domain_coverage_percent,
            "pack_version": self.pack_version,
            "checked_at": self.checked_at.isoformat(),
        }


def check_system_health(store: CatalogStore) -> SystemHealth:
    """Evaluate the rule catalog. Any failure to read it is BLOCKED."""
    try:
        pack = store.pack
        versions = store.get_catalog_versions()
        standards = store.get_standards(active=False)
    except NormPackUnavailableError as e:
        logger.error(f"[HEALTH] Norm pack unavailable: {e}")
        return SystemHealth(status=HealthStatus.BLOCKED, issues=[f"Norm pack unavailable: {e}"])

    issues = []

    if pack.status != CatalogStatus.ACTIVE:
        issues.append(f"Norm pack '{pack.pack_id}' is {pack.status.value}, not ACTIVE")

    active_count = sum(1 for v in versions if v.status == CatalogStatus.ACTIVE)
    if active_count == 0:
        issues.append("No ACTIVE catalog version found")
    elif active_count > 1:
        issues.append(f"{active_count} ACTIVE catalog versions (there must be exactly 1)")

    without_types = [s.code for s in standards if not s.valve_types]
    if without_types:
        issues.append(f"{len(without_types)} standards without valve types: {', '.join(without_types)}")

    total_domains = 0
    empty_domains = []
    for norm in standards:
        for key, values in norm.domains.items():
            total_domains += 1
            if not values:
                empty_domains.append(f"{norm.code}.{key}")
    if empty_domains:
        issues.append(f"{len(empty_domains)} domains without allowed values: {', '.join(empty_domains)}")

    norm_coverage = (len(standards) - len(without_types)) / len(standards) * 100 if standards else 0.0
    domain_coverage = (total_domains - len(empty_domains)) / total_domains * 100 if total_domains else 0.0

    requirements = pack.system_requirements
    if len(standards) < requirements.min_norms_for_operation:
        issues.append(
            f"Insufficient norm base: requires {requirements.min_norms_for_operation}, found {len(standards)}"
        )
    if domain_coverage < requirements.required_domain_completeness:
        issues.append(f"Incomplete norm domains: completeness {domain_coverage:.1f}%")

    status = HealthStatus.HEALTHY if not issues else HealthStatus.BLOCKED
    if issues:
        logger.warning(f"[HEALTH] BLOCKED: {'; '.join(issues)}")
    else:
        logger.info(f"[HEALTH] HEALTHY ({len(standards)} standards, pack v{pack.version})")

    return SystemHealth(
        status=status,
        issues=issues,
        active_catalog_count=active_count,
        norm_count=len(standards),
        norm_coverage_percent=norm_coverage,
        domain_coverage_percent=domain_coverage,
        pack_version=pack.version,
    )


def ensure_creation_allowed(store: CatalogStore) -> SystemHealth:
    """Raise SystemBlockedError unless new configurations may be created."""
    health = check_system_health(store)
    if not health.is_healthy:
        raise SystemBlockedError(health.issues)
    return health
