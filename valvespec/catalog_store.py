"""Read-through cache and lookup interface over the active norm pack.

The cache is an explicitly owned object: callers create one, pass it (or a
CatalogStore wrapping it) to the resolver and validator, and call
invalidate()/reload() when the reference data should be refreshed.
"""

import logging
from typing import Callable, Optional

from .config_loader import (
    CatalogItem,
    CatalogStatus,
    CatalogVersion,
    FieldRuleSpec,
    FireTestCompatibility,
    MaterialRecord,
    Norm,
    NormPack,
    load_norm_pack,
)
from .errors import NormPackUnavailableError

logger = logging.getLogger(__name__)


class NormPackCache:
    """Holds one loaded NormPack and loads it on first use."""

    def __init__(self, loader: Optional[Callable[[], NormPack]] = None):
        self._loader = loader or load_norm_pack
        self._pack: Optional[NormPack] = None

    @property
    def is_loaded(self) -> bool:
        return self._pack is not None

    def get(self) -> NormPack:
        """Return the cached pack, loading it if needed.

        Raises:
            NormPackUnavailableError: If the loader fails.
        """
        if self._pack is None:
            self._pack = self._load()
        return self._pack

    def invalidate(self):
        """Drop the cached pack; the next get() loads it again."""
        if self._pack is not None:
            logger.info(f"[CACHE] Invalidated norm pack '{self._pack.pack_id}'")
        self._pack = None

    def reload(self) -> NormPack:
        self.invalidate()
        return self.get()

    def _load(self) -> NormPack:
        try:
            pack = self._loader()
        except Exception as e:
            logger.error(f"[CACHE] Norm pack load failed: {e}")
            raise NormPackUnavailableError(f"Norm pack unavailable: {e}") from e
        logger.info(f"[CACHE] Norm pack '{pack.pack_id}' v{pack.version} cached")
        return pack


class CatalogStore:
    """Lookup interface the engine uses to read reference data."""

    def __init__(self, cache: NormPackCache):
        self.cache = cache

    @property
    def pack(self) -> NormPack:
        return self.cache.get()

    def get_catalog(self, category: str) -> list[CatalogItem]:
        return self.pack.get_catalog(category)

    def find_by_code(self, category: str, code: Optional[str]) -> Optional[CatalogItem]:
        if not code:
            return None
        for item in self.get_catalog(category):
            if item.code == code:
                return item
        return None

    def find_by_imex_code(self, category: str, imex_code: Optional[str]) -> Optional[CatalogItem]:
        if not imex_code:
            return None
        for item in self.get_catalog(category):
            if item.imex_code == imex_code:
                return item
        return None

    def get_standards(self, active: bool = True) -> list[Norm]:
        """Return the standards in catalog order.

        With active=True an inactive pack yields no standards, so callers
        treat it exactly like missing data.
        """
        pack = self.pack
        if active and pack.status != CatalogStatus.ACTIVE:
            logger.warning(f"[CATALOG] Pack '{pack.pack_id}' is {pack.status.value}; no active standards")
            return []
        return list(pack.standards)

    def get_norm(self, code: Optional[str]) -> Optional[Norm]:
        return self.pack.get_norm(code)

    def get_attribute_domains(self, norm_code: str) -> dict[str, list[str]]:
        norm = self.pack.get_norm(norm_code)
        if norm is None:
            return {}
        return {key: list(values) for key, values in norm.domains.items()}

    def get_material_compatibility(self, norm_code: str) -> list[MaterialRecord]:
        return list(self.pack.material_compatibility.get(norm_code, []))

    def get_fire_test_compatibility(self, valve_type: str) -> list[FireTestCompatibility]:
        return [
            entry for entry in self.pack.fire_test_compatibility
            if entry.valve_type == valve_type
        ]

    def get_rules(self, valve_type: Optional[str] = None) -> list[FieldRuleSpec]:
        """Rules that apply to every valve type plus those scoped to valve_type."""
        return [
            rule for rule in self.pack.rules
            if rule.valve_type is None or rule.valve_type == valve_type
        ]

    def get_catalog_versions(self) -> list[CatalogVersion]:
        return list(self.pack.catalog_versions)
