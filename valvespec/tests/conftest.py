"""Shared fixtures for the valvespec test suite.

Loads the REAL norm pack (norm_packs/imex/config.yaml) so tests pin actual
catalog codes, standards and rules.
"""

import pytest

from valvespec.catalog_store import CatalogStore, NormPackCache
from valvespec.config_loader import load_norm_pack
from valvespec.logic.norm_resolver import NormResolver
from valvespec.logic.publication import PublicationValidator
from valvespec.logic.state import (
    FlangeFace,
    PressureClass,
    ServiceType,
    ValveConfiguration,
    ValveType,
)


# =============================================================================
# NORM PACK FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def pack():
    """Load the real IMEX norm pack (not mocked)."""
    return load_norm_pack(pack_id="imex")


@pytest.fixture
def cache(pack):
    return NormPackCache(lambda: pack)


@pytest.fixture
def store(cache):
    return CatalogStore(cache)


@pytest.fixture
def resolver(store):
    return NormResolver(store)


@pytest.fixture
def validator(store, resolver):
    return PublicationValidator(store, resolver)


@pytest.fixture
def broken_store():
    """Store whose pack can never be loaded."""
    def fail():
        raise FileNotFoundError("norm_packs/missing/config.yaml")
    return CatalogStore(NormPackCache(fail))


# =============================================================================
# CONFIGURATION FIXTURES
# =============================================================================

@pytest.fixture
def empty_config():
    """Fresh configuration with nothing selected."""
    return ValveConfiguration()


@pytest.fixture
def scenario_config():
    """8" class 600 flanged RF ball valve for pipeline, carbon steel body, PTFE seat, manual."""
    return ValveConfiguration(
        valve_type=ValveType.ESFERA,
        service_type=ServiceType.PIPELINE,
        diameter_nps="8",
        pressure_class=PressureClass.CLASS_600,
        end_type="FLANGEADO",
        flange_face=FlangeFace.RF,
        body_material="ASTM_A216_WCB",
        obturator_material="ASTM_A182_F316",
        seat_material="PTFE",
        stem_material="ASTM_A182_F6A",
        actuation_type="MANUAL",
    )


@pytest.fixture
def scenario_dict(scenario_config):
    """The scenario configuration as an API payload."""
    return scenario_config.to_dict()
