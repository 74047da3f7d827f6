import logging
import os
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .catalog_store import CatalogStore, NormPackCache
from .config_loader import CATALOG_CATEGORIES, get_available_packs, get_norm_pack_summary
from .errors import InvalidStatusTransition, NormPackUnavailableError, PublicationBlockedError, SystemBlockedError
from .logic.calculators import SILResult, calculate_sil, calculate_torque
from .logic.decision_log import DecisionLog, DecisionType
from .logic.health import check_system_health, ensure_creation_allowed
from .logic.imex_code import build_imex_code
from .logic.lifecycle import build_draft_record, transition_status
from .logic.material_filter import MaterialRequirements, filter_materials
from .logic.norm_resolver import NormResolver
from .logic.publication import PublicationValidator, finalize_publication
from .logic.rule_engine import evaluate_configuration
from .logic.state import SpecStatus, ValveConfiguration
from .models import (
    ConfigurationRequest,
    ConstraintRequest,
    FireTestRequest,
    MaterialFilterRequest,
    PublicationRequest,
    ResolveRequest,
    SILRequest,
    TorqueRequest,
    TransitionRequest,
)

load_dotenv()

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Valve Specification API", version=__version__)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Engine wiring: one cache, shared by every component
norm_cache = NormPackCache()
store = CatalogStore(norm_cache)
resolver = NormResolver(store)
validator = PublicationValidator(store, resolver)
decision_log = DecisionLog()


def _sil_result_for(config: ValveConfiguration, sil: Optional[SILRequest]) -> Optional[SILResult]:
    """Run the SIL calculation against the configuration's level, if inputs were sent."""
    if sil is None:
        return None
    required = config.sil_certification if config.sil_required else sil.required
    return calculate_sil(sil.lambda_du, sil.test_interval, sil.mttr, sil.beta, required)


@app.get("/")
async def root():
    return {"message": "Valve Specification API is running", "version": __version__}


@app.get("/health")
async def health():
    return {"status": "healthy"}


# =============================================================================
# Norm Pack / Catalog Endpoints
# =============================================================================

@app.get("/system/health")
async def system_health():
    """Rule catalog health (circuit breaker for draft creation)."""
    try:
        result = check_system_health(store)
        response = result.to_dict()
        response["packs"] = get_available_packs()
        return response
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/catalog/{category}")
async def get_catalog(category: str):
    """Code catalog for one category (valve_models, end_connections, ...)."""
    if category not in CATALOG_CATEGORIES:
        raise HTTPException(status_code=404, detail=f"Unknown catalog category: {category}")
    try:
        return {"category": category, "items": [i.model_dump() for i in store.get_catalog(category)]}
    except NormPackUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/config/reload")
async def reload_norm_pack():
    """Reload the norm pack from disk.

    Useful after editing the YAML pack.
    """
    try:
        pack = norm_cache.reload()
        return {
            "message": f"Reloaded norm pack: {pack.pack_id}",
            "config": get_norm_pack_summary(pack),
        }
    except NormPackUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


# =============================================================================
# Norms / Materials / Rules
# =============================================================================

@app.post("/norms/resolve")
async def resolve_norms(request: ResolveRequest):
    try:
        result = resolver.resolve(request.valve_type, request.service_type)
        if result.primary_standard:
            decision_log.record(
                DecisionType.NORM_SELECTION,
                result.primary_standard,
                f"Primary construction norm for {result.valve_type}+{result.service_type}",
                source_norm=result.primary_standard,
            )
        return result.to_dict()
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/norms/constraints")
async def check_norm_constraints(request: ConstraintRequest):
    try:
        config = request.configuration.to_configuration()
        return resolver.check_constraints(config, request.primary_norm).to_dict()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/norms/fire-test")
async def check_fire_test(request: FireTestRequest):
    try:
        result = resolver.check_fire_test_compatibility(
            request.valve_type,
            request.body_material,
            request.seat_material,
            str(request.pressure_class) if request.pressure_class is not None else None,
        )
        return result.to_dict()
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/materials/filter")
async def filter_material_candidates(request: MaterialFilterRequest):
    """Admissible materials per role for the configuration's primary norm."""
    try:
        config = request.configuration.to_configuration()
        resolution = resolver.resolve(config.valve_type, config.service_type)
        if resolution.error:
            raise HTTPException(status_code=503, detail=resolution.error)

        requirements = MaterialRequirements.from_configuration(config)
        result = filter_materials(resolution.all_materials, requirements, config.obturator_material)
        for role, candidates in result.candidates.items():
            if len(candidates) == 1:
                decision_log.record(
                    DecisionType.MATERIAL_CHOICE,
                    candidates[0].code,
                    f"Only admissible {role} material",
                    source_norm=resolution.primary_standard,
                )

        response = result.to_dict()
        response["primary_standard"] = resolution.primary_standard
        return response
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/rules/evaluate")
async def evaluate_field_rules(request: ConfigurationRequest):
    try:
        config = request.to_configuration()
        return evaluate_configuration(config, store).to_dict()
    except NormPackUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/imex/build")
async def build_code(request: ConfigurationRequest):
    try:
        config = request.to_configuration()
        return build_imex_code(config, store.pack).to_dict()
    except NormPackUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


# =============================================================================
# Publication / Drafts
# =============================================================================

@app.post("/publication/validate")
async def validate_for_publication(request: PublicationRequest):
    try:
        config = request.configuration.to_configuration()
        sil_result = _sil_result_for(config, request.sil)
        result = validator.validate(config, sil_result)
        decision_log.record(
            DecisionType.VALIDATION,
            "PUBLISHABLE" if result.can_publish else "BLOCKED",
            f"Coverage {result.coverage_percent:.0f}%",
            blocked_by=result.blocked_by,
        )
        return result.to_dict()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/publication/submit")
async def submit_publication(request: PublicationRequest):
    """Final publication: re-validates and issues the specification code."""
    try:
        config = request.configuration.to_configuration()
        sil_result = _sil_result_for(config, request.sil)
        result = finalize_publication(config, validator, sil_result)
        if not result.success:
            raise HTTPException(status_code=409, detail=result.to_dict())

        decision_log.record(
            DecisionType.VALIDATION,
            "PUBLISHED",
            "Specification passed the publication gate",
            spec_code=result.spec_code,
        )
        return result.to_dict()
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/drafts")
async def create_draft(request: ConfigurationRequest):
    """Snapshot a configuration as a draft; refused while the catalog is unhealthy."""
    try:
        ensure_creation_allowed(store)
        config = request.to_configuration()
        return build_draft_record(config, store.pack).to_dict()
    except (SystemBlockedError, NormPackUnavailableError) as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/drafts/transition")
async def transition_draft(request: TransitionRequest):
    try:
        publication = None
        if SpecStatus(request.target_status) == SpecStatus.SUBMITTED and request.configuration is not None:
            config = request.configuration.to_configuration()
            publication = validator.validate(config, _sil_result_for(config, request.sil))

        new_status = transition_status(request.current_status, request.target_status, publication)
        return {"status": new_status.value}
    except (InvalidStatusTransition, PublicationBlockedError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


# =============================================================================
# Calculators
# =============================================================================

@app.post("/calculate/torque")
async def torque(request: TorqueRequest):
    try:
        constants = store.pack.torque
        result = calculate_torque(request.diameter, request.pressure_class, request.seat_material, constants)
        decision_log.record(
            DecisionType.CALCULATION,
            f"{result.recommended} {result.unit}",
            result.formula,
            calculation="torque",
        )
        return result.to_dict()
    except NormPackUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/calculate/sil")
async def sil(request: SILRequest):
    try:
        result = calculate_sil(request.lambda_du, request.test_interval, request.mttr, request.beta, request.required)
        decision_log.record(
            DecisionType.CALCULATION,
            f"PFDavg {result.pfd_avg:.2e}",
            f"Achieved {result.achieved.value if result.achieved else 'no SIL'}",
            calculation="sil",
        )
        return result.to_dict()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/decisions")
async def list_decisions(decision_type: Optional[str] = None):
    try:
        entries = decision_log.entries(DecisionType(decision_type) if decision_type else None)
        return {"entries": [e.to_dict() for e in entries]}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
