"""Pydantic request schemas for the valve specification API."""

from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from .logic.calculators import DEFAULT_BETA, DEFAULT_LAMBDA_DU, DEFAULT_MTTR, DEFAULT_TEST_INTERVAL
from .logic.state import ValveConfiguration


class ConfigurationRequest(BaseModel):
    """A valve configuration as sent by the editor.

    Enum fields stay plain strings here; ValveConfiguration.from_dict
    rejects unknown values with ValueError (HTTP 400).
    """
    valve_type: Optional[str] = Field(None, description="ESFERA, GLOBO, GAVETA, RETENCAO, BORBOLETA, CONTROLE")
    valve_model: Optional[str] = Field(None, description="Catalog model variant (e.g., 'ESFERA_FLOAT')")
    service_type: Optional[str] = Field(None, description="PIPELINE, PROCESS, WELLHEAD, GENERAL")
    construction_standard: Optional[str] = None
    diameter_nps: Optional[Union[str, float]] = Field(None, description="NPS (e.g., '8', '3/4', '1 1/2')")
    pressure_class: Optional[Union[str, int]] = Field(None, description="ASME class (e.g., '600')")
    end_type: Optional[str] = None
    flange_face: Optional[str] = None

    actuation_type: Optional[str] = None
    torque: Optional[float] = None
    thrust: Optional[float] = None
    travel: Optional[float] = None
    stem_diameter: Optional[float] = None
    pitch: Optional[float] = None
    top_flange: Optional[str] = None

    body_material: Optional[str] = None
    obturator_material: Optional[str] = None
    seat_material: Optional[str] = None
    stem_material: Optional[str] = None

    fire_test: Optional[Union[bool, str]] = Field(None, description="TESTADA_A_FOGO, USO_GERAL or a yes/no flag")
    low_fugitive_emission: Union[bool, str] = False
    sil_certification: Optional[str] = None
    nace_compliant: Union[bool, str] = False

    fluid: Optional[str] = None
    operating_temperature_c: Optional[float] = None
    sour_service: Union[bool, str] = False
    observations: str = ""
    attributes: dict[str, Any] = Field(default_factory=dict)

    def to_configuration(self) -> ValveConfiguration:
        return ValveConfiguration.from_dict(self.model_dump())


class ResolveRequest(BaseModel):
    valve_type: str
    service_type: str


class ConstraintRequest(BaseModel):
    configuration: ConfigurationRequest
    primary_norm: Optional[str] = None


class FireTestRequest(BaseModel):
    valve_type: str
    body_material: Optional[str] = None
    seat_material: Optional[str] = None
    pressure_class: Optional[Union[str, int]] = None


class MaterialFilterRequest(BaseModel):
    """Filter the primary norm's materials for a configuration.

    The configuration's valve and service types select the primary norm;
    its NACE, fire test and low emission flags and its obturator drive the
    filter.
    """
    configuration: ConfigurationRequest


class SILRequest(BaseModel):
    lambda_du: float = Field(DEFAULT_LAMBDA_DU, description="Dangerous undetected failure rate (1/h)")
    test_interval: float = Field(DEFAULT_TEST_INTERVAL, description="Proof test interval (h)")
    mttr: float = Field(DEFAULT_MTTR, description="Mean time to repair (h)")
    beta: float = Field(DEFAULT_BETA, description="Common cause factor")
    required: Optional[str] = Field(None, description="Required level (SIL1, SIL2, SIL3)")


class TorqueRequest(BaseModel):
    diameter: Union[str, float]
    pressure_class: Union[str, int]
    seat_material: Optional[str] = None


class PublicationRequest(BaseModel):
    """Configuration plus the SIL calculation inputs, when one was made."""
    configuration: ConfigurationRequest
    sil: Optional[SILRequest] = None


class TransitionRequest(BaseModel):
    current_status: str
    target_status: str
    configuration: Optional[ConfigurationRequest] = None
    sil: Optional[SILRequest] = None
