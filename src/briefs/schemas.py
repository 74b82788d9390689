from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator

from src.shared.schemas import FrozenCamelModel, slugify_enum


class ProjectType(str, Enum):
    LOFT_CONVERSION = "loft-conversion"
    REAR_EXTENSION = "rear-extension"
    SIDE_EXTENSION = "side-extension"
    BATHROOM_RENOVATION = "bathroom-renovation"
    KITCHEN_RENOVATION = "kitchen-renovation"
    CONSERVATORY = "conservatory"
    GARAGE_CONVERSION = "garage-conversion"
    BASEMENT_CONVERSION = "basement-conversion"
    ROOF_REPLACEMENT = "roof-replacement"
    OTHER = "other"


class MeasurementUnit(str, Enum):
    METERS = "meters"
    FEET = "feet"


class QualityLevel(str, Enum):
    BUDGET = "budget"
    STANDARD = "standard"
    PREMIUM = "premium"
    LUXURY = "luxury"


class TimelineFlexibility(str, Enum):
    RIGID = "rigid"
    FLEXIBLE = "flexible"
    VERY_FLEXIBLE = "very-flexible"


class DetailLevel(str, Enum):
    BASIC = "basic"
    STANDARD = "standard"
    DETAILED = "detailed"
    COMPREHENSIVE = "comprehensive"


class CostMethodology(str, Enum):
    NRM1 = "NRM1"  # order-of-cost elemental totals
    NRM2 = "NRM2"  # detailed measured quantities


class PropertyAddress(FrozenCamelModel):
    line1: str = ""
    line2: Optional[str] = None
    city: Optional[str] = None
    postcode: Optional[str] = None


class Dimensions(FrozenCamelModel):
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    area: Optional[float] = None
    unit: MeasurementUnit = MeasurementUnit.METERS


class MaterialPreferences(FrozenCamelModel):
    quality: QualityLevel = QualityLevel.STANDARD
    preferences: List[str] = Field(default_factory=list)
    restrictions: List[str] = Field(default_factory=list)

    @field_validator("quality", mode="before")
    @classmethod
    def _slug_quality(cls, v):
        return slugify_enum(v)


class Timeline(FrozenCamelModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    flexibility: TimelineFlexibility = TimelineFlexibility.FLEXIBLE


class BudgetRange(FrozenCamelModel):
    min: float = 0.0
    max: float = 0.0
    currency: str = "GBP"


class ProjectRequirements(FrozenCamelModel):
    description: str = ""
    dimensions: Optional[Dimensions] = None
    materials: MaterialPreferences = Field(default_factory=MaterialPreferences)
    timeline: Optional[Timeline] = None
    budget: Optional[BudgetRange] = None
    special_requirements: List[str] = Field(default_factory=list)


class CouncilData(FrozenCamelModel):
    conservation_area: bool = False
    listed_building: bool = False
    planning_restrictions: List[str] = Field(default_factory=list)
    local_authority: Optional[str] = None


class DocumentReference(FrozenCamelModel):
    """Uploaded plan or survey, with whatever text the document store extracted."""
    id: str
    filename: str = ""
    classification: Optional[str] = None
    extracted_text: Optional[str] = None


class GenerationPreferences(FrozenCamelModel):
    methodology: CostMethodology = CostMethodology.NRM1
    detail_level: DetailLevel = DetailLevel.STANDARD
    riba_stages: List[int] = Field(default_factory=list)
    quality_level: Optional[QualityLevel] = None
    sustainability_focus: bool = False
    include_contingency: bool = True
    contingency_percentage: float = 10.0
    custom_requirements: List[str] = Field(default_factory=list)
    exclude_items: List[str] = Field(default_factory=list)

    @field_validator("methodology", mode="before")
    @classmethod
    def _upper_methodology(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("detail_level", "quality_level", mode="before")
    @classmethod
    def _slug_levels(cls, v):
        return slugify_enum(v)


class ProjectBrief(FrozenCamelModel):
    project_id: str
    project_type: ProjectType
    property_address: PropertyAddress = Field(default_factory=PropertyAddress)
    requirements: ProjectRequirements = Field(default_factory=ProjectRequirements)
    council_data: Optional[CouncilData] = None
    preferences: GenerationPreferences = Field(default_factory=GenerationPreferences)
    documents: List[DocumentReference] = Field(default_factory=list)

    @field_validator("project_type", mode="before")
    @classmethod
    def _slug_project_type(cls, v):
        return slugify_enum(v)


class GenerationRequest(ProjectBrief):
    """A brief plus the caller's deadline for the whole pipeline."""
    timeout_seconds: Optional[float] = Field(default=None, gt=0)

    def to_brief(self) -> ProjectBrief:
        return ProjectBrief.model_validate(self.model_dump(exclude={"timeout_seconds"}))


class NormalizedBrief(FrozenCamelModel):
    """Canonical brief: metric units, resolved defaults, no missing sections."""
    project_id: str
    project_type: ProjectType
    property_address: PropertyAddress
    region: str
    description: str
    dimensions: Optional[Dimensions] = None
    floor_area: Optional[float] = None
    material_quality: QualityLevel
    material_categories: List[str]
    material_preferences: List[str] = Field(default_factory=list)
    material_restrictions: List[str] = Field(default_factory=list)
    budget: Optional[BudgetRange] = None
    timeline: Optional[Timeline] = None
    special_requirements: List[str] = Field(default_factory=list)
    council: CouncilData
    riba_stages: List[int]
    specification_categories: List[str]
    work_phases: List[str]
    deliverables: List[str]
    detail_level: DetailLevel
    quality_level: QualityLevel
    sustainability_focus: bool = False
    methodology: CostMethodology
    include_contingency: bool = True
    contingency_percentage: float = 10.0
    custom_requirements: List[str] = Field(default_factory=list)
    exclude_items: List[str] = Field(default_factory=list)
    documents: List[DocumentReference] = Field(default_factory=list)

    @property
    def has_heritage_constraints(self) -> bool:
        return (
            self.council.conservation_area
            or self.council.listed_building
            or bool(self.council.planning_restrictions)
        )
