from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import Field

from src.shared.models import utcnow
from src.shared.schemas import CamelModel


class ValidationType(str, Enum):
    COMPLIANCE = "compliance"
    COMPLETENESS = "completeness"
    QUALITY = "quality"
    COST = "cost"
    FEASIBILITY = "feasibility"


class IssueSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ComplianceStatus(str, Enum):
    COMPLIANT = "compliant"
    NON_COMPLIANT = "non-compliant"
    INSUFFICIENT_INFORMATION = "insufficient-information"
    NOT_APPLICABLE = "not-applicable"


class ValidationIssue(CamelModel):
    severity: IssueSeverity
    category: str
    description: str
    location: Optional[str] = None
    suggestion: Optional[str] = None


class ValidationResult(CamelModel):
    validator: str
    validation_type: ValidationType = ValidationType.COMPLIANCE
    critical: bool = False
    passed: bool
    score: float = Field(ge=0, le=100)
    issues: List[ValidationIssue] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    regulations: List[str] = Field(default_factory=list)
    insufficient_information: bool = False
    applicable: bool = True
    validated_at: datetime = Field(default_factory=utcnow)


class ComplianceCheck(CamelModel):
    checker: str
    regulations: List[str] = Field(default_factory=list)
    status: ComplianceStatus
    score: float
    critical: bool = False
    checked_at: datetime


class ValidationSummary(CamelModel):
    sow_id: Optional[UUID] = None
    overall_score: float
    passed: bool
    critical_failures: List[str] = Field(default_factory=list)
    issue_counts: Dict[str, int] = Field(default_factory=dict)
    recommendations: List[str] = Field(default_factory=list)
    results: List[ValidationResult] = Field(default_factory=list)
    compliance_checks: List[ComplianceCheck] = Field(default_factory=list)
