from sqlalchemy import Column, DateTime, Enum as SAEnum, Integer, String

from src.database import Base
from src.shared.models import AuditMixin, JSONType
from src.sow.schemas import SoWStatus


class ScopeOfWorkRecord(Base, AuditMixin):
    """One immutable Scope of Work version. Rows are only ever inserted,
    apart from the approval stamp and appended validation results."""
    __tablename__ = "scope_of_work_versions"

    project_id = Column(String, nullable=False, index=True)
    version_number = Column(Integer, nullable=False)
    # "{project_id}#v{version:06d}", unique so concurrent writers can't share a version
    version_key = Column(String, nullable=False, unique=True)
    status = Column(SAEnum(SoWStatus, name="sowstatus"), nullable=False, default=SoWStatus.GENERATED)

    content_data = Column(JSONType, nullable=False)
    brief_data = Column(JSONType, nullable=True)
    validation_results = Column(JSONType, nullable=False, default=list)
    compliance_checks = Column(JSONType, nullable=False, default=list)
    generation_metadata = Column(JSONType, nullable=False)

    generated_at = Column(DateTime(timezone=True), nullable=False)
    approved_at = Column(DateTime(timezone=True), nullable=True)


def version_key(project_id: str, version: int) -> str:
    return f"{project_id}#v{version:06d}"
