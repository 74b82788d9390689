"""Append-only Scope of Work storage.

Each save inserts a new row. The version number is ``max + 1`` for the
project, guarded by the unique ``version_key``: when two writers pick the
same number, the loser's commit fails, it rolls back and tries again with a
fresh maximum. Callers only ever see ``ScopeOfWork`` domain objects.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.briefs.schemas import NormalizedBrief
from src.compliance.policy import ApprovalPolicy
from src.compliance.schemas import ComplianceCheck, ValidationResult
from src.config import settings
from src.core.exceptions import ApprovalBlockedError, NotFoundError, VersionConflictError
from src.shared.models import utcnow
from src.sow.models import ScopeOfWorkRecord, version_key
from src.sow.schemas import ScopeOfWork, SoWStatus

logger = logging.getLogger(__name__)

_CONTENT_FIELDS = {"riba_stages", "specifications", "materials", "work_phases", "deliverables", "cost_estimate"}


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SoWRepository:
    def __init__(self, db: AsyncSession, max_attempts: Optional[int] = None):
        self.db = db
        self.max_attempts = max_attempts or settings.SOW_VERSION_ASSIGN_ATTEMPTS

    async def save(self, sow: ScopeOfWork, brief: Optional[NormalizedBrief] = None) -> ScopeOfWork:
        """Insert ``sow`` as the next version of its project and return the stored copy."""
        content = sow.model_dump(mode="json", include=_CONTENT_FIELDS)
        brief_data = brief.model_dump(mode="json") if brief else None

        for attempt in range(1, self.max_attempts + 1):
            version = await self._next_version(sow.project_id)
            record = ScopeOfWorkRecord(
                id=sow.id,
                project_id=sow.project_id,
                version_number=version,
                version_key=version_key(sow.project_id, version),
                status=sow.status,
                content_data=content,
                brief_data=brief_data,
                validation_results=[r.model_dump(mode="json") for r in sow.validation_results],
                compliance_checks=[c.model_dump(mode="json") for c in sow.compliance_checks],
                generation_metadata=sow.generation_metadata.model_dump(mode="json"),
                generated_at=sow.generated_at,
                approved_at=sow.approved_at,
            )
            self.db.add(record)
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                logger.warning(
                    f"Version {version} of project {sow.project_id} was taken concurrently "
                    f"(attempt {attempt}/{self.max_attempts})",
                    extra={"project_id": sow.project_id, "version": version, "attempt": attempt},
                )
                continue
            logger.info(
                f"Stored Scope of Work {sow.id} as version {version} of project {sow.project_id}",
                extra={"project_id": sow.project_id, "sow_id": str(sow.id), "version": version, "attempt": attempt},
            )
            return self._to_domain(record)

        raise VersionConflictError(
            f"Could not assign a version for project {sow.project_id} after {self.max_attempts} attempts"
        )

    async def get_by_id(self, sow_id: UUID) -> Optional[ScopeOfWork]:
        record = await self._get_record(sow_id)
        return self._to_domain(record) if record else None

    async def get_versions_by_project(self, project_id: str) -> List[ScopeOfWork]:
        """All versions of a project, oldest first."""
        result = await self.db.execute(
            select(ScopeOfWorkRecord)
            .where(ScopeOfWorkRecord.project_id == project_id)
            .order_by(ScopeOfWorkRecord.version_number)
        )
        return [self._to_domain(r) for r in result.scalars().all()]

    async def get_brief(self, sow_id: UUID) -> Optional[NormalizedBrief]:
        record = await self._get_record(sow_id)
        if record is None or not record.brief_data:
            return None
        return NormalizedBrief.model_validate(record.brief_data)

    async def approve(self, sow_id: UUID, policy: ApprovalPolicy) -> ScopeOfWork:
        """Move a version to ``approved``. Already-approved versions are returned unchanged."""
        record = await self._get_record(sow_id)
        if record is None:
            raise NotFoundError(f"Scope of Work {sow_id} not found")
        if record.status == SoWStatus.APPROVED:
            return self._to_domain(record)

        results = [ValidationResult.model_validate(r) for r in record.validation_results or []]
        try:
            policy.enforce(results)
        except ApprovalBlockedError as e:
            logger.warning(
                f"Approval of Scope of Work {sow_id} blocked: {'; '.join(e.reasons)}",
                extra={"project_id": record.project_id, "sow_id": str(sow_id), "version": record.version_number},
            )
            raise

        record.status = SoWStatus.APPROVED
        record.approved_at = utcnow()
        await self.db.commit()
        logger.info(
            f"Approved Scope of Work {sow_id} (project {record.project_id} v{record.version_number})",
            extra={"project_id": record.project_id, "sow_id": str(sow_id), "version": record.version_number},
        )
        return self._to_domain(record)

    async def append_validation_results(
        self,
        sow_id: UUID,
        results: Sequence[ValidationResult],
        checks: Sequence[ComplianceCheck],
    ) -> ScopeOfWork:
        record = await self._get_record(sow_id)
        if record is None:
            raise NotFoundError(f"Scope of Work {sow_id} not found")
        # new list objects so the JSON columns register as changed
        record.validation_results = list(record.validation_results or []) + [
            r.model_dump(mode="json") for r in results
        ]
        record.compliance_checks = list(record.compliance_checks or []) + [
            c.model_dump(mode="json") for c in checks
        ]
        await self.db.commit()
        return self._to_domain(record)

    async def _get_record(self, sow_id: UUID) -> Optional[ScopeOfWorkRecord]:
        result = await self.db.execute(select(ScopeOfWorkRecord).where(ScopeOfWorkRecord.id == sow_id))
        return result.scalar_one_or_none()

    async def _next_version(self, project_id: str) -> int:
        result = await self.db.execute(
            select(func.max(ScopeOfWorkRecord.version_number)).where(ScopeOfWorkRecord.project_id == project_id)
        )
        return (result.scalar() or 0) + 1

    @staticmethod
    def _to_domain(record: ScopeOfWorkRecord) -> ScopeOfWork:
        return ScopeOfWork.model_validate({
            **record.content_data,
            "id": record.id,
            "project_id": record.project_id,
            "version": record.version_number,
            "status": record.status,
            "validation_results": record.validation_results or [],
            "compliance_checks": record.compliance_checks or [],
            "generation_metadata": record.generation_metadata,
            "generated_at": _aware(record.generated_at),
            "approved_at": _aware(record.approved_at),
        })
