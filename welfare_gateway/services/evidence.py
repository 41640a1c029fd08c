"""Evidence store - receipts backing a disbursement"""

import logging
import uuid
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from welfare_gateway.domain.exceptions import InvalidStateTransition, NotFound
from welfare_gateway.domain.models import ArtifactStatus, RequestState
from welfare_gateway.infrastructure.database.models import EvidenceArtifact
from welfare_gateway.infrastructure.database.repositories import EvidenceRepository, RequestRepository

logger = logging.getLogger(__name__)


class EvidenceStore:
    """Attaches and voids receipt references.

    Only the opaque storage locator is kept; file bytes stay in the document
    store. Attaching is allowed in every state, terminal ones included.
    """

    def __init__(self, db: Session):
        self.db = db
        self.artifacts = EvidenceRepository(db)
        self.requests = RequestRepository(db)

    def attach_evidence(
        self,
        request_id: uuid.UUID,
        uploader_id: str,
        locator: str,
        declared_amount: Optional[Decimal] = None,
    ) -> EvidenceArtifact:
        """Record a receipt for a request and commit it"""
        if self.requests.get(request_id) is None:
            raise NotFound(f"Request {request_id} not found")
        artifact = self.artifacts.create(request_id, uploader_id, locator, declared_amount)
        self.db.commit()
        logger.info(
            "Evidence attached",
            extra={"request_id": str(request_id), "artifact_id": artifact.id, "uploader_id": uploader_id},
        )
        return artifact

    def is_active_for(self, request_id: uuid.UUID, artifact_id: str) -> bool:
        """True when ``artifact_id`` is an active receipt of this request"""
        artifact = self.artifacts.get(artifact_id)
        return (
            artifact is not None
            and artifact.request_id == request_id
            and artifact.status == ArtifactStatus.ACTIVE.value
        )

    def has_active_evidence(self, request_id: uuid.UUID) -> bool:
        return self.artifacts.count_active(request_id) > 0

    def list_for_request(self, request_id: uuid.UUID) -> List[EvidenceArtifact]:
        return self.artifacts.list_for_request(request_id)

    def void_evidence(self, artifact_id: str, actor_id: str) -> EvidenceArtifact:
        """Mark a receipt void. Receipts of approved requests stay active."""
        artifact = self.artifacts.get(artifact_id)
        if artifact is None:
            raise NotFound(f"Receipt {artifact_id} not found")
        request = self.requests.get(artifact.request_id)
        if request is not None and request.state == RequestState.APPROVED.value:
            raise InvalidStateTransition("Receipts backing an approved disbursement cannot be voided")
        artifact.status = ArtifactStatus.VOID.value
        self.db.commit()
        logger.info("Evidence voided", extra={"artifact_id": artifact_id, "actor_id": actor_id})
        return artifact
