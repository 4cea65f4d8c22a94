"""
Settlement Service - pickup verification & points settlement

Moves a submission from unverified claim to confirmed ledger credit:

    validate -> upload photo -> create pending request -> classify
             -> persist verdict (verified | rejected) -> credit if verified

Guarantees:
- No pending record exists without a stored photo (upload happens first)
- Classifier failure leaves the request pending; retry with classify_pending()
- The verdict is persisted before any credit is attempted
- Credits are exactly-once per request (ledger keys them by request id)
- Verified-but-uncredited is raised as InconsistencyError and repaired by
  retry_credit() or reconcile()

The service holds no per-submission state. Every step after creation is
resumable from the pickup request id.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from numbers import Real
from typing import Dict, List, Optional

from models.domain.pickup import (
    PickupRequest,
    VerificationStatus,
    VerificationVerdict,
    WasteCategory,
)
from models.domain.points import UserPoints
from services.errors import (
    InconsistencyError,
    PickupNotFoundError,
    PipelineError,
    UploadError,
    ValidationError,
)

logger = logging.getLogger(__name__)

SETTLEMENT_QUEUE = 'queue:settlement:high'


@dataclass
class SettlementOutcome:
    """Where a pickup request ended up after a settlement call."""
    request: PickupRequest
    credited: bool = False
    user_points: Optional[UserPoints] = None

    @property
    def message(self) -> str:
        """User-facing summary. Rejections are outcomes, not failures."""
        request = self.request
        if request.is_verified:
            if self.credited:
                return f"Verified! {request.calculated_points} points added to your account."
            return "Verified."
        if request.is_rejected:
            verdict = request.ai_verification_result
            if verdict and verdict.reasoning:
                return f"Not verified: {verdict.reasoning}"
            return "Not verified."
        return "Verification pending."

    def to_dict(self) -> dict:
        return {
            "request": self.request.to_dict(),
            "credited": self.credited,
            "total_points": self.user_points.total_points if self.user_points else None,
            "message": self.message,
        }


@dataclass
class ReconciliationReport:
    """Result of one reconciliation pass."""
    credited: List[str] = field(default_factory=list)
    stale_pending: List[str] = field(default_factory=list)
    requeued: List[str] = field(default_factory=list)  # stale ids not already queued
    failures: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "credited": self.credited,
            "stale_pending": self.stale_pending,
            "requeued": self.requeued,
            "failures": self.failures,
        }


class SettlementService:
    """
    Orchestrates the settlement pipeline.

    Collaborators:
        pickups: PickupRequestRepository
        ledger: PointsLedgerRepository
        classifier: VerificationClassifier
        image_storage: ImageStorage
        job_queue: optional JobQueue, used to hand stale requests to the worker
    """

    def __init__(self, pickups, ledger, classifier, image_storage, job_queue=None):
        self.pickups = pickups
        self.ledger = ledger
        self.classifier = classifier
        self.image_storage = image_storage
        self.job_queue = job_queue

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    async def submit(
        self,
        submitter_id: str,
        address: str,
        category,
        weight_kg: float,
        image: bytes,
        content_type: Optional[str] = None,
    ) -> SettlementOutcome:
        """
        Run the whole pipeline for a new submission.

        Returns:
            SettlementOutcome (verified + credited, or rejected)

        Raises:
            ValidationError: missing/malformed input (nothing written)
            UploadError: photo storage failed (nothing written)
            StoreError: request creation or verdict write failed
            ClassifierError: classification failed; request stays pending,
                retry with classify_pending(e.request_id)
            InconsistencyError: verified but credit failed; repair with
                retry_credit(e.request_id)
        """
        category, weight_kg = self._validate_submission(submitter_id, address, category, weight_kg, image)

        try:
            image_ref = await self.image_storage.upload(image, content_type=content_type, prefix=submitter_id)
        except PipelineError as e:
            logger.warning(f"Upload failed for {submitter_id}: {e.message}")
            raise e.with_context(step="upload")

        try:
            request = await self.pickups.create(
                submitter_id=submitter_id,
                address=address.strip(),
                category=category,
                weight_kg=weight_kg,
                image_ref=image_ref,
            )
        except PipelineError as e:
            logger.error(f"Could not create pickup for {submitter_id}: {e.message}")
            raise e.with_context(step="create")

        return await self._classify_and_settle(request, image)

    # =========================================================================
    # RESUMABLE STEPS
    # =========================================================================

    async def classify_pending(self, request_id: str, image: Optional[bytes] = None) -> SettlementOutcome:
        """
        Retry classification for an existing request.

        Uses `image` when given, otherwise downloads the stored photo.
        A request that is already terminal is not re-classified; its
        settlement is re-run instead (idempotent).
        """
        request = await self._load(request_id, step="classify")

        if request.verification_status.is_terminal:
            logger.info(f"Pickup {request_id} already {request.verification_status.value}, re-running settlement only")
            return await self._settle_terminal(request)

        if image is None:
            if not request.image_ref:
                raise UploadError(
                    f"Pickup {request_id} has no stored photo",
                    step="download",
                    request_id=request_id,
                )
            try:
                image = await self.image_storage.download(request.image_ref)
            except PipelineError as e:
                raise e.with_context(step="download", request_id=request_id)

        return await self._classify_and_settle(request, image)

    async def settle(self, request_id: str, verdict: VerificationVerdict) -> SettlementOutcome:
        """
        Persist a verdict and credit if verified.

        Safe to re-run: the status write is conditional on pending, and the
        ledger ignores a second credit for the same request.
        """
        status = VerificationStatus.VERIFIED if verdict.is_verified else VerificationStatus.REJECTED

        try:
            request = await self.pickups.update_verification(request_id, status, verdict)
        except PipelineError as e:
            logger.error(f"Could not persist verdict for {request_id}: {e.message}")
            raise e.with_context(step="update_verification", request_id=request_id)

        if not request.is_verified:
            logger.info(f"❌ Pickup {request_id} rejected: {verdict.reasoning}")
            return SettlementOutcome(request=request)

        return await self._credit(request)

    async def retry_credit(self, request_id: str) -> SettlementOutcome:
        """Re-attempt the ledger credit for a verified request (idempotent)."""
        request = await self._load(request_id, step="credit")

        if not request.is_verified:
            raise ValidationError(
                f"Pickup {request_id} is {request.verification_status.value}; only verified requests are credited",
                step="credit",
                request_id=request_id,
            )

        return await self._credit(request)

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    async def reconcile(self, stale_after: timedelta, limit: int = 100) -> ReconciliationReport:
        """
        Repair pass.

        1. Credit every verified request that has no ledger credit.
        2. Collect pending requests older than `stale_after` and, when a job
           queue is configured, enqueue them for reclassification. A request
           is queued at most once per `stale_after` window.

        Per-request credit failures are recorded in the report; listing
        failures propagate.
        """
        report = ReconciliationReport()

        for request in await self.pickups.list_verified_uncredited(limit=limit):
            try:
                await self._credit(request)
            except InconsistencyError as e:
                report.failures[request.id] = e.message
                continue
            report.credited.append(request.id)
            logger.info(f"🔧 Reconciled credit for pickup {request.id}")

        cutoff = datetime.now(timezone.utc) - stale_after
        for request in await self.pickups.list_stale_pending(cutoff, limit=limit):
            report.stale_pending.append(request.id)
            if self.job_queue is None:
                continue
            queued = await self.enqueue_classification(
                request.id, reason="stale", dedupe_ttl=int(stale_after.total_seconds()),
            )
            if queued:
                report.requeued.append(request.id)

        if report.credited or report.stale_pending or report.failures:
            logger.info(
                f"Reconciliation: credited={len(report.credited)} "
                f"stale_pending={len(report.stale_pending)} requeued={len(report.requeued)} "
                f"failures={len(report.failures)}"
            )
        return report

    async def enqueue_classification(
        self,
        request_id: str,
        reason: str = "retry",
        dedupe_ttl: Optional[int] = None,
    ) -> bool:
        """
        Hand a pending request to the settlement worker.

        With dedupe_ttl, a request already queued within that many seconds
        is not queued again. Returns True if a job was pushed.
        """
        if self.job_queue is None:
            raise RuntimeError("No job queue configured")
        job = {
            'request_id': request_id,
            'reason': reason,
            'retry_count': 0,
        }
        if dedupe_ttl is None:
            await self.job_queue.enqueue(SETTLEMENT_QUEUE, job)
        elif not await self.job_queue.enqueue_once(SETTLEMENT_QUEUE, job, f"settlement:{request_id}", dedupe_ttl):
            logger.debug(f"Pickup {request_id} already queued, skipping")
            return False
        logger.info(f"Queued pickup {request_id} for classification ({reason})")
        return True

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _classify_and_settle(self, request: PickupRequest, image: bytes) -> SettlementOutcome:
        try:
            verdict = await self.classifier.verify(image, request.category)
        except PipelineError as e:
            logger.warning(f"Classification failed for {request.id}, left pending: {e.message}")
            raise e.with_context(step="classify", request_id=request.id)

        return await self.settle(request.id, verdict)

    async def _settle_terminal(self, request: PickupRequest) -> SettlementOutcome:
        if request.is_verified:
            return await self._credit(request)
        return SettlementOutcome(request=request)

    async def _credit(self, request: PickupRequest) -> SettlementOutcome:
        if request.calculated_points <= 0:
            return SettlementOutcome(request=request)

        try:
            points = await self.ledger.credit(
                request.submitter_id,
                request.calculated_points,
                pickup_request_id=request.id,
            )
        except PipelineError as e:
            logger.error(f"⚠️ Pickup {request.id} verified but credit failed: {e.message}")
            raise InconsistencyError(
                f"Pickup {request.id} is verified but its {request.calculated_points} points "
                f"were not credited: {e.message}",
                step="credit",
                request_id=request.id,
            ) from e

        logger.info(f"✅ Pickup {request.id} settled: +{request.calculated_points} pts for {request.submitter_id}")
        return SettlementOutcome(request=request, credited=True, user_points=points)

    async def _load(self, request_id: str, step: str) -> PickupRequest:
        try:
            request = await self.pickups.get_by_id(request_id)
        except PipelineError as e:
            raise e.with_context(step=step, request_id=request_id)

        if request is None:
            raise PickupNotFoundError(f"Pickup request {request_id} not found", step=step, request_id=request_id)
        return request

    def _validate_submission(self, submitter_id, address, category, weight_kg, image):
        missing = [
            name for name, value in (
                ("submitter_id", submitter_id),
                ("address", address.strip() if isinstance(address, str) else address),
                ("category", category),
                ("weight_kg", weight_kg),
                ("image", image),
            )
            if value is None or value == "" or value == b""
        ]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", step="validate")

        if not isinstance(submitter_id, str) or not submitter_id.strip():
            raise ValidationError("submitter_id must be a non-empty string", step="validate")
        if not isinstance(address, str):
            raise ValidationError("address must be a string", step="validate")

        try:
            category = WasteCategory.parse(category)
        except ValueError as e:
            raise ValidationError(str(e), step="validate") from e

        if isinstance(weight_kg, bool) or not isinstance(weight_kg, Real):
            raise ValidationError("weight_kg must be a number", step="validate")
        if not math.isfinite(weight_kg) or weight_kg <= 0:
            raise ValidationError(f"weight_kg must be positive, got {weight_kg}", step="validate")

        if not isinstance(image, (bytes, bytearray)):
            raise ValidationError("image must be raw bytes", step="validate")

        return category, float(weight_kg)
