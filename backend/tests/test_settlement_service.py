"""
Settlement pipeline: ordering, exactly-once credit, and failure recovery.

Runs SettlementService over the in-memory collaborators in fakes.py.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from fakes import FakeClassifier, FakeImageStorage, make_verdict
from models.domain.pickup import VerificationStatus, WasteCategory
from services.errors import (
    ClassifierExhaustedError,
    ClassifierTransportError,
    InconsistencyError,
    PickupNotFoundError,
    StoreError,
    UploadError,
    ValidationError,
    VerificationConflictError,
)
from services.settlement_service import SETTLEMENT_QUEUE, SettlementOutcome, SettlementService


async def submit(service, jpeg_bytes, category=WasteCategory.SMARTPHONES_TABLETS, weight=5, user='user-1'):
    return await service.submit(
        submitter_id=user,
        address='12 Green St',
        category=category,
        weight_kg=weight,
        image=jpeg_bytes,
    )


# =============================================================================
# SUBMISSION
# =============================================================================

class TestSubmit:

    @pytest.mark.asyncio
    async def test_verified_submission_credits_points(self, service, ledger, storage, jpeg_bytes):
        outcome = await submit(service, jpeg_bytes)

        assert outcome.request.is_verified
        assert outcome.request.calculated_points == 250
        assert outcome.credited is True
        assert outcome.user_points.total_points == 250
        assert outcome.message == "Verified! 250 points added to your account."
        assert ledger.totals['user-1'] == 250
        assert outcome.request.image_ref in storage.objects

    @pytest.mark.asyncio
    async def test_verified_laptops_end_to_end(self, service, pickups, ledger, jpeg_bytes):
        outcome = await submit(service, jpeg_bytes, category=WasteCategory.LAPTOPS_COMPUTERS, weight=10)

        stored = pickups.requests[outcome.request.id]
        assert stored.verification_status == VerificationStatus.VERIFIED
        assert stored.calculated_points == 300
        assert ledger.totals['user-1'] == 300
        assert list(ledger.credits) == [stored.id]

    @pytest.mark.asyncio
    async def test_rejected_submission_never_credits(self, pickups, ledger, storage, jpeg_bytes):
        classifier = FakeClassifier(make_verdict(False, reasoning="Image shows a sofa"))
        service = SettlementService(pickups, ledger, classifier, storage)

        outcome = await submit(service, jpeg_bytes)

        assert outcome.request.is_rejected
        assert outcome.credited is False
        assert outcome.message == "Not verified: Image shows a sofa"
        assert ledger.totals == {}
        assert ledger.credit_calls == 0
        assert outcome.request.ai_verification_result.reasoning == "Image shows a sofa"

    @pytest.mark.asyncio
    async def test_classifier_sees_claimed_category(self, service, classifier, jpeg_bytes):
        await submit(service, jpeg_bytes, category="Cables & Chargers", weight=3)

        image, category = classifier.calls[0]
        assert image == jpeg_bytes
        assert category is WasteCategory.CABLES_CHARGERS

    @pytest.mark.parametrize("field,value", [
        ("submitter_id", ""),
        ("address", "   "),
        ("category", "Furniture"),
        ("weight_kg", 0),
        ("weight_kg", -1.5),
        ("weight_kg", "5"),
        ("weight_kg", True),
        ("image", b""),
    ])
    @pytest.mark.asyncio
    async def test_invalid_input_touches_nothing(self, service, pickups, storage, jpeg_bytes, field, value):
        kwargs = dict(
            submitter_id='user-1',
            address='12 Green St',
            category=WasteCategory.SMARTPHONES_TABLETS,
            weight_kg=5,
            image=jpeg_bytes,
        )
        kwargs[field] = value

        with pytest.raises(ValidationError) as exc_info:
            await service.submit(**kwargs)

        assert exc_info.value.step == "validate"
        assert exc_info.value.retryable is False
        assert storage.objects == {}
        assert pickups.requests == {}

    @pytest.mark.asyncio
    async def test_upload_failure_creates_no_record(self, pickups, ledger, classifier, jpeg_bytes):
        service = SettlementService(pickups, ledger, classifier, FakeImageStorage(fail_upload=True))

        with pytest.raises(UploadError) as exc_info:
            await submit(service, jpeg_bytes)

        assert exc_info.value.step == "upload"
        assert exc_info.value.request_id is None
        assert pickups.requests == {}
        assert classifier.calls == []

    @pytest.mark.asyncio
    async def test_create_failure(self, service, pickups, classifier, jpeg_bytes):
        pickups.fail_create = True

        with pytest.raises(StoreError) as exc_info:
            await submit(service, jpeg_bytes)

        assert exc_info.value.step == "create"
        assert classifier.calls == []

    @pytest.mark.asyncio
    async def test_classifier_failure_leaves_request_pending(self, pickups, ledger, storage, jpeg_bytes):
        classifier = FakeClassifier(ClassifierExhaustedError("All classifier models failed"))
        service = SettlementService(pickups, ledger, classifier, storage)

        with pytest.raises(ClassifierExhaustedError) as exc_info:
            await submit(service, jpeg_bytes)

        error = exc_info.value
        assert error.step == "classify"
        assert error.retryable is True
        request = pickups.requests[error.request_id]
        assert request.is_pending
        assert request.ai_verification_result is None
        assert ledger.credit_calls == 0

    @pytest.mark.asyncio
    async def test_verdict_write_failure_does_not_credit(self, service, pickups, ledger, jpeg_bytes):
        pickups.fail_update = True

        with pytest.raises(StoreError) as exc_info:
            await submit(service, jpeg_bytes)

        assert exc_info.value.step == "update_verification"
        assert ledger.credit_calls == 0
        assert pickups.requests[exc_info.value.request_id].is_pending

    @pytest.mark.asyncio
    async def test_credit_failure_is_an_inconsistency(self, service, pickups, ledger, jpeg_bytes):
        ledger.failures_remaining = 1

        with pytest.raises(InconsistencyError) as exc_info:
            await submit(service, jpeg_bytes)

        error = exc_info.value
        assert error.step == "credit"
        assert isinstance(error.__cause__, StoreError)
        assert pickups.requests[error.request_id].is_verified
        assert ledger.totals == {}

    @pytest.mark.asyncio
    async def test_zero_point_request_verifies_without_credit(self, service, ledger, jpeg_bytes):
        # 20 pts/kg * 0.01 kg floors to 0
        outcome = await submit(service, jpeg_bytes, category=WasteCategory.CABLES_CHARGERS, weight=0.01)

        assert outcome.request.is_verified
        assert outcome.request.calculated_points == 0
        assert outcome.credited is False
        assert ledger.credit_calls == 0


# =============================================================================
# EXACTLY-ONCE CREDIT
# =============================================================================

class TestExactlyOnce:

    @pytest.mark.asyncio
    async def test_settle_twice_credits_once(self, service, pickups, ledger, jpeg_bytes):
        request = await pickups.create('user-1', 'addr', WasteCategory.SMARTPHONES_TABLETS, 5)
        verdict = make_verdict(True)

        first = await service.settle(request.id, verdict)
        second = await service.settle(request.id, verdict)

        assert first.credited and second.credited
        assert ledger.totals['user-1'] == 250
        assert len(ledger.credits) == 1

    @pytest.mark.asyncio
    async def test_concurrent_settles_credit_once(self, service, pickups, ledger):
        request = await pickups.create('user-1', 'addr', WasteCategory.SMARTPHONES_TABLETS, 5)
        verdict = make_verdict(True)

        await asyncio.gather(*(service.settle(request.id, verdict) for _ in range(5)))

        assert ledger.totals['user-1'] == 250

    @pytest.mark.asyncio
    async def test_concurrent_credits_for_same_user_are_lossless(self, service, pickups, ledger):
        """
        Orchestrator side only: two settles interleave without losing a
        credit. The in-memory ledger serializes under a lock, so this does
        not prove the SQL is atomic; test_postgres_integration.py covers the
        real upsert against a live database.
        """
        a = await pickups.create('user-1', 'addr', WasteCategory.SMARTPHONES_TABLETS, 2)   # 100
        b = await pickups.create('user-1', 'addr', WasteCategory.CABLES_CHARGERS, 2.5)     # 50

        await asyncio.gather(
            service.settle(a.id, make_verdict(True)),
            service.settle(b.id, make_verdict(True)),
        )

        assert ledger.totals['user-1'] == 150

    @pytest.mark.asyncio
    async def test_terminal_status_never_flips(self, service, pickups, ledger):
        request = await pickups.create('user-1', 'addr', WasteCategory.SMARTPHONES_TABLETS, 5)
        await service.settle(request.id, make_verdict(False))

        with pytest.raises(VerificationConflictError):
            await service.settle(request.id, make_verdict(True))

        assert pickups.requests[request.id].is_rejected
        assert ledger.totals == {}

    @pytest.mark.asyncio
    async def test_first_verdict_wins(self, service, pickups):
        request = await pickups.create('user-1', 'addr', WasteCategory.SMARTPHONES_TABLETS, 5)
        first = make_verdict(True, reasoning="first")

        await service.settle(request.id, first)
        outcome = await service.settle(request.id, make_verdict(True, reasoning="second"))

        assert outcome.request.ai_verification_result == first


# =============================================================================
# RESUMABLE STEPS
# =============================================================================

class TestRecovery:

    @pytest.mark.asyncio
    async def test_classify_pending_after_classifier_outage(self, pickups, ledger, storage, jpeg_bytes):
        classifier = FakeClassifier(ClassifierTransportError("timeout"), make_verdict(True))
        service = SettlementService(pickups, ledger, classifier, storage)

        with pytest.raises(ClassifierTransportError) as exc_info:
            await submit(service, jpeg_bytes)

        outcome = await service.classify_pending(exc_info.value.request_id)

        assert outcome.request.is_verified
        assert ledger.totals['user-1'] == 250
        assert storage.downloads == 1
        assert classifier.calls[1][0] == jpeg_bytes

    @pytest.mark.asyncio
    async def test_classify_pending_with_supplied_image(self, service, pickups, storage, jpeg_bytes):
        request = await pickups.create('user-1', 'addr', WasteCategory.SMARTPHONES_TABLETS, 5)

        outcome = await service.classify_pending(request.id, image=jpeg_bytes)

        assert outcome.request.is_verified
        assert storage.downloads == 0

    @pytest.mark.asyncio
    async def test_classify_pending_on_terminal_request_does_not_reclassify(self, service, classifier, jpeg_bytes):
        outcome = await submit(service, jpeg_bytes)
        assert len(classifier.calls) == 1

        again = await service.classify_pending(outcome.request.id)

        assert again.request.is_verified
        assert len(classifier.calls) == 1

    @pytest.mark.asyncio
    async def test_classify_pending_without_photo(self, service, pickups):
        request = await pickups.create('user-1', 'addr', WasteCategory.SMARTPHONES_TABLETS, 5)

        with pytest.raises(UploadError) as exc_info:
            await service.classify_pending(request.id)
        assert exc_info.value.step == "download"

    @pytest.mark.asyncio
    async def test_classify_pending_unknown_request(self, service):
        with pytest.raises(PickupNotFoundError):
            await service.classify_pending('pk_zzzzzzzz')

    @pytest.mark.asyncio
    async def test_retry_credit_repairs_inconsistency(self, service, ledger, jpeg_bytes):
        ledger.failures_remaining = 1
        with pytest.raises(InconsistencyError) as exc_info:
            await submit(service, jpeg_bytes)

        outcome = await service.retry_credit(exc_info.value.request_id)
        await service.retry_credit(exc_info.value.request_id)

        assert outcome.credited
        assert ledger.totals['user-1'] == 250

    @pytest.mark.asyncio
    async def test_retry_credit_refuses_unverified(self, service, pickups):
        request = await pickups.create('user-1', 'addr', WasteCategory.SMARTPHONES_TABLETS, 5)

        with pytest.raises(ValidationError):
            await service.retry_credit(request.id)

    @pytest.mark.asyncio
    async def test_pending_request_message(self, service, pickups):
        request = await pickups.create('user-1', 'addr', WasteCategory.SMARTPHONES_TABLETS, 5)

        assert SettlementOutcome(request=request).message == "Verification pending."


# =============================================================================
# RECONCILIATION
# =============================================================================

class TestReconcile:

    @pytest.mark.asyncio
    async def test_credits_verified_uncredited(self, service, ledger, jpeg_bytes):
        ledger.failures_remaining = 1
        with pytest.raises(InconsistencyError) as exc_info:
            await submit(service, jpeg_bytes)

        report = await service.reconcile(timedelta(minutes=30))

        assert report.credited == [exc_info.value.request_id]
        assert ledger.totals['user-1'] == 250

        second = await service.reconcile(timedelta(minutes=30))
        assert second.credited == []
        assert ledger.totals['user-1'] == 250

    @pytest.mark.asyncio
    async def test_records_failures_and_continues(self, service, pickups, ledger):
        a = await pickups.create('user-1', 'addr', WasteCategory.SMARTPHONES_TABLETS, 1)
        b = await pickups.create('user-2', 'addr', WasteCategory.SMARTPHONES_TABLETS, 1)
        for request in (a, b):
            request.verification_status = VerificationStatus.VERIFIED
        ledger.failures_remaining = 1

        report = await service.reconcile(timedelta(minutes=30))

        assert list(report.failures) == [a.id]
        assert report.credited == [b.id]

    @pytest.mark.asyncio
    async def test_requeues_stale_pending(self, service, pickups, job_queue):
        stale = await pickups.create('user-1', 'addr', WasteCategory.SMARTPHONES_TABLETS, 1)
        stale.created_at = datetime.now(timezone.utc) - timedelta(hours=2)
        fresh = await pickups.create('user-1', 'addr', WasteCategory.SMARTPHONES_TABLETS, 1)

        report = await service.reconcile(timedelta(minutes=30))

        assert report.stale_pending == [stale.id]
        assert report.requeued == [stale.id]
        assert job_queue.jobs == [
            (SETTLEMENT_QUEUE, {'request_id': stale.id, 'reason': 'stale', 'retry_count': 0}),
        ]
        assert pickups.requests[fresh.id].is_pending

    @pytest.mark.asyncio
    async def test_stale_request_is_not_queued_twice(self, service, pickups, job_queue):
        stale = await pickups.create('user-1', 'addr', WasteCategory.SMARTPHONES_TABLETS, 1)
        stale.created_at = datetime.now(timezone.utc) - timedelta(hours=2)

        await service.reconcile(timedelta(minutes=30))
        second = await service.reconcile(timedelta(minutes=30))

        assert second.stale_pending == [stale.id]
        assert second.requeued == []
        assert len(job_queue.jobs) == 1
        assert job_queue.markers == {f"settlement:{stale.id}": 1800}

        # marker expired: the request is queued again
        job_queue.markers.clear()
        third = await service.reconcile(timedelta(minutes=30))
        assert third.requeued == [stale.id]
        assert len(job_queue.jobs) == 2
