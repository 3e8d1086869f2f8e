"""
Unit tests for adstudio/services/resolver.py

Covers the poll and webhook paths that move a job towards a terminal state.
"""

import pytest

from adstudio.core.errors import VendorError
from adstudio.models import CreditHistory, JobStatus, ProviderId, TransactionType
from adstudio.providers import MediaResult, StatusReport
from adstudio.services import CreditLedger, JobResolver, ProcessedMedia


@pytest.fixture
def resolver(db_session, registry, mock_publisher) -> JobResolver:
    return JobResolver(db_session, registry, mock_publisher, rehost=True)


def refunds_for(db_session, job):
    return (
        db_session.query(CreditHistory)
        .filter(CreditHistory.job_id == job.id, CreditHistory.transaction_type == TransactionType.REFUND)
        .count()
    )


class TestPoll:
    """Client-driven status refresh."""

    @pytest.mark.unit
    def test_progress_is_recorded(self, resolver, make_user, make_job, kie):
        job = make_job(make_user())
        kie.status = StatusReport(JobStatus.IN_PROGRESS)

        report = resolver.poll(job)

        assert report.status == JobStatus.IN_PROGRESS
        assert job.status == JobStatus.IN_PROGRESS

    @pytest.mark.unit
    def test_completion_queues_rehosting(self, resolver, make_user, make_job, kie, mock_publisher):
        user = make_user()
        job = make_job(user)
        kie.status = StatusReport(JobStatus.COMPLETED)

        resolver.poll(job)

        assert job.status == JobStatus.IN_PROGRESS
        assert job.provider_output_urls == ["https://cdn.kie.example.com/out.png"]
        assert job.result_url is None
        mock_publisher.publish_postprocess.assert_called_once_with(str(job.id), str(user.id))

    @pytest.mark.unit
    def test_awaiting_postprocess_does_not_call_vendor(self, resolver, make_user, make_job, kie, mock_publisher):
        job = make_job(make_user())
        kie.status = StatusReport(JobStatus.COMPLETED)
        resolver.poll(job)

        assert resolver.poll(job) is None
        assert len(kie.polled) == 1
        assert mock_publisher.publish_postprocess.call_count == 1

    @pytest.mark.unit
    def test_completion_without_rehosting(self, db_session, registry, make_user, make_job, kie, mock_publisher):
        job = make_job(make_user())
        kie.status = StatusReport(JobStatus.COMPLETED)

        JobResolver(db_session, registry, mock_publisher, rehost=False).poll(job)

        assert job.status == JobStatus.COMPLETED
        assert job.result_url == "https://cdn.kie.example.com/out.png"
        assert job.thumbnail_url == job.result_url
        assert job.completed_at is not None
        mock_publisher.publish_postprocess.assert_not_called()

    @pytest.mark.unit
    def test_terminal_jobs_are_not_polled(self, resolver, make_user, make_job, kie):
        job = make_job(make_user(), status=JobStatus.COMPLETED, result_url="https://media/x.webp")

        assert resolver.poll(job) is None
        assert kie.polled == []

    @pytest.mark.unit
    def test_vendor_error_leaves_job_untouched(self, resolver, make_user, make_job, kie):
        job = make_job(make_user())
        kie.poll_error = VendorError("KIE", "HTTP 502: bad gateway")

        assert resolver.poll(job) is None
        assert job.status == JobStatus.IN_QUEUE
        assert job.error_message is None

    @pytest.mark.unit
    def test_vendor_failure_refunds(self, resolver, db_session, make_user, make_job, kie):
        user = make_user(credits=0)
        job = make_job(user, credits_used=2)
        kie.status = StatusReport(JobStatus.FAILED, error="content policy")

        resolver.poll(job)

        assert job.status == JobStatus.FAILED
        assert job.error_message == "content policy"
        assert CreditLedger(db_session).balance(user.id) == 2

    @pytest.mark.unit
    def test_completion_without_media_fails(self, resolver, db_session, make_user, make_job, kie):
        user = make_user(credits=0)
        job = make_job(user)
        kie.status = StatusReport(JobStatus.COMPLETED)
        kie.media = MediaResult([])

        resolver.poll(job)

        assert job.status == JobStatus.FAILED
        assert job.error_message == "No media generated"
        assert CreditLedger(db_session).balance(user.id) == 1


class TestCallbacks:
    """Vendor webhooks."""

    @pytest.mark.unit
    def test_callback_with_media(self, resolver, make_user, make_job, mock_publisher):
        job = make_job(make_user(), provider_task_id="kie-abc")

        applied = resolver.handle_callback(
            ProviderId.KIE, {"task_id": "kie-abc", "status": "COMPLETED", "urls": ["https://v/out.png"]}
        )

        assert applied is True
        assert job.status == JobStatus.IN_PROGRESS
        assert job.provider_output_urls == ["https://v/out.png"]
        mock_publisher.publish_postprocess.assert_called_once()

    @pytest.mark.unit
    def test_completion_callback_without_urls_fetches_result(self, resolver, make_user, make_job, kie):
        job = make_job(make_user(), provider_task_id="kie-abc")

        resolver.handle_callback(ProviderId.KIE, {"task_id": "kie-abc", "status": "COMPLETED"})

        assert job.provider_output_urls == ["https://cdn.kie.example.com/out.png"]

    @pytest.mark.unit
    def test_duplicate_failure_refunds_once(self, resolver, db_session, make_user, make_job):
        user = make_user(credits=0)
        job = make_job(user, provider_task_id="kie-abc", credits_used=3)
        payload = {"task_id": "kie-abc", "status": "FAILED", "error": "timeout upstream"}

        resolver.handle_callback(ProviderId.KIE, payload)
        resolver.handle_callback(ProviderId.KIE, payload)

        assert job.status == JobStatus.FAILED
        assert CreditLedger(db_session).balance(user.id) == 3
        assert refunds_for(db_session, job) == 1

    @pytest.mark.unit
    def test_late_callback_cannot_resurrect_cancelled_job(self, resolver, make_user, make_job):
        job = make_job(make_user(), provider_task_id="kie-abc", status=JobStatus.CANCELLED)

        resolver.handle_callback(
            ProviderId.KIE, {"task_id": "kie-abc", "status": "COMPLETED", "urls": ["https://v/out.png"]}
        )

        assert job.status == JobStatus.CANCELLED
        assert job.provider_output_urls is None

    @pytest.mark.unit
    def test_unknown_task(self, resolver):
        assert resolver.handle_callback(ProviderId.KIE, {"task_id": "nope", "status": "COMPLETED"}) is False

    @pytest.mark.unit
    def test_progress_ping_without_status(self, resolver, make_user, make_job):
        job = make_job(make_user(), provider_task_id="kie-abc")

        assert resolver.handle_callback(ProviderId.KIE, {"task_id": "kie-abc"}) is True
        assert job.status == JobStatus.IN_QUEUE


class TestFinish:
    """Post-processing results."""

    @pytest.mark.unit
    def test_finish_completes_job(self, resolver, make_user, make_job):
        job = make_job(
            make_user(),
            status=JobStatus.IN_PROGRESS,
            provider_output_urls=["https://v/out.png"],
        )

        done = resolver.finish(
            job,
            ProcessedMedia("https://media/x.webp", "https://media/x_thumb.webp", {"images": ["a", "b"]}),
        )

        assert done is True
        assert job.status == JobStatus.COMPLETED
        assert job.result_url == "https://media/x.webp"
        assert job.thumbnail_url == "https://media/x_thumb.webp"
        assert job.result_metadata == {"images": ["a", "b"]}

    @pytest.mark.unit
    def test_finish_ignores_cancelled_job(self, resolver, make_user, make_job):
        job = make_job(make_user(), status=JobStatus.CANCELLED)

        assert resolver.finish(job, ProcessedMedia("https://media/x.webp")) is False
        assert job.result_url is None
