"""Tests for the sample and bulk QC guards."""

import pytest

from conftest import make_order
from leorit import bulk_qc, sample_qc
from leorit.guard import MIN_REASON_LENGTH, check_reason

VIDEO = "https://files.example/qc.mp4"
NOW = "2026-01-01T00:00:00Z"


class TestReasonCheck:
    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_missing_reason(self, reason):
        result = check_reason(reason, "missing", "short")
        assert not result
        assert result.reason == "missing"
        assert result.gate == "reason"

    def test_short_reason_counts_stripped_length(self):
        result = check_reason("   too short   ", "missing", "short")
        assert result.reason == "short"

    def test_minimum_length_accepted(self):
        assert check_reason("x" * MIN_REASON_LENGTH, "missing", "short")


class TestSampleQC:
    def test_upload_only_from_sample_in_progress(self):
        assert sample_qc.can_upload_sample_qc(make_order(order_state="SAMPLE_IN_PROGRESS"))
        result = sample_qc.can_upload_sample_qc(make_order(order_state="SUBMITTED"))
        assert not result
        assert result.gate == "order_state"

    def test_video_required(self):
        assert not sample_qc.validate_qc_video_uploaded(make_order())
        assert sample_qc.validate_qc_video_uploaded(make_order(), VIDEO)
        assert sample_qc.validate_qc_video_uploaded(make_order(sample_qc_video_url=VIDEO))

    def test_qc_files_count_as_video(self):
        assert sample_qc.has_sample_qc_video(make_order(qc_files=[VIDEO]))

    def test_approve_needs_video(self):
        result = sample_qc.can_approve_sample(make_order(order_state="SAMPLE_QC_UPLOADED"))
        assert result.gate == "qc_video"

    def test_approve_needs_uploaded_state(self):
        order = make_order(order_state="SAMPLE_IN_PROGRESS", sample_qc_video_url=VIDEO)
        assert sample_qc.can_approve_sample(order).gate == "order_state"

    def test_approve_allowed(self):
        order = make_order(order_state="SAMPLE_QC_UPLOADED", sample_qc_video_url=VIDEO)
        assert sample_qc.can_approve_sample(order)

    def test_reject_needs_detailed_reason(self):
        order = make_order(order_state="SAMPLE_QC_UPLOADED", sample_qc_video_url=VIDEO)
        assert not sample_qc.can_reject_sample(order, None)
        assert not sample_qc.can_reject_sample(order, "bad")
        assert sample_qc.can_reject_sample(order, "Print is misaligned on the back")

    def test_reject_without_video(self):
        result = sample_qc.can_reject_sample(make_order(), "Print is misaligned")
        assert result.gate == "qc_video"

    def test_revision_needs_reason(self):
        order = make_order(order_state="SAMPLE_QC_UPLOADED", sample_qc_video_url=VIDEO)
        result = sample_qc.can_request_revision(order, "  ")
        assert "mandatory" in result.reason
        assert sample_qc.can_request_revision(order, "Use a thicker thread please")

    def test_unlock_bulk_needs_recorded_approval(self):
        # The state label alone is not enough
        order = make_order(order_state="SAMPLE_APPROVED")
        result = sample_qc.can_unlock_bulk(order)
        assert not result
        assert result.gate == "sample_approved"

        order.sample_approved_at = NOW
        assert sample_qc.can_unlock_bulk(order)

    def test_unlock_bulk_needs_sample_approved_state(self):
        order = make_order(order_state="SAMPLE_QC_UPLOADED", sample_approved_at=NOW)
        assert sample_qc.can_unlock_bulk(order).gate == "order_state"

    def test_metadata(self):
        order = make_order(order_mode="sample_only")
        metadata = sample_qc.qc_action_metadata("sample_approved", order, qc_record_id="r1")
        assert metadata["order_mode"] == "sample_only"
        assert metadata["qc_record_id"] == "r1"


class TestBulkQC:
    def test_upload_only_from_bulk_in_production(self):
        assert bulk_qc.can_upload_bulk_qc(make_order(order_state="BULK_IN_PRODUCTION"))
        assert not bulk_qc.can_upload_bulk_qc(make_order(order_state="BULK_UNLOCKED"))

    def test_video_required(self):
        result = bulk_qc.validate_bulk_qc_video_uploaded(make_order())
        assert result.gate == "qc_video"
        assert "packaging proof" in result.reason
        assert bulk_qc.validate_bulk_qc_video_uploaded(make_order(), VIDEO)

    def test_ready_for_dispatch_needs_video_and_state(self):
        assert not bulk_qc.can_transition_to_ready_for_dispatch(
            make_order(order_state="BULK_QC_UPLOADED")
        )
        assert not bulk_qc.can_transition_to_ready_for_dispatch(
            make_order(order_state="BULK_IN_PRODUCTION", bulk_qc_video_url=VIDEO)
        )
        assert bulk_qc.can_transition_to_ready_for_dispatch(
            make_order(order_state="BULK_QC_UPLOADED", bulk_qc_video_url=VIDEO)
        )

    def test_approve(self):
        order = make_order(order_state="BULK_QC_UPLOADED", bulk_qc_video_url=VIDEO)
        assert bulk_qc.can_approve_bulk_qc(order)
        order.order_state = "READY_FOR_DISPATCH"
        assert bulk_qc.can_approve_bulk_qc(order).gate == "order_state"

    def test_reject_requires_reason(self):
        order = make_order(order_state="BULK_QC_UPLOADED", bulk_qc_video_url=VIDEO)
        result = bulk_qc.can_reject_bulk_qc(order, "short")
        assert result.gate == "reason"
        assert bulk_qc.can_reject_bulk_qc(order, "Stitching is loose on 4 of 10 units")

    def test_reject_checks_upload_before_reason(self):
        result = bulk_qc.can_reject_bulk_qc(make_order(order_state="BULK_QC_UPLOADED"), None)
        assert result.gate == "qc_video"

    def test_requirements_listed(self):
        assert len(bulk_qc.BULK_QC_REQUIREMENTS) == 5
