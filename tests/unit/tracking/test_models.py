"""Tests for tracking data models."""

import pytest

from shiptrack.tracking.errors import InvalidTransition
from shiptrack.tracking.models import (
    CandidateAttempt,
    CandidateProvider,
    JobState,
    ResolutionMode,
    ResolutionOutcome,
    TrackingCategory,
    TrackingJob,
    TrackingRequest,
    TrackingResult,
    TrialOutcome,
)


class TestTrackingCategory:
    """Test parsing of tracking categories."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("container", TrackingCategory.CONTAINER),
            ("CT", TrackingCategory.CONTAINER),
            ("bl", TrackingCategory.BILL_OF_LADING),
            ("bill_of_lading", TrackingCategory.BILL_OF_LADING),
            ("booking", TrackingCategory.BOOKING),
            ("BookingTracking", TrackingCategory.BOOKING),
            ("  containertracking ", TrackingCategory.CONTAINER),
        ],
    )
    def test_parse_accepts_aliases_and_wire_values(self, raw, expected):
        assert TrackingCategory.parse(raw) == expected

    def test_parse_rejects_unknown_category(self):
        with pytest.raises(ValueError, match="Unknown tracking category"):
            TrackingCategory.parse("pallet")

    def test_labels(self):
        assert TrackingCategory.BILL_OF_LADING.label == "Bill of Lading"
        assert TrackingCategory.CONTAINER.label == "Container"


class TestTrackingRequest:
    """Test TrackingRequest normalisation."""

    def test_strips_reference_and_parses_category(self):
        request = TrackingRequest(reference="  DFSU7162007 ", category="container")

        assert request.reference == "DFSU7162007"
        assert request.category == TrackingCategory.CONTAINER
        assert request.mode == ResolutionMode.AUTO_DETECT

    def test_empty_reference_is_rejected(self):
        with pytest.raises(ValueError):
            TrackingRequest(reference="   ", category=TrackingCategory.CONTAINER)

    def test_manual_mode_requires_provider(self):
        with pytest.raises(ValueError, match="explicit_provider"):
            TrackingRequest(
                reference="ABC",
                category=TrackingCategory.CONTAINER,
                mode=ResolutionMode.MANUAL,
            )

    def test_explicit_provider_is_uppercased(self):
        request = TrackingRequest(
            reference="ABC",
            category=TrackingCategory.CONTAINER,
            mode="manual",
            explicit_provider=" msc ",
        )
        assert request.explicit_provider == "MSC"
        assert request.mode == ResolutionMode.MANUAL


class TestCandidateProvider:
    def test_supports_all_categories_by_default(self):
        provider = CandidateProvider(id="MSC", display_name="MSC")
        assert all(provider.supports(category) for category in TrackingCategory)

    def test_supports_only_declared_categories(self):
        provider = CandidateProvider(
            id="MSC",
            display_name="MSC",
            categories=frozenset({TrackingCategory.BOOKING}),
        )
        assert provider.supports(TrackingCategory.BOOKING)
        assert not provider.supports(TrackingCategory.CONTAINER)


class TestTrackingJob:
    """Test the job state machine."""

    def _job(self) -> TrackingJob:
        return TrackingJob(
            job_id="42",
            provider="MSC",
            category=TrackingCategory.CONTAINER,
            reference="DFSU7162007",
        )

    def test_starts_awaiting_first_poll(self):
        job = self._job()
        assert job.state == JobState.AWAITING_FIRST_POLL
        assert job.attempts == 0
        assert not job.is_terminal

    def test_record_attempt_increments(self):
        job = self._job()
        assert job.record_attempt() == 1
        assert job.record_attempt() == 2

    def test_succeeded_requires_result(self):
        job = self._job()
        job.transition(JobState.POLLING)
        with pytest.raises(InvalidTransition):
            job.transition(JobState.SUCCEEDED)

    def test_terminal_state_is_final(self):
        job = self._job()
        job.transition(JobState.POLLING)
        job.transition(JobState.FAILED, error="Invalid Number")

        assert job.is_terminal
        assert job.last_error == "Invalid Number"
        with pytest.raises(InvalidTransition):
            job.transition(JobState.POLLING)
        with pytest.raises(InvalidTransition):
            job.record_attempt()
        with pytest.raises(InvalidTransition):
            job.note_error(None)

    def test_cannot_return_to_awaiting_first_poll(self):
        job = self._job()
        job.transition(JobState.POLLING)
        with pytest.raises(InvalidTransition):
            job.transition(JobState.AWAITING_FIRST_POLL)

    def test_succeeded_stores_result(self):
        job = self._job()
        result = TrackingResult(category=TrackingCategory.CONTAINER, status_label="x")
        job.transition(JobState.SUCCEEDED, result=result)
        assert job.result == result


class TestTrialOutcome:
    def test_maps_terminal_job_states(self):
        assert TrialOutcome.from_job_state(JobState.SUCCEEDED) == TrialOutcome.SUCCEEDED
        assert TrialOutcome.from_job_state(JobState.TIMED_OUT) == TrialOutcome.TIMED_OUT

    def test_rejects_non_terminal_state(self):
        with pytest.raises(ValueError):
            TrialOutcome.from_job_state(JobState.POLLING)


class TestResolutionOutcome:
    def test_succeeded_follows_winner(self):
        outcome = ResolutionOutcome(
            reference="ABC",
            category=TrackingCategory.CONTAINER,
            mode=ResolutionMode.AUTO_DETECT,
        )
        assert not outcome.succeeded

    def test_to_dict_is_json_friendly(self):
        outcome = ResolutionOutcome(
            reference="ABC",
            category=TrackingCategory.CONTAINER,
            mode=ResolutionMode.AUTO_DETECT,
            winner="MSC",
            attempts=3,
            candidates_tried=1,
            per_candidate_log=[
                CandidateAttempt(
                    candidate="MSC",
                    outcome=TrialOutcome.SUCCEEDED,
                    attempts=3,
                    job_id="1",
                )
            ],
        )

        data = outcome.to_dict()

        assert data["category"] == "ContainerTracking"
        assert data["mode"] == "auto_detect"
        assert data["per_candidate_log"][0]["outcome"] == "succeeded"

    def test_outcome_is_immutable(self):
        outcome = ResolutionOutcome(
            reference="ABC",
            category=TrackingCategory.CONTAINER,
            mode=ResolutionMode.AUTO_DETECT,
        )
        with pytest.raises(Exception):
            outcome.winner = "MSC"
