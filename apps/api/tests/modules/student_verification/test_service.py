"""
Tests for the subject-facing service functions.

Covers:
- Manual submission validation and persistence
- Resubmission while pending and refusal once decided
- Instant verification via SheerID
- Current verification state
"""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from nestquarter.core.sheerid import SheerIDError
from nestquarter.modules.student_verification.models import VerificationStatus
from nestquarter.modules.student_verification.schemas import (
    PendingVerification,
    RejectedVerification,
)
from nestquarter.modules.student_verification.service import (
    DocumentTooLargeError,
    InstantVerificationFailedError,
    InvalidDocumentTypeError,
    MissingDocumentsError,
    MissingRequiredFieldsError,
    ResubmissionNotAllowedError,
    UniversityNameRequiredError,
    UserNotFoundError,
    VerificationPersistenceError,
    get_my_verification,
    submit_manual_verification,
    verify_instantly,
)

SERVICE = "nestquarter.modules.student_verification.service"


class TestSubmitManualVerification:
    """Tests for submit_manual_verification."""

    @pytest.mark.asyncio
    async def test_creates_pending_record(
        self,
        mock_db,
        current_user,
        sample_submit_request,
        sample_pending_verification,
    ):
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.send_verification_submitted") as mock_email,
        ):
            mock_repo.get_by_user_id = AsyncMock(return_value=None)
            mock_repo.create_pending = AsyncMock(return_value=sample_pending_verification)
            mock_email.return_value = True

            result = await submit_manual_verification(mock_db, current_user, sample_submit_request)

            assert result.status == VerificationStatus.PENDING
            assert result.submitted_at == sample_pending_verification.submitted_at
            assert result.redirect_to == "/"
            assert "under review" in result.message

            kwargs = mock_repo.create_pending.call_args.kwargs
            assert kwargs["university_name"] == "Stanford University"
            assert kwargs["student_id_number"] == "20230001"
            assert kwargs["graduation_year"] == "2026"
            assert kwargs["major"] == "CS"
            assert kwargs["student_id_document"] == sample_submit_request.student_id_document
            mock_email.assert_called_once()

    @pytest.mark.asyncio
    async def test_text_fields_are_trimmed(
        self, mock_db, current_user, sample_submit_request, sample_pending_verification
    ):
        sample_submit_request.university_name = "  Stanford University  "

        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.send_verification_submitted", AsyncMock(return_value=True)),
        ):
            mock_repo.get_by_user_id = AsyncMock(return_value=None)
            mock_repo.create_pending = AsyncMock(return_value=sample_pending_verification)

            await submit_manual_verification(mock_db, current_user, sample_submit_request)

            kwargs = mock_repo.create_pending.call_args.kwargs
            assert kwargs["university_name"] == "Stanford University"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "field",
        ["university_name", "student_id_number", "graduation_year", "major"],
    )
    async def test_missing_text_field(self, mock_db, current_user, sample_submit_request, field):
        setattr(sample_submit_request, field, "   ")

        with patch(f"{SERVICE}.repository") as mock_repo:
            with pytest.raises(MissingRequiredFieldsError) as exc_info:
                await submit_manual_verification(mock_db, current_user, sample_submit_request)

            assert exc_info.value.message == "Please fill in all required fields"
            mock_repo.get_by_user_id.assert_not_called()
            mock_repo.create_pending.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["student_id_document", "enrollment_letter"])
    async def test_missing_document(self, mock_db, current_user, sample_submit_request, field):
        setattr(sample_submit_request, field, "")

        with patch(f"{SERVICE}.repository") as mock_repo:
            with pytest.raises(MissingDocumentsError) as exc_info:
                await submit_manual_verification(mock_db, current_user, sample_submit_request)

            assert exc_info.value.message == "Please upload both Student ID and Enrollment Letter"
            mock_repo.create_pending.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_fields_reported_before_missing_documents(
        self, mock_db, current_user, sample_submit_request
    ):
        sample_submit_request.major = ""
        sample_submit_request.enrollment_letter = ""

        with pytest.raises(MissingRequiredFieldsError):
            await submit_manual_verification(mock_db, current_user, sample_submit_request)

    @pytest.mark.asyncio
    async def test_invalid_document_type(self, mock_db, current_user, sample_submit_request):
        sample_submit_request.enrollment_letter = "data:text/plain;base64,aGVsbG8="

        with patch(f"{SERVICE}.repository") as mock_repo:
            with pytest.raises(InvalidDocumentTypeError) as exc_info:
                await submit_manual_verification(mock_db, current_user, sample_submit_request)

            assert exc_info.value.error_code == "INVALID_DOCUMENT_TYPE"
            assert "JPG, PNG, WebP, or PDF" in exc_info.value.message
            mock_repo.create_pending.assert_not_called()

    @pytest.mark.asyncio
    async def test_document_too_large(self, mock_db, current_user, sample_submit_request):
        with (
            patch(f"{SERVICE}.settings.max_document_bytes", 16),
            patch(f"{SERVICE}.repository") as mock_repo,
        ):
            with pytest.raises(DocumentTooLargeError) as exc_info:
                await submit_manual_verification(mock_db, current_user, sample_submit_request)

            assert exc_info.value.error_code == "DOCUMENT_TOO_LARGE"
            mock_repo.create_pending.assert_not_called()

    def test_default_size_limit_message(self):
        error = DocumentTooLargeError(10 * 1024 * 1024)
        assert error.message == "File size must be less than 10MB"

    @pytest.mark.asyncio
    async def test_resubmission_while_pending_overwrites(
        self,
        mock_db,
        current_user,
        sample_submit_request,
        sample_pending_verification,
    ):
        sample_submit_request.major = "Mathematics"

        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.send_verification_submitted", AsyncMock(return_value=True)),
        ):
            mock_repo.get_by_user_id = AsyncMock(return_value=sample_pending_verification)
            mock_repo.replace_pending_submission = AsyncMock(
                return_value=sample_pending_verification
            )

            result = await submit_manual_verification(mock_db, current_user, sample_submit_request)

            assert result.status == VerificationStatus.PENDING
            mock_repo.create_pending.assert_not_called()
            args, kwargs = mock_repo.replace_pending_submission.call_args
            assert args[1] is sample_pending_verification
            assert kwargs["major"] == "Mathematics"

    @pytest.mark.asyncio
    async def test_resubmission_after_decision_refused(
        self,
        mock_db,
        current_user,
        sample_submit_request,
        sample_verified_verification,
    ):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_user_id = AsyncMock(return_value=sample_verified_verification)

            with pytest.raises(ResubmissionNotAllowedError) as exc_info:
                await submit_manual_verification(mock_db, current_user, sample_submit_request)

            assert exc_info.value.status_code == 409
            mock_repo.create_pending.assert_not_called()
            mock_repo.replace_pending_submission.assert_not_called()

    @pytest.mark.asyncio
    async def test_store_failure_surfaces_generic_error(
        self, mock_db, current_user, sample_submit_request
    ):
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.send_verification_submitted") as mock_email,
        ):
            mock_repo.get_by_user_id = AsyncMock(return_value=None)
            mock_repo.create_pending = AsyncMock(
                side_effect=OperationalError("INSERT", {}, Exception("connection lost"))
            )

            with pytest.raises(VerificationPersistenceError) as exc_info:
                await submit_manual_verification(mock_db, current_user, sample_submit_request)

            assert exc_info.value.message == "Failed to submit verification"
            assert exc_info.value.status_code == 500
            mock_db.rollback.assert_called_once()
            mock_email.assert_not_called()

    @pytest.mark.asyncio
    async def test_racing_first_submission_overwrites_winner(
        self,
        mock_db,
        current_user,
        sample_submit_request,
        sample_pending_verification,
    ):
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.send_verification_submitted", AsyncMock(return_value=True)),
        ):
            mock_repo.get_by_user_id = AsyncMock(side_effect=[None, sample_pending_verification])
            mock_repo.create_pending = AsyncMock(
                side_effect=IntegrityError("INSERT", {}, Exception("duplicate user_id"))
            )
            mock_repo.replace_pending_submission = AsyncMock(
                return_value=sample_pending_verification
            )

            result = await submit_manual_verification(mock_db, current_user, sample_submit_request)

            assert result.status == VerificationStatus.PENDING
            mock_db.rollback.assert_called_once()
            args, _ = mock_repo.replace_pending_submission.call_args
            assert args[1] is sample_pending_verification

    @pytest.mark.asyncio
    async def test_racing_first_submission_already_decided(
        self,
        mock_db,
        current_user,
        sample_submit_request,
        sample_verified_verification,
    ):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_user_id = AsyncMock(side_effect=[None, sample_verified_verification])
            mock_repo.create_pending = AsyncMock(
                side_effect=IntegrityError("INSERT", {}, Exception("duplicate user_id"))
            )

            with pytest.raises(ResubmissionNotAllowedError):
                await submit_manual_verification(mock_db, current_user, sample_submit_request)

            mock_repo.replace_pending_submission.assert_not_called()

    @pytest.mark.asyncio
    async def test_integrity_error_without_existing_record(
        self, mock_db, current_user, sample_submit_request
    ):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_user_id = AsyncMock(return_value=None)
            mock_repo.create_pending = AsyncMock(
                side_effect=IntegrityError("INSERT", {}, Exception("foreign key"))
            )

            with pytest.raises(VerificationPersistenceError) as exc_info:
                await submit_manual_verification(mock_db, current_user, sample_submit_request)

            assert exc_info.value.status_code == 500
            mock_repo.replace_pending_submission.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "field,value",
        [
            ("student_id_document", "data:image/png;base64,"),
            ("enrollment_letter", "data:application/pdf;base64,"),
        ],
    )
    async def test_empty_document_payload_is_missing(
        self, mock_db, current_user, sample_submit_request, field, value
    ):
        setattr(sample_submit_request, field, value)

        with patch(f"{SERVICE}.repository") as mock_repo:
            with pytest.raises(MissingDocumentsError):
                await submit_manual_verification(mock_db, current_user, sample_submit_request)

            mock_repo.create_pending.assert_not_called()
            mock_repo.replace_pending_submission.assert_not_called()

    @pytest.mark.asyncio
    async def test_email_failure_still_succeeds(
        self,
        mock_db,
        current_user,
        sample_submit_request,
        sample_pending_verification,
    ):
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(
                f"{SERVICE}.send_verification_submitted",
                AsyncMock(side_effect=Exception("Email failed")),
            ),
        ):
            mock_repo.get_by_user_id = AsyncMock(return_value=None)
            mock_repo.create_pending = AsyncMock(return_value=sample_pending_verification)

            result = await submit_manual_verification(mock_db, current_user, sample_submit_request)

            assert result.status == VerificationStatus.PENDING


class TestVerifyInstantly:
    """Tests for verify_instantly."""

    @pytest.mark.asyncio
    async def test_success_sets_both_flags(self, mock_db, current_user, sample_user):
        sample_user.sheerid_verified = True
        sample_user.student_verified = True

        with (
            patch(f"{SERVICE}.sheerid.verify_student", AsyncMock(return_value=True)) as mock_call,
            patch(f"{SERVICE}.UserRepository") as mock_users,
            patch(f"{SERVICE}.repository") as mock_repo,
        ):
            mock_users.mark_sheerid_verified = AsyncMock(return_value=sample_user)

            result = await verify_instantly(mock_db, current_user, "Stanford University")

            assert result.sheerid_verified is True
            assert result.student_verified is True
            assert result.message == "Student status verified instantly via SheerID!"
            mock_call.assert_called_once_with(
                first_name="Ada",
                last_name="Lovelace",
                email="ada@stanford.edu",
                organization="Stanford University",
            )
            # The manual record is never read or written
            assert mock_repo.method_calls == []

    @pytest.mark.asyncio
    async def test_requires_university_name(self, mock_db, current_user):
        with patch(f"{SERVICE}.sheerid.verify_student") as mock_call:
            with pytest.raises(UniversityNameRequiredError):
                await verify_instantly(mock_db, current_user, "   ")

            mock_call.assert_not_called()

    @pytest.mark.asyncio
    async def test_provider_failure_changes_nothing(self, mock_db, current_user):
        with (
            patch(
                f"{SERVICE}.sheerid.verify_student",
                AsyncMock(side_effect=SheerIDError("SheerID returned HTTP 400")),
            ),
            patch(f"{SERVICE}.UserRepository") as mock_users,
        ):
            with pytest.raises(InstantVerificationFailedError) as exc_info:
                await verify_instantly(mock_db, current_user, "Stanford University")

            assert exc_info.value.message == (
                "SheerID verification failed. Please use manual verification."
            )
            assert exc_info.value.status_code == 502
            mock_users.mark_sheerid_verified.assert_not_called()
            mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_user(self, mock_db, current_user):
        with (
            patch(f"{SERVICE}.sheerid.verify_student", AsyncMock(return_value=True)),
            patch(f"{SERVICE}.UserRepository") as mock_users,
        ):
            mock_users.mark_sheerid_verified = AsyncMock(return_value=None)

            with pytest.raises(UserNotFoundError):
                await verify_instantly(mock_db, current_user, "Stanford University")


class TestGetMyVerification:
    """Tests for get_my_verification."""

    @pytest.mark.asyncio
    async def test_never_submitted(self, mock_db, sample_user):
        with (
            patch(f"{SERVICE}.UserRepository") as mock_users,
            patch(f"{SERVICE}.repository") as mock_repo,
        ):
            mock_users.get_by_id = AsyncMock(return_value=sample_user)
            mock_repo.get_by_user_id = AsyncMock(return_value=None)

            result = await get_my_verification(mock_db, sample_user.id)

            assert result.status == "none"
            assert result.verification is None
            assert result.student_verified is False

    @pytest.mark.asyncio
    async def test_pending_view_has_no_review_data(
        self, mock_db, sample_user, sample_pending_verification
    ):
        with (
            patch(f"{SERVICE}.UserRepository") as mock_users,
            patch(f"{SERVICE}.repository") as mock_repo,
        ):
            mock_users.get_by_id = AsyncMock(return_value=sample_user)
            mock_repo.get_by_user_id = AsyncMock(return_value=sample_pending_verification)

            result = await get_my_verification(mock_db, sample_user.id)

            assert result.status == "pending"
            assert isinstance(result.verification, PendingVerification)
            assert not hasattr(result.verification, "reviewed_at")

    @pytest.mark.asyncio
    async def test_rejected_view_carries_notes(
        self, mock_db, sample_user, sample_rejected_verification
    ):
        with (
            patch(f"{SERVICE}.UserRepository") as mock_users,
            patch(f"{SERVICE}.repository") as mock_repo,
        ):
            mock_users.get_by_id = AsyncMock(return_value=sample_user)
            mock_repo.get_by_user_id = AsyncMock(return_value=sample_rejected_verification)

            result = await get_my_verification(mock_db, sample_user.id)

            assert result.status == "rejected"
            assert isinstance(result.verification, RejectedVerification)
            assert result.verification.manual_review_notes == "Enrollment letter is illegible"

    @pytest.mark.asyncio
    async def test_unknown_user(self, mock_db, user_id):
        with patch(f"{SERVICE}.UserRepository") as mock_users:
            mock_users.get_by_id = AsyncMock(return_value=None)

            with pytest.raises(UserNotFoundError):
                await get_my_verification(mock_db, user_id)
