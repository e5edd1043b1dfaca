# services/submission_pipeline.py
"""
Validate -> store -> render -> dispatch pipeline shared by every form
"""

import logging
from typing import Any, Optional

from core.email_renderer import Branding, render_admin_notification, render_user_confirmation
from core.errors import DispatchError, FormServiceError, SubmissionNotFound
from core.forms import FormDefinition
from core.models import Submission, SubmissionStatus
from core.store import SubmissionStore
from core.validation import validate
from services.mail_dispatcher import MailDispatcher, OutgoingEmail

logger = logging.getLogger(__name__)


class SubmissionPipeline:
    """Processes submissions for one form definition"""

    def __init__(self, form: FormDefinition, store: SubmissionStore,
                 dispatcher: MailDispatcher, branding: Branding = Branding()):
        self.form = form
        self.store = store
        self.dispatcher = dispatcher
        self.branding = branding

    def submit(self, payload: Any, client_ip: Optional[str] = None) -> Submission:
        """
        Run one submission through the pipeline

        Nothing is stored when validation fails. Once stored, a submission
        always ends as completed or failed.

        Raises:
            ValidationError: payload rejected
            ConfigurationError: mail is not configured
            DispatchError: the admin notification could not be sent
        """
        fields = validate(payload, self.form.rules, self.form.error_mode)
        submission = Submission.create(
            self.form.kind,
            fields,
            ip=client_ip if self.form.record_ip else None,
            source=self.form.source,
        )
        self.store.insert(submission)
        logger.info(f"New {self.form.name} submission {submission.id} from {submission.email}")

        try:
            report = self.dispatcher.deliver(*self._compose(submission))
        except FormServiceError as e:
            self._finish(submission, SubmissionStatus.FAILED, str(e))
            logger.error(f"Submission {submission.id} stored but not mailed: {str(e)}")
            raise
        except Exception as e:
            self._finish(submission, SubmissionStatus.FAILED, str(e))
            logger.error(f"Submission {submission.id} failed unexpectedly: {str(e)}", exc_info=True)
            raise DispatchError(f"Processing submission {submission.id} failed: {e}") from e

        logger.info(f"Submission {submission.id} mailed "
                    f"(confirmation {'sent' if report.user_sent else 'failed'})")
        return self._finish(submission, SubmissionStatus.COMPLETED, report.user_error)

    def _compose(self, submission: Submission):
        admin = render_admin_notification(submission, self.branding)
        user = render_user_confirmation(submission, self.branding)
        return (
            self.dispatcher.admin_email(admin.subject, admin.html, admin.text, reply_to=submission.email),
            OutgoingEmail(to=submission.email, subject=user.subject, html=user.html, text=user.text),
        )

    def _finish(self, submission: Submission, status: SubmissionStatus,
                error: Optional[str] = None) -> Submission:
        try:
            return self.store.update_status(submission.id, status, error)
        except SubmissionNotFound:
            # Swept while the mail was in flight
            logger.warning(f"Submission {submission.id} expired before its status was recorded")
            return submission.with_status(status, error)
