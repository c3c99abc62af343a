"""Verification and credential-reset workflow engine.

Drives a session through::

    Initiated -> CodeIssued -> Verified -> PasswordCollected -> Completed
                      \\             \\              \\
                       +-------------+--------------+--> Aborted | Expired

Every mutation is a compare-and-swap on the session record; a lost swap
re-reads the record and re-evaluates the request against the new state.
Components raise typed errors; the engine turns them into coarse
``ResultStatus`` values and writes exactly one audit record per outcome.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

from .audit.events import AuditEvent, AuditEventType, AuditOutcome
from .audit.logger import AuditLogger, LoggingAuditSink
from .config import ResetConfig
from .credential import CredentialUpdateClient
from .delivery.channel import ChannelType
from .delivery.dispatcher import DeliveryDispatcher
from .exceptions import (
    ChannelUnavailableError,
    ConcurrencyConflictError,
    CredentialResetError,
    InvalidDestinationError,
    RecordNotFoundError,
    SubjectNotFoundError,
)
from .masking import mask_destination, mask_email, mask_phone
from .observability.metrics import ResetMetrics
from .otp import OtpGenerator, constant_time_equals
from .policy import SubjectContext, validate
from .ports import (
    ContactInfo,
    IAuditSink,
    IIdentityProvider,
    IRateLimiter,
    ISecretRecordStore,
    UpdateOutcome,
)
from .results import (
    AbortResult,
    ConfirmResult,
    OperationResult,
    RequestCodeResult,
    ResultStatus,
    SessionView,
    SubmitCodeResult,
    SubmitCredentialResult,
)
from .retry import RetryPolicy, call_with_retry, with_deadline
from .session import SessionState, VerificationSession
from .store.repository import SessionRepository
from .templates import MessageTemplates
from .vault import PendingCredentialVault

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=OperationResult)
T = TypeVar("T")

# Re-reads allowed when a compare-and-swap keeps losing.
_MAX_CAS_ROUNDS = 5

_ISSUABLE = frozenset({SessionState.INITIATED, SessionState.CODE_ISSUED})
_TOKEN_STATES = frozenset({SessionState.VERIFIED, SessionState.PASSWORD_COLLECTED})

_DECOY_INITIALS = "abcdefghijklmnoprstw"
_DECOY_DOMAINS = ("gmail.com", "outlook.com", "yahoo.com", "icloud.com", "hotmail.com")

Build = Callable[[VerificationSession], "VerificationSession | None"]
Due = Callable[[VerificationSession, datetime], bool]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _session_due(session: VerificationSession, now: datetime) -> bool:
    return now >= session.expires_at


def _code_due(session: VerificationSession, now: datetime) -> bool:
    return session.state is SessionState.CODE_ISSUED and (
        now >= session.expires_at or not session.has_live_code(now)
    )


def _token_due(session: VerificationSession, now: datetime) -> bool:
    return session.state in _TOKEN_STATES and not session.has_live_token(now)


class ResetWorkflowEngine:
    """
    OTP verification and credential-reset workflow.

    Example:
        ```python
        engine = ResetWorkflowEngine(
            config,
            store=InMemorySecretRecordStore(),
            rate_limiter=InMemoryRateLimiter(RateLimitPolicy.from_config(config)),
            dispatcher=DeliveryDispatcher({ChannelType.SMS: sms_adapter}),
            identity_provider=provider,
        )
        issued = await engine.request_code("user1", "sms")
        verified = await engine.submit_code(issued.session_id, "123456")
        await engine.submit_new_credential(issued.session_id, "Str0ng!Passw0rd")
        done = await engine.confirm_and_execute(issued.session_id)
        ```

    Every public operation accepts ``timeout``: a deadline in seconds for
    the whole operation. Overrunning it yields a retryable failure result,
    never success.
    """

    def __init__(
        self,
        config: ResetConfig,
        *,
        store: ISecretRecordStore,
        rate_limiter: IRateLimiter,
        dispatcher: DeliveryDispatcher,
        identity_provider: IIdentityProvider,
        audit_sink: IAuditSink | None = None,
        generator: OtpGenerator | None = None,
        templates: MessageTemplates | None = None,
        vault: PendingCredentialVault | None = None,
        clock: Callable[[], datetime] | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.config = config
        self._clock = clock or _utcnow
        self._retry = retry_policy or RetryPolicy(
            max_attempts=config.retry_max_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
        )
        self._sessions = SessionRepository(
            store, config, clock=self._clock, retry_policy=self._retry
        )
        self._limiter = rate_limiter
        self._dispatcher = dispatcher
        self._credentials = CredentialUpdateClient(
            identity_provider,
            key=config.hmac_key,
            retry_policy=self._retry,
            timeout=config.call_timeout_seconds,
        )
        self._audit = AuditLogger(audit_sink or LoggingAuditSink())
        self._generator = generator or OtpGenerator(config.hmac_key)
        self._templates = templates or MessageTemplates()
        self._vault = vault or PendingCredentialVault(self._clock)
        # A claim older than this belongs to a caller that gave up or died.
        self._claim_timeout = timedelta(
            seconds=config.call_timeout_seconds * (config.retry_max_attempts + 1)
        )

    @property
    def sessions(self) -> SessionRepository:
        return self._sessions

    # ═══════════════════════════════════════════════════════════════
    # PUBLIC OPERATIONS
    # ═══════════════════════════════════════════════════════════════

    async def request_code(
        self,
        subject_id: str,
        channel_preference: ChannelType | str | None = None,
        *,
        session_id: str | None = None,
        timeout: float | None = None,
    ) -> RequestCodeResult:
        """Issue a code to one of the subject's registered destinations.

        Without ``session_id`` a new session is opened and any live session
        of the same subject is superseded. With ``session_id`` the code of
        that session is replaced (resend).
        """
        return await self._run(
            "request_code",
            self._request_code(subject_id, channel_preference, session_id),
            failure=lambda e: RequestCodeResult(
                ResultStatus.UNAVAILABLE, session_id=session_id, retryable=e.retryable
            ),
            timeout=timeout,
            session_id=session_id,
            subject_id=subject_id,
        )

    async def submit_code(
        self,
        session_id: str,
        candidate_code: str,
        *,
        timeout: float | None = None,
    ) -> SubmitCodeResult:
        """Check ``candidate_code``; on success the reset token is returned."""
        return await self._run(
            "submit_code",
            self._with_cas_retry(
                lambda: self._submit_code_once(session_id, candidate_code),
                "submit_code",
            ),
            failure=lambda e: SubmitCodeResult(
                ResultStatus.UNAVAILABLE, session_id=session_id, retryable=e.retryable
            ),
            timeout=timeout,
            session_id=session_id,
        )

    async def submit_new_credential(
        self,
        session_id: str,
        candidate: str,
        *,
        reset_token: str | None = None,
        timeout: float | None = None,
    ) -> SubmitCredentialResult:
        """Validate ``candidate`` and hold it for confirmation.

        ``reset_token``, when given, must be the token ``submit_code``
        returned for this session.
        """
        return await self._run(
            "submit_new_credential",
            self._with_cas_retry(
                lambda: self._submit_credential_once(session_id, candidate, reset_token),
                "submit_new_credential",
            ),
            failure=lambda e: SubmitCredentialResult(
                ResultStatus.UNAVAILABLE, session_id=session_id, retryable=e.retryable
            ),
            timeout=timeout,
            session_id=session_id,
        )

    async def confirm_and_execute(
        self,
        session_id: str,
        *,
        reset_token: str | None = None,
        credential: str | None = None,
        timeout: float | None = None,
    ) -> ConfirmResult:
        """Perform the credential update, at most once per session.

        ``credential`` re-supplies the accepted candidate when this process
        no longer holds it; it must match the candidate accepted earlier.
        """
        return await self._run(
            "confirm_and_execute",
            self._with_cas_retry(
                lambda: self._confirm_once(session_id, reset_token, credential),
                "confirm_and_execute",
            ),
            failure=lambda e: ConfirmResult(
                ResultStatus.FAILED, session_id=session_id, retryable=e.retryable
            ),
            timeout=timeout,
            session_id=session_id,
        )

    async def abort(
        self, session_id: str, *, timeout: float | None = None
    ) -> AbortResult:
        """Cancel a session, invalidating any live code, token or credential."""
        return await self._run(
            "abort",
            self._with_cas_retry(lambda: self._abort_once(session_id), "abort"),
            failure=lambda e: AbortResult(
                ResultStatus.UNAVAILABLE, session_id=session_id, retryable=e.retryable
            ),
            timeout=timeout,
            session_id=session_id,
        )

    async def get_status(
        self, session_id: str, *, timeout: float | None = None
    ) -> SessionView | None:
        """Secret-free view of a session, or None if it does not exist.

        Raises:
            StoreUnavailableError: Store unreachable after retries.
            DeadlineExceededError: ``timeout`` elapsed.
        """
        session = await with_deadline(self._load(session_id), timeout, "get_status")
        if session is None:
            return None
        state = session.state
        if not session.is_terminal and _session_due(session, self._clock()):
            state = SessionState.EXPIRED
        return SessionView(
            session_id=session.session_id,
            state=state.value,
            channel=session.channel,
            created_at=session.created_at,
            expires_at=session.expires_at,
            code_expires_at=session.code_expires_at,
            reset_token_expires_at=session.reset_token_expires_at,
        )

    # ═══════════════════════════════════════════════════════════════
    # REQUEST CODE
    # ═══════════════════════════════════════════════════════════════

    async def _request_code(
        self,
        subject_id: str,
        channel_preference: ChannelType | str | None,
        session_id: str | None,
    ) -> RequestCodeResult:
        contact = await self._lookup(subject_id)
        channel = self._select_channel(contact, channel_preference)
        if channel is None:
            return await self._reject(
                RequestCodeResult,
                ResultStatus.INVALID_DESTINATION,
                session_id=session_id,
                subject_id=subject_id,
                reason="no_usable_channel",
            )

        if session_id is None:
            # A denied request must leave the subject's live session untouched.
            if not await self._allow_issue(subject_id):
                return await self._deny_issue(subject_id=subject_id, resend=False)
            session = await self._open_session(subject_id, channel, decoy=contact is None)
            return await self._issue_code(
                session, contact, channel, resend=False, admitted=True
            )

        session = await self._load(session_id)
        if session is None or session.subject_id != subject_id:
            return await self._reject(
                RequestCodeResult,
                ResultStatus.SESSION_CLOSED,
                session_id=session_id,
                subject_id=subject_id,
                reason="unknown_session",
            )
        if session.state not in _ISSUABLE:
            return await self._reject(
                RequestCodeResult,
                ResultStatus.SESSION_CLOSED,
                session=session,
                reason="not_issuable",
            )
        if _session_due(session, self._clock()):
            expired = await self._expire(
                session, RequestCodeResult, AuditEventType.SESSION_EXPIRED, _session_due
            )
            return expired or await self._reject(
                RequestCodeResult,
                ResultStatus.SESSION_CLOSED,
                session=session,
                reason="state_changed",
            )
        return await self._issue_code(session, contact, channel, resend=True)

    def _select_channel(
        self,
        contact: ContactInfo | None,
        preference: ChannelType | str | None,
    ) -> ChannelType | None:
        if isinstance(preference, str):
            try:
                preference = ChannelType(preference.lower())
            except ValueError:
                return None
        if contact is None:
            usable = self._dispatcher.channels
        else:
            usable = [
                c for c in contact.channels_available if self._dispatcher.supports(c)
            ]
        if preference is None:
            return usable[0] if usable else None
        return preference if preference in usable else None

    async def _open_session(
        self, subject_id: str, channel: ChannelType, *, decoy: bool
    ) -> VerificationSession:
        prior_id = await self._sessions.session_for_subject(subject_id)
        if prior_id is not None:
            await self._supersede(prior_id)

        now = self._clock()
        session = VerificationSession(
            session_id=self._generator.new_session_id(),
            subject_id=subject_id,
            state=SessionState.INITIATED,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(seconds=self.config.session_ttl_seconds),
            channel=channel.value,
            salt=self._generator.new_salt(),
            decoy=decoy,
        )
        if not await self._sessions.create(session):
            raise ConcurrencyConflictError("session id already taken")
        await self._sessions.bind_subject(subject_id, session.session_id)
        return session

    async def _supersede(self, session_id: str) -> None:
        prior = await self._load(session_id)
        if prior is None or prior.is_terminal:
            return
        from_state = prior.state
        aborted, applied = await self._settle(prior, self._abortable)
        if not applied:
            return
        self._vault.discard(session_id)
        await self._record(
            AuditEventType.SESSION_SUPERSEDED,
            session=aborted,
            from_state=from_state,
            reason="superseded",
        )

    def _abortable(self, session: VerificationSession) -> VerificationSession | None:
        now = self._clock()
        # An update the provider may still apply cannot be cancelled.
        if session.is_terminal or self._claim_active(session, now):
            return None
        return session.transition(SessionState.ABORTED, now)

    async def _allow_issue(self, subject_id: str) -> bool:
        return await self._call(
            lambda: self._limiter.allow_issue(subject_id), "ratelimit.allow_issue"
        )

    async def _deny_issue(
        self,
        *,
        resend: bool,
        session: VerificationSession | None = None,
        subject_id: str | None = None,
    ) -> RequestCodeResult:
        await self._record(
            AuditEventType.CODE_RATE_LIMITED,
            AuditOutcome.DENIED,
            session=session,
            subject_id=subject_id,
            from_state=session.state if session else None,
            resend=resend,
        )
        return RequestCodeResult(
            ResultStatus.RATE_LIMITED,
            session_id=session.session_id if session else None,
            retryable=True,
        )

    async def _issue_code(
        self,
        session: VerificationSession,
        contact: ContactInfo | None,
        channel: ChannelType,
        *,
        resend: bool,
        admitted: bool = False,
    ) -> RequestCodeResult:
        from_state = session.state
        if not admitted and not await self._allow_issue(session.subject_id):
            return await self._deny_issue(session=session, resend=resend)

        issued = self._generator.issue(
            self.config.code_length, self.config.code_alphabet, salt=session.salt
        )

        def build(current: VerificationSession) -> VerificationSession | None:
            if current.state not in _ISSUABLE:
                return None
            now = self._clock()
            # The new hash replaces the old one; only one code is ever live.
            return current.transition(
                SessionState.CODE_ISSUED,
                now,
                channel=channel.value,
                code_hash=issued.code_hash,
                code_expires_at=now + timedelta(seconds=self.config.code_ttl_seconds),
                code_attempts=0,
                codes_issued=current.codes_issued + 1,
                expires_at=max(
                    current.expires_at,
                    now + timedelta(seconds=self.config.session_ttl_seconds),
                ),
            )

        stored, applied = await self._settle(session, build)
        if not applied:
            return await self._reject(
                RequestCodeResult,
                ResultStatus.SESSION_CLOSED,
                session=stored,
                reason="state_changed",
            )

        if stored.decoy or contact is None:
            await self._record(
                AuditEventType.CODE_ISSUED,
                session=stored,
                from_state=from_state,
                channel=channel.value,
                resend=resend,
                subject_unknown=True,
            )
            return RequestCodeResult(
                ResultStatus.ISSUED,
                session_id=stored.session_id,
                masked_destination=self._decoy_destination(stored.subject_id, channel),
                channel=channel.value,
            )

        destination = contact.destination_for(channel) or ""
        text = self._templates.render(
            channel, code=issued.plaintext, ttl_seconds=self.config.code_ttl_seconds
        )
        try:
            receipt = await self._dispatcher.dispatch(channel, destination, text)
        except InvalidDestinationError as e:
            aborted, _ = await self._settle(
                stored,
                lambda s: None
                if s.is_terminal
                else s.transition(SessionState.ABORTED, self._clock()),
            )
            await self._record(
                AuditEventType.CODE_DELIVERY_FAILED,
                AuditOutcome.FAILURE,
                session=aborted,
                from_state=from_state,
                error=e,
                channel=channel.value,
            )
            return RequestCodeResult(
                ResultStatus.INVALID_DESTINATION, session_id=stored.session_id
            )
        except CredentialResetError as e:
            # The code is stored either way; a resend replaces it.
            await self._record(
                AuditEventType.CODE_DELIVERY_FAILED,
                AuditOutcome.ERROR,
                session=stored,
                from_state=from_state,
                error=e,
                channel=channel.value,
            )
            return RequestCodeResult(
                ResultStatus.UNAVAILABLE,
                session_id=stored.session_id,
                retryable=e.retryable or isinstance(e, ChannelUnavailableError),
            )

        await self._record(
            AuditEventType.CODE_ISSUED,
            session=stored,
            from_state=from_state,
            channel=channel.value,
            destination=receipt.destination,
            delivery_attempts=receipt.attempts,
            provider_id=receipt.provider_id,
            resend=resend,
        )
        return RequestCodeResult(
            ResultStatus.ISSUED,
            session_id=stored.session_id,
            masked_destination=receipt.destination,
            channel=channel.value,
        )

    # ═══════════════════════════════════════════════════════════════
    # SUBMIT CODE
    # ═══════════════════════════════════════════════════════════════

    async def _submit_code_once(
        self, session_id: str, candidate: str
    ) -> SubmitCodeResult | None:
        session = await self._load(session_id)
        if session is None:
            return await self._reject(
                SubmitCodeResult,
                ResultStatus.SESSION_CLOSED,
                session_id=session_id,
                reason="unknown_session",
            )
        if session.state is SessionState.ABORTED:
            return await self._reject(
                SubmitCodeResult, ResultStatus.ABORTED, session=session, reason="aborted"
            )
        if session.state is SessionState.EXPIRED:
            return await self._reject(
                SubmitCodeResult, ResultStatus.EXPIRED, session=session, reason="expired"
            )
        if session.state is not SessionState.CODE_ISSUED:
            return await self._reject(
                SubmitCodeResult,
                ResultStatus.SESSION_CLOSED,
                session=session,
                reason="code_not_pending",
            )

        now = self._clock()
        if _code_due(session, now):
            return await self._expire(
                session, SubmitCodeResult, AuditEventType.CODE_EXPIRED, _code_due
            )

        allowed = await self._call(
            lambda: self._limiter.allow_verify(session_id), "ratelimit.allow_verify"
        )
        if not allowed:
            aborted = session.transition(SessionState.ABORTED, now)
            if not await self._sessions.save(session, aborted):
                return None
            self._vault.discard(session_id)
            await self._record(
                AuditEventType.VERIFY_RATE_LIMITED,
                AuditOutcome.DENIED,
                session=aborted,
                from_state=session.state,
            )
            return SubmitCodeResult(ResultStatus.ABORTED, session_id=session_id)

        matched = self._generator.matches(
            candidate, session.code_hash or "", session.salt or ""
        )
        # A decoy's code was never delivered, so nothing may verify it.
        if matched and not session.decoy:
            return await self._accept_code(session, now)

        attempts = session.code_attempts + 1
        if attempts >= self.config.max_code_attempts:
            updated = session.transition(SessionState.ABORTED, now, code_attempts=attempts)
        else:
            updated = session.update(now, code_attempts=attempts)
        if not await self._sessions.save(session, updated):
            return None
        limiter_error = await self._after_commit(
            lambda: self._limiter.record_failure(session_id), "ratelimit.record_failure"
        )
        await self._record(
            AuditEventType.CODE_REJECTED,
            AuditOutcome.FAILURE,
            session=updated,
            from_state=session.state,
            attempts=attempts,
            max_attempts=self.config.max_code_attempts,
            **limiter_error,
        )
        if updated.state is SessionState.ABORTED:
            logger.info("Session aborted after %d wrong codes", attempts)
            return SubmitCodeResult(ResultStatus.ABORTED, session_id=session_id)
        return SubmitCodeResult(ResultStatus.REJECTED, session_id=session_id)

    async def _accept_code(
        self, session: VerificationSession, now: datetime
    ) -> SubmitCodeResult | None:
        token = self._generator.new_token()
        token_expires_at = now + timedelta(seconds=self.config.reset_token_ttl_seconds)
        verified = session.transition(
            SessionState.VERIFIED,
            now,
            code_hash=None,
            code_expires_at=None,
            reset_token_hash=self._token_hash(token, session),
            reset_token_expires_at=token_expires_at,
            expires_at=max(session.expires_at, token_expires_at),
        )
        if not await self._sessions.save(session, verified):
            return None
        limiter_error = await self._after_commit(
            lambda: self._limiter.reset(session.session_id), "ratelimit.reset"
        )
        await self._record(
            AuditEventType.CODE_VERIFIED,
            session=verified,
            from_state=session.state,
            attempts=session.code_attempts + 1,
            **limiter_error,
        )
        return SubmitCodeResult(
            ResultStatus.VERIFIED,
            session_id=session.session_id,
            reset_token=token,
            reset_token_expires_at=token_expires_at,
        )

    # ═══════════════════════════════════════════════════════════════
    # SUBMIT NEW CREDENTIAL
    # ═══════════════════════════════════════════════════════════════

    async def _submit_credential_once(
        self,
        session_id: str,
        candidate: str,
        reset_token: str | None,
    ) -> SubmitCredentialResult | None:
        session = await self._load(session_id)
        if session is None or session.is_terminal:
            return await self._reject(
                SubmitCredentialResult,
                ResultStatus.SESSION_CLOSED,
                session=session,
                session_id=session_id,
                reason="unknown_session" if session is None else "closed",
            )
        if session.state not in _TOKEN_STATES:
            return await self._reject(
                SubmitCredentialResult,
                ResultStatus.REJECTED,
                session=session,
                reason="not_verified",
                message="Please verify your code before choosing a new password.",
            )

        now = self._clock()
        if _token_due(session, now):
            return await self._expire(
                session, SubmitCredentialResult, AuditEventType.SESSION_EXPIRED, _token_due
            )
        if reset_token is not None and not self._token_matches(reset_token, session):
            return await self._reject(
                SubmitCredentialResult,
                ResultStatus.REJECTED,
                session=session,
                reason="reset_token_mismatch",
                message="Your reset authorization is not valid. Please start again.",
            )
        if self._claim_active(session, now):
            return await self._reject(
                SubmitCredentialResult,
                ResultStatus.FAILED,
                session=session,
                reason="update_in_progress",
                message="Your password change is already in progress.",
                retryable=True,
            )

        contact = await self._lookup(session.subject_id)
        subject = SubjectContext(
            subject_id=session.subject_id,
            identifiers=contact.identifiers if contact else (),
            password_history=contact.password_history if contact else (),
        )
        policy = self.config.password_policy
        checked = validate(candidate, subject, policy)
        if not checked.ok:
            await self._record(
                AuditEventType.CREDENTIAL_REJECTED,
                AuditOutcome.FAILURE,
                session=session,
                from_state=session.state,
                violations=list(checked.violations),
            )
            return SubmitCredentialResult(
                ResultStatus.POLICY_VIOLATION,
                session_id=session_id,
                violations=checked.violations,
                details=tuple(checked.messages(policy)),
            )

        collected = session.transition(
            SessionState.PASSWORD_COLLECTED,
            now,
            credential_fingerprint=self._fingerprint(candidate, session),
            update_claimed_at=None,
        )
        if not await self._sessions.save(session, collected):
            return None
        self._vault.put(
            session_id, candidate, collected.reset_token_expires_at or collected.expires_at
        )
        await self._record(
            AuditEventType.CREDENTIAL_ACCEPTED,
            session=collected,
            from_state=session.state,
        )
        return SubmitCredentialResult(ResultStatus.ACCEPTED, session_id=session_id)

    # ═══════════════════════════════════════════════════════════════
    # CONFIRM AND EXECUTE
    # ═══════════════════════════════════════════════════════════════

    async def _confirm_once(
        self,
        session_id: str,
        reset_token: str | None,
        credential: str | None,
    ) -> ConfirmResult | None:
        session = await self._load(session_id)
        if session is not None and session.state is SessionState.COMPLETED:
            # Replay: answered from the tombstone, the provider is not called.
            await self._record(
                AuditEventType.CREDENTIAL_REPLAYED,
                session=session,
                from_state=session.state,
            )
            return ConfirmResult(
                ResultStatus.COMPLETED, session_id=session_id, replayed=True
            )
        if session is None or session.is_terminal:
            return await self._reject(
                ConfirmResult,
                ResultStatus.SESSION_CLOSED,
                session=session,
                session_id=session_id,
                reason="unknown_session" if session is None else "closed",
            )
        if session.state is not SessionState.PASSWORD_COLLECTED:
            return await self._reject(
                ConfirmResult,
                ResultStatus.REJECTED,
                session=session,
                reason="credential_not_submitted",
                message="Please choose a new password before confirming.",
            )

        now = self._clock()
        if _token_due(session, now):
            return await self._expire(
                session, ConfirmResult, AuditEventType.SESSION_EXPIRED, _token_due
            )
        if reset_token is not None and not self._token_matches(reset_token, session):
            return await self._reject(
                ConfirmResult,
                ResultStatus.REJECTED,
                session=session,
                reason="reset_token_mismatch",
                message="Your reset authorization is not valid. Please start again.",
            )
        if self._claim_active(session, now):
            return await self._reject(
                ConfirmResult,
                ResultStatus.FAILED,
                session=session,
                reason="update_in_progress",
                message="Your password change is already in progress.",
                retryable=True,
            )

        pending = self._vault.get(session_id)
        if pending is None:
            if credential is None:
                return await self._recollect(session, now)
            if not constant_time_equals(
                self._fingerprint(credential, session), session.credential_fingerprint or ""
            ):
                return await self._reject(
                    ConfirmResult,
                    ResultStatus.REJECTED,
                    session=session,
                    reason="credential_mismatch",
                    message="That password does not match the one you submitted.",
                )
            pending = credential

        claimed = session.update(now, update_claimed_at=now)
        if not await self._sessions.save(session, claimed):
            return None
        return await self._execute_update(claimed, pending)

    async def _recollect(
        self, session: VerificationSession, now: datetime
    ) -> ConfirmResult | None:
        """Send the session back to Verified when the candidate was lost."""
        reverted = session.transition(
            SessionState.VERIFIED, now, credential_fingerprint=None, update_claimed_at=None
        )
        if not await self._sessions.save(session, reverted):
            return None
        await self._record(
            AuditEventType.REQUEST_REJECTED,
            AuditOutcome.FAILURE,
            session=reverted,
            from_state=session.state,
            reason="pending_credential_missing",
        )
        return ConfirmResult(
            ResultStatus.FAILED,
            session_id=session.session_id,
            message="Please enter your new password again.",
        )

    async def _execute_update(
        self, claimed: VerificationSession, credential: str
    ) -> ConfirmResult:
        session_id = claimed.session_id
        key = self._credentials.idempotency_key(session_id)
        outcome = await self._credentials.update_credential(
            claimed.subject_id, credential, key
        )

        if outcome.ok:
            done, _ = await self._settle(
                claimed,
                lambda s: None
                if s.is_terminal
                else s.transition(SessionState.COMPLETED, self._clock()),
            )
            self._vault.discard(session_id)
            await self._record(
                AuditEventType.CREDENTIAL_UPDATED,
                session=done,
                from_state=SessionState.PASSWORD_COLLECTED,
                idempotency_key=key,
                attempts=outcome.attempts,
            )
            return ConfirmResult(ResultStatus.COMPLETED, session_id=session_id)

        if outcome.outcome is UpdateOutcome.PERMANENT:
            aborted, _ = await self._settle(
                claimed,
                lambda s: None
                if s.is_terminal
                else s.transition(SessionState.ABORTED, self._clock()),
            )
            self._vault.discard(session_id)
            await self._record(
                AuditEventType.CREDENTIAL_UPDATE_FAILED,
                AuditOutcome.FAILURE,
                session=aborted,
                from_state=SessionState.PASSWORD_COLLECTED,
                error_code=outcome.outcome.value,
                detail=outcome.detail,
                idempotency_key=key,
                attempts=outcome.attempts,
            )
            return ConfirmResult(ResultStatus.FAILED, session_id=session_id)

        # Transient: release the claim, keep the candidate, allow a retry.
        released, _ = await self._settle(
            claimed,
            lambda s: s.update(self._clock(), update_claimed_at=None)
            if s.state is SessionState.PASSWORD_COLLECTED
            else None,
        )
        await self._record(
            AuditEventType.CREDENTIAL_UPDATE_FAILED,
            AuditOutcome.ERROR,
            session=released,
            from_state=SessionState.PASSWORD_COLLECTED,
            error_code=outcome.outcome.value,
            detail=outcome.detail,
            idempotency_key=key,
            attempts=outcome.attempts,
        )
        return ConfirmResult(ResultStatus.FAILED, session_id=session_id, retryable=True)

    # ═══════════════════════════════════════════════════════════════
    # ABORT
    # ═══════════════════════════════════════════════════════════════

    async def _abort_once(self, session_id: str) -> AbortResult | None:
        session = await self._load(session_id)
        if session is None or session.is_terminal:
            return await self._reject(
                AbortResult,
                ResultStatus.SESSION_CLOSED,
                session=session,
                session_id=session_id,
                reason="unknown_session" if session is None else "closed",
            )
        aborted = self._abortable(session)
        if aborted is None:
            return await self._reject(
                AbortResult,
                ResultStatus.FAILED,
                session=session,
                reason="update_in_progress",
                message="Your password change is already in progress.",
                retryable=True,
            )
        if not await self._sessions.save(session, aborted):
            return None
        self._vault.discard(session_id)
        await self._record(
            AuditEventType.SESSION_ABORTED,
            session=aborted,
            from_state=session.state,
            reason="user_cancelled",
        )
        return AbortResult(
            ResultStatus.ABORTED,
            session_id=session_id,
            message="Your request has been cancelled.",
        )

    # ═══════════════════════════════════════════════════════════════
    # HELPERS
    # ═══════════════════════════════════════════════════════════════

    async def _run(
        self,
        operation: str,
        work: Awaitable[R],
        *,
        failure: Callable[[CredentialResetError], R],
        timeout: float | None,
        session_id: str | None,
        subject_id: str | None = None,
    ) -> R:
        started = time.monotonic()
        try:
            result = await with_deadline(work, timeout, operation)
        except CredentialResetError as e:
            logger.warning("%s failed: %s", operation, type(e).__name__)
            result = failure(e)
            await self._record(
                AuditEventType.REQUEST_FAILED,
                AuditOutcome.ERROR,
                session_id=session_id,
                subject_id=subject_id,
                error=e,
                operation=operation,
                retryable=e.retryable,
            )
        ResetMetrics.observe(operation, result.status.value, time.monotonic() - started)
        return result

    async def _with_cas_retry(
        self,
        attempt: Callable[[], Awaitable[R | None]],
        operation: str,
    ) -> R:
        for _ in range(_MAX_CAS_ROUNDS):
            result = await attempt()
            if result is not None:
                return result
            logger.debug("%s lost a compare-and-swap, re-reading session", operation)
        raise ConcurrencyConflictError(f"{operation}: too many concurrent updates")

    async def _settle(
        self,
        session: VerificationSession,
        build: Build,
    ) -> tuple[VerificationSession, bool]:
        """Apply ``build`` to the latest stored version of ``session``.

        Returns:
            The stored session and whether ``build`` was applied. ``build``
            returning None means no change is wanted any more.
        """
        current = session
        for _ in range(_MAX_CAS_ROUNDS):
            new = build(current)
            if new is None:
                return current, False
            if await self._sessions.save(current, new):
                return new, True
            reloaded = await self._load(current.session_id)
            if reloaded is None:
                return current, False
            current = reloaded
        raise ConcurrencyConflictError("too many concurrent updates")

    async def _expire(
        self,
        session: VerificationSession,
        result_cls: type[R],
        event_type: AuditEventType,
        due: Due,
    ) -> R | None:
        """Move ``session`` to Expired while ``due`` still holds."""

        def build(current: VerificationSession) -> VerificationSession | None:
            now = self._clock()
            if current.is_terminal or not due(current, now):
                return None
            return current.transition(SessionState.EXPIRED, now)

        expired, applied = await self._settle(session, build)
        if not applied:
            return None
        self._vault.discard(session.session_id)
        await self._record(
            event_type,
            AuditOutcome.FAILURE,
            session=expired,
            from_state=session.state,
        )
        return result_cls(ResultStatus.EXPIRED, session_id=session.session_id)

    async def _reject(
        self,
        result_cls: type[R],
        status: ResultStatus,
        *,
        reason: str,
        session: VerificationSession | None = None,
        session_id: str | None = None,
        subject_id: str | None = None,
        message: str = "",
        retryable: bool = False,
    ) -> R:
        """Record a request that changed nothing and build its result."""
        await self._record(
            AuditEventType.REQUEST_REJECTED,
            AuditOutcome.DENIED,
            session=session,
            session_id=session_id,
            subject_id=subject_id,
            from_state=session.state if session else None,
            reason=reason,
            status=status.value,
        )
        return result_cls(
            status,
            message=message,
            session_id=session.session_id if session else session_id,
            retryable=retryable,
        )

    async def _record(
        self,
        event_type: AuditEventType,
        outcome: AuditOutcome = AuditOutcome.SUCCESS,
        *,
        session: VerificationSession | None = None,
        session_id: str | None = None,
        subject_id: str | None = None,
        from_state: SessionState | None = None,
        error: CredentialResetError | None = None,
        error_code: str | None = None,
        detail: str | None = None,
        **metadata: Any,
    ) -> None:
        if session is not None:
            session_id = session.session_id
            subject_id = session.subject_id
            if session.decoy:
                metadata.setdefault("subject_unknown", True)
        await self._audit.record(
            AuditEvent(
                event_type=event_type,
                outcome=outcome,
                session_id=session_id,
                subject_id=subject_id,
                timestamp=self._clock(),
                from_state=from_state.value if from_state else None,
                to_state=session.state.value if session else None,
                error_code=error_code or (type(error).__name__ if error else None),
                detail=detail or (str(error) if error else None),
                metadata=metadata,
            )
        )

    async def _call(self, func: Callable[[], Awaitable[T]], operation: str) -> T:
        return await call_with_retry(
            func,
            self._retry,
            operation=operation,
            timeout=self.config.call_timeout_seconds,
        )

    async def _after_commit(
        self, func: Callable[[], Awaitable[Any]], operation: str
    ) -> dict[str, str]:
        """Run a follow-up call whose failure must not hide a committed swap.

        Returns audit metadata naming the error, or an empty dict.
        """
        try:
            await self._call(func, operation)
        except CredentialResetError as e:
            logger.warning("%s failed after commit: %s", operation, type(e).__name__)
            return {"limiter_error": type(e).__name__}
        return {}

    async def _load(self, session_id: str) -> VerificationSession | None:
        try:
            return await self._sessions.load(session_id)
        except RecordNotFoundError:
            return None

    async def _lookup(self, subject_id: str) -> ContactInfo | None:
        try:
            return await self._credentials.lookup_contact_info(subject_id)
        except SubjectNotFoundError:
            logger.info("No account for requested subject; continuing with a decoy")
            return None

    def _claim_active(self, session: VerificationSession, now: datetime) -> bool:
        claimed_at = session.update_claimed_at
        return claimed_at is not None and now - claimed_at < self._claim_timeout

    def _token_hash(self, token: str, session: VerificationSession) -> str:
        return self._generator.hash(token, f"{session.salt}:reset-token")

    def _token_matches(self, token: str, session: VerificationSession) -> bool:
        return constant_time_equals(
            self._token_hash(token, session), session.reset_token_hash or ""
        )

    def _fingerprint(self, credential: str, session: VerificationSession) -> str:
        return self._generator.hash(credential, f"{session.salt}:credential")

    def _decoy_destination(self, subject_id: str, channel: ChannelType) -> str:
        """Plausible masked destination for an unknown subject.

        Keyed on the subject id so repeated requests show the same value.
        """
        seed = int(self._generator.hash(subject_id, "decoy-destination"), 16)
        if channel is ChannelType.SMS:
            return mask_phone(f"+1{seed % 10**10:010d}")
        if channel is ChannelType.EMAIL:
            local = _DECOY_INITIALS[seed % len(_DECOY_INITIALS)] + "x" * (4 + seed % 7)
            domain = _DECOY_DOMAINS[(seed >> 8) % len(_DECOY_DOMAINS)]
            return mask_email(f"{local}@{domain}")
        return mask_destination(channel.value, f"{seed:032x}"[:16])


__all__: list[str] = ["ResetWorkflowEngine"]
