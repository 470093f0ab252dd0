from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

from menu_chat_core import (
    IN_FLIGHT_STATUSES,
    AuthError,
    CurrentUser,
    MenuChatError,
    MenuCriticClient,
    MenuFile,
    Message,
    Sender,
    SessionStatus,
    UserInputError,
    prepare_menu_file,
)
from upload_tracker import UploadTracker

logger = logging.getLogger(__name__)


UPLOAD_FAILED_LABEL = "Upload/initial analysis failed"
SEND_FAILED_LABEL = "Message send failed"
FINALIZE_FAILED_LABEL = "Final report generation failed"
CURRENT_USER_FAILED_LABEL = "Could not load your account"
REPORT_MARKER_MESSAGE = "Final report generated. See the report panel for the full write-up."


@dataclass
class ConversationSession:
    id: str | None = None
    status: SessionStatus = SessionStatus.IDLE
    final_report: str | None = None


class MessageLog:
    """Append-only transcript. Only ``SessionController`` writes to it."""

    def __init__(self) -> None:
        self._messages: list[Message] = []

    def append(self, sender: Sender, content: str) -> Message:
        message = Message(sender=sender, content=content)
        self._messages.append(message)
        return message

    def clear(self) -> None:
        self._messages = []

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __len__(self) -> int:
        return len(self._messages)

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    def snapshot(self) -> list[Message]:
        return list(self._messages)


class ErrorSink:
    """Holds the single most recent error shown to the user."""

    def __init__(self) -> None:
        self.error: MenuChatError | None = None
        self.message: str | None = None

    def set(self, error: MenuChatError, label: str | None = None) -> None:
        self.error = error
        self.message = f"{label}: {error}" if label else str(error)

    def clear(self) -> None:
        self.error = None
        self.message = None

    def __bool__(self) -> bool:
        return self.message is not None


class SessionController:
    """Drives one upload -> chat -> finalize conversation with the backend.

    All state changes go through the methods below. ``status`` is the only
    in-flight indicator: while it is UPLOADING, AWAITING_REPLY or FINALIZING no
    other mutating call can start, so at most one request is outstanding.

    Operations return True when their effect was applied. Rejections and
    failures never raise; they are written to ``errors`` instead.
    """

    def __init__(self, client: MenuCriticClient, credential: str | None = None) -> None:
        self.client = client
        self.session = ConversationSession()
        self.messages = MessageLog()
        self.errors = ErrorSink()
        self.tracker = UploadTracker()
        self.selected_file: MenuFile | None = None
        self.credential = credential
        self.current_user: CurrentUser | None = None
        self.user_lookup_attempted = False
        # Bumped on every successful upload so the page can hand its file widget a fresh key.
        self.upload_generation = 0

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def in_flight(self) -> bool:
        return self.session.status in IN_FLIGHT_STATUSES

    @property
    def auth_enabled(self) -> bool:
        return self.client.config.auth_enabled

    @property
    def can_chat(self) -> bool:
        return (
            self.session.id is not None
            and self.session.status in (SessionStatus.ACTIVE, SessionStatus.FINALIZED)
        )

    @property
    def can_finalize(self) -> bool:
        return self.session.id is not None and self.session.status is SessionStatus.ACTIVE

    def select_file(self, menu_file: MenuFile | None) -> None:
        self.selected_file = menu_file
        self.tracker.reset()

    def login(self, credential: str) -> None:
        logger.info("Stored bearer credential from login handoff.")
        self.credential = credential
        self.current_user = None
        self.user_lookup_attempted = False

    def logout(self) -> None:
        logger.info("Logging out and clearing session state.")
        self.credential = None
        self.current_user = None
        self.user_lookup_attempted = False
        self._reset_conversation()
        self.session.status = SessionStatus.IDLE

    def _reset_conversation(self) -> None:
        self.messages.clear()
        self.session.id = None
        self.session.final_report = None
        self.tracker.reset()

    def _reject(self, error: UserInputError) -> bool:
        logger.info("Rejected action: %s", error)
        self.errors.set(error)
        return False

    def _fail(self, error: MenuChatError, label: str) -> None:
        if isinstance(error, AuthError):
            logger.warning("Credential rejected during '%s'; forcing logout.", label)
            self.logout()
            self.errors.set(error)
            return
        logger.warning("%s: %s", label, error)
        self.errors.set(error, label)

    async def start_upload(self, menu_file: MenuFile | None = None) -> bool:
        if self.in_flight:
            return self._reject(UserInputError("Another request is still in progress."))
        menu_file = menu_file if menu_file is not None else self.selected_file
        if menu_file is None:
            return self._reject(UserInputError("No file selected."))
        try:
            prepared = prepare_menu_file(menu_file)
        except UserInputError as exc:
            return self._reject(exc)

        self._reset_conversation()
        self.errors.clear()
        self.session.status = SessionStatus.UPLOADING
        logger.info("Upload started: name=%s bytes=%s", prepared.name, prepared.size)
        try:
            result = await self.client.upload_menu(
                prepared,
                credential=self.credential,
                on_progress=self.tracker.update,
            )
        except MenuChatError as exc:
            self.session.status = SessionStatus.IDLE
            self._fail(exc, UPLOAD_FAILED_LABEL)
            return False
        finally:
            self.tracker.reset()
            if self.session.status is SessionStatus.UPLOADING:
                self.session.status = SessionStatus.IDLE

        self.session.id = result.conversation_id
        self.messages.append(Sender.AI, result.initial_response)
        self.session.status = SessionStatus.ACTIVE
        self.selected_file = None
        self.upload_generation += 1
        logger.info("Conversation started: id=%s", result.conversation_id)
        return True

    async def send_message(self, text: str) -> bool:
        if self.in_flight:
            logger.info("Ignoring send while a request is outstanding.")
            return False
        message = (text or "").strip()
        if not message:
            return self._reject(UserInputError("Please type a message first."))
        if not self.can_chat:
            return self._reject(UserInputError("No active conversation. Upload a menu first."))

        conversation_id = self.session.id
        self.messages.append(Sender.USER, message)
        self.session.final_report = None
        self.errors.clear()
        self.session.status = SessionStatus.AWAITING_REPLY
        try:
            reply = await self.client.chat(conversation_id, message, credential=self.credential)
        except MenuChatError as exc:
            self.session.status = SessionStatus.ACTIVE
            self._fail(exc, SEND_FAILED_LABEL)
            return False
        finally:
            if self.session.status is SessionStatus.AWAITING_REPLY:
                self.session.status = SessionStatus.ACTIVE

        self.messages.append(Sender.AI, reply)
        self.session.status = SessionStatus.ACTIVE
        return True

    async def finalize(self) -> bool:
        if self.in_flight:
            logger.info("Ignoring finalize while a request is outstanding.")
            return False
        if not self.can_finalize:
            return self._reject(UserInputError("No conversation to finalize."))

        conversation_id = self.session.id
        self.session.final_report = None
        self.errors.clear()
        self.session.status = SessionStatus.FINALIZING
        try:
            report = await self.client.finalize(conversation_id, credential=self.credential)
        except MenuChatError as exc:
            self.session.status = SessionStatus.ACTIVE
            self._fail(exc, FINALIZE_FAILED_LABEL)
            return False
        finally:
            if self.session.status is SessionStatus.FINALIZING:
                self.session.status = SessionStatus.ACTIVE

        self.session.final_report = report
        self.messages.append(Sender.AI, REPORT_MARKER_MESSAGE)
        self.session.status = SessionStatus.FINALIZED
        logger.info("Final report stored: id=%s chars=%s", conversation_id, len(report))
        return True

    async def fetch_current_user(self) -> CurrentUser | None:
        """Look up the signed-in account once per credential.

        The endpoint is optional, so a non-auth failure is only logged and the
        error slot keeps whatever the last action put there.
        """
        if not self.auth_enabled or not self.credential:
            return None
        if self.user_lookup_attempted:
            return self.current_user
        self.user_lookup_attempted = True
        try:
            self.current_user = await self.client.current_user(credential=self.credential)
        except AuthError as exc:
            self._fail(exc, CURRENT_USER_FAILED_LABEL)
            return None
        except MenuChatError as exc:
            logger.warning("%s: %s", CURRENT_USER_FAILED_LABEL, exc)
            return None
        return self.current_user
