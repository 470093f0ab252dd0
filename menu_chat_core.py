from __future__ import annotations

import io
import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
from PIL import Image

from upload_tracker import ProgressEvent

logger = logging.getLogger(__name__)


UPLOAD_PATH = "/api/upload"
CHAT_PATH = "/api/chat"
FINALIZE_PATH = "/api/finalize"
CURRENT_USER_PATH = "/api/user/me"
LOGIN_PATH = "/auth/google"
UPLOAD_FIELD = "menuFile"

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
TARGET_IMAGE_BYTES = 3_500_000
UPLOAD_CHUNK_BYTES = 64 * 1024
IMAGE_CONTENT_TYPES = ("image/jpeg", "image/png")

BACKEND_URL_KEY = "MENU_CRITIC_BACKEND_URL"
AUTH_ENABLED_KEY = "MENU_CRITIC_AUTH_ENABLED"

LOGIN_AGAIN_MESSAGE = "Your session has expired. Please log in again."


class Sender(str, Enum):
    USER = "user"
    AI = "ai"


class SessionStatus(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    ACTIVE = "active"
    AWAITING_REPLY = "awaiting_reply"
    FINALIZING = "finalizing"
    FINALIZED = "finalized"


IN_FLIGHT_STATUSES = frozenset(
    {SessionStatus.UPLOADING, SessionStatus.AWAITING_REPLY, SessionStatus.FINALIZING}
)


@dataclass(frozen=True)
class Message:
    sender: Sender
    content: str


@dataclass(frozen=True)
class MenuFile:
    name: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_upload(cls, uploaded_file: Any) -> MenuFile:
        """Build from a Streamlit ``UploadedFile`` (or anything with getvalue/name/type)."""
        return cls(
            name=getattr(uploaded_file, "name", None) or "menu",
            content=uploaded_file.getvalue(),
            content_type=getattr(uploaded_file, "type", None) or "application/octet-stream",
        )


@dataclass(frozen=True)
class UploadResult:
    conversation_id: str
    initial_response: str


@dataclass(frozen=True)
class CurrentUser:
    email: str


@dataclass(frozen=True)
class ClientConfig:
    backend_url: str
    auth_enabled: bool = False

    @property
    def login_url(self) -> str:
        return f"{self.backend_url}{LOGIN_PATH}"


class MenuChatError(Exception):
    pass


class BackendSetupError(MenuChatError):
    pass


class UserInputError(MenuChatError):
    pass


class NetworkError(MenuChatError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidResponseError(NetworkError):
    def __init__(
        self,
        raw_output: str,
        message: str = "Backend returned an unreadable response",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.raw_output = raw_output


class AuthError(NetworkError):
    def __init__(self, message: str = LOGIN_AGAIN_MESSAGE, status_code: int | None = None) -> None:
        super().__init__(message, status_code=status_code)


def _parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def load_config(
    secrets: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ClientConfig:
    """Read backend settings from Streamlit secrets, falling back to the environment."""
    secrets = secrets or {}
    environ = os.environ if environ is None else environ

    backend_url = secrets.get(BACKEND_URL_KEY) or environ.get(BACKEND_URL_KEY)
    if not backend_url:
        logger.warning("Backend setup failed: missing %s.", BACKEND_URL_KEY)
        raise BackendSetupError(f"Missing {BACKEND_URL_KEY}")

    auth_raw = secrets.get(AUTH_ENABLED_KEY)
    if auth_raw is None:
        auth_raw = environ.get(AUTH_ENABLED_KEY)
    config = ClientConfig(
        backend_url=str(backend_url).strip().rstrip("/"),
        auth_enabled=_parse_flag(auth_raw),
    )
    logger.debug("Loaded client config: backend_url=%s auth_enabled=%s", config.backend_url, config.auth_enabled)
    return config


def _to_rgb(image: Image.Image) -> Image.Image:
    if image.mode in ("RGBA", "LA"):
        rgba = image.convert("RGBA")
        base = Image.new("RGB", rgba.size, (255, 255, 255))
        base.paste(rgba, mask=rgba.getchannel("A"))
        return base
    return image.convert("RGB")


def _shrink_image(menu_file: MenuFile) -> MenuFile:
    image = _to_rgb(Image.open(io.BytesIO(menu_file.content)))
    image.thumbnail((1600, 1600))

    buffer = io.BytesIO()
    jpeg_bytes = b""
    for quality in [90, 85, 78, 72, 65, 58, 50]:
        buffer.seek(0)
        buffer.truncate(0)
        image.save(buffer, format="JPEG", optimize=True, quality=quality)
        jpeg_bytes = buffer.getvalue()
        if len(jpeg_bytes) <= TARGET_IMAGE_BYTES:
            break

    logger.info(
        "Recompressed menu image: name=%s before=%s bytes after=%s bytes size=%sx%s",
        menu_file.name,
        menu_file.size,
        len(jpeg_bytes),
        image.width,
        image.height,
    )
    stem = menu_file.name.rsplit(".", 1)[0] or "menu"
    return MenuFile(name=f"{stem}.jpg", content=jpeg_bytes, content_type="image/jpeg")


def prepare_menu_file(menu_file: MenuFile | None) -> MenuFile:
    if menu_file is None:
        raise UserInputError("No file selected.")
    if menu_file.size > MAX_UPLOAD_BYTES:
        size_mb = menu_file.size / (1024 * 1024)
        logger.warning("Rejected menu upload: size=%s bytes exceeds limit=%s.", menu_file.size, MAX_UPLOAD_BYTES)
        raise UserInputError(
            f"File is too large ({size_mb:.1f} MB). Please upload a menu under "
            f"{MAX_UPLOAD_BYTES // (1024 * 1024)} MB."
        )
    if menu_file.content_type in IMAGE_CONTENT_TYPES and menu_file.size > TARGET_IMAGE_BYTES:
        try:
            return _shrink_image(menu_file)
        except OSError as exc:
            logger.warning("Could not recompress menu image %s: %s", menu_file.name, exc)
            raise UserInputError("That image could not be read. Try a different file.") from exc
    return menu_file


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {response.status_code} {response.reason_phrase}".strip()


def _require_key(response: httpx.Response, key: str) -> Any:
    try:
        body = response.json()
    except ValueError as exc:
        logger.warning("Backend returned non-JSON body. status=%s raw_len=%s", response.status_code, len(response.text))
        raise InvalidResponseError(raw_output=response.text, status_code=response.status_code) from exc
    if not isinstance(body, dict) or body.get(key) is None:
        logger.warning("Backend response missing key=%s status=%s", key, response.status_code)
        raise InvalidResponseError(
            raw_output=response.text,
            message=f"Backend response is missing '{key}'",
            status_code=response.status_code,
        )
    return body[key]


class MenuCriticClient:
    """Async client for the menu critic backend.

    A fresh ``httpx.AsyncClient`` is opened per call so the client can be held
    across Streamlit reruns, each of which runs its own event loop.
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._transport = transport

    def _headers(self, credential: str | None) -> dict[str, str]:
        if not self.config.auth_enabled:
            return {}
        if not credential:
            logger.warning("Authenticated request attempted without a stored credential.")
            raise AuthError()
        return {"Authorization": f"Bearer {credential}"}

    async def _send(self, request_factory: Callable[[httpx.AsyncClient], httpx.Request]) -> httpx.Response:
        try:
            async with httpx.AsyncClient(base_url=self.config.backend_url, transport=self._transport) as client:
                request = request_factory(client)
                logger.debug("Sending %s %s", request.method, request.url)
                response = await client.send(request)
        except httpx.HTTPError as exc:
            logger.warning("Backend request failed in transport: %s", exc)
            raise NetworkError(str(exc) or exc.__class__.__name__) from exc

        if self.config.auth_enabled and response.status_code in (401, 403):
            logger.warning("Backend rejected credential. status=%s", response.status_code)
            raise AuthError(status_code=response.status_code)
        if response.is_error:
            detail = _error_detail(response)
            logger.warning("Backend returned error. status=%s detail=%s", response.status_code, detail)
            raise NetworkError(detail, status_code=response.status_code)
        return response

    async def upload_menu(
        self,
        menu_file: MenuFile,
        credential: str | None = None,
        on_progress: Callable[[ProgressEvent], None] | None = None,
    ) -> UploadResult:
        headers = self._headers(credential)
        logger.info(
            "Uploading menu: name=%s bytes=%s content_type=%s",
            menu_file.name,
            menu_file.size,
            menu_file.content_type,
        )

        def build(client: httpx.AsyncClient) -> httpx.Request:
            multipart = client.build_request(
                "POST",
                UPLOAD_PATH,
                files={UPLOAD_FIELD: (menu_file.name, menu_file.content, menu_file.content_type)},
            )
            body = b"".join(multipart.stream)
            total = len(body)

            async def chunks():
                sent = 0
                for start in range(0, total, UPLOAD_CHUNK_BYTES):
                    chunk = body[start:start + UPLOAD_CHUNK_BYTES]
                    yield chunk
                    sent += len(chunk)
                    if on_progress is not None:
                        on_progress(ProgressEvent(bytes_sent=sent, total_bytes=total))

            return client.build_request(
                "POST",
                UPLOAD_PATH,
                content=chunks(),
                headers={
                    **headers,
                    "Content-Type": multipart.headers["Content-Type"],
                    "Content-Length": str(total),
                },
            )

        response = await self._send(build)
        result = UploadResult(
            conversation_id=str(_require_key(response, "conversationId")),
            initial_response=str(_require_key(response, "initialResponse")),
        )
        logger.info(
            "Upload accepted: conversation_id=%s initial_response_chars=%s",
            result.conversation_id,
            len(result.initial_response),
        )
        return result

    async def chat(self, conversation_id: str, message: str, credential: str | None = None) -> str:
        headers = self._headers(credential)
        logger.info("Sending chat message: conversation_id=%s chars=%s", conversation_id, len(message))
        response = await self._send(
            lambda client: client.build_request(
                "POST",
                CHAT_PATH,
                json={"conversationId": conversation_id, "message": message},
                headers=headers,
            )
        )
        return str(_require_key(response, "response"))

    async def finalize(self, conversation_id: str, credential: str | None = None) -> str:
        headers = self._headers(credential)
        logger.info("Requesting final report: conversation_id=%s", conversation_id)
        response = await self._send(
            lambda client: client.build_request(
                "POST",
                FINALIZE_PATH,
                json={"conversationId": conversation_id},
                headers=headers,
            )
        )
        return str(_require_key(response, "finalReport"))

    async def current_user(self, credential: str | None = None) -> CurrentUser:
        headers = self._headers(credential)
        response = await self._send(
            lambda client: client.build_request("GET", CURRENT_USER_PATH, headers=headers)
        )
        return CurrentUser(email=str(_require_key(response, "email")))
