import io
import json

import httpx
import pytest
from PIL import Image

import menu_chat_core
from menu_chat_core import (
    AuthError,
    BackendSetupError,
    ClientConfig,
    InvalidResponseError,
    MenuCriticClient,
    MenuFile,
    NetworkError,
    UserInputError,
    load_config,
    prepare_menu_file,
)
from upload_tracker import ProgressEvent


def _png_bytes(size=(2400, 1200), mode="RGB"):
    color = (200, 80, 40, 128) if mode == "RGBA" else (200, 80, 40)
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class TestLoadConfig:
    def test_reads_secrets_first(self):
        config = load_config(
            {"MENU_CRITIC_BACKEND_URL": "https://api.example.com/", "MENU_CRITIC_AUTH_ENABLED": True},
            environ={"MENU_CRITIC_BACKEND_URL": "http://ignored"},
        )
        assert config == ClientConfig(backend_url="https://api.example.com", auth_enabled=True)
        assert config.login_url == "https://api.example.com/auth/google"

    def test_falls_back_to_environment(self):
        config = load_config(
            {},
            environ={"MENU_CRITIC_BACKEND_URL": "http://localhost:3001", "MENU_CRITIC_AUTH_ENABLED": "yes"},
        )
        assert config.backend_url == "http://localhost:3001"
        assert config.auth_enabled is True

    def test_auth_disabled_by_default(self):
        config = load_config({"MENU_CRITIC_BACKEND_URL": "http://x"}, environ={})
        assert config.auth_enabled is False

    def test_missing_backend_url(self):
        with pytest.raises(BackendSetupError):
            load_config({}, environ={})


class TestPrepareMenuFile:
    def test_none_is_rejected(self):
        with pytest.raises(UserInputError):
            prepare_menu_file(None)

    def test_oversized_file_is_rejected(self, monkeypatch):
        monkeypatch.setattr(menu_chat_core, "MAX_UPLOAD_BYTES", 10)
        with pytest.raises(UserInputError, match="too large"):
            prepare_menu_file(MenuFile(name="menu.pdf", content=b"x" * 11, content_type="application/pdf"))

    def test_small_files_pass_through(self, menu_file):
        assert prepare_menu_file(menu_file) is menu_file

    @pytest.mark.parametrize("mode", ["RGB", "RGBA"])
    def test_large_images_are_recompressed(self, monkeypatch, mode):
        monkeypatch.setattr(menu_chat_core, "TARGET_IMAGE_BYTES", 1000)
        original = MenuFile(name="menu.photo.png", content=_png_bytes(mode=mode), content_type="image/png")

        prepared = prepare_menu_file(original)

        assert prepared.content_type == "image/jpeg"
        assert prepared.name == "menu.photo.jpg"
        with Image.open(io.BytesIO(prepared.content)) as image:
            assert image.format == "JPEG"
            assert image.size == (1600, 800)

    def test_unreadable_image_is_rejected(self, monkeypatch):
        monkeypatch.setattr(menu_chat_core, "TARGET_IMAGE_BYTES", 5)
        with pytest.raises(UserInputError, match="could not be read"):
            prepare_menu_file(MenuFile(name="menu.png", content=b"not an image", content_type="image/png"))


class TestMenuFile:
    def test_from_upload(self):
        class Uploaded:
            name = "lunch.png"
            type = "image/png"

            def getvalue(self):
                return b"abc"

        menu_file = MenuFile.from_upload(Uploaded())
        assert menu_file == MenuFile(name="lunch.png", content=b"abc", content_type="image/png")
        assert menu_file.size == 3


class TestClient:
    @pytest.mark.asyncio
    async def test_upload_posts_multipart_and_reports_progress(self, client, backend, menu_file):
        backend.reply("/api/upload", conversationId="c1", initialResponse="Looks good")
        events = []

        result = await client.upload_menu(menu_file, on_progress=events.append)

        assert result.conversation_id == "c1"
        assert result.initial_response == "Looks good"
        request = backend.requests[0]
        assert request.method == "POST"
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b'name="menuFile"' in request.content
        assert b'filename="menu.txt"' in request.content
        assert menu_file.content in request.content
        assert events
        assert events[-1] == ProgressEvent(bytes_sent=len(request.content), total_bytes=len(request.content))

    @pytest.mark.asyncio
    async def test_large_upload_reports_several_events(self, client, backend):
        backend.reply("/api/upload", conversationId="c1", initialResponse="ok")
        events = []
        big = MenuFile(name="menu.pdf", content=b"m" * (menu_chat_core.UPLOAD_CHUNK_BYTES * 3), content_type="application/pdf")

        await client.upload_menu(big, on_progress=events.append)

        sent = [event.bytes_sent for event in events]
        assert len(events) >= 3
        assert sent == sorted(sent)
        assert sent[-1] == events[-1].total_bytes

    @pytest.mark.asyncio
    async def test_chat_sends_json(self, client, backend):
        backend.reply("/api/chat", response="Done")

        reply = await client.chat("c1", "lower prices")

        assert reply == "Done"
        assert json.loads(backend.requests[0].content) == {"conversationId": "c1", "message": "lower prices"}
        assert "Authorization" not in backend.requests[0].headers

    @pytest.mark.asyncio
    async def test_finalize_sends_conversation_id(self, client, backend):
        backend.reply("/api/finalize", finalReport="# Report")

        report = await client.finalize("c1")

        assert report == "# Report"
        assert json.loads(backend.requests[0].content) == {"conversationId": "c1"}

    @pytest.mark.asyncio
    async def test_error_body_becomes_network_error(self, client, backend):
        backend.reply("/api/chat", status_code=500, error="model overloaded")

        with pytest.raises(NetworkError) as excinfo:
            await client.chat("c1", "hi")

        assert str(excinfo.value) == "model overloaded"
        assert excinfo.value.status_code == 500

    @pytest.mark.asyncio
    async def test_error_without_body_uses_status(self, client, backend):
        backend.route("/api/chat", lambda request: httpx.Response(502, text="bad gateway"))

        with pytest.raises(NetworkError, match="HTTP 502"):
            await client.chat("c1", "hi")

    @pytest.mark.asyncio
    async def test_transport_failure_becomes_network_error(self, client, backend):
        backend.fail("/api/finalize", httpx.ReadTimeout("timeout"))

        with pytest.raises(NetworkError, match="timeout"):
            await client.finalize("c1")

    @pytest.mark.asyncio
    async def test_missing_key_is_invalid_response(self, client, backend):
        backend.reply("/api/chat", answer="wrong key")

        with pytest.raises(InvalidResponseError) as excinfo:
            await client.chat("c1", "hi")

        assert "answer" in excinfo.value.raw_output

    @pytest.mark.asyncio
    async def test_non_json_success_is_invalid_response(self, client, backend):
        backend.route("/api/finalize", lambda request: httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(InvalidResponseError):
            await client.finalize("c1")

    @pytest.mark.asyncio
    async def test_unauthorised_without_auth_is_plain_network_error(self, client, backend):
        backend.reply("/api/chat", status_code=401, error="nope")

        with pytest.raises(NetworkError) as excinfo:
            await client.chat("c1", "hi")

        assert not isinstance(excinfo.value, AuthError)


class TestAuthenticatedClient:
    @pytest.fixture
    def client(self, auth_config, backend):
        return MenuCriticClient(auth_config, transport=httpx.MockTransport(backend))

    @pytest.mark.asyncio
    async def test_bearer_credential_is_attached(self, client, backend, menu_file):
        backend.reply("/api/upload", conversationId="c1", initialResponse="ok")
        backend.reply("/api/user/me", email="chef@example.com")

        await client.upload_menu(menu_file, credential="tok-1")
        user = await client.current_user(credential="tok-1")

        assert user.email == "chef@example.com"
        assert [request.headers["Authorization"] for request in backend.requests] == [
            "Bearer tok-1",
            "Bearer tok-1",
        ]

    @pytest.mark.asyncio
    async def test_missing_credential_fails_before_request(self, client, backend):
        with pytest.raises(AuthError):
            await client.chat("c1", "hi")
        assert backend.requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_rejected_credential_is_auth_error(self, client, backend, status_code):
        backend.reply("/api/finalize", status_code=status_code, error="expired")

        with pytest.raises(AuthError) as excinfo:
            await client.finalize("c1", credential="stale")

        assert excinfo.value.status_code == status_code
        assert str(excinfo.value) == menu_chat_core.LOGIN_AGAIN_MESSAGE
