import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient

from agent_g.config import TelegramConfig, TwilioConfig, WhatsAppConfig
from agent_g.main import create_app

from conftest import DelegateRecorder, auth_headers, make_config

TELEGRAM_SECRET = "tg-secret"
APP_SECRET = "wa-app-secret"
SETUP_SECRET = "setup-me"
ADMIN_KEY = "admin-key"


@pytest.fixture
def recorder():
    return DelegateRecorder()


def make_client(recorder, **overrides):
    return TestClient(create_app(make_config(**overrides), http_transport=recorder.transport))


def telegram_update(chat_id, text):
    return {"update_id": 1, "message": {"message_id": 5, "chat": {"id": chat_id}, "text": text}}


def telegram_config(**overrides):
    values = dict(bot_token="bot-token", webhook_secret=TELEGRAM_SECRET, setup_secret=SETUP_SECRET)
    values.update(overrides)
    return TelegramConfig(**values)


def sign(body: bytes) -> str:
    return "sha256=" + hmac.new(APP_SECRET.encode(), body, hashlib.sha256).hexdigest()


class TestTelegramWebhook:
    @pytest.fixture
    def client(self, recorder):
        with make_client(recorder, telegram=telegram_config()) as client:
            yield client

    def _post(self, client, update, secret=TELEGRAM_SECRET):
        return client.post(
            "/agent-g/telegram/webhook",
            json=update,
            headers={"X-Telegram-Bot-Api-Secret-Token": secret},
        )

    def test_rejects_bad_secret(self, client):
        assert self._post(client, telegram_update(7, "hi"), secret="wrong").status_code == 401

    def test_update_without_message(self, client, recorder):
        body = self._post(client, {"update_id": 2, "callback_query": {}}).json()
        assert body == {"ok": True, "replied": False}
        assert recorder.requests == []

    def test_unlinked_chat_is_asked_to_connect(self, client, recorder):
        body = self._post(client, telegram_update(7, "Launch my brand")).json()

        assert body["replied"] is True
        assert body["task_id"] is None
        sent = [json.loads(request.content) for request in recorder.requests]
        assert sent[0]["chat_id"] == "7"
        assert "/connect CODE" in sent[0]["text"]
        assert recorder.requests[0].url.path == "/botbot-token/sendMessage"

    def test_connect_then_goal(self, client, recorder):
        code = client.post("/agent-g/channels/connect-code", headers=auth_headers("user-3")).json()["code"]
        self._post(client, telegram_update(7, f"/connect {code}"))
        body = self._post(client, telegram_update(7, "Launch my brand")).json()

        assert body["task_id"]
        assert "/api/business-agent/projects" in recorder.paths()
        texts = [json.loads(r.content)["text"] for r in recorder.requests if r.url.host == "api.telegram.org"]
        assert texts[0].startswith("Connected.")
        assert texts[1].startswith("Done.")
        assert texts[-1].startswith("ZIP: ")

        calls = client.get("/agent-g/calls", headers=auth_headers("user-3")).json()["calls"]
        assert calls == []

    def test_voice_note_without_transcription(self, client, recorder):
        code = client.post("/agent-g/channels/connect-code", headers=auth_headers("user-3")).json()["code"]
        self._post(client, telegram_update(7, f"/connect {code}"))
        update = {"update_id": 3, "message": {"message_id": 6, "chat": {"id": 7}, "voice": {"file_id": "voice-1"}}}
        body = self._post(client, update).json()

        assert body["task_id"] is None
        assert json.loads(recorder.requests[-1].content)["text"] == "Please send a task description."

    def test_web_task_sends_completion_notice(self, client, recorder):
        code = client.post(
            "/agent-g/channels/connect-code",
            params={"locale": "ka"},
            headers=auth_headers("user-3"),
        ).json()["code"]
        self._post(client, telegram_update(7, f"/connect {code}"))

        task_id = client.post(
            "/agent-g/execute",
            json={"goal": "Launch my brand"},
            headers=auth_headers("user-3"),
        ).json()["task_id"]

        notice = json.loads(recorder.requests[-1].content)
        assert notice["chat_id"] == "7"
        assert notice["text"].startswith("Agent G finished your task.")
        assert f"https://platform.test/ka/services/agent-g/dashboard?task={task_id}" in notice["text"]

        calls = client.get("/agent-g/calls", headers=auth_headers("user-3")).json()["calls"]
        assert [call["related_task_id"] for call in calls] == [task_id]


class TestTelegramAdmin:
    @pytest.fixture
    def client(self, recorder):
        with make_client(recorder, telegram=telegram_config(), admin_key=ADMIN_KEY) as client:
            yield client

    def test_set_webhook_with_header(self, client, recorder):
        response = client.post("/agent-g/telegram/set-webhook", headers={"x-telegram-setup-secret": SETUP_SECRET})
        body = response.json()

        assert response.status_code == 200
        assert body["ok"] is True
        assert body["webhook_url"] == "https://platform.test/agent-g/telegram/webhook"
        request = recorder.requests[-1]
        assert request.url.path == "/botbot-token/setWebhook"
        assert json.loads(request.content) == {
            "url": "https://platform.test/agent-g/telegram/webhook",
            "secret_token": TELEGRAM_SECRET,
        }

    def test_set_webhook_secret_from_query_or_body(self, client):
        assert client.get("/agent-g/telegram/set-webhook", params={"secret": SETUP_SECRET}).status_code == 200
        assert client.post("/agent-g/telegram/set-webhook", json={"secret": SETUP_SECRET}).status_code == 200

    def test_set_webhook_rejects_wrong_secret(self, client, recorder):
        assert client.get("/agent-g/telegram/set-webhook", params={"secret": "nope"}).status_code == 401
        assert client.post("/agent-g/telegram/set-webhook").status_code == 401
        assert recorder.requests == []

    def test_set_webhook_needs_setup_secret(self, recorder):
        with make_client(recorder, telegram=telegram_config(setup_secret="")) as client:
            response = client.get("/agent-g/telegram/set-webhook", params={"secret": "anything"})
        assert response.status_code == 503

    def test_send(self, client, recorder):
        response = client.post(
            "/agent-g/telegram/send",
            json={"chat_id": "42", "text": "*Hello*", "parse_mode": "Markdown"},
            headers={"x-admin-key": ADMIN_KEY},
        )

        assert response.status_code == 200
        assert response.json()["ok"] is True
        assert json.loads(recorder.requests[-1].content) == {"chat_id": "42", "text": "*Hello*", "parse_mode": "Markdown"}

    def test_send_admin_key_checks(self, client, recorder):
        body = {"chat_id": "42", "text": "hi"}
        assert client.post("/agent-g/telegram/send", json=body).status_code == 401
        assert client.post("/agent-g/telegram/send", json=body, params={"key": "wrong"}).status_code == 403
        assert recorder.requests == []

    def test_send_checks_admin_id_when_configured(self, recorder):
        with make_client(recorder, telegram=telegram_config(), admin_key=ADMIN_KEY, admin_id="root") as client:
            body = {"chat_id": "42", "text": "hi"}
            denied = client.post("/agent-g/telegram/send", json=body, headers={"x-admin-key": ADMIN_KEY})
            allowed = client.post(
                "/agent-g/telegram/send",
                json=body,
                headers={"x-admin-key": ADMIN_KEY, "x-admin-id": "root"},
            )
        assert denied.status_code == 403
        assert allowed.status_code == 200

    def test_send_rejects_unknown_parse_mode(self, client):
        response = client.post(
            "/agent-g/telegram/send",
            json={"chat_id": "42", "text": "hi", "parse_mode": "MarkdownV3"},
            headers={"x-admin-key": ADMIN_KEY},
        )
        assert response.status_code == 422

    def test_send_without_admin_key_configured(self, recorder):
        with make_client(recorder, telegram=telegram_config()) as client:
            response = client.post("/agent-g/telegram/send", json={"chat_id": "42", "text": "hi"}, params={"key": "x"})
        assert response.status_code == 500

    def test_send_reports_telegram_failure(self):
        failing = DelegateRecorder(failing_paths={"/botbot-token/sendMessage"})
        with make_client(failing, telegram=telegram_config(), admin_key=ADMIN_KEY) as failing_client:
            response = failing_client.post(
                "/agent-g/telegram/send",
                json={"chat_id": "42", "text": "hi"},
                headers={"x-admin-key": ADMIN_KEY},
            )
        assert response.status_code == 502

class TestWhatsAppWebhook:
    @pytest.fixture
    def client(self, recorder):
        whatsapp = WhatsAppConfig(access_token="wa-token", phone_number_id="555", verify_token="verify-me", app_secret=APP_SECRET)
        with make_client(recorder, whatsapp=whatsapp) as client:
            yield client

    def test_subscription_challenge(self, client):
        params = {"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "12345"}
        response = client.get("/agent-g/whatsapp/webhook", params=params)
        assert response.status_code == 200
        assert response.text == "12345"

        params["hub.verify_token"] = "nope"
        assert client.get("/agent-g/whatsapp/webhook", params=params).status_code == 403

    def test_rejects_bad_signature(self, client):
        body = json.dumps({"entry": []}).encode()
        response = client.post(
            "/agent-g/whatsapp/webhook",
            content=body,
            headers={"Content-Type": "application/json", "X-Hub-Signature-256": "sha256=deadbeef"},
        )
        assert response.status_code == 401

    def test_text_messages_get_replies(self, client, recorder):
        payload = {"entry": [{"changes": [{"value": {"messages": [
            {"from": "99512345", "type": "text", "text": {"body": "Launch my brand"}},
            {"from": "99512345", "type": "image"},
        ]}}]}]}
        body = json.dumps(payload).encode()
        response = client.post(
            "/agent-g/whatsapp/webhook",
            content=body,
            headers={"Content-Type": "application/json", "X-Hub-Signature-256": sign(body)},
        )

        assert response.json() == {"ok": True, "processed": 1}
        request = recorder.requests[-1]
        assert request.url.path == "/v19.0/555/messages"
        assert request.headers["Authorization"] == "Bearer wa-token"
        assert json.loads(request.content)["to"] == "99512345"

    def test_not_ready_acknowledges_without_running_tasks(self, recorder):
        whatsapp = WhatsAppConfig(access_token="", phone_number_id="", verify_token="verify-me", app_secret=APP_SECRET)
        payload = {"entry": [{"changes": [{"value": {"messages": [
            {"from": "99512345", "type": "text", "text": {"body": "Launch my brand"}},
        ]}}]}]}
        body = json.dumps(payload).encode()

        with make_client(recorder, whatsapp=whatsapp) as client:
            response = client.post(
                "/agent-g/whatsapp/webhook",
                content=body,
                headers={"Content-Type": "application/json", "X-Hub-Signature-256": sign(body)},
            )
            events = client.app.state.services.inbound_events

        assert response.status_code == 200
        assert response.json() == {"ok": True, "processed": 0}
        assert recorder.requests == []
        assert events.fallback_events() == []


class TestCallsWebhooks:
    @pytest.fixture
    def client(self, recorder):
        with make_client(recorder, twilio=TwilioConfig(account_sid="AC1", auth_token="tok")) as client:
            yield client

    def test_start_call(self, client):
        response = client.post(
            "/agent-g/calls/start",
            json={"channel": "phone", "mode": "task_intake", "initial_text": "Plan my launch"},
            headers=auth_headers(),
        )
        assert response.status_code == 201
        body = response.json()
        assert body["provider"] == "twilio"
        assert body["call"]["status"] == "active"
        assert body["call"]["transcript"] == "Plan my launch"
        assert body["call"]["meta"]["mode"] == "task_intake"

    def test_start_call_requires_login(self, client):
        response = client.post("/agent-g/calls/start", json={"channel": "phone", "mode": "qa"})
        assert response.status_code == 401

    def test_form_encoded_status_updates(self, client):
        inbound = client.post(
            "/agent-g/calls/webhook/inbound",
            data={"CallSid": "CA42", "CallStatus": "ringing", "From": "+1555"},
        ).json()
        assert inbound == {"ok": True, "call_id": "CA42", "status": "ringing", "meta": {"provider": "twilio", "from": "+1555", "to": None}}

        status = client.post("/agent-g/calls/webhook/status", data={"CallSid": "CA42", "CallStatus": "completed"}).json()
        assert status["status"] == "completed"

    def test_invalid_json_body(self, client):
        response = client.post(
            "/agent-g/calls/webhook/status",
            content=b"[1, 2",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400

    def test_end_call(self, client):
        call_id = client.post(
            "/agent-g/calls/start",
            json={"channel": "phone", "mode": "qa"},
            headers=auth_headers(),
        ).json()["call"]["call_id"]

        assert client.post(f"/agent-g/calls/{call_id}/end", headers=auth_headers()).json()["ok"] is True

    def test_guest_call_view(self, client):
        body = client.get("/agent-g/calls").json()
        assert body == {"guest": True, "provider": "twilio", "voice_connected": False, "prefs": None, "calls": []}

    def test_preferences_require_login(self, client):
        assert client.patch("/agent-g/calls", json={"phone_number": "+1555"}).status_code == 401

    def test_preferences_are_merged(self, client):
        first = client.patch("/agent-g/calls", json={"phone_number": "+1555", "voice_connected": True}, headers=auth_headers())
        second = client.patch("/agent-g/calls", json={"call_me_when_finished": False}, headers=auth_headers())

        assert first.status_code == 200
        prefs = second.json()["prefs"]
        assert prefs["phone_number"] == "+1555"
        assert prefs["call_me_when_finished"] is False
        assert prefs["voice_connected"] is True

        body = client.get("/agent-g/calls", headers=auth_headers()).json()
        assert body["guest"] is False
        assert body["voice_connected"] is True
        assert body["prefs"]["phone_number"] == "+1555"

    def test_invalid_quiet_hours_rejected(self, client):
        response = client.patch("/agent-g/calls", json={"quiet_hours_start": "25:00"}, headers=auth_headers())
        assert response.status_code == 422

    def test_start_call_uses_saved_phone_number(self, client):
        client.patch("/agent-g/calls", json={"phone_number": "+995555000111"}, headers=auth_headers())
        call = client.post(
            "/agent-g/calls/start",
            json={"channel": "phone", "mode": "qa"},
            headers=auth_headers(),
        ).json()["call"]
        assert call["meta"]["phone_number"] == "+995555000111"

    def test_history_lists_newest_first(self, client):
        ids = [
            client.post("/agent-g/calls/start", json={"channel": "phone", "mode": "qa"}, headers=auth_headers()).json()["call"]["call_id"]
            for _ in range(2)
        ]
        calls = client.get("/agent-g/calls", headers=auth_headers()).json()["calls"]
        assert [call["call_id"] for call in calls] == list(reversed(ids))
        assert client.get("/agent-g/calls", headers=auth_headers("someone-else")).json()["calls"] == []
