from fastapi.testclient import TestClient

import main


def test_function_call_returns_result():
    client = TestClient(main.app)
    resp = client.post("/api/vapi/webhook", json={"type": "function-call", "functionCall": {"name": "x"}})
    assert resp.status_code == 200
    assert resp.json() == {"result": "Function executed successfully"}


def test_assistant_request_needs_claude_key(monkeypatch):
    client = TestClient(main.app)
    resp = client.post("/api/vapi/webhook", json={"type": "assistant-request"})
    assert resp.status_code == 500

    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-" + "a" * 28)
    resp = client.post("/api/vapi/webhook", json={"type": "assistant-request"})
    assert resp.status_code == 200
    model = resp.json()["assistant"]["model"]
    assert model["provider"] == "openai"
    assert model["messages"][0]["role"] == "system"
    assert "voice conversation" in model["messages"][0]["content"]


def test_report_and_unknown_types_acknowledge():
    client = TestClient(main.app)
    for kind in ("end-of-call-report", "status-update", None):
        resp = client.post("/api/vapi/webhook", json={"type": kind, "call": {"id": "c1"}})
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
