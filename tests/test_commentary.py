"""
test_commentary.py — Unit tests for the commentary client.

All HTTP traffic is mocked by patching requests.post inside the module.
"""

import json
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

sys.path.insert(0, str(Path(__file__).parent.parent))

from spend_insights.analyzer import analyze
from spend_insights.commentary import CommentaryClient, strip_code_fences
from spend_insights.data_generator import sample_records

POST = "spend_insights.commentary.requests.post"


def _chat_response(content: str) -> MagicMock:
    response = MagicMock()
    response.json.return_value = {"choices": [{"message": {"content": content}}]}
    response.raise_for_status.return_value = None
    return response


@pytest.fixture(scope="module")
def result():
    return analyze(sample_records())


@pytest.fixture
def client():
    return CommentaryClient(
        base_url="http://localhost:3000/",
        model="llama3.1:8b",
        api_key="secret-token",
        timeout_seconds=5,
    )


class TestStripCodeFences:

    def test_json_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_plain_text_untouched(self):
        assert strip_code_fences("  [1, 2]  ") == "[1, 2]"


class TestClientConfig:

    def test_url_joins_base_and_endpoint(self, client):
        assert client.url == "http://localhost:3000/api/chat/completions"

    def test_from_config_reads_env_token(self, monkeypatch):
        monkeypatch.setenv("COMMENTARY_API_KEY", "env-token")
        client = CommentaryClient.from_config({
            "commentary": {
                "base_url": "http://llm.internal",
                "endpoint": "/v1/chat/completions",
                "model": "gpt-4o-mini",
                "timeout_seconds": 12,
            }
        })
        assert client.api_key == "env-token"
        assert client.url == "http://llm.internal/v1/chat/completions"
        assert client.timeout_seconds == 12
        assert client.max_tokens == 2000


class TestSummarize:

    def test_success_and_payload(self, client, result):
        with patch(POST, return_value=_chat_response("Spend is concentrated.")) as mock_post:
            reply = client.summarize(result)

        assert reply == {"success": True, "commentary": "Spend is concentrated.", "model": "llama3.1:8b"}
        args, kwargs = mock_post.call_args
        assert args[0] == "http://localhost:3000/api/chat/completions"
        assert kwargs["timeout"] == 5
        assert kwargs["headers"]["Authorization"] == "Bearer secret-token"
        payload = kwargs["json"]
        assert payload["model"] == "llama3.1:8b"
        assert payload["stream"] is False
        assert "$20,921.10" in payload["messages"][1]["content"]

    def test_no_auth_header_without_key(self, result):
        client = CommentaryClient(base_url="http://localhost:3000", model="m")
        with patch(POST, return_value=_chat_response("ok")) as mock_post:
            client.summarize(result)
        assert "Authorization" not in mock_post.call_args.kwargs["headers"]

    def test_network_failure_returned_not_raised(self, client, result):
        with patch(POST, side_effect=requests.ConnectionError("connection refused")):
            reply = client.summarize(result)
        assert reply["success"] is False
        assert "connection refused" in reply["error"]

    def test_http_error(self, client, result):
        response = _chat_response("")
        response.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
        with patch(POST, return_value=response):
            reply = client.summarize(result)
        assert reply["success"] is False

    def test_unexpected_response_shape(self, client, result):
        response = MagicMock()
        response.json.return_value = {"error": "model not loaded"}
        with patch(POST, return_value=response):
            reply = client.summarize(result)
        assert reply["success"] is False
        assert "Unexpected commentary response shape" in reply["error"]


class TestInsightCards:

    def test_fenced_json_parsed(self, client, result):
        cards = {"executiveSummary": "Savings found", "totalSavings": 20921.1, "insightCards": []}
        content = f"```json\n{json.dumps(cards)}\n```"
        with patch(POST, return_value=_chat_response(content)):
            reply = client.insight_cards(result)
        assert reply["success"] is True
        assert reply["data"] == cards

    def test_invalid_json_falls_back_to_analysis(self, client, result):
        with patch(POST, return_value=_chat_response("Here are your insights!")):
            reply = client.insight_cards(result)
        data = reply["data"]
        assert reply["success"] is True
        assert data["insightCards"] == result["insights"]
        assert data["totalSavings"] == result["summary"]["totalSavings"]
        assert data["aiCommentary"] == "Here are your insights!"
        assert "parseError" in data


class TestDetectContracts:

    def test_contracts_parsed(self, client):
        contracts = [{"vendor": "Global Tech Solutions", "renewalDate": "2025-03-01", "annualValue": 214750}]
        with patch(POST, return_value=_chat_response(json.dumps(contracts))) as mock_post:
            found = client.detect_contracts(sample_records())
        assert found == contracts
        prompt = mock_post.call_args.kwargs["json"]["messages"][1]["content"]
        assert "PO-2024-1001" in prompt

    def test_only_first_twenty_records_sent(self, client):
        records = [{"vendor": f"V{i}", "po_number": f"PO-{i:03d}"} for i in range(25)]
        with patch(POST, return_value=_chat_response("[]")) as mock_post:
            client.detect_contracts(records)
        prompt = mock_post.call_args.kwargs["json"]["messages"][1]["content"]
        assert "PO-019" in prompt
        assert "PO-020" not in prompt

    def test_non_list_reply(self, client):
        with patch(POST, return_value=_chat_response('{"vendor": "x"}')):
            assert client.detect_contracts(sample_records()) == []

    def test_invalid_json(self, client):
        with patch(POST, return_value=_chat_response("No contracts found.")):
            assert client.detect_contracts(sample_records()) == []

    def test_network_failure(self, client):
        with patch(POST, side_effect=requests.Timeout("timed out")):
            assert client.detect_contracts(sample_records()) == []


class TestPing:

    def test_connected(self, client):
        with patch(POST, return_value=_chat_response('{"status": "connected"}')):
            reply = client.ping()
        assert reply["success"] is True
        assert reply["endpoint"] == client.url

    def test_unreachable(self, client):
        with patch(POST, side_effect=requests.ConnectionError("down")):
            assert client.ping()["success"] is False
