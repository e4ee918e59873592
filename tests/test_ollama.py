"""Tests for escalade.models.ollama module."""
import unittest
from unittest.mock import patch, MagicMock

import httpx

from escalade.models.base import Message, ModelSpec, StreamingUnsupportedError, TransportError
from escalade.models.ollama import OllamaClient


def _mock_client(mock_client_cls, status_code=200, payload=None, side_effect=None):
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.json.return_value = payload if payload is not None else {}
    mock_client = MagicMock()
    mock_client.__enter__ = MagicMock(return_value=mock_client)
    mock_client.__exit__ = MagicMock(return_value=False)
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_client.post.return_value = mock_response
    mock_client.get.return_value = mock_response
    mock_client_cls.return_value = mock_client
    return mock_client


class TestOllamaChat(unittest.TestCase):
    @patch("escalade.models.ollama.httpx.Client")
    def test_successful_chat(self, mock_client_cls):
        mock_client = _mock_client(mock_client_cls, payload={"message": {"role": "assistant", "content": "Hi!"}})
        client = OllamaClient(base_url="http://ollama:11434/")
        text = client.chat(
            ModelSpec("qwen2.5:3b", temperature=0.2, max_tokens=64),
            [Message("user", "Say hi")],
        )
        self.assertEqual(text, "Hi!")
        url = mock_client.post.call_args[0][0]
        payload = mock_client.post.call_args[1]["json"]
        self.assertEqual(url, "http://ollama:11434/api/chat")
        self.assertEqual(payload["model"], "qwen2.5:3b")
        self.assertFalse(payload["stream"])
        self.assertEqual(payload["messages"], [{"role": "user", "content": "Say hi"}])
        self.assertEqual(payload["options"], {"temperature": 0.2, "num_predict": 64})

    @patch("escalade.models.ollama.httpx.Client")
    def test_options_omitted_without_overrides(self, mock_client_cls):
        mock_client = _mock_client(mock_client_cls, payload={"message": {"content": "ok"}})
        OllamaClient().chat(ModelSpec("m"), [Message("user", "x")])
        self.assertNotIn("options", mock_client.post.call_args[1]["json"])

    @patch("escalade.models.ollama.httpx.Client")
    def test_default_timeout_is_unbounded(self, mock_client_cls):
        _mock_client(mock_client_cls, payload={"message": {"content": "ok"}})
        OllamaClient().chat(ModelSpec("m"), [Message("user", "x")])
        self.assertIsNone(mock_client_cls.call_args[1]["timeout"])

    @patch("escalade.models.ollama.httpx.Client")
    def test_streaming_fails_before_network(self, mock_client_cls):
        with self.assertRaises(StreamingUnsupportedError):
            OllamaClient().chat(ModelSpec("m"), [Message("user", "x")], stream=True)
        mock_client_cls.assert_not_called()

    @patch("escalade.models.ollama.httpx.Client")
    def test_http_error_status(self, mock_client_cls):
        _mock_client(mock_client_cls, status_code=500)
        with self.assertRaises(TransportError) as ctx:
            OllamaClient().chat(ModelSpec("m"), [Message("user", "x")])
        self.assertIn("500", str(ctx.exception))

    @patch("escalade.models.ollama.httpx.Client")
    def test_unreachable_backend(self, mock_client_cls):
        _mock_client(mock_client_cls, side_effect=httpx.ConnectError("refused"))
        with self.assertRaises(TransportError):
            OllamaClient().chat(ModelSpec("m"), [Message("user", "x")])

    @patch("escalade.models.ollama.httpx.Client")
    def test_missing_content(self, mock_client_cls):
        _mock_client(mock_client_cls, payload={"done": True})
        with self.assertRaises(TransportError):
            OllamaClient().chat(ModelSpec("m"), [Message("user", "x")])

    @patch("escalade.models.ollama.httpx.Client")
    def test_non_json_body(self, mock_client_cls):
        mock_client = _mock_client(mock_client_cls)
        mock_client.post.return_value.json.side_effect = ValueError("not json")
        with self.assertRaises(TransportError):
            OllamaClient().chat(ModelSpec("m"), [Message("user", "x")])


class TestOllamaEmbeddingsAndStatus(unittest.TestCase):
    @patch("escalade.models.ollama.httpx.Client")
    def test_embed(self, mock_client_cls):
        mock_client = _mock_client(mock_client_cls, payload={"embedding": [1, 2.5]})
        vector = OllamaClient().embed("hello", "nomic-embed-text")
        self.assertEqual(vector, [1.0, 2.5])
        self.assertEqual(mock_client.post.call_args[1]["json"], {"model": "nomic-embed-text", "prompt": "hello"})

    @patch("escalade.models.ollama.httpx.Client")
    def test_embed_without_vector(self, mock_client_cls):
        _mock_client(mock_client_cls, payload={"embedding": []})
        with self.assertRaises(TransportError):
            OllamaClient().embed("hello", "nomic-embed-text")

    @patch("escalade.models.ollama.httpx.Client")
    def test_list_models(self, mock_client_cls):
        _mock_client(mock_client_cls, payload={"models": [{"name": "qwen2.5:3b"}]})
        self.assertEqual(OllamaClient().list_models(), [{"name": "qwen2.5:3b"}])

    @patch("escalade.models.ollama.httpx.Client")
    def test_list_models_failure_is_empty(self, mock_client_cls):
        mock_client = _mock_client(mock_client_cls)
        mock_client.get.side_effect = httpx.ConnectError("refused")
        self.assertEqual(OllamaClient().list_models(), [])

    @patch("escalade.models.ollama.httpx.Client")
    def test_has_model(self, mock_client_cls):
        _mock_client(mock_client_cls, status_code=200)
        self.assertTrue(OllamaClient().has_model("qwen2.5:3b"))
        _mock_client(mock_client_cls, status_code=404)
        self.assertFalse(OllamaClient().has_model("missing"))

    def test_from_config(self):
        client = OllamaClient.from_config({
            "base_url": "http://gpu:11434",
            "request_timeout_seconds": 30,
            "max_concurrent_requests": 2,
        })
        self.assertEqual(client.base_url, "http://gpu:11434")
        self.assertEqual(client.timeout, 30.0)
        self.assertIsNotNone(client._slots)
        self.assertIsNone(OllamaClient.from_config({})._slots)


if __name__ == "__main__":
    unittest.main()
