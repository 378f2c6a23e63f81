import unittest
from unittest.mock import MagicMock

import requests

from connector import TranslationClient, TranslationError, Translator


def _response(status_code=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


class TranslationClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session = MagicMock()
        self.client = TranslationClient(url="https://translate.test/fn", timeout=3, session=self.session)

    def test_translate_posts_text_and_language(self) -> None:
        self.session.post.return_value = _response(payload={"translatedText": "Bonjour"})

        self.assertEqual(self.client.translate("Hello", "fr"), "Bonjour")
        self.session.post.assert_called_once_with(
            "https://translate.test/fn",
            json={"text": "Hello", "targetLanguage": "fr"},
            headers={"Accept": "application/json"},
            timeout=3,
        )

    def test_network_failure_raises_translation_error(self) -> None:
        self.session.post.side_effect = requests.ConnectionError("offline")

        with self.assertRaises(TranslationError):
            self.client.translate("Hello", "fr")

    def test_error_status_raises_translation_error(self) -> None:
        self.session.post.return_value = _response(status_code=500, text="boom")

        with self.assertRaises(TranslationError):
            self.client.translate("Hello", "fr")

    def test_malformed_body_raises_translation_error(self) -> None:
        self.session.post.return_value = _response(payload=ValueError("not json"))
        with self.assertRaises(TranslationError):
            self.client.translate("Hello", "fr")

        self.session.post.return_value = _response(payload={"text": "Bonjour"})
        with self.assertRaises(TranslationError):
            self.client.translate("Hello", "fr")

    def test_default_session_mounts_retrying_adapter(self) -> None:
        client = TranslationClient()

        adapter = client._session.get_adapter("https://example.com")
        self.assertEqual(adapter.max_retries.total, 3)
        self.assertIn(503, adapter.max_retries.status_forcelist)


class TranslatorTests(unittest.TestCase):
    def test_english_never_calls_client(self) -> None:
        client = MagicMock()
        translator = Translator("en", client)

        self.assertEqual(translator("Hello"), "Hello")
        client.translate.assert_not_called()

    def test_translations_are_cached(self) -> None:
        client = MagicMock()
        client.translate.return_value = "Hola"
        translator = Translator("ES", client)

        self.assertEqual(translator("Hello"), "Hola")
        self.assertEqual(translator("Hello"), "Hola")
        client.translate.assert_called_once_with("Hello", "es")

    def test_failure_falls_back_to_original_text(self) -> None:
        client = MagicMock()
        client.translate.side_effect = TranslationError("down")
        translator = Translator("fr", client)

        with self.assertLogs("connector.translate_client", level="WARNING"):
            self.assertEqual(translator("Hello"), "Hello")


if __name__ == "__main__":
    unittest.main()
