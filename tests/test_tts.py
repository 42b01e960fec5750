"""
Unit tests for tts.py. boto3, OpenAI and requests are mocked.
"""

import io
import tempfile
import unittest
import sys
from pathlib import Path
from unittest.mock import patch, MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent))

import requests

import tts


class TestValidation(unittest.TestCase):
    def test_missing_provider(self):
        with self.assertRaises(ValueError):
            tts.synthesize("Hello", "Joanna", "", "out.mp3")

    def test_unknown_provider(self):
        with self.assertRaises(ValueError) as ctx:
            tts.synthesize("Hello", "Joanna", "espeak", "out.mp3")
        self.assertIn("polly", str(ctx.exception))

    def test_missing_text_or_voice(self):
        with self.assertRaises(ValueError):
            tts.synthesize("   ", "Joanna", "polly", "out.mp3")
        with self.assertRaises(ValueError):
            tts.synthesize("Hello", "", "polly", "out.mp3")


class TestProviders(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.out = Path(self.tmp.name) / "nested" / "narration.mp3"

    def tearDown(self):
        self.tmp.cleanup()

    @patch("tts.boto3.client")
    def test_polly(self, mock_client):
        polly = MagicMock()
        polly.synthesize_speech.return_value = {"AudioStream": io.BytesIO(b"mp3-bytes")}
        mock_client.return_value = polly
        out = tts.synthesize("  Goats faint. ", "Joanna", "Polly", self.out)
        self.assertEqual(out.read_bytes(), b"mp3-bytes")
        kwargs = polly.synthesize_speech.call_args[1]
        self.assertEqual(kwargs["Text"], "Goats faint.")
        self.assertEqual(kwargs["VoiceId"], "Joanna")
        self.assertEqual(kwargs["OutputFormat"], "mp3")

    @patch.dict("os.environ", {"OPENAI_API_KEY": "sk-test"}, clear=False)
    @patch("tts.OpenAI")
    def test_openai(self, mock_openai_class):
        client = MagicMock()
        client.audio.speech.create.return_value.content = b"openai-audio"
        mock_openai_class.return_value = client
        tts.synthesize("Hello", "alloy", "openai", self.out)
        self.assertEqual(self.out.read_bytes(), b"openai-audio")
        self.assertEqual(client.audio.speech.create.call_args[1]["model"], tts.TTS_MODEL_OPENAI)

    @patch.dict("os.environ", {"OPENAI_API_KEY": ""}, clear=False)
    def test_openai_needs_key(self):
        with self.assertRaises(ValueError):
            tts.synthesize("Hello", "alloy", "openai", self.out)

    @patch.dict("os.environ", {"ELEVENLABS_API_KEY": "el-key"}, clear=False)
    @patch("tts.requests.post")
    def test_elevenlabs(self, mock_post):
        mock_post.return_value.content = b"el-audio"
        tts.synthesize("Hello", "voice123", "elevenlabs", self.out)
        self.assertEqual(self.out.read_bytes(), b"el-audio")
        self.assertTrue(mock_post.call_args[0][0].endswith("/voice123"))
        self.assertEqual(mock_post.call_args[1]["headers"]["xi-api-key"], "el-key")

    @patch.dict("os.environ", {"ELEVENLABS_API_KEY": "el-key"}, clear=False)
    @patch("tts.requests.post")
    def test_elevenlabs_http_error_propagates(self, mock_post):
        mock_post.return_value.raise_for_status.side_effect = requests.HTTPError("401")
        with self.assertRaises(requests.HTTPError):
            tts.synthesize("Hello", "voice123", "elevenlabs", self.out)


if __name__ == "__main__":
    unittest.main()
