"""
Minimal tests for llm_utils: generate_text dispatch and return shape.
Mocks OpenAI/Google clients so tests do not hit real APIs.
"""

import unittest
import sys
from pathlib import Path
from unittest.mock import patch, MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent))

import llm_utils


class TestGetTextModelDisplay(unittest.TestCase):
    """Test get_text_model_display returns a string with provider and model."""

    def test_returns_string(self):
        out = llm_utils.get_text_model_display()
        self.assertIsInstance(out, str)
        parts = out.split("/", 1)
        self.assertEqual(len(parts), 2)
        self.assertTrue(len(parts[1].strip()) > 0)


class TestSplitMessages(unittest.TestCase):
    def test_system_folded_into_instruction(self):
        system, contents = llm_utils._split_messages([
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Cats and dogs"},
        ])
        self.assertEqual(system, "Be brief.")
        self.assertEqual(contents, "Cats and dogs")

    def test_no_system_gives_none(self):
        system, contents = llm_utils._split_messages([{"role": "user", "content": "Hi"}])
        self.assertIsNone(system)
        self.assertEqual(contents, "Hi")

    def test_empty_messages_skipped(self):
        _, contents = llm_utils._split_messages([{"role": "user", "content": "  "}, {"role": "user", "content": "x"}])
        self.assertEqual(contents, "x")


class TestGenerateText(unittest.TestCase):
    """Test generate_text returns a string; mock underlying API."""

    @patch.dict("os.environ", {"OPENAI_API_KEY": "sk-test"}, clear=False)
    @patch("openai.OpenAI")
    def test_openai_returns_string(self, mock_openai_class):
        mock_client = MagicMock()
        mock_openai_class.return_value = mock_client
        mock_resp = MagicMock()
        mock_resp.choices = [MagicMock()]
        mock_resp.choices[0].message.content = "cat and dog together"
        mock_client.chat.completions.create.return_value = mock_resp

        result = llm_utils.generate_text(
            messages=[{"role": "user", "content": "Hi"}],
            provider="openai",
            max_tokens=25,
        )
        self.assertEqual(result, "cat and dog together")
        call_kw = mock_client.chat.completions.create.call_args[1]
        self.assertEqual(call_kw["model"], llm_utils.TEXT_MODEL_OPENAI)
        self.assertEqual(call_kw["max_tokens"], 25)

    @patch.dict("os.environ", {"OPENAI_API_KEY": ""}, clear=False)
    def test_openai_missing_key_raises(self):
        with self.assertRaises(ValueError):
            llm_utils.generate_text(messages=[{"role": "user", "content": "Hi"}], provider="openai")

    @patch.dict("os.environ", {"GOOGLE_API_KEY": "test-key"}, clear=False)
    @patch("google.genai.Client")
    def test_google_maps_max_tokens_and_drops_timeout(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value = mock_client
        mock_resp = MagicMock()
        mock_resp.text = "pizza and burger side by side"
        mock_resp.candidates = []
        mock_client.models.generate_content.return_value = mock_resp

        result = llm_utils.generate_text(
            messages=[{"role": "system", "content": "rules"}, {"role": "user", "content": "Hi"}],
            provider="google",
            max_tokens=25,
            timeout=5,
        )
        self.assertEqual(result, "pizza and burger side by side")
        call_kw = mock_client.models.generate_content.call_args[1]
        self.assertEqual(call_kw["config"].max_output_tokens, 25)
        self.assertEqual(call_kw["config"].system_instruction, "rules")

    def test_invalid_provider_raises(self):
        with self.assertRaises(ValueError) as ctx:
            llm_utils.generate_text(
                messages=[{"role": "user", "content": "Hi"}],
                provider="invalid",
            )
        self.assertIn("openai", str(ctx.exception).lower())
        self.assertIn("google", str(ctx.exception).lower())


if __name__ == "__main__":
    unittest.main()
