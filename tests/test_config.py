import os
import unittest

from pydantic import ValidationError

from telemetry_assistant.config import Settings


class TestConfig(unittest.TestCase):
    def test_settings_defaults(self):
        previous = os.environ.pop("TELEMETRY_OLLAMA_BASE_URL", None)
        try:
            s = Settings()
            self.assertEqual(s.ollama_base_url, "http://localhost:11434")
            self.assertEqual(s.intent_confidence_scale, 50.0)
            self.assertEqual(s.cache_max_entries, 100)
            self.assertFalse(s.date_fallback_enabled)
        finally:
            if previous is not None:
                os.environ["TELEMETRY_OLLAMA_BASE_URL"] = previous

    def test_settings_env_override(self):
        previous = os.environ.get("TELEMETRY_OLLAMA_BASE_URL")
        try:
            os.environ["TELEMETRY_OLLAMA_BASE_URL"] = "http://example.com/"
            s = Settings()
            self.assertEqual(str(s.ollama_base_url), "http://example.com")
        finally:
            if previous is None:
                os.environ.pop("TELEMETRY_OLLAMA_BASE_URL", None)
            else:
                os.environ["TELEMETRY_OLLAMA_BASE_URL"] = previous

    def test_default_timezone_override(self):
        previous = os.environ.get("TELEMETRY_DEFAULT_TIMEZONE")
        try:
            os.environ["TELEMETRY_DEFAULT_TIMEZONE"] = "Europe/Berlin"
            s = Settings()
            self.assertEqual(s.default_timezone, "Europe/Berlin")
        finally:
            if previous is None:
                os.environ.pop("TELEMETRY_DEFAULT_TIMEZONE", None)
            else:
                os.environ["TELEMETRY_DEFAULT_TIMEZONE"] = previous

    def test_telemetry_api_url_is_normalized(self):
        s = Settings(telemetry_api_url="http://telemetry.local/")
        self.assertEqual(s.telemetry_api_url, "http://telemetry.local")
        self.assertEqual(s.telemetry_source, "http")

    def test_confidence_scale_must_be_positive(self):
        with self.assertRaises(ValidationError):
            Settings(intent_confidence_scale=0)


if __name__ == "__main__":
    unittest.main()
