import logging
import unittest

from utils import logging_utils
from utils.logging_utils import build_logging_config, get_tagged_logger, mask_secret


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        self.records.append(record)


class TestLoggingUtils(unittest.TestCase):
    def test_build_logging_config_has_expected_handlers_and_filters(self):
        cfg = build_logging_config(job_name="telemetry-core")
        self.assertIn("handlers", cfg)
        self.assertIn("stdout", cfg["handlers"])
        self.assertIn("stderr", cfg["handlers"])
        self.assertIn("filters", cfg)
        # job_name filter should carry configured job
        self.assertEqual(cfg["filters"]["job_name"]["job_name"], "telemetry-core")

    def test_get_tagged_logger_injects_tag(self):
        handler = _ListHandler()
        logger = get_tagged_logger("telemetry_assistant.logging_check", tag="pipeline")
        base_logger = logger.logger
        base_logger.setLevel(logging.DEBUG)
        base_logger.addHandler(handler)
        base_logger.propagate = False

        logger.info("hello world")

        self.assertTrue(handler.records)
        record = handler.records[-1]
        self.assertEqual(record.tag, "pipeline")

        # cleanup
        base_logger.removeHandler(handler)

    def test_setup_logging_override_applies_filters(self):
        root = logging.getLogger()
        orig_handlers = root.handlers[:]
        orig_level = root.level
        try:
            logging_utils.setup_logging(level="INFO", job_name="jobtest", override_existing=True)
            self.assertTrue(root.handlers)
            # Check that at least one handler has JobNameFilter applied
            self.assertTrue(
                any(
                    any(f.__class__.__name__ == "JobNameFilter" for f in h.filters)
                    for h in root.handlers
                )
            )
        finally:
            root.handlers = orig_handlers
            root.setLevel(orig_level)
            root.propagate = True
            logging_utils._CONFIGURED = False  # reset for other tests


class TestMaskSecret(unittest.TestCase):
    def test_keeps_last_characters(self):
        self.assertEqual(mask_secret("sk-live-abcdef"), "**********cdef")

    def test_short_values_are_fully_masked(self):
        self.assertEqual(mask_secret("abc"), "***")

    def test_empty_values(self):
        self.assertEqual(mask_secret(None), "")
        self.assertEqual(mask_secret(""), "")

    def test_custom_visible_count(self):
        self.assertEqual(mask_secret("sekret", visible=2), "****et")


if __name__ == "__main__":
    unittest.main()
