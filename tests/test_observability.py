"""
Tests for logging setup and secret redaction.
"""

import logging

from devbox.core.observability.logging_config import SecretRedactor, _parse_level, setup_logging


class TestSecretRedactor:
    def test_masks_registered_secret(self):
        redactor = SecretRedactor()
        redactor.add("ghp_supersecret")
        assert redactor.redact("token=ghp_supersecret ok") == "token=**** ok"

    def test_ignores_short_values(self):
        redactor = SecretRedactor()
        redactor.add("abc")
        assert redactor.redact("abc") == "abc"

    def test_longest_first(self):
        redactor = SecretRedactor()
        redactor.add("secret1")
        redactor.add("secret1-extended")
        assert redactor.redact("secret1-extended") == "****"

    def test_filters_record_args(self):
        redactor = SecretRedactor()
        redactor.add("fk-factory-key")
        record = logging.LogRecord("t", logging.INFO, __file__, 1, "key is %s", ("fk-factory-key",), None)
        assert redactor.filter(record) is True
        assert record.getMessage() == "key is ****"


class TestSetupLogging:
    def test_level_parsing(self):
        assert _parse_level("debug") == logging.DEBUG
        assert _parse_level("nonsense") == logging.WARNING
        assert _parse_level(None) == logging.WARNING

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "devbox.log"
        root = logging.getLogger()
        saved = root.handlers[:], root.level
        try:
            setup_logging(level="WARNING", log_file=str(log_file), log_file_level="DEBUG")
            assert root.level == logging.DEBUG
            logging.getLogger("devbox.test").debug("written to file")
            for handler in root.handlers:
                handler.flush()
            assert "written to file" in log_file.read_text()
        finally:
            for handler in root.handlers:
                if handler not in saved[0]:
                    handler.close()
            root.handlers[:] = saved[0]
            root.setLevel(saved[1])
