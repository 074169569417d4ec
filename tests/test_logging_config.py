# tests/test_logging_config.py

import json
import logging

from utils.logging_config import JSONFormatter, setup_logging


def test_json_formatter():
    record = logging.LogRecord("core.fingerprint_engine", logging.INFO, __file__, 10,
                               "Stored %d hashes", (12,), None)
    data = json.loads(JSONFormatter().format(record))

    assert data['message'] == "Stored 12 hashes"
    assert data['level'] == "INFO"
    assert data['logger'] == "core.fingerprint_engine"


def test_setup_logging_is_idempotent(tmp_path):
    setup_logging("DEBUG", str(tmp_path))
    setup_logging("INFO", str(tmp_path))

    ours = [h for h in logging.getLogger().handlers if getattr(h, '_fingerprint_handler', False)]
    assert len(ours) == 3
    assert (tmp_path / "fingerprint.log").exists()

    for handler in ours:
        logging.getLogger().removeHandler(handler)
        handler.close()
