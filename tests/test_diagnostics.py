import logging

from diagnostics import log_file_name, setup_error_logging
from version import __version__


def test_log_file_name_is_dated():
    name = log_file_name()
    assert name.startswith("photo-editor-error-")
    assert name.endswith(".log")
    assert len(name) == len("photo-editor-error-YYYYMMDD.log")


def test_setup_logs_tool_header(tmp_path, caplog):
    caplog.set_level(logging.INFO)
    logger = setup_error_logging("normalize-photo", tmp_path)
    assert logger.name == "normalize-photo"
    assert f"normalize-photo {__version__} logging to" in caplog.text
    assert log_file_name() in caplog.text
