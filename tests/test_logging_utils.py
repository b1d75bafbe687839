import logging

from blog_archive_scraper.logging_utils import setup_logging


def test_log_file_receives_package_records(tmp_path):
    path = tmp_path / "logs" / "import.log"
    logger = setup_logging("DEBUG", path)

    logging.getLogger("blog_archive_scraper.pipeline").debug("imported %d records", 3)
    for handler in logger.handlers:
        handler.flush()

    assert "imported 3 records" in path.read_text(encoding="utf-8")
    assert logger.propagate is False


def test_unknown_level_falls_back_to_info():
    logger = setup_logging("chatty")
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
