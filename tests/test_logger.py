import logging

from logger import configure_logging


def test_configure_logging_names_logger_and_quiets_pymongo():
    logger = configure_logging('ledger')
    assert logger.name == 'ledger'
    assert logging.getLogger('pymongo').level >= logging.INFO
