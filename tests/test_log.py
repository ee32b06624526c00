import logging

import pytest

from sparsefact.log import Log


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def handler():
    logger = logging.getLogger("sparsefact.test_log")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    h = _ListHandler()
    logger.addHandler(h)
    Log.set_options(logger)
    yield h
    Log.set_options(None)
    logger.removeHandler(h)


def test_levels(handler):
    Log.printf("info")
    Log.printw("warn")
    Log.printe("err")
    assert [r.levelno for r in handler.records] == [logging.INFO, logging.WARNING, logging.ERROR]


def test_formatting_and_newlines(handler):
    Log.printe("\nCG: x is nan at iter %d\n", 7)
    assert handler.records[0].getMessage() == "CG: x is nan at iter 7"


def test_silent_without_logger(handler):
    Log.set_options(None)
    Log.printf("nothing %d", 1)
    assert handler.records == []


def test_not_instantiable():
    with pytest.raises(TypeError):
        Log()