"""
Shared fixtures.
"""

import pytest
from loguru import logger

from stabs_decoder import DebugInfoBuilder, StabKind, StabRecord, StabsDecoder


@pytest.fixture
def builder():
    """
    A builder with a compilation unit already started.
    """
    sink = DebugInfoBuilder()
    sink.set_filename("test.cc")
    return sink


@pytest.fixture
def log_warnings():
    """
    Collect the messages logged at WARNING and above while the test runs.
    """
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="WARNING")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def decoder(builder):
    return StabsDecoder(builder)


@pytest.fixture
def parser(decoder):
    """
    The decoder's type parser, with type 1 defined as `int`.
    """
    decoder.dispatch(StabRecord(StabKind.N_LSYM, 0, 0, "int:t1=r1;-2147483648;2147483647;"))
    return decoder.types
