"""
Bounded activity log
"""

import logging
import re

import pytest

from labrecorder.activity_log import ActivityLog


@pytest.fixture
def activity():
    handler = ActivityLog(capacity=3)
    logger = logging.getLogger('labrecorder.tests.activity')
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    yield handler, logger
    logger.removeHandler(handler)


def test_entries_are_timestamped_newest_first(activity):
    handler, logger = activity

    logger.info("first")
    logger.warning("second")

    entries = handler.entries()
    assert [e.split(': ', 1)[1] for e in entries] == ['second', 'first']
    assert re.fullmatch(r'\d{2}:\d{2}:\d{2}: second', entries[0])


def test_oldest_entries_are_evicted(activity):
    handler, logger = activity

    for i in range(5):
        logger.info(f"message {i}")

    assert len(handler) == 3
    assert [e.split(': ', 1)[1] for e in handler.entries()] == ['message 4', 'message 3', 'message 2']


def test_debug_messages_are_not_kept(activity):
    handler, logger = activity
    logger.setLevel(logging.DEBUG)

    logger.debug("noise")

    assert handler.entries() == []


def test_subscribers_receive_new_entries(activity):
    handler, logger = activity
    received = []
    handler.subscribe(received.append)

    logger.info("connected")
    handler.unsubscribe(received.append)
    logger.info("ignored")

    assert len(received) == 1
    assert received[0].endswith(': connected')


def test_failing_subscriber_does_not_break_logging(activity, monkeypatch):
    handler, logger = activity
    monkeypatch.setattr(logging, 'raiseExceptions', False)

    def broken(entry):
        raise RuntimeError("ui closed")

    handler.subscribe(broken)
    logger.info("still logged")

    assert handler.entries()[0].endswith('still logged')


def test_clear(activity):
    handler, logger = activity
    logger.info("x")

    handler.clear()

    assert handler.entries() == []


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        ActivityLog(capacity=0)
