"""
EventLog and CSV row writer behaviour
"""

import logging

import pytest

from labrecorder.coordinator.event_log import EventLog, validate_event_kind
from labrecorder.coordinator.writers import CsvRowWriter, open_writer
from labrecorder.errors import RecordingIOError, ValidationError
from labrecorder.models import MANUAL_MARK


def read_lines(path):
    return path.read_text(encoding='utf-8').splitlines()


@pytest.fixture
def event_log(tmp_path, clock):
    log = EventLog(tmp_path / 'timestamps.csv', clock)
    log.open()
    yield log
    log.close()


def test_header_written_on_open(event_log):
    assert read_lines(event_log.path) == ['timestamp,event_type']


def test_rows_are_flushed_immediately(event_log, manual_time):
    manual_time.set_ms(5000)
    mark = event_log.record(MANUAL_MARK)

    # still open: the row must already be on disk
    assert read_lines(event_log.path) == ['timestamp,event_type', '5000,manual_mark']
    assert mark.timestamp == 5000
    assert mark.kind == MANUAL_MARK
    assert event_log.events_written == 1


def test_timestamps_never_decrease(event_log, manual_time):
    for ms in [1000, 1500, 1200, 900, 2000]:
        manual_time.set_ms(ms)
        event_log.record(MANUAL_MARK)

    stamps = [int(line.split(',')[0]) for line in read_lines(event_log.path)[1:]]
    assert stamps == sorted(stamps)
    assert stamps == [1000, 1500, 1500, 1500, 2000]


@pytest.mark.parametrize('kind', ['', '   ', 'a,b', 'line\nbreak'])
def test_invalid_event_kinds(kind):
    with pytest.raises(ValidationError):
        validate_event_kind(kind)


def test_custom_event_kind_is_stripped():
    assert validate_event_kind('  stimulus_on ') == 'stimulus_on'


def test_writer_drops_rows_after_close(tmp_path):
    writer = CsvRowWriter(tmp_path / 'hr.csv', ('timestamp', 'hr'))
    writer.open()
    assert writer.append(1000, 60)
    writer.close()

    assert not writer.append(1001, 61)
    writer.close()

    assert read_lines(tmp_path / 'hr.csv') == ['timestamp,hr', '1000,60']
    assert writer.rows_written == 1


def test_writer_open_failure_raises(tmp_path):
    writer = CsvRowWriter(tmp_path / 'missing' / 'hr.csv', ('timestamp', 'hr'))

    with pytest.raises(RecordingIOError):
        writer.open()
    assert not writer.is_open
    assert not writer.append(1, 2)


def test_open_writer_logs_instead_of_raising(tmp_path, caplog):
    (tmp_path / 'hr.csv').mkdir()

    with caplog.at_level(logging.ERROR):
        writer = open_writer(tmp_path / 'hr.csv', ('timestamp', 'hr'))

    assert writer is None
    assert 'hr.csv' in caplog.text
