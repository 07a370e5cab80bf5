"""
Loading persisted recordings, time normalization and statistics
"""

import pytest

from labrecorder.analysis import (
    INTERVAL_PALETTE,
    TimeNormalizer,
    analyze,
    compute_stats,
    format_stats,
    load_recording,
)
from labrecorder.errors import EmptyRecordingError, ParseError
from labrecorder.models import ChannelKind, RecordingMode

HR = ChannelKind.HR
RR = ChannelKind.RR


def write(path, lines):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(''.join(line + '\n' for line in lines), encoding='utf-8')


@pytest.fixture
def single_dir(tmp_path):
    return tmp_path / 'SingleRecordings' / 'P1'


@pytest.fixture
def group_dir(tmp_path):
    directory = tmp_path / 'G1'
    write(directory / 'Participant_1' / 'hr.csv', ['timestamp,hr', '2000,70', '3000,72'])
    write(directory / 'Participant_1' / 'rr.csv', ['timestamp,rr_ms', '2000,850'])
    write(directory / 'Participant_2' / 'hr.csv', ['timestamp,hr', '2500,90'])
    write(directory / 'Participant_2' / 'rr.csv', ['timestamp,rr_ms'])
    write(directory / 'timestamps.csv', ['timestamp,event_type', '1500,interval_start', '4000,interval_end'])
    return directory


def test_round_trip_preserves_values_and_order(single_dir):
    rows = [(10_000 + 37 * i, 55 + (i * 7) % 40) for i in range(200)]
    write(single_dir / 'hr.csv', ['timestamp,hr'] + [f'{t},{v}' for t, v in rows])

    result = analyze(single_dir)
    series = result.get_channel_series(1, HR)

    assert [v for _, v in series] == [v for _, v in rows]
    assert [s for s, _ in series] == [pytest.approx((t - 10_000) / 1000) for t, _ in rows]
    assert result.origin_ms == 10_000


def test_origin_includes_events(group_dir):
    result = analyze(group_dir)

    assert result.origin_ms == 1500
    assert result.get_channel_series(1, HR)[0] == (pytest.approx(0.5), 70)
    assert result.get_channel_series(2, HR) == [(pytest.approx(1.0), 90)]


def test_group_layout_detected(group_dir):
    recording = load_recording(group_dir)

    assert recording.mode is RecordingMode.GROUP
    assert recording.slots == [1, 2]


def test_single_layout_detected(single_dir):
    write(single_dir / 'hr.csv', ['timestamp,hr', '1,60'])

    recording = load_recording(single_dir)

    assert recording.mode is RecordingMode.SINGLE
    assert recording.slots == [1]


def test_intervals_on_normalized_axis(group_dir):
    markers = analyze(group_dir).get_markers()

    assert markers.points == []
    assert len(markers.intervals) == 1
    window = markers.intervals[0]
    assert (window.start_s, window.end_s) == (pytest.approx(0.0), pytest.approx(2.5))
    assert window.color_index == 0
    assert window.label == 'Interval 1'
    assert window.color() == INTERVAL_PALETTE[0]


def test_colors_cycle_in_closing_order(single_dir):
    lines = ['timestamp,event_type']
    for i in range(7):
        lines += [f'{100 * i},interval_start', f'{100 * i + 50},interval_end']
    lines += ['900,manual_mark']
    write(single_dir / 'timestamps.csv', lines)

    markers = analyze(single_dir).get_markers()

    assert [w.color_index for w in markers.intervals] == [0, 1, 2, 3, 4, 5, 0]
    assert [p.time_s for p in markers.points] == [pytest.approx(0.9)]


def test_analysis_is_deterministic(group_dir):
    first = analyze(group_dir).get_markers()
    second = analyze(group_dir).get_markers()

    assert first == second


def test_missing_channel_file_is_an_empty_series(single_dir):
    write(single_dir / 'hr.csv', ['timestamp,hr', '1000,60'])

    result = analyze(single_dir)

    assert result.get_channel_series(1, RR) == []
    assert result.get_stats(1, RR) is None
    assert result.load_errors == []


def test_empty_recording(single_dir):
    write(single_dir / 'hr.csv', ['timestamp,hr'])
    write(single_dir / 'timestamps.csv', ['timestamp,event_type'])

    with pytest.raises(EmptyRecordingError):
        analyze(single_dir)


def test_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_recording(tmp_path / 'nope')


def test_mean_is_truncated():
    stats = compute_stats([60, 61])

    assert (stats.min, stats.max, stats.mean, stats.count) == (60, 61, 60, 2)


def test_stats_of_empty_series():
    assert compute_stats([]) is None


@pytest.mark.parametrize('lines, line_no', [
    (['timestamp,hr', '1000,60', '1500,abc'], 3),
    (['timestamp,hr', '1000', '1500,62'], 2),
    (['timestamp,hr', '1000,60.5'], 2),
    (['timestamp,hr', '1000,60', '', '1600,61'], 3),
])
def test_bad_row_fails_whole_file(single_dir, lines, line_no):
    write(single_dir / 'hr.csv', lines)
    write(single_dir / 'rr.csv', ['timestamp,rr_ms', '1000,800'])

    recording = load_recording(single_dir)

    assert (1, HR) not in recording.channels
    assert len(recording.load_errors) == 1
    assert recording.load_errors[0].line == line_no
    assert list(recording.series(1, RR)['value']) == [800]


def test_out_of_range_integer_fails_file(single_dir):
    write(single_dir / 'hr.csv', ['timestamp,hr', '1000,60', '99999999999999999999,61'])
    write(single_dir / 'rr.csv', ['timestamp,rr_ms', '1000,800'])

    recording = load_recording(single_dir)

    assert (1, HR) not in recording.channels
    assert isinstance(recording.load_errors[0], ParseError)
    assert recording.load_errors[0].line == 3
    assert list(recording.series(1, RR)['value']) == [800]

    with pytest.raises(ParseError):
        load_recording(single_dir, strict=True)


def test_extra_column_fails_file(single_dir):
    write(single_dir / 'hr.csv', ['timestamp,hr', '1000,60', '1500,62,9'])

    recording = load_recording(single_dir)

    assert (1, HR) not in recording.channels
    assert isinstance(recording.load_errors[0], ParseError)


def test_wrong_header_fails_file(single_dir):
    write(single_dir / 'rr.csv', ['timestamp,rr', '1000,800'])

    with pytest.raises(ParseError) as info:
        load_recording(single_dir, strict=True)

    assert info.value.line == 1
    assert info.value.path == single_dir / 'rr.csv'


def test_empty_file_fails(single_dir):
    write(single_dir / 'hr.csv', [])

    with pytest.raises(ParseError):
        load_recording(single_dir, strict=True)


def test_strict_mode_raises_parse_error(single_dir):
    write(single_dir / 'hr.csv', ['timestamp,hr', 'x,60'])

    with pytest.raises(ParseError):
        analyze(single_dir, strict=True)


def test_bad_event_log_is_reported(single_dir):
    write(single_dir / 'hr.csv', ['timestamp,hr', '1000,60'])
    write(single_dir / 'timestamps.csv', ['timestamp,event_type', 'soon,manual_mark'])

    result = analyze(single_dir)

    assert result.get_markers().points == []
    assert len(result.load_errors) == 1


def test_format_stats():
    text = format_stats(compute_stats([60, 62]), HR)

    assert text == 'Heart Rate:\n  Min: 60 BPM\n  Max: 62 BPM\n  Avg: 61 BPM'
    assert format_stats(compute_stats([800, 900]), RR).endswith('Avg: 850 ms')
    assert 'No data' in format_stats(None, RR)


def test_summary_per_participant(group_dir):
    text = analyze(group_dir).summary(2)

    assert text.startswith('Participant 2')
    assert 'Min: 90 BPM' in text


def test_palette_must_not_be_empty():
    with pytest.raises(ValueError):
        TimeNormalizer(palette=())
