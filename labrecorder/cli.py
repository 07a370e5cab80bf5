"""
Lab Recorder command line
Usage:
    labrecorder scan [--participants N]
    labrecorder record <id> [--participants N] [--output-root DIR] [--duration S]
    labrecorder analyze <recording dir> [--strict]
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from .errors import EmptyRecordingError, LabRecorderError, ParseError
from .models import ChannelKind
from .pipeline import LabRecorder, RecorderConfig

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'

logger = logging.getLogger('labrecorder.cli')

RECORD_HELP = "Commands: [m] mark  [i] interval start/end  [s] status  [q] stop"


def _configure_logging(log_file: Optional[str], verbose: bool):
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)
    if log_file:
        fh = logging.FileHandler(log_file)
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(fh)


def _build_config(args) -> RecorderConfig:
    if args.output_root:
        return RecorderConfig(output_root=Path(args.output_root), participants=args.participants)
    return RecorderConfig(participants=args.participants)


def _make_recorder(config: RecorderConfig) -> LabRecorder:
    # Imported here so `analyze` works on machines without a Bluetooth stack
    from .sensors.heart_rate.bleak_capability import BleakCapability

    capability = BleakCapability()
    capability.start()
    return LabRecorder(capability, config)


def cmd_scan(args) -> int:
    config = _build_config(args)
    recorder = _make_recorder(config)
    try:
        devices = recorder.scanner.scan(config.participants)
        if not devices:
            print(f"No {config.heart_rate.device_name_prefix} devices found.")
            return 1
        for device in devices:
            print(f"{device.name}\t{device.address}")
        return 0
    finally:
        recorder.shutdown()
        recorder.capability.close()


def cmd_record(args) -> int:
    config = _build_config(args)
    recorder = _make_recorder(config)
    stop_requested = threading.Event()

    def shutdown(signum, frame):
        logger.info("Shutdown signal received, stopping recording...")
        stop_requested.set()

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    try:
        devices = recorder.scan_and_connect()
        if not devices:
            return 1

        streaming = recorder.wait_until_streaming()
        logger.info(f"Streaming slots: {streaming or 'none'}")

        try:
            directory = recorder.start_recording(args.session_id)
        except LabRecorderError as e:
            logger.error(f"✗ {e}")
            return 2
        print(f"Recording to {directory}")

        if args.duration:
            stop_requested.wait(args.duration)
        else:
            _interactive_loop(recorder, stop_requested)

        summary = recorder.stop_recording()
        if summary is not None:
            for (slot, channel), rows in sorted(summary.rows_written.items(), key=lambda kv: (kv[0][0], kv[0][1].value)):
                print(f"P{slot} {channel.value}: {rows} rows")
            print(f"events: {summary.events_written}")
        return 0 if summary is None or not summary.close_errors else 3
    finally:
        recorder.shutdown()
        recorder.capability.close()


def _interactive_loop(recorder: LabRecorder, stop_requested: threading.Event):
    print(RECORD_HELP)
    while not stop_requested.is_set():
        line = sys.stdin.readline()
        if not line:
            break
        command = line.strip().lower()
        try:
            if command == 'q':
                break
            elif command == 'm':
                recorder.mark_timestamp()
            elif command == 'i':
                recorder.toggle_interval()
            elif command == 's':
                print(recorder.get_status())
            elif command:
                print(RECORD_HELP)
        except LabRecorderError as e:
            print(f"✗ {e}")


def cmd_analyze(args) -> int:
    from .analysis import analyze

    try:
        result = analyze(Path(args.path), strict=args.strict)
    except FileNotFoundError as e:
        logger.error(f"✗ {e}")
        return 1
    except (EmptyRecordingError, ParseError) as e:
        logger.error(f"✗ {e}")
        return 2

    for slot in result.slots:
        print(result.summary(slot))
        print()

    markers = result.get_markers()
    for point in markers.points:
        print(f"mark at {point.time_s:.3f}s")
    for window in markers.intervals:
        print(f"{window.label}: {window.start_s:.3f}s - {window.end_s:.3f}s")

    if args.series:
        for slot in result.slots:
            for channel in ChannelKind:
                for seconds, value in result.get_channel_series(slot, channel):
                    print(f"P{slot},{channel.value},{seconds:.3f},{value}")

    return 0 if not result.load_errors else 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='labrecorder', description='Heart-rate lab recorder')
    parser.add_argument('--log-file', help='Also write DEBUG logs to this file')
    parser.add_argument('-v', '--verbose', action='store_true')
    sub = parser.add_subparsers(dest='command', required=True)

    def add_device_options(p):
        p.add_argument('--participants', type=int, choices=(1, 2), default=1)
        p.add_argument('--output-root', help='Recordings root (default $LABRECORDER_ROOT or ~/Documents/LabRecorder)')

    scan = sub.add_parser('scan', help='List nearby heart-rate straps')
    add_device_options(scan)
    scan.set_defaults(func=cmd_scan)

    record = sub.add_parser('record', help='Connect and record')
    record.add_argument('session_id', help='Participant id (1 participant) or group id (2 participants)')
    record.add_argument('--duration', type=float, help='Stop after this many seconds')
    add_device_options(record)
    record.set_defaults(func=cmd_record)

    analyze = sub.add_parser('analyze', help='Summarise a finished recording')
    analyze.add_argument('path', help='Recording directory')
    analyze.add_argument('--strict', action='store_true', help='Fail on the first unreadable file')
    analyze.add_argument('--series', action='store_true', help='Print normalized series as CSV')
    analyze.set_defaults(func=cmd_analyze)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.log_file, args.verbose)
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
