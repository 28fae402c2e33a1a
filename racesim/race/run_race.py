"""
Race Runner
===========

CLI entry point for sailing a race headless.

The boat starts on the course's start heading and sails until it
finishes, times out or hits the wall-clock limit. Optional autopilot
inputs: periodic tacks and a VMG lock.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..boat.maneuvers import VMGMode
from ..boat.polar import Polar
from ..course.models import Course
from ..preferences import PLAYER_NAME, JsonPreferenceStore, PreferenceStore
from ..wind.field import WindFieldDescriptor
from .session import RaceSession, RaceSnapshot, RaceStatus, SimulationConfig


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    format_str = '%(levelname)s: %(message)s' if not verbose else \
                 '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    # Reduce noise from third-party libraries
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('PIL').setLevel(logging.WARNING)
    logging.getLogger('cfgrib').setLevel(logging.WARNING)


def load_descriptors(filepath: str) -> List[WindFieldDescriptor]:
    """
    Load wind field descriptors from a JSON list.

    Relative source paths are resolved against the list's directory.
    """
    path = Path(filepath)
    with open(path, 'r') as f:
        entries = json.load(f)

    descriptors = []
    for entry in entries:
        descriptor = WindFieldDescriptor.from_dict(entry)
        url = descriptor.source_url
        if '://' not in url and not Path(url).is_absolute():
            descriptor = WindFieldDescriptor(descriptor.time, str(path.parent / url))
        descriptors.append(descriptor)
    return descriptors


def snapshot_to_dict(snapshot: RaceSnapshot) -> Dict[str, Any]:
    wind = snapshot.wind_speed
    return {
        'clock': snapshot.clock,
        'courseTime': snapshot.course_time,
        'lng': snapshot.position.lng,
        'lat': snapshot.position.lat,
        'heading': round(snapshot.heading, 2),
        'boatSpeed': round(snapshot.boat_speed, 3),
        'wind': None if wind is None else {'u': wind.u, 'v': wind.v},
        'nextGateIndex': snapshot.next_gate_index,
        'status': snapshot.status.value,
    }


def run_race(session: RaceSession,
             dt_ms: float = 1000.0,
             max_hours: float = 24.0,
             tack_every_s: float = 0.0,
             vmg_mode: Optional[VMGMode] = None,
             sample_every: int = 60,
             preferences: Optional[PreferenceStore] = None) -> Dict[str, Any]:
    """
    Sail a race to completion.

    Args:
        session: Race session (already started)
        dt_ms: Wall-clock tick (ms)
        max_hours: Wall-clock limit (hours)
        tack_every_s: Tack at this wall-clock interval (0 disables)
        vmg_mode: Lock VMG at start and after every tack
        sample_every: Keep one track point every N ticks
        preferences: Player preferences; the player name is recorded in the results

    Returns:
        Dictionary with track and final snapshot
    """
    if dt_ms <= 0:
        raise ValueError(f"Tick must be positive, got {dt_ms} ms")

    logger = logging.getLogger(__name__)
    max_clock = max_hours * 3_600_000
    next_tack = tack_every_s * 1000 if tack_every_s > 0 else None
    track = [snapshot_to_dict(session.snapshot)]
    ticks = 0

    if vmg_mode is not None:
        session.lock_vmg(vmg_mode)

    while session.is_running and session.state.clock < max_clock:
        # Block on wind loads so headless runs are reproducible
        upcoming = session.course.course_time(session.state.clock + dt_ms)
        session.timeline.advance(upcoming, wait=True)

        snapshot = session.tick(dt_ms)
        ticks += 1

        if snapshot.gate_crossed is not None or ticks % sample_every == 0:
            track.append(snapshot_to_dict(snapshot))

        if next_tack is not None and snapshot.clock >= next_tack:
            session.tack()
            next_tack += tack_every_s * 1000
        elif vmg_mode is not None and snapshot.target_heading is None:
            session.lock_vmg(vmg_mode)

    final = session.snapshot
    if session.is_running:
        logger.warning("Wall-clock limit reached before the race ended")

    track.append(snapshot_to_dict(final))
    return {
        'course': session.course.key,
        'player': preferences.get(PLAYER_NAME) if preferences is not None else None,
        'status': final.status.value,
        'finished': final.race_finished,
        'finishTime': session.state.finish_time,
        'ticks': ticks,
        'final': snapshot_to_dict(final),
        'track': track,
    }


def main():
    """Main entry point for race runner."""
    parser = argparse.ArgumentParser(
        description='Sail a race headless',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m racesim.race.run_race --course courses/vendee.json --winds winds/index.json

  python -m racesim.race.run_race --course courses/vendee.json --winds winds/index.json \\
    --polar polars/imoca.json --tack-every 600 --output results/ --verbose
"""
    )

    parser.add_argument('--course', '-c', type=str, required=True,
                        help='Path to course JSON file')
    parser.add_argument('--winds', '-w', type=str, required=True,
                        help='Path to wind descriptor list (JSON)')
    parser.add_argument('--polar', '-p', type=str, default=None,
                        help='Path to polar JSON file (default: built-in IMOCA)')
    parser.add_argument('--dt', type=float, default=1000.0,
                        help='Wall-clock tick in milliseconds (default: 1000)')
    parser.add_argument('--max-hours', type=float, default=24.0,
                        help='Wall-clock limit in hours (default: 24)')
    parser.add_argument('--tack-rate', type=float, default=SimulationConfig.tack_turn_rate,
                        help='Tack/gybe turn rate in deg/s (default: %(default)s)')
    parser.add_argument('--inertia-tau', type=float, default=SimulationConfig.inertia_tau,
                        help='Boat speed time constant in seconds (default: %(default)s)')
    parser.add_argument('--tack-every', type=float, default=0.0,
                        help='Tack every N wall-clock seconds (default: never)')
    parser.add_argument('--vmg', choices=[m.value for m in VMGMode], default=None,
                        help='Hold the best VMG heading')
    parser.add_argument('--output', '-o', type=str, default='results/race',
                        help='Output directory (default: results/race)')
    parser.add_argument('--prefs', type=str, default=None,
                        help='Player preferences JSON (player name recorded in the track)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output')

    args = parser.parse_args()
    if args.dt <= 0:
        parser.error(f"--dt must be positive, got {args.dt}")

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    for label, filepath in (('Course', args.course), ('Wind list', args.winds), ('Polar', args.polar)):
        if filepath and not Path(filepath).exists():
            logger.error(f"{label} file not found: {filepath}")
            sys.exit(1)

    session = None
    try:
        course = Course.from_json(args.course)
        descriptors = load_descriptors(args.winds)
        polar = Polar.from_json(args.polar) if args.polar else Polar.imoca()

        logger.info("=" * 60)
        logger.info(f"RACE {course.name}")
        logger.info("=" * 60)
        logger.info(f"Gates: {len(course.gates)} + finish")
        logger.info(f"Wind fields: {len(descriptors)}")
        logger.info(f"Polar: {polar.name}")
        logger.info(f"Time factor: {course.time_factor}")
        logger.info("=" * 60)

        config = SimulationConfig(tack_turn_rate=args.tack_rate, inertia_tau=args.inertia_tau)
        session = RaceSession.start(course, descriptors, polar, config)
        results = run_race(
            session,
            dt_ms=args.dt,
            max_hours=args.max_hours,
            tack_every_s=args.tack_every,
            vmg_mode=VMGMode(args.vmg) if args.vmg else None,
            preferences=JsonPreferenceStore(args.prefs) if args.prefs else None,
        )

        output_path = Path(args.output)
        output_path.mkdir(parents=True, exist_ok=True)
        with open(output_path / 'track.json', 'w') as f:
            json.dump(results, f, indent=2)
        logger.info(f"Track saved to {output_path / 'track.json'}")

    except Exception as e:
        logger.error(f"Race failed: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(2)
    finally:
        if session is not None:
            session.close()

    if results['status'] == RaceStatus.FINISHED.value:
        logger.info("Race finished!")
        sys.exit(0)
    logger.warning(f"Race did not finish ({results['status']})")
    sys.exit(1)


if __name__ == '__main__':
    main()
