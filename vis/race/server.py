#!/usr/bin/env python3
"""
Race Inspection Server
======================

Flask server exposing a race's inputs as JSON: course, polar and the
blended wind at any point and time. Used to check courses and wind
rasters before publishing a race.
"""

import argparse
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache
from typing import Any, Dict, List, Optional

from flask import Flask, jsonify, request

from racesim.boat.polar import Polar
from racesim.course.models import Course
from racesim.geo import LngLat
from racesim.race.run_race import load_descriptors
from racesim.wind.field import WindField, WindFieldDescriptor
from racesim.wind.loader import load_field
from racesim.wind.timeline import WindTimeline, prepare_descriptors

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Global race inputs
course: Optional[Course] = None
polar: Polar = Polar.imoca()
descriptors: List[WindFieldDescriptor] = []

# Shared by every request's wind timeline
_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix='wind-loader')


@lru_cache(maxsize=8)
def _cached_field(descriptor: WindFieldDescriptor) -> WindField:
    return load_field(descriptor)


def init_server(race_course: Optional[Course] = None,
                wind_descriptors: Optional[List[WindFieldDescriptor]] = None,
                race_polar: Optional[Polar] = None):
    """Set the race inputs served by the API."""
    global course, descriptors, polar

    course = race_course
    descriptors = prepare_descriptors(wind_descriptors or [])
    polar = race_polar or Polar.imoca()
    _cached_field.cache_clear()

    logger.info(f"Serving course {course.key if course else None}, "
                f"{len(descriptors)} wind fields, polar {polar.name}")


@app.route('/api/metadata')
def get_metadata() -> Dict[str, Any]:
    """
    Return metadata about the loaded race.

    Returns:
        JSON with course identity, wind field times and polar name
    """
    return jsonify({
        'course': None if course is None else {'key': course.key, 'name': course.name},
        'wind_times': [d.time for d in descriptors],
        'polar': polar.name,
    })


@app.route('/api/wind')
def get_wind() -> Dict[str, Any]:
    """
    Return the blended wind at a point.

    Query params:
        lat: Latitude (degrees)
        lng: Longitude (degrees)
        time: Simulated time (unix ms)

    Returns:
        JSON with u/v (m/s), speed (knots) and direction (degrees)
    """
    if not descriptors:
        return jsonify({'error': 'No wind data loaded'}), 500

    try:
        lat = float(request.args['lat'])
        lng = float(request.args['lng'])
        time_ms = int(request.args['time'])
    except KeyError as e:
        return jsonify({'error': f'Missing {e.args[0]} parameter'}), 400
    except ValueError:
        return jsonify({'error': 'Invalid lat, lng or time'}), 400

    timeline = WindTimeline(descriptors, loader=_cached_field, executor=_executor)
    try:
        timeline.advance(time_ms, wait=True)
        wind = timeline.sample_at(LngLat(lng=lng, lat=lat), time_ms)
        factor = timeline.interpolation_factor(time_ms)
        field_time = timeline.current_field.time if timeline.current_field else None
    finally:
        timeline.close()

    if wind is None:
        return jsonify({'error': 'No wind sample at this position and time'}), 404

    return jsonify({
        'lat': lat,
        'lng': lng,
        'time': time_ms,
        'field_time': field_time,
        'factor': factor,
        'u': wind.u,
        'v': wind.v,
        'speed': wind.speed_knots,
        'direction': wind.direction,
    })


@app.route('/api/polar')
def get_polar() -> Dict[str, Any]:
    """
    Return the polar curve for a wind speed.

    Query params:
        tws: True wind speed (knots)
    """
    try:
        tws = float(request.args.get('tws', '12'))
    except ValueError:
        return jsonify({'error': 'Invalid tws'}), 400

    return jsonify({
        'name': polar.name,
        'tws': tws,
        'curve': [{'twa': twa, 'speed': speed} for twa, speed in polar.polar_curve(tws)],
        'vmg': {
            'upwind': polar.optimal_vmg_angle(tws, upwind=True),
            'downwind': polar.optimal_vmg_angle(tws, upwind=False),
        },
        'max_speed': polar.max_speed(),
    })


@app.route('/api/course')
def get_course() -> Dict[str, Any]:
    """Return the course with derived gate endpoints."""
    if course is None:
        return jsonify({'error': 'No course loaded'}), 500

    def endpoints(gate):
        return [{'lng': p.lng, 'lat': p.lat} for p in gate.endpoints]

    data = course.to_dict()
    data['gateEndpoints'] = [endpoints(g) for g in course.gates]
    data['finishLineEndpoints'] = endpoints(course.finish_line)
    return jsonify(data)


def main():
    parser = argparse.ArgumentParser(description='Race Inspection Server')
    parser.add_argument('--course', '-c', required=True,
                        help='Course JSON file')
    parser.add_argument('--winds', '-w', default=None,
                        help='Wind descriptor list (JSON)')
    parser.add_argument('--polar', default=None,
                        help='Polar JSON file (default: built-in IMOCA)')
    parser.add_argument('--port', '-p', type=int, default=8080,
                        help='Port to run server on (default: 8080)')
    parser.add_argument('--host', default='127.0.0.1',
                        help='Host to bind to (default: 127.0.0.1)')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug mode')

    args = parser.parse_args()

    try:
        init_server(
            Course.from_json(args.course),
            load_descriptors(args.winds) if args.winds else [],
            Polar.from_json(args.polar) if args.polar else None,
        )
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load race inputs: {e}")
        sys.exit(1)

    logger.info(f"Starting server at http://{args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=args.debug)


if __name__ == '__main__':
    main()
