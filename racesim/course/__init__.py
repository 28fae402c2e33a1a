"""
Course Modules
==============
"""

from .models import Course, ExclusionZone, Gate
from .tracker import CourseTracker, check_crossing, segments_intersect

__all__ = [
    'Course',
    'ExclusionZone',
    'Gate',
    'CourseTracker',
    'check_crossing',
    'segments_intersect',
]
