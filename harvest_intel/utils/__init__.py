"""
Utility modules for the Harvest Intelligence Engine
"""

from .geo import haversine_km, EARTH_RADIUS_KM
from .logger import get_logger, setup_logging

__all__ = [
    'haversine_km',
    'EARTH_RADIUS_KM',
    'get_logger',
    'setup_logging'
]
