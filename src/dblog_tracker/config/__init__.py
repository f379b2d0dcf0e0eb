"""Configuration module for DB log tracking."""

from dblog_tracker.config.config import Config, load_config
from dblog_tracker.config.constants import TRACKING_CONSTANTS, TrackingConstants

__all__ = ['Config', 'load_config', 'TRACKING_CONSTANTS', 'TrackingConstants']
