"""
daytrace
Turns raw personal telemetry into a confidence-scored timeline and reconciles it with the user's calendar
"""

__version__ = "0.3.0"
