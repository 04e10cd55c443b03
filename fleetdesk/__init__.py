"""
Fleetdesk - reservation lifecycle service for a car rental fleet
"""
__version__ = "1.4.0"
