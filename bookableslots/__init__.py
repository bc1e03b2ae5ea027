"""
Aggregates scheduling API availability, increments and pricing into unified bookable slots.
"""

__version__ = "0.1.0"
