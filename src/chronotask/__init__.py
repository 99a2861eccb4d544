"""
Chronotask client-side error pipeline.
"""

__version__ = "0.1.0"
