"""
Fleet Operations Dashboard

Vehicle rental fleet API with windowed financial metrics over ordered
aggregates.
"""

__version__ = "1.0.0"
