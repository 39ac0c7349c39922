"""SmartPark: parking slot reservation and per-minute billing"""

__version__ = "1.0.0"
