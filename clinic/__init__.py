"""
Venus Clinic Backend

A FastAPI-based clinic management backend: appointment booking and
assignment, clinical consultations with immutable prescriptions, billing,
and an audited administration surface.
"""

__version__ = "1.0.0"
