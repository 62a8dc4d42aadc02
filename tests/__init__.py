"""
Test suite for the Venus Clinic backend.

Contains unit tests for the domain services and API tests for the routers.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
