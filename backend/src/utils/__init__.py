"""
Utility modules for the clinic scheduling application.

This package contains shared utility functions and helpers used across
the application, chiefly timezone-aware datetime handling for the clinic
wall clock.
"""
