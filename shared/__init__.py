"""
Shared settings, types and utilities for the network test runner.
"""
