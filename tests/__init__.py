"""
Test Suite Initialization

Planloop test package.
"""
