"""
Test support utilities for apikernel tests.

Helpers that are not fixtures but are shared across test modules.
"""
