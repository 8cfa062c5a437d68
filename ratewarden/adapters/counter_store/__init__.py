"""Shared counter store adapters.

A counter store keeps one timestamp-ordered set per rate limit key. The Redis
adapter is the production backend; the in-memory adapter exists for
single-process development and tests.
"""
