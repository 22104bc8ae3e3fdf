"""Test package for credrotate.

Making `tests/` a package gives test modules fully-qualified names and lets
them share fakes through `tests.conftest`.
"""
