"""
markform — integration test package

File: tests/integration/__init__.py

Purpose
- Test package marker file.

What should be included in this file
- Keep this file lightweight; used to define test package boundaries.
"""
