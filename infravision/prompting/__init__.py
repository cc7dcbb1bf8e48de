"""Prompting package.

Deterministic prompt-construction helpers and preset templates. It does not
invoke any backend.
"""
