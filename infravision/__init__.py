"""Infravision: municipal infrastructure rendering from base images and prompts.

Sub-packages:
    - `core`: data model, project store, and generation session.
    - `image`: backend clients, workflow graph builder, and generation providers.
    - `prompting`: prompt assembly and preset templates.
    - `api`: HTTP adapter for a presentation layer.
"""
