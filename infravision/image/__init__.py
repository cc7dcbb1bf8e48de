"""Image generation backend package.

Scope:
    Provides the workflow graph builder, the asset transfer and job execution
    clients for the graph engine, the single-call multimodal client, and the
    provider factory selected by configuration.

Non-goals:
    - No project state; results are returned to `infravision.core`.
    - No pixel-level image processing.
"""
