"""Core generation package.

Architectural role:
    Owns the project state and the orchestration that turns a generation request
    into a versioned history entry. Sits between the HTTP adapter and the image
    provider layer.

Composition:
    - `errors`: `ErrorKind` and the structured exception types.
    - `models`: frozen records for projects, versions, assets, and parameters.
    - `store`: `ProjectStore`, the single writer of project snapshots.
    - `engine`: `GenerationSession`, which drives a provider and reconciles results.

Determinism and side effects:
    Package import itself is deterministic and side-effect free.
"""
