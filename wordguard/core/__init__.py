"""Core orchestration package.

Composition:
    - `types`: request/response values and the per-request exchange context.
    - `advisor`: ordered advisor chain and terminal model stage.
    - `violation_advisor`: forbidden-term interception stage.
    - `logger_advisor`: request/response logging stage.
    - `engine`: chat application wiring.

Package import itself is side-effect free.
"""
