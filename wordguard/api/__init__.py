"""API adapter package.

Defines the external interaction boundary (HTTP and CLI). Performs transport
validation and response shaping; all chat work is delegated to
`wordguard.core.engine`.
"""
