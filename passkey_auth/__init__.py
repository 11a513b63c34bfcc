"""WebAuthn passkey ceremonies with pluggable challenge and credential stores."""

__version__ = "0.1.0"
