"""Diet rule derivation and guardrails evaluation for meal plans."""

__version__ = "0.1.0"
