"""Throwaway EventBridge rule + SQS probe for testing event patterns."""

__version__ = "1.6.0"
