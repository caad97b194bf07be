"""Shared helpers for cairn-bench."""

from cb_common.errors import CBError, error_to_payload
from cb_common.logging import configure_logging

__all__ = ["CBError", "configure_logging", "error_to_payload"]
