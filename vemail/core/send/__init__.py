"""Outbound mail routing."""

from .router import SendRequest, SendResult, SendRouter, transport_path

__all__ = ["SendRequest", "SendResult", "SendRouter", "transport_path"]
