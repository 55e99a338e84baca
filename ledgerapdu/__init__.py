"""APDU commands and answers, HID framing, transports and protocols for Ledger devices."""

__version__ = "0.1.0"

__all__ = ["common", "errors", "hid", "protocol", "transport"]