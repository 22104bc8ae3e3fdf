"""credrotate - rotate a long-lived access key without ever losing access."""

__version__ = "0.1.0"
