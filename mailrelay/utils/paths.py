"""Centralized path definitions for mailrelay.

A single source of truth for the files mailrelay reads and writes.
"""

from pathlib import Path

# Base application directory
MAILRELAY_DIR = Path.home() / ".mailrelay"

# Subdirectories
LOGS_DIR = MAILRELAY_DIR / "logs"

# Specific files
CONFIG_PATH = MAILRELAY_DIR / "config.json"
