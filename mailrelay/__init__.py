"""mailrelay - single-attempt SMTP delivery over a raw socket."""

__version__ = "0.1.0"
