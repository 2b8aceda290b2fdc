"""Email delivery for mailrelay.

- encoder: Builds the MIME bytes for one message
- smtp: One SMTP delivery attempt over a raw socket
- services: Tenant settings, delivery logs and campaigns on top of smtp
"""
