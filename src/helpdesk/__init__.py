"""Helpdesk — multi-tenant support ticketing API.

Companies (tenants), people with NORMAL/SUPPORT/ADMIN roles, tickets
and ticket chat messages, behind JWT auth with store-backed revocation.
"""

__version__ = "0.1.0"
