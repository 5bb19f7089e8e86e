"""Notion webhook intake.

Verification handshake, HMAC signature check, dedup against the Events Queue,
and the admin endpoint that hands out the verification token once.
"""
