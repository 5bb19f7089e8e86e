"""Aqueduct — Notion event intake and queue drain.

Notion webhooks are verified, deduplicated and appended to an Events Queue
database; a rate-limited worker drains the queue and routes every surviving
event to human review.
"""
