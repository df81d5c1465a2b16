"""Directory extension-attribute exporter.

Signs in to a tenant, pages through the Microsoft Graph /users listing with
token rotation, throttling and retry handling, and returns each user's
fifteen on-premises extension attributes (optionally with guest metadata)
in memory or as a dated CSV.
"""
