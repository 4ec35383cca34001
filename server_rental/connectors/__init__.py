"""Connectors for the external systems the rental core drives.

- PanelClient: Pterodactyl application API (resources, backups, users, access)

Connectors own a pooled httpx client, parse payloads into typed results,
and raise a single error type per connector.
"""
