"""ForceFlow UK: OpenSky military-traffic ingestion and activity tempo scoring."""
