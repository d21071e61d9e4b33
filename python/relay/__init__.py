"""Session relay: provider-aware proxy and event pagination for agent sessions."""
