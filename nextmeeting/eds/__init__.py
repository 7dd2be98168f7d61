"""Bus access: the D-Bus client, calendar sessions, source discovery and watchers."""
