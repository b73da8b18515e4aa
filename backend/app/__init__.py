"""NekoChat backend package."""
