"""Honey's Place XML protocol: envelope codec and HTTP transport."""
