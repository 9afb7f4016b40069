"""Host name resolution and reachability probing."""

from truetime.network.address_resolver import (
    is_reachable,
    resolve_addresses,
    resolve_reachable_addresses,
)

__all__ = ["is_reachable", "resolve_addresses", "resolve_reachable_addresses"]
