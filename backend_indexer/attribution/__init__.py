# Mint/burn attribution: central relay + off-chain mint request, or wallet → actor mapping.

from backend_indexer.attribution.resolver import AttributionLookup, AttributionResolver

__all__ = ["AttributionLookup", "AttributionResolver"]
