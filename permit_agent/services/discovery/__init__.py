"""
Discovery Module for Permit Agent.

Resolves a jurisdiction's web presence and permit portal.

Main components:
- generate_candidates: hostname permutations from a place name
- BatchUrlValidator: concurrent, semaphore-bounded existence checks
- PortalDiscovery: portal path probing, link scanning and classification
- DiscoveryManager: ties the above together for an Address

Usage:
    from permit_agent.services.discovery import DiscoveryManager

    manager = DiscoveryManager(fetcher)
    jurisdiction = await manager.discover(Address(city="St. Louis", state="MO"))
"""

from permit_agent.services.discovery.candidates import candidate_urls, generate_candidates
from permit_agent.services.discovery.manager import DiscoveryManager, GeocodingService, discover_jurisdiction
from permit_agent.services.discovery.portals import PortalDiscovery, best_portal, classify_portal
from permit_agent.services.discovery.validator import BatchUrlValidator

__all__ = [
    "BatchUrlValidator",
    "DiscoveryManager",
    "GeocodingService",
    "PortalDiscovery",
    "best_portal",
    "candidate_urls",
    "classify_portal",
    "discover_jurisdiction",
    "generate_candidates",
]
