"""
Core package initialization.
"""

from permit_agent.core.config import Settings, get_settings, settings
from permit_agent.core.models import (
    AcquireOptions,
    Address,
    ContactInfo,
    EnhancedResult,
    Jurisdiction,
    JurisdictionType,
    PermitCategory,
    PermitFee,
    PermitForm,
    PermitType,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "settings",
    # Models
    "AcquireOptions",
    "Address",
    "ContactInfo",
    "EnhancedResult",
    "Jurisdiction",
    "JurisdictionType",
    "PermitCategory",
    "PermitFee",
    "PermitForm",
    "PermitType",
]
