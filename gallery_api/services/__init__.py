"""
Services package.
Contains the access engine and the photographer-facing business logic.
"""
from gallery_api.services.auth import AuthService
from gallery_api.services.gallery import GalleryService
from gallery_api.services.share import ShareLinkService
from gallery_api.services.invitation import InvitationService
from gallery_api.services.analytics import AnalyticsAggregator
from gallery_api.services.ledger import UsageLedger
from gallery_api.services.lifecycle import LifecycleManager
from gallery_api.services.resolver import GrantResolver

__all__ = [
    "AuthService",
    "GalleryService",
    "ShareLinkService",
    "InvitationService",
    "AnalyticsAggregator",
    "UsageLedger",
    "LifecycleManager",
    "GrantResolver",
]
