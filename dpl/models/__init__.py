from dpl.models.models import (
    Namespace, Page, Revision,
    CategoryLink, PageLink, TemplateLink, ImageLink, ExternalLink,
    RecentChange, HitCounter,
    CATEGORY_VIEW, mw_timestamp,
)

__all__ = [
    "Namespace", "Page", "Revision",
    "CategoryLink", "PageLink", "TemplateLink", "ImageLink", "ExternalLink",
    "RecentChange", "HitCounter",
    "CATEGORY_VIEW", "mw_timestamp",
]
