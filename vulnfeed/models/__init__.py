"""SQLAlchemy ORM models."""

from vulnfeed.models.advisory import Advisory
from vulnfeed.models.base import Base
from vulnfeed.models.cpe_index import CpeIndexEntry
from vulnfeed.models.notification import Notification
from vulnfeed.models.nvd_cve import NvdCve
from vulnfeed.models.sync_status import SyncStatus
from vulnfeed.models.user import User

__all__ = [
    "Base", "Advisory", "CpeIndexEntry", "Notification", "NvdCve",
    "SyncStatus", "User",
]
