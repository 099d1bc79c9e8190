"""Services — FileService, CacheManager.

CatalogService and the core tool seeder sit on top of the persistence
package; import them from their modules.
"""

from capability_catalog.services.cache_service import CacheManager
from capability_catalog.services.file_service import FileService

__all__ = ["FileService", "CacheManager"]
