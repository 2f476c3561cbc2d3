"""Resource availability tracking and selection exports."""

from .failures import is_rate_limit_failure
from .headers import parse_reset_time
from .loader import ResourceCatalog, ResourceLoadError, ResourceLoader, load_resources
from .models import RateRecord, Resource
from .pool import ResourcePool

__all__ = [
    "RateRecord",
    "Resource",
    "ResourceCatalog",
    "ResourceLoadError",
    "ResourceLoader",
    "ResourcePool",
    "is_rate_limit_failure",
    "load_resources",
    "parse_reset_time",
]
