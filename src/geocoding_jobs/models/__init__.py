"""ORM model registry: import all models so Alembic autogenerate discovers them."""

from geocoding_jobs.models.geocoding import Geocoding
from geocoding_jobs.models.tenant import Organization, Tenant

__all__ = [
    "Geocoding",
    "Organization",
    "Tenant",
]
