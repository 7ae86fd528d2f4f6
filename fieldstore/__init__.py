"""
Dynamic custom-field store backed by PostgreSQL JSONB.

Column definitions, sparse per-entity column values, base entity documents
and the services that query and maintain them.
"""

from fieldstore.base import Storable
from fieldstore.donors import DonorService
from fieldstore.entities import EntityStore
from fieldstore.lifecycle import ColumnLifecycle, ColumnLifecycleManager
from fieldstore.models import ColumnDefinition, ColumnValue, Donor
from fieldstore.query import EntityQueryService, QueryPage
from fieldstore.registry import ColumnRegistry
from fieldstore.server import FieldStoreServer
from fieldstore.values import ValueStore
