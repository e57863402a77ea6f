# cre/services/__init__.py
from .config_store import ConfigKind, ConfigScope, ConfigStore, db_session, init_db
from .clinical_state import ClinicalStateService

__all__ = [
    "ConfigKind",
    "ConfigScope",
    "ConfigStore",
    "db_session",
    "init_db",
    "ClinicalStateService",
]
