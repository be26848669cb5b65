"""Store services for idpstore."""

from idpstore.services.options import OptionStore
from idpstore.services.sp_store import SPConfigStore

__all__ = ["OptionStore", "SPConfigStore"]
