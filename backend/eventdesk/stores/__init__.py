from eventdesk.stores.interfaces import RegistrationStore
from eventdesk.stores.memory import InMemoryStore

__all__ = ["RegistrationStore", "InMemoryStore"]
