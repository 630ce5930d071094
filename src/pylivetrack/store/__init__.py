"""Remote location store: protocol, adapters and the process-wide handle."""

from pylivetrack.store.base import ChangeCallback, LocationStore, Unsubscribe, merge_patch, split_path
from pylivetrack.store.client import create_store, get_store, init_store, reset_store
from pylivetrack.store.firebase import FirebaseLocationStore
from pylivetrack.store.memory import InMemoryLocationStore
from pylivetrack.store.mqtt import MqttLocationStore

__all__ = [
    "ChangeCallback",
    "FirebaseLocationStore",
    "InMemoryLocationStore",
    "LocationStore",
    "MqttLocationStore",
    "Unsubscribe",
    "create_store",
    "get_store",
    "init_store",
    "merge_patch",
    "reset_store",
    "split_path",
]
