from .key_value_store import KeyValueStore, InMemoryKeyValueStore

__all__ = ['KeyValueStore', 'InMemoryKeyValueStore']
