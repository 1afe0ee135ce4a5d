from __future__ import annotations
from importlib import import_module
class Registry:
    def __init__(self):
        self._map: dict[str, str] = {}
    def register(self, key: str, target: str) -> None:
        self._map[key] = target
    def target(self, key: str) -> str:
        return self._map.get(key, key)
    def resolve(self, key: str):
        mod_path, _, obj = self.target(key).partition(":")
        mod = import_module(mod_path)
        return getattr(mod, obj) if obj else mod
    def create(self, key: str, *args, **kwargs):
        return self.resolve(key)(*args, **kwargs)
REGISTRY = Registry()
REGISTRY.register("notifier.webhook", "plugins.notifiers.webhook.impl:WebhookNotifier")
REGISTRY.register("notifier.null", "plugins.notifiers.null.impl:NullNotifier")
