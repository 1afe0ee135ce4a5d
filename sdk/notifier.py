from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Protocol

from .registry import REGISTRY

@dataclass(frozen=True)
class DeliveryResult:
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None

class Notifier(Protocol):
    def send(self, message: str) -> DeliveryResult: ...
    def close(self) -> None: ...

def build_notifier(cfg) -> Notifier:
    """Create the configured notifier through the plugin registry."""
    return REGISTRY.create(
        cfg.plugin_target("notifier"), url=cfg.webhook_url, timeout=cfg.recorder.notify_timeout_seconds
    )
