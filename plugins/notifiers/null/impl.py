from __future__ import annotations
from sdk.notifier import DeliveryResult
class NullNotifier:
    def __init__(self, *args, **kwargs): self.sent: list[str] = []
    def send(self, message: str) -> DeliveryResult:
        self.sent.append(message); return DeliveryResult(ok=True)
    def close(self) -> None: pass
