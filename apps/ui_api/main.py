from __future__ import annotations
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
import asyncio
import contextlib

from config.paths import Paths
from recording.coordinator import Coordinator


def create_app(coordinator: Coordinator, paths: Paths) -> FastAPI:
    app = FastAPI(title="showrec status API")

    @app.get("/recordings/active")
    def list_active():
        return {"jobs": coordinator.active_jobs()}

    @app.get("/recordings")
    def list_recordings():
        items = []
        for source in coordinator.sources:
            files = []
            for p in paths.recordings(source.name):
                # removed between listing and stat
                with contextlib.suppress(FileNotFoundError):
                    files.append({"name": p.name, "bytes": p.stat().st_size})
            items.append({"source": source.name, "files": files})
        return {"recordings": items}

    @app.post("/recordings/{source}/stop")
    def stop_recording(source: str):
        cancelled = coordinator.stop_recording(source)
        if not cancelled:
            return JSONResponse(status_code=404, content={"error": f"no recording in progress for {source}"})
        return {"cancelled": cancelled}

    @app.websocket("/ws/events")
    async def ws_events(ws: WebSocket):
        await ws.accept()
        f = paths.events_file
        last_size = f.stat().st_size if f.exists() else 0
        try:
            while True:
                await asyncio.sleep(0.5)
                if not f.exists():
                    continue
                cur = f.stat().st_size
                if cur < last_size:  # truncated or replaced
                    last_size = 0
                if cur > last_size:
                    with open(f, "r", encoding="utf-8") as fh:
                        fh.seek(last_size)
                        chunk = fh.read()
                    for line in chunk.splitlines():
                        if line.strip():
                            await ws.send_text(line)
                    last_size = cur
        except WebSocketDisconnect:
            return

    return app
