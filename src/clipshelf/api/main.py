import asyncio
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ValidationError

from clipshelf.app import ClipShelfApp
from clipshelf.errors import ClipShelfError
from clipshelf.models import ClipContent, ClipItem, SessionSnapshot


class SaveItemRequest(BaseModel):
    content: ClipContent
    category: Optional[str] = None


class EnrichmentRequest(BaseModel):
    content: ClipContent


class SettingValue(BaseModel):
    value: Optional[str] = None


class HotkeyRequest(BaseModel):
    binding: str


class CategoryRequest(BaseModel):
    category: Optional[str] = None


class ExportRequest(BaseModel):
    file_name: Optional[str] = None


def failure(exc: Exception) -> Dict[str, Any]:
    return {"ok": False, "error": str(exc), "kind": type(exc).__name__}


def item_json(item: ClipItem) -> Dict[str, Any]:
    return item.model_dump(mode="json")


def session_json(snapshot: Optional[SessionSnapshot]) -> Optional[Dict[str, Any]]:
    return snapshot.model_dump(mode="json") if snapshot is not None else None


async def read_body(request: Request, model):
    body = await request.body()
    if not body.strip():
        return model.model_validate({})
    # malformed JSON surfaces as a ValidationError like any other bad body
    return model.model_validate_json(body)


async def wait_for_disconnect(websocket: WebSocket) -> None:
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass


def create_app(clipshelf: ClipShelfApp) -> FastAPI:
    app = FastAPI(title="ClipShelf")
    app.state.clipshelf = clipshelf

    @app.get("/")
    def root():
        return {"ok": True, "status": "running", "health": clipshelf.health()}

    @app.get("/items")
    def list_items(category: Optional[str] = None, query: Optional[str] = None):
        try:
            items = clipshelf.list_items(category=category, query=query)
            return {"ok": True, "items": [item_json(item) for item in items]}
        except ClipShelfError as e:
            return failure(e)

    @app.post("/items")
    async def save_item(request: Request):
        try:
            data = await read_body(request, SaveItemRequest)
            item_id = clipshelf.save_item(data.content, data.category)
            return {"ok": True, "id": item_id}
        except (ValidationError, ClipShelfError) as e:
            return failure(e)

    @app.get("/items/{item_id}")
    def get_item(item_id: str):
        try:
            return {"ok": True, "item": item_json(clipshelf.get_item(item_id))}
        except ClipShelfError as e:
            return failure(e)

    @app.delete("/items/{item_id}")
    def delete_item(item_id: str):
        try:
            return {"ok": True, "deleted": clipshelf.delete_item(item_id)}
        except ClipShelfError as e:
            return failure(e)

    @app.post("/items/{item_id}/copy")
    def copy_item(item_id: str):
        try:
            copied = clipshelf.copy_to_clipboard(item_id)
            if not copied:
                return {"ok": False, "error": "Clipboard write failed", "kind": "ClipboardWriteFailed"}
            return {"ok": True}
        except ClipShelfError as e:
            return failure(e)

    @app.post("/items/{item_id}/export")
    async def export_item(item_id: str, request: Request):
        try:
            data = await read_body(request, ExportRequest)
            path = clipshelf.export_image(item_id, data.file_name)
            return {"ok": True, "path": str(path), "uri": clipshelf.files.get_file_uri(path)}
        except (ValidationError, ClipShelfError) as e:
            return failure(e)

    @app.get("/categories")
    def categories():
        try:
            return {"ok": True, "categories": clipshelf.categories()}
        except ClipShelfError as e:
            return failure(e)

    @app.get("/settings")
    def all_settings():
        try:
            return {"ok": True, "settings": clipshelf.get_all_settings()}
        except ClipShelfError as e:
            return failure(e)

    @app.get("/settings/{key}")
    def get_setting(key: str):
        try:
            return {"ok": True, "key": key, "value": clipshelf.get_setting(key)}
        except ClipShelfError as e:
            return failure(e)

    @app.put("/settings/{key}")
    async def set_setting(key: str, request: Request):
        try:
            data = await read_body(request, SettingValue)
            clipshelf.set_setting(key, data.value)
            return {"ok": True}
        except (ValidationError, ClipShelfError) as e:
            return failure(e)

    @app.post("/hotkey")
    async def register_hotkey(request: Request):
        try:
            data = await read_body(request, HotkeyRequest)
            return {"ok": True, "binding": clipshelf.register_hotkey(data.binding)}
        except (ValidationError, ClipShelfError) as e:
            return failure(e)

    @app.post("/hotkey/test")
    async def test_hotkey(request: Request):
        try:
            data = await read_body(request, HotkeyRequest)
        except ValidationError as e:
            return failure(e)
        check = clipshelf.test_hotkey(data.binding)
        if not check.ok:
            return {"ok": False, "error": check.error, "kind": "InvalidHotkeyError"}
        return {"ok": True, "binding": check.binding}

    @app.post("/enrichment")
    async def request_enrichment(request: Request):
        try:
            data = await read_body(request, EnrichmentRequest)
            suggestion = await run_in_threadpool(clipshelf.request_enrichment, data.content)
            return {"ok": True, "suggestion": suggestion.model_dump(mode="json")}
        except (ValidationError, ClipShelfError) as e:
            return failure(e)

    @app.get("/session")
    def session_state():
        return {"ok": True, "session": session_json(clipshelf.session_state())}

    @app.post("/session/capture")
    async def trigger_capture():
        try:
            snapshot = await run_in_threadpool(clipshelf.trigger_capture)
            return {"ok": True, "session": session_json(snapshot)}
        except ClipShelfError as e:
            return failure(e)

    @app.post("/session/category")
    async def set_session_category(request: Request):
        try:
            data = await read_body(request, CategoryRequest)
            snapshot = clipshelf.set_session_category(data.category or "")
            return {"ok": True, "session": session_json(snapshot)}
        except (ValidationError, ClipShelfError) as e:
            return failure(e)

    @app.post("/session/confirm")
    async def confirm_session(request: Request):
        try:
            data = await read_body(request, CategoryRequest)
            return {"ok": True, "id": clipshelf.confirm_session(data.category)}
        except (ValidationError, ClipShelfError) as e:
            return failure(e)

    @app.post("/session/cancel")
    def cancel_session():
        try:
            return {"ok": True, "session": session_json(clipshelf.cancel_session())}
        except ClipShelfError as e:
            return failure(e)

    @app.websocket("/events")
    async def events(websocket: WebSocket):
        subscription = clipshelf.bus.subscribe()
        receiver = None
        try:
            await websocket.accept()
            receiver = asyncio.create_task(wait_for_disconnect(websocket))
            while not receiver.done():
                event = await run_in_threadpool(subscription.get, 0.5)
                if event is not None:
                    await websocket.send_json(event.to_dict())
        except WebSocketDisconnect:
            pass
        finally:
            subscription.close()
            if receiver is not None and not receiver.done():
                receiver.cancel()

    return app

