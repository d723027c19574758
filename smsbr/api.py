"""
smsbr/api.py
─────────────────────────────────────────────────────────────────────────────
smsbr — Dual-mode API layer

TWO USAGE MODES:
  1. Importable module:
         from smsbr.api import SmsbrAPI
         api = SmsbrAPI(region="FR")
         api.load(Path("sms-20240101.xml"), wait=True)
         contacts = api.get_contacts(order_by="name")

  2. FastAPI HTTP server (viewer front-end via fetch()):
         python -m smsbr.api                   # default: port 8765
         python -m smsbr.api --port 9000
         uvicorn smsbr.api:app --port 8765

ENDPOINTS:
  POST   /load                  — start loading a backup file in the background
  GET    /load/status           — state, progress and status message
  POST   /load/cancel           — request cancellation of the running load
  GET    /contacts              — contacts of the loaded file, ordered
  GET    /conversations/{phone} — one conversation (phone URL-encoded: %2B33684552136)
  DELETE /conversations/{phone} — drop one conversation from the loaded index
  POST   /export                — write the loaded file to SQLite (default: config db_path)
  GET    /meta                  — metadata of the loaded file
  GET    /health                — server status

CORS: localhost-only (127.0.0.1 / ::1). The server binds to 127.0.0.1 by
default; backup files never leave the device.

The loaded index is only read once the loader reports success. While a load
is running the query endpoints answer from the previous successful load, if any.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from smsbr import __version__
from smsbr.config import (
    ensure_config,
    load_config,
    resolve_db_path,
    resolve_order,
    resolve_region,
    save_config,
    startup_file,
)
from smsbr.exporters.sqlite_exporter import export
from smsbr.imaging import fit_to_height
from smsbr.loader import BackupFileLoader
from smsbr.models.conversations import ConversationIndex, Order
from smsbr.models.record import Contact, FileMetadata, ImageAttachment, Message

logger = logging.getLogger(__name__)

MAX_CONTACTS = 500


# ═══════════════════════════════════════════════════════════════════════════
# IMPORTABLE CLASS
# ═══════════════════════════════════════════════════════════════════════════

class SmsbrAPI:
    """
    Pure-Python wrapper around one BackupFileLoader and its result.
    No HTTP layer required — import and call directly.

    Usage:
        api = SmsbrAPI(region="FR")
        api.load(Path("/sdcard/SMSBackup/sms-20240101.xml"))
        while api.status()["state"] == "loading": ...
        convo = api.get_conversation("+33684552136", order="desc")
    """

    def __init__(self, region: Optional[str] = None, project_root: Optional[Path] = None):
        self.project_root = project_root
        self.config = ensure_config(project_root)
        self.region = (region or resolve_region(self.config)).upper()
        self._loader: Optional[BackupFileLoader] = None
        self._conversations: Optional[ConversationIndex] = None
        self._metadata: Optional[FileMetadata] = None
        self._file: Optional[Path] = None

    # ── INTERNAL ──────────────────────────────────────────────────────────

    def _index(self) -> Optional[ConversationIndex]:
        """Pick up the result of a finished load, then return the current index."""
        loader = self._loader
        if loader is not None and loader.done and loader.conversations is not None:
            self._conversations = loader.conversations
            self._metadata = loader.metadata
            self._file = loader.path
            self._loader = None
        return self._conversations

    @staticmethod
    def _contact_to_dict(contact: Contact, conversations: ConversationIndex) -> Dict[str, Any]:
        messages = conversations.conversation(contact)
        return {
            "phone_number":  contact.phone_number,
            "complete_name": contact.complete_name,
            "display":       str(contact),
            "message_count": len(messages),
            "last_ts_ms":    messages[-1].timestamp_ms if messages else None,
        }

    @staticmethod
    def _image_to_dict(image: ImageAttachment, max_height: Optional[int], include_payload: bool) -> Dict[str, Any]:
        d = {
            "uid":       image.uid,
            "mime_type": image.mime_type,
            "filename":  image.filename,
            "width":     image.width,
            "height":    image.height,
        }
        if max_height:
            d["display_width"], d["display_height"] = fit_to_height(image, max_height)
        if include_payload:
            d["base64_payload"] = image.base64_payload
        return d

    @classmethod
    def _message_to_dict(cls, m: Message, max_height: Optional[int], include_payload: bool) -> Dict[str, Any]:
        return {
            "timestamp_ms": m.timestamp_ms,
            "is_from_me":   m.is_from_me,
            "is_draft":     m.is_draft,
            "body":         m.body,
            "recipients":   list(m.recipients),
            "images":       [cls._image_to_dict(i, max_height, include_payload) for i in m.images],
        }

    # ── LOADING ───────────────────────────────────────────────────────────

    def load(self, path: Path, region: Optional[str] = None, wait: bool = False) -> Dict[str, Any]:
        """
        Start loading a backup file on a worker thread. Returns status().
        wait=True blocks until the load has finished.

        Security: path is validated and must be an existing file.
        Raises ValueError on a bad path, RuntimeError if a load is running.
        """
        path = Path(path).expanduser().resolve()
        if not path.exists():
            raise ValueError(f"Backup file does not exist: {path}")
        if not path.is_file():
            raise ValueError(f"Backup path is not a file: {path}")
        if self._loader is not None and not self._loader.done:
            raise RuntimeError("A load is already running")

        self._index()
        self._loader = BackupFileLoader(path, region=(region or self.region).upper())
        logger.info(f"Load started | file={path} | region={self._loader.normalizer.region}")
        self._loader.start()
        if wait:
            self._loader.wait()

        self.config["last_file"] = str(path)
        try:
            save_config(self.config, self.project_root)
        except OSError as e:
            logger.warning(f"Config save failed: {e}")
        return self.status()

    def status(self) -> Dict[str, Any]:
        loader = self._loader
        if loader is None:
            conversations = self._conversations
            return {
                "state":    "succeeded" if conversations is not None else "ready",
                "file":     str(self._file) if self._file else None,
                "progress": 1.0 if conversations is not None else 0.0,
                "loaded":   conversations.message_count if conversations is not None else 0,
                "declared": self._metadata.message_count if self._metadata else 0,
                "message":  "",
                "error":    None,
            }
        result = {
            "state":    loader.state.value,
            "file":     str(loader.path),
            "progress": loader.progress,
            "loaded":   loader.loaded_count,
            "declared": loader.metadata.message_count if loader.metadata else 0,
            "message":  loader.status_message,
            "error":    str(loader.error) if loader.error else None,
        }
        self._index()
        return result

    def cancel(self) -> Dict[str, Any]:
        """Request cancellation of the running load, if any."""
        if self._loader is not None:
            self._loader.cancel()
            logger.info("Cancellation requested")
        return self.status()

    def autoload(self, wait: bool = False) -> Optional[Dict[str, Any]]:
        """
        Start loading last_file when load_last_file is set in config.
        Returns status(), or None when there is nothing to load.
        """
        path = startup_file(self.config)
        if path is None:
            return None
        logger.info(f"Reloading last backup file: {path}")
        return self.load(path, wait=wait)

    # ── EXPORT ────────────────────────────────────────────────────────────

    def export(self, db_path: Optional[Path] = None, run_label: str = "") -> Optional[Dict[str, Any]]:
        """
        Export the loaded conversations to SQLite (default: config db_path).
        Returns None when nothing is loaded.
        """
        conversations = self._index()
        if conversations is None:
            return None
        target = Path(db_path) if db_path else resolve_db_path(self.config, self.project_root)
        export(
            db_path       = target,
            conversations = conversations,
            metadata      = self._metadata,
            run_label     = run_label or "api-export",
        )
        return {
            "status":        "ok",
            "db_path":       str(target),
            "message_count": conversations.message_count,
            "contact_count": len(conversations),
        }

    # ── QUERY: CONTACTS ───────────────────────────────────────────────────

    def get_contacts(
        self,
        order_by: Optional[str] = None,
        order:    Optional[str] = None,
        limit:    int = 100,
        offset:   int = 0,
    ) -> List[Dict[str, Any]]:
        """
        Return contacts of the loaded file.

        Args:
            order_by: "date" (latest message) or "name", default from config
            order:    "asc" or "desc", default from config
            limit:    max rows returned (default 100, max enforced: 500)
            offset:   pagination offset
        """
        conversations = self._index()
        if conversations is None:
            return []

        limit = min(int(limit), MAX_CONTACTS)
        offset = max(int(offset), 0)
        order_by = (order_by or self.config.get("contact_order_by") or "date").lower()
        if order_by not in ("date", "name"):
            raise ValueError(f"order_by must be 'date' or 'name', got {order_by!r}")
        direction = self._order(order, "contact_order")

        if order_by == "name":
            contacts = conversations.contacts_by_name(direction)
        else:
            contacts = conversations.contacts_by_date(direction)
        return [self._contact_to_dict(c, conversations) for c in contacts[offset:offset + limit]]

    # ── QUERY: CONVERSATIONS ──────────────────────────────────────────────

    def get_conversation(
        self,
        phone:            str,
        order:            Optional[str] = None,
        max_image_height: Optional[int] = None,
        include_images:   bool = False,
    ) -> Optional[Dict[str, Any]]:
        """
        Return one conversation by phone number. Returns None if not found.
        max_image_height adds display dimensions scaled to that height.
        include_images adds the base64 payloads.
        """
        conversations = self._index()
        if conversations is None:
            return None
        contact = conversations.find_contact(phone)
        if contact is None:
            return None
        messages = conversations.conversation(contact, self._order(order, "message_order"))
        return {
            "contact":  self._contact_to_dict(contact, conversations),
            "messages": [self._message_to_dict(m, max_image_height, include_images) for m in messages],
        }

    def remove_conversation(self, phone: str) -> bool:
        """Drop one conversation from the loaded index. False if not found."""
        conversations = self._index()
        if conversations is None:
            return False
        contact = conversations.find_contact(phone)
        if contact is None:
            return False
        conversations.remove_conversations([contact])
        return True

    # ── QUERY: META ───────────────────────────────────────────────────────

    def get_meta(self) -> Optional[Dict[str, Any]]:
        """Return metadata of the loaded file, or None when nothing is loaded."""
        conversations = self._index()
        if conversations is None or self._metadata is None:
            return None
        return {
            "file":           str(self._file),
            "size_in_bytes":  self._metadata.size_in_bytes,
            "declared_count": self._metadata.message_count,
            "message_count":  conversations.message_count,
            "contact_count":  len(conversations),
            "region":         self.region,
        }

    def _order(self, value: Optional[str], config_key: str) -> Order:
        if value is None:
            return resolve_order(self.config, config_key)
        try:
            return Order(value.lower())
        except ValueError:
            raise ValueError(f"order must be 'asc' or 'desc', got {value!r}")


# ═══════════════════════════════════════════════════════════════════════════
# FASTAPI HTTP APP
# ═══════════════════════════════════════════════════════════════════════════

class LoadRequest(BaseModel):
    path:   Optional[str] = None   # uses config last_file if empty
    region: Optional[str] = None


class ExportRequest(BaseModel):
    db_path:   Optional[str] = None   # uses config db_path if empty
    run_label: str           = ""


def _build_app(api: Optional[SmsbrAPI] = None) -> FastAPI:
    """
    Build and return the FastAPI application instance.
    Called once at module level or on demand.
    """
    _api = api or SmsbrAPI()

    _app = FastAPI(
        title       = "smsbr API",
        description = "SMS Backup & Restore conversation loader — local API",
        version     = __version__,
        docs_url    = "/docs",
        redoc_url   = None,
    )

    # CORS: only allow localhost origins
    _app.add_middleware(
        CORSMiddleware,
        allow_origins     = [
            "http://localhost",
            "http://localhost:8765",
            "http://127.0.0.1",
            "http://127.0.0.1:8765",
            "null",   # file:// origin
        ],
        allow_methods     = ["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers     = ["Content-Type"],
        allow_credentials = False,
    )
    _app.state.api = _api

    # ── ENDPOINTS ───────────────────────────────────────────────────────

    @_app.post("/load", summary="Load a backup file in the background")
    def load(req: LoadRequest):
        path = req.path or _api.config.get("last_file")
        if not path:
            raise HTTPException(status_code=400, detail="path required (no last_file in config)")
        try:
            return _api.load(Path(path), region=req.region)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except RuntimeError as exc:
            raise HTTPException(status_code=409, detail=str(exc))

    @_app.get("/load/status", summary="Loading progress")
    def load_status():
        return _api.status()

    @_app.post("/load/cancel", summary="Cancel the running load")
    def load_cancel():
        return _api.cancel()

    @_app.get("/contacts", summary="List contacts of the loaded file")
    def get_contacts(
        order_by: Optional[str] = Query(None, description="date or name"),
        order:    Optional[str] = Query(None, description="asc or desc"),
        limit:    int           = Query(100, ge=1, le=MAX_CONTACTS),
        offset:   int           = Query(0,   ge=0),
    ):
        try:
            data = _api.get_contacts(order_by=order_by, order=order, limit=limit, offset=offset)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return {"count": len(data), "contacts": data}

    @_app.get("/conversations/{phone}", summary="Get one conversation")
    def get_conversation(
        phone:            str,
        order:            Optional[str] = Query(None, description="asc or desc"),
        max_image_height: Optional[int] = Query(None, ge=1),
        include_images:   bool          = Query(False),
    ):
        """
        phone should be URL-encoded: +33684552136 → %2B33684552136
        Returns 404 if no conversation with that number is loaded.
        """
        try:
            data = _api.get_conversation(
                phone, order=order, max_image_height=max_image_height, include_images=include_images
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        if data is None:
            raise HTTPException(status_code=404, detail=f"Conversation not found: {phone}")
        return data

    @_app.delete("/conversations/{phone}", summary="Remove one conversation")
    def delete_conversation(phone: str):
        if not _api.remove_conversation(phone):
            raise HTTPException(status_code=404, detail=f"Conversation not found: {phone}")
        return {"status": "ok", "removed": phone}

    @_app.post("/export", summary="Export the loaded file to SQLite")
    def export_db(req: ExportRequest):
        try:
            data = _api.export(
                db_path   = Path(req.db_path) if req.db_path else None,
                run_label = req.run_label,
            )
        except Exception as exc:
            logger.error(f"Export endpoint error: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Export failed: {exc}")
        if data is None:
            raise HTTPException(status_code=404, detail="Nothing loaded — POST /load first.")
        return data

    @_app.get("/meta", summary="Loaded file metadata")
    def get_meta():
        data = _api.get_meta()
        if data is None:
            raise HTTPException(status_code=404, detail="Nothing loaded — POST /load first.")
        return data

    @_app.get("/health", summary="Health check")
    def health():
        status = _api.status()
        return {
            "status":  "ok",
            "state":   status["state"],
            "loaded":  _api.get_meta() is not None,
            "version": __version__,
        }

    return _app


app = _build_app()


if __name__ == "__main__":
    import argparse

    import uvicorn

    config = load_config()
    parser = argparse.ArgumentParser(prog="smsbr-api", description="smsbr local HTTP API")
    parser.add_argument("--host", default=config.get("api_host", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=config.get("api_port", 8765))
    args = parser.parse_args()

    logging.basicConfig(
        level   = logging.INFO,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )
    app.state.api.autoload()
    uvicorn.run(app, host=args.host, port=args.port)
