"""
smsbr/exporters/sqlite_exporter.py
Exports a loaded ConversationIndex to SQLite.

SCHEMA DESIGN NOTES:
- contacts is keyed by the normalized phone number (blank for drafts)
- messages reference contacts.phone_number (soft reference)
- messages.seq numbers look-alike messages (same timestamp, direction and
  body) within one conversation, so they all survive while a re-export of
  the same file is still deduplicated by the UNIQUE key
- images and recipients hang off messages.id
- smsbr_meta stores one row per export with the source file metadata
- All timestamps stored as INTEGER milliseconds (Unix epoch * 1000),
  as written by SMS Backup & Restore
"""

import logging
import sqlite3
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Optional

from smsbr.models.conversations import ConversationIndex
from smsbr.models.record import FileMetadata, Message

logger = logging.getLogger(__name__)

SCHEMA_VERSION = '1.1'


def export(
    db_path:       Path,
    conversations: ConversationIndex,
    metadata:      Optional[FileMetadata] = None,
    run_label:     str                    = '',
) -> Path:
    """
    Write every conversation to the SQLite database at db_path.
    Re-exporting the same file does not duplicate messages.
    Returns db_path.
    """
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")

    try:
        _create_schema(conn)
        written = 0
        for contact in conversations.contacts:
            _write_contact(conn, contact.phone_number, contact.complete_name)
            seen = Counter()
            for message in conversations.conversation(contact):
                key = (message.timestamp_ms, message.is_from_me, message.body)
                if _write_message(conn, message, seen[key]):
                    written += 1
                seen[key] += 1
        _write_meta(conn, conversations, metadata, run_label)
        conn.commit()
        logger.info(
            f"SQLite export complete → {db_path}\n"
            f"  Contacts: {len(conversations)} | Messages written: {written}"
        )
    except Exception as e:
        conn.rollback()
        logger.error(f"SQLite export failed: {e}")
        raise
    finally:
        conn.close()

    return db_path


# ── SCHEMA ───────────────────────────────────────────────────

def _create_schema(conn: sqlite3.Connection) -> None:
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS smsbr_meta (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            run_at          TEXT    NOT NULL,
            run_label       TEXT,
            schema_version  TEXT    NOT NULL,
            size_in_bytes   INTEGER DEFAULT 0,
            declared_count  INTEGER DEFAULT 0,
            message_count   INTEGER DEFAULT 0,
            contact_count   INTEGER DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS contacts (
            phone_number    TEXT PRIMARY KEY,
            complete_name   TEXT
        );

        CREATE TABLE IF NOT EXISTS messages (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp_ms    INTEGER NOT NULL,
            phone_number    TEXT    NOT NULL,
            is_from_me      INTEGER DEFAULT 0,
            is_draft        INTEGER DEFAULT 0,
            body            TEXT,
            seq             INTEGER NOT NULL DEFAULT 0,
            UNIQUE(timestamp_ms, phone_number, is_from_me, body, seq)
        );

        CREATE TABLE IF NOT EXISTS images (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            message_id      INTEGER NOT NULL REFERENCES messages(id),
            mime_type       TEXT,
            filename        TEXT,
            width           INTEGER DEFAULT 0,
            height          INTEGER DEFAULT 0,
            base64_payload  TEXT
        );

        CREATE TABLE IF NOT EXISTS recipients (
            message_id      INTEGER NOT NULL REFERENCES messages(id),
            position        INTEGER NOT NULL,
            phone_number    TEXT,
            PRIMARY KEY (message_id, position)
        );

        CREATE INDEX IF NOT EXISTS idx_msg_ts    ON messages(timestamp_ms);
        CREATE INDEX IF NOT EXISTS idx_msg_phone ON messages(phone_number);
        CREATE INDEX IF NOT EXISTS idx_img_msg   ON images(message_id);
    """)


# ── WRITERS ──────────────────────────────────────────────────

def _write_contact(conn: sqlite3.Connection, phone_number: str, complete_name: str) -> None:
    conn.execute("""
        INSERT INTO contacts (phone_number, complete_name) VALUES (?,?)
        ON CONFLICT(phone_number) DO UPDATE SET complete_name = excluded.complete_name
    """, (phone_number, complete_name))


def _write_message(conn: sqlite3.Connection, m: Message, seq: int = 0) -> bool:
    """
    Insert one message with its images and recipients. False if already present.
    seq is the number of identical-looking messages before it in its conversation.
    """
    cur = conn.execute("""
        INSERT OR IGNORE INTO messages
        (timestamp_ms, phone_number, is_from_me, is_draft, body, seq)
        VALUES (?,?,?,?,?,?)
    """, (m.timestamp_ms, m.contact.phone_number, int(m.is_from_me), int(m.is_draft), m.body, seq))
    if cur.rowcount == 0:
        return False

    message_id = cur.lastrowid
    if m.images:
        conn.executemany("""
            INSERT INTO images
            (message_id, mime_type, filename, width, height, base64_payload)
            VALUES (?,?,?,?,?,?)
        """, [
            (message_id, i.mime_type, i.filename, i.width, i.height, i.base64_payload)
            for i in m.images
        ])
    if m.recipients:
        conn.executemany("""
            INSERT INTO recipients (message_id, position, phone_number) VALUES (?,?,?)
        """, [(message_id, pos, phone) for pos, phone in enumerate(m.recipients)])
    return True


def _write_meta(
    conn:          sqlite3.Connection,
    conversations: ConversationIndex,
    metadata:      Optional[FileMetadata],
    run_label:     str,
) -> None:
    conn.execute("""
        INSERT INTO smsbr_meta
        (run_at, run_label, schema_version, size_in_bytes,
         declared_count, message_count, contact_count)
        VALUES (?,?,?,?,?,?,?)
    """, (
        datetime.now().isoformat(),
        run_label or 'smsbr-export',
        SCHEMA_VERSION,
        metadata.size_in_bytes if metadata else 0,
        metadata.message_count if metadata else 0,
        conversations.message_count,
        len(conversations),
    ))
    logger.debug(f"Meta row written | schema={SCHEMA_VERSION} | label={run_label or 'smsbr-export'}")
