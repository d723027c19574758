"""
smsbr/loader.py
Loading coordinator: metadata pass, then content pass, then hand-over.

  loader = BackupFileLoader(Path("sms-20240101.xml"), region="FR")
  conversations = loader.load()          # None when cancelled

or in the background, with another thread polling and cancelling:

  loader.start()
  ...  loader.progress, loader.status_message, loader.cancel()
  conversations = loader.wait()

Progress is messages aggregated / declared root count. The count is trusted,
so a truncated or inconsistent file may end below or above 1.0; that is not
an error. On cancellation the partial index is thrown away and load()
returns None. FormatError and OSError fail the load and are re-raised.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from smsbr.exceptions import Cancelled, FormatError
from smsbr.imaging import decode_image as default_decode_image
from smsbr.models.conversations import ConversationIndex
from smsbr.models.record import FileMetadata, Message
from smsbr.parsers.content_parser import ContentParser, DecodeImage
from smsbr.parsers.metadata_scanner import scan_metadata
from smsbr.parsers.phone import PhoneNumberNormalizer
from smsbr.parsers.preprocess import read_backup_text

logger = logging.getLogger(__name__)


class LoadState(str, Enum):
    READY     = 'ready'
    SCANNING  = 'scanning'
    LOADING   = 'loading'
    SUCCEEDED = 'succeeded'
    FAILED    = 'failed'
    CANCELLED = 'cancelled'


class BackupFileLoader:
    """
    Loads one backup file into a ConversationIndex.
    One load at a time per instance; use separate instances for parallel loads.
    """

    def __init__(
        self,
        path:              Path,
        region:            Optional[str]                            = None,
        decode_image:      DecodeImage                              = default_decode_image,
        on_metadata_ready: Optional[Callable[[FileMetadata], None]] = None,
        on_message_ready:  Optional[Callable[[Message], None]]      = None,
        progress_cb:       Optional[Callable]                       = None,
    ):
        self.path              = Path(path)
        self.normalizer        = PhoneNumberNormalizer(region)
        self.decode_image      = decode_image
        self.on_metadata_ready = on_metadata_ready
        self.on_message_ready  = on_message_ready
        self.progress_cb       = progress_cb

        self.state: LoadState = LoadState.READY
        self.metadata: Optional[FileMetadata] = None
        self.conversations: Optional[ConversationIndex] = None
        self.error: Optional[BaseException] = None

        self._index: Optional[ConversationIndex] = None
        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ── CONTROL ──────────────────────────────────────────────

    def cancel(self) -> None:
        """Request cancellation. Takes effect at the parser's next checkpoint."""
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    @property
    def running(self) -> bool:
        return self.state in (LoadState.SCANNING, LoadState.LOADING)

    @property
    def done(self) -> bool:
        """True once a background load has finished, whatever its outcome."""
        return self._thread is not None and not self._thread.is_alive()

    # ── PROGRESS ─────────────────────────────────────────────

    @property
    def loaded_count(self) -> int:
        index = self._index
        return index.message_count if index is not None else 0

    @property
    def progress(self) -> float:
        metadata = self.metadata
        if metadata is None or metadata.message_count <= 0:
            return 0.0
        return self.loaded_count / metadata.message_count

    @property
    def status_message(self) -> str:
        total = self.metadata.message_count if self.metadata else 0
        return f"Loading message {self.loaded_count}/{total}"

    # ── SYNCHRONOUS LOAD ─────────────────────────────────────

    def load(self) -> Optional[ConversationIndex]:
        """
        Run both passes in the calling thread.
        Returns the index, or None when cancelled.
        """
        self.metadata = None
        self.conversations = None
        self.error = None
        self._index = ConversationIndex()

        try:
            self.state = LoadState.SCANNING
            logger.info(f"Parsing metadata of file '{self.path}'")
            text = read_backup_text(self.path)

            metadata = FileMetadata(size_in_bytes=self.path.stat().st_size)
            scan_metadata(text, self.normalizer, metadata)
            self.metadata = metadata
            if self.on_metadata_ready:
                self.on_metadata_ready(metadata)

            self.state = LoadState.LOADING
            logger.info(f"Parsing content of file '{self.path}'")
            parser = ContentParser(
                self.normalizer,
                decode_image = self.decode_image,
                is_cancelled = self._cancel.is_set,
            )
            parser.parse(text, self._aggregate, metadata=metadata)

        except Cancelled:
            logger.info(f"Loading of '{self.path}' cancelled after {self.loaded_count} messages")
            self._discard(LoadState.CANCELLED)
            return None
        except (FormatError, OSError) as e:
            logger.error(f"Loading of '{self.path}' failed: {e}")
            self.error = e
            self._discard(LoadState.FAILED)
            raise
        except Exception as e:
            logger.error(f"Loading of '{self.path}' failed unexpectedly: {e}", exc_info=True)
            self.error = e
            self._discard(LoadState.FAILED)
            raise

        self.conversations = self._index
        self.state = LoadState.SUCCEEDED
        logger.info(
            f"Loaded {self.conversations.message_count} messages "
            f"in {len(self.conversations)} conversations"
        )
        return self.conversations

    def _aggregate(self, message: Message) -> None:
        self._index.add(message)
        if self.progress_cb:
            self.progress_cb(self.loaded_count, self.metadata.message_count, self.status_message)
        if self.on_message_ready:
            self.on_message_ready(message)

    def _discard(self, state: LoadState) -> None:
        self._index = None
        self.metadata = None
        self.conversations = None
        self.state = state

    # ── BACKGROUND LOAD ──────────────────────────────────────

    def start(self) -> None:
        """Run load() on a worker thread. Outcome lands in state/conversations/error."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("A load is already running on this loader")
        self._cancel.clear()
        self._thread = threading.Thread(
            target = self._run,
            name   = f"smsbr-loader-{self.path.name}",
            daemon = True,
        )
        self._thread.start()

    def _run(self) -> None:
        try:
            self.load()
        except (FormatError, OSError):
            pass  # kept in self.error by load()
        except Exception as e:
            # also kept in self.error; the thread must not die with a traceback only
            logger.error(f"Background load of '{self.path}' failed: {type(e).__name__}: {e}")

    def wait(self, timeout: Optional[float] = None) -> Optional[ConversationIndex]:
        """Block until the worker finishes (or timeout) and return the index, if any."""
        if self._thread is not None:
            self._thread.join(timeout)
        return self.conversations


def load_backup(path: Path, region: Optional[str] = None, **kwargs) -> Optional[ConversationIndex]:
    """One-shot synchronous load. Returns None when cancelled."""
    return BackupFileLoader(path, region=region, **kwargs).load()
