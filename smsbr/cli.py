"""
smsbr/cli.py
Command-line interface for smsbr.

USAGE:
  smsbr sms-20240101.xml
  smsbr sms-20240101.xml --region FR --by-name --contact-order asc
  smsbr sms-20240101.xml --output smsbr.db
  smsbr --last                 # reload the last file from smsbr_config.json
  smsbr sms-20240101.xml -o    # export to db_path from smsbr_config.json

Ctrl-C while loading requests cancellation; the partial load is discarded.

EXIT CODES:
  0  loaded (and exported when --output is given)
  1  file missing or unreadable
  2  malformed backup file
  130 cancelled
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from smsbr.config import (
    ensure_config,
    resolve_db_path,
    resolve_order,
    resolve_region,
    save_config,
    startup_file,
)
from smsbr.exceptions import FormatError
from smsbr.exporters.sqlite_exporter import export
from smsbr.loader import BackupFileLoader, LoadState
from smsbr.models.conversations import ConversationIndex, Order

logger = logging.getLogger(__name__)

# ANSI colors
GREEN  = '\033[92m'
YELLOW = '\033[93m'
RED    = '\033[91m'
CYAN   = '\033[96m'
RESET  = '\033[0m'
BOLD   = '\033[1m'

EXIT_OK        = 0
EXIT_IO        = 1
EXIT_FORMAT    = 2
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog        = 'smsbr',
        description = 'Load an SMS Backup & Restore XML file and summarize its conversations',
        formatter_class = argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        'backup',
        nargs   = '?',
        type    = Path,
        help    = 'Backup file (sms-*.xml)',
    )
    parser.add_argument(
        '--last',
        action  = 'store_true',
        help    = 'Load the last file recorded in smsbr_config.json '
                  '(implied when load_last_file is true)',
    )
    parser.add_argument(
        '--region', '-r',
        default = None,
        help    = 'Region for local phone numbers, e.g. FR (default: config, then host locale)',
    )
    parser.add_argument(
        '--output', '-o',
        nargs   = '?',
        const   = '',
        default = None,
        help    = 'Export the loaded conversations to this SQLite database '
                  '(no value: config db_path)',
    )
    parser.add_argument(
        '--run-label',
        default = '',
        help    = 'Label for this export (stored in smsbr_meta table)',
    )
    parser.add_argument(
        '--by-name',
        action  = 'store_true',
        help    = 'Order contacts by name instead of latest message date',
    )
    parser.add_argument(
        '--contact-order',
        choices = [o.value for o in Order],
        default = None,
        help    = 'Contact order (default: config contact_order)',
    )
    parser.add_argument(
        '--show',
        metavar = 'PHONE',
        default = None,
        help    = 'Print the conversation with this phone number',
    )
    parser.add_argument(
        '--verbose', '-v',
        action  = 'store_true',
        help    = 'Enable debug logging',
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    # ── LOGGING SETUP ────────────────────────────────────────
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level   = log_level,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    config = ensure_config()

    # ── VALIDATE INPUT FILE ──────────────────────────────────
    backup = args.backup
    if backup is None:
        backup = startup_file(config, requested=args.last)
    if backup is None:
        _print(f"{RED}Error: no backup file given (and no usable --last){RESET}")
        return EXIT_IO
    if not backup.is_file():
        _print(f"{RED}Error: File not found: {backup}{RESET}")
        return EXIT_IO

    region = (args.region or resolve_region(config)).upper()
    _print(f"Backup file : {CYAN}{backup}{RESET}")
    _print(f"Region      : {CYAN}{region}{RESET}")
    _print("")

    # ── LOAD ─────────────────────────────────────────────────
    loader = BackupFileLoader(backup, region=region, progress_cb=_progress)
    _step("Loading messages...")
    t0 = time.time()
    loader.start()
    try:
        while not loader.done:
            loader.wait(0.2)
    except KeyboardInterrupt:
        loader.cancel()
        _print(f"\n  {YELLOW}Cancelling...{RESET}")
    conversations = loader.wait()
    sys.stdout.write('\n')

    if loader.state is LoadState.CANCELLED:
        _print(f"{YELLOW}Loading cancelled{RESET}")
        return EXIT_CANCELLED
    if loader.state is LoadState.FAILED:
        _print(f"{RED}Error: {loader.error}{RESET}")
        return EXIT_FORMAT if isinstance(loader.error, FormatError) else EXIT_IO

    _ok(f"{conversations.message_count} messages in {len(conversations)} conversations, {_elapsed(t0)}")

    config["last_file"] = str(backup.resolve())
    save_config(config)

    # ── SUMMARY ──────────────────────────────────────────────
    order = Order(args.contact_order) if args.contact_order else resolve_order(config, "contact_order")
    by_name = args.by_name or config.get("contact_order_by") == "name"
    _summary(conversations, by_name, order)

    if args.show:
        _show(conversations, args.show, resolve_order(config, "message_order"))

    # ── EXPORT ───────────────────────────────────────────────
    if args.output is not None:
        db_path = Path(args.output) if args.output else resolve_db_path(config)
        _step("Writing SQLite database...")
        t0 = time.time()
        export(
            db_path       = db_path,
            conversations = conversations,
            metadata      = loader.metadata,
            run_label     = args.run_label or str(backup),
        )
        _ok(f"Database written in {_elapsed(t0)} → {db_path.resolve()}")

    return EXIT_OK


def _progress(current, total, msg):
    if total <= 0:
        sys.stdout.write(f"\r  {msg}")
    else:
        pct = min(int((current / total) * 40), 40)
        bar = '█' * pct + '░' * (40 - pct)
        sys.stdout.write(f"\r  [{bar}] {msg}")
    sys.stdout.flush()


def _summary(conversations: ConversationIndex, by_name: bool, order: Order) -> None:
    contacts = (
        conversations.contacts_by_name(order) if by_name
        else conversations.contacts_by_date(order)
    )
    _print(f"\n{BOLD}Conversations:{RESET}")
    for contact in contacts:
        messages = conversations.conversation(contact)
        images = sum(len(m.images) for m in messages)
        label = str(contact) if contact.phone_number else f"{YELLOW}(drafts){RESET}"
        _print(f"  • {label:<40} {len(messages):>6} messages  {images:>4} images")


def _show(conversations: ConversationIndex, phone: str, order: Order) -> None:
    contact = conversations.find_contact(phone)
    if contact is None:
        _print(f"\n{YELLOW}No conversation with {phone}{RESET}")
        return
    _print(f"\n{BOLD}{contact}{RESET}")
    for message in conversations.conversation(contact, order):
        _print(f"  {message}")


# ── PRINT HELPERS ────────────────────────────────────────────

def _step(msg):  _print(f"  {CYAN}→{RESET} {msg}")
def _ok(msg):    _print(f"  {GREEN}✓{RESET} {msg}")
def _print(msg): print(msg)

def _elapsed(t0: float) -> str:
    s = time.time() - t0
    return f"{s:.1f}s" if s < 60 else f"{int(s//60)}m {int(s%60)}s"


if __name__ == '__main__':
    sys.exit(main())
