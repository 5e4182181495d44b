"""User-facing message texts and keyboards."""
from typing import List, Optional

from notevault import taxonomy
from notevault.actions import Action, ActionKind
from notevault.records.schemas import Record, RecordStats
from notevault.replies import Button, Reply

SESSION_EXPIRED = "This upload session has expired or was replaced. Send /upload to start again."
UNRECOGNIZED_ACTION = "Unrecognized action. The button may belong to an older message."
UNRECOGNIZED_COMMAND = "Unknown command. Send /help to see what I can do."
ADMIN_REQUIRED = "Admin access required."
GENERIC_FAILURE = "Something went wrong while handling your request. Please try again."
STORAGE_UNAVAILABLE = "Storage is temporarily unavailable. Please start again with /upload."
NOTHING_TO_CANCEL = "There is no upload in progress."
UPLOAD_CANCELLED = "Upload cancelled."
RECORD_GONE = "This note no longer exists."
NOT_OWNER = "Only the uploader can manage this note."
NOTE_UNAVAILABLE = "This note is not available."
START_FIRST = "Please send /start to the bot first, then open the link again."
ASK_TITLE = "Send the title of the note."
ASK_DESCRIPTION = "Send a short description of the note."
EMPTY_TEXT = "That was empty. Please send some text."

HELP = (
    "Commands:\n"
    "/upload - upload a new note (admins)\n"
    "/mynotes - list and manage your notes (admins)\n"
    "/stats - usage statistics (admins)\n"
    "/check - check storage connectivity (admins)\n"
    "/cancel - cancel the current upload"
)


def welcome(display_name: str, is_admin: bool) -> Reply:
    name = display_name or "there"
    if not is_admin:
        return Reply(f"Hello {name}! Open a shared note link to read it.")
    return Reply(
        f"Hello {name}! What would you like to do?",
        buttons=[
            [Button("Upload a note", action=Action(ActionKind.UPLOAD).encode())],
            [Button("My notes", action=Action(ActionKind.MY_NOTES).encode())],
        ],
    )


def _cancel_row() -> List[Button]:
    return [Button("Cancel", action=Action(ActionKind.CANCEL).encode())]


def choose_folder() -> Reply:
    rows = [
        [Button(f.name, action=Action(ActionKind.FOLDER, f.id).encode())]
        for f in taxonomy.list_folders()
    ]
    rows.append(_cancel_row())
    return Reply("Choose a folder for the new note:", buttons=rows)


def choose_category(folder: taxonomy.Folder) -> Reply:
    rows = [
        [Button(c.name, action=Action(ActionKind.CATEGORY, c.id).encode())]
        for c in folder.categories
    ]
    rows.append(_cancel_row())
    return Reply(f"Folder: {folder.name}\nChoose a category:", buttons=rows)


def ask_file(extension: str) -> Reply:
    return Reply(f"Now send the note as a {extension} file.", buttons=[_cancel_row()])


def wrong_file(file_name: Optional[str], extension: str) -> Reply:
    return Reply(
        f"Wrong file type. Please send a file with the {extension} extension.\n"
        f"You sent: {file_name or 'a file without a name'}"
    )


def file_too_large(size: int, limit: int) -> Reply:
    return Reply(f"File is too large ({size / 1024:.1f} KB). The limit is {limit / 1024:.0f} KB.")


def record_buttons(record: Record) -> List[List[Button]]:
    rid = record.id
    toggle = (
        Button("Revoke", action=Action(ActionKind.REVOKE, rid).encode())
        if record.active
        else Button("Restore", action=Action(ActionKind.RESTORE, rid).encode())
    )
    return [
        [Button("Share link", action=Action(ActionKind.SHARE, rid).encode()), toggle],
        [
            Button("New link", action=Action(ActionKind.REGEN, rid).encode()),
            Button("Delete", action=Action(ActionKind.DELETE, rid).encode()),
        ],
    ]


def record_card(record: Record, header: str = "") -> Reply:
    folder = taxonomy.get_folder(record.folder)
    category = taxonomy.get_category(record.folder, record.category)
    lines = [header] if header else []
    lines += [
        f"Title: {record.title}",
        f"Description: {record.description}",
        f"Folder: {folder.name if folder else record.folder}",
        f"Category: {category.name if category else record.category}",
        f"Status: {'active' if record.active else 'revoked'}",
        f"Views: {record.views}",
        f"Link: {record.content_url}",
    ]
    return Reply("\n".join(lines), buttons=record_buttons(record))


def record_list(records: List[Record]) -> Reply:
    if not records:
        return Reply("You have not uploaded any notes yet.")
    rows = [
        [Button(
            f"{'' if r.active else '[revoked] '}{r.title} ({r.views} views)",
            action=Action(ActionKind.MANAGE, r.id).encode(),
        )]
        for r in records
    ]
    return Reply(f"Your notes ({len(records)}):", buttons=rows)


def open_note(record: Record) -> Reply:
    return Reply(
        f"{record.title}\n{record.description}",
        buttons=[[Button("Open note", url=record.content_url)]],
    )


def stats(s: RecordStats) -> Reply:
    return Reply(
        "Statistics:\n"
        f"Notes: {s.records} ({s.active_records} active)\n"
        f"Users: {s.users}\n"
        f"Total views: {s.total_views}"
    )
