"""Action strings carried by inline buttons and deep links.

Wire format is ``<verb>_<id>`` or a bare ``<verb>``. Neither part may contain
the ``_`` separator. ``decode`` is the single parsing step: everything it
cannot make sense of becomes ``ActionKind.UNKNOWN``, which handlers answer
with a visible "unrecognized action" reply.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

SEPARATOR = "_"

# Telegram rejects callback_data longer than this.
MAX_ACTION_BYTES = 64


class ActionKind(str, Enum):
    UPLOAD = "upload"
    FOLDER = "folder"
    CATEGORY = "category"
    CANCEL = "cancel"
    OPEN = "open"
    SHARE = "share"
    REVOKE = "revoke"
    RESTORE = "restore"
    REGEN = "regen"
    DELETE = "delete"
    MANAGE = "manage"
    MY_NOTES = "mynotes"
    UNKNOWN = "unknown"


_REQUIRES_TARGET = frozenset({
    ActionKind.FOLDER,
    ActionKind.CATEGORY,
    ActionKind.OPEN,
    ActionKind.SHARE,
    ActionKind.REVOKE,
    ActionKind.RESTORE,
    ActionKind.REGEN,
    ActionKind.DELETE,
    ActionKind.MANAGE,
})
_OPTIONAL_TARGET = frozenset({ActionKind.CANCEL})


@dataclass(frozen=True)
class Action:
    kind: ActionKind
    target: Optional[str] = None
    raw: str = ""

    def encode(self) -> str:
        """Render the wire string; raises ValueError for unencodable actions."""
        if self.kind is ActionKind.UNKNOWN:
            raise ValueError("UNKNOWN actions cannot be encoded")
        if self.target is None:
            data = self.kind.value
        else:
            if not self.target or SEPARATOR in self.target:
                raise ValueError(f"Invalid action target {self.target!r}")
            data = f"{self.kind.value}{SEPARATOR}{self.target}"
        if len(data.encode("utf-8")) > MAX_ACTION_BYTES:
            raise ValueError(f"Action string too long: {data!r}")
        return data


def decode(data: Optional[str]) -> Action:
    """Parse an action string; never raises."""
    raw = data if isinstance(data, str) else ""
    unknown = Action(ActionKind.UNKNOWN, raw=raw)
    if not raw:
        return unknown

    verb, sep, target = raw.strip().partition(SEPARATOR)
    try:
        kind = ActionKind(verb)
    except ValueError:
        return unknown
    if kind is ActionKind.UNKNOWN:
        return unknown

    if kind in _REQUIRES_TARGET:
        if not target or SEPARATOR in target:
            return unknown
        return Action(kind, target, raw)

    if sep:
        if kind not in _OPTIONAL_TARGET or not target or SEPARATOR in target:
            return unknown
        return Action(kind, target, raw)
    return Action(kind, None, raw)
