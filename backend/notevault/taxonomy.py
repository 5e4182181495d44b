"""Static folder / category reference data.

Folders group categories; every category belongs to exactly one folder.
Identifiers travel inside action strings, so they never contain ``_``.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    folder_id: str


@dataclass(frozen=True)
class Folder:
    id: str
    name: str
    categories: Tuple[Category, ...]


def _folder(folder_id: str, name: str, *categories: Tuple[str, str]) -> Folder:
    return Folder(
        id=folder_id,
        name=name,
        categories=tuple(Category(id=cid, name=cname, folder_id=folder_id) for cid, cname in categories),
    )


FOLDERS: Tuple[Folder, ...] = (
    _folder(
        "natural", "Natural Sciences",
        ("medical", "Medical"),
        ("engineering", "Engineering"),
        ("pure", "Pure Sciences"),
    ),
    _folder(
        "social", "Social Sciences",
        ("law", "Law"),
        ("economics", "Economics"),
        ("literature", "Literature"),
    ),
    _folder(
        "general", "General",
        ("language", "Languages"),
        ("misc", "Miscellaneous"),
    ),
)

_FOLDERS_BY_ID: Dict[str, Folder] = {f.id: f for f in FOLDERS}


def get_folder(folder_id: str) -> Optional[Folder]:
    return _FOLDERS_BY_ID.get(folder_id)


def get_category(folder_id: str, category_id: str) -> Optional[Category]:
    """Return the category only if it belongs to *folder_id*."""
    folder = get_folder(folder_id)
    if folder is None:
        return None
    for category in folder.categories:
        if category.id == category_id:
            return category
    return None


def list_folders() -> List[Folder]:
    return list(FOLDERS)
