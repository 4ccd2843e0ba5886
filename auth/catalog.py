"""
auth/catalog.py -- Static permission catalog and role defaults.

Permissions are enumerated here, not created at runtime. Every key is a
dotted "resource.verb" string whose first segment is its category. Roles are
named bundles of default keys; the roles table in auth/store.py is seeded
from ROLES but the default sets are always read from this module.

Grant syntax understood by auth/permissions.py:
  "*"            -- every permission, including keys not in the catalog
  "news.*"       -- every key under the "news." prefix
  "news.edit"    -- exactly that key

validate_permission_key() and validate_catalog() turn typos into startup
failures (UnknownPermission) instead of requests that are silently denied.

Layer rule: no imports from api/ or audit/.
"""

from __future__ import annotations

from auth.errors import UnknownPermission
from auth.models import Permission, Role

WILDCARD = "*"

# ---------------------------------------------------------------------------
# Categories (display labels for the admin UI)
# ---------------------------------------------------------------------------

PERMISSION_CATEGORIES: dict[str, str] = {
    "users": "Benutzerverwaltung",
    "events": "Termine",
    "news": "Neuigkeiten",
    "gallery": "Galerie",
    "shared_gallery": "Impressionen",
    "portraits": "Portraits",
    "archive": "Archiv",
    "contacts": "Kontakte",
    "settings": "Einstellungen",
    "wendessen": "Wir sind Wendessen",
    "logs": "Protokoll",
    "verein": "Vereinsverwaltung",
}

# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------

PERMISSIONS: tuple[Permission, ...] = (
    # Users
    Permission("users.view", "users", "Benutzer anzeigen", "Kann Benutzerliste einsehen"),
    Permission("users.create", "users", "Benutzer erstellen", "Kann neue Benutzer anlegen"),
    Permission("users.edit", "users", "Benutzer bearbeiten", "Kann Benutzer bearbeiten"),
    Permission("users.delete", "users", "Benutzer löschen", "Kann Benutzer löschen"),
    # Events
    Permission("events.view", "events", "Termine anzeigen", "Kann Termine einsehen"),
    Permission("events.create", "events", "Termine erstellen", "Kann neue Termine erstellen"),
    Permission("events.edit", "events", "Termine bearbeiten", "Kann Termine bearbeiten"),
    Permission("events.delete", "events", "Termine löschen", "Kann Termine löschen"),
    Permission("events.cancel", "events", "Termine absagen", "Kann Termine absagen"),
    # News
    Permission("news.view", "news", "Neuigkeiten anzeigen", "Kann Neuigkeiten einsehen"),
    Permission("news.create", "news", "Neuigkeiten erstellen", "Kann neue Neuigkeiten erstellen"),
    Permission("news.edit", "news", "Neuigkeiten bearbeiten", "Kann Neuigkeiten bearbeiten"),
    Permission("news.delete", "news", "Neuigkeiten löschen", "Kann Neuigkeiten löschen"),
    # Gallery
    Permission("gallery.view", "gallery", "Galerie anzeigen", "Kann Galerie einsehen"),
    Permission("gallery.upload", "gallery", "Bilder hochladen", "Kann Bilder hochladen"),
    Permission("gallery.edit", "gallery", "Bilder bearbeiten", "Kann Bilder bearbeiten"),
    Permission("gallery.delete", "gallery", "Bilder löschen", "Kann Bilder löschen"),
    # Shared gallery (Impressionen)
    Permission("shared_gallery.view", "shared_gallery", "Einreichungen anzeigen", "Kann eingereichte Bilder einsehen"),
    Permission("shared_gallery.edit", "shared_gallery", "Einreichungen bearbeiten", "Kann Einreichungen freigeben"),
    Permission("shared_gallery.delete", "shared_gallery", "Einreichungen löschen", "Kann Einreichungen löschen"),
    # Portraits
    Permission("portraits.view", "portraits", "Portraits anzeigen", "Kann Portrait-Einreichungen einsehen"),
    Permission("portraits.edit", "portraits", "Portraits bearbeiten", "Kann Portraits genehmigen/ablehnen"),
    Permission("portraits.delete", "portraits", "Portraits löschen", "Kann Portraits löschen"),
    # Archive
    Permission("archive.view", "archive", "Archiv anzeigen", "Kann Archiveinträge einsehen"),
    Permission("archive.create", "archive", "Archiv erstellen", "Kann Archiveinträge anlegen"),
    Permission("archive.edit", "archive", "Archiv bearbeiten", "Kann Archiveinträge bearbeiten"),
    Permission("archive.delete", "archive", "Archiv löschen", "Kann Archiveinträge löschen"),
    # Contacts
    Permission("contacts.view", "contacts", "Kontakte anzeigen", "Kann Kontaktliste einsehen"),
    Permission("contacts.create", "contacts", "Kontakte erstellen", "Kann neue Kontakte anlegen"),
    Permission("contacts.edit", "contacts", "Kontakte bearbeiten", "Kann Kontakte bearbeiten"),
    Permission("contacts.delete", "contacts", "Kontakte löschen", "Kann Kontakte löschen"),
    # Settings
    Permission("settings.view", "settings", "Einstellungen anzeigen", "Kann Einstellungen einsehen"),
    Permission("settings.edit", "settings", "Einstellungen bearbeiten", "Kann Einstellungen ändern"),
    # Wendessen layouts
    Permission("wendessen.view", "wendessen", "Layouts anzeigen", "Kann Wendessen-Layouts einsehen"),
    Permission("wendessen.create", "wendessen", "Layouts erstellen", "Kann neue Layouts anlegen"),
    Permission("wendessen.manage", "wendessen", "Layouts verwalten", "Kann Layouts bearbeiten und löschen"),
    # Audit log
    Permission("logs.view", "logs", "Protokoll anzeigen", "Kann das Aktivitätsprotokoll einsehen"),
    # Verein-scoped
    Permission("verein.events.create", "verein", "Vereinstermine erstellen", "Kann Termine des eigenen Vereins anlegen"),
    Permission("verein.events.edit", "verein", "Vereinstermine bearbeiten", "Kann Termine des eigenen Vereins bearbeiten"),
    Permission("verein.events.cancel", "verein", "Vereinstermine absagen", "Kann Termine des eigenen Vereins absagen"),
)

PERMISSION_KEYS: frozenset[str] = frozenset(p.name for p in PERMISSIONS)

# Shown in the permission picker only; never stored in PERMISSIONS.
_WILDCARD_PERMISSION = Permission(
    WILDCARD,
    "system",
    "Alle Berechtigungen",
    "Gewährt Zugriff auf jede einzelne Berechtigung des Systems",
)

# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

ROLES: tuple[Role, ...] = (
    Role(
        "super_admin",
        "Super Admin",
        "Vollständiger Zugriff auf alle Funktionen und Einstellungen",
        frozenset({WILDCARD}),
    ),
    Role(
        "admin",
        "Administrator",
        "Verwaltung von Inhalten und Benutzern",
        frozenset(
            {
                "users.view",
                "users.create",
                "users.edit",
                "users.delete",
                "events.view",
                "events.create",
                "events.edit",
                "events.delete",
                "events.cancel",
                "news.view",
                "news.create",
                "news.edit",
                "news.delete",
                "gallery.view",
                "gallery.upload",
                "gallery.edit",
                "gallery.delete",
                "shared_gallery.view",
                "shared_gallery.edit",
                "shared_gallery.delete",
                "portraits.view",
                "portraits.edit",
                "portraits.delete",
                "archive.view",
                "archive.create",
                "archive.edit",
                "archive.delete",
                "contacts.view",
                "contacts.create",
                "contacts.edit",
                "contacts.delete",
                "settings.view",
                "settings.edit",
                "wendessen.view",
                "wendessen.manage",
                "logs.view",
            }
        ),
    ),
    Role(
        "editor",
        "Redakteur",
        "Bearbeitung von Inhalten (Termine, Neuigkeiten, Galerie)",
        frozenset(
            {
                "events.view",
                "events.create",
                "events.edit",
                "events.cancel",
                "news.view",
                "news.create",
                "news.edit",
                "gallery.view",
                "gallery.upload",
                "gallery.edit",
                "archive.view",
                "archive.create",
                "archive.edit",
            }
        ),
    ),
    Role(
        "moderator",
        "Moderator",
        "Überprüfung und Genehmigung von Einreichungen",
        frozenset(
            {
                "events.view",
                "news.view",
                "gallery.view",
                "shared_gallery.view",
                "shared_gallery.edit",
                "portraits.view",
                "portraits.edit",
            }
        ),
    ),
    Role(
        "vereinsverwalter",
        "Vereinsverwalter",
        "Verwaltung der Termine und Neuigkeiten eines Vereins",
        frozenset(
            {
                "events.view",
                "events.create",
                "events.edit",
                "news.view",
                "news.create",
                "news.edit",
                "news.delete",
                "gallery.*",
            }
        ),
    ),
    Role(
        "no_permissions",
        "Keine Berechtigungen",
        "Konto ohne Berechtigungen, zum Testen von Zugriffsbeschränkungen",
        frozenset(),
    ),
)

_ROLES_BY_NAME: dict[str, Role] = {r.name: r for r in ROLES}


# ---------------------------------------------------------------------------
# Catalog queries
# ---------------------------------------------------------------------------


def list_roles() -> list[Role]:
    """Return all seed roles ordered by name."""
    return sorted(ROLES, key=lambda r: r.name)


def get_role(role_name: str | None) -> Role | None:
    if not role_name:
        return None
    return _ROLES_BY_NAME.get(role_name)


def get_role_default_permissions(role_name: str | None) -> frozenset[str]:
    """Return the default permission set for a role. Unknown roles get an empty set."""
    role = get_role(role_name)
    return role.default_permissions if role is not None else frozenset()


def get_permission_category(key: str) -> str:
    """Return the category of a key, or "other" when the prefix is not a known category."""
    category = key.split(".", 1)[0]
    return category if category in PERMISSION_CATEGORIES else "other"


def list_permissions_by_category() -> dict[str, list[Permission]]:
    """Group the catalog by category for the permission picker.

    The "system" group always comes first and holds the synthetic "*" entry.
    """
    grouped: dict[str, list[Permission]] = {"system": [_WILDCARD_PERMISSION]}
    for perm in sorted(PERMISSIONS, key=lambda p: (p.category, p.name)):
        grouped.setdefault(perm.category, []).append(perm)
    return grouped


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def is_valid_grant(grant: str) -> bool:
    """Return True if grant is "*", a catalog key, or a prefix wildcard covering one."""
    if grant == WILDCARD or grant in PERMISSION_KEYS:
        return True
    if grant.endswith(".*"):
        prefix = grant[:-1]
        return any(key.startswith(prefix) for key in PERMISSION_KEYS)
    return False


def validate_permission_key(key: str) -> str:
    """Return key unchanged if it names a catalog permission, else raise UnknownPermission.

    Gates require a concrete key: wildcards are grants, never requirements.
    """
    if key not in PERMISSION_KEYS:
        raise UnknownPermission(key)
    return key


def validate_catalog() -> None:
    """Check every role default against the catalog. Called once at startup."""
    for role in ROLES:
        for grant in role.default_permissions:
            if not is_valid_grant(grant):
                raise UnknownPermission(grant)
    for perm in PERMISSIONS:
        if perm.category not in PERMISSION_CATEGORIES:
            raise UnknownPermission(perm.name)
