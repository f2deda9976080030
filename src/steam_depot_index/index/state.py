"""
Live depot index for the current run.

Holds the depot -> apps, app -> name and depot -> owner tables that the
fetch flow fills while the callback pump is running.
"""

import threading

from steam_depot_index.index.schemas import IndexSnapshot


class DepotIndex:
    """
    Thread-safe depot/app tables.

    Every mutation and read goes through one lock so the tables can be
    shared with the transport's worker thread without external locking.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._depot_apps: dict[int, set[int]] = {}
        self._app_names: dict[int, str] = {}
        self._depot_owners: dict[int, int] = {}
        self._explicit_owners: set[int] = set()

    def record_owner(self, depot_id: int, owner_id: int, *, explicit: bool) -> None:
        """
        Record the owner of a depot.

        An explicitly declared owner replaces a defaulted one; otherwise
        the first owner seen for a depot is kept.
        """
        with self._lock:
            self._depot_apps.setdefault(depot_id, set()).add(owner_id)
            if explicit and depot_id not in self._explicit_owners:
                self._explicit_owners.add(depot_id)
                self._depot_owners[depot_id] = owner_id
            else:
                self._depot_owners.setdefault(depot_id, owner_id)

    def set_app_name(self, app_id: int, name: str) -> None:
        """Set the display name of an app, replacing any previous one."""
        with self._lock:
            self._app_names[app_id] = name

    def add_name_if_absent(self, app_id: int, name: str) -> bool:
        """Set the name only when none is known; returns whether it was set."""
        with self._lock:
            if app_id in self._app_names:
                return False
            self._app_names[app_id] = name
            return True

    def apps_for(self, depot_id: int) -> set[int]:
        """Copy of the apps referencing `depot_id`."""
        with self._lock:
            return set(self._depot_apps.get(depot_id, ()))

    def owner_of(self, depot_id: int) -> int | None:
        with self._lock:
            return self._depot_owners.get(depot_id)

    @property
    def depot_count(self) -> int:
        with self._lock:
            return len(self._depot_apps)

    @property
    def app_name_count(self) -> int:
        with self._lock:
            return len(self._app_names)

    def snapshot(self) -> IndexSnapshot:
        """Copy every table into an IndexSnapshot."""
        with self._lock:
            return IndexSnapshot(
                depot_apps={depot: set(apps) for depot, apps in self._depot_apps.items()},
                app_names=dict(self._app_names),
                depot_owners=dict(self._depot_owners),
            )
