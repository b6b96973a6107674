from __future__ import annotations


class TransportError(RuntimeError):
    """The persistence collaborator could not be reached."""


class VersionConflictError(RuntimeError):
    """An operation needs a Ready session but a save conflict is unresolved."""

    def __init__(self, server_version: int, conflicting_user: str | None = None) -> None:
        self.server_version = server_version
        self.conflicting_user = conflicting_user
        who = f" by {conflicting_user}" if conflicting_user else ""
        super().__init__(f"Workflow was modified{who} (server version {server_version})")
