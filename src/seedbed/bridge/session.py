"""Session tracker — first session id seen in a stream wins."""

from __future__ import annotations


class SessionTracker:
    """Holds the session id an agent assigned during one invocation.

    Stateless with respect to storage: the caller persists the id and
    passes it back as ``resume_session_id`` to continue the conversation.
    """

    def __init__(self) -> None:
        self._session_id: str | None = None

    @property
    def session_id(self) -> str | None:
        return self._session_id

    def observe(self, session_id: object) -> bool:
        """Record *session_id* if none is set yet.

        Returns True only when this call set the id; later ids, empty
        strings and non-string values are ignored.
        """
        if self._session_id is not None:
            return False
        if not isinstance(session_id, str) or not session_id:
            return False
        self._session_id = session_id
        return True
