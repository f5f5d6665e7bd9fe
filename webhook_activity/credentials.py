"""Credential store holding the API key used to authenticate the stream."""

import logging
from pathlib import Path
from typing import Callable, List, Optional, Union

logger = logging.getLogger(__name__)

CredentialListener = Callable[[Optional[str]], None]


class CredentialStore:
    """
    In-memory holder of the current API key.

    Listeners are called synchronously on every set() or clear(), including
    when the same value is applied again; a re-applied key is how callers
    restart a stream whose retries were exhausted.
    """

    def __init__(self, credential: Optional[str] = None):
        self._credential = credential or None
        self._listeners: List[CredentialListener] = []

    def current(self) -> Optional[str]:
        """Current credential, or None when signed out."""
        return self._credential

    def set(self, credential: Optional[str]) -> None:
        """Replace the credential; an empty value counts as no credential."""
        self._credential = credential or None
        self._persist(self._credential)
        self._notify()

    def clear(self) -> None:
        """Remove the credential."""
        self.set(None)

    def subscribe(self, listener: CredentialListener) -> Callable[[], None]:
        """Attach a change listener and return its unsubscribe handle."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _persist(self, credential: Optional[str]) -> None:
        """Hook for stores that keep the credential somewhere durable."""

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._credential)
            except Exception as e:
                logger.error("Error notifying credential listener: %s", e, exc_info=True)


class FileCredentialStore(CredentialStore):
    """Credential store that survives restarts by keeping the key in a file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()
        super().__init__(self._load())

    def _load(self) -> Optional[str]:
        if not self.path.exists():
            return None
        try:
            return self.path.read_text(encoding="utf-8").strip() or None
        except OSError as e:
            logger.error("Failed to read credential file %s: %s", self.path, e)
            return None

    def _persist(self, credential: Optional[str]) -> None:
        try:
            if credential:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.write_text(credential, encoding="utf-8")
                self.path.chmod(0o600)
            elif self.path.exists():
                self.path.unlink()
        except OSError as e:
            logger.error("Failed to persist credential to %s: %s", self.path, e)
