import threading
from abc import ABC, abstractmethod
from typing import Optional, Sequence


class Encoder(ABC):
    """Cuts clips out of source videos and joins them into one file."""

    @abstractmethod
    def extract(
        self,
        source_path: str,
        start: float,
        duration: float,
        output_path: str,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """Re-encode ``duration`` seconds of ``source_path`` starting at ``start``.

        Returns the path of the standalone clip. Raises ExtractError.
        """
        ...

    @abstractmethod
    def concat(
        self,
        clip_paths: Sequence[str],
        manifest_path: str,
        output_path: str,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """Join ``clip_paths`` in order into ``output_path``. Raises ConcatError."""
        ...

    def is_available(self) -> bool:
        return True
