from __future__ import annotations

from pathlib import Path
import tempfile


def write_text_atomic(path: Path, text: str) -> None:
    """Write ``text`` to a sibling temp file, then replace ``path`` with it.

    Raises OSError; the temp file never outlives a failed write.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=str(path.parent),
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            temp_path = Path(handle.name)
            handle.write(text)
            handle.flush()
        temp_path.replace(path)
    except OSError:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        raise
