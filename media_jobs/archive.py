import zipfile
from pathlib import Path


def bundle(source_dir, archive_path) -> Path:
    """Zip every file under source_dir, stored relative to it."""
    source_dir = Path(source_dir)
    archive_path = Path(archive_path)
    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for p in sorted(source_dir.rglob("*")):
            if not p.is_file() or p == archive_path:
                continue
            zf.write(p, p.relative_to(source_dir).as_posix())
    return archive_path
