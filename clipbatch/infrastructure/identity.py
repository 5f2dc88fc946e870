import hashlib
from pathlib import Path
from clipbatch.domain.errors import FileAccessError
from clipbatch.domain.models import IdentityMode

HASH_CHUNK_SIZE = 8 * 1024 * 1024


def _hash_file(path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    hasher = hashlib.md5()
    try:
        with path.open("rb") as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    break
                hasher.update(chunk)
    except OSError as e:
        raise FileAccessError(path, str(e))
    return hasher.hexdigest()


class IdentityKeyer:
    """Derives the dedup key that tells a real arrival from a re-notification.

    - path:    the path alone (cheap; a rewrite at the same name is not new work)
    - stat:    path + size + mtime (a rewrite at the same name is new work)
    - content: path + md5 of the whole file; slow, reads every byte
    """

    def __init__(self, mode: IdentityMode = IdentityMode.STAT):
        self.mode = IdentityMode(mode)

    def key_of(self, path: Path) -> str:
        if self.mode == IdentityMode.PATH:
            return str(path)
        if self.mode == IdentityMode.CONTENT:
            return f"{path}:{_hash_file(path)}"
        try:
            stat = path.stat()
        except OSError:
            # Gone already; the path is the only identity left
            return str(path)
        return f"{path}:{stat.st_size}:{stat.st_mtime_ns}"
