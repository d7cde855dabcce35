from io import BytesIO
from pathlib import PurePath
from typing import Iterable, List, Tuple
import zipfile

from ..models.errors import BatchFatal


class ArchiveRepository:
    """
    Packs (member_name, bytes) pairs into a single zip archive.
    Member order follows the input order so archives are reproducible.
    """

    # fixed timestamp → identical inputs give identical archive bytes
    _EPOCH = (1980, 1, 1, 0, 0, 0)

    @staticmethod
    def unique_names(names: Iterable[str]) -> List[str]:
        """Suffix repeated names with -1, -2 … so no member overwrites another."""
        seen = {}
        out = []
        for name in names:
            if name not in seen:
                seen[name] = 0
                out.append(name)
                continue
            path = PurePath(name)
            while True:
                seen[name] += 1
                candidate = f"{path.stem}-{seen[name]}{path.suffix}"
                if candidate not in seen:
                    break
            seen[candidate] = 0
            out.append(candidate)
        return out

    def build(self, members: Iterable[Tuple[str, bytes]]) -> bytes:
        members = list(members)
        names = self.unique_names(name for name, _ in members)
        buf = BytesIO()
        try:
            with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                for name, (_, data) in zip(names, members):
                    info = zipfile.ZipInfo(name, date_time=self._EPOCH)
                    info.compress_type = zipfile.ZIP_DEFLATED
                    zf.writestr(info, data)
        except (OSError, ValueError, zipfile.BadZipFile) as err:
            raise BatchFatal(f"Archive assembly failed: {err}") from err
        return buf.getvalue()

    @staticmethod
    def list_members(archive: bytes) -> List[str]:
        with zipfile.ZipFile(BytesIO(archive)) as zf:
            return zf.namelist()
