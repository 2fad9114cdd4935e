from __future__ import annotations

import enum


class AuditAction(str, enum.Enum):
    import_ = "import"
    reannotate = "reannotate"


class LexemeImportMode(str, enum.Enum):
    update_missing = "update-missing"
    overwrite = "overwrite"
