"""Repository layout of tenant documents."""

from __future__ import annotations

import re
from dataclasses import dataclass

_UNSAFE_ID = re.compile(r"[^a-zA-Z0-9._-]")

DEFAULT_PROCEDURE_ID = "proc-1"
DEFAULT_PROFILE_ID = "default"
# ropa/ropa.json holds the whole register; other files there are single processes
ROPA_REGISTER_ID = "ropa"


def sanitize_id(value: object) -> str:
    """Keep only ``[A-Za-z0-9._-]``; dot-only ids collapse to an empty string."""
    cleaned = _UNSAFE_ID.sub("", str(value or "").strip())
    return "" if set(cleaned) <= {"."} else cleaned


@dataclass(slots=True, frozen=True)
class TenantPaths:
    """Deterministic file paths for one tenant under the data root."""

    data_root: str
    org_id: str

    @property
    def root(self) -> str:
        prefix = f"{self.data_root}/" if self.data_root else ""
        return f"{prefix}tenants/{self.org_id}"

    @property
    def meta(self) -> str:
        return f"{self.root}/meta.json"

    @property
    def ropa_dir(self) -> str:
        return f"{self.root}/ropa"

    @property
    def ropa(self) -> str:
        return f"{self.ropa_dir}/{ROPA_REGISTER_ID}.json"

    @property
    def bundles_dir(self) -> str:
        return f"{self.root}/bundles"

    @property
    def procedures_dir(self) -> str:
        return f"{self.root}/procedures"

    @property
    def profiles_dir(self) -> str:
        return f"{self.root}/profiles"

    def ssp(self, proc_id: str = DEFAULT_PROCEDURE_ID) -> str:
        return f"{self.procedures_dir}/{proc_id}/ssp.json"

    def profile(self, profile_id: str = DEFAULT_PROFILE_ID) -> str:
        return f"{self.profiles_dir}/{profile_id}.json"

    def ropa_process(self, process_id: str) -> str:
        return f"{self.ropa_dir}/{process_id}.json"

    def bundle_ssp(self, bundle_id: str) -> str:
        return f"{self.bundles_dir}/{bundle_id}/ssp.json"

    def bundle_meta(self, bundle_id: str) -> str:
        return f"{self.bundles_dir}/{bundle_id}/bundle.json"
