"""Injectable descriptors for third-party HTTP endpoints"""

from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from wagate.core.http import extract_field


@dataclass(frozen=True)
class EndpointDescriptor:
    """URL template plus the dotted path of the useful field in its JSON reply."""

    url: str
    field: str

    @property
    def host(self) -> str:
        return self.url.split("/")[2] if "://" in self.url else self.url

    def build_url(self, **params: str) -> str:
        return self.url.format(**{k: quote(str(v), safe="") for k, v in params.items()})

    def extract(self, payload: Any) -> Any:
        return extract_field(payload, self.field)

    @classmethod
    def from_config(cls, entry: Any) -> "EndpointDescriptor":
        """Build from a settings table (``{url = ..., field = ...}``)."""
        if isinstance(entry, cls):
            return entry
        return cls(url=str(entry.get("url") or entry.get("URL")), field=str(entry.get("field") or entry.get("FIELD")))


def load_endpoints(entries) -> list[EndpointDescriptor]:
    return [EndpointDescriptor.from_config(entry) for entry in (entries or [])]
