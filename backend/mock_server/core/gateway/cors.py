"""
CORS response headers, attached by the pipeline to every response.
"""

from dataclasses import dataclass, field

# Browsers only expose these to a resumable-upload client when listed.
EXPOSED_HEADERS = (
    "Location",
    "Upload-Offset",
    "Upload-Length",
    "Tus-Resumable",
    "Tus-Version",
    "Tus-Extension",
    "Tus-Max-Size",
)


@dataclass(frozen=True)
class CorsPolicy:
    enabled: bool = True
    origins: list[str] = field(default_factory=lambda: ["*"])
    methods: list[str] = field(default_factory=list)
    headers: list[str] = field(default_factory=list)
    max_age: int = 86400

    def allowed_origin(self, origin: str | None) -> str | None:
        """Echo the request Origin when allowed; '*' for wildcard without Origin."""
        if "*" in self.origins:
            return origin or "*"
        if origin and origin in self.origins:
            return origin
        return None

    def headers_for(self, origin: str | None) -> dict[str, str]:
        if not self.enabled:
            return {}
        out: dict[str, str] = {}
        allowed = self.allowed_origin(origin)
        if allowed is not None:
            out["Access-Control-Allow-Origin"] = allowed
            if allowed != "*":
                out["Vary"] = "Origin"
        out["Access-Control-Allow-Methods"] = ", ".join(self.methods)
        out["Access-Control-Allow-Headers"] = ", ".join(self.headers)
        out["Access-Control-Expose-Headers"] = ", ".join(EXPOSED_HEADERS)
        out["Access-Control-Max-Age"] = str(self.max_age)
        return out
