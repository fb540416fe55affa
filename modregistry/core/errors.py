# modregistry/core/errors.py
from __future__ import annotations

__all__ = [
    "RegistryError", "ManifestLoadError", "InvalidRepositoryUrl",
    "GitHubApiError", "DiscoveryError", "AutoupdateError",
    "ManifestValidationError",
]



class RegistryError(Exception):
    """Base class for errors raised by the registry tooling."""
    pass



class ManifestLoadError(RegistryError):
    """A manifest file could not be read or is not a YAML mapping."""
    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason



class InvalidRepositoryUrl(RegistryError):
    """The given text is neither a GitHub URL nor an owner/repo shorthand."""
    pass



class GitHubApiError(RegistryError):
    def __init__(self, status: int, url: str, body: str = ""):
        super().__init__(f"GitHub API {status} for {url}: {body[:200]}")
        self.status = status
        self.url = url
        self.body = body



class DiscoveryError(RegistryError):
    """Discovery could not start: bad repository coordinate or tree listing failure."""
    pass



class AutoupdateError(RegistryError):
    """Per-manifest autoupdate failure (unresolvable version, unreachable URL)."""
    pass



class ManifestValidationError(RegistryError):
    """Raised when typed construction is attempted on data that fails validation."""
    def __init__(self, report):
        super().__init__(report.diagnostics or "invalid manifest")
        self.report = report
