"""
Tool-related data models.
"""

from typing import Optional, Dict, List
from pydantic import BaseModel, Field, validator

from ..errors import ToolUnavailable, UnsupportedPlatform
from ..utils.platform import current_os


class ToolSpec(BaseModel):
    """Static description of an external tool: identity, required version and how to obtain it."""
    name: str = Field(..., description="Logical tool name")
    default_executable: str = Field(..., description="Executable name used when no OS-specific name is set")
    executables: Dict[str, str] = Field(
        default_factory=dict,
        description="Executable name per OS (linux, mac, windows)"
    )
    required_version: str = Field(..., description="Exact version string the tool must report")
    version_args: List[str] = Field(default_factory=lambda: ["--version"], description="Version probe arguments")
    version_prefix: str = Field(default="", description="Fixed prefix stripped from the probe output")
    download_url: Optional[str] = Field(
        None,
        description="Bootstrap URL template with {version} and {platform} placeholders"
    )
    platforms: Dict[str, str] = Field(
        default_factory=dict,
        description="Bootstrap target per OS, substituted for {platform}"
    )
    binary_path: Optional[str] = Field(
        None,
        description="Executable location inside the extracted archive (template)"
    )

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "name": "licensechecker",
                "default_executable": "lc",
                "executables": {"windows": "lc.exe"},
                "required_version": "1.3.1",
                "version_prefix": "licensechecker version ",
                "download_url": "https://github.com/boyter/lc/releases/download/v{version}/lc-{version}-{platform}.zip",
                "platforms": {"linux": "x86_64-unknown-linux"}
            }
        }

    @validator('required_version')
    def validate_version_not_blank(cls, v):
        if not v.strip():
            raise ValueError("required_version must not be blank")
        return v.strip()

    def executable(self, os_name: Optional[str] = None) -> str:
        """Executable file name on the given (or running) OS."""
        return self.executables.get(os_name or current_os(), self.default_executable)

    def transform_version(self, output: str) -> str:
        """Extract the normalized version from raw version probe output."""
        text = output.strip()
        if self.version_prefix and self.version_prefix in text:
            text = text.split(self.version_prefix, 1)[1]
        # Anything after the version itself (build dates, commit hashes) is dropped.
        parts = text.split()
        return parts[0] if parts else ""

    def satisfied_by(self, version: Optional[str]) -> bool:
        """Literal comparison against the required version, no semver ordering."""
        return version == self.required_version

    def bootstrap_url(self, os_name: Optional[str] = None) -> str:
        """Render the download URL for the given (or running) OS."""
        os_name = os_name or current_os()
        if not self.download_url:
            raise ToolUnavailable(f"No download location is known for {self.name}.", tool=self.name)
        if os_name not in self.platforms:
            raise UnsupportedPlatform(
                f"{self.name} has no bootstrap target for operating system '{os_name}'.",
                tool=self.name
            )
        return self.download_url.format(version=self.required_version, platform=self.platforms[os_name])

    def archive_binary(self, os_name: Optional[str] = None) -> str:
        """Relative path of the executable inside the unpacked archive."""
        os_name = os_name or current_os()
        if not self.binary_path:
            return self.executable(os_name)
        return self.binary_path.format(
            version=self.required_version,
            platform=self.platforms.get(os_name, ""),
            executable=self.executable(os_name)
        )
