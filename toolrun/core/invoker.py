"""
Resolution, version gating and execution of external tools.
"""

import logging
import shutil
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from ..errors import ProcessLaunchError, Timeout, ToolUnavailable, VersionMismatch
from ..models.execution import ExecutionResult
from ..models.tool import ToolSpec
from .bootstrap import ToolBootstrapper
from .process import ProcessRunner

PathLike = Union[str, Path]


class ToolInvoker:
    """Makes a tool available at its required version and runs it."""

    def __init__(self,
                 bootstrapper: ToolBootstrapper,
                 runner: Optional[ProcessRunner] = None,
                 version_probe_timeout: float = 30.0):
        """
        Initialize the invoker.

        Args:
            bootstrapper: Installs tools that are missing or outdated
            runner: Process runner used for probes and runs
            version_probe_timeout: Time budget of a single version probe in seconds
        """
        self.logger = logging.getLogger(__name__)
        self.bootstrapper = bootstrapper
        self.runner = runner or ProcessRunner()
        self.version_probe_timeout = version_probe_timeout
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "ToolInvoker":
        """Build an invoker from application settings."""
        from ..integrations.download import ArchiveDownloader

        downloader = ArchiveDownloader(
            cache_dir=settings.download.cache_dir if settings.download.use_cache else None,
            timeout=settings.download.timeout
        )
        return cls(
            bootstrapper=ToolBootstrapper(settings.tools.install_root, downloader),
            runner=ProcessRunner(default_timeout=settings.tools.default_timeout),
            version_probe_timeout=settings.tools.version_probe_timeout
        )

    def probe_version(self, spec: ToolSpec, executable: PathLike) -> Optional[str]:
        """Run the version probe; None if the binary cannot run it successfully."""
        try:
            result = self.runner.execute(
                [executable, *spec.version_args],
                timeout=self.version_probe_timeout
            )
        except (ProcessLaunchError, Timeout) as e:
            self.logger.debug(f"Version probe of '{executable}' failed: {e}")
            return None

        if result.exit_code != 0:
            self.logger.debug(f"Version probe of '{executable}' exited with {result.exit_code}")
            return None

        # Some tools print their version to stderr.
        return spec.transform_version(result.stdout or result.stderr)

    def _candidates(self, spec: ToolSpec) -> List[Path]:
        candidates = [self.bootstrapper.installed_binary(spec)]
        on_path = shutil.which(spec.executable())
        if on_path:
            candidates.append(Path(on_path))
        return [c for c in candidates if c.is_file()]

    def ensure_available(self, spec: ToolSpec) -> Path:
        """
        Return the path of a binary reporting the required version, bootstrapping it if needed.

        Raises:
            UnsupportedPlatform: if bootstrap is needed but the OS has no target
            ToolUnavailable: if bootstrap cannot produce a binary
            VersionMismatch: if the bootstrapped binary reports the wrong version
        """
        with self._lock:
            found_versions: Dict[Path, Optional[str]] = {}
            for candidate in self._candidates(spec):
                version = self.probe_version(spec, candidate)
                if spec.satisfied_by(version):
                    self.logger.debug(f"Using {spec.name} {version} at '{candidate}'")
                    return candidate
                found_versions[candidate] = version

            if found_versions:
                self.logger.info(
                    f"Found {spec.name} in versions {sorted(str(v) for v in found_versions.values())}, "
                    f"but {spec.required_version} is required. Bootstrapping..."
                )
            else:
                self.logger.info(f"{spec.name} not found. Bootstrapping version {spec.required_version}...")

            binary = self.bootstrapper.bootstrap(spec)

            if not binary.is_file():
                raise ToolUnavailable(f"Bootstrap of {spec.name} did not produce '{binary}'.", tool=spec.name)

            version = self.probe_version(spec, binary)
            if not spec.satisfied_by(version):
                raise VersionMismatch(spec.name, spec.required_version, str(version))

            self.logger.info(f"Bootstrapped {spec.name} {version} to '{binary}'")
            return binary

    def version(self, spec: ToolSpec) -> str:
        """Normalized version reported by the resolved binary."""
        return self.probe_version(spec, self.ensure_available(spec)) or ""

    def run(self,
            spec: ToolSpec,
            args: Sequence[PathLike] = (),
            working_dir: Optional[PathLike] = None,
            timeout: Optional[float] = None,
            env: Optional[Dict[str, str]] = None) -> ExecutionResult:
        """
        Run the tool with args in working_dir.

        Returns:
            Execution result; a non-zero exit is not an error here, see require_success()
        """
        executable = self.ensure_available(spec)
        try:
            return self.runner.execute([executable, *args], working_dir=working_dir, env=env, timeout=timeout)
        except (ProcessLaunchError, Timeout) as e:
            e.tool = spec.name
            raise

    async def run_async(self,
                        spec: ToolSpec,
                        args: Sequence[PathLike] = (),
                        working_dir: Optional[PathLike] = None,
                        timeout: Optional[float] = None,
                        env: Optional[Dict[str, str]] = None) -> ExecutionResult:
        """Asyncio variant of run(); resolution itself still runs synchronously."""
        executable = self.ensure_available(spec)
        try:
            return await self.runner.execute_async(
                [executable, *args], working_dir=working_dir, env=env, timeout=timeout
            )
        except (ProcessLaunchError, Timeout) as e:
            e.tool = spec.name
            raise

    @staticmethod
    def require_success(result: ExecutionResult) -> ExecutionResult:
        """Pass a zero-exit result through; raise NonZeroExit carrying stderr otherwise."""
        return result.require_success()
