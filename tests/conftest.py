"""
Pytest fixtures for QuoteCast tests.

Nothing here touches the network, a real database or a real ffmpeg binary:
- encoders are small Python scripts run through sys.executable
- the image provider is replaced by FakeFetcher (or httpx.MockTransport)
- artifacts live in InMemoryArtifactRepository
"""

import sys
import textwrap
from pathlib import Path

import pytest

from quotecast.config import Settings
from quotecast.context import RenderContext
from quotecast.exceptions import AssetNotFoundError
from quotecast.render.executor import ExecutionResult, FFmpegExecutor
from quotecast.services.artifact_repository import InMemoryArtifactRepository
from quotecast.services.asset_fetcher import FetchedAsset
from quotecast.services.storage_service import LocalStorageService

FAKE_JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 2048 + b"\xff\xd9"
FAKE_MP4 = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 4096

ENCODER_SCRIPTS = {
    # Writes a fake mp4 to the last argument (the output path)
    "ok": """
        import sys
        sys.stderr.write("frame=  150 fps=30 q=-1.0 Lsize=  12kB\\n")
        with open(sys.argv[-1], "wb") as f:
            f.write(b"\\x00\\x00\\x00\\x18ftypmp42" + b"\\x00" * 4096)
    """,
    "fail": """
        import sys
        sys.stderr.write("x" * 5000)
        sys.stderr.write("\\nError initializing filter 'drawtext'\\n")
        sys.exit(1)
    """,
    "empty": """
        import sys
        open(sys.argv[-1], "wb").close()
    """,
    "hang": """
        import sys, time
        if len(sys.argv) > 2 and sys.argv[1] == "--pidfile":
            with open(sys.argv[2], "w") as f:
                f.write(str(__import__("os").getpid()))
        time.sleep(60)
    """,
    # Ignores SIGTERM so only SIGKILL stops it
    "stubborn": """
        import os, signal, sys, time
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
        with open(sys.argv[2], "w") as f:
            f.write(str(os.getpid()))
        time.sleep(60)
    """,
}


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: test spawns subprocesses that wait on timeouts")


@pytest.fixture
def encoder_script(tmp_path):
    """Factory returning the path of a fake encoder script by name."""

    def _make(name: str) -> Path:
        path = tmp_path / f"fake_encoder_{name}.py"
        path.write_text(textwrap.dedent(ENCODER_SCRIPTS[name]))
        return path

    return _make


class ScriptExecutor(FFmpegExecutor):
    """FFmpegExecutor that runs a Python script instead of ffmpeg."""

    def __init__(self, script: Path, timeout_s: float = 10.0, stderr_tail_bytes: int = 2000):
        super().__init__(sys.executable, timeout_s=timeout_s, stderr_tail_bytes=stderr_tail_bytes)
        self.script = script
        self.calls: list[list[str]] = []

    async def run(self, args: list[str]) -> ExecutionResult:
        self.calls.append(list(args))
        return await super().run([str(self.script), *args])


class FakeFetcher:
    """Stands in for UnsplashAssetFetcher."""

    def __init__(self, missing: set[str] | None = None, photographer: str = "Jane Doe"):
        self.missing = missing or set()
        self.photographer = photographer
        self.calls: list[str] = []

    async def fetch(self, asset_id: str, dest_path: Path, width: int, height: int) -> FetchedAsset:
        self.calls.append(asset_id)
        if asset_id in self.missing:
            raise AssetNotFoundError(asset_id)
        dest_path.write_bytes(FAKE_JPEG)
        return FetchedAsset(
            path=dest_path,
            photographer=self.photographer,
            photographer_url="https://unsplash.com/@jane",
        )

    async def aclose(self) -> None:
        pass


@pytest.fixture
def temp_root(tmp_path) -> Path:
    path = tmp_path / "jobs"
    path.mkdir()
    return path


@pytest.fixture
def settings(tmp_path, temp_root) -> Settings:
    return Settings(
        _env_file=None,
        temp_root=str(temp_root),
        font_dir=str(tmp_path / "fonts"),
        unsplash_access_key="test-key",
        max_concurrent_jobs=2,
        render_timeout_s=10.0,
        debug=False,
    )


@pytest.fixture
def storage(tmp_path) -> LocalStorageService:
    return LocalStorageService(tmp_path / "storage", "http://testserver/files")


@pytest.fixture
def make_context(settings, encoder_script):
    """Factory for an isolated RenderContext wired with fakes."""

    def _make(
        *,
        encoder: str = "ok",
        storage=None,
        repository: InMemoryArtifactRepository | None = None,
        fetcher: FakeFetcher | None = None,
        timeout_s: float = 10.0,
        settings_overrides: dict | None = None,
    ) -> RenderContext:
        ctx_settings = settings.model_copy(update=settings_overrides or {})
        return RenderContext.build(
            ctx_settings,
            repository=repository if repository is not None else InMemoryArtifactRepository(),
            storage=storage,
            fetcher=fetcher or FakeFetcher(missing={"missing-photo"}),
            executor=ScriptExecutor(encoder_script(encoder), timeout_s=timeout_s),
        )

    return _make


def residual_workspaces(temp_root: Path) -> list[Path]:
    return [p for p in temp_root.iterdir() if p.name.startswith("quotecast_")]
