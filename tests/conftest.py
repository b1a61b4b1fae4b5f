import os
import stat
from pathlib import Path
from typing import Iterable, List, Optional

import pytest

from wkhtmltos3.core.exceptions import RenderError
from wkhtmltos3.schemas.job_models import RenderJob


def make_job(**overrides) -> RenderJob:
    fields = {"url": "http://example.com", "bucket": "b", "key": "k.jpg"}
    fields.update(overrides)
    return RenderJob(**fields)


@pytest.fixture
def write_tool(tmp_path):
    """Create an executable /bin/sh script standing in for an external tool."""

    def _write(name: str, body: str) -> str:
        path = tmp_path / "bin" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("#!/bin/sh\n" + body)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _write


class FakeRenderer:
    """Writes queued payloads to the output path, one per call."""

    def __init__(self, outputs: Iterable[Optional[bytes]]):
        self._outputs = list(outputs)
        self.paths: List[str] = []

    @property
    def calls(self) -> int:
        return len(self.paths)

    async def render(self, job, output_path, timer=None):
        payload = self._outputs[len(self.paths)]
        self.paths.append(output_path)
        if payload is None:
            raise RenderError("wkhtmltoimage failed: exit code 1", returncode=1)
        os.makedirs(os.path.dirname(output_path), exist_ok=True)
        Path(output_path).write_bytes(payload)
        return output_path
