"""Tests for the single wkhtmltoimage invocation."""

import pytest

from wkhtmltos3.core.exceptions import RenderError
from wkhtmltos3.services.renderer import _STDERR_NOISE, _STDOUT_NOISE, Renderer, filter_tool_output

from conftest import make_job

WRITE_LAST_ARG = """
for last; do :; done
echo "$@" > "$last.args"
printf 'image-bytes' > "$last"
echo '[==========>               ] 40%'
echo 'Warning: Failed to load http://example.com/missing.css' 1>&2
echo 'Loading page (1/2)' 1>&2
exit 0
"""


@pytest.fixture
def renderer_for(write_tool, tmp_path):
    def _make(body: str) -> Renderer:
        return Renderer(binary=write_tool("wkhtmltoimage", body), cache_dir=str(tmp_path / "cache"))

    return _make


class TestRender:
    @pytest.mark.asyncio
    async def test_success_writes_output(self, renderer_for, tmp_path):
        renderer = renderer_for(WRITE_LAST_ARG)
        output = tmp_path / "out" / "k.jpg"

        result = await renderer.render(make_job(width=640), str(output))

        assert result == str(output)
        assert output.read_bytes() == b"image-bytes"
        args = (tmp_path / "out" / "k.jpg.args").read_text().split()
        assert args == ["--width", "640", "--cache-dir", str(tmp_path / "cache"), "http://example.com", str(output)]
        assert (tmp_path / "cache").is_dir()

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises(self, renderer_for, tmp_path):
        renderer = renderer_for("echo 'Error: host not found' 1>&2\nexit 3\n")
        with pytest.raises(RenderError) as exc:
            await renderer.render(make_job(), str(tmp_path / "k.jpg"))
        assert exc.value.returncode == 3

    @pytest.mark.asyncio
    async def test_killed_by_signal_raises(self, renderer_for, tmp_path):
        renderer = renderer_for("kill -9 $$\n")
        with pytest.raises(RenderError) as exc:
            await renderer.render(make_job(), str(tmp_path / "k.jpg"))
        assert exc.value.returncode == -9
        assert "signal 9" in str(exc.value)

    @pytest.mark.asyncio
    async def test_success_without_output_file_raises(self, renderer_for, tmp_path):
        renderer = renderer_for("exit 0\n")
        with pytest.raises(RenderError) as exc:
            await renderer.render(make_job(), str(tmp_path / "k.jpg"))
        assert "no image file" in str(exc.value)

    @pytest.mark.asyncio
    async def test_stale_output_does_not_count_as_success(self, renderer_for, tmp_path):
        stale = tmp_path / "k.jpg"
        stale.write_bytes(b"old")
        renderer = renderer_for("exit 0\n")
        with pytest.raises(RenderError):
            await renderer.render(make_job(), str(stale))

    @pytest.mark.asyncio
    async def test_missing_binary_raises(self, tmp_path):
        renderer = Renderer(binary=str(tmp_path / "nope"), cache_dir=str(tmp_path / "cache"))
        with pytest.raises(RenderError):
            await renderer.render(make_job(), str(tmp_path / "k.jpg"))

    @pytest.mark.asyncio
    async def test_unwritable_directories_raise(self, renderer_for, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        renderer = renderer_for(WRITE_LAST_ARG)
        with pytest.raises(RenderError):
            await renderer.render(make_job(), str(blocker / "k.jpg"))


class TestOutputFilter:
    def test_progress_noise_removed(self):
        stdout = "[=====>     ] 50%\r[==========] 100%\n\n"
        assert filter_tool_output(stdout, _STDOUT_NOISE) == ""

    def test_warnings_kept_as_bullets(self):
        stderr = "Loading page (1/2)\nWarning: slow iframe\nRendering (2/2)\nDone\nError: bad font\n"
        assert filter_tool_output(stderr, _STDERR_NOISE) == "    - Warning: slow iframe\n    - Error: bad font"
