"""Tests for the Graphviz converter."""

import shutil
import subprocess

import pytest

from callvis.errors import RendererFailed, RendererUnavailable
from callvis.render import converter as converter_module
from callvis.render.converter import DotConverter

DESCRIPTION = 'digraph callvis {\n  "a" -> "b";\n}\n'


class TestDotConverter:
    @pytest.mark.parametrize("fmt", ["dot", "gv", "canon"])
    def test_passthrough_needs_no_binary(self, fmt):
        converter = DotConverter(binary="callvis-no-such-dot")
        assert converter.convert(DESCRIPTION, fmt) == DESCRIPTION.encode()

    def test_missing_binary(self):
        converter = DotConverter(binary="callvis-no-such-dot")
        assert not converter.available()
        with pytest.raises(RendererUnavailable):
            converter.convert(DESCRIPTION, "svg")

    @pytest.mark.skipif(shutil.which("false") is None, reason="needs the false utility")
    def test_non_zero_exit(self):
        with pytest.raises(RendererFailed):
            DotConverter(binary="false").convert(DESCRIPTION, "svg")

    def test_timeout(self, monkeypatch):
        def hang(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(converter_module.shutil, "which", lambda name: "/usr/bin/dot")
        monkeypatch.setattr(converter_module.subprocess, "run", hang)
        with pytest.raises(RendererFailed, match="timed out"):
            DotConverter(timeout=0.5).convert(DESCRIPTION, "svg")

    def test_stderr_is_kept(self, monkeypatch):
        def fail(cmd, **kwargs):
            return subprocess.CompletedProcess(cmd, 1, stdout=b"", stderr=b"syntax error in line 1")

        monkeypatch.setattr(converter_module.shutil, "which", lambda name: "/usr/bin/dot")
        monkeypatch.setattr(converter_module.subprocess, "run", fail)
        with pytest.raises(RendererFailed) as info:
            DotConverter().convert(DESCRIPTION, "png")
        assert info.value.stderr == "syntax error in line 1"

    def test_format_passed_to_dot(self, monkeypatch):
        seen = {}

        def ok(cmd, **kwargs):
            seen["cmd"] = cmd
            seen["input"] = kwargs["input"]
            return subprocess.CompletedProcess(cmd, 0, stdout=b"PNG", stderr=b"")

        monkeypatch.setattr(converter_module.shutil, "which", lambda name: "/opt/graphviz/dot")
        monkeypatch.setattr(converter_module.subprocess, "run", ok)
        assert DotConverter().convert(DESCRIPTION, "png") == b"PNG"
        assert seen["cmd"] == ["/opt/graphviz/dot", "-Tpng"]
        assert seen["input"] == DESCRIPTION.encode()

    @pytest.mark.skipif(shutil.which("dot") is None, reason="Graphviz is not installed")
    def test_real_svg(self):
        image = DotConverter().convert(DESCRIPTION, "svg")
        assert b"<svg" in image
