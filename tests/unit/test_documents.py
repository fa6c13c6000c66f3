"""
Unit tests for creating and opening untitled documents.
"""
import pytest
import sys
import os
from unittest.mock import Mock

import nbformat

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'rplugin', 'python3'))

from kernelmenu.catalog import KernelDescriptor
from kernelmenu.documents import DocumentManager, NvimEditor
from kernelmenu.errors import DocumentActionFailure


class TestCreateUntitled:
    """Test cases for DocumentManager.create_untitled."""

    @pytest.mark.asyncio
    async def test_creates_empty_notebook(self, tmp_path):
        manager = DocumentManager(str(tmp_path))

        path = await manager.create_untitled(kind="notebook")

        assert path == str(tmp_path / "Untitled.ipynb")
        notebook = nbformat.read(path, as_version=4)
        assert notebook.cells == []

    @pytest.mark.asyncio
    async def test_names_do_not_clash(self, tmp_path):
        manager = DocumentManager(str(tmp_path))

        first = await manager.create_untitled(kind="file", extension="py")
        second = await manager.create_untitled(kind="file", extension="py")

        assert os.path.basename(first) == "untitled.py"
        assert os.path.basename(second) == "untitled1.py"
        assert open(first).read() == ""

    @pytest.mark.asyncio
    async def test_file_without_extension(self, tmp_path):
        manager = DocumentManager(str(tmp_path))

        path = await manager.create_untitled(kind="file")

        assert path.endswith("untitled.txt")

    @pytest.mark.asyncio
    async def test_creates_missing_directory(self, tmp_path):
        manager = DocumentManager(str(tmp_path))

        path = await manager.create_untitled(kind="file", path="scratch/new", extension="jl")

        assert path == str(tmp_path / "scratch" / "new" / "untitled.jl")

    @pytest.mark.asyncio
    async def test_unknown_kind(self, tmp_path):
        manager = DocumentManager(str(tmp_path))

        with pytest.raises(DocumentActionFailure):
            await manager.create_untitled(kind="spreadsheet")

    @pytest.mark.asyncio
    async def test_unwritable_directory(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        manager = DocumentManager(str(tmp_path))

        with pytest.raises(DocumentActionFailure):
            await manager.create_untitled(kind="notebook", path="blocker")


class TestOpenDocument:
    """Test cases for DocumentManager.open_document."""

    @pytest.mark.asyncio
    async def test_binds_notebook_to_kernel(self, tmp_path):
        descriptor = KernelDescriptor("python3", "Python 3 (ipykernel)", "python")
        editor = Mock()
        manager = DocumentManager(str(tmp_path), editor=editor, kernel_lookup={"python3": descriptor}.get)
        path = await manager.create_untitled(kind="notebook")

        await manager.open_document(path, kernel="python3")

        notebook = nbformat.read(path, as_version=4)
        assert notebook.metadata["kernelspec"] == {
            "name": "python3",
            "display_name": "Python 3 (ipykernel)",
            "language": "python",
        }
        assert notebook.metadata["language_info"]["name"] == "python"
        editor.open.assert_called_once_with(path, "python3")

    @pytest.mark.asyncio
    async def test_unknown_kernel_still_bound_by_name(self, tmp_path):
        manager = DocumentManager(str(tmp_path), editor=Mock())
        path = await manager.create_untitled(kind="notebook")

        await manager.open_document(path, kind="notebook", kernel="custom")

        notebook = nbformat.read(path, as_version=4)
        assert notebook.metadata["kernelspec"]["display_name"] == "custom"

    @pytest.mark.asyncio
    async def test_plain_file_is_opened(self, tmp_path):
        editor = Mock()
        manager = DocumentManager(str(tmp_path), editor=editor)
        path = await manager.create_untitled(kind="file", extension="py")

        await manager.open_document(path)

        editor.open.assert_called_once_with(path, None)

    @pytest.mark.asyncio
    async def test_missing_document(self, tmp_path):
        manager = DocumentManager(str(tmp_path), editor=Mock())

        with pytest.raises(DocumentActionFailure):
            await manager.open_document("nope.ipynb")

    @pytest.mark.asyncio
    async def test_editor_failure_is_wrapped(self, tmp_path):
        editor = Mock()
        editor.open.side_effect = Exception("E37: No write since last change")
        manager = DocumentManager(str(tmp_path), editor=editor)
        path = await manager.create_untitled(kind="file", extension="py")

        with pytest.raises(DocumentActionFailure) as exc_info:
            await manager.open_document(path)

        assert "E37" in str(exc_info.value)


class TestNvimEditor:
    """Test cases for NvimEditor."""

    def test_open_sets_buffer_kernel(self):
        nvim = Mock()
        nvim.funcs.fnameescape = Mock(return_value="/tmp/my\\ notes.ipynb")
        nvim.current.buffer.vars = {}

        NvimEditor(nvim).open("/tmp/my notes.ipynb", "python3")

        nvim.command.assert_called_once_with("edit /tmp/my\\ notes.ipynb")
        assert nvim.current.buffer.vars["kernelmenu_kernel"] == "python3"

    def test_open_without_kernel(self):
        nvim = Mock()
        nvim.funcs.fnameescape = Mock(side_effect=lambda path: path)
        nvim.current.buffer.vars = {}

        NvimEditor(nvim).open("/tmp/untitled.py")

        assert nvim.current.buffer.vars == {}


if __name__ == "__main__":
    pytest.main([__file__])
