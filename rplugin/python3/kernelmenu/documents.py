import logging
import os
from typing import Callable, Optional

import nbformat

from .errors import DocumentActionFailure

MAX_UNTITLED = 10000


class NvimEditor:
    """
    Opens documents in Neovim and remembers the kernel bound to each buffer.
    """

    def __init__(self, nvim):
        self.nvim = nvim

    def open(self, path: str, kernel: Optional[str] = None):
        escaped = self.nvim.funcs.fnameescape(path)
        self.nvim.command(f"edit {escaped}")
        if kernel:
            self.nvim.current.buffer.vars["kernelmenu_kernel"] = kernel


class DocumentManager:
    """
    Creates untitled notebooks and files on disk and opens them.

    Args:
        root_dir: Directory that relative document paths are resolved against
        editor: Object with an open(path, kernel) method, usually NvimEditor
        kernel_lookup: Optional callable mapping a kernel name to its KernelDescriptor
    """

    def __init__(self, root_dir: str, editor=None, kernel_lookup: Optional[Callable] = None):
        self.root_dir = os.path.abspath(root_dir)
        self.editor = editor
        self.kernel_lookup = kernel_lookup
        self._logger = logging.getLogger("kernelmenu.documents")

    def _resolve(self, path: str) -> str:
        return os.path.normpath(os.path.join(self.root_dir, path))

    @staticmethod
    def _untitled_names(kind: str, extension: Optional[str]):
        if kind == "notebook":
            base, suffix = "Untitled", ".ipynb"
        else:
            base, suffix = "untitled", f".{extension}" if extension else ".txt"
        yield f"{base}{suffix}"
        for i in range(1, MAX_UNTITLED):
            yield f"{base}{i}{suffix}"

    async def create_untitled(
        self,
        kind: str,
        path: str = ".",
        extension: Optional[str] = None,
        language: Optional[str] = None,
    ) -> str:
        """
        Create a new, uniquely named, empty notebook or file.

        Args:
            kind: 'notebook' or 'file'
            path: Directory to create it in, relative to the root directory
            extension: File extension without the dot (files only)
            language: Language of the new file, for logging

        Returns:
            str: Absolute path of the created document

        Raises:
            DocumentActionFailure: If the document could not be created
        """
        if kind not in ("notebook", "file"):
            raise DocumentActionFailure(f"Unknown document kind '{kind}'")

        directory = self._resolve(path)
        try:
            os.makedirs(directory, exist_ok=True)
            for name in self._untitled_names(kind, extension):
                target = os.path.join(directory, name)
                try:
                    with open(target, "x", encoding="utf-8") as f:
                        if kind == "notebook":
                            nbformat.write(nbformat.v4.new_notebook(), f)
                except FileExistsError:
                    continue

                self._logger.info(f"Created untitled {kind} {target} (language: {language or 'unknown'})")
                return target
        except OSError as e:
            raise DocumentActionFailure(f"Could not create untitled {kind} in {directory}: {e}") from e

        raise DocumentActionFailure(f"No free untitled {kind} name left in {directory}")

    async def open_document(self, path: str, kind: Optional[str] = None, kernel: Optional[str] = None):
        """
        Open a document, binding a notebook to a kernel first if one is given.

        Args:
            path: Document path, absolute or relative to the root directory
            kind: 'notebook' or 'file'; guessed from the extension if omitted
            kernel: Kernel name to bind

        Raises:
            DocumentActionFailure: If the document could not be opened
        """
        target = self._resolve(path)
        if not os.path.exists(target):
            raise DocumentActionFailure(f"{target} does not exist")

        if kind is None:
            kind = "notebook" if target.endswith(".ipynb") else "file"

        if kind == "notebook" and kernel:
            self._bind_kernel(target, kernel)

        if self.editor is None:
            self._logger.warning(f"No editor configured, not opening {target}")
            return
        try:
            self.editor.open(target, kernel)
        except Exception as e:
            raise DocumentActionFailure(f"Could not open {target}: {e}") from e
        self._logger.info(f"Opened {kind} {target}" + (f" with kernel {kernel}" if kernel else ""))

    def _bind_kernel(self, target: str, kernel: str):
        descriptor = self.kernel_lookup(kernel) if self.kernel_lookup else None
        kernelspec = {
            "name": kernel,
            "display_name": descriptor.display_name if descriptor else kernel,
        }
        if descriptor and descriptor.language:
            kernelspec["language"] = descriptor.language

        try:
            notebook = nbformat.read(target, as_version=4)
            notebook.metadata["kernelspec"] = kernelspec
            if descriptor and descriptor.language:
                notebook.metadata.setdefault("language_info", {})["name"] = descriptor.language
            nbformat.write(notebook, target)
        except Exception as e:
            raise DocumentActionFailure(f"Could not bind kernel {kernel} to {target}: {e}") from e
