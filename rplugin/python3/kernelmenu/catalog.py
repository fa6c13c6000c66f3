import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from .errors import DiscoveryFailure

try:
    from jupyter_client.kernelspec import KernelSpecManager

    JUPYTER_CLIENT_AVAILABLE = True
except ImportError:
    KernelSpecManager = None
    JUPYTER_CLIENT_AVAILABLE = False


@dataclass(frozen=True)
class KernelDescriptor:
    """
    Immutable snapshot of one installed kernel.
    """

    identity: str
    display_name: str
    language: str = ""
    resources: Mapping[str, str] = field(default_factory=dict, compare=False, hash=False)
    argv: Tuple[str, ...] = ()

    @classmethod
    def from_kernelspec(cls, name: str, spec: Dict, resource_dir: Optional[str] = None) -> "KernelDescriptor":
        """
        Build a descriptor from one entry of KernelSpecManager.get_all_specs().

        Args:
            name: Kernel name (the kernelspec directory name)
            spec: The kernel.json contents
            resource_dir: Directory holding kernel.json and its logos

        Returns:
            KernelDescriptor: The descriptor for the kernel
        """
        resources = {}
        if resource_dir and os.path.isdir(resource_dir):
            for filename in sorted(os.listdir(resource_dir)):
                stem, _ext = os.path.splitext(filename)
                if stem.startswith("logo-"):
                    resources[stem] = os.path.join(resource_dir, filename)

        return cls(
            identity=name,
            display_name=spec.get("display_name") or name,
            language=spec.get("language") or "",
            resources=resources,
            argv=tuple(spec.get("argv") or ()),
        )

    @property
    def logo(self) -> Optional[str]:
        """Path of the first logo resource, if the kernelspec ships one."""
        for key in sorted(self.resources):
            return self.resources[key]
        return None


class KernelSpecCatalog:
    """
    The set of installed kernels, scanned once through jupyter_client.
    """

    def __init__(self, spec_manager=None):
        self._spec_manager = spec_manager
        self._descriptors: List[KernelDescriptor] = []
        self._error: Optional[BaseException] = None
        self._ready = asyncio.Event()
        self._logger = logging.getLogger("kernelmenu.catalog")

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def _get_spec_manager(self):
        if self._spec_manager is None:
            if not JUPYTER_CLIENT_AVAILABLE:
                raise DiscoveryFailure(
                    "jupyter_client is not installed or imports failed. Please install it to list kernels."
                )
            self._spec_manager = KernelSpecManager()
        return self._spec_manager

    def _scan(self) -> List[KernelDescriptor]:
        specs = self._get_spec_manager().get_all_specs()
        descriptors = []
        for name in sorted(specs):
            entry = specs[name]
            try:
                descriptors.append(
                    KernelDescriptor.from_kernelspec(name, entry.get("spec", {}), entry.get("resource_dir"))
                )
            except Exception as e:
                self._logger.warning(f"Skipping kernelspec {name}: {e}")
        return descriptors

    async def refresh(self):
        """
        Scan the installed kernelspecs and mark the catalog ready.

        The scan touches the filesystem, so it runs in the default executor.
        A failed scan is remembered and re-raised from ready().
        """
        loop = asyncio.get_running_loop()
        try:
            self._descriptors = await loop.run_in_executor(None, self._scan)
            self._error = None
            self._logger.info(f"Discovered {len(self._descriptors)} kernel specifications")
            if not self._descriptors:
                self._logger.warning("No Jupyter kernel specifications found. Make sure ipykernel is installed.")
        except Exception as e:
            self._logger.error(f"Failed to scan kernel specifications: {e}")
            self._error = e
        finally:
            self._ready.set()

    async def ready(self):
        """Wait until the kernelspec scan has finished."""
        await self._ready.wait()
        if self._error is not None:
            raise DiscoveryFailure(f"Kernel specifications unavailable: {self._error}") from self._error

    def list_descriptors(self) -> List[KernelDescriptor]:
        return list(self._descriptors)

    def get(self, identity: str) -> Optional[KernelDescriptor]:
        for descriptor in self._descriptors:
            if descriptor.identity == identity:
                return descriptor
        return None
