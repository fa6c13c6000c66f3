"""
Pytest configuration and shared fixtures for kernelmenu tests.
"""
import pytest
import sys
from pathlib import Path

# Add the plugin to Python path
plugin_path = Path(__file__).parent.parent / 'rplugin' / 'python3'
sys.path.insert(0, str(plugin_path))


@pytest.fixture(scope="session")
def plugin_dir():
    """Path to the plugin directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def language_registry():
    """A small, fixed language registry so tests do not depend on the pygments version."""
    from kernelmenu.languages import LanguageRegistry, LanguageSpec

    return LanguageRegistry([
        LanguageSpec("Python", aliases=("python", "py", "python3"), extensions=("py", "pyw", "pyi", "py")),
        LanguageSpec("Julia", aliases=("julia", "jl"), extensions=("jl",)),
        LanguageSpec("S", aliases=("splus", "s", "r"), extensions=("S", "R")),
        LanguageSpec("Text only", aliases=("text",), extensions=("txt",)),
    ])


@pytest.fixture
def python_kernel():
    from kernelmenu.catalog import KernelDescriptor

    return KernelDescriptor(identity="python3", display_name="Python 3 (ipykernel)", language="python")


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "requires_jupyter: mark test as requiring an installed Jupyter kernel"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add skip markers based on dependencies."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)

        if item.get_closest_marker('requires_jupyter'):
            try:
                import ipykernel  # noqa: F401
                import jupyter_client  # noqa: F401
            except ImportError:
                item.add_marker(pytest.mark.skip(reason="jupyter_client or ipykernel not available"))


def pytest_report_header(config):
    """Add information about available dependencies to test report header."""
    deps = []

    for module_name in ("pynvim", "aiohttp", "jupyter_client", "nbformat", "pygments"):
        try:
            module = __import__(module_name)
            deps.append(f"{module_name}-{getattr(module, '__version__', '?')}")
        except ImportError:
            deps.append(f"{module_name}-MISSING")

    return f"dependencies: {', '.join(deps)}"
