"""
Architecture tests for the package layering.

fleet_kernel -> fleet_engines -> fleet_services -> fleet_batch, with
fleet_config consumed only from services and batch. Imports may only
point down the stack.

Also checks:
- fleet_engines stays free of persistence (no sqlalchemy, no kernel db,
  models, services or selectors)
- fleet_kernel.domain and fleet_batch.domain hold plain value types
"""

import ast
import glob
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package):
    """All Python files under a package directory, relative to the repo root."""
    return sorted(glob.glob(f"{ROOT / package}/**/*.py", recursive=True))


def _extract_imports(filepath):
    """Return (lineno, module) for every import statement in a file."""
    try:
        with open(filepath) as f:
            tree = ast.parse(f.read(), filename=filepath)
    except (SyntaxError, UnicodeDecodeError):
        return []

    imports = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                imports.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            imports.append((node.lineno, node.module))
    return imports


def _violations(package, forbidden):
    violations = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            if any(module == prefix or module.startswith(prefix + ".") for prefix in forbidden):
                rel = Path(filepath).relative_to(ROOT)
                violations.append(f"  {rel}:{lineno} imports '{module}'")
    return violations


class TestPackagesExist:

    def test_every_layer_has_sources(self):
        for package in (
            "fleet_kernel", "fleet_engines", "fleet_services", "fleet_config", "fleet_batch",
        ):
            assert _python_files(package), f"{package} not found under {ROOT}"


class TestKernelImportsNothingAbove:

    def test_kernel(self):
        violations = _violations(
            "fleet_kernel",
            ("fleet_engines", "fleet_services", "fleet_batch", "fleet_config"),
        )
        assert not violations, (
            "fleet_kernel must not import higher layers:\n" + "\n".join(violations)
        )


class TestEnginesArePure:

    def test_engines_do_not_import_upper_layers(self):
        violations = _violations(
            "fleet_engines", ("fleet_services", "fleet_batch", "fleet_config"),
        )
        assert not violations, (
            "fleet_engines must not import services, batch or config:\n"
            + "\n".join(violations)
        )

    def test_engines_do_not_touch_persistence(self):
        violations = _violations(
            "fleet_engines",
            (
                "sqlalchemy",
                "fleet_kernel.db",
                "fleet_kernel.models",
                "fleet_kernel.services",
                "fleet_kernel.selectors",
            ),
        )
        assert not violations, (
            "fleet_engines must work on domain values only:\n" + "\n".join(violations)
        )


class TestServicesDoNotImportBatch:

    def test_services(self):
        violations = _violations("fleet_services", ("fleet_batch",))
        assert not violations, (
            "fleet_services must not import fleet_batch:\n" + "\n".join(violations)
        )


class TestConfigIsStandalone:

    def test_config(self):
        violations = _violations(
            "fleet_config", ("fleet_engines", "fleet_services", "fleet_batch"),
        )
        assert not violations, (
            "fleet_config must not import engines, services or batch:\n"
            + "\n".join(violations)
        )


class TestDomainPurity:

    def test_kernel_domain(self):
        violations = _violations(
            "fleet_kernel/domain",
            (
                "sqlalchemy",
                "fleet_kernel.db",
                "fleet_kernel.models",
                "fleet_kernel.services",
                "fleet_kernel.selectors",
            ),
        )
        assert not violations, (
            "fleet_kernel.domain must not depend on persistence:\n" + "\n".join(violations)
        )

    def test_batch_domain(self):
        violations = _violations(
            "fleet_batch/domain",
            (
                "sqlalchemy",
                "fleet_kernel.db",
                "fleet_kernel.services",
                "fleet_kernel.selectors",
                "fleet_batch.services",
            ),
        )
        assert not violations, (
            "fleet_batch.domain must hold plain result types only:\n" + "\n".join(violations)
        )
