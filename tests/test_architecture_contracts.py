# tests/test_architecture_contracts.py
"""
Architecture contract tests for the episode workflow packages.

These tests enforce structural invariants that unit tests don't catch:
- Layer violations (the event bus never imports the episode workflow)
- Version consistency (__init__.py vs pyproject.toml)
- Lazy imports in __init__.py (prevent AppRegistryNotReady)
- Test file and migration existence
- Append-only event store
- AUTH_USER_MODEL usage (not direct User imports)
- Circular import detection
"""
from __future__ import annotations

import ast
import importlib
import re
import sys
from pathlib import Path
from typing import List, Set

import pytest

# Package layer classification
LAYER_MAP = {
    # Layer 0: Canonical events and automation
    "django-eventbus": 0,
    # Layer 1: Workflow
    "django-episodes": 1,
}

ROOT_DIR = Path(__file__).parent.parent
PACKAGES_DIR = ROOT_DIR / "packages"


def get_package_dirs() -> List[Path]:
    """Get all django-* package directories."""
    return sorted([p for p in PACKAGES_DIR.iterdir() if p.is_dir() and p.name.startswith("django-")])


def src_dir_for(pkg_dir: Path) -> Path:
    return pkg_dir / "src" / pkg_dir.name.replace("-", "_")


def get_imports_from_file(path: Path) -> Set[str]:
    """Extract all top-level imported module names from a Python file."""
    if not path.exists():
        return set()

    try:
        source = path.read_text()
        tree = ast.parse(source)
    except (SyntaxError, UnicodeDecodeError):
        return set()

    imports = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                imports.add(alias.name.split('.')[0])
        elif isinstance(node, ast.ImportFrom):
            if node.module and node.level == 0:
                imports.add(node.module.split('.')[0])
    return imports


# -----------------------------
# 1) Layer violation detection
# -----------------------------

def test_every_package_has_a_layer():
    unknown = [p.name for p in get_package_dirs() if p.name not in LAYER_MAP]

    assert not unknown, f"Packages missing from LAYER_MAP: {', '.join(unknown)}"


def test_no_layer_violations():
    """
    Lower-layer packages cannot import from higher-layer packages.

    django_episodes emits events through django_eventbus; the reverse
    direction would couple automation to the workflow.
    """
    violations = []

    for pkg_dir in get_package_dirs():
        pkg_name = pkg_dir.name
        if pkg_name not in LAYER_MAP:
            continue

        pkg_layer = LAYER_MAP[pkg_name]
        src_dir = src_dir_for(pkg_dir)

        if not src_dir.exists():
            continue

        for py_file in src_dir.rglob("*.py"):
            for imp in get_imports_from_file(py_file):
                if not imp.startswith("django_"):
                    continue
                dep_pkg = imp.replace("_", "-")
                if dep_pkg in LAYER_MAP and LAYER_MAP[dep_pkg] > pkg_layer:
                    violations.append(
                        f"{pkg_name} (layer {pkg_layer}) imports {dep_pkg} "
                        f"(layer {LAYER_MAP[dep_pkg]}) in {py_file.relative_to(PACKAGES_DIR)}"
                    )

    assert not violations, (
        "Layer violations detected (lower layers cannot import higher layers):\n"
        + "\n".join(violations)
    )


# -----------------------------
# 2) Version consistency
# -----------------------------

def test_version_consistency():
    """
    __init__.py __version__ must match the root pyproject.toml version.
    """
    pyproject_text = (ROOT_DIR / "pyproject.toml").read_text()
    match = re.search(r'^version\s*=\s*["\']([^"\']+)["\']', pyproject_text, re.MULTILINE)
    assert match, "pyproject.toml has no version"
    pyproject_version = match.group(1)

    mismatches = []
    for pkg_dir in get_package_dirs():
        init_py = src_dir_for(pkg_dir) / "__init__.py"
        if not init_py.exists():
            continue

        match = re.search(r'__version__\s*=\s*["\']([^"\']+)["\']', init_py.read_text())
        if not match:
            mismatches.append(f"{pkg_dir.name}: __init__.py missing __version__")
        elif match.group(1) != pyproject_version:
            mismatches.append(
                f"{pkg_dir.name}: pyproject.toml={pyproject_version}, __init__.py={match.group(1)}"
            )

    assert not mismatches, (
        "Version mismatches detected:\n" + "\n".join(mismatches)
    )


# -----------------------------
# 3) AUTH_USER_MODEL usage
# -----------------------------

def test_uses_auth_user_model_not_direct_import():
    """
    Packages should use settings.AUTH_USER_MODEL, not direct User imports.
    """
    violations = []

    for pkg_dir in get_package_dirs():
        src_dir = src_dir_for(pkg_dir)
        if not src_dir.exists():
            continue

        for py_file in src_dir.rglob("*.py"):
            source = py_file.read_text()
            if re.search(r'from django\.contrib\.auth\.models import.*\bUser\b', source):
                violations.append(
                    f"{pkg_dir.name}/{py_file.name}: imports User directly. "
                    "Use settings.AUTH_USER_MODEL instead."
                )

    assert not violations, (
        "Direct User imports detected (breaks swappable user model):\n"
        + "\n".join(violations)
    )


# -----------------------------
# 4) Lazy imports in __init__.py
# -----------------------------

def test_init_uses_lazy_imports():
    """
    __init__.py must not import submodules eagerly.

    Public names are resolved through a module-level __getattr__.
    """
    problems = []

    for pkg_dir in get_package_dirs():
        init_py = src_dir_for(pkg_dir) / "__init__.py"
        if not init_py.exists():
            continue

        tree = ast.parse(init_py.read_text())
        for node in tree.body:
            if isinstance(node, (ast.Import, ast.ImportFrom)):
                problems.append(f"{pkg_dir.name}/__init__.py: module-level import at line {node.lineno}")

        defines_getattr = any(
            isinstance(node, ast.FunctionDef) and node.name == "__getattr__"
            for node in tree.body
        )
        if not defines_getattr:
            problems.append(f"{pkg_dir.name}/__init__.py: no __getattr__ for lazy exports")

    assert not problems, (
        "Eager imports in __init__.py (use lazy imports):\n" + "\n".join(problems)
    )


def test_lazy_exports_resolve():
    """Every name in __all__ resolves through __getattr__."""
    missing = []

    for pkg_dir in get_package_dirs():
        module = importlib.import_module(pkg_dir.name.replace("-", "_"))
        for name in getattr(module, "__all__", []):
            try:
                getattr(module, name)
            except AttributeError:
                missing.append(f"{module.__name__}.{name}")

    assert not missing, "Unresolvable exports:\n" + "\n".join(missing)


# -----------------------------
# 5) Test and migration existence
# -----------------------------

def test_packages_have_tests():
    """All packages should have test files."""
    missing = []

    for pkg_dir in get_package_dirs():
        tests_dir = pkg_dir / "tests"

        if not tests_dir.exists():
            missing.append(f"{pkg_dir.name}: no tests/ directory")
            continue

        if not list(tests_dir.glob("test_*.py")):
            missing.append(f"{pkg_dir.name}: no test_*.py files in tests/")

    assert not missing, (
        "Packages missing tests:\n" + "\n".join(missing)
    )


def test_packages_with_models_have_migrations():
    missing = []

    for pkg_dir in get_package_dirs():
        src_dir = src_dir_for(pkg_dir)
        if not (src_dir / "models.py").exists():
            continue

        migrations = [p for p in (src_dir / "migrations").glob("0*.py")]
        if not migrations:
            missing.append(pkg_dir.name)

    assert not missing, f"Packages with models but no migrations: {', '.join(missing)}"


# -----------------------------
# 6) Append-only model enforcement
# -----------------------------

@pytest.mark.parametrize("pkg_name,model_name", [
    ("django-eventbus", "Event"),
])
def test_append_only_models_block_updates(pkg_name, model_name):
    """
    Append-only models override save() and delete() to block changes.
    """
    models_py = src_dir_for(PACKAGES_DIR / pkg_name) / "models.py"
    tree = ast.parse(models_py.read_text())

    classes = {node.name: node for node in tree.body if isinstance(node, ast.ClassDef)}
    assert model_name in classes, f"{pkg_name}: {model_name} not found"

    methods = {
        node.name: ast.unparse(node)
        for node in classes[model_name].body
        if isinstance(node, ast.FunctionDef)
    }
    assert "save" in methods, f"{pkg_name}/{model_name}: missing save() override"
    assert "self._state.adding" in methods["save"] or "self.pk" in methods["save"], (
        f"{pkg_name}/{model_name}: save() doesn't check for an existing row"
    )
    assert "delete" in methods, f"{pkg_name}/{model_name}: missing delete() override"


# -----------------------------
# 7) unique_together vs UniqueConstraint
# -----------------------------

def test_prefer_unique_constraint_over_unique_together():
    usages = []

    for pkg_dir in get_package_dirs():
        models_py = src_dir_for(pkg_dir) / "models.py"
        if models_py.exists() and 'unique_together' in models_py.read_text():
            usages.append(f"{pkg_dir.name}/models.py uses unique_together (prefer UniqueConstraint)")

    assert not usages, "\n".join(usages)


# -----------------------------
# 8) Circular import detection (basic)
# -----------------------------

def test_no_circular_imports():
    """
    Every module in every package imports cleanly.
    """
    errors = []

    for pkg_dir in get_package_dirs():
        src_dir = src_dir_for(pkg_dir)
        for py_file in sorted(src_dir.rglob("*.py")):
            relative = py_file.relative_to(src_dir.parent).with_suffix("")
            module_name = ".".join(relative.parts)
            if module_name.endswith(".__init__"):
                module_name = module_name[: -len(".__init__")]
            try:
                importlib.import_module(module_name)
            except ImportError as e:
                errors.append(f"{module_name}: {e}")

    assert not errors, (
        "Import errors detected:\n" + "\n".join(errors)
    )
