from __future__ import annotations

import argparse
import ast
from dataclasses import dataclass
from pathlib import Path

PACKAGE_NAME = "payload_guard"

LAYERS = (
    "domain",
    "services",
    "repositories",
    "usecases",
    "entrypoints",
    "observability",
)

# Shared top-level modules (settings, errors, logging_utils) belong to "core".
FORBIDDEN_IMPORTS = {
    "domain": {"services", "repositories", "usecases", "entrypoints", "observability"},
    "services": {"repositories", "usecases", "entrypoints"},
    "repositories": {"services", "usecases", "entrypoints"},
    "usecases": {"entrypoints"},
}


@dataclass(frozen=True)
class LayerViolation:
    module: str
    imported: str
    lineno: int

    def describe(self) -> str:
        return (
            f"{self.module}:{self.lineno} -> {self.imported} "
            f"(layer '{layer_of(self.module)}' must not depend on "
            f"layer '{layer_of(self.imported)}')"
        )


def layer_of(module_name: str) -> str:
    parts = module_name.split(".")
    if len(parts) >= 2 and parts[1] in LAYERS:
        return parts[1]
    return "core"


def _imported_modules(node: ast.AST) -> list[str]:
    if isinstance(node, ast.Import):
        return [alias.name for alias in node.names]
    if isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
        return [node.module]
    return []


def collect_violations(project_root: Path) -> list[LayerViolation]:
    package_root = project_root / PACKAGE_NAME
    violations: list[LayerViolation] = []

    for path in sorted(package_root.rglob("*.py")):
        module = ".".join(path.relative_to(project_root).with_suffix("").parts)
        forbidden = FORBIDDEN_IMPORTS.get(layer_of(module))
        if not forbidden:
            continue

        tree = ast.parse(path.read_text(encoding="utf-8"))
        for node in ast.walk(tree):
            for imported in _imported_modules(node):
                if not imported.startswith(f"{PACKAGE_NAME}."):
                    continue
                if layer_of(imported) in forbidden:
                    violations.append(
                        LayerViolation(
                            module=module,
                            imported=imported,
                            lineno=getattr(node, "lineno", 0),
                        )
                    )
    return violations


def main() -> int:
    parser = argparse.ArgumentParser(description="Check layer import rules.")
    parser.add_argument(
        "--project-root",
        type=Path,
        default=Path("."),
        help=f"Directory containing {PACKAGE_NAME}/.",
    )
    args = parser.parse_args()

    violations = collect_violations(args.project_root.resolve())
    if not violations:
        print("architecture rules check passed")
        return 0

    print("architecture rules check failed")
    for violation in violations:
        print(f"- {violation.describe()}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
