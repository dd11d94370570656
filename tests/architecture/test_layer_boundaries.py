"""
Layer boundaries, checked from source via AST.

1. fulfillment_kernel/** may NOT import fulfillment_services or
   fulfillment_config.  The kernel never depends upward.
2. fulfillment_engines/** are pure: no ORM models, no kernel services or
   selectors, no SQLAlchemy, no services.
3. Only InventoryLedger assigns InventoryRecord.quantity or
   reserved_quantity outside tests.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(path: Path) -> list[tuple[int, str]]:
    tree = ast.parse(path.read_text(), filename=str(path))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for path in _python_files(package):
        for lineno, module in _extract_imports(path):
            if any(module == p or module.startswith(f"{p}.") for p in forbidden):
                found.append(f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


class TestKernelNoUpwardDependencies:
    FORBIDDEN_KERNEL_IMPORTS = (
        "fulfillment_services",
        "fulfillment_config",
        "fulfillment_engines",
    )

    def test_kernel_does_not_import_upward(self):
        violations = _violations("fulfillment_kernel", self.FORBIDDEN_KERNEL_IMPORTS)

        assert not violations, (
            "Kernel boundary violation:\n" + "\n".join(violations)
        )


class TestEnginesArePure:
    FORBIDDEN_ENGINE_IMPORTS = (
        "sqlalchemy",
        "fulfillment_services",
        "fulfillment_config",
        "fulfillment_kernel.models",
        "fulfillment_kernel.services",
        "fulfillment_kernel.selectors",
        "fulfillment_kernel.db.engine",
    )

    def test_engines_do_no_io(self):
        violations = _violations("fulfillment_engines", self.FORBIDDEN_ENGINE_IMPORTS)

        assert not violations, (
            "Engine purity violation:\n" + "\n".join(violations)
        )


class TestSingleStockWriter:
    ALLOWED = {"fulfillment_kernel/services/inventory_ledger.py"}
    FIELDS = {"quantity", "reserved_quantity"}

    def _assigns_stock_fields(self, path: Path) -> list[int]:
        tree = ast.parse(path.read_text(), filename=str(path))
        lines = []
        for node in ast.walk(tree):
            targets = []
            if isinstance(node, ast.Assign):
                targets = node.targets
            elif isinstance(node, (ast.AugAssign, ast.AnnAssign)):
                targets = [node.target]
            for target in targets:
                if (
                    isinstance(target, ast.Attribute)
                    and target.attr in self.FIELDS
                    and isinstance(target.value, ast.Name)
                    and target.value.id == "record"
                ):
                    lines.append(node.lineno)
        return lines

    def test_only_ledger_writes_stock_rows(self):
        violations = []
        for package in ("fulfillment_kernel", "fulfillment_services", "fulfillment_engines"):
            for path in _python_files(package):
                rel = str(path.relative_to(ROOT))
                if rel in self.ALLOWED:
                    continue
                for lineno in self._assigns_stock_fields(path):
                    violations.append(f"  {rel}:{lineno}")

        assert not violations, (
            "InventoryRecord balances written outside InventoryLedger:\n" + "\n".join(violations)
        )
